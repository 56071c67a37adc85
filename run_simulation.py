# run_simulation.py File

import argparse
import logging
import os
import time
from dataclasses import dataclass, field, replace

from ASM2d_Processes import calculate_process_rates, correct_temperature
from asm2d_influent import (create_influent_data_function, flow_weighted_influent, fractionate_influent,
                            get_constant_influent_data, read_influent_file)
from asm2d_params import (DEFAULT_A2O_REACTOR_CONFIG, DEFAULT_DOMESTIC_INFLUENT, SOLVERS,
                          ConventionalInfluent, SimulationConfig, get_asm2d_params)
from asm2d_simulation import array_to_state, detect_steady_state, simulate_plant_dynamic, solve_plant_steady_state
from asm2d_validation import (calculate_effluent_quality, calculate_oxygen_demand, calculate_pao_metrics,
                              calculate_performance, calculate_phosphorus_balance, calculate_sludge_production,
                              combine_oxygen_demand, make_performance_plot, plot_zone_profiles,
                              write_summary_csv)

logger = logging.getLogger(__name__)

SIMULATION_MODES = ('steady_state', 'dynamic')


@dataclass
class TimePoint:
    time: float
    state: dict                 # last zone
    process_rates: list
    zone_states: dict = None


@dataclass
class SteadyStateInfo:
    reached: bool
    time_to_steady_state: float = None   # days
    max_variation: float = 0.0
    convergence_metric: float = 0.0


@dataclass
class Computation:
    total_steps: int
    execution_time: float                # seconds
    warnings: list = field(default_factory=list)
    errors: list = field(default_factory=list)


@dataclass
class SimulationResult:
    config: SimulationConfig
    reactor: object
    time_series: list
    final_state: dict
    zone_states: dict
    effluent_quality: object
    performance: object
    pao_metrics: object
    sludge_production: object
    oxygen_demand: object
    phosphorus_balance: object
    steady_state: SteadyStateInfo
    computation: Computation


def _resolve_params(params):
    # params: None or (stoich_params, kin_params, temp_coeffs)
    if params is None:
        return get_asm2d_params()
    stoich_params, kin_params, temp_coeffs = params
    return dict(stoich_params), dict(kin_params), dict(temp_coeffs)


def run_asm2d_simulation(config=None, reactor=None, raw_influent=None, params=None, influent_data=None):
    """
    Runs the ASM2d model of a biological nutrient removal plant and derives
    its effluent quality and operating figures.

    Args:
        config (SimulationConfig): run settings; 'steady_state' returns one
            time point, 'dynamic' a series every config.output_interval days.
        reactor (ReactorConfig): zones, recycles, sludge age and temperature.
        raw_influent (ConventionalInfluent or dict): measured influent.
        params (tuple): (stoich_params, kin_params, temp_coeffs) at 20 deg C.
        influent_data (function): optional f(t) -> (Q_in, Z_in) for dynamic
            runs; defaults to the fractionated raw_influent held constant.

    Returns:
        SimulationResult
    """
    start_clock = time.perf_counter()
    config = config or SimulationConfig()
    reactor = reactor or DEFAULT_A2O_REACTOR_CONFIG
    if raw_influent is None:
        raw_influent = DEFAULT_DOMESTIC_INFLUENT
    if not isinstance(raw_influent, ConventionalInfluent):
        raw_influent = ConventionalInfluent.from_record(raw_influent)
    if config.mode not in SIMULATION_MODES:
        raise ValueError(f"Unknown simulation mode '{config.mode}', expected one of {SIMULATION_MODES}")
    if config.solver not in SOLVERS:
        raise ValueError(f"Unknown solver '{config.solver}', expected one of {SOLVERS}")

    warnings, errors = [], []
    stoich_params, kin_params, temp_coeffs = _resolve_params(params)
    kin_params = correct_temperature(kin_params, reactor.temperature, temp_coeffs)
    if not reactor.enable_dpao:
        kin_params['eta_NO3_PAO'] = 0.0
    if reactor.enable_chem_p:
        warnings.append("Chemical P precipitation is not modelled; enable_chem_p has no effect")

    influent = fractionate_influent(raw_influent)
    flow_rate = raw_influent.flow_rate
    zones = reactor.zones
    last_zone_id = zones[-1].id
    initial_states = {zone.id: config.initial_state for zone in zones}

    time_series = []
    if config.mode == 'steady_state':
        # fixed-step relaxation; the adaptive integrators have no meaning here
        method = config.solver if config.solver in ('patankar', 'euler') else 'patankar'
        plant = solve_plant_steady_state(
            influent, zones, kin_params, stoich_params, reactor.recirculation,
            initial_states=initial_states, flow_rate=flow_rate,
            clarifier_efficiency=reactor.clarifier_efficiency,
            max_iterations=config.max_iterations, tolerance=config.tolerance,
            time_step=config.time_step, method=method)
        zone_states = plant.zone_states
        final_state = zone_states[last_zone_id]
        _, process_rates = calculate_process_rates(final_state, kin_params, stoich_params)
        time_series.append(TimePoint(time=config.start_time, state=final_state,
                                     process_rates=process_rates, zone_states=zone_states))
        if not plant.converged:
            warnings.append(f"Steady state not reached after {plant.iterations} iterations "
                            f"(max change {plant.residual:.3g})")
        steady_state = SteadyStateInfo(reached=plant.converged,
                                       time_to_steady_state=0.0 if plant.converged else None,
                                       max_variation=plant.residual,
                                       convergence_metric=plant.residual)
        total_steps = plant.iterations
    else:
        if influent_data is None:
            influent_data = get_constant_influent_data(influent, flow_rate)
        trajectory = simulate_plant_dynamic(
            influent_data, zones, kin_params, stoich_params, reactor.recirculation,
            t_span=(config.start_time, config.end_time), initial_states=initial_states,
            design_flow=flow_rate, clarifier_efficiency=reactor.clarifier_efficiency,
            time_step=config.time_step, output_interval=config.output_interval, solver=config.solver)
        if not trajectory.success:
            errors.append(f"Integrator failed: {trajectory.message}")

        for t, zone_arrays in zip(trajectory.times, trajectory.states):
            states = {zone_id: array_to_state(zone_arrays[k]) for k, zone_id in enumerate(trajectory.zone_ids)}
            _, process_rates = calculate_process_rates(states[last_zone_id], kin_params, stoich_params)
            time_series.append(TimePoint(time=float(t), state=states[last_zone_id],
                                         process_rates=process_rates, zone_states=states))
        zone_states = time_series[-1].zone_states
        final_state = time_series[-1].state

        flat = trajectory.states.reshape(len(trajectory.times), -1)
        reached, time_to_steady, max_variation = detect_steady_state(trajectory.times, flat)
        if not reached:
            warnings.append(f"Steady state not reached by t = {config.end_time:g} d "
                            f"(last relative change {max_variation:.3g})")
        steady_state = SteadyStateInfo(reached=reached, time_to_steady_state=time_to_steady,
                                       max_variation=max_variation, convergence_metric=max_variation)
        total_steps = trajectory.steps

    # --- Metrics ---
    _, process_rates = calculate_process_rates(final_state, kin_params, stoich_params)
    effluent_quality = calculate_effluent_quality(final_state, reactor.clarifier_efficiency, stoich_params)
    performance = calculate_performance(raw_influent, effluent_quality)
    pao_metrics = calculate_pao_metrics(final_state, process_rates, stoich_params)
    sludge_production = calculate_sludge_production(
        final_state, reactor.total_volume, reactor.srt, flow_rate,
        influent_cod=raw_influent.COD, effluent_cod=effluent_quality.COD, stoich_params=stoich_params)

    cod_removed = flow_rate * (raw_influent.COD - effluent_quality.COD) / 1000.0
    zone_demands = []
    for zone in zones:
        _, zone_rates = calculate_process_rates(zone_states[zone.id], kin_params, stoich_params)
        demand = calculate_oxygen_demand(zone_rates, stoich_params, zone.volume)
        zone_demands.append((demand.carbonaceous, demand.nitrogenous))
    oxygen_demand = combine_oxygen_demand(zone_demands, cod_removed if cod_removed > 0 else None)
    phosphorus_balance = calculate_phosphorus_balance(raw_influent, effluent_quality, sludge_production)

    for message in warnings:
        logger.warning(message)

    return SimulationResult(
        config=config,
        reactor=reactor,
        time_series=time_series,
        final_state=final_state,
        zone_states=zone_states,
        effluent_quality=effluent_quality,
        performance=performance,
        pao_metrics=pao_metrics,
        sludge_production=sludge_production,
        oxygen_demand=oxygen_demand,
        phosphorus_balance=phosphorus_balance,
        steady_state=steady_state,
        computation=Computation(total_steps=total_steps,
                                execution_time=time.perf_counter() - start_clock,
                                warnings=warnings, errors=errors),
    )


def main(argv=None):
    parser = argparse.ArgumentParser(description="ASM2d activated sludge plant simulation")
    parser.add_argument('--mode', choices=SIMULATION_MODES, default='steady_state')
    parser.add_argument('--end-time', type=float, default=50.0, help="simulated days (dynamic mode)")
    parser.add_argument('--temperature', type=float, default=DEFAULT_A2O_REACTOR_CONFIG.temperature,
                        help="operating temperature (deg C)")
    parser.add_argument('--solver', choices=SOLVERS, default='patankar')
    parser.add_argument('--influent-file', default=None,
                        help="CSV influent time series; implies --mode dynamic")
    parser.add_argument('--outdir', default='results')
    args = parser.parse_args(argv)

    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")
    os.makedirs(args.outdir, exist_ok=True)

    # --- 1. Influent and configuration ---
    raw_influent, influent_data, mode = DEFAULT_DOMESTIC_INFLUENT, None, args.mode
    if args.influent_file:
        raw_influent = flow_weighted_influent(read_influent_file(args.influent_file))
        influent_data = create_influent_data_function(args.influent_file)
        mode = 'dynamic'
    reactor = replace(DEFAULT_A2O_REACTOR_CONFIG, temperature=args.temperature)
    config = SimulationConfig(mode=mode, end_time=args.end_time, solver=args.solver)
    print(f"Step 1: {reactor.type} plant, {len(reactor.zones)} zones, {reactor.temperature:g} deg C, "
          f"Q = {raw_influent.flow_rate:g} m^3/d")

    # --- 2. Run ---
    print(f"Starting {mode} simulation with the {args.solver} solver...")
    result = run_asm2d_simulation(config, reactor, raw_influent, influent_data=influent_data)
    print(f"Finished in {result.computation.execution_time:.2f} s, {result.computation.total_steps} steps, "
          f"steady state reached: {result.steady_state.reached}")
    for message in result.computation.warnings:
        print("WARN", message)

    # --- 3. KPIs, table and figures ---
    summary = write_summary_csv(result, os.path.join(args.outdir, 'asm2d_summary.csv'))
    for row in summary.itertuples(index=False):
        print(f"{row.label}: {row.value:.3f} {row.unit}")
    make_performance_plot(result, os.path.join(args.outdir, 'asm2d_performance.png'))
    if mode == 'dynamic':
        plot_zone_profiles(result, out_dir=os.path.join(args.outdir, 'across_zones'))
    print(f"Results written to {args.outdir}/")
    return result


if __name__ == '__main__':
    main()

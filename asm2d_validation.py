# asm2d_validation.py File

import os
from dataclasses import asdict, dataclass

import matplotlib
matplotlib.use("Agg")
import matplotlib.pyplot as plt
import numpy as np
import pandas as pd

from asm2d_params import ASM2D_STATE_ORDER, DEFAULT_ASM2D_STOICH_PARAMS, particulate_cod_idx
from clarifier_model import COD_TO_VSS, map_particulates_by_ratio, tss_from_cod

DEFAULT_OBSERVED_YIELD = 0.4   # g VSS/g COD removed, used when the COD removed is unknown
DEFAULT_ALPHA = 0.8            # process/clean water oxygen transfer ratio
O2_NITRIFICATION = 4.57        # g O2/g N


@dataclass(frozen=True)
class EffluentQuality:
    COD: float
    sCOD: float
    BOD5: float
    TSS: float
    VSS: float
    TKN: float
    NH4N: float
    NO3N: float
    TN: float
    TP: float
    PO4P: float


@dataclass(frozen=True)
class PerformanceMetrics:
    bod_removal: float
    cod_removal: float
    tss_removal: float
    nh4_removal: float
    tn_removal: float
    tp_removal: float
    bio_p_removal: float
    chem_p_removal: float


@dataclass(frozen=True)
class PAOMetrics:
    X_PAO: float
    pao_fraction: float      # % of active biomass
    pha_ratio: float         # g COD PHA/g COD PAO
    pp_ratio: float          # g P/g COD PAO
    dpao_activity: float     # % of poly-P storage done on nitrate
    p_release_rate: float    # g P/(g COD PAO d)
    p_uptake_rate: float     # g P/(g COD PAO d)


@dataclass(frozen=True)
class SludgeProduction:
    total_vss: float         # g VSS/m^3
    total_tss: float         # g TSS/m^3
    yield_observed: float    # g VSS/g COD removed
    wastage_rate: float      # kg TSS/d
    p_content: float         # % of TSS
    production: float        # kg TSS/d


@dataclass(frozen=True)
class OxygenDemand:
    carbonaceous: float      # kg O2/d
    nitrogenous: float       # kg O2/d
    total: float             # kg O2/d
    specific: float          # kg O2/kg COD removed
    alpha: float


@dataclass(frozen=True)
class PhosphorusBalance:
    influent_load: float     # kg P/d
    effluent_load: float     # kg P/d
    sludge_p: float          # kg P/d
    bio_p: float             # kg P/d
    chem_p: float            # kg P/d
    closure: float           # % of influent P found in effluent + sludge


def _composition(stoich_params):
    return DEFAULT_ASM2D_STOICH_PARAMS if stoich_params is None else stoich_params


def particulate_phosphorus(state, stoich_params=None):
    """P bound in poly-P, active biomass and inert particulates (g P/m^3)."""
    sp = _composition(stoich_params)
    return (state['X_PP']
            + sp['i_PB'] * (state['X_H'] + state['X_AUT'] + state['X_PAO'])
            + sp['i_PP'] * (state['X_I'] + state['X_P']))


def calculate_effluent_quality(state, clarifier_efficiency=0.95, stoich_params=None):
    """
    Effluent of an ideal clarifier fed with state: solubles pass through,
    particulates are reduced to (1 - clarifier_efficiency).
    """
    sp = _composition(stoich_params)
    x = np.array([state[name] for name in ASM2D_STATE_ORDER], dtype=float)
    x_eff = map_particulates_by_ratio(x, 1.0 - clarifier_efficiency)
    eff = dict(zip(ASM2D_STATE_ORDER, x_eff.tolist()))

    sCOD = eff['S_I'] + eff['S_F'] + eff['S_A']
    pCOD = float(np.sum(x_eff[particulate_cod_idx]))
    VSS = pCOD / COD_TO_VSS
    TSS = tss_from_cod(x_eff)
    f_XI = sp['f_XI']
    BOD5 = 0.25 * (eff['S_F'] + eff['S_A'] + eff['X_S'] + eff['X_PHA']
                   + (1.0 - f_XI) * (eff['X_H'] + eff['X_AUT'] + eff['X_PAO']))
    TKN = (eff['S_NH'] + eff['S_ND'] + eff['X_ND']
           + sp['i_XB'] * (eff['X_H'] + eff['X_AUT'] + eff['X_PAO'])
           + sp['i_XP'] * (eff['X_I'] + eff['X_P']))
    TP = eff['S_PO4'] + particulate_phosphorus(eff, sp)

    return EffluentQuality(
        COD=sCOD + pCOD,
        sCOD=sCOD,
        BOD5=BOD5,
        TSS=TSS,
        VSS=VSS,
        TKN=TKN,
        NH4N=eff['S_NH'],
        NO3N=eff['S_NO'],
        TN=TKN + eff['S_NO'],
        TP=TP,
        PO4P=eff['S_PO4'],
    )


def _removal(influent_value, effluent_value):
    if influent_value <= 0:
        return 0.0
    return float(np.clip(100.0 * (influent_value - effluent_value) / influent_value, 0.0, 100.0))


def calculate_performance(influent, effluent):
    """Percentage removals, each clamped to [0, 100]."""
    tp_removal = _removal(influent.TP, effluent.TP)
    return PerformanceMetrics(
        bod_removal=_removal(influent.BOD5, effluent.BOD5),
        cod_removal=_removal(influent.COD, effluent.COD),
        tss_removal=_removal(influent.TSS, effluent.TSS),
        nh4_removal=_removal(influent.NH4N, effluent.NH4N),
        tn_removal=_removal(influent.TKN, effluent.TN),
        tp_removal=tp_removal,
        # no chemical dosing is modelled, all P removal is biological
        bio_p_removal=tp_removal,
        chem_p_removal=0.0,
    )


def _rate_lookup(process_rates):
    if isinstance(process_rates, dict):
        return process_rates
    return {pr.process: pr.rate for pr in process_rates}


def calculate_pao_metrics(state, process_rates, stoich_params=None):
    sp = _composition(stoich_params)
    rates = _rate_lookup(process_rates)
    X_PAO = state['X_PAO']
    active_biomass = state['X_H'] + state['X_AUT'] + X_PAO
    has_pao = X_PAO > 0.1

    anoxic_pp = rates.get('anoxic_storage_PP', 0.0)
    aerobic_pp = rates.get('aerobic_storage_PP', 0.0)
    total_pp = anoxic_pp + aerobic_pp

    return PAOMetrics(
        X_PAO=X_PAO,
        pao_fraction=100.0 * X_PAO / active_biomass if active_biomass > 0 else 0.0,
        pha_ratio=state['X_PHA'] / X_PAO if has_pao else 0.0,
        pp_ratio=state['X_PP'] / X_PAO if has_pao else 0.0,
        dpao_activity=100.0 * anoxic_pp / total_pp if total_pp > 0 else 0.0,
        p_release_rate=rates.get('storage_PHA', 0.0) * sp['Y_PO4'] / X_PAO if has_pao else 0.0,
        p_uptake_rate=total_pp / X_PAO if has_pao else 0.0,
    )


def calculate_sludge_production(state, reactor_volume, srt, flow_rate,
                                influent_cod=None, effluent_cod=None, stoich_params=None):
    """
    Sludge inventory and wastage for a reactor of reactor_volume (m^3) run at
    sludge age srt (d). The observed yield needs the influent and effluent
    COD (g/m^3); without them DEFAULT_OBSERVED_YIELD is reported.

    The wastage rate is the one that holds the design sludge age srt. It is
    not the wastage flow of the simulated plant, whose solids inventory is set
    by Recirculation.wastage and the clarifier escape.
    """
    x = np.array([state[name] for name in ASM2D_STATE_ORDER], dtype=float)
    particulate_cod = float(np.sum(x[particulate_cod_idx]))
    total_vss = particulate_cod / COD_TO_VSS
    total_tss = tss_from_cod(x)

    # kg/d drawn off to hold the sludge age
    wastage_rate = reactor_volume / srt * total_tss / 1000.0
    vss_production = reactor_volume / srt * total_vss / 1000.0

    p_sludge = particulate_phosphorus(state, stoich_params)
    p_content = 100.0 * p_sludge / total_tss if total_tss > 0 else 0.0

    yield_observed = DEFAULT_OBSERVED_YIELD
    if influent_cod is not None and effluent_cod is not None:
        cod_removed = flow_rate * (influent_cod - effluent_cod) / 1000.0
        if cod_removed > 0:
            yield_observed = vss_production / cod_removed

    return SludgeProduction(
        total_vss=total_vss,
        total_tss=total_tss,
        yield_observed=yield_observed,
        wastage_rate=wastage_rate,
        p_content=p_content,
        production=wastage_rate,
    )


def calculate_oxygen_demand(process_rates, stoich_params, volume, cod_removed=None, alpha=DEFAULT_ALPHA):
    """
    Oxygen uptake of a reactor from its process rates.

    Args:
        process_rates: list of ProcessRate records or a name -> rate dict (g/(m^3 d)).
        volume (float): reactor volume (m^3).
        cod_removed (float): kg COD/d removed, for the specific demand; 0 when omitted.

    Returns:
        OxygenDemand in kg O2/d.
    """
    rates = _rate_lookup(process_rates)
    Y_H, Y_PAO, Y_PHA, Y_AUT = (stoich_params['Y_H'], stoich_params['Y_PAO'],
                                stoich_params['Y_PHA'], stoich_params['Y_AUT'])

    our_c = ((1 - Y_H) / Y_H * (rates.get('aerobic_growth_H_SF', 0.0) + rates.get('aerobic_growth_H_SA', 0.0))
             + (1 - Y_PAO) / Y_PAO * rates.get('aerobic_growth_PAO', 0.0)
             + Y_PHA * rates.get('aerobic_storage_PP', 0.0))
    our_n = (O2_NITRIFICATION - Y_AUT) / Y_AUT * rates.get('aerobic_growth_AUT', 0.0)

    return combine_oxygen_demand([(our_c * volume / 1000.0, our_n * volume / 1000.0)],
                                 cod_removed, alpha)


def combine_oxygen_demand(zone_demands, cod_removed=None, alpha=DEFAULT_ALPHA):
    """Plant oxygen demand from (carbonaceous, nitrogenous) kg O2/d pairs, one per zone."""
    carbonaceous = float(sum(c for c, _ in zone_demands))
    nitrogenous = float(sum(n for _, n in zone_demands))
    total = carbonaceous + nitrogenous
    return OxygenDemand(
        carbonaceous=carbonaceous,
        nitrogenous=nitrogenous,
        total=total,
        specific=total / cod_removed if cod_removed else 0.0,
        alpha=alpha,
    )


def calculate_phosphorus_balance(influent, effluent, sludge):
    """
    Influent P against effluent + sludge P (kg P/d). The closure is
    (effluent + sludge) / influent * 100 and is not capped: a static sludge
    inventory can hold more P than one day of influent delivers.
    """
    influent_load = influent.flow_rate * influent.TP / 1000.0
    effluent_load = influent.flow_rate * effluent.TP / 1000.0
    sludge_p = max(0.0, sludge.wastage_rate * sludge.p_content / 100.0)
    closure = 100.0 * (effluent_load + sludge_p) / influent_load if influent_load > 0 else 100.0
    return PhosphorusBalance(
        influent_load=influent_load,
        effluent_load=effluent_load,
        sludge_p=sludge_p,
        bio_p=max(0.0, influent_load - effluent_load),
        chem_p=0.0,
        closure=closure,
    )


# --- Tables and figures ---

def results_to_frame(result):
    """
    One row per time point: time, then '<zone>.<component>' for every zone
    (or the final zone only when no zone states were recorded).
    """
    rows = []
    for point in result.time_series:
        row = {'time': point.time}
        zone_states = point.zone_states or {'final': point.state}
        for zone_id, state in zone_states.items():
            for name in ASM2D_STATE_ORDER:
                row[f'{zone_id}.{name}'] = state[name]
        rows.append(row)
    return pd.DataFrame(rows)


KPI_ITEMS = [
    ("effluent_quality", "COD",  "Effluent COD",      "g COD m^-3"),
    ("effluent_quality", "BOD5", "Effluent BOD5",     "g m^-3"),
    ("effluent_quality", "TSS",  "Effluent TSS",      "g SS m^-3"),
    ("effluent_quality", "NH4N", "Effluent NH4-N",    "g N m^-3"),
    ("effluent_quality", "NO3N", "Effluent NO3-N",    "g N m^-3"),
    ("effluent_quality", "TN",   "Effluent TN",       "g N m^-3"),
    ("effluent_quality", "TP",   "Effluent TP",       "g P m^-3"),
    ("performance", "cod_removal", "COD removal",     "%"),
    ("performance", "bod_removal", "BOD5 removal",    "%"),
    ("performance", "tss_removal", "TSS removal",     "%"),
    ("performance", "nh4_removal", "NH4-N removal",   "%"),
    ("performance", "tn_removal",  "TN removal",      "%"),
    ("performance", "tp_removal",  "TP removal",      "%"),
    ("pao_metrics", "pao_fraction", "PAO fraction",   "%"),
    ("pao_metrics", "dpao_activity", "dPAO activity", "%"),
    ("sludge_production", "production", "Sludge production", "kg TSS d^-1"),
    ("sludge_production", "p_content", "Sludge P content",   "%"),
    ("oxygen_demand", "total", "Oxygen demand",       "kg O2 d^-1"),
    ("phosphorus_balance", "closure", "P balance closure", "%"),
]


def summary_frame(result):
    """KPI table of a simulation result: metric_key, label, unit, value."""
    records = []
    for group, key, label, unit in KPI_ITEMS:
        records.append({
            "metric_key": f"{group}.{key}",
            "label": label,
            "unit": unit,
            "value": float(asdict(getattr(result, group))[key]),
        })
    return pd.DataFrame(records)


def write_summary_csv(result, out_csv="results/asm2d_summary.csv"):
    os.makedirs(os.path.dirname(out_csv) or ".", exist_ok=True)
    df = summary_frame(result)
    df.to_csv(out_csv, index=False)
    return df


def make_performance_plot(result, out_png="results/asm2d_performance.png"):
    """
    Bar chart of the removal efficiencies with the effluent concentration
    written above each bar.
    """
    os.makedirs(os.path.dirname(out_png) or ".", exist_ok=True)
    perf, eff = result.performance, result.effluent_quality
    items = [
        ("COD", perf.cod_removal, eff.COD),
        ("BOD$_5$", perf.bod_removal, eff.BOD5),
        ("TSS", perf.tss_removal, eff.TSS),
        ("NH$_4$-N", perf.nh4_removal, eff.NH4N),
        ("TN", perf.tn_removal, eff.TN),
        ("TP", perf.tp_removal, eff.TP),
    ]
    x = np.arange(len(items))
    removals = np.array([r for _, r, _ in items], dtype=float)

    fig, ax = plt.subplots(figsize=(8, 4))
    ax.bar(x, removals, 0.6, label="Removal")
    ax.set_xticks(x)
    ax.set_xticklabels([name for name, _, _ in items])
    ax.set_ylabel("Removal (%)")
    ax.set_ylim(0, 110)
    ax.set_title(f"ASM2d {result.reactor.type} plant at {result.reactor.temperature:g} °C")
    ax.grid(True, axis="y", linestyle="--", alpha=0.35)
    for xi, yi, (_, _, conc) in zip(x, removals, items):
        ax.text(xi, yi, f"{conc:.2f} g/m³", ha="center", va="bottom", fontsize=8)

    fig.tight_layout()
    fig.savefig(out_png, dpi=150, bbox_inches="tight")
    plt.close(fig)
    return out_png


def plot_zone_profiles(result, components=('S_A', 'S_NO', 'S_NH', 'S_PO4', 'X_PAO', 'X_PP'),
                       out_dir="results/across_zones"):
    """
    One figure per component with a panel per reactor zone over time.
    Needs a time series with zone states (dynamic runs).
    """
    os.makedirs(out_dir, exist_ok=True)
    times = np.array([p.time for p in result.time_series])
    zone_ids = list(result.time_series[0].zone_states or {})
    paths = []
    for comp_name in components:
        fig, axes = plt.subplots(len(zone_ids), 1, figsize=(10, 2.5 * len(zone_ids)),
                                 sharex=True, squeeze=False)
        for ax, zone_id in zip(axes[:, 0], zone_ids):
            ax.plot(times, [p.zone_states[zone_id][comp_name] for p in result.time_series])
            ax.set_title(f'{zone_id} → {comp_name}')
            ax.set_ylabel('g/m³')
            ax.grid(True)
        axes[-1, 0].set_xlabel('Time (days)')
        fig.tight_layout()
        path = os.path.join(out_dir, f'{comp_name}_across_zones.png')
        fig.savefig(path, dpi=150)
        plt.close(fig)
        paths.append(path)
    return paths


"""Unit tests for effluent quality, performance and plant balance metrics."""

import pytest

from ASM2d_Processes import calculate_process_rates
from asm2d_params import ConventionalInfluent
from asm2d_validation import (DEFAULT_OBSERVED_YIELD, calculate_effluent_quality, calculate_oxygen_demand,
                              calculate_pao_metrics, calculate_performance, calculate_phosphorus_balance,
                              calculate_sludge_production, combine_oxygen_demand, particulate_phosphorus)


@pytest.fixture
def raw_influent(typical_influent):
    return ConventionalInfluent.from_record(typical_influent)


class TestEffluentQuality:
    def test_typical_clarifier(self, aerobic_state):
        eff = calculate_effluent_quality(aerobic_state, clarifier_efficiency=0.95)
        assert eff.sCOD == pytest.approx(45.0)
        assert eff.COD == pytest.approx(45.0 + 0.05 * 5200.0)
        assert eff.VSS == pytest.approx(0.05 * 5200.0 / 1.42)
        assert eff.TSS == pytest.approx(eff.VSS / 0.8)
        assert eff.TP == pytest.approx(3.0 + 0.05 * 285.0)
        assert eff.TN == pytest.approx(eff.TKN + eff.NO3N)
        assert eff.NH4N == 5.0
        assert eff.PO4P == 3.0

    def test_perfect_clarifier(self, aerobic_state):
        eff = calculate_effluent_quality(aerobic_state, clarifier_efficiency=1.0)
        assert eff.TSS == 0.0
        assert eff.COD == pytest.approx(45.0)
        assert eff.TP == pytest.approx(3.0)
        assert eff.TKN == pytest.approx(7.0)
        assert eff.BOD5 == pytest.approx(0.25 * 15.0)

    def test_tkn_includes_biomass_nitrogen(self, aerobic_state):
        eff = calculate_effluent_quality(aerobic_state, clarifier_efficiency=0.9)
        assert eff.TKN > eff.NH4N + aerobic_state['S_ND']

    def test_particulate_phosphorus(self, aerobic_state):
        assert particulate_phosphorus(aerobic_state) == pytest.approx(200.0 + 0.02 * 3500.0 + 0.01 * 1500.0)


class TestPerformance:
    def test_removals(self, raw_influent, aerobic_state):
        eff = calculate_effluent_quality(aerobic_state, clarifier_efficiency=1.0)
        perf = calculate_performance(raw_influent, eff)
        assert perf.bod_removal == pytest.approx(100.0 * (200.0 - 3.75) / 200.0)
        assert perf.cod_removal == pytest.approx(88.75)
        assert perf.tss_removal == pytest.approx(100.0)
        assert perf.nh4_removal == pytest.approx(80.0)
        assert perf.tn_removal == pytest.approx(70.0)
        assert perf.tp_removal == pytest.approx(62.5)
        assert perf.bio_p_removal == perf.tp_removal
        assert perf.chem_p_removal == 0.0

    def test_removals_clamped(self, raw_influent, aerobic_state):
        eff = calculate_effluent_quality(aerobic_state, clarifier_efficiency=0.0)
        perf = calculate_performance(raw_influent, eff)
        assert perf.cod_removal == 0.0
        assert perf.tss_removal == 0.0
        for value in (perf.bod_removal, perf.nh4_removal, perf.tn_removal, perf.tp_removal):
            assert 0.0 <= value <= 100.0

    def test_zero_influent_value(self, typical_influent, aerobic_state):
        influent = ConventionalInfluent.from_record(dict(typical_influent, NH4N=0.0))
        eff = calculate_effluent_quality(aerobic_state)
        assert calculate_performance(influent, eff).nh4_removal == 0.0


class TestPAOMetrics:
    def test_typical_state(self, params, aerobic_state):
        stoich, kin, _ = params
        _, process_rates = calculate_process_rates(aerobic_state, kin, stoich)
        pao = calculate_pao_metrics(aerobic_state, process_rates, stoich)
        assert pao.X_PAO == 800.0
        assert pao.pao_fraction == pytest.approx(100.0 * 800.0 / 3500.0)
        assert pao.pha_ratio == pytest.approx(0.125)
        assert pao.pp_ratio == pytest.approx(0.25)
        assert 0.0 <= pao.dpao_activity < 50.0
        assert pao.p_uptake_rate > 0.0

    def test_anoxic_state_raises_dpao_activity(self, params, aerobic_state, anoxic_state):
        stoich, kin, _ = params
        _, aerobic_rates = calculate_process_rates(aerobic_state, kin, stoich)
        _, anoxic_rates = calculate_process_rates(anoxic_state, kin, stoich)
        assert (calculate_pao_metrics(anoxic_state, anoxic_rates).dpao_activity
                > calculate_pao_metrics(aerobic_state, aerobic_rates).dpao_activity)

    def test_rate_dict_accepted(self, aerobic_state):
        pao = calculate_pao_metrics(aerobic_state, {'storage_PHA': 80.0})
        assert pao.p_release_rate == pytest.approx(80.0 * 0.4 / 800.0)
        assert pao.p_uptake_rate == 0.0
        assert pao.dpao_activity == 0.0

    def test_no_pao(self, params, aerobic_state):
        stoich, kin, _ = params
        state = dict(aerobic_state, X_PAO=0.0)
        _, process_rates = calculate_process_rates(state, kin, stoich)
        pao = calculate_pao_metrics(state, process_rates)
        assert pao.pao_fraction == 0.0
        assert pao.pha_ratio == 0.0
        assert pao.pp_ratio == 0.0
        assert pao.p_release_rate == 0.0


class TestSludgeProduction:
    def test_typical_plant(self, aerobic_state):
        sludge = calculate_sludge_production(aerobic_state, 4500.0, 15.0, 10000.0)
        assert 1.0 <= sludge.p_content <= 10.0
        assert sludge.total_tss > sludge.total_vss
        assert sludge.yield_observed == DEFAULT_OBSERVED_YIELD
        assert sludge.wastage_rate == pytest.approx(4500.0 / 15.0 * sludge.total_tss / 1000.0)
        assert sludge.production == sludge.wastage_rate

    def test_observed_yield(self, aerobic_state):
        sludge = calculate_sludge_production(aerobic_state, 4500.0, 15.0, 10000.0,
                                             influent_cod=400.0, effluent_cod=45.0)
        vss_production = 4500.0 / 15.0 * sludge.total_vss / 1000.0
        assert sludge.yield_observed == pytest.approx(vss_production / 3550.0)
        assert 0.2 <= sludge.yield_observed <= 0.8

    def test_empty_reactor(self, aerobic_state):
        state = {name: 0.0 for name in aerobic_state}
        sludge = calculate_sludge_production(state, 4500.0, 15.0, 10000.0)
        assert sludge.total_tss == 0.0
        assert sludge.p_content == 0.0


class TestOxygenDemand:
    def test_aerobic_zone(self, params, aerobic_state):
        stoich, kin, _ = params
        _, process_rates = calculate_process_rates(aerobic_state, kin, stoich)
        demand = calculate_oxygen_demand(process_rates, stoich, 3000.0)
        assert demand.carbonaceous > 0.0
        assert demand.nitrogenous > 0.0
        assert demand.total == pytest.approx(demand.carbonaceous + demand.nitrogenous)
        assert demand.specific == 0.0
        assert demand.alpha == 0.8

    def test_specific_demand(self, params, aerobic_state):
        stoich, kin, _ = params
        _, process_rates = calculate_process_rates(aerobic_state, kin, stoich)
        demand = calculate_oxygen_demand(process_rates, stoich, 3000.0, cod_removed=2000.0)
        assert demand.specific == pytest.approx(demand.total / 2000.0)

    def test_nitrification_only(self, stoich_params):
        demand = calculate_oxygen_demand({'aerobic_growth_AUT': 10.0}, stoich_params, 1000.0)
        assert demand.carbonaceous == 0.0
        assert demand.nitrogenous == pytest.approx((4.57 - 0.24) / 0.24 * 10.0)

    def test_combine(self):
        demand = combine_oxygen_demand([(1.0, 2.0), (3.0, 4.0)], cod_removed=5.0)
        assert demand.carbonaceous == 4.0
        assert demand.nitrogenous == 6.0
        assert demand.total == 10.0
        assert demand.specific == pytest.approx(2.0)


class TestPhosphorusBalance:
    def test_loads(self, raw_influent, aerobic_state):
        eff = calculate_effluent_quality(aerobic_state, clarifier_efficiency=1.0)
        sludge = calculate_sludge_production(aerobic_state, 4500.0, 15.0, 10000.0)
        balance = calculate_phosphorus_balance(raw_influent, eff, sludge)
        assert balance.influent_load == pytest.approx(80.0)
        assert balance.effluent_load == pytest.approx(30.0)
        assert balance.bio_p == pytest.approx(50.0)
        assert balance.chem_p == 0.0
        assert balance.sludge_p == pytest.approx(sludge.wastage_rate * sludge.p_content / 100.0)
        assert balance.closure == pytest.approx(100.0 * (30.0 + balance.sludge_p) / 80.0)

    def test_closure_not_capped(self, raw_influent, aerobic_state):
        eff = calculate_effluent_quality(aerobic_state)
        sludge = calculate_sludge_production(aerobic_state, 4500.0, 15.0, 10000.0)
        balance = calculate_phosphorus_balance(raw_influent, eff, sludge)
        assert balance.closure > 100.0
        assert balance.bio_p == 0.0

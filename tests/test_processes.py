"""Unit tests for the ASM2d switching functions and process rates."""

import math

import numpy as np
import pytest

from ASM2d_Processes import (calculate_process_rates, classify_conditions, correct_temperature, inhibition,
                             is_aerobic, is_anaerobic, is_anoxic, monod, process_rate_array, rates_by_process,
                             saturation_inhibition)
from asm2d_params import ASM2D_PROCESS_INDEX, ASM2D_PROCESS_NAMES, DEFAULT_ASM2D_KINETIC_PARAMS


def rate(rates, name):
    return rates[ASM2D_PROCESS_INDEX[name]]


class TestSwitchingFunctions:
    def test_monod(self):
        assert monod(0.0, 2.0) == 0.0
        assert monod(2.0, 2.0) == pytest.approx(0.5)
        assert monod(1e6, 2.0) == pytest.approx(1.0, abs=1e-5)

    def test_monod_negative_substrate_counts_as_zero(self):
        assert monod(-5.0, 1.0) == 0.0

    def test_inhibition(self):
        assert inhibition(0.0, 0.2) == 1.0
        assert inhibition(0.2, 0.2) == pytest.approx(0.5)
        assert inhibition(-1.0, 0.2) == 1.0

    def test_saturation_inhibition(self):
        # full poly-P store switches storage off
        assert saturation_inhibition(0.34, 0.34, 0.02) == 0.0
        assert saturation_inhibition(0.5, 0.34, 0.02) == 0.0
        assert saturation_inhibition(0.0, 0.34, 0.02) == pytest.approx(0.34 / 0.36)

    def test_vectorised(self):
        values = monod(np.array([0.0, 1.0, 3.0]), 1.0)
        assert np.allclose(values, [0.0, 0.5, 0.75])


class TestTemperatureCorrection:
    def test_reference_temperature_is_identity(self, params):
        _, kin, temp = params
        corrected = correct_temperature(kin, 20.0, temp)
        assert corrected == kin

    def test_arrhenius(self, params):
        _, kin, temp = params
        corrected = correct_temperature(kin, 10.0, temp)
        assert corrected['mu_H'] == pytest.approx(6.0 * 1.072 ** -10)
        assert corrected['mu_AUT'] == pytest.approx(0.8 * 1.103 ** -10)
        assert corrected['mu_AUT'] < kin['mu_AUT']
        # no theta, unchanged
        assert corrected['K_F'] == kin['K_F']

    def test_input_not_mutated(self, kin_params):
        before = dict(kin_params)
        correct_temperature(kin_params, 30.0)
        assert kin_params == before

    def test_default_coefficients(self):
        corrected = correct_temperature(DEFAULT_ASM2D_KINETIC_PARAMS, 25.0)
        assert corrected['b_H'] == pytest.approx(0.4 * 1.029 ** 5)


class TestConditions:
    def test_classify(self, kin_params, aerobic_state, anoxic_state, anaerobic_state):
        assert classify_conditions(aerobic_state, kin_params) == 'aerobic'
        assert classify_conditions(anoxic_state, kin_params) == 'anoxic'
        assert classify_conditions(anaerobic_state, kin_params) == 'anaerobic'

    @pytest.mark.parametrize("S_O, S_NO, expected", [
        (0.05, 0.1, (True, False, False)),
        (0.05, 10.0, (False, True, False)),
        (2.0, 5.0, (False, False, True)),
    ])
    def test_classifiers_are_exclusive(self, S_O, S_NO, expected):
        K_O, K_NO = 0.2, 0.5
        flags = (is_anaerobic(S_O, S_NO, K_O, K_NO), is_anoxic(S_O, S_NO, K_O, K_NO), is_aerobic(S_O, K_O))
        assert flags == expected

    def test_anaerobic_boundary(self):
        assert is_anaerobic(0.19, 0.49, 0.2, 0.5)
        assert not is_anaerobic(0.2, 0.0, 0.2, 0.5)
        assert not is_anaerobic(0.0, 0.5, 0.2, 0.5)


class TestProcessRates:
    def test_shape_and_finite(self, kin_params, aerobic_state):
        rates = process_rate_array(aerobic_state, kin_params)
        assert rates.shape == (21,)
        assert np.all(np.isfinite(rates))
        assert np.all(rates >= 0.0)

    def test_precipitation_disabled(self, kin_params, aerobic_state):
        rates = process_rate_array(aerobic_state, kin_params)
        assert rate(rates, 'precipitation') == 0.0
        assert rate(rates, 'redissolution') == 0.0

    def test_lysis_rates(self, kin_params, aerobic_state):
        rates = process_rate_array(aerobic_state, kin_params)
        assert rate(rates, 'lysis_H') == pytest.approx(0.4 * 2500.0)
        assert rate(rates, 'lysis_PAO') == pytest.approx(0.2 * 800.0)
        assert rate(rates, 'lysis_PP') == pytest.approx(0.2 * 200.0)
        assert rate(rates, 'lysis_PHA') == pytest.approx(0.2 * 100.0)
        assert rate(rates, 'lysis_AUT') == pytest.approx(0.15 * 200.0)

    def test_aerobic_state_favours_aerobic_processes(self, kin_params, aerobic_state):
        rates = process_rate_array(aerobic_state, kin_params)
        assert rate(rates, 'aerobic_growth_H_SF') > rate(rates, 'anoxic_growth_H_SF')
        assert rate(rates, 'aerobic_storage_PP') > rate(rates, 'anoxic_storage_PP')
        assert rate(rates, 'aerobic_growth_AUT') > 0.0

    def test_anaerobic_state_favours_pha_storage(self, kin_params, aerobic_state, anaerobic_state):
        anaerobic = process_rate_array(anaerobic_state, kin_params)
        aerobic = process_rate_array(aerobic_state, kin_params)
        assert rate(anaerobic, 'storage_PHA') > rate(anaerobic, 'aerobic_storage_PP')
        assert rate(anaerobic, 'fermentation') > rate(aerobic, 'fermentation')
        assert rate(anaerobic, 'storage_PHA') > rate(aerobic, 'storage_PHA')

    def test_anoxic_state_denitrifies(self, kin_params, anoxic_state):
        rates = process_rate_array(anoxic_state, kin_params)
        assert rate(rates, 'anoxic_growth_H_SA') > rate(rates, 'aerobic_growth_H_SA')
        assert rate(rates, 'anoxic_storage_PP') > 0.0
        assert rate(rates, 'anoxic_growth_PAO') > 0.0

    def test_zero_biomass(self, kin_params, aerobic_state):
        state = dict(aerobic_state, X_H=0.0, X_AUT=0.0, X_PAO=0.0, X_PHA=0.0, X_PP=0.0)
        rates = process_rate_array(state, kin_params)
        assert np.all(rates == 0.0)

    def test_zero_substrate(self, kin_params, aerobic_state):
        state = dict(aerobic_state, S_F=0.0, S_A=0.0)
        rates = process_rate_array(state, kin_params)
        for name in ('aerobic_growth_H_SF', 'aerobic_growth_H_SA', 'anoxic_growth_H_SF',
                     'anoxic_growth_H_SA', 'fermentation', 'storage_PHA'):
            assert rate(rates, name) == 0.0
        assert rate(rates, 'aerobic_hydrolysis') > 0.0

    def test_zero_oxygen(self, kin_params, aerobic_state):
        state = dict(aerobic_state, S_O=0.0)
        rates = process_rate_array(state, kin_params)
        for name in ('aerobic_hydrolysis', 'aerobic_growth_H_SF', 'aerobic_growth_H_SA',
                     'aerobic_storage_PP', 'aerobic_growth_PAO', 'aerobic_growth_AUT'):
            assert rate(rates, name) == 0.0

    def test_zero_phosphate(self, kin_params, aerobic_state):
        state = dict(aerobic_state, S_PO4=0.0)
        rates = process_rate_array(state, kin_params)
        for name in ('aerobic_storage_PP', 'anoxic_storage_PP', 'aerobic_growth_PAO', 'anoxic_growth_PAO'):
            assert rate(rates, name) == 0.0

    def test_negligible_pao_switches_off_storage_ratios(self, kin_params, aerobic_state):
        state = dict(aerobic_state, X_PAO=0.05)
        rates = process_rate_array(state, kin_params)
        assert rate(rates, 'aerobic_storage_PP') == 0.0
        assert rate(rates, 'aerobic_growth_PAO') == 0.0
        assert rate(rates, 'storage_PHA') == 0.0

    def test_high_biomass_stays_finite(self, kin_params, aerobic_state):
        state = dict(aerobic_state, X_H=50000.0, X_PAO=20000.0, X_AUT=5000.0)
        rates = process_rate_array(state, kin_params)
        assert np.all(np.isfinite(rates))

    def test_negative_concentrations_count_as_zero(self, kin_params, aerobic_state):
        clamped = process_rate_array(dict(aerobic_state, S_A=0.0), kin_params)
        negative = process_rate_array(dict(aerobic_state, S_A=-3.0), kin_params)
        assert np.array_equal(clamped, negative)

    def test_dpao_off(self, kin_params, anoxic_state):
        kin = dict(kin_params, eta_NO3_PAO=0.0)
        rates = process_rate_array(anoxic_state, kin)
        assert rate(rates, 'anoxic_storage_PP') == 0.0
        assert rate(rates, 'anoxic_growth_PAO') == 0.0

    def test_vectorised_matches_single_states(self, kin_params, aerobic_state, anaerobic_state):
        columns = {name: np.array([aerobic_state[name], anaerobic_state[name]]) for name in aerobic_state}
        rates = process_rate_array(columns, kin_params)
        assert rates.shape == (2, 21)
        assert np.allclose(rates[0], process_rate_array(aerobic_state, kin_params))
        assert np.allclose(rates[1], process_rate_array(anaerobic_state, kin_params))


class TestProcessRateRecords:
    def test_records(self, params, aerobic_state):
        stoich, kin, _ = params
        rates, records = calculate_process_rates(aerobic_state, kin, stoich)
        assert [r.process for r in records] == list(ASM2D_PROCESS_NAMES)
        assert all(math.isclose(r.rate, v) for r, v in zip(records, rates))
        assert all(r.name and r.equation for r in records)

    def test_active_flags(self, kin_params, aerobic_state):
        _, records = calculate_process_rates(aerobic_state, kin_params)
        by_name = {r.process: r for r in records}
        assert by_name['lysis_H'].is_active
        assert not by_name['precipitation'].is_active

    def test_rates_by_process(self, kin_params, aerobic_state):
        rates, records = calculate_process_rates(aerobic_state, kin_params)
        lookup = rates_by_process(records)
        assert lookup['lysis_H'] == pytest.approx(rates[ASM2D_PROCESS_INDEX['lysis_H']])
        assert len(lookup) == 21

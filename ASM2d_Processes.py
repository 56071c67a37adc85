# ASM2d_Processes.py File

import logging
from dataclasses import dataclass

import numpy as np

from asm2d_params import ASM2D_PROCESS_NAMES, DEFAULT_ASM2D_TEMP_COEFFS

logger = logging.getLogger(__name__)

# Storage ratios are only defined once there is a measurable biomass to store into
RATIO_BIOMASS_THRESHOLD = 0.1  # g COD/m^3
ACTIVE_RATE_THRESHOLD = 1e-10

PROCESS_LABELS = {
    'aerobic_hydrolysis': ('Aerobic Hydrolysis',
                           'k_h * (X_S/X_H)/(K_X+X_S/X_H) * S_O/(K_O+S_O) * X_H'),
    'anoxic_hydrolysis': ('Anoxic Hydrolysis',
                          'k_h * eta_h * (X_S/X_H)/(K_X+X_S/X_H) * K_O/(K_O+S_O) * S_NO/(K_NO+S_NO) * X_H'),
    'anaerobic_hydrolysis': ('Anaerobic Hydrolysis',
                             'k_h * eta_fe * (X_S/X_H)/(K_X+X_S/X_H) * K_O/(K_O+S_O) * K_NO/(K_NO+S_NO) * X_H'),
    'aerobic_growth_H_SF': ('Aerobic Growth on S_F',
                            'mu_H * S_F/(K_F+S_F) * S_O/(K_O+S_O) * S_NH/(K_NH+S_NH) * S_ALK/(K_ALK+S_ALK) * X_H'),
    'aerobic_growth_H_SA': ('Aerobic Growth on S_A',
                            'mu_H * S_A/(K_A+S_A) * S_O/(K_O+S_O) * S_NH/(K_NH+S_NH) * S_ALK/(K_ALK+S_ALK) * X_H'),
    'anoxic_growth_H_SF': ('Anoxic Growth on S_F (Denitrification)',
                           'mu_H * eta_g * S_F/(K_F+S_F) * K_O/(K_O+S_O) * S_NO/(K_NO+S_NO) * X_H'),
    'anoxic_growth_H_SA': ('Anoxic Growth on S_A (Denitrification)',
                           'mu_H * eta_g * S_A/(K_A+S_A) * K_O/(K_O+S_O) * S_NO/(K_NO+S_NO) * X_H'),
    'fermentation': ('Fermentation',
                     'q_fe * S_F/(K_fe+S_F) * K_O/(K_O+S_O) * K_NO/(K_NO+S_NO) * X_H'),
    'lysis_H': ('Heterotroph Lysis', 'b_H * X_H'),
    'storage_PHA': ('PHA Storage (Anaerobic)',
                    'q_PHA * S_A/(K_A+S_A) * (X_PP/X_PAO)/(K_PP+X_PP/X_PAO) * K_O/(K_O+S_O) * X_PAO'),
    'aerobic_storage_PP': ('Poly-P Storage (Aerobic)',
                           'q_PP * S_O/(K_O+S_O) * S_PO4/(K_P+S_PO4) * (X_PHA/X_PAO)/(K_PHA+X_PHA/X_PAO) * sat_inhib * X_PAO'),
    'anoxic_storage_PP': ('Poly-P Storage (Anoxic dPAO)',
                          'eta_NO3_PAO * q_PP * K_O/(K_O+S_O) * S_NO/(K_NO+S_NO) * S_PO4/(K_P+S_PO4) * ... * X_PAO'),
    'aerobic_growth_PAO': ('PAO Aerobic Growth',
                           'mu_PAO * S_O/(K_O+S_O) * S_NH/(K_NH+S_NH) * S_PO4/(K_P+S_PO4) * (X_PHA/X_PAO)/(K_PHA+X_PHA/X_PAO) * X_PAO'),
    'anoxic_growth_PAO': ('PAO Anoxic Growth (dPAO)',
                          'eta_NO3_PAO * mu_PAO * K_O/(K_O+S_O) * S_NO/(K_NO+S_NO) * ... * X_PAO'),
    'lysis_PAO': ('PAO Lysis', 'b_PAO * X_PAO'),
    'lysis_PP': ('Poly-P Lysis', 'b_PP * X_PP'),
    'lysis_PHA': ('PHA Lysis', 'b_PHA * X_PHA'),
    'aerobic_growth_AUT': ('Nitrification',
                           'mu_AUT * S_NH/(K_NH+S_NH) * S_O/(K_O_A+S_O) * S_ALK/(K_ALK+S_ALK) * X_AUT'),
    'lysis_AUT': ('Autotroph Lysis', 'b_AUT * X_AUT'),
    'precipitation': ('P Precipitation', 'k_PRE * S_PO4 * X_MeOH'),
    'redissolution': ('P Redissolution', 'k_RED * X_MeP'),
}


@dataclass(frozen=True)
class ProcessRate:
    process: str
    name: str
    rate: float
    equation: str
    is_active: bool


# --- Switching functions ---

def monod(S, K):
    """Monod saturation S/(K+S). Negative S counts as zero; K + S must be > 0."""
    S = np.maximum(0.0, S)
    return S / (K + S)


def inhibition(S, K):
    """Non-competitive inhibition K/(K+S). Negative S counts as zero; K + S must be > 0."""
    S = np.maximum(0.0, S)
    return K / (K + S)


def saturation_inhibition(ratio, K_MAX, K_IPP):
    """Switches poly-P storage off as X_PP/X_PAO approaches its maximum K_MAX."""
    available = np.maximum(0.0, K_MAX - ratio)
    return available / (K_IPP + available)


def correct_temperature(kin_params, temperature, temp_coeffs=None):
    """
    Moves kinetic parameters from 20 deg C to the operating temperature with
    k(T) = k(20) * theta^(T - 20). Parameters without a theta are copied.

    Returns:
        dict: a new kinetic parameter dict; the input is left untouched.
    """
    if temp_coeffs is None:
        temp_coeffs = DEFAULT_ASM2D_TEMP_COEFFS
    corrected = dict(kin_params)
    for name, theta in temp_coeffs.items():
        if name in corrected:
            corrected[name] = kin_params[name] * theta ** (temperature - 20.0)
    logger.debug("Kinetic parameters corrected from 20 to %g deg C", temperature)
    return corrected


# --- Environmental condition classifiers (diagnostics only) ---

def is_anaerobic(S_O, S_NO, K_O, K_NO):
    return bool(S_O < K_O and S_NO < K_NO)


def is_anoxic(S_O, S_NO, K_O, K_NO):
    return bool(S_O < K_O and S_NO >= K_NO)


def is_aerobic(S_O, K_O):
    return bool(S_O >= K_O)


def classify_conditions(state, kin_params):
    """Labels a state as 'aerobic', 'anoxic' or 'anaerobic' from its S_O and S_NO."""
    S_O, S_NO = state['S_O'], state['S_NO']
    if is_aerobic(S_O, kin_params['K_O_H']):
        return 'aerobic'
    if is_anaerobic(S_O, S_NO, kin_params['K_O_H'], kin_params['K_NO']):
        return 'anaerobic'
    return 'anoxic'


# --- Process rates ---

def process_rate_array(state, kin_params):
    """
    Calculates the 21 ASM2d process rates.

    The state values may be floats or equal-length numpy arrays (one entry per
    reactor zone); the rates are evaluated elementwise in both cases.

    Args:
        state (dict): concentrations keyed by component name (e.g. 'S_F', 'X_PAO').
        kin_params (dict): kinetic parameters, already temperature corrected.

    Returns:
        np.ndarray: rates with shape (21,) for scalar states or (n, 21) for arrays.
    """

    # Unpack state variables, negative concentrations count as zero
    S_F = np.maximum(0.0, np.asarray(state['S_F'], dtype=float))    # Fermentable substrate
    S_A = np.maximum(0.0, np.asarray(state['S_A'], dtype=float))    # Fermentation products (VFA)
    S_O = np.maximum(0.0, np.asarray(state['S_O'], dtype=float))    # Oxygen
    S_NO = np.maximum(0.0, np.asarray(state['S_NO'], dtype=float))  # Nitrate and nitrite nitrogen
    S_NH = np.maximum(0.0, np.asarray(state['S_NH'], dtype=float))  # Ammonium nitrogen
    S_PO4 = np.maximum(0.0, np.asarray(state['S_PO4'], dtype=float)) # Orthophosphate
    S_ALK = np.maximum(0.0, np.asarray(state['S_ALK'], dtype=float)) # Alkalinity
    X_S = np.maximum(0.0, np.asarray(state['X_S'], dtype=float))    # Slowly biodegradable substrate
    X_H = np.maximum(0.0, np.asarray(state['X_H'], dtype=float))    # Heterotrophic biomass
    X_AUT = np.maximum(0.0, np.asarray(state['X_AUT'], dtype=float)) # Autotrophic biomass
    X_PAO = np.maximum(0.0, np.asarray(state['X_PAO'], dtype=float)) # Phosphorus accumulating organisms
    X_PHA = np.maximum(0.0, np.asarray(state['X_PHA'], dtype=float)) # Stored PHA
    X_PP = np.maximum(0.0, np.asarray(state['X_PP'], dtype=float))  # Stored poly-phosphate

    # Unpack parameters for easier use
    mu_H = kin_params['mu_H']
    K_F = kin_params['K_F']
    K_A_H = kin_params['K_A_H']
    K_O_H = kin_params['K_O_H']
    K_NO = kin_params['K_NO']
    b_H = kin_params['b_H']
    eta_g = kin_params['eta_g']
    eta_h = kin_params['eta_h']
    eta_fe = kin_params['eta_fe']
    q_fe = kin_params['q_fe']
    K_fe = kin_params['K_fe']
    q_PHA = kin_params['q_PHA']
    q_PP = kin_params['q_PP']
    mu_PAO = kin_params['mu_PAO']
    b_PAO = kin_params['b_PAO']
    b_PP = kin_params['b_PP']
    b_PHA = kin_params['b_PHA']
    K_A_PAO = kin_params['K_A_PAO']
    K_P = kin_params['K_P']
    K_PP = kin_params['K_PP']
    K_PHA = kin_params['K_PHA']
    K_MAX = kin_params['K_MAX']
    K_IPP = kin_params['K_IPP']
    K_NH_PAO = kin_params['K_NH_PAO']
    K_O_PAO = kin_params['K_O_PAO']
    K_ALK = kin_params['K_ALK']
    eta_NO3_PAO = kin_params['eta_NO3_PAO']
    mu_AUT = kin_params['mu_AUT']
    K_NH = kin_params['K_NH']
    K_O_A = kin_params['K_O_A']
    b_AUT = kin_params['b_AUT']
    k_h = kin_params['k_h']
    K_X = kin_params['K_X']

    # Storage ratios, zero while the carrier biomass is negligible
    XS_XH = np.where(X_H > RATIO_BIOMASS_THRESHOLD,
                     X_S / np.maximum(X_H, RATIO_BIOMASS_THRESHOLD), 0.0)
    XPHA_XPAO = np.where(X_PAO > RATIO_BIOMASS_THRESHOLD,
                         X_PHA / np.maximum(X_PAO, RATIO_BIOMASS_THRESHOLD), 0.0)
    XPP_XPAO = np.where(X_PAO > RATIO_BIOMASS_THRESHOLD,
                        X_PP / np.maximum(X_PAO, RATIO_BIOMASS_THRESHOLD), 0.0)

    # Common switching terms
    M_SO = monod(S_O, K_O_H)
    I_SO = inhibition(S_O, K_O_H)
    M_SNO = monod(S_NO, K_NO)
    I_SNO = inhibition(S_NO, K_NO)
    M_SNH = monod(S_NH, K_NH)
    M_SALK = monod(S_ALK, K_ALK)
    M_SPO4 = monod(S_PO4, K_P)
    M_SO_PAO = monod(S_O, K_O_PAO)
    I_SO_PAO = inhibition(S_O, K_O_PAO)
    M_SNH_PAO = monod(S_NH, K_NH_PAO)
    M_XPHA = monod(XPHA_XPAO, K_PHA)
    M_XPP = monod(XPP_XPAO, K_PP)
    I_XPP_sat = saturation_inhibition(XPP_XPAO, K_MAX, K_IPP)

    # --- Process Rate Calculations ---

    # Processes 1-3: Hydrolysis of X_S, the electron acceptor sets the efficiency
    hydrolysis = k_h * monod(XS_XH, K_X) * X_H
    rho_1 = hydrolysis * M_SO
    rho_2 = hydrolysis * eta_h * I_SO * M_SNO
    rho_3 = hydrolysis * eta_fe * I_SO * I_SNO

    # Processes 4-5: Aerobic growth of heterotrophs on S_F and S_A
    rho_4 = mu_H * monod(S_F, K_F) * M_SO * M_SNH * M_SALK * X_H
    rho_5 = mu_H * monod(S_A, K_A_H) * M_SO * M_SNH * M_SALK * X_H

    # Processes 6-7: Anoxic growth of heterotrophs (denitrification)
    rho_6 = mu_H * eta_g * monod(S_F, K_F) * I_SO * M_SNO * M_SNH * M_SALK * X_H
    rho_7 = mu_H * eta_g * monod(S_A, K_A_H) * I_SO * M_SNO * M_SNH * M_SALK * X_H

    # Process 8: Fermentation of S_F to S_A
    rho_8 = q_fe * monod(S_F, K_fe) * I_SO * I_SNO * M_SALK * X_H

    # Process 9: Lysis of heterotrophs
    rho_9 = b_H * X_H

    # Process 10: Storage of PHA, fuelled by poly-P hydrolysis
    rho_10 = q_PHA * monod(S_A, K_A_PAO) * M_SALK * M_XPP * I_SO_PAO * I_SNO * X_PAO

    # Processes 11-12: Storage of poly-P with oxygen or nitrate
    rho_11 = q_PP * M_SO_PAO * M_SPO4 * M_SALK * M_XPHA * I_XPP_sat * X_PAO
    rho_12 = eta_NO3_PAO * q_PP * I_SO_PAO * M_SNO * M_SPO4 * M_SALK * M_XPHA * I_XPP_sat * X_PAO

    # Processes 13-14: Growth of PAO on stored PHA
    rho_13 = mu_PAO * M_SO_PAO * M_SNH_PAO * M_SPO4 * M_SALK * M_XPHA * X_PAO
    rho_14 = eta_NO3_PAO * mu_PAO * I_SO_PAO * M_SNO * M_SNH_PAO * M_SPO4 * M_SALK * M_XPHA * X_PAO

    # Processes 15-17: Lysis of PAO and their storage products
    rho_15 = b_PAO * X_PAO
    rho_16 = b_PP * X_PP
    rho_17 = b_PHA * X_PHA

    # Process 18: Nitrification
    rho_18 = mu_AUT * M_SNH * monod(S_O, K_O_A) * M_SALK * X_AUT

    # Process 19: Lysis of autotrophs
    rho_19 = b_AUT * X_AUT

    # Processes 20-21: Chemical precipitation needs metal hydroxide states, not modelled
    rho_20 = np.zeros_like(X_H)
    rho_21 = np.zeros_like(X_H)

    rates = np.stack(np.broadcast_arrays(
        rho_1, rho_2, rho_3, rho_4, rho_5, rho_6, rho_7, rho_8, rho_9, rho_10, rho_11,
        rho_12, rho_13, rho_14, rho_15, rho_16, rho_17, rho_18, rho_19, rho_20, rho_21,
    ), axis=-1)
    return rates


def calculate_process_rates(state, kin_params, stoich_params=None):
    """
    Calculates the 21 ASM2d process rates for a single reactor state.

    Rates depend only on the state and the kinetics; stoich_params is accepted
    so the call mirrors the derivative functions, and is not used.

    Args:
        state (dict): concentrations of the 18 state variables.
        kin_params (dict): kinetic parameters, already temperature corrected.

    Returns:
        tuple: (rates, process_rates) where rates is a numpy array of the 21
               rates [rho_1, ..., rho_21] and process_rates a list of
               ProcessRate records in the same order.
    """
    rates = process_rate_array(state, kin_params)
    process_rates = []
    for name, rate in zip(ASM2D_PROCESS_NAMES, rates):
        label, equation = PROCESS_LABELS[name]
        process_rates.append(ProcessRate(
            process=name,
            name=label,
            rate=float(rate),
            equation=equation,
            is_active=bool(rate > ACTIVE_RATE_THRESHOLD),
        ))
    return rates, process_rates


def rates_by_process(process_rates):
    """Maps process name -> rate for a list of ProcessRate records."""
    return {pr.process: pr.rate for pr in process_rates}

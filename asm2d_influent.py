# asm2d_influent.py File

import logging
from dataclasses import fields

import numpy as np
import pandas as pd
from scipy.interpolate import interp1d

from asm2d_params import (ASM2D_STATE_ORDER, DEFAULT_DOMESTIC_COD_FRACTIONATION,
                          DEFAULT_N_FRACTIONATION, DEFAULT_P_FRACTIONATION,
                          ConventionalInfluent)

logger = logging.getLogger(__name__)

# mg CaCO3/L to the S_ALK units carried in the state
ALKALINITY_TO_SALK = 0.01

INFLUENT_FILE_COLUMNS = ['time', 'flow_rate', 'COD', 'BOD5', 'TSS', 'TKN', 'NH4N', 'TP', 'alkalinity']


def fractionate_influent(conventional, cod_frac=DEFAULT_DOMESTIC_COD_FRACTIONATION,
                         n_frac=DEFAULT_N_FRACTIONATION, p_frac=DEFAULT_P_FRACTIONATION):
    """
    Converts conventional influent measurements into the 18 ASM2d state variables.

    COD is split into S_I, S_F, S_A, X_I and X_S. A measured VFA replaces the
    S_A fraction and S_F takes the rest of the readily biodegradable COD, so the
    COD total is conserved. TKN is split into S_NH (the measured ammonium) and
    organic N shared between S_ND and X_ND. The influent carries no biomass,
    oxygen or nitrate.

    Args:
        conventional (ConventionalInfluent or dict): measured influent.
        cod_frac, n_frac, p_frac: fractionation records.

    Returns:
        dict: influent state keyed by component name.
    """
    if not isinstance(conventional, ConventionalInfluent):
        conventional = ConventionalInfluent.from_record(conventional)
    COD = conventional.COD

    # --- COD ---
    S_I = COD * cod_frac.f_SI
    X_I = COD * cod_frac.f_XI
    X_S = COD * cod_frac.f_XS
    if conventional.VFA is not None:
        S_A = conventional.VFA
        S_F = COD * (cod_frac.f_SF + cod_frac.f_SA) - S_A
        if S_F < 0.0:
            # VFA above the readily biodegradable share is taken from X_S
            X_S = max(0.0, X_S + S_F)
            S_F = 0.0
    else:
        S_A = COD * cod_frac.f_SA
        S_F = COD * cod_frac.f_SF

    # --- Nitrogen ---
    organic_N = max(0.0, conventional.TKN - conventional.NH4N)
    S_NH = conventional.NH4N
    S_ND = organic_N * n_frac.f_SND / (n_frac.f_SND + n_frac.f_XND)
    X_ND = organic_N * n_frac.f_XND / (n_frac.f_SND + n_frac.f_XND)

    # --- Phosphorus ---
    if conventional.PO4P is not None:
        S_PO4 = conventional.PO4P
    else:
        S_PO4 = conventional.TP * p_frac.f_SPO4

    return {
        'S_I': S_I, 'S_F': S_F, 'S_A': S_A, 'S_O': 0.0, 'S_NO': 0.0, 'S_NH': S_NH,
        'S_ND': S_ND, 'S_PO4': S_PO4, 'S_ALK': conventional.alkalinity * ALKALINITY_TO_SALK,
        'X_I': X_I, 'X_S': X_S, 'X_H': 0.0, 'X_AUT': 0.0, 'X_PAO': 0.0, 'X_PHA': 0.0,
        'X_PP': 0.0, 'X_P': 0.0, 'X_ND': X_ND,
    }


def get_constant_influent_data(influent_state, flow_rate):
    """
    Constant influent for stabilisation runs.
    Returns a function f(t)->(Q0, Zin) with constant values.
    """
    Q0 = float(flow_rate)
    Zin = np.array([influent_state[name] for name in ASM2D_STATE_ORDER], dtype=float)

    def influent_data_function(t):
        return Q0, Zin

    return influent_data_function


def read_influent_file(file_path, sep=','):
    """
    Loads an influent time series, sorted by time.

    The file needs the columns time (days), flow_rate, COD, BOD5, TSS, TKN,
    NH4N, TP and alkalinity; PO4P, VFA and VSS are used when present.
    """
    df = pd.read_csv(file_path, sep=sep)
    missing = [c for c in INFLUENT_FILE_COLUMNS if c not in df.columns]
    if missing:
        raise ValueError(f"Influent file {file_path} is missing columns: {', '.join(missing)}")
    if df.empty:
        raise ValueError(f"Influent file {file_path} holds no samples")
    return df.sort_values('time').reset_index(drop=True)


def flow_weighted_influent(df):
    """
    Flow-weighted mean of an influent time series as a ConventionalInfluent;
    the flow itself is the plain mean. Optional columns are averaged only
    when they are complete.
    """
    Q = df['flow_rate'].to_numpy(dtype=float)
    record = {'flow_rate': float(Q.mean())}
    for f in fields(ConventionalInfluent):
        name = f.name
        if name == 'flow_rate' or name not in df.columns:
            continue
        values = df[name].to_numpy(dtype=float)
        if np.isnan(values).any():
            continue
        record[name] = float(np.sum(Q * values) / np.sum(Q))
    return ConventionalInfluent.from_record(record)


def create_influent_data_function(file_path, cod_frac=DEFAULT_DOMESTIC_COD_FRACTIONATION,
                                  n_frac=DEFAULT_N_FRACTIONATION, p_frac=DEFAULT_P_FRACTIONATION,
                                  sep=','):
    """
    Reads a time series of conventional influent measurements and returns a
    function that provides the fractionated influent at any time 't' via
    interpolation.

    Args:
        file_path (str): path or buffer, see read_influent_file for the columns.

    Returns:
        function: takes time 't' (days) and returns the flow rate (m^3/d) and
                  a numpy array of the 18 influent concentrations.
    """
    df = read_influent_file(file_path, sep=sep)

    # Fractionate every measurement row into the model state
    concentration_values = np.empty((len(df), len(ASM2D_STATE_ORDER)))
    for i, record in enumerate(df.drop(columns='time').to_dict('records')):
        record = {k: (None if pd.isna(v) else v) for k, v in record.items()}
        state = fractionate_influent(ConventionalInfluent.from_record(record), cod_frac, n_frac, p_frac)
        concentration_values[i, :] = [state[name] for name in ASM2D_STATE_ORDER]

    time_points = df['time'].to_numpy(dtype=float)
    flow_rate_values = df['flow_rate'].to_numpy(dtype=float)
    logger.info("Loaded %d influent samples from %s (%.2f to %.2f d)",
                len(df), file_path, time_points[0], time_points[-1])
    if len(df) == 1:
        return get_constant_influent_data(dict(zip(ASM2D_STATE_ORDER, concentration_values[0])),
                                          flow_rate_values[0])

    # 'bounds_error=False' holds the first/last sample outside the data range.
    flow_interpolator = interp1d(time_points, flow_rate_values, kind='linear',
                                 bounds_error=False, fill_value=(flow_rate_values[0], flow_rate_values[-1]))
    conc_interpolator = interp1d(time_points, concentration_values, kind='linear', axis=0,
                                 bounds_error=False,
                                 fill_value=(concentration_values[0], concentration_values[-1]))

    def influent_data_function(t):
        return float(flow_interpolator(t)), conc_interpolator(t)

    return influent_data_function

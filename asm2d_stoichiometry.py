# asm2d_stoichiometry.py File

from functools import lru_cache

import numpy as np

from asm2d_params import ASM2D_PROCESS_INDEX, NUM_COMPONENTS, NUM_PROCESSES

# Oxygen equivalents of nitrate: 2.86 g COD/g N when reduced to N2, 4.57 when formed from NH4
NO3_COD_DENITRIFICATION = 2.86
NO3_COD_NITRIFICATION = 4.57

# Rows whose electron acceptor or N2 sink leaves the COD / N balance open
COD_OPEN_PROCESSES = ('aerobic_growth_AUT',)
N_OPEN_PROCESSES = ('anoxic_growth_H_SF', 'anoxic_growth_H_SA', 'anoxic_storage_PP', 'anoxic_growth_PAO')


def build_stoichiometric_matrix(stoich_params):
    """
    Builds the ASM2d stoichiometric matrix nu, one row per process.

    Args:
        stoich_params (dict): yields and composition ratios (see get_asm2d_params).

    Returns:
        np.ndarray: new (21, 18) array; dC/dt = rates @ matrix.
    """
    Y_H = stoich_params['Y_H']
    Y_AUT = stoich_params['Y_AUT']
    Y_PAO = stoich_params['Y_PAO']
    Y_PO4 = stoich_params['Y_PO4']
    Y_PHA = stoich_params['Y_PHA']
    f_XI = stoich_params['f_XI']
    i_XB = stoich_params['i_XB']
    i_XP = stoich_params['i_XP']
    i_PB = stoich_params['i_PB']
    i_PP = stoich_params['i_PP']
    f_SI = stoich_params['f_SI']
    i_NXS = stoich_params['i_NXS']

    # Recurring coefficients
    O_H = (1 - Y_H) / Y_H                          # O2 used per unit X_H grown
    NO_H = O_H / NO3_COD_DENITRIFICATION           # NO3-N used per unit X_H grown
    O_PAO = (1 - Y_PAO) / Y_PAO
    NO_PAO = O_PAO / NO3_COD_DENITRIFICATION
    ALK_G = -i_XB / 14                             # NH4 uptake into biomass
    ALK_NO_H = NO_H / 14 - i_XB / 14
    ALK_NO_PAO = NO_PAO / 14 - i_XB / 14
    ALK_PP_NO = Y_PHA / (14 * NO3_COD_DENITRIFICATION) - 1 / 31
    O_AUT = (NO3_COD_NITRIFICATION - Y_AUT) / Y_AUT
    ALK_AUT = -i_XB / 14 - 1 / (7 * Y_AUT)
    P_LYS = i_PB - f_XI * i_PP                     # P freed by lysis, net of the inert fraction
    N_LYS = i_XB - f_XI * i_XP                     # N freed by lysis, net of the inert fraction

    stoichiometric_matrix = np.array([
        # S_I,  S_F,     S_A,     S_O,     S_NO,               S_NH,            S_ND,  S_PO4,  S_ALK,       X_I,  X_S,     X_H, X_AUT, X_PAO, X_PHA,     X_PP,   X_P, X_ND
        [f_SI,  1-f_SI,  0,       0,       0,                  0,               i_NXS, 0,      0,           0,    -1,      0,   0,     0,     0,         0,      0,   -i_NXS],  # ρ1  aerobic hydrolysis
        [f_SI,  1-f_SI,  0,       0,       0,                  0,               i_NXS, 0,      0,           0,    -1,      0,   0,     0,     0,         0,      0,   -i_NXS],  # ρ2  anoxic hydrolysis
        [f_SI,  1-f_SI,  0,       0,       0,                  0,               i_NXS, 0,      0,           0,    -1,      0,   0,     0,     0,         0,      0,   -i_NXS],  # ρ3  anaerobic hydrolysis
        [0,     -1/Y_H,  0,       -O_H,    0,                  -i_XB,           0,     -i_PB,  ALK_G,       0,    0,       1,   0,     0,     0,         0,      0,   0],       # ρ4  aerobic growth on S_F
        [0,     0,       -1/Y_H,  -O_H,    0,                  -i_XB,           0,     -i_PB,  ALK_G,       0,    0,       1,   0,     0,     0,         0,      0,   0],       # ρ5  aerobic growth on S_A
        [0,     -1/Y_H,  0,       0,       -NO_H,              -i_XB,           0,     -i_PB,  ALK_NO_H,    0,    0,       1,   0,     0,     0,         0,      0,   0],       # ρ6  anoxic growth on S_F
        [0,     0,       -1/Y_H,  0,       -NO_H,              -i_XB,           0,     -i_PB,  ALK_NO_H,    0,    0,       1,   0,     0,     0,         0,      0,   0],       # ρ7  anoxic growth on S_A
        [0,     -1,      1,       0,       0,                  0,               0,     0,      1/64,        0,    0,       0,   0,     0,     0,         0,      0,   0],       # ρ8  fermentation
        [0,     0,       0,       0,       0,                  0,               0,     P_LYS,  0,           f_XI, 1-f_XI,  -1,  0,     0,     0,         0,      0,   N_LYS],   # ρ9  lysis of X_H
        [0,     0,       -1,      0,       0,                  0,               0,     Y_PO4,  Y_PO4/31,    0,    0,       0,   0,     0,     1,         -Y_PO4, 0,   0],       # ρ10 storage of PHA
        [0,     0,       0,       -Y_PHA,  0,                  0,               0,     -1,     -1/31,       0,    0,       0,   0,     0,     -Y_PHA,    1,      0,   0],       # ρ11 aerobic storage of X_PP
        [0,     0,       0,       0,       -Y_PHA/NO3_COD_DENITRIFICATION, 0,   0,     -1,     ALK_PP_NO,   0,    0,       0,   0,     0,     -Y_PHA,    1,      0,   0],       # ρ12 anoxic storage of X_PP
        [0,     0,       0,       -O_PAO,  0,                  -i_XB,           0,     -i_PB,  ALK_G,       0,    0,       0,   0,     1,     -1/Y_PAO,  0,      0,   0],       # ρ13 aerobic growth of X_PAO
        [0,     0,       0,       0,       -NO_PAO,            -i_XB,           0,     -i_PB,  ALK_NO_PAO,  0,    0,       0,   0,     1,     -1/Y_PAO,  0,      0,   0],       # ρ14 anoxic growth of X_PAO
        [0,     0,       0,       0,       0,                  0,               0,     P_LYS,  0,           f_XI, 1-f_XI,  0,   0,     -1,    0,         0,      0,   N_LYS],   # ρ15 lysis of X_PAO
        [0,     0,       0,       0,       0,                  0,               0,     1,      1/31,        0,    0,       0,   0,     0,     0,         -1,     0,   0],       # ρ16 lysis of X_PP
        [0,     0,       1,       0,       0,                  0,               0,     0,      0,           0,    0,       0,   0,     0,     -1,        0,      0,   0],       # ρ17 lysis of X_PHA
        [0,     0,       0,       -O_AUT,  1/Y_AUT,            -i_XB-1/Y_AUT,   0,     -i_PB,  ALK_AUT,     0,    0,       0,   1,     0,     0,         0,      0,   0],       # ρ18 nitrification
        [0,     0,       0,       0,       0,                  0,               0,     P_LYS,  0,           f_XI, 1-f_XI,  0,   -1,    0,     0,         0,      0,   N_LYS],   # ρ19 lysis of X_AUT
        [0] * NUM_COMPONENTS,                                                                                                                                                 # ρ20 precipitation (no metal states)
        [0] * NUM_COMPONENTS,                                                                                                                                                 # ρ21 redissolution (no metal states)
    ], dtype=float)
    return stoichiometric_matrix


def get_stoichiometric_coefficient(matrix, process_index, component_index):
    """
    Coefficient of one component in one process row.

    Raises:
        IndexError: if either index falls outside the 21 x 18 matrix.
    """
    if not 0 <= process_index < NUM_PROCESSES:
        raise IndexError(f"process index {process_index} out of range [0, {NUM_PROCESSES})")
    if not 0 <= component_index < NUM_COMPONENTS:
        raise IndexError(f"component index {component_index} out of range [0, {NUM_COMPONENTS})")
    return float(matrix[process_index][component_index])


@lru_cache(maxsize=32)
def _cached_matrix_parts(stoich_items):
    matrix = build_stoichiometric_matrix(dict(stoich_items))
    production = np.maximum(matrix, 0.0)
    consumption = np.maximum(-matrix, 0.0)
    for arr in (matrix, production, consumption):
        arr.setflags(write=False)
    return matrix, production, consumption


def stoichiometric_matrix_parts(stoich_params):
    """
    Read-only (matrix, production, consumption) for a parameter set, where
    production and consumption hold the positive and negated negative
    coefficients. Built once per distinct parameter set.
    """
    return _cached_matrix_parts(tuple(sorted(stoich_params.items())))


# --- Continuity checks ---

def composition_matrix(stoich_params):
    """
    COD, N and P content of one unit of every state variable, shape (18, 3).
    Electron acceptors carry negative COD (S_O -1, S_NO -2.86).
    """
    i_XB = stoich_params['i_XB']
    i_XP = stoich_params['i_XP']
    i_PB = stoich_params['i_PB']
    i_PP = stoich_params['i_PP']

    return np.array([
        #  COD,                       N,     P
        [1.0,                       0.0,   0.0],   # S_I
        [1.0,                       0.0,   0.0],   # S_F
        [1.0,                       0.0,   0.0],   # S_A
        [-1.0,                      0.0,   0.0],   # S_O
        [-NO3_COD_DENITRIFICATION,  1.0,   0.0],   # S_NO
        [0.0,                       1.0,   0.0],   # S_NH
        [0.0,                       1.0,   0.0],   # S_ND
        [0.0,                       0.0,   1.0],   # S_PO4
        [0.0,                       0.0,   0.0],   # S_ALK
        [1.0,                       i_XP,  i_PP],  # X_I
        [1.0,                       0.0,   0.0],   # X_S
        [1.0,                       i_XB,  i_PB],  # X_H
        [1.0,                       i_XB,  i_PB],  # X_AUT
        [1.0,                       i_XB,  i_PB],  # X_PAO
        [1.0,                       0.0,   0.0],   # X_PHA
        [0.0,                       0.0,   1.0],   # X_PP
        [1.0,                       i_XP,  i_PP],  # X_P
        [0.0,                       1.0,   0.0],   # X_ND
    ])


def continuity_residuals(matrix, stoich_params):
    """
    Net COD, N and P produced by one unit of every process, shape (21, 3).
    Zero for every row except those listed in COD_OPEN_PROCESSES (COD) and
    N_OPEN_PROCESSES (N).
    """
    return np.asarray(matrix, dtype=float) @ composition_matrix(stoich_params)


def closed_process_mask(element):
    """Boolean mask of the rows expected to conserve 'COD', 'N' or 'P'."""
    open_rows = {'COD': COD_OPEN_PROCESSES, 'N': N_OPEN_PROCESSES, 'P': ()}[element]
    mask = np.ones(NUM_PROCESSES, dtype=bool)
    for name in open_rows:
        mask[ASM2D_PROCESS_INDEX[name]] = False
    return mask

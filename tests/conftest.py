"""Shared states, influent and parameters for the ASM2d tests."""

import pytest

from asm2d_params import get_asm2d_params

TYPICAL_AEROBIC_STATE = {
    'S_I': 30.0, 'S_F': 5.0, 'S_A': 10.0, 'S_O': 2.0, 'S_NO': 5.0, 'S_NH': 5.0,
    'S_ND': 2.0, 'S_PO4': 3.0, 'S_ALK': 5.0,
    'X_I': 1000.0, 'X_S': 100.0, 'X_H': 2500.0, 'X_AUT': 200.0, 'X_PAO': 800.0,
    'X_PHA': 100.0, 'X_PP': 200.0, 'X_P': 500.0, 'X_ND': 10.0,
}

TYPICAL_ANAEROBIC_STATE = dict(TYPICAL_AEROBIC_STATE, S_O=0.05, S_NO=0.1, S_A=50.0, S_PO4=10.0)

TYPICAL_ANOXIC_STATE = dict(TYPICAL_AEROBIC_STATE, S_O=0.05, S_NO=10.0, S_A=20.0)

TYPICAL_INFLUENT = {
    'flow_rate': 10000.0, 'COD': 400.0, 'BOD5': 200.0, 'TSS': 200.0, 'VSS': 160.0,
    'TKN': 40.0, 'NH4N': 25.0, 'TP': 8.0, 'PO4P': 6.0, 'VFA': 30.0, 'alkalinity': 250.0,
}


@pytest.fixture
def params():
    return get_asm2d_params()


@pytest.fixture
def stoich_params(params):
    return params[0]


@pytest.fixture
def kin_params(params):
    return params[1]


@pytest.fixture
def aerobic_state():
    return dict(TYPICAL_AEROBIC_STATE)


@pytest.fixture
def anaerobic_state():
    return dict(TYPICAL_ANAEROBIC_STATE)


@pytest.fixture
def anoxic_state():
    return dict(TYPICAL_ANOXIC_STATE)


@pytest.fixture
def typical_influent():
    return dict(TYPICAL_INFLUENT)

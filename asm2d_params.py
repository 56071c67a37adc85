# asm2d_params.py File

import math
from dataclasses import dataclass, field, fields
from types import MappingProxyType

# 18 ASM2d state variables in the order used by every state array in the project
ASM2D_STATE_ORDER = (
    'S_I', 'S_F', 'S_A', 'S_O', 'S_NO', 'S_NH', 'S_ND', 'S_PO4', 'S_ALK',
    'X_I', 'X_S', 'X_H', 'X_AUT', 'X_PAO', 'X_PHA', 'X_PP', 'X_P', 'X_ND',
)
ASM2D_COMPONENT_INDEX = MappingProxyType({name: i for i, name in enumerate(ASM2D_STATE_ORDER)})
NUM_COMPONENTS = len(ASM2D_STATE_ORDER)

# indices: [0..8] are solubles, [9..17] particulates; X_PP and X_ND carry no COD
particulate_idx = [9, 10, 11, 12, 13, 14, 15, 16, 17]
particulate_cod_idx = [9, 10, 11, 12, 13, 14, 16]  # X_I, X_S, X_H, X_AUT, X_PAO, X_PHA, X_P

ASM2D_PROCESS_NAMES = (
    'aerobic_hydrolysis',
    'anoxic_hydrolysis',
    'anaerobic_hydrolysis',
    'aerobic_growth_H_SF',
    'aerobic_growth_H_SA',
    'anoxic_growth_H_SF',
    'anoxic_growth_H_SA',
    'fermentation',
    'lysis_H',
    'storage_PHA',
    'aerobic_storage_PP',
    'anoxic_storage_PP',
    'aerobic_growth_PAO',
    'anoxic_growth_PAO',
    'lysis_PAO',
    'lysis_PP',
    'lysis_PHA',
    'aerobic_growth_AUT',
    'lysis_AUT',
    'precipitation',
    'redissolution',
)
ASM2D_PROCESS_INDEX = MappingProxyType({name: i for i, name in enumerate(ASM2D_PROCESS_NAMES)})
NUM_PROCESSES = len(ASM2D_PROCESS_NAMES)

ZONE_TYPES = ('anaerobic', 'anoxic', 'aerobic')

# Gain of the DO control loop holding S_O at the zone set point (1/d)
DEFAULT_KLA = 5000.0

DEFAULT_ASM2D_KINETIC_PARAMS = MappingProxyType({
    # Heterotrophs
    'mu_H': 6.0,        # Max growth rate of X_H (1/d)
    'K_F': 20.0,        # Half-saturation for S_F (g COD/m^3)
    'K_A_H': 20.0,      # Half-saturation for S_A, heterotrophs (g COD/m^3)
    'K_O_H': 0.2,       # Oxygen half-saturation (g O2/m^3)
    'K_NO': 0.5,        # Nitrate half-saturation (g N/m^3)
    'b_H': 0.4,         # Lysis rate of X_H (1/d)
    'eta_g': 0.8,       # Anoxic growth reduction factor
    'eta_h': 0.4,       # Anoxic hydrolysis reduction factor
    'eta_fe': 0.4,      # Anaerobic hydrolysis reduction factor
    # Fermentation
    'q_fe': 3.0,        # Max fermentation rate (1/d)
    'K_fe': 4.0,        # Half-saturation for fermentation (g COD/m^3)
    # Phosphorus accumulating organisms
    'q_PHA': 3.0,       # PHA storage rate (1/d)
    'q_PP': 1.5,        # Poly-P storage rate (1/d)
    'mu_PAO': 1.0,      # Max growth rate of X_PAO (1/d)
    'b_PAO': 0.2,       # Lysis rate of X_PAO (1/d)
    'b_PP': 0.2,        # Lysis rate of X_PP (1/d)
    'b_PHA': 0.2,       # Lysis rate of X_PHA (1/d)
    'K_A_PAO': 4.0,     # Half-saturation for S_A, PAO (g COD/m^3)
    'K_P': 0.2,         # Half-saturation for S_PO4 (g P/m^3)
    'K_PP': 0.01,       # Half-saturation for X_PP/X_PAO
    'K_PHA': 0.01,      # Half-saturation for X_PHA/X_PAO
    'K_MAX': 0.34,      # Max ratio X_PP/X_PAO
    'K_IPP': 0.02,      # Inhibition constant for X_PP/X_PAO
    'K_NH_PAO': 0.05,   # Ammonium half-saturation, PAO (g N/m^3)
    'K_O_PAO': 0.2,     # Oxygen half-saturation, PAO (g O2/m^3)
    'K_ALK': 0.1,       # Alkalinity half-saturation (mol HCO3/m^3)
    'eta_NO3_PAO': 0.6, # Anoxic reduction factor for PAO
    # Autotrophs
    'mu_AUT': 0.8,      # Max growth rate of X_AUT (1/d)
    'K_NH': 1.0,        # Ammonium half-saturation (g N/m^3)
    'K_O_A': 0.4,       # Oxygen half-saturation, autotrophs (g O2/m^3)
    'b_AUT': 0.15,      # Lysis rate of X_AUT (1/d)
    # Hydrolysis
    'k_h': 3.0,         # Hydrolysis rate constant (1/d)
    'K_X': 0.1,         # Half-saturation for X_S/X_H
    # Chemical precipitation
    'k_PRE': 1.0,       # Precipitation rate constant (m^3/(g Fe(OH)3 d))
    'k_RED': 0.6,       # Redissolution rate constant (1/d)
})

DEFAULT_ASM2D_STOICH_PARAMS = MappingProxyType({
    'Y_H': 0.625,    # g COD/g COD
    'Y_AUT': 0.24,   # g COD/g N
    'Y_PAO': 0.625,  # g COD/g COD
    'Y_PO4': 0.4,    # g P released per g COD of PHA stored
    'Y_PHA': 0.2,    # g COD of PHA per g P taken up as poly-P
    'f_XI': 0.1,     # inert fraction of lysed biomass
    'i_XB': 0.086,   # g N/g COD in biomass
    'i_XP': 0.06,    # g N/g COD in inert particulates
    'i_PB': 0.02,    # g P/g COD in biomass
    'i_PP': 0.01,    # g P/g COD in inert particulates
    'f_SI': 0.0,     # soluble inert fraction of hydrolysis products
    'i_NXS': 0.04,   # g N released as S_ND per g COD of X_S hydrolysed
})

# Arrhenius coefficients, k(T) = k(20) * theta^(T - 20)
DEFAULT_ASM2D_TEMP_COEFFS = MappingProxyType({
    'mu_H': 1.072,
    'b_H': 1.029,
    'q_PHA': 1.041,
    'q_PP': 1.041,
    'mu_PAO': 1.041,
    'b_PAO': 1.029,
    'b_PP': 1.029,
    'b_PHA': 1.029,
    'mu_AUT': 1.103,
    'b_AUT': 1.029,
    'k_h': 1.041,
    'q_fe': 1.029,
})

DEFAULT_ASM2D_INITIAL_STATE = MappingProxyType({
    'S_I': 30.0, 'S_F': 5.0, 'S_A': 5.0, 'S_O': 2.0, 'S_NO': 5.0, 'S_NH': 2.0,
    'S_ND': 1.0, 'S_PO4': 2.0, 'S_ALK': 5.0,
    'X_I': 1000.0, 'X_S': 100.0, 'X_H': 2000.0, 'X_AUT': 200.0, 'X_PAO': 500.0,
    'X_PHA': 50.0, 'X_PP': 100.0, 'X_P': 500.0, 'X_ND': 10.0,
})


def get_asm2d_params():
    """
    Returns fresh copies of the stoichiometric and kinetic parameters of the
    ASM2d model at the 20 deg C reference temperature, plus the Arrhenius
    coefficients used to move the kinetics to another temperature.

    Returns:
        tuple: (stoich_params, kin_params, temp_coeffs), all plain dicts.
    """
    return (dict(DEFAULT_ASM2D_STOICH_PARAMS),
            dict(DEFAULT_ASM2D_KINETIC_PARAMS),
            dict(DEFAULT_ASM2D_TEMP_COEFFS))


def get_initial_state():
    """Fresh copy of the default reactor start-up state."""
    return dict(DEFAULT_ASM2D_INITIAL_STATE)


# --- Influent records ---

@dataclass(frozen=True)
class ConventionalInfluent:
    """Conventional influent measurements (mg/L, flow in m^3/d, alkalinity as mg CaCO3/L)."""

    flow_rate: float
    COD: float
    BOD5: float
    TSS: float
    TKN: float
    NH4N: float
    TP: float
    alkalinity: float
    VSS: float = None
    PO4P: float = None
    VFA: float = None

    @classmethod
    def from_record(cls, record):
        """
        Builds a validated influent from a plain mapping.

        Raises:
            ValueError: if required fields are missing or any value is not numeric.
        """
        missing, invalid, values = [], [], {}
        for f in fields(cls):
            value = record.get(f.name)
            if value is None:
                if f.default is None:
                    continue
                missing.append(f.name)
                continue
            if isinstance(value, bool):
                invalid.append(f.name)
                continue
            try:
                number = float(value)
            except (TypeError, ValueError):
                invalid.append(f.name)
                continue
            if not math.isfinite(number):
                invalid.append(f.name)
                continue
            values[f.name] = number
        if missing or invalid:
            problems = []
            if missing:
                problems.append(f"missing fields: {', '.join(missing)}")
            if invalid:
                problems.append(f"non-numeric fields: {', '.join(invalid)}")
            raise ValueError(f"Invalid influent record ({'; '.join(problems)})")
        return cls(**values)


# Medium-strength domestic sewage used when no influent is supplied
DEFAULT_DOMESTIC_INFLUENT = ConventionalInfluent(
    flow_rate=10000.0, COD=400.0, BOD5=200.0, TSS=200.0, TKN=40.0, NH4N=25.0, TP=8.0,
    alkalinity=250.0, VSS=160.0, PO4P=6.0, VFA=30.0,
)


@dataclass(frozen=True)
class CODFractionation:
    f_SI: float = 0.05
    f_SF: float = 0.15
    f_SA: float = 0.05
    f_XI: float = 0.13
    f_XS: float = 0.62


@dataclass(frozen=True)
class NitrogenFractionation:
    f_SNH: float = 0.7
    f_SND: float = 0.1
    f_XND: float = 0.2


@dataclass(frozen=True)
class PhosphorusFractionation:
    f_SPO4: float = 0.75
    f_XP: float = 0.25


DEFAULT_DOMESTIC_COD_FRACTIONATION = CODFractionation()
DEFAULT_N_FRACTIONATION = NitrogenFractionation()
DEFAULT_P_FRACTIONATION = PhosphorusFractionation()


# --- Reactor configuration ---

@dataclass(frozen=True)
class ReactorZone:
    id: str
    name: str
    type: str
    volume: float                 # m^3
    target_do: float = None       # g O2/m^3, aerobic zones only
    mixing_intensity: float = 1.0
    hrt: float = None             # hours, referred to the influent flow


@dataclass(frozen=True)
class Recirculation:
    internal: float = 2.0   # aerobic -> anoxic, ratio to influent flow
    ras: float = 1.0        # clarifier underflow -> first zone, ratio to influent flow
    wastage: float = 0.0    # m^3/d drawn from the underflow


@dataclass(frozen=True)
class ReactorConfig:
    type: str
    zones: tuple
    total_volume: float     # m^3
    total_hrt: float        # hours
    srt: float              # days, design sludge age used by the sludge production figures;
                            # the simulated solids inventory follows recirculation.wastage
    temperature: float      # deg C
    recirculation: Recirculation = field(default_factory=Recirculation)
    enable_dpao: bool = True
    enable_chem_p: bool = False
    clarifier_efficiency: float = 0.95


DEFAULT_A2O_REACTOR_CONFIG = ReactorConfig(
    type='A2O',
    zones=(
        ReactorZone(id='anaerobic', name='Anaerobic Zone', type='anaerobic', volume=500.0,
                    mixing_intensity=0.8),
        ReactorZone(id='anoxic', name='Anoxic Zone', type='anoxic', volume=1000.0,
                    mixing_intensity=0.8),
        ReactorZone(id='aerobic', name='Aerobic Zone', type='aerobic', volume=3000.0,
                    target_do=2.0, mixing_intensity=1.0),
    ),
    total_volume=4500.0,
    total_hrt=12.0,
    srt=15.0,
    temperature=20.0,
    recirculation=Recirculation(internal=2.0, ras=1.0, wastage=50.0),
    enable_dpao=True,
    enable_chem_p=False,
)


def zone_hrts(zones, flow_rate=None):
    """
    Nominal hydraulic retention time of every zone in hours. An explicit
    zone.hrt wins; otherwise it is derived from the zone volume and the
    influent flow.
    """
    hrts = []
    for zone in zones:
        if zone.hrt is not None:
            hrts.append(float(zone.hrt))
        elif flow_rate:
            hrts.append(zone.volume / flow_rate * 24.0)
        else:
            raise ValueError(f"Zone '{zone.id}' has no HRT and no influent flow rate was given")
    return hrts


# --- Simulation configuration ---

SOLVERS = ('euler', 'patankar', 'rk4', 'bdf', 'rk45', 'lsoda', 'radau')


@dataclass(frozen=True)
class SimulationConfig:
    mode: str = 'steady_state'     # 'steady_state' or 'dynamic'
    start_time: float = 0.0        # days
    end_time: float = 50.0         # days
    time_step: float = 0.01        # days
    output_interval: float = 1.0   # days
    solver: str = 'patankar'
    tolerance: float = 1e-6
    max_iterations: int = 10000
    initial_state: dict = field(default_factory=get_initial_state)

# clarifier_model.py File

import numpy as np

from asm2d_params import particulate_cod_idx, particulate_idx

COD_TO_VSS = 1.42  # g COD/g VSS
VSS_TO_TSS = 0.8   # g VSS/g TSS


def tss_from_cod(x18):
    """TSS (g SS/m^3) of a state array: particulate COD / 1.42 / 0.8."""
    x = np.asarray(x18, float)
    return float(np.sum(x[particulate_cod_idx])) / COD_TO_VSS / VSS_TO_TSS


def map_particulates_by_ratio(x_src, ratio):
    """
    Keep particulate *fractions* identical to x_src but multiply their
    absolute values by ratio. Soluble components are copied unchanged.
    """
    x_out = np.array(x_src, dtype=float)
    x_out[..., particulate_idx] = ratio * x_out[..., particulate_idx]
    return x_out


def underflow_concentration_factor(ras_ratio, wastage_ratio, efficiency):
    """
    Particulate concentration in the underflow relative to the settler feed.

    Flows are referred to the influent flow Q: feed (1 + R) Q, effluent
    (1 - w) Q at (1 - efficiency) of the feed solids, underflow (R + w) Q
    carrying the rest.
    """
    underflow_flow = ras_ratio + wastage_ratio
    if underflow_flow <= 0.0:
        return 1.0
    escaped = (1.0 - wastage_ratio) * (1.0 - efficiency)
    return (1.0 + ras_ratio - escaped) / underflow_flow


def point_settler(x_feed, ras_ratio, wastage_ratio=0.0, efficiency=0.95):
    """
    Ideal zero-volume secondary clarifier: solubles leave unchanged in both
    outlets, a fraction efficiency of the particulates is captured and
    thickened into the underflow.

    Args:
        x_feed (array): (18,) or (..., 18) state of the last reactor zone.
        ras_ratio (float): return sludge flow / influent flow.
        wastage_ratio (float): wasted underflow / influent flow.
        efficiency (float): solids capture, 0..1.

    Returns:
        tuple: (effluent, underflow) arrays shaped like x_feed.
    """
    effluent = map_particulates_by_ratio(x_feed, 1.0 - efficiency)
    underflow = map_particulates_by_ratio(
        x_feed, underflow_concentration_factor(ras_ratio, wastage_ratio, efficiency))
    return effluent, underflow

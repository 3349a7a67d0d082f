"""
Convert raw environmental layers into [0, 1] risk sub-scores.

All transforms are linear; NaN (no data) passes through unchanged.
"""
import numpy as np

from layers import Layer


def water_risk(distance_m, saturation_m=5000.0):
    """Closer to water = higher risk: 0 m -> 1, >= saturation_m -> 0."""
    d = np.asarray(distance_m, dtype="float64")
    return np.clip(1.0 - d / saturation_m, 0.0, 1.0)


def soil_risk(texture_class, max_class=12):
    """Sandier soil (higher texture class) = higher groundwater risk.

    Texture classes run 1 (clay) to 12 (sand). Not clamped.
    """
    c = np.asarray(texture_class, dtype="float64")
    return c / max_class


def slope_risk(slope_deg, saturation_deg=30.0):
    """Flatter = higher score: 0 deg -> 1, >= saturation_deg -> 0.

    This score reflects development/restoration feasibility (flat land is
    more likely to be a former industrial site), not contamination spread.
    """
    s = np.asarray(slope_deg, dtype="float64")
    return np.clip(1.0 - s / saturation_deg, 0.0, 1.0)


def _apply(layer, name, func, *args):
    return Layer(name, func(layer.array, *args), layer.transform, layer.crs)


def normalize_layers(distance, soil, slope, config):
    """Normalise the three raw layers; returns a dict keyed by risk field name."""
    return {
        "water_risk": _apply(distance, "water_risk", water_risk, config.water_saturation_m),
        "soil_risk": _apply(soil, "soil_risk", soil_risk, config.soil_max_class),
        "slope_risk": _apply(slope, "slope_risk", slope_risk, config.slope_saturation_deg),
    }

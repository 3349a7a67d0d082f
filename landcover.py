"""
Built-up area mask from an ESA WorldCover style land-cover classification.

WorldCover classes of interest:
10 = Trees, 40 = Cropland, 50 = Built-up (urban/industrial),
60 = Bare/sparse vegetation (potential brownfield)
"""
import numpy as np

from layers import Layer

BUILT_UP = 50


def built_up_mask(classes, built_up_class=BUILT_UP):
    """Return 1.0 where the class is built-up, 0.0 elsewhere, NaN where unclassified."""
    c = np.asarray(classes, dtype="float32")
    mask = np.where(c == built_up_class, 1.0, 0.0).astype("float32")
    mask[np.isnan(c)] = np.nan
    return mask


def built_up_layer(landcover, built_up_class=BUILT_UP):
    return Layer("built_up", built_up_mask(landcover.array, built_up_class), landcover.transform, landcover.crs)


def built_up_fraction(layer):
    """Share of classified pixels that are built-up (None if nothing is classified)."""
    valid = np.isfinite(layer.array)
    if not valid.any():
        return None
    return float(layer.array[valid].mean())

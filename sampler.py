"""
Per-site sampling of the normalised risk layers.

Each site is buffered by a small radius (robust to registration noise), the
mean of every risk layer inside the buffer is taken with rasterstats, and the
composite score is the unweighted mean of the three sub-scores.
"""
import logging
import math

import numpy as np
import pandas as pd
from rasterstats import zonal_stats

from config import RISK_FIELDS, WGS84
from layers import metric_grid, resample_to_grid

logger = logging.getLogger(__name__)

SUB_SCORES = ["water_risk", "soil_risk", "slope_risk"]


def composite_risk(water, soil, slope):
    """Mean of the three sub-scores; NaN if any of them is undefined."""
    values = (water, soil, slope)
    if any(v is None or (isinstance(v, float) and math.isnan(v)) for v in values):
        return float("nan")
    return (water + soil + slope) / 3


def buffer_sites(sites, radius_m):
    """Circular buffers around each site, built in a metric CRS."""
    geoms = sites.geometry
    if geoms.crs is None:
        geoms = geoms.set_crs(WGS84)
    if not geoms.crs.is_projected:
        geoms = geoms.to_crs(geoms.estimate_utm_crs())
    return geoms.buffer(radius_m)


def sampling_layers(normalized, config):
    """
    Layers the sites are sampled from. With a fixed sampling scale every layer
    is resampled onto one metric grid; otherwise each keeps its own resolution.
    """
    if config.sampling_scale_m is None:
        return dict(normalized)
    grid = metric_grid(config.region, config.sampling_scale_m)
    logger.info(
        "Resampling risk layers to a %gm grid (%dx%d, %s)",
        config.sampling_scale_m, grid.width, grid.height, grid.crs.to_string(),
    )
    return {name: resample_to_grid(layer, grid) for name, layer in normalized.items()}


def sample_layer(buffers, layer, references, all_touched=True):
    """
    Mean of ``layer`` inside each buffer. Returns a list of floats aligned with
    ``buffers``; NaN where the buffer holds no valid pixel or sampling failed.
    """
    geoms = buffers.to_crs(layer.crs)
    values = []
    for ref, geom in zip(references, geoms):
        try:
            stats = zonal_stats(
                [geom], layer.array, affine=layer.transform,
                stats=["mean"], nodata=np.nan, all_touched=all_touched,
            )
        except Exception as exc:
            logger.warning("Sampling %s failed for site %s: %s", layer.name, ref, exc)
            values.append(float("nan"))
            continue
        mean = stats[0].get("mean")
        values.append(float(mean) if mean is not None else float("nan"))
    return values


def score_sites(sites, layers, config):
    """
    Attach water_risk, soil_risk, slope_risk and total_risk to a copy of the
    site records. ``layers`` maps each sub-score name to its normalised Layer.
    Geometry and index are left untouched.
    """
    scored = sites.copy()
    if scored.empty:
        for name in RISK_FIELDS:
            scored[name] = pd.Series(dtype="float64")
        logger.info("No sites to score")
        return scored

    if config.reference_field in scored.columns:
        references = scored[config.reference_field].tolist()
    else:
        references = scored.index.tolist()

    buffers = buffer_sites(scored, config.buffer_radius_m)
    for name in SUB_SCORES:
        scored[name] = sample_layer(buffers, layers[name], references, config.all_touched)

    scored["total_risk"] = [
        composite_risk(w, s, sl)
        for w, s, sl in zip(scored["water_risk"], scored["soil_risk"], scored["slope_risk"])
    ]

    undefined = int(scored["total_risk"].isna().sum())
    logger.info("Scored %d sites (%d with undefined total risk)", len(scored), undefined)
    return scored

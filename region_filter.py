"""
Restrict the brownfield register to the study region and to sites still on
the register (no end-date).
"""
import logging

import geopandas as gpd
import pandas as pd

from config import WGS84
from errors import DatasetUnavailableError

logger = logging.getLogger(__name__)


def load_register(path, config):
    """
    Read the brownfield register into a GeoDataFrame in WGS84.
    Truncated shapefile field names are renamed to the output names.
    """
    try:
        register = gpd.read_file(path)
    except Exception as exc:
        raise DatasetUnavailableError(path, exc) from exc

    if register.crs is None:
        logger.warning("Register %s has no CRS, assuming %s", path, WGS84)
        register = register.set_crs(WGS84)
    elif register.crs != WGS84:
        register = register.to_crs(WGS84)

    aliases = {k: v for k, v in config.column_aliases.items()
               if k in register.columns and v not in register.columns}
    if aliases:
        register = register.rename(columns=aliases)
    logger.info("Read %d register entries from %s", len(register), path)
    return register


def active_mask(frame, field="end-date"):
    """True for entries still on the register: end-date absent, null or empty string."""
    if field not in frame.columns:
        return pd.Series(True, index=frame.index)
    values = frame[field]
    return values.isna() | (values.astype(str) == "")


def filter_sites(register, config):
    """Sites that intersect the study region and have no end-date."""
    if register.empty:
        return register.copy()
    geoms = register.geometry
    if geoms.crs is not None and geoms.crs != WGS84:
        geoms = geoms.to_crs(WGS84)
    in_region = geoms.intersects(config.region.geometry)
    active = active_mask(register, config.end_date_field)
    sites = register[in_region & active].copy()
    logger.info(
        "Kept %d of %d register entries (%d outside region, %d closed)",
        len(sites), len(register), int((~in_region).sum()), int((in_region & ~active).sum()),
    )
    return sites

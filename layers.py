"""
Raster helpers: read and clip input rasters to the study region, derive the
raw environmental layers (distance to water, slope) and resample layers onto
a common metric sampling grid.

All layers are float32 arrays where NaN marks pixels with no valid data.
"""
import logging
import math
from dataclasses import dataclass

import geopandas as gpd
import numpy as np
import rasterio
import rasterio.mask
from rasterio.crs import CRS
from rasterio.errors import RasterioIOError
from rasterio.features import geometry_mask, rasterize
from rasterio.transform import from_origin
from rasterio.warp import Resampling, reproject, transform_bounds, transform_geom
from scipy.ndimage import distance_transform_edt
from shapely.geometry import mapping

from config import WGS84
from errors import DatasetUnavailableError

logger = logging.getLogger(__name__)

# Approximate metres per degree, used to turn geographic pixel sizes into ground distances
METRES_PER_DEG_LAT = 110540.0
METRES_PER_DEG_LON = 111320.0


@dataclass
class Layer:
    """A single-band raster held in memory."""

    name: str
    array: np.ndarray
    transform: object
    crs: CRS

    @property
    def shape(self):
        return self.array.shape

    @property
    def resolution(self):
        return (abs(self.transform.a), abs(self.transform.e))

    def valid_fraction(self):
        if self.array.size == 0:
            return 0.0
        return float(np.isfinite(self.array).mean())


@dataclass
class Grid:
    """Target grid for rasterization / resampling."""

    transform: object
    width: int
    height: int
    crs: CRS

    @property
    def shape(self):
        return (self.height, self.width)


def empty_layer(name, transform, crs):
    """A 1x1 layer with no valid pixel; every sample taken from it is undefined."""
    return Layer(name, np.full((1, 1), np.nan, dtype=np.float32), transform, crs)


def clip_raster(path, region, band=1, name=None):
    """
    Read one band of a raster cropped and masked to the study region.
    Returns a Layer with nodata and out-of-region pixels set to NaN.
    Raises DatasetUnavailableError if the file cannot be opened.
    """
    name = name or str(path)
    try:
        src = rasterio.open(path)
    except (RasterioIOError, OSError) as exc:
        raise DatasetUnavailableError(path, exc) from exc

    with src:
        if src.crs is None:
            raise DatasetUnavailableError(path, "raster has no CRS")
        if band < 1 or band > src.count:
            raise DatasetUnavailableError(path, f"band {band} not present ({src.count} bands)")
        region_geom = transform_geom(WGS84, src.crs, mapping(region.geometry))
        try:
            data, transform = rasterio.mask.mask(
                src, [region_geom], crop=True, filled=False, indexes=band
            )
        except ValueError:
            # raster does not overlap the study region
            logger.warning("Raster %s does not overlap the study region", path)
            return empty_layer(name, src.transform, src.crs)
        crs = src.crs

    arr = np.ma.asarray(data).astype("float32").filled(np.nan)
    layer = Layer(name, arr, transform, crs)
    logger.info(
        "Clipped %s to study region: %dx%d pixels, %.1f%% valid",
        name, arr.shape[1], arr.shape[0], 100.0 * layer.valid_fraction(),
    )
    return layer


def metric_crs(region):
    """UTM zone covering the centre of the study region."""
    utm = gpd.GeoSeries([region.geometry], crs=WGS84).estimate_utm_crs()
    return CRS.from_user_input(utm.to_wkt())


def metric_grid(region, scale_m, crs=None):
    """Square-pixel grid of ``scale_m`` metres covering the study region."""
    crs = crs or metric_crs(region)
    minx, miny, maxx, maxy = transform_bounds(WGS84, crs, *region.bounds, densify_pts=21)
    width = max(1, int(math.ceil((maxx - minx) / scale_m)))
    height = max(1, int(math.ceil((maxy - miny) / scale_m)))
    return Grid(from_origin(minx, maxy, scale_m, scale_m), width, height, crs)


def region_mask(region, grid):
    """Boolean array, True for grid pixels outside the study region."""
    geom = transform_geom(WGS84, grid.crs, mapping(region.geometry))
    return geometry_mask([geom], out_shape=grid.shape, transform=grid.transform)


def resample_to_grid(layer, grid, resampling=Resampling.nearest):
    """
    Reproject a layer onto the grid and CRS of ``grid``.
    Pixels without a source value stay NaN.
    """
    dtype = layer.array.dtype if layer.array.dtype.kind == "f" else np.dtype("float32")
    dst = np.full(grid.shape, np.nan, dtype=dtype)
    reproject(
        source=np.ascontiguousarray(layer.array, dtype=dtype),
        destination=dst,
        src_transform=layer.transform,
        src_crs=layer.crs,
        src_nodata=np.nan,
        dst_transform=grid.transform,
        dst_crs=grid.crs,
        dst_nodata=np.nan,
        resampling=resampling,
    )
    return Layer(layer.name, dst, grid.transform, grid.crs)


def load_rivers(path, region):
    """Read a river network and keep the features that intersect the study region."""
    try:
        rivers = gpd.read_file(path)
    except Exception as exc:
        raise DatasetUnavailableError(path, exc) from exc
    if rivers.crs is None:
        rivers = rivers.set_crs(WGS84)
    elif rivers.crs != WGS84:
        rivers = rivers.to_crs(WGS84)
    rivers = rivers[rivers.geometry.notna() & rivers.intersects(region.geometry)]
    logger.info("River network: %d features intersect the study region", len(rivers))
    return rivers


def water_distance_layer(rivers, region, resolution_m=30.0, search_radius_m=10000.0):
    """
    Distance in metres from each pixel to the nearest watercourse.
    Pixels farther than ``search_radius_m`` (or all pixels, when no watercourse
    is present) have no value.
    """
    grid = metric_grid(region, resolution_m)
    outside = region_mask(region, grid)
    distance = np.full(grid.shape, np.nan, dtype=np.float32)

    # watercourses up to search_radius_m outside the region still count
    pad = int(math.ceil(search_radius_m / resolution_m))
    t = grid.transform
    padded = Grid(
        from_origin(t.c - pad * resolution_m, t.f + pad * resolution_m, resolution_m, resolution_m),
        grid.width + 2 * pad,
        grid.height + 2 * pad,
        grid.crs,
    )

    geoms = [g for g in rivers.to_crs(grid.crs).geometry if g is not None and not g.is_empty]
    if geoms:
        water = rasterize(
            ((g, 1) for g in geoms),
            out_shape=padded.shape,
            transform=padded.transform,
            fill=0,
            all_touched=True,
            dtype="uint8",
        )
        if water.any():
            full = distance_transform_edt(water == 0) * resolution_m
            distance = full[pad:pad + grid.height, pad:pad + grid.width].astype(np.float32)
            distance[distance > search_radius_m] = np.nan

    if not geoms or np.isnan(distance).all():
        logger.warning("No watercourse within the study region; water distance is undefined everywhere")

    distance[outside] = np.nan
    return Layer("distance", distance, grid.transform, grid.crs)


def slope_layer(elevation):
    """
    Slope in degrees from an elevation layer using central differences.
    Geographic rasters are converted to ground distances row by row.
    """
    dem = elevation.array.astype("float64")
    if min(dem.shape) < 2:
        return Layer("slope", np.full(dem.shape, np.nan, dtype=np.float32), elevation.transform, elevation.crs)

    t = elevation.transform
    if elevation.crs is not None and elevation.crs.is_geographic:
        rows = np.arange(dem.shape[0])
        lat = np.radians(t.f + (rows + 0.5) * t.e)
        dx = abs(t.a) * METRES_PER_DEG_LON * np.cos(lat)
        dy = abs(t.e) * METRES_PER_DEG_LAT
        gx = np.gradient(dem, axis=1) / dx[:, None]
    else:
        dy = abs(t.e)
        gx = np.gradient(dem, axis=1) / abs(t.a)
    gy = np.gradient(dem, axis=0) / dy

    slope = np.degrees(np.arctan(np.hypot(gx, gy))).astype(np.float32)
    slope[np.isnan(dem)] = np.nan
    return Layer("slope", slope, elevation.transform, elevation.crs)

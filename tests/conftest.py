"""Shared fixtures: a small study region with synthetic rasters and registers."""

import geopandas as gpd
import numpy as np
import pytest
import rasterio
from rasterio.transform import from_origin
from rasterio.warp import transform_bounds
from shapely.geometry import Point

from config import RiskConfig, StudyRegion, WGS84

UTM30N = "EPSG:32630"

# Roughly central Manchester
REGION = StudyRegion(min_lon=-2.30, min_lat=53.45, max_lon=-2.20, max_lat=53.50)
CENTRE = (-2.25, 53.475)


def write_raster(path, arr, transform, crs, nodata=None):
    with rasterio.open(
        path, "w", driver="GTiff",
        height=arr.shape[0], width=arr.shape[1], count=1,
        dtype=arr.dtype, crs=crs, transform=transform, nodata=nodata,
    ) as dst:
        dst.write(arr, 1)
    return str(path)


def utm_frame(region=REGION, res=30.0, margin=600.0):
    """Transform and shape of a UTM grid covering ``region`` plus a margin."""
    minx, miny, maxx, maxy = transform_bounds(WGS84, UTM30N, *region.bounds, densify_pts=21)
    minx, miny, maxx, maxy = minx - margin, miny - margin, maxx + margin, maxy + margin
    width = int(np.ceil((maxx - minx) / res))
    height = int(np.ceil((maxy - miny) / res))
    transform = from_origin(minx, maxy, res, res)
    return transform, (height, width)


@pytest.fixture
def config():
    return RiskConfig(region=REGION)


@pytest.fixture
def make_constant_raster(tmp_path):
    """Factory writing a constant UTM raster over the test region."""

    def _make(name, value, dtype="float32", nodata=None):
        transform, shape = utm_frame()
        arr = np.full(shape, value, dtype=dtype)
        return write_raster(tmp_path / f"{name}.tif", arr, transform, UTM30N, nodata)

    return _make


@pytest.fixture
def make_slope_raster(tmp_path):
    """Factory writing an inclined-plane DEM with the given slope in degrees."""

    def _make(name, degrees, res=30.0):
        transform, shape = utm_frame(res=res)
        cols = np.arange(shape[1], dtype="float64") * res
        arr = np.tile(cols * np.tan(np.radians(degrees)), (shape[0], 1)).astype("float64")
        return write_raster(tmp_path / f"{name}.tif", arr, transform, UTM30N)

    return _make


def make_sites(points, **columns):
    """Register-like GeoDataFrame of WGS84 points."""
    n = len(points)
    data = {
        "reference": [f"BF{i:04d}" for i in range(n)],
        "name": [f"Site {i}" for i in range(n)],
        "site-address": [f"{i} Mill Lane" for i in range(n)],
        "hectares": [1.0 + i for i in range(n)],
        "ownership": ["Public"] * n,
        "planning_status": ["not permissioned"] * n,
        "end-date": [None] * n,
    }
    data.update(columns)
    return gpd.GeoDataFrame(data, geometry=[Point(x, y) for x, y in points], crs=WGS84)

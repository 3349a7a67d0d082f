"""
Generate a small synthetic study-area dataset for demos and smoke runs:
register points, river network, soil texture, elevation and land cover.

Usage:
    python generate_synthetic_tiles.py [out_dir]
"""
import os
import sys

import geopandas as gpd
import numpy as np
import rasterio
from rasterio.transform import from_origin
from shapely.geometry import LineString, Point

from config import RiskConfig, WGS84
from pipeline import LayerSources

RES_DEG = 0.002


def _write_tif(path, arr, transform, nodata=None):
    with rasterio.open(path, 'w',
                       driver='GTiff',
                       height=arr.shape[0],
                       width=arr.shape[1],
                       count=1,
                       dtype=arr.dtype,
                       crs=WGS84,
                       transform=transform,
                       nodata=nodata) as dst:
        dst.write(arr, 1)


def generate(out_dir='data', config=None, n_sites=60, seed=42):
    """Write the synthetic dataset into ``out_dir``; returns LayerSources pointing at it."""
    config = config or RiskConfig()
    region = config.region
    rng = np.random.default_rng(seed)
    os.makedirs(out_dir, exist_ok=True)

    # rasters cover the region with a small margin
    margin = 0.05
    west, north = region.min_lon - margin, region.max_lat + margin
    w = int(round((region.max_lon - region.min_lon + 2 * margin) / RES_DEG))
    h = int(round((region.max_lat - region.min_lat + 2 * margin) / RES_DEG))
    transform = from_origin(west, north, RES_DEG, RES_DEG)
    cols, rows = np.meshgrid(np.arange(w), np.arange(h))

    # elevation: flat valley floor with two gaussian hills
    elev = np.full((h, w), 60.0, dtype=np.float32)
    for cx, cy, height, spread in [(w * 0.8, h * 0.3, 350.0, w * 0.08), (w * 0.15, h * 0.2, 180.0, w * 0.05)]:
        elev += height * np.exp(-((cols - cx) ** 2 + (rows - cy) ** 2) / (2 * spread ** 2))
    _write_tif(os.path.join(out_dir, 'elevation.tif'), elev.astype(np.float32), transform)

    # soil texture: clay in the west grading to sand in the east, 255 = nodata
    soil = (1 + (cols * 12) // w).clip(1, 12).astype(np.uint8)
    soil[:3, :3] = 255
    _write_tif(os.path.join(out_dir, 'soil_texture.tif'), soil, transform, nodata=255)

    # land cover: built-up core, bare patches, cropland and trees elsewhere
    lc = np.full((h, w), 40, dtype=np.uint8)
    lc[(cols - w * 0.5) ** 2 + (rows - h * 0.5) ** 2 < (w * 0.2) ** 2] = 50
    for cx, cy in [(w * 0.3, h * 0.6), (w * 0.65, h * 0.4)]:
        lc[(abs(cols - cx) < 15) & (abs(rows - cy) < 15)] = 60
    lc[rows < h * 0.1] = 10
    _write_tif(os.path.join(out_dir, 'landcover.tif'), lc, transform, nodata=0)

    # rivers: one west-east river and a northern tributary
    mid_lat = (region.min_lat + region.max_lat) / 2
    rivers = gpd.GeoDataFrame(
        {'name': ['Main river', 'Tributary']},
        geometry=[
            LineString([(region.min_lon - 0.1, mid_lat - 0.02), (region.max_lon + 0.1, mid_lat + 0.03)]),
            LineString([(region.min_lon + 0.3, region.max_lat + 0.1), (region.min_lon + 0.32, mid_lat)]),
        ],
        crs=WGS84,
    )
    rivers.to_file(os.path.join(out_dir, 'rivers.gpkg'), driver='GPKG')

    # register: mostly inside the region, a few outside, some closed
    lon = rng.uniform(region.min_lon - 0.1, region.max_lon + 0.1, n_sites)
    lat = rng.uniform(region.min_lat - 0.05, region.max_lat + 0.05, n_sites)
    end_date = np.where(rng.random(n_sites) < 0.15, '2023-03-31', '')
    hectares = np.round(rng.lognormal(0.0, 1.0, n_sites), 2)
    hectares[0] = np.nan
    register = gpd.GeoDataFrame(
        {
            'reference': [f'BF{i:04d}' for i in range(n_sites)],
            'name': [f'Site {i}' for i in range(n_sites)],
            'site-address': [f'{i} Mill Lane' for i in range(n_sites)],
            'hectares': hectares,
            'ownership': rng.choice(['Public', 'Private', 'Mixed', 'Unknown'], n_sites),
            'planning_status': rng.choice(['not permissioned', 'permissioned', 'pending decision'], n_sites),
            'end-date': [str(d) if d else None for d in end_date],
        },
        geometry=[Point(x, y) for x, y in zip(lon, lat)],
        crs=WGS84,
    )
    register.to_file(os.path.join(out_dir, 'brownfield_register.gpkg'), driver='GPKG')

    return LayerSources(
        register=os.path.join(out_dir, 'brownfield_register.gpkg'),
        soil_texture=os.path.join(out_dir, 'soil_texture.tif'),
        elevation=os.path.join(out_dir, 'elevation.tif'),
        rivers=os.path.join(out_dir, 'rivers.gpkg'),
        landcover=os.path.join(out_dir, 'landcover.tif'),
    )


if __name__ == '__main__':
    target = sys.argv[1] if len(sys.argv) > 1 else 'data'
    generate(target)
    print(f'Synthetic study area saved to ./{target}/')

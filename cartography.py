"""
Interactive HTML map of scored brownfield sites (folium).
"""
import logging
import math
from pathlib import Path

import folium
import numpy as np
from branca.colormap import linear
from folium.raster_layers import ImageOverlay
from rasterio.crs import CRS
from rasterio.transform import from_bounds
from rasterio.warp import Resampling

from config import WGS84
from layers import Grid, resample_to_grid

logger = logging.getLogger(__name__)

UNDEFINED_COLOR = "#7F8C8D"


def _fmt(value):
    if value is None or (isinstance(value, float) and math.isnan(value)):
        return "n/a"
    return f"{value:.3f}"


def _popup_html(row, reference_field):
    return f"""
    <b>Reference :</b> {row.get(reference_field, '')}<br/>
    <b>Address :</b> {row.get('site-address', '')}<br/>
    <b>Total risk :</b> {_fmt(row['total_risk'])}<br/>
    <b>Water :</b> {_fmt(row['water_risk'])}<br/>
    <b>Soil :</b> {_fmt(row['soil_risk'])}<br/>
    <b>Slope :</b> {_fmt(row['slope_risk'])}
    """


def built_up_overlay(built_up, region, max_width=2000):
    """Red semi-transparent image of built-up pixels, reprojected to WGS84."""
    res = max(built_up.resolution)
    if built_up.crs is not None and not built_up.crs.is_geographic:
        res = res / 111320.0
    res = max(res, (region.max_lon - region.min_lon) / max_width)
    width = max(1, int(round((region.max_lon - region.min_lon) / res)))
    height = max(1, int(round((region.max_lat - region.min_lat) / res)))
    grid = Grid(from_bounds(*region.bounds, width, height), width, height, CRS.from_string(WGS84))
    arr = resample_to_grid(built_up, grid, Resampling.nearest).array

    rgba = np.zeros(arr.shape + (4,), dtype=np.uint8)
    on = arr == 1
    rgba[on] = (231, 76, 60, 160)
    return ImageOverlay(
        image=rgba,
        bounds=[[region.min_lat, region.min_lon], [region.max_lat, region.max_lon]],
        name="Built-up areas",
        show=False,
    )


def site_map(scored, region, reference_field="reference", built_up=None):
    """Folium map with the study region outline and sites coloured by total risk."""
    center = [(region.min_lat + region.max_lat) / 2, (region.min_lon + region.max_lon) / 2]
    m = folium.Map(location=center, zoom_start=10, tiles="CartoDB positron")

    folium.GeoJson(
        region.geometry.__geo_interface__,
        name="Study area",
        style_function=lambda feat: {"color": "red", "weight": 1.5, "fillOpacity": 0.0},
    ).add_to(m)

    if built_up is not None:
        built_up_overlay(built_up, region).add_to(m)

    colormap = linear.YlOrRd_09.scale(0, 1)
    colormap.caption = "Total risk score"
    colormap.add_to(m)

    sites = scored.to_crs(WGS84) if scored.crs is not None else scored
    group = folium.FeatureGroup(name="Brownfield sites (coloured by risk)")
    for _, row in sites.iterrows():
        geom = row.geometry
        if geom is None or geom.is_empty:
            continue
        point = geom if geom.geom_type == "Point" else geom.representative_point()
        total = row["total_risk"]
        color = UNDEFINED_COLOR if total is None or math.isnan(total) else colormap(total)
        folium.CircleMarker(
            location=[point.y, point.x],
            radius=5,
            color="black",
            weight=0.5,
            fill=True,
            fill_color=color,
            fill_opacity=0.8,
            popup=folium.Popup(_popup_html(row, reference_field), max_width=300),
        ).add_to(group)
    group.add_to(m)
    folium.LayerControl().add_to(m)
    return m


def save_site_map(scored, region, path, reference_field="reference", built_up=None):
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    site_map(scored, region, reference_field, built_up).save(str(path))
    logger.info("Wrote site map to %s", path)
    return path

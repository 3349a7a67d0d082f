"""
Brownfield restoration-potential pipeline.

Scores registered brownfield sites on three environmental factors (proximity
to watercourses, soil permeability, terrain slope) and writes the scored
table, a GeoPackage, an interactive map and summary charts.

Usage:
    python pipeline.py --register data/brownfield.gpkg --rivers data/rivers.gpkg \
        --soil data/soil_texture.tif --elevation data/elevation.tif \
        [--landcover data/landcover.tif] [--config risk.yaml] [--output-dir outputs]
"""
import argparse
import logging
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Optional

import geopandas as gpd

import reporting
from cartography import save_site_map
from config import load_config, RiskConfig
from errors import BrownfieldRiskError
from landcover import built_up_fraction, built_up_layer
from layers import Layer, clip_raster, load_rivers, slope_layer, water_distance_layer
from normalize import normalize_layers
from region_filter import filter_sites, load_register
from sampler import sampling_layers, score_sites

logger = logging.getLogger(__name__)


@dataclass
class LayerSources:
    """Input datasets. Exactly one of ``rivers`` / ``water_distance`` is required."""

    register: str
    soil_texture: str
    elevation: str
    rivers: Optional[str] = None
    water_distance: Optional[str] = None
    landcover: Optional[str] = None
    geometry_source: Optional[str] = None
    soil_band: int = 1
    elevation_band: int = 1

    def __post_init__(self):
        if (self.rivers is None) == (self.water_distance is None):
            raise ValueError("Provide exactly one of 'rivers' (vector) or 'water_distance' (raster)")


@dataclass
class PipelineResult:
    config: RiskConfig
    sites: gpd.GeoDataFrame
    layers: Dict[str, Layer] = field(default_factory=dict)
    built_up: Optional[Layer] = None
    geometry_source: Optional[gpd.GeoDataFrame] = None


def prepare_layers(sources, config):
    """Raw distance-to-water, soil texture and slope layers clipped to the study region."""
    region = config.region
    if sources.water_distance is not None:
        distance = clip_raster(sources.water_distance, region, name="distance")
    else:
        rivers = load_rivers(sources.rivers, region)
        distance = water_distance_layer(
            rivers, region, config.distance_resolution_m, config.water_search_radius_m
        )
    soil = clip_raster(sources.soil_texture, region, band=sources.soil_band, name="soil_texture")
    elevation = clip_raster(sources.elevation, region, band=sources.elevation_band, name="elevation")
    return {"distance": distance, "soil": soil, "slope": slope_layer(elevation)}


def run_pipeline(sources, config=None):
    """
    Filter the register, build the risk layers and score every site.
    All inputs are read here, so any unreadable dataset aborts before output.
    """
    config = config or RiskConfig()

    register = load_register(sources.register, config)
    sites = filter_sites(register, config)

    raw = prepare_layers(sources, config)
    normalized = normalize_layers(raw["distance"], raw["soil"], raw["slope"], config)
    layers = sampling_layers(normalized, config)

    built_up = None
    if sources.landcover is not None:
        built_up = built_up_layer(clip_raster(sources.landcover, config.region, name="landcover"))
        share = built_up_fraction(built_up)
        if share is not None:
            logger.info("Built-up share of study area: %.1f%%", 100.0 * share)

    geometry_source = None
    if sources.geometry_source is not None:
        geometry_source = reporting.read_geometry_source(sources.geometry_source)

    scored = score_sites(sites, layers, config)
    return PipelineResult(config, scored, layers, built_up, geometry_source)


def export_results(result, output_dir, top_n=10):
    """Write every report artifact; returns {artifact name: path}."""
    out = Path(output_dir)
    config = result.config
    categorized = reporting.add_risk_category(result.sites, config.thresholds)

    artifacts = {
        "scores_csv": reporting.write_csv(reporting.risk_table(result.sites), out / "brownfield_risk_scores.csv"),
        "top_csv": reporting.write_csv(reporting.top_sites(categorized, top_n), out / "top10_highest_risk_sites.csv"),
        "geopackage": reporting.write_geopackage(
            categorized, out / "brownfield_risk.gpkg",
            geometry_source=result.geometry_source, reference_field=config.reference_field,
        ),
        "site_map": save_site_map(
            result.sites, config.region, out / "site_map.html",
            reference_field=config.reference_field, built_up=result.built_up,
        ),
    }
    artifacts.update(reporting.save_figures(result.sites, out / "figures", config.thresholds, top_n))

    summary = reporting.risk_summary(categorized, config.thresholds)
    logger.info("Risk tier summary:\n%s", summary.to_string(index=False))
    return artifacts


def build_parser():
    parser = argparse.ArgumentParser(description="Score brownfield sites for environmental risk.")
    parser.add_argument("--register", required=True, help="Brownfield register (any vector format)")
    water = parser.add_mutually_exclusive_group(required=True)
    water.add_argument("--rivers", help="River network (vector)")
    water.add_argument("--water-distance", help="Distance-to-water raster in metres")
    parser.add_argument("--soil", required=True, help="Soil texture class raster (USDA classes 1-12)")
    parser.add_argument("--elevation", required=True, help="Elevation raster (metres)")
    parser.add_argument("--landcover", help="Land-cover raster (WorldCover classes), map overlay only")
    parser.add_argument("--geometry-source", help="Site geometries joined on reference for the GeoPackage")
    parser.add_argument("--config", help="YAML configuration file")
    parser.add_argument("--output-dir", default="outputs")
    parser.add_argument("--native-resolution", action="store_true",
                        help="Sample each layer at its own resolution instead of the fixed scale")
    parser.add_argument("--top-n", type=int, default=10)
    parser.add_argument("--log-level", default="INFO")
    return parser


def main(argv=None):
    args = build_parser().parse_args(argv)
    logging.basicConfig(level=args.log_level.upper(), format="%(asctime)s - %(levelname)s - %(message)s")

    try:
        config = load_config(args.config)
        if args.native_resolution:
            config = config.with_native_resolution()
        sources = LayerSources(
            register=args.register,
            soil_texture=args.soil,
            elevation=args.elevation,
            rivers=args.rivers,
            water_distance=args.water_distance,
            landcover=args.landcover,
            geometry_source=args.geometry_source,
        )
        result = run_pipeline(sources, config)
        artifacts = export_results(result, args.output_dir, args.top_n)
    except (BrownfieldRiskError, ValueError) as exc:
        logger.error("Aborting: %s", exc)
        return 1

    for name, path in artifacts.items():
        if path is not None:
            print(f"{name}: {path}")
    return 0


if __name__ == "__main__":
    sys.exit(main())

"""
Run configuration for the brownfield risk pipeline.

Everything that used to be a literal in the analysis (study area box, buffer
radius, sampling scale, normalisation constants, tier thresholds) lives here
and is passed explicitly into each stage.
"""
import logging
from dataclasses import dataclass, field, fields, replace
from pathlib import Path
from typing import Dict, Optional

import yaml
from shapely.geometry import box

logger = logging.getLogger(__name__)

WGS84 = "EPSG:4326"

# Shapefile exports of the register truncate field names to 10 characters
DEFAULT_COLUMN_ALIASES = {
    "site-addre": "site-address",
    "ownership-": "ownership",
    "planning_2": "planning_status",
}

OUTPUT_COLUMNS = [
    "reference",
    "name",
    "site-address",
    "hectares",
    "ownership",
    "planning_status",
    "water_risk",
    "soil_risk",
    "slope_risk",
    "total_risk",
]

RISK_FIELDS = ["water_risk", "soil_risk", "slope_risk", "total_risk"]


@dataclass(frozen=True)
class StudyRegion:
    """Rectangular study area in WGS84 degrees."""

    min_lon: float = -2.7
    min_lat: float = 53.35
    max_lon: float = -1.95
    max_lat: float = 53.65

    def __post_init__(self):
        if self.min_lon >= self.max_lon or self.min_lat >= self.max_lat:
            raise ValueError(
                f"Invalid study region bounds: ({self.min_lon}, {self.min_lat}, "
                f"{self.max_lon}, {self.max_lat})"
            )

    @property
    def bounds(self):
        return (self.min_lon, self.min_lat, self.max_lon, self.max_lat)

    @property
    def geometry(self):
        return box(*self.bounds)


@dataclass(frozen=True)
class RiskThresholds:
    """Lower bounds of the High and Medium tiers on ``total_risk``."""

    high: float = 0.8
    medium: float = 0.7

    def __post_init__(self):
        if self.medium > self.high:
            raise ValueError(
                f"Medium threshold ({self.medium}) must not exceed high threshold ({self.high})"
            )


@dataclass(frozen=True)
class RiskConfig:
    region: StudyRegion = field(default_factory=StudyRegion)
    thresholds: RiskThresholds = field(default_factory=RiskThresholds)

    # sampling
    buffer_radius_m: float = 30.0
    sampling_scale_m: Optional[float] = 30.0  # None = sample each layer at its own resolution
    all_touched: bool = True

    # normalisation
    water_saturation_m: float = 5000.0
    soil_max_class: int = 12
    slope_saturation_deg: float = 30.0

    # distance-to-water derivation
    water_search_radius_m: float = 10000.0
    distance_resolution_m: float = 30.0

    # register fields
    reference_field: str = "reference"
    end_date_field: str = "end-date"
    column_aliases: Dict[str, str] = field(default_factory=lambda: dict(DEFAULT_COLUMN_ALIASES))

    def __post_init__(self):
        if self.buffer_radius_m <= 0:
            raise ValueError("buffer_radius_m must be positive")
        if self.sampling_scale_m is not None and self.sampling_scale_m <= 0:
            raise ValueError("sampling_scale_m must be positive or None")
        if self.distance_resolution_m <= 0:
            raise ValueError("distance_resolution_m must be positive")
        for name in ("water_saturation_m", "slope_saturation_deg", "soil_max_class"):
            if getattr(self, name) <= 0:
                raise ValueError(f"{name} must be positive")

    def with_native_resolution(self):
        """Copy of this config that samples every layer at its own resolution."""
        return replace(self, sampling_scale_m=None)

    @classmethod
    def from_dict(cls, data):
        """Build a config from a (YAML-style) nested mapping.

        ``region`` and ``thresholds`` may be given as mappings; any other key
        must name a field of RiskConfig.
        """
        data = dict(data or {})
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(data) - known)
        if unknown:
            raise ValueError(f"Unknown configuration keys: {', '.join(unknown)}")

        if isinstance(data.get("region"), dict):
            data["region"] = StudyRegion(**data["region"])
        elif isinstance(data.get("region"), (list, tuple)):
            data["region"] = StudyRegion(*data["region"])
        if isinstance(data.get("thresholds"), dict):
            data["thresholds"] = RiskThresholds(**data["thresholds"])
        if "column_aliases" in data:
            aliases = dict(DEFAULT_COLUMN_ALIASES)
            aliases.update(data["column_aliases"] or {})
            data["column_aliases"] = aliases
        return cls(**data)


def load_config(path=None):
    """Load a RiskConfig from a YAML file, or the defaults when no file is given."""
    if path is None:
        return RiskConfig()
    path = Path(path)
    if not path.exists():
        logger.warning("Config not found at %s, using defaults", path)
        return RiskConfig()

    with open(path, "r", encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ValueError(f"Config file {path} must contain a mapping at top level")

    config = RiskConfig.from_dict(data)
    logger.info("Loaded risk config from %s", path)
    return config

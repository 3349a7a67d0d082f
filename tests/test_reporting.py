"""Tests for risk tiers, summaries and exports."""

import math

import geopandas as gpd
import numpy as np
import pandas as pd
import pytest
from shapely.geometry import Point

from cartography import save_site_map
from conftest import REGION, make_sites
from config import OUTPUT_COLUMNS, RiskThresholds, WGS84
from reporting import (
    add_risk_category,
    classify_risk,
    risk_summary,
    risk_table,
    save_figures,
    top_sites,
    write_csv,
    write_geopackage,
)


def _scored(totals, hectares=None):
    n = len(totals)
    points = [(-2.29 + 0.008 * i, 53.46 + 0.003 * i) for i in range(n)]
    frame = make_sites(points)
    if hectares is not None:
        frame["hectares"] = hectares
    frame["water_risk"] = [t for t in totals]
    frame["soil_risk"] = [t for t in totals]
    frame["slope_risk"] = [t for t in totals]
    frame["total_risk"] = totals
    return frame


class TestClassifyRisk:

    @pytest.mark.parametrize("total, tier", [
        (0.95, "High"),
        (0.8, "High"),
        (0.79, "Medium"),
        (0.7, "Medium"),
        (0.6999, "Low"),
        (0.0, "Low"),
    ])
    def test_default_thresholds(self, total, tier):
        assert classify_risk([total]).iloc[0] == tier

    def test_undefined_total_has_no_tier(self):
        tiers = classify_risk([np.nan, 0.9])
        assert pd.isna(tiers.iloc[0])
        assert tiers.iloc[1] == "High"

    def test_custom_thresholds(self):
        tiers = classify_risk([0.65, 0.55, 0.4], RiskThresholds(high=0.6, medium=0.5))
        assert tiers.tolist() == ["High", "Medium", "Low"]


class TestRiskSummary:

    def test_counts_and_areas_per_tier(self):
        frame = _scored([0.9, 0.85, 0.75, 0.5, 0.4], hectares=[1.0, 3.0, 2.0, 4.0, np.nan])
        summary = risk_summary(frame).set_index("risk_category")

        assert summary.loc["High", "n_sites"] == 2
        assert summary.loc["High", "mean_hectares"] == pytest.approx(2.0)
        assert summary.loc["High", "total_hectares"] == pytest.approx(4.0)
        assert summary.loc["Medium", "n_sites"] == 1
        # the site without hectares is left out of the size summary
        assert summary.loc["Low", "n_sites"] == 1
        assert summary.loc["Low", "total_hectares"] == pytest.approx(4.0)

    def test_all_tiers_present(self):
        summary = risk_summary(_scored([0.9]))
        assert summary["risk_category"].astype(str).tolist() == ["Low", "Medium", "High"]
        assert summary["n_sites"].tolist() == [0, 0, 1]

    def test_empty_input(self):
        summary = risk_summary(_scored([]))
        assert summary["n_sites"].sum() == 0


class TestTopSites:

    def test_ordered_and_rounded(self):
        frame = _scored([0.81234, 0.95678, np.nan, 0.71111], hectares=[1.23456, 2.0, 3.0, 4.0])
        top = top_sites(frame, n=2)

        assert top["reference"].tolist() == ["BF0001", "BF0000"]
        assert top["total_risk"].tolist() == [0.957, 0.812]
        assert top.loc[1, "hectares"] == 1.23
        assert list(top.columns) == ["reference", "site-address", "hectares",
                                     "water_risk", "soil_risk", "slope_risk", "total_risk"]

    def test_undefined_scores_are_not_ranked(self):
        top = top_sites(_scored([np.nan, 0.2]), n=10)
        assert top["reference"].tolist() == ["BF0001"]


def test_risk_table_has_output_columns_in_order():
    frame = _scored([0.5, np.nan])
    table = risk_table(frame)
    assert list(table.columns) == OUTPUT_COLUMNS
    assert len(table) == 2
    assert "geometry" not in table.columns


def test_risk_table_fills_missing_columns():
    frame = _scored([0.5]).drop(columns=["ownership"])
    table = risk_table(frame)
    assert pd.isna(table.loc[0, "ownership"])


def test_write_csv_keeps_undefined_scores(tmp_path):
    path = write_csv(risk_table(_scored([0.5, np.nan])), tmp_path / "out" / "scores.csv")
    back = pd.read_csv(path)
    assert list(back.columns) == OUTPUT_COLUMNS
    assert math.isnan(back.loc[1, "total_risk"])


class TestGeopackage:

    def test_uses_site_points_by_default(self, tmp_path):
        frame = add_risk_category(_scored([0.9, 0.2]))
        path = write_geopackage(frame, tmp_path / "risk.gpkg")

        back = gpd.read_file(path)
        assert len(back) == 2
        assert set(back["risk_category"]) == {"High", "Low"}
        assert back.geometry.iloc[0].geom_type == "Point"

    def test_joins_geometry_source_on_reference(self, tmp_path):
        frame = add_risk_category(_scored([0.9, 0.2, 0.75]))
        outlines = gpd.GeoDataFrame(
            {"reference": ["BF0000", "BF0002", "ZZ9999"]},
            geometry=[Point(-2.29, 53.46).buffer(0.001), Point(-2.27, 53.466).buffer(0.001),
                      Point(-2.25, 53.47).buffer(0.001)],
            crs=WGS84,
        )
        source = tmp_path / "outlines.gpkg"
        outlines.to_file(source, driver="GPKG")

        path = write_geopackage(frame, tmp_path / "risk.gpkg", geometry_source=source)

        back = gpd.read_file(path)
        assert sorted(back["reference"]) == ["BF0000", "BF0002"]
        assert back.geometry.iloc[0].geom_type == "Polygon"
        assert "total_risk" in back.columns

    def test_existing_file_is_replaced(self, tmp_path):
        path = tmp_path / "risk.gpkg"
        write_geopackage(_scored([0.9, 0.2, 0.3]), path)
        write_geopackage(_scored([0.5]), path)
        assert len(gpd.read_file(path)) == 1

    def test_empty_is_skipped(self, tmp_path):
        assert write_geopackage(_scored([]), tmp_path / "risk.gpkg") is None
        assert not (tmp_path / "risk.gpkg").exists()


def test_save_figures(tmp_path):
    frame = _scored([0.9, 0.85, 0.75, 0.5, np.nan], hectares=[1.0, 3.0, 2.0, 4.0, 0.5])
    paths = save_figures(frame, tmp_path / "figures")
    assert set(paths) == {"risk_distribution", "risk_category_chart", "size_risk_scatter", "top10_risk_sites"}
    for path in paths.values():
        assert path.exists()
        assert path.stat().st_size > 0


def test_save_figures_with_no_sites(tmp_path):
    paths = save_figures(_scored([]), tmp_path / "figures")
    assert all(p.exists() for p in paths.values())


def test_save_figures_without_sized_sites(tmp_path):
    # nothing can go on the log-scaled size axis
    frame = _scored([0.9, np.nan], hectares=[np.nan, 2.0])
    paths = save_figures(frame, tmp_path / "figures")
    assert paths["size_risk_scatter"].stat().st_size > 0


def test_site_map(tmp_path):
    frame = _scored([0.9, np.nan])
    path = save_site_map(frame, REGION, tmp_path / "map.html")
    html = path.read_text(encoding="utf-8")
    assert "BF0000" in html
    assert "n/a" in html

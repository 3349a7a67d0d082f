"""
Reporting on scored brownfield sites: risk tiers, summary statistics, charts
and tabular / GeoPackage exports.
"""
import logging
from pathlib import Path

import geopandas as gpd
import matplotlib
matplotlib.use("Agg")
import matplotlib.pyplot as plt
from matplotlib.colors import LinearSegmentedColormap
import numpy as np
import pandas as pd

from config import OUTPUT_COLUMNS, RISK_FIELDS, RiskThresholds
from errors import DatasetUnavailableError

logger = logging.getLogger(__name__)

TIERS = ["Low", "Medium", "High"]
TIER_COLORS = {"Low": "#27AE60", "Medium": "#F39C12", "High": "#E74C3C"}

TOP_COLUMNS = ["reference", "site-address", "hectares",
               "water_risk", "soil_risk", "slope_risk", "total_risk"]


def classify_risk(total_risk, thresholds=None):
    """
    Bin total risk into Low / Medium / High.
    Sites with an undefined total risk get no tier.
    """
    thresholds = thresholds or RiskThresholds()
    total = pd.to_numeric(pd.Series(total_risk), errors="coerce")
    labels = pd.Series(None, index=total.index, dtype=object)
    labels.loc[total.notna()] = "Low"
    labels.loc[total >= thresholds.medium] = "Medium"
    labels.loc[total >= thresholds.high] = "High"
    return pd.Series(pd.Categorical(labels, categories=TIERS, ordered=True), index=total.index)


def add_risk_category(frame, thresholds=None):
    out = frame.copy()
    out["risk_category"] = classify_risk(out["total_risk"], thresholds).values
    return out


def _hectares(frame):
    if "hectares" not in frame.columns:
        return pd.Series(np.nan, index=frame.index)
    return pd.to_numeric(frame["hectares"], errors="coerce")


def risk_summary(frame, thresholds=None):
    """
    Site count, mean and total area per risk tier.
    Sites without a hectares value are left out of the summary.
    """
    if "risk_category" not in frame.columns:
        frame = add_risk_category(frame, thresholds)
    sized = frame.assign(hectares=_hectares(frame))
    dropped = int(sized["hectares"].isna().sum())
    if dropped:
        logger.info("Excluding %d sites without hectares from the tier summary", dropped)
    sized = sized[sized["hectares"].notna()]

    grouped = sized.groupby("risk_category", observed=False)["hectares"]
    summary = pd.DataFrame({
        "n_sites": grouped.size(),
        "mean_hectares": grouped.mean(),
        "total_hectares": grouped.sum(),
    }).reindex(TIERS)
    summary["n_sites"] = summary["n_sites"].fillna(0).astype(int)
    summary["total_hectares"] = summary["total_hectares"].fillna(0.0)
    summary.index.name = "risk_category"
    return summary.reset_index()


def top_sites(frame, n=10):
    """The ``n`` sites with the highest total risk, rounded for reporting."""
    ranked = frame[frame["total_risk"].notna()].sort_values("total_risk", ascending=False, kind="mergesort")
    top = pd.DataFrame(ranked.head(n)).reindex(columns=TOP_COLUMNS)
    for col in RISK_FIELDS:
        top[col] = pd.to_numeric(top[col], errors="coerce").round(3)
    top["hectares"] = pd.to_numeric(top["hectares"], errors="coerce").round(2)
    return top.reset_index(drop=True)


def risk_table(frame):
    """Flat output table: one row per site, output columns in order."""
    return pd.DataFrame(frame).reindex(columns=OUTPUT_COLUMNS)


def write_csv(table, path):
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    table.to_csv(path, index=False)
    logger.info("Wrote %d rows to %s", len(table), path)
    return path


def read_geometry_source(path):
    """Site outlines (e.g. the register shapefile) used for the GeoPackage join."""
    try:
        return gpd.read_file(path)
    except Exception as exc:
        raise DatasetUnavailableError(path, exc) from exc


def write_geopackage(frame, path, geometry_source=None, reference_field="reference", layer="brownfield_risk"):
    """
    Write scored sites as a GeoPackage. With ``geometry_source`` the site
    geometry is taken from that dataset, joined on the reference field (only
    sites present in both are written). An existing file is replaced.
    """
    path = Path(path)
    attrs = pd.DataFrame(frame).drop(columns="geometry", errors="ignore")
    if "risk_category" in attrs.columns:
        attrs["risk_category"] = attrs["risk_category"].astype(object)

    if geometry_source is not None:
        geo = geometry_source
        if not isinstance(geo, gpd.GeoDataFrame):
            geo = read_geometry_source(geometry_source)
        if reference_field not in geo.columns:
            raise ValueError(f"Geometry source has no '{reference_field}' field to join on")
        spatial = geo[[reference_field, "geometry"]].merge(attrs, on=reference_field, how="inner")
        spatial = gpd.GeoDataFrame(spatial, geometry="geometry", crs=geo.crs)
    else:
        spatial = gpd.GeoDataFrame(attrs, geometry=frame.geometry.values, crs=frame.crs)

    if spatial.empty:
        logger.warning("No sites to write, skipping %s", path)
        return None

    path.parent.mkdir(parents=True, exist_ok=True)
    if path.exists():
        path.unlink()
    spatial.to_file(path, driver="GPKG", layer=layer)
    logger.info("Wrote %d sites to %s", len(spatial), path)
    return path


# -------------------------
# Charts
# -------------------------
def _save(fig, path, dpi=300):
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    fig.savefig(path, dpi=dpi, bbox_inches="tight")
    plt.close(fig)
    return path


def plot_risk_distribution(frame, path, thresholds=None):
    thresholds = thresholds or RiskThresholds()
    values = frame["total_risk"].dropna()
    fig, ax = plt.subplots(figsize=(10, 7))
    ax.hist(values, bins=30, color="#2C3E50", edgecolor="white")
    ax.axvline(thresholds.high, linestyle="--", color="red", linewidth=1.5)
    ax.text(thresholds.high + 0.005, 0.95, "High risk threshold", color="red",
            transform=ax.get_xaxis_transform(), ha="left", va="top")
    ax.set_title(f"Distribution of Contamination Risk Scores (n = {len(values):,})")
    ax.set_xlabel("Total Risk Score (0 = low, 1 = high)")
    ax.set_ylabel("Number of Sites")
    return _save(fig, path)


def plot_risk_categories(summary, path):
    fig, ax = plt.subplots(figsize=(10, 7))
    colors = [TIER_COLORS[t] for t in summary["risk_category"]]
    bars = ax.bar(summary["risk_category"].astype(str), summary["n_sites"], width=0.7, color=colors)
    for bar, n in zip(bars, summary["n_sites"]):
        ax.annotate(str(n), (bar.get_x() + bar.get_width() / 2, bar.get_height()),
                    ha="center", va="bottom", fontweight="bold")
    ax.set_title("Brownfield Sites by Risk Category")
    ax.set_ylabel("Number of Sites")
    ax.margins(y=0.1)
    return _save(fig, path)


def plot_size_vs_risk(frame, path, thresholds=None):
    thresholds = thresholds or RiskThresholds()
    if "risk_category" not in frame.columns:
        frame = add_risk_category(frame, thresholds)
    data = frame.assign(hectares=_hectares(frame))
    # log scale: only positive areas with a defined score
    data = data[(data["hectares"] > 0) & data["total_risk"].notna()]
    fig, ax = plt.subplots(figsize=(10, 7))
    for tier in TIERS:
        sub = data[data["risk_category"] == tier]
        ax.scatter(sub["hectares"], sub["total_risk"], s=20, alpha=0.6,
                   color=TIER_COLORS[tier], label=tier)
    if not data.empty:
        ax.set_xscale("log")
    ax.axhline(thresholds.high, linestyle="--", color="red", alpha=0.5)
    ax.set_title("Site Size vs. Contamination Risk")
    ax.set_xlabel("Site Area (hectares, log scale)")
    ax.set_ylabel("Total Risk Score")
    ax.legend(title="Risk Category", loc="lower center", bbox_to_anchor=(0.5, -0.2), ncol=3)
    return _save(fig, path)


def plot_top_sites(top, path):
    labels = top["site-address"].fillna(top["reference"]).astype(str)
    labels = [s if len(s) <= 50 else s[:47] + "..." for s in labels]
    values = top["total_risk"].to_numpy()
    cmap = LinearSegmentedColormap.from_list("risk", ["#F5CBA7", "#C0392B"])

    fig, ax = plt.subplots(figsize=(12, 7))
    if len(values):
        lo, hi = float(values.min()), float(values.max())
        span = (hi - lo) or 1.0
        colors = cmap((values - lo) / span)
        # highest risk at the top
        ypos = np.arange(len(values))[::-1]
        ax.barh(ypos, values, height=0.7, color=colors)
        ax.set_yticks(ypos)
        ax.set_yticklabels(labels)
        for y, v in zip(ypos, values):
            ax.text(v, y, f" {v:.3f}", va="center", fontweight="bold", fontsize=9)
        ax.set_xlim(max(0.0, lo - 0.02), min(1.0, hi + 0.02) + 0.01)
    ax.set_title("Top Highest Risk Brownfield Sites")
    ax.set_xlabel("Total Risk Score")
    ax.tick_params(axis="y", labelsize=9)
    return _save(fig, path)


def save_figures(frame, out_dir, thresholds=None, top_n=10):
    """Render all report charts into ``out_dir``; returns {name: path}."""
    out_dir = Path(out_dir)
    categorized = add_risk_category(frame, thresholds)
    summary = risk_summary(categorized, thresholds)
    return {
        "risk_distribution": plot_risk_distribution(categorized, out_dir / "risk_distribution.png", thresholds),
        "risk_category_chart": plot_risk_categories(summary, out_dir / "risk_category_chart.png"),
        "size_risk_scatter": plot_size_vs_risk(categorized, out_dir / "size_risk_scatter.png", thresholds),
        "top10_risk_sites": plot_top_sites(top_sites(categorized, top_n), out_dir / "top10_risk_sites.png"),
    }

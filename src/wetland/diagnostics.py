"""
Diagnostic plots for the lake/wetland profile pipeline.

Shows the conditioned DEM, flow accumulation, wetness index and class map of
one grid, and the elevation–area profile written to the parameter record.
"""

import logging
from pathlib import Path
from typing import Dict, Union

import numpy as np

from .profile import LakeParameterRecord
from .topographic_index import CellClass

logger = logging.getLogger(__name__)


def plot_wetness_grids(
    grids: Dict[str, np.ndarray],
    output_path: Union[str, Path],
    title_prefix: str = "Wetness Index",
) -> Path:
    """
    Generate a 4-panel figure of the intermediate grids.

    Panels:
    - Conditioned DEM
    - Flow accumulation (log scale)
    - Wetness index (log scale)
    - Cell classes (upland, wetland, water)

    Args:
        grids: Snapshot from a pipeline run with ``keep_grids=True``
        output_path: Path to save the plot
        title_prefix: Prefix for the figure title

    Returns:
        Path to saved plot
    """
    import matplotlib
    matplotlib.use("Agg")
    import matplotlib.pyplot as plt
    from matplotlib.colors import BoundaryNorm, ListedColormap

    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)

    valid = grids["valid"]
    conditioned = np.ma.masked_where(~valid, grids["conditioned"])
    accumulation = np.ma.masked_where(~valid, np.log10(np.maximum(grids["flow_accumulation"], 1.0)))
    wetness = np.ma.masked_where(~valid, np.log10(np.maximum(grids["wetness_index"], 1e-3)))
    classes = np.ma.masked_equal(grids["classes"], int(CellClass.NODATA))

    fig, axes = plt.subplots(2, 2, figsize=(12, 10))

    ax = axes[0, 0]
    im = ax.imshow(conditioned, cmap="terrain")
    ax.set_title("Conditioned DEM")
    plt.colorbar(im, ax=ax, label="Elevation (m)")

    ax = axes[0, 1]
    im = ax.imshow(accumulation, cmap="Blues")
    ax.set_title("Flow Accumulation")
    plt.colorbar(im, ax=ax, label="log10 area (m²)")

    ax = axes[1, 0]
    im = ax.imshow(wetness, cmap="viridis")
    ax.set_title("Wetness Index")
    plt.colorbar(im, ax=ax, label="log10 TWI")

    ax = axes[1, 1]
    class_cmap = ListedColormap(["#d9c89e", "#7fbf7b", "#2166ac"])
    norm = BoundaryNorm([-0.5, 0.5, 1.5, 2.5], class_cmap.N)
    im = ax.imshow(classes, cmap=class_cmap, norm=norm)
    ax.set_title("Cell Classes")
    cbar = plt.colorbar(im, ax=ax, ticks=[0, 1, 2])
    cbar.ax.set_yticklabels(["Upland", "Wetland", "Water"])

    for ax in axes.flat:
        ax.set_xticks([])
        ax.set_yticks([])

    fig.suptitle(title_prefix, fontsize=14, fontweight="bold")
    plt.tight_layout()
    fig.savefig(output_path, dpi=150, bbox_inches="tight")
    plt.close(fig)

    logger.info(f"Saved wetness diagnostics: {output_path}")
    return output_path


def plot_profile(
    record: LakeParameterRecord,
    output_path: Union[str, Path],
) -> Path:
    """
    Plot the elevation–area profile of a parameter record.

    Lake bins and wetland bins are drawn as separate step series, cumulative
    area fraction on the x axis and profile elevation on the y axis.
    """
    import matplotlib
    matplotlib.use("Agg")
    import matplotlib.pyplot as plt

    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)

    fig, ax = plt.subplots(figsize=(8, 6))

    if record.bins:
        for kind, color in (("lake", "#2166ac"), ("wetland", "#1b7837")):
            bins = [b for b in record.bins if b.kind == kind]
            if not bins:
                continue
            area = [b.cumulative_area for b in bins]
            elevation = [b.profile_elevation for b in bins]
            ax.step(area, elevation, where="post", color=color, marker="o", label=kind.title())
        ax.axhline(record.lake_depth, color="gray", linestyle="--", linewidth=1,
                   label=f"Lake depth {record.lake_depth:.2f} m")
        ax.legend(loc="upper left")
    else:
        ax.text(0.5, 0.5, "No lake or wetland area", ha="center", va="center",
                transform=ax.transAxes)

    ax.set_xlabel("Cumulative area fraction")
    ax.set_ylabel("Profile elevation (m)")
    ax.set_title(
        f"Grid {record.grid_id} ({record.output_format.value}): "
        f"water {record.water_fraction:.4f}, wetland {record.wetland_fraction:.4f}"
    )
    ax.grid(True, alpha=0.3)

    fig.savefig(output_path, dpi=150, bbox_inches="tight")
    plt.close(fig)

    logger.info(f"Saved profile plot: {output_path}")
    return output_path

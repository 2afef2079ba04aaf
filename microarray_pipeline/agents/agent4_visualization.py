"""
Agent 4: Visualization

Generates the DEG summary charts and top-variance heatmaps.

Input:
- deg_significant.csv: From Agent 3
- deg_significant_valid.csv: From Agent 3
- expression_relabeled.csv: From Agent 2

Output:
- figures/deg_per_chromosome.png
- figures/deg_per_chromosome_direction.png
- figures/deg_direction_percentage.png
- figures/heatmap_top_variance.png
- figures/clustermap_top_variance.png
- deg_counts_by_chromosome.csv, deg_counts_by_direction.csv, deg_direction_percentage.csv
- meta_agent4_visualization.json
"""

import numpy as np
import pandas as pd
from pathlib import Path
from typing import Any, Dict, List, Optional

import matplotlib
matplotlib.use('Agg')  # Non-interactive backend
import matplotlib.pyplot as plt
import seaborn as sns
from matplotlib.colors import LinearSegmentedColormap
from matplotlib.patches import Patch
from scipy.cluster.hierarchy import linkage
from scipy.spatial.distance import pdist

from ..utils.base_agent import BaseAgent
from ..utils.expression import (
    DIRECTION_COLUMN,
    DIRECTIONS,
    VALID_CHROMOSOMES,
    count_by_chromosome,
    count_by_chromosome_direction,
    direction_percentages,
    select_top_variance,
    zscore_rows,
)
from ..utils.sample_labels import sample_type_annotation

# black -> deep teal -> teal -> soft mint -> light sand
BLUE_GREEN_PALETTE = ["#000000", "#005F73", "#0A9396", "#94D2BD", "#E9D8A6"]


class VisualizationAgent(BaseAgent):
    """Agent for generating DEG charts and clustered heatmaps."""

    def __init__(
        self,
        input_dir: Path,
        output_dir: Path,
        config: Optional[Dict[str, Any]] = None
    ):
        default_config = {
            "probe_column": "Probe_ID",
            "chromosome_column": "Chromosome",
            "valid_chromosomes": list(VALID_CHROMOSOMES),
            "figure_format": ["png"],
            "dpi": 150,
            "style": "whitegrid",
            "figsize": {
                "chromosome": (10, 6),
                "percentage": (6, 6),
                "heatmap": (10, 12),
            },
            "top_variance_genes": 500,
            "heatmap_palette": "RdBu_r",
            "clustermap_palette": BLUE_GREEN_PALETTE,
            "direction_colors": {"Tumor": "red", "Normal": "darkgreen"},
            "percentage_colors": {"Tumor": "red", "Normal": "blue"},
            "sample_type_colors": {"Tumor": "#E74C3C", "Normal": "#3498DB"},
        }

        merged_config = {**default_config, **(config or {})}
        super().__init__("agent4_visualization", input_dir, output_dir, merged_config)

        # Create figures subdirectory
        self.figures_dir = self.output_dir / "figures"
        self.figures_dir.mkdir(exist_ok=True)

        # Set style
        sns.set_style(self.config["style"])
        plt.rcParams['font.size'] = 11
        plt.rcParams['axes.titlesize'] = 14

        self.deg_sig: Optional[pd.DataFrame] = None
        self.deg_valid: Optional[pd.DataFrame] = None
        self.expression: Optional[pd.DataFrame] = None

    def validate_inputs(self) -> bool:
        """Validate input files."""
        chrom_col = self.config["chromosome_column"]
        self.deg_sig = self.load_csv("deg_significant.csv", dtype={chrom_col: str})
        self.deg_valid = self.load_csv("deg_significant_valid.csv", dtype={chrom_col: str})
        self.expression = self.load_csv("expression_relabeled.csv", required=False)

        if DIRECTION_COLUMN not in self.deg_sig.columns:
            self.logger.error(f"'{DIRECTION_COLUMN}' column missing from DEG results")
            return False

        return True

    def _save_figure(self, fig: plt.Figure, name: str) -> List[str]:
        """Save figure in every configured format."""
        saved_files = []
        for fmt in self.config["figure_format"]:
            filepath = self.figures_dir / f"{name}.{fmt}"
            fig.savefig(filepath, dpi=self.config["dpi"], bbox_inches='tight',
                        facecolor='white', edgecolor='none')
            saved_files.append(str(filepath))
            self.logger.info(f"Saved {filepath.name}")
        plt.close(fig)
        return saved_files

    def _plot_chromosome_counts(self) -> Optional[List[str]]:
        """Bar chart of DEG count per chromosome."""
        chrom_col = self.config["chromosome_column"]
        if len(self.deg_valid) == 0:
            self.logger.warning("Skipping chromosome bar chart - no DEGs on valid chromosomes")
            return None

        self.logger.info("Generating DEGs per chromosome chart...")
        counts = count_by_chromosome(self.deg_valid, chrom_col, self.config["valid_chromosomes"])
        self.save_csv(counts, "deg_counts_by_chromosome.csv")

        fig, ax = plt.subplots(figsize=self.config["figsize"]["chromosome"])
        ax.bar(counts[chrom_col], counts["n"], color="steelblue")
        ax.set_xlabel("Chromosome")
        ax.set_ylabel("Number of DEGs")
        ax.set_title("DEGs per Chromosome")
        plt.setp(ax.get_xticklabels(), rotation=45, ha="right")
        plt.tight_layout()

        return self._save_figure(fig, "deg_per_chromosome")

    def _plot_chromosome_direction_counts(self) -> Optional[List[str]]:
        """Dodged bar chart of DEG count per chromosome and direction."""
        chrom_col = self.config["chromosome_column"]
        if len(self.deg_valid) == 0:
            self.logger.warning("Skipping chromosome/direction chart - no DEGs on valid chromosomes")
            return None

        self.logger.info("Generating DEGs by chromosome (Tumor vs Normal) chart...")
        counts = count_by_chromosome_direction(
            self.deg_valid, chrom_col, self.config["valid_chromosomes"]
        )
        self.save_csv(counts, "deg_counts_by_direction.csv")

        chromosomes = [c for c in self.config["valid_chromosomes"]
                       if c in set(counts[chrom_col])]
        x = np.arange(len(chromosomes))
        width = 0.4
        colors = self.config["direction_colors"]

        fig, ax = plt.subplots(figsize=self.config["figsize"]["chromosome"])
        for i, direction in enumerate(DIRECTIONS):
            subset = counts[counts[DIRECTION_COLUMN] == direction].set_index(chrom_col)["n"]
            heights = [int(subset.get(c, 0)) for c in chromosomes]
            ax.bar(x + (i - 0.5) * width, heights, width,
                   color=colors.get(direction, "gray"), label=direction)

        ax.set_xticks(x)
        ax.set_xticklabels(chromosomes, rotation=45, ha="right")
        ax.set_xlabel("Chromosome")
        ax.set_ylabel("DEG Count")
        ax.set_title("DEGs by Chromosome (Tumor vs Normal)")
        ax.legend(title=DIRECTION_COLUMN)
        plt.tight_layout()

        return self._save_figure(fig, "deg_per_chromosome_direction")

    def _plot_direction_percentage(self) -> Optional[List[str]]:
        """Percentage of significant DEGs higher in tumor vs normal."""
        if len(self.deg_sig) == 0:
            self.logger.warning("Skipping percentage chart - no significant DEGs")
            return None

        self.logger.info("Generating DEG percentage chart...")
        pct = direction_percentages(self.deg_sig)
        self.save_csv(pct, "deg_direction_percentage.csv")

        colors = self.config["percentage_colors"]
        fig, ax = plt.subplots(figsize=self.config["figsize"]["percentage"])
        bars = ax.bar(pct[DIRECTION_COLUMN], pct["Percentage"],
                      color=[colors.get(d, "gray") for d in pct[DIRECTION_COLUMN]])

        for bar, value in zip(bars, pct["Percentage"]):
            ax.text(bar.get_x() + bar.get_width() / 2, bar.get_height(),
                    f"{value}%", ha="center", va="bottom", fontsize=12)

        ax.set_ylim(0, max(pct["Percentage"].max() * 1.15, 1))
        ax.set_xlabel(DIRECTION_COLUMN)
        ax.set_ylabel("Percentage")
        ax.set_title("DEG Percentage (Tumor vs Normal)")
        plt.tight_layout()

        return self._save_figure(fig, "deg_direction_percentage")

    def _top_variance_zscores(self) -> Optional[pd.DataFrame]:
        """Row z-scores of the most variable probes, or None if too few to cluster."""
        if self.expression is None:
            self.logger.warning("Skipping heatmaps - no relabelled expression matrix")
            return None

        top, shortfall = select_top_variance(
            self.expression,
            self.config["probe_column"],
            int(self.config["top_variance_genes"]),
        )
        if shortfall:
            self.logger.warning(f"Top-variance selection clamped to {len(top)} probes")

        if top.shape[0] < 2 or top.shape[1] < 2:
            self.logger.warning(f"Skipping heatmaps - need at least 2x2 values, got {top.shape}")
            return None

        return zscore_rows(top)

    def _column_colors(self, columns) -> pd.Series:
        palette = self.config["sample_type_colors"]
        types = sample_type_annotation(columns)
        return pd.Series([palette[t] for t in types], index=columns, name="Type")

    def _draw_clustermap(
        self,
        zscores: pd.DataFrame,
        name: str,
        title: str,
        cmap,
        row_linkage=None,
        col_linkage=None,
        method: str = "complete",
        metric: str = "euclidean"
    ) -> List[str]:
        col_colors = self._column_colors(zscores.columns)

        g = sns.clustermap(
            zscores,
            cmap=cmap,
            method=method,
            metric=metric,
            row_linkage=row_linkage,
            col_linkage=col_linkage,
            col_colors=col_colors,
            yticklabels=False,
            xticklabels=True,
            figsize=self.config["figsize"]["heatmap"],
            dendrogram_ratio=(0.12, 0.08),
            colors_ratio=0.02,
            cbar_pos=(0.02, 0.8, 0.03, 0.15),
        )

        g.ax_heatmap.set_xlabel("Samples")
        g.ax_heatmap.set_ylabel("Probes")
        plt.setp(g.ax_heatmap.get_xticklabels(), rotation=45, ha="right", fontsize=8)
        g.cax.set_ylabel("Z-score", rotation=90)
        g.cax.yaxis.set_label_position("left")
        g.figure.suptitle(title, fontsize=12, fontweight="bold", y=1.02)

        palette = self.config["sample_type_colors"]
        legend_patches = [Patch(facecolor=palette[t], label=t) for t in DIRECTIONS]
        g.ax_heatmap.legend(handles=legend_patches, loc="upper left",
                            bbox_to_anchor=(1.02, 1), title="Type", frameon=True)

        return self._save_figure(g.figure, name)

    def _plot_heatmap(self, zscores: Optional[pd.DataFrame]) -> Optional[List[str]]:
        """Complete-linkage Euclidean heatmap of top-variance probes."""
        if zscores is None:
            return None

        self.logger.info(f"Generating heatmap of top {len(zscores)} variable probes...")
        return self._draw_clustermap(
            zscores,
            "heatmap_top_variance",
            f"Top {len(zscores)} Most Variable Genes",
            cmap=self.config["heatmap_palette"],
            method="complete",
            metric="euclidean",
        )

    def _plot_clustermap(self, zscores: Optional[pd.DataFrame]) -> Optional[List[str]]:
        """Ward linkage on correlation distance, blue-green palette."""
        if zscores is None:
            return None

        self.logger.info("Generating correlation/Ward clustermap...")

        # Ward on precomputed condensed correlation distances
        row_dist = np.nan_to_num(pdist(zscores.values, metric="correlation"), nan=1.0)
        col_dist = np.nan_to_num(pdist(zscores.values.T, metric="correlation"), nan=1.0)
        row_linkage = linkage(row_dist, method="ward")
        col_linkage = linkage(col_dist, method="ward")

        cmap = LinearSegmentedColormap.from_list(
            "blue_green", self.config["clustermap_palette"], N=100
        )
        return self._draw_clustermap(
            zscores,
            "clustermap_top_variance",
            "Enhanced Clustermap (Correlation, Ward)",
            cmap=cmap,
            row_linkage=row_linkage,
            col_linkage=col_linkage,
        )

    def run(self) -> Dict[str, Any]:
        """Generate all visualizations."""
        generated_figures = []
        failed_figures = []

        zscores = None
        try:
            zscores = self._top_variance_zscores()
        except Exception as e:
            self.logger.error(f"Error selecting top-variance probes: {e}")

        figure_functions = [
            ("deg_per_chromosome", self._plot_chromosome_counts),
            ("deg_per_chromosome_direction", self._plot_chromosome_direction_counts),
            ("deg_direction_percentage", self._plot_direction_percentage),
            ("heatmap_top_variance", lambda: self._plot_heatmap(zscores)),
            ("clustermap_top_variance", lambda: self._plot_clustermap(zscores)),
        ]

        for name, func in figure_functions:
            try:
                result = func()
                if result:
                    generated_figures.extend(result)
                else:
                    failed_figures.append(name)
            except Exception as e:
                self.logger.error(f"Error generating {name}: {e}")
                failed_figures.append(name)

        self.logger.info(f"Visualization Complete:")
        self.logger.info(f"  Generated: {len(generated_figures)} files")
        self.logger.info(f"  Failed/Skipped: {len(failed_figures)}")

        return {
            "figures_generated": generated_figures,
            "failed_figures": failed_figures,
            "total_generated": len(generated_figures),
            "heatmap_probes": 0 if zscores is None else len(zscores),
        }

    def validate_outputs(self) -> bool:
        """Validate visualization outputs."""
        if not self.figures_dir.exists():
            self.logger.error("Figures directory not created")
            return False

        if not list(self.figures_dir.glob("*")):
            self.logger.warning("No figures generated")
            # Still valid if input data was limited

        return True

"""
Agent 3: Differential Expression Gene (DEG) Analysis

Compares mean tumor and mean normal expression per probe and keeps probes
with a large fold change on a recognised chromosome.

Input:
- tumor_matrix.csv: From Agent 2
- normal_matrix.csv: From Agent 2
- gene_info.csv: From Agent 1

Output:
- fold_change_all.csv: Means and log2FC for every probe
- deg_significant.csv: |log2FC| > cutoff, annotated, any chromosome
- deg_significant_valid.csv: Same, restricted to chromosomes 1-22, X, Y, MT
- filter_counts.json: Rows kept/dropped at each filter
- meta_agent3_deg.json: Execution metadata
"""

import numpy as np
import pandas as pd
from pathlib import Path
from typing import Any, Dict, Optional

from ..utils.base_agent import BaseAgent
from ..utils.expression import (
    DIRECTION_COLUMN,
    VALID_CHROMOSOMES,
    add_fold_change,
    annotate,
    drop_undefined,
    filter_significant,
    filter_valid_chromosomes,
    group_means,
    summarize_filters,
)


class DEGAgent(BaseAgent):
    """Agent for fold-change based differential expression analysis."""

    def __init__(
        self,
        input_dir: Path,
        output_dir: Path,
        config: Optional[Dict[str, Any]] = None
    ):
        default_config = {
            "probe_column": "Probe_ID",
            "chromosome_column": "Chromosome",
            "log2fc_cutoff": 5.0,
            "valid_chromosomes": list(VALID_CHROMOSOMES),
        }

        merged_config = {**default_config, **(config or {})}
        super().__init__("agent3_deg", input_dir, output_dir, merged_config)

        self.tumor: Optional[pd.DataFrame] = None
        self.normal: Optional[pd.DataFrame] = None
        self.gene_info: Optional[pd.DataFrame] = None

    def validate_inputs(self) -> bool:
        """Validate group matrices and gene annotation."""
        probe_col = self.config["probe_column"]
        chrom_col = self.config["chromosome_column"]

        self.tumor = self.load_csv("tumor_matrix.csv")
        self.normal = self.load_csv("normal_matrix.csv")
        self.gene_info = self.load_csv("gene_info.csv", dtype={chrom_col: str})

        for name, df in (("tumor_matrix", self.tumor), ("normal_matrix", self.normal),
                         ("gene_info", self.gene_info)):
            if probe_col not in df.columns:
                self.logger.error(f"Probe column '{probe_col}' not in {name}")
                return False

        if chrom_col not in self.gene_info.columns:
            self.logger.error(f"Chromosome column '{chrom_col}' not in gene_info")
            return False

        self.logger.info(f"Tumor samples: {self.tumor.shape[1] - 1}")
        self.logger.info(f"Normal samples: {self.normal.shape[1] - 1}")

        return True

    def run(self) -> Dict[str, Any]:
        """Execute DEG analysis."""
        probe_col = self.config["probe_column"]
        chrom_col = self.config["chromosome_column"]
        cutoff = float(self.config["log2fc_cutoff"])

        means = group_means(self.tumor, self.normal, probe_col)
        fc_table = add_fold_change(means)
        self.save_csv(fc_table, "fold_change_all.csv")

        n_inf = int(np.isinf(fc_table["log2FC"]).sum())
        if n_inf:
            self.logger.warning(
                f"{n_inf} probe(s) have an infinite log2FC (equal means or zero normal mean); "
                "they are kept and pass the cutoff"
            )

        fc_clean = drop_undefined(fc_table)
        significant = filter_significant(fc_clean, cutoff)
        annotated = annotate(significant, self.gene_info, probe_col)
        valid = filter_valid_chromosomes(
            annotated, chrom_col, self.config["valid_chromosomes"]
        )

        filter_counts = {
            "total_probes": len(fc_table),
            "dropped_nan_log2fc": len(fc_table) - len(fc_clean),
            "dropped_below_cutoff": len(fc_clean) - len(significant),
            "dropped_unannotated": len(significant) - len(annotated),
            "dropped_invalid_chromosome": len(annotated) - len(valid),
            "significant": len(annotated),
            "significant_valid_chromosome": len(valid),
        }
        self.logger.info(f"Filter counts: {summarize_filters(filter_counts)}")

        self.save_csv(annotated, "deg_significant.csv")
        self.save_csv(valid, "deg_significant_valid.csv")
        self.save_json(filter_counts, "filter_counts.json")

        tumor_count = int((annotated[DIRECTION_COLUMN] == "Tumor").sum())
        normal_count = int((annotated[DIRECTION_COLUMN] == "Normal").sum())

        self.logger.info(f"DEG Analysis Complete:")
        self.logger.info(f"  Total probes analyzed: {len(fc_table)}")
        self.logger.info(f"  Significant DEGs: {len(annotated)}")
        self.logger.info(f"  On valid chromosomes: {len(valid)}")
        self.logger.info(f"  Higher in tumor: {tumor_count}")
        self.logger.info(f"  Higher in normal: {normal_count}")

        return {
            "total_probes": len(fc_table),
            "deg_count": len(annotated),
            "deg_valid_count": len(valid),
            "tumor_high_count": tumor_count,
            "normal_high_count": normal_count,
            "infinite_log2fc_count": n_inf,
            "log2fc_cutoff": cutoff,
            "filter_counts": filter_counts,
        }

    def validate_outputs(self) -> bool:
        """Validate DEG outputs."""
        required_files = [
            "fold_change_all.csv",
            "deg_significant.csv",
            "deg_significant_valid.csv",
            "filter_counts.json",
        ]

        for filename in required_files:
            filepath = self.output_dir / filename
            if not filepath.exists():
                self.logger.error(f"Missing output file: {filename}")
                return False

        sig_df = pd.read_csv(self.output_dir / "deg_significant.csv")

        if len(sig_df) == 0:
            self.logger.warning("No significant DEGs found (this may be expected)")
            # Still valid, just a warning

        # Check no NaN log2FC survived
        if sig_df["log2FC"].isna().any():
            self.logger.error("NaN values found in log2FC column")
            return False

        return True

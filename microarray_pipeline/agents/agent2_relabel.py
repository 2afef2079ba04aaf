"""
Agent 2: Sample Relabelling & Tumor/Normal Partitioning

Cleans the sample sheet, renames the expression columns from raw sample ids
(GSM...) to canonical "<tissue>_<patient>" labels and splits the matrix into
tumor and normal groups.

Input:
- expression_raw.csv: From Agent 1
- sample_info.csv: From Agent 1

Output:
- sample_metadata.csv: Cleaned sample sheet (group, tissue, patient, new_name)
- rename_map.json: Raw sample id -> canonical label
- column_classes.csv: Per-column label and Tumor/Normal/Unclassified tag
- expression_relabeled.csv: Expression matrix with canonical labels
- tumor_matrix.csv: Probe id + tumor columns
- normal_matrix.csv: Probe id + normal columns
- meta_agent2_relabel.json: Execution metadata
"""

import pandas as pd
from pathlib import Path
from typing import Any, Dict, Optional

from ..utils.base_agent import BaseAgent
from ..utils.sample_labels import (
    SampleClass,
    build_rename_map,
    classify_columns,
    clean_sample_metadata,
    partition_matrix,
    relabel_columns,
)


class RelabelAgent(BaseAgent):
    """Agent for sample-sheet cleaning and column relabelling."""

    def __init__(
        self,
        input_dir: Path,
        output_dir: Path,
        config: Optional[Dict[str, Any]] = None
    ):
        default_config = {
            "group_column": "group",
            "label_column": "patient",
            "prefix_case_sensitive": False,
        }

        merged_config = {**default_config, **(config or {})}
        super().__init__("agent2_relabel", input_dir, output_dir, merged_config)

        self.expression: Optional[pd.DataFrame] = None
        self.sample_info: Optional[pd.DataFrame] = None

    def validate_inputs(self) -> bool:
        """Validate expression matrix and sample sheet."""
        self.expression = self.load_csv("expression_raw.csv")
        self.sample_info = self.load_csv("sample_info.csv", dtype=str)

        for col in (self.config["group_column"], self.config["label_column"]):
            if col not in self.sample_info.columns:
                self.logger.error(f"Column '{col}' not in sample information")
                return False

        if self.expression.shape[1] < 2:
            self.logger.error("Expression matrix has no sample columns")
            return False

        return True

    def run(self) -> Dict[str, Any]:
        """Build the rename lookup, relabel and partition."""
        cleaned = clean_sample_metadata(
            self.sample_info,
            group_column=self.config["group_column"],
            label_column=self.config["label_column"],
        )
        self.save_csv(cleaned, "sample_metadata.csv")

        missing_patient = int(cleaned["new_name"].isna().sum())
        if missing_patient:
            self.logger.warning(
                f"{missing_patient} sample(s) have no parseable patient number; "
                "they get no canonical label and are left out of both groups"
            )

        rename_map = build_rename_map(cleaned)
        duplicates = len(cleaned) - len(rename_map)
        if duplicates:
            self.logger.warning(f"{duplicates} duplicate sample id(s) in sample sheet; last entry wins")
        self.save_json(rename_map, "rename_map.json")

        raw_ids = [str(c) for c in self.expression.columns[1:]]
        relabeled, unresolved = relabel_columns(self.expression, rename_map)
        if unresolved:
            self.logger.info(f"{len(unresolved)} column(s) without a canonical label: {unresolved}")

        labels = list(relabeled.columns[1:])
        classes = classify_columns(labels, case_sensitive=self.config["prefix_case_sensitive"])
        column_classes = pd.DataFrame({
            "position": range(1, len(labels) + 1),
            "raw_id": raw_ids,
            "label": labels,
            "sample_class": [c.value for c in classes],
        })
        self.save_csv(column_classes, "column_classes.csv")

        tumor, normal = partition_matrix(relabeled, classes)
        n_unclassified = sum(c == SampleClass.UNCLASSIFIED for c in classes)

        self.logger.info(f"Updated column names: {labels}")
        self.logger.info(f"Tumor: {tumor.shape[0]} x {tumor.shape[1]}")
        self.logger.info(f"Normal: {normal.shape[0]} x {normal.shape[1]}")
        if n_unclassified:
            self.logger.info(f"Unclassified columns (in neither group): {n_unclassified}")

        self.save_csv(relabeled, "expression_relabeled.csv")
        self.save_csv(tumor, "tumor_matrix.csv")
        self.save_csv(normal, "normal_matrix.csv")

        return {
            "n_samples": len(labels),
            "n_tumor": tumor.shape[1] - 1,
            "n_normal": normal.shape[1] - 1,
            "n_unclassified": n_unclassified,
            "n_missing_patient": missing_patient,
            "unresolved_columns": unresolved,
        }

    def validate_outputs(self) -> bool:
        """Validate relabelling outputs."""
        required_files = [
            "sample_metadata.csv",
            "rename_map.json",
            "column_classes.csv",
            "expression_relabeled.csv",
            "tumor_matrix.csv",
            "normal_matrix.csv",
        ]

        for filename in required_files:
            if not (self.output_dir / filename).exists():
                self.logger.error(f"Missing output file: {filename}")
                return False

        classes = pd.read_csv(self.output_dir / "column_classes.csv")
        if not (classes["sample_class"] == SampleClass.TUMOR.value).any():
            self.logger.warning("No tumor columns found (tumor means will be missing)")
        if not (classes["sample_class"] == SampleClass.NORMAL.value).any():
            self.logger.warning("No normal columns found (normal means will be missing)")

        return True

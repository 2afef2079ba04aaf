"""
Agent 1: Ingestion & Validation

Checks that the three study files are present, then loads them.

Input:
- Gene_Expression_Data.xlsx: Expression matrix (probes x samples, first column = probe id)
- Gene_Information.csv: Per-probe gene annotation (probe id, chromosome, ...)
- Sample_Information.tsv: Sample sheet (group id, composite tissue/patient field)

Output:
- expression_raw.csv: Expression matrix as loaded
- gene_info.csv: Gene annotation as loaded
- sample_info.csv: Sample sheet as loaded
- meta_agent1_ingest.json: Execution metadata
"""

import pandas as pd
from pathlib import Path
from typing import Any, Dict, Optional

from ..utils.base_agent import BaseAgent

DEFAULT_EXPECTED_FILES = {
    "expr": "Gene_Expression_Data.xlsx",
    "info": "Gene_Information.csv",
    "sample": "Sample_Information.tsv",
}


class IngestAgent(BaseAgent):
    """Agent for locating and loading the study input files."""

    OUTPUT_FILES = {
        "expr": "expression_raw.csv",
        "info": "gene_info.csv",
        "sample": "sample_info.csv",
    }

    def __init__(
        self,
        input_dir: Path,
        output_dir: Path,
        config: Optional[Dict[str, Any]] = None
    ):
        default_config = {
            "expected_files": dict(DEFAULT_EXPECTED_FILES),
            "chromosome_column": "Chromosome",
            "excel_sheet": 0,
        }

        merged_config = {**default_config, **(config or {})}
        super().__init__("agent1_ingest", input_dir, output_dir, merged_config)

        self.paths: Dict[str, Path] = {}
        self.expression: Optional[pd.DataFrame] = None
        self.gene_info: Optional[pd.DataFrame] = None
        self.sample_info: Optional[pd.DataFrame] = None

    def validate_inputs(self) -> bool:
        """Every expected file must exist before anything is read."""
        expected = {**DEFAULT_EXPECTED_FILES, **self.config["expected_files"]}
        for key in ("expr", "info", "sample"):
            self.paths[key] = self.require_file(expected[key])
            self.logger.info(f"Found {self.paths[key]}")
        return True

    def _read_expression(self) -> pd.DataFrame:
        path = self.paths["expr"]
        if path.suffix.lower() in (".xlsx", ".xlsm"):
            return pd.read_excel(path, sheet_name=self.config["excel_sheet"], engine="openpyxl")
        if path.suffix.lower() in (".tsv", ".txt"):
            return pd.read_csv(path, sep="\t")
        return pd.read_csv(path)

    def run(self) -> Dict[str, Any]:
        """Load the three tables and re-serialise them as CSV."""
        chrom_col = self.config["chromosome_column"]

        self.expression = self._read_expression()
        self.gene_info = pd.read_csv(self.paths["info"], dtype={chrom_col: str})
        self.sample_info = pd.read_csv(self.paths["sample"], sep="\t")

        self.logger.info("Imported data:")
        self.logger.info(f"  Expression: {self.expression.shape[0]} x {self.expression.shape[1]}")
        self.logger.info(f"  Gene info: {self.gene_info.shape[0]} x {self.gene_info.shape[1]}")
        self.logger.info(f"  Sample info: {self.sample_info.shape[0]} x {self.sample_info.shape[1]}")

        if chrom_col not in self.gene_info.columns:
            self.logger.warning(f"Gene information has no '{chrom_col}' column")

        self.save_csv(self.expression, self.OUTPUT_FILES["expr"])
        self.save_csv(self.gene_info, self.OUTPUT_FILES["info"])
        self.save_csv(self.sample_info, self.OUTPUT_FILES["sample"])

        return {
            "input_files": {k: str(v) for k, v in self.paths.items()},
            "expression_shape": list(self.expression.shape),
            "gene_info_shape": list(self.gene_info.shape),
            "sample_info_shape": list(self.sample_info.shape),
        }

    def validate_outputs(self) -> bool:
        """Validate ingestion outputs."""
        for filename in self.OUTPUT_FILES.values():
            if not (self.output_dir / filename).exists():
                self.logger.error(f"Missing output file: {filename}")
                return False

        if self.expression is not None and self.expression.shape[1] < 2:
            self.logger.error("Expression matrix has no sample columns")
            return False

        return True

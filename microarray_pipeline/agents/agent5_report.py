"""
Agent 5: Summary Report

Collects the numbers produced by the earlier agents into a plain-text
summary (also printed to the console) and a JSON summary.

Input:
- meta_agent1_ingest.json, meta_agent2_relabel.json, meta_agent4_visualization.json
- filter_counts.json: From Agent 3
- deg_significant.csv, deg_significant_valid.csv: From Agent 3

Output:
- summary.txt
- summary.json
- meta_agent5_report.json
"""

import pandas as pd
from pathlib import Path
from typing import Any, Dict, List, Optional

from ..utils.base_agent import BaseAgent
from ..utils.expression import (
    VALID_CHROMOSOMES,
    count_by_chromosome,
    direction_percentages,
)


class ReportAgent(BaseAgent):
    """Agent for the end-of-run summary."""

    def __init__(
        self,
        input_dir: Path,
        output_dir: Path,
        config: Optional[Dict[str, Any]] = None
    ):
        default_config = {
            "chromosome_column": "Chromosome",
            "valid_chromosomes": list(VALID_CHROMOSOMES),
            "print_summary": True,
            "top_probes": 10,
        }

        merged_config = {**default_config, **(config or {})}
        super().__init__("agent5_report", input_dir, output_dir, merged_config)

        self.filter_counts: Optional[Dict] = None
        self.deg_sig: Optional[pd.DataFrame] = None
        self.deg_valid: Optional[pd.DataFrame] = None
        self.meta: Dict[str, Optional[Dict]] = {}

    def validate_inputs(self) -> bool:
        """Validate DEG outputs; agent metadata is optional."""
        chrom_col = self.config["chromosome_column"]
        self.filter_counts = self.load_json("filter_counts.json")
        self.deg_sig = self.load_csv("deg_significant.csv", dtype={chrom_col: str})
        self.deg_valid = self.load_csv("deg_significant_valid.csv", dtype={chrom_col: str})

        for agent in ("agent1_ingest", "agent2_relabel", "agent4_visualization"):
            self.meta[agent] = self.load_json(f"meta_{agent}.json", required=False)

        return True

    def _format_table(self, df: pd.DataFrame) -> List[str]:
        if len(df) == 0:
            return ["  (none)"]
        return ["  " + line for line in df.to_string(index=False).splitlines()]

    def build_summary(self) -> Dict[str, Any]:
        """Assemble the summary numbers."""
        chrom_col = self.config["chromosome_column"]
        ingest = self.meta.get("agent1_ingest") or {}
        relabel = self.meta.get("agent2_relabel") or {}
        visual = self.meta.get("agent4_visualization") or {}

        pct = direction_percentages(self.deg_sig)
        per_chrom = count_by_chromosome(
            self.deg_valid, chrom_col, self.config["valid_chromosomes"]
        )

        return {
            "expression_shape": ingest.get("expression_shape"),
            "gene_info_shape": ingest.get("gene_info_shape"),
            "sample_info_shape": ingest.get("sample_info_shape"),
            "n_tumor_samples": relabel.get("n_tumor"),
            "n_normal_samples": relabel.get("n_normal"),
            "n_unclassified_samples": relabel.get("n_unclassified"),
            "filter_counts": self.filter_counts,
            "direction_percentages": pct.to_dict(orient="records"),
            "deg_per_chromosome": per_chrom.to_dict(orient="records"),
            "figures_generated": visual.get("figures_generated", []),
            "failed_figures": visual.get("failed_figures", []),
        }

    def render_text(self, summary: Dict[str, Any]) -> str:
        """Plain-text rendering of the summary."""
        chrom_col = self.config["chromosome_column"]
        lines = ["=" * 60, "MICROARRAY DEG SUMMARY", "=" * 60]

        for key, label in (("expression_shape", "Expression"),
                           ("gene_info_shape", "Gene info"),
                           ("sample_info_shape", "Sample info")):
            if summary.get(key):
                lines.append(f"{label}: {summary[key][0]} x {summary[key][1]}")

        if summary.get("n_tumor_samples") is not None:
            lines.append(
                f"Samples: {summary['n_tumor_samples']} tumor, "
                f"{summary['n_normal_samples']} normal, "
                f"{summary['n_unclassified_samples']} unclassified"
            )

        lines.append("")
        lines.append("Filter steps:")
        for name, value in (summary.get("filter_counts") or {}).items():
            lines.append(f"  {name}: {value}")

        lines.append("")
        lines.append("DEG direction (all significant DEGs):")
        lines.extend(self._format_table(pd.DataFrame(summary["direction_percentages"])))

        lines.append("")
        lines.append("DEGs per chromosome:")
        lines.extend(self._format_table(
            pd.DataFrame(summary["deg_per_chromosome"], columns=[chrom_col, "n"])
        ))

        n_top = int(self.config["top_probes"])
        if len(self.deg_valid) and n_top > 0:
            top = self.deg_valid.reindex(
                self.deg_valid["log2FC"].abs().sort_values(ascending=False).index
            ).head(n_top)
            lines.append("")
            lines.append(f"Top {len(top)} DEGs by |log2FC|:")
            lines.extend(self._format_table(top))

        lines.append("")
        lines.append(f"Figures generated: {len(summary['figures_generated'])}")
        for path in summary["figures_generated"]:
            lines.append(f"  {Path(path).name}")
        if summary["failed_figures"]:
            lines.append(f"Figures skipped: {', '.join(summary['failed_figures'])}")

        return "\n".join(lines) + "\n"

    def run(self) -> Dict[str, Any]:
        """Write the text and JSON summaries."""
        summary = self.build_summary()
        text = self.render_text(summary)

        with open(self.output_dir / "summary.txt", "w", encoding="utf-8") as f:
            f.write(text)
        self.logger.info("Saved summary.txt")
        self.save_json(summary, "summary.json")

        if self.config["print_summary"]:
            print(text)

        return {
            "deg_count": len(self.deg_sig),
            "deg_valid_count": len(self.deg_valid),
        }

    def validate_outputs(self) -> bool:
        """Validate report outputs."""
        for filename in ("summary.txt", "summary.json"):
            if not (self.output_dir / filename).exists():
                self.logger.error(f"Missing output file: {filename}")
                return False
        return True

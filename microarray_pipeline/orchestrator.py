"""
Microarray DEG Pipeline Orchestrator

Coordinates the execution of the tumor/normal microarray analysis.

Usage:
    from microarray_pipeline import MicroarrayPipeline

    pipeline = MicroarrayPipeline(
        input_dir="./data",
        output_dir="./results",
        config={"log2fc_cutoff": 5.0}
    )

    # Run full pipeline
    results = pipeline.run()

    # Or run specific agents
    pipeline.run_agent("agent1_ingest")
    pipeline.run_from("agent3_deg")  # Resume from agent 3

Pipeline:
    Ingest → Relabel → DEG → Visualization → Report
"""

import json
import shutil
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional
import logging

from .agents import (
    IngestAgent,
    RelabelAgent,
    DEGAgent,
    VisualizationAgent,
    ReportAgent,
)


class MicroarrayPipeline:
    """Orchestrator for the microarray DEG pipeline."""

    AGENT_ORDER = [
        "agent1_ingest",
        "agent2_relabel",
        "agent3_deg",
        "agent4_visualization",
        "agent5_report",
    ]

    AGENT_CLASSES = {
        "agent1_ingest": IngestAgent,
        "agent2_relabel": RelabelAgent,
        "agent3_deg": DEGAgent,
        "agent4_visualization": VisualizationAgent,
        "agent5_report": ReportAgent,
    }

    # Define which outputs each agent needs from previous agents
    AGENT_DEPENDENCIES = {
        "agent1_ingest": [],
        "agent2_relabel": ["expression_raw.csv", "sample_info.csv"],
        "agent3_deg": ["tumor_matrix.csv", "normal_matrix.csv", "gene_info.csv"],
        "agent4_visualization": [
            "deg_significant.csv", "deg_significant_valid.csv", "expression_relabeled.csv"
        ],
        "agent5_report": ["filter_counts.json", "deg_significant.csv", "deg_significant_valid.csv"],
    }

    def __init__(
        self,
        input_dir: Path,
        output_dir: Path,
        config: Optional[Dict[str, Any]] = None
    ):
        self.input_dir = Path(input_dir)
        self.output_dir = Path(output_dir)
        self.config = config or {}

        # Create output directory with timestamp
        timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        self.run_dir = self.output_dir / f"run_{timestamp}"
        self.run_dir.mkdir(parents=True, exist_ok=True)

        self.logger = self._setup_logging()

        # Track execution state
        self.execution_state = {
            "run_id": timestamp,
            "start_time": None,
            "end_time": None,
            "completed_agents": [],
            "failed_agents": [],
            "agent_results": {}
        }

    def _setup_logging(self) -> logging.Logger:
        """Setup pipeline-level logging."""
        logger = logging.getLogger("microarray_pipeline")
        logger.setLevel(logging.DEBUG)

        for handler in list(logger.handlers):
            handler.close()
        logger.handlers.clear()

        # File handler
        log_file = self.run_dir / "pipeline.log"
        fh = logging.FileHandler(log_file, mode='w', encoding='utf-8')
        fh.setLevel(logging.DEBUG)

        # Console handler
        ch = logging.StreamHandler()
        ch.setLevel(logging.INFO)

        formatter = logging.Formatter(
            '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
        )
        fh.setFormatter(formatter)
        ch.setFormatter(formatter)

        logger.addHandler(fh)
        logger.addHandler(ch)

        return logger

    def _get_agent_input_dir(self, agent_name: str) -> Path:
        """Determine input directory for an agent."""
        # First agent reads the study files directly
        if agent_name == "agent1_ingest":
            return self.input_dir

        # Later agents use accumulated outputs
        return self.run_dir / "accumulated"

    def _accumulate_outputs(self, agent_name: str) -> None:
        """Copy agent outputs to accumulated directory for next agents."""
        accumulated_dir = self.run_dir / "accumulated"
        accumulated_dir.mkdir(exist_ok=True)

        agent_output_dir = self.run_dir / agent_name

        if not agent_output_dir.exists():
            return

        # Copy all CSV and JSON files
        for pattern in ["*.csv", "*.json"]:
            for f in agent_output_dir.glob(pattern):
                shutil.copy2(f, accumulated_dir / f.name)

    def missing_dependencies(self, agent_name: str) -> List[str]:
        """Files an agent needs that are not yet in the accumulated directory."""
        accumulated_dir = self.run_dir / "accumulated"
        return [
            name for name in self.AGENT_DEPENDENCIES.get(agent_name, [])
            if not (accumulated_dir / name).exists()
        ]

    def run_agent(self, agent_name: str, config_override: Optional[Dict] = None) -> Dict[str, Any]:
        """Run a single agent."""
        if agent_name not in self.AGENT_CLASSES:
            raise ValueError(f"Unknown agent: {agent_name}")

        self.logger.info(f"{'='*60}")
        self.logger.info(f"Running {agent_name}")
        self.logger.info(f"{'='*60}")

        missing = self.missing_dependencies(agent_name)
        if missing:
            self.logger.warning(f"{agent_name} is missing upstream outputs: {missing}")

        # Merge configs
        agent_config = {**self.config, **(config_override or {})}

        # Get directories
        input_dir = self._get_agent_input_dir(agent_name)
        output_dir = self.run_dir / agent_name

        # Instantiate and run
        AgentClass = self.AGENT_CLASSES[agent_name]
        agent = AgentClass(
            input_dir=input_dir,
            output_dir=output_dir,
            config=agent_config
        )

        try:
            results = agent.execute()
            self.execution_state["completed_agents"].append(agent_name)
            self.execution_state["agent_results"][agent_name] = results

            # Accumulate outputs for next agents
            self._accumulate_outputs(agent_name)

            return results

        except Exception as e:
            self.logger.error(f"Agent {agent_name} failed: {e}")
            self.execution_state["failed_agents"].append(agent_name)
            raise

    def _run_sequence(self, agents_to_run: List[str]) -> None:
        """Run agents in order, stopping at the first failure."""
        for agent_name in agents_to_run:
            try:
                self.run_agent(agent_name)
            except Exception as e:
                self.logger.error(f"Pipeline stopped at {agent_name}: {e}")
                self.execution_state["error"] = str(e)
                self.execution_state["end_time"] = datetime.now().isoformat()
                self._save_execution_state()
                raise

    def run(self, stop_after: Optional[str] = None) -> Dict[str, Any]:
        """Run the full pipeline or until a specific agent."""
        self.execution_state["start_time"] = datetime.now().isoformat()

        self.logger.info("Starting Microarray DEG Pipeline")
        self.logger.info(f"Input directory: {self.input_dir}")
        self.logger.info(f"Run directory: {self.run_dir}")

        # Determine which agents to run
        if stop_after:
            if stop_after not in self.AGENT_ORDER:
                raise ValueError(f"Unknown agent: {stop_after}")
            stop_idx = self.AGENT_ORDER.index(stop_after) + 1
            agents_to_run = self.AGENT_ORDER[:stop_idx]
        else:
            agents_to_run = self.AGENT_ORDER

        self.logger.info(f"Agents to run: {agents_to_run}")

        self._run_sequence(agents_to_run)

        # Finalize
        self.execution_state["end_time"] = datetime.now().isoformat()
        self._save_execution_state()

        self.logger.info(f"{'='*60}")
        self.logger.info("Pipeline Complete")
        self.logger.info(f"Completed: {len(self.execution_state['completed_agents'])} agents")
        self.logger.info(f"Results: {self.run_dir}")
        self.logger.info(f"{'='*60}")

        return self.execution_state

    def run_from(self, agent_name: str) -> Dict[str, Any]:
        """Resume pipeline from a specific agent."""
        if agent_name not in self.AGENT_ORDER:
            raise ValueError(f"Unknown agent: {agent_name}")

        start_idx = self.AGENT_ORDER.index(agent_name)
        agents_to_run = self.AGENT_ORDER[start_idx:]

        self.logger.info(f"Resuming from {agent_name}")

        self._run_sequence(agents_to_run)
        self._save_execution_state()
        return self.execution_state

    def _save_execution_state(self) -> None:
        """Save execution state to JSON."""
        state_file = self.run_dir / "pipeline_summary.json"
        with open(state_file, 'w', encoding='utf-8') as f:
            json.dump(self.execution_state, f, indent=2, default=str)


def load_config(path: Path) -> Dict[str, Any]:
    """Load a pipeline config from a JSON file."""
    config_path = Path(path)
    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    try:
        with open(config_path, 'r', encoding='utf-8') as f:
            data = json.load(f)
    except json.JSONDecodeError as exc:
        raise ValueError(
            f"Invalid JSON in config '{config_path}' at line {exc.lineno}, "
            f"column {exc.colno}: {exc.msg}"
        ) from exc

    if not isinstance(data, dict):
        raise ValueError(
            f"Invalid config root in '{config_path}': expected JSON object, got {type(data).__name__}."
        )
    return data


def create_sample_data(output_dir: Path, n_probes: int = 600, n_patients: int = 6) -> None:
    """Create a synthetic tumor/normal microarray study for testing the pipeline."""
    import numpy as np
    import pandas as pd

    output_dir = Path(output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)

    rng = np.random.default_rng(42)

    probes = [f"{200000 + i}_at" for i in range(n_probes)]

    # One tumor and one normal array per patient, GEO-style raw ids
    samples = []
    for patient in range(1, n_patients + 1):
        samples.append((f"GSM{1000 + 2 * patient}", "tumor", patient))
        samples.append((f"GSM{1001 + 2 * patient}", "normal", patient))

    # Log-normal intensities, always positive
    values = rng.lognormal(mean=6, sigma=1, size=(n_probes, len(samples)))
    is_tumor = np.array([tissue == "tumor" for _, tissue, _ in samples])

    # Strongly tumor-high probes: tumor ~ 60-200x normal
    values[:40, is_tumor] *= rng.uniform(60, 200, size=(40, 1))
    # Near-identical means: tiny positive difference, large negative log2FC
    values[40:60, is_tumor] = values[40:60, ~is_tumor] * 1.001
    # Tumor-low probes: negative relative difference gives NaN log2FC
    values[60:120, is_tumor] *= 0.1

    expr_df = pd.DataFrame(values, columns=[s[0] for s in samples])
    expr_df.insert(0, "Probe_ID", probes)

    chromosomes = [str(i) for i in range(1, 23)] + ["X", "Y", "MT"]
    chrom = rng.choice(chromosomes + ["Un", "GL000220.1"], size=n_probes)
    gene_df = pd.DataFrame({
        "Probe_ID": probes,
        "Gene_Symbol": [f"GENE{i}" for i in range(n_probes)],
        "Chromosome": chrom,
    })
    # A few probes without annotation
    gene_df = gene_df.drop(index=gene_df.index[::50])

    sample_df = pd.DataFrame({
        "group": [s[0] for s in samples],
        "patient": [f"{tissue}\tpatient: {patient}" for _, tissue, patient in samples],
    })

    expr_df.to_excel(output_dir / "Gene_Expression_Data.xlsx", index=False, engine="openpyxl")
    gene_df.to_csv(output_dir / "Gene_Information.csv", index=False)
    sample_df.to_csv(output_dir / "Sample_Information.tsv", sep="\t", index=False)

    config = {
        "log2fc_cutoff": 5.0,
        "top_variance_genes": 500,
        "figure_format": ["png"]
    }
    with open(output_dir / "config.json", 'w') as f:
        json.dump(config, f, indent=2)

    print(f"Sample data created in {output_dir}")
    print(f"  - Gene_Expression_Data.xlsx: {n_probes} probes x {len(samples)} samples")
    print(f"  - Gene_Information.csv: {len(gene_df)} annotated probes")
    print(f"  - Sample_Information.tsv: {len(samples)} samples")
    print(f"  - config.json: analysis configuration")


def main(argv: Optional[List[str]] = None) -> int:
    """Command-line entry point."""
    import argparse

    parser = argparse.ArgumentParser(description="Microarray Tumor/Normal DEG Pipeline")
    parser.add_argument("--input", "-i", required=True, help="Input directory")
    parser.add_argument("--output", "-o", help="Output directory")
    parser.add_argument("--config", "-c", help="JSON config file")
    parser.add_argument("--create-sample", action="store_true", help="Create sample data")
    parser.add_argument("--agent", choices=MicroarrayPipeline.AGENT_ORDER,
                        help="Run specific agent only")
    parser.add_argument("--from-agent", choices=MicroarrayPipeline.AGENT_ORDER,
                        help="Resume from specific agent")

    args = parser.parse_args(argv)

    if args.create_sample:
        create_sample_data(Path(args.input))
        return 0

    if not args.output:
        parser.error("--output is required unless --create-sample is given")

    config = load_config(Path(args.config)) if args.config else {}
    pipeline = MicroarrayPipeline(
        input_dir=Path(args.input),
        output_dir=Path(args.output),
        config=config
    )

    if args.agent:
        pipeline.run_agent(args.agent)
    elif args.from_agent:
        pipeline.run_from(args.from_agent)
    else:
        pipeline.run()
    return 0


# CLI interface
if __name__ == "__main__":
    raise SystemExit(main())

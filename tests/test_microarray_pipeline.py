"""
Microarray DEG Pipeline - Agent and Orchestrator Tests
"""
import json
import math

import numpy as np
import pandas as pd
import pytest

# Import markers from conftest
pytestmark = pytest.mark.filterwarnings("ignore::DeprecationWarning")


def _run_chain(input_dir, work_dir, config, upto):
    """Run agents in order, feeding each one the previous outputs."""
    from microarray_pipeline.orchestrator import MicroarrayPipeline

    pipeline = MicroarrayPipeline(input_dir=input_dir, output_dir=work_dir, config=config)
    pipeline.run(stop_after=upto)
    return pipeline


class TestPipelineOrchestrator:
    """Test cases for MicroarrayPipeline orchestrator."""

    def test_pipeline_import(self):
        """Test that pipeline can be imported."""
        from microarray_pipeline import MicroarrayPipeline
        assert MicroarrayPipeline is not None

    def test_agent_order(self):
        from microarray_pipeline.orchestrator import MicroarrayPipeline
        assert MicroarrayPipeline.AGENT_ORDER == [
            "agent1_ingest",
            "agent2_relabel",
            "agent3_deg",
            "agent4_visualization",
            "agent5_report",
        ]
        assert set(MicroarrayPipeline.AGENT_ORDER) == set(MicroarrayPipeline.AGENT_CLASSES)

    def test_unknown_agent(self, temp_dir):
        from microarray_pipeline.orchestrator import MicroarrayPipeline

        pipeline = MicroarrayPipeline(input_dir=temp_dir, output_dir=temp_dir / "out")
        with pytest.raises(ValueError):
            pipeline.run_agent("agent9_unknown")

    def test_missing_input_aborts(self, study_dir, temp_dir, fast_plot_config):
        """A missing study file stops the run before anything is loaded."""
        from microarray_pipeline.orchestrator import MicroarrayPipeline

        (study_dir / "Sample_Information.tsv").unlink()
        pipeline = MicroarrayPipeline(
            input_dir=study_dir, output_dir=temp_dir / "output", config=fast_plot_config
        )

        with pytest.raises(FileNotFoundError, match="Sample_Information.tsv"):
            pipeline.run()

        state = json.loads((pipeline.run_dir / "pipeline_summary.json").read_text())
        assert state["failed_agents"] == ["agent1_ingest"]
        assert state["completed_agents"] == []
        assert not (pipeline.run_dir / "agent1_ingest" / "expression_raw.csv").exists()

        meta = json.loads((pipeline.run_dir / "agent1_ingest" / "meta_agent1_ingest.json").read_text())
        assert meta["success"] is False
        assert "Sample_Information.tsv" in meta["errors"][0]

    def test_full_pipeline_small_study(self, study_dir, temp_dir, fast_plot_config):
        """Known 5-probe study through every agent."""
        from microarray_pipeline.orchestrator import MicroarrayPipeline

        pipeline = MicroarrayPipeline(
            input_dir=study_dir, output_dir=temp_dir / "output", config=fast_plot_config
        )
        state = pipeline.run()

        assert state["completed_agents"] == MicroarrayPipeline.AGENT_ORDER
        assert state["failed_agents"] == []

        deg = state["agent_results"]["agent3_deg"]
        assert deg["filter_counts"] == {
            "total_probes": 5,
            "dropped_nan_log2fc": 1,
            "dropped_below_cutoff": 1,
            "dropped_unannotated": 0,
            "dropped_invalid_chromosome": 1,
            "significant": 3,
            "significant_valid_chromosome": 2,
        }
        assert deg["infinite_log2fc_count"] == 2

        valid = pd.read_csv(pipeline.run_dir / "agent3_deg" / "deg_significant_valid.csv",
                            dtype={"Chromosome": str}).set_index("Probe_ID")
        assert set(valid.index) == {"PROBE_UP", "PROBE_ZERO"}
        assert valid.loc["PROBE_UP", "log2FC"] == pytest.approx(math.log2(59))
        assert np.isposinf(valid.loc["PROBE_ZERO", "log2FC"])
        assert (valid["Expression_High_in"] == "Tumor").all()

        figures = pipeline.run_dir / "agent4_visualization" / "figures"
        for name in ("deg_per_chromosome", "deg_per_chromosome_direction",
                     "deg_direction_percentage", "heatmap_top_variance",
                     "clustermap_top_variance"):
            assert (figures / f"{name}.png").exists(), name

        pct = pd.read_csv(pipeline.run_dir / "agent4_visualization" / "deg_direction_percentage.csv")
        assert dict(zip(pct["Expression_High_in"], pct["Percentage"])) == {
            "Tumor": pytest.approx(66.67), "Normal": pytest.approx(33.33)
        }

        summary = json.loads((pipeline.run_dir / "agent5_report" / "summary.json").read_text())
        assert summary["n_tumor_samples"] == 2
        assert summary["n_normal_samples"] == 2
        assert (pipeline.run_dir / "agent5_report" / "summary.txt").exists()
        assert (pipeline.run_dir / "pipeline.log").exists()

    def test_run_from_resumes(self, study_dir, temp_dir, fast_plot_config):
        pipeline = _run_chain(study_dir, temp_dir / "output", fast_plot_config, "agent3_deg")
        assert pipeline.execution_state["completed_agents"][-1] == "agent3_deg"

        state = pipeline.run_from("agent4_visualization")
        assert state["completed_agents"][-2:] == ["agent4_visualization", "agent5_report"]


class TestAgent1Ingest:
    """Test cases for Agent 1 - Ingestion."""

    def test_loads_three_tables(self, study_dir, temp_dir):
        from microarray_pipeline.agents import IngestAgent

        agent = IngestAgent(input_dir=study_dir, output_dir=temp_dir / "agent1")
        results = agent.execute()

        assert results["expression_shape"] == [5, 5]
        assert results["gene_info_shape"] == [5, 3]
        assert results["sample_info_shape"] == [4, 2]
        assert agent.gene_info["Chromosome"].tolist() == ["1", "X", "Un", "2", "3"]
        assert list(agent.expression.columns) == ["Probe_ID", "GSM1", "GSM2", "GSM3", "GSM4"]

    def test_composite_field_survives_tsv(self, study_dir, temp_dir):
        from microarray_pipeline.agents import IngestAgent

        agent = IngestAgent(input_dir=study_dir, output_dir=temp_dir / "agent1")
        agent.execute()
        assert agent.sample_info["patient"].iloc[0] == "tumor\tpatient: 1"

    def test_missing_file_names_path(self, study_dir, temp_dir):
        from microarray_pipeline.agents import IngestAgent

        (study_dir / "Gene_Information.csv").unlink()
        agent = IngestAgent(input_dir=study_dir, output_dir=temp_dir / "agent1")

        with pytest.raises(FileNotFoundError) as excinfo:
            agent.execute()
        assert str(study_dir / "Gene_Information.csv") in str(excinfo.value)

    def test_custom_file_names(self, study_dir, temp_dir):
        from microarray_pipeline.agents import IngestAgent

        (study_dir / "Sample_Information.tsv").rename(study_dir / "samples.tsv")
        agent = IngestAgent(
            input_dir=study_dir,
            output_dir=temp_dir / "agent1",
            config={"expected_files": {"sample": "samples.tsv"}},
        )
        results = agent.execute()
        assert results["input_files"]["sample"].endswith("samples.tsv")


class TestAgent2Relabel:
    """Test cases for Agent 2 - Relabelling."""

    def test_unmapped_sample_unclassified(self, study_dir, temp_dir, small_sample_info):
        """A GSM id missing from the sample sheet stays in the matrix but in neither group."""
        small_sample_info.drop(index=1).to_csv(
            study_dir / "Sample_Information.tsv", sep="\t", index=False
        )
        pipeline = _run_chain(study_dir, temp_dir / "output", {}, "agent2_relabel")
        out = pipeline.run_dir / "agent2_relabel"

        classes = pd.read_csv(out / "column_classes.csv")
        assert classes["sample_class"].tolist() == ["Tumor", "Unclassified", "Normal", "Normal"]
        assert classes.loc[0, "label"] == "tumor_1"

        tumor = pd.read_csv(out / "tumor_matrix.csv")
        normal = pd.read_csv(out / "normal_matrix.csv")
        relabeled = pd.read_csv(out / "expression_relabeled.csv")
        assert list(tumor.columns) == ["Probe_ID", "tumor_1"]
        assert list(normal.columns) == ["Probe_ID", "normal_1", "normal_2"]
        assert relabeled.shape == (5, 5)

        results = pipeline.execution_state["agent_results"]["agent2_relabel"]
        assert results["unresolved_columns"] == ["GSM2"]
        assert results["n_unclassified"] == 1

    def test_rename_map_written(self, study_dir, temp_dir):
        pipeline = _run_chain(study_dir, temp_dir / "output", {}, "agent2_relabel")
        rename_map = json.loads(
            (pipeline.run_dir / "agent2_relabel" / "rename_map.json").read_text()
        )
        assert rename_map == {
            "GSM1": "tumor_1", "GSM2": "tumor_2", "GSM3": "normal_1", "GSM4": "normal_2"
        }

    def test_malformed_label_is_soft_failure(self, study_dir, temp_dir, small_sample_info):
        sample_info = small_sample_info.copy()
        sample_info.loc[0, "patient"] = "tumor patient 1"
        sample_info.to_csv(study_dir / "Sample_Information.tsv", sep="\t", index=False)

        pipeline = _run_chain(study_dir, temp_dir / "output", {}, "agent2_relabel")
        results = pipeline.execution_state["agent_results"]["agent2_relabel"]
        assert results["n_missing_patient"] == 1
        assert results["n_tumor"] == 1
        assert results["n_normal"] == 2


class TestAgent3DEG:
    """Test cases for Agent 3 - DEG Analysis."""

    def test_cutoff_is_configurable(self, study_dir, temp_dir):
        pipeline = _run_chain(study_dir, temp_dir / "output", {"log2fc_cutoff": 4.0}, "agent3_deg")
        results = pipeline.execution_state["agent_results"]["agent3_deg"]
        # PROBE_SMALL (log2 31 ~ 4.95) now passes
        assert results["deg_count"] == 4
        assert results["log2fc_cutoff"] == 4.0

    def test_outputs_written(self, study_dir, temp_dir):
        pipeline = _run_chain(study_dir, temp_dir / "output", {}, "agent3_deg")
        out = pipeline.run_dir / "agent3_deg"

        fc_all = pd.read_csv(out / "fold_change_all.csv")
        assert len(fc_all) == 5
        assert {"Probe_ID", "tumor_mean", "normal_mean", "log2FC"} <= set(fc_all.columns)

        counts = json.loads((out / "filter_counts.json").read_text())
        assert counts["significant"] == 3


class TestAgent4Visualization:
    """Test cases for Agent 4 - Visualization."""

    def test_no_degs_skips_charts(self, temp_dir, variable_matrix, fast_plot_config):
        from microarray_pipeline.agents import VisualizationAgent

        input_dir = temp_dir / "accumulated"
        input_dir.mkdir()
        empty = pd.DataFrame(columns=["Probe_ID", "tumor_mean", "normal_mean", "log2FC",
                                      "Chromosome", "Expression_High_in"])
        empty.to_csv(input_dir / "deg_significant.csv", index=False)
        empty.to_csv(input_dir / "deg_significant_valid.csv", index=False)
        variable_matrix.to_csv(input_dir / "expression_relabeled.csv", index=False)

        agent = VisualizationAgent(
            input_dir=input_dir, output_dir=temp_dir / "agent4",
            config={**fast_plot_config, "top_variance_genes": 10},
        )
        results = agent.execute()

        assert set(results["failed_figures"]) == {
            "deg_per_chromosome", "deg_per_chromosome_direction", "deg_direction_percentage"
        }
        assert results["heatmap_probes"] == 10
        assert (temp_dir / "agent4" / "figures" / "heatmap_top_variance.png").exists()
        assert (temp_dir / "agent4" / "figures" / "clustermap_top_variance.png").exists()


class TestIntegration:
    """Integration tests with the synthetic study."""

    def test_sample_study(self, temp_dir, fast_plot_config):
        from microarray_pipeline.orchestrator import MicroarrayPipeline, create_sample_data

        input_dir = temp_dir / "input"
        create_sample_data(input_dir, n_probes=600, n_patients=6)
        for name in ("Gene_Expression_Data.xlsx", "Gene_Information.csv",
                     "Sample_Information.tsv", "config.json"):
            assert (input_dir / name).exists()

        pipeline = MicroarrayPipeline(
            input_dir=input_dir, output_dir=temp_dir / "output", config=fast_plot_config
        )
        state = pipeline.run()

        assert state["failed_agents"] == []
        relabel = state["agent_results"]["agent2_relabel"]
        assert relabel["n_tumor"] == 6
        assert relabel["n_normal"] == 6

        deg = state["agent_results"]["agent3_deg"]
        assert deg["deg_count"] > 0
        assert deg["filter_counts"]["dropped_nan_log2fc"] >= 60

        viz = state["agent_results"]["agent4_visualization"]
        assert viz["heatmap_probes"] == 500
        assert viz["failed_figures"] == []

    def test_cli(self, temp_dir):
        from microarray_pipeline.orchestrator import main

        input_dir = temp_dir / "input"
        assert main(["--input", str(input_dir), "--create-sample"]) == 0

        config_path = temp_dir / "config.json"
        config_path.write_text(json.dumps({"dpi": 40, "print_summary": False}))
        assert main(["-i", str(input_dir), "-o", str(temp_dir / "out"),
                     "-c", str(config_path), "--agent", "agent1_ingest"]) == 0
        assert list((temp_dir / "out").glob("run_*/agent1_ingest/expression_raw.csv"))


class TestConfig:
    """JSON config loading."""

    def test_invalid_json(self, temp_dir):
        from microarray_pipeline.orchestrator import load_config

        path = temp_dir / "bad.json"
        path.write_text("{not json")
        with pytest.raises(ValueError, match="Invalid JSON"):
            load_config(path)

    def test_non_object_root(self, temp_dir):
        from microarray_pipeline.orchestrator import load_config

        path = temp_dir / "list.json"
        path.write_text("[1, 2]")
        with pytest.raises(ValueError, match="expected JSON object"):
            load_config(path)

    def test_missing_file(self, temp_dir):
        from microarray_pipeline.orchestrator import load_config

        with pytest.raises(FileNotFoundError):
            load_config(temp_dir / "absent.json")


if __name__ == "__main__":
    pytest.main([__file__, "-v"])

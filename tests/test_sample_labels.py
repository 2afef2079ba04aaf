"""
Microarray DEG Pipeline - Sample Label & Partition Tests
"""
import pytest
import pandas as pd

from microarray_pipeline.utils.sample_labels import (
    SampleClass,
    SampleLabel,
    build_rename_map,
    classify_columns,
    classify_label,
    clean_sample_metadata,
    parse_sample_label,
    partition_matrix,
    relabel_columns,
    sample_type_annotation,
    split_label,
)


class TestLabelParsing:
    """Composite "<tissue>\\t<patient>" field parsing."""

    def test_standard_label(self):
        label = parse_sample_label("tumor\tpatient: 3")
        assert label.tissue == "tumor"
        assert label.patient == 3.0
        assert label.canonical == "tumor_3"

    def test_prefix_variants(self):
        assert parse_sample_label("normal\tpatient:12").canonical == "normal_12"
        assert parse_sample_label("normal\tpatient 7").canonical == "normal_7"
        assert parse_sample_label("normal\tpatient4").canonical == "normal_4"

    def test_tissue_is_trimmed(self):
        assert parse_sample_label("  normal \tpatient: 5").canonical == "normal_5"

    def test_non_integer_patient_keeps_decimal(self):
        assert parse_sample_label("tumor\tpatient: 2.5").canonical == "tumor_2.5"

    def test_missing_separator_fills_right(self):
        tissue, token = split_label("tumor patient 3")
        assert tissue == "tumor patient 3"
        assert token is None

        label = parse_sample_label("tumor patient 3")
        assert label.patient is None
        assert not label.has_patient
        assert label.canonical is None

    def test_unparseable_patient(self):
        assert parse_sample_label("tumor\tpatient: abc").canonical is None
        assert parse_sample_label("tumor\t").canonical is None

    def test_prefix_removal_is_case_sensitive(self):
        assert parse_sample_label("tumor\tPatient: 3").patient is None

    def test_missing_field(self):
        label = parse_sample_label(float("nan"))
        assert label == SampleLabel(tissue="", patient=None)


class TestRenameMap:
    """Rename lookup construction."""

    def test_clean_metadata_columns(self, small_sample_info):
        cleaned = clean_sample_metadata(small_sample_info)
        assert list(cleaned.columns) == ["group", "tissue", "patient", "new_name"]
        assert cleaned["new_name"].tolist() == ["tumor_1", "tumor_2", "normal_1", "normal_2"]

    def test_missing_column_raises(self, small_sample_info):
        with pytest.raises(KeyError):
            clean_sample_metadata(small_sample_info, label_column="characteristics")

    def test_one_entry_per_sample(self, small_sample_info):
        rename_map = build_rename_map(clean_sample_metadata(small_sample_info))
        assert rename_map == {
            "GSM1": "tumor_1", "GSM2": "tumor_2",
            "GSM3": "normal_1", "GSM4": "normal_2",
        }

    def test_last_write_wins(self):
        sample_info = pd.DataFrame({
            "group": ["GSM1", "GSM1"],
            "patient": ["tumor\tpatient: 1", "normal\tpatient: 9"],
        })
        rename_map = build_rename_map(clean_sample_metadata(sample_info))
        assert rename_map == {"GSM1": "normal_9"}

    def test_unparseable_label_maps_to_none(self):
        sample_info = pd.DataFrame({"group": ["GSM1"], "patient": ["tumor"]})
        assert build_rename_map(clean_sample_metadata(sample_info)) == {"GSM1": None}


class TestRelabelAndPartition:
    """Column relabelling and tumor/normal partitioning."""

    def test_mapped_columns_renamed(self, small_expression, small_sample_info):
        rename_map = build_rename_map(clean_sample_metadata(small_sample_info))
        relabeled, unresolved = relabel_columns(small_expression, rename_map)

        assert list(relabeled.columns) == ["Probe_ID", "tumor_1", "tumor_2", "normal_1", "normal_2"]
        assert unresolved == []
        # Input left untouched
        assert list(small_expression.columns)[1] == "GSM1"

    def test_unmapped_column_kept_without_label(self, small_expression):
        rename_map = {"GSM1": "tumor_1", "GSM3": "normal_1", "GSM4": "normal_2"}
        relabeled, unresolved = relabel_columns(small_expression, rename_map)

        assert unresolved == ["GSM2"]
        assert pd.isna(relabeled.columns[2])
        assert relabeled.iloc[:, 2].tolist() == small_expression["GSM2"].tolist()

        classes = classify_columns(relabeled.columns[1:])
        tumor, normal = partition_matrix(relabeled, classes)
        assert list(tumor.columns) == ["Probe_ID", "tumor_1"]
        assert list(normal.columns) == ["Probe_ID", "normal_1", "normal_2"]

    def test_classification(self):
        assert classify_label("tumor_1") == SampleClass.TUMOR
        assert classify_label("normal_2") == SampleClass.NORMAL
        assert classify_label("Tumor_3") == SampleClass.TUMOR
        assert classify_label("Tumor_3", case_sensitive=True) == SampleClass.UNCLASSIFIED
        assert classify_label("adjacent_4") == SampleClass.UNCLASSIFIED
        assert classify_label(None) == SampleClass.UNCLASSIFIED
        assert classify_label(float("nan")) == SampleClass.UNCLASSIFIED

    def test_partitions_are_disjoint(self):
        labels = ["tumor_1", "normal_1", None, "stroma_1", "tumor_2", "normal_2"]
        matrix = pd.DataFrame([[f"P{i}"] + list(range(6)) for i in range(3)],
                              columns=["Probe_ID"] + labels)
        classes = classify_columns(labels)
        tumor, normal = partition_matrix(matrix, classes)

        tumor_cols = set(tumor.columns[1:])
        normal_cols = set(normal.columns[1:])
        assert tumor_cols.isdisjoint(normal_cols)
        assert all(c.startswith("tumor") for c in tumor_cols)
        assert all(c.startswith("normal") for c in normal_cols)
        assert len(tumor_cols) + len(normal_cols) == 4

    def test_partition_class_count_mismatch(self, small_expression):
        with pytest.raises(ValueError):
            partition_matrix(small_expression, [SampleClass.TUMOR])

    def test_heatmap_annotation_substring(self):
        assert sample_type_annotation(["Tumor_1", "pretumor_2", "normal_1", None]) == [
            "Tumor", "Tumor", "Normal", "Normal"
        ]

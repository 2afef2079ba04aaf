"""
Microarray DEG Pipeline - Test Configuration and Fixtures
"""
import sys
import pytest
import tempfile
import pandas as pd
import numpy as np
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))


@pytest.fixture(scope="session")
def project_root():
    """Return project root directory."""
    return Path(__file__).parent.parent


@pytest.fixture
def temp_dir():
    """Create a temporary directory for test outputs."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def small_expression():
    """Five probes x four raw GSM samples with hand-picked values.

    PROBE_UP    tumor 120 vs normal 2  -> log2(59) ~ 5.88, kept, Tumor
    PROBE_ZERO  tumor 10  vs normal 0  -> +inf, kept, Tumor
    PROBE_TIE   tumor 5   vs normal 5  -> -inf, kept, Normal (tie)
    PROBE_DOWN  tumor 2   vs normal 4  -> NaN, dropped
    PROBE_SMALL tumor 32  vs normal 1  -> log2(31) ~ 4.95, below cutoff
    """
    return pd.DataFrame({
        "Probe_ID": ["PROBE_UP", "PROBE_ZERO", "PROBE_TIE", "PROBE_DOWN", "PROBE_SMALL"],
        "GSM1": [100.0, 10.0, 4.0, 2.0, 30.0],
        "GSM2": [140.0, 10.0, 6.0, 2.0, 34.0],
        "GSM3": [1.0, 0.0, 5.0, 4.0, 1.0],
        "GSM4": [3.0, 0.0, 5.0, 4.0, 1.0],
    })


@pytest.fixture
def small_sample_info():
    """Sample sheet mapping GSM ids to tumor/normal patients."""
    return pd.DataFrame({
        "group": ["GSM1", "GSM2", "GSM3", "GSM4"],
        "patient": [
            "tumor\tpatient: 1",
            "tumor\tpatient: 2",
            "normal\tpatient: 1",
            "normal\tpatient: 2",
        ],
    })


@pytest.fixture
def small_gene_info():
    """Annotation for every small_expression probe; PROBE_TIE sits on an unplaced contig."""
    return pd.DataFrame({
        "Probe_ID": ["PROBE_UP", "PROBE_ZERO", "PROBE_TIE", "PROBE_DOWN", "PROBE_SMALL"],
        "Gene_Symbol": ["GENE_A", "GENE_B", "GENE_C", "GENE_D", "GENE_E"],
        "Chromosome": ["1", "X", "Un", "2", "3"],
    })


@pytest.fixture
def study_dir(temp_dir, small_expression, small_gene_info, small_sample_info):
    """Input directory holding the three study files for the small dataset."""
    input_dir = temp_dir / "input"
    input_dir.mkdir()
    small_expression.to_excel(
        input_dir / "Gene_Expression_Data.xlsx", index=False, engine="openpyxl"
    )
    small_gene_info.to_csv(input_dir / "Gene_Information.csv", index=False)
    small_sample_info.to_csv(input_dir / "Sample_Information.tsv", sep="\t", index=False)
    return input_dir


@pytest.fixture
def variable_matrix():
    """Expression matrix with clearly ordered per-probe variances."""
    n_probes = 20
    pattern = np.array([-1.0, 1.0, -2.0, 2.0, -0.5, 0.5])
    # Same shape on every row, scaled so variance increases with the probe number
    scales = np.linspace(0.1, 5, n_probes)
    values = 8 + scales[:, None] * pattern[None, :]

    df = pd.DataFrame(values, columns=[
        "tumor_1", "tumor_2", "tumor_3", "normal_1", "normal_2", "normal_3"
    ])
    df.insert(0, "Probe_ID", [f"PROBE{i}" for i in range(n_probes)])
    return df


@pytest.fixture
def fast_plot_config():
    """Low-resolution figures to keep plotting tests quick."""
    return {"dpi": 40, "figure_format": ["png"], "print_summary": False}

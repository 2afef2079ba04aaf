"""
Expression Statistics for Tumor/Normal Microarray Comparisons

Per-probe group means, the pipeline's fold-change score, the DEG filters and
the aggregations the plots are drawn from.

Fold change here is log2((tumor_mean - normal_mean) / normal_mean), i.e. the
log2 of the relative difference, NOT the usual log2(tumor_mean / normal_mean).
Consequences that are kept on purpose for result compatibility:
- tumor_mean == normal_mean (nonzero) gives -inf
- normal_mean == 0 with tumor_mean > 0 gives +inf
- opposite signs of difference and normal_mean give NaN
Only NaN rows are dropped; +/-inf always passes the |log2FC| filter.
"""

import logging
from typing import Dict, List, Optional, Sequence, Tuple

import numpy as np
import pandas as pd

logger = logging.getLogger(__name__)

VALID_CHROMOSOMES: List[str] = [str(i) for i in range(1, 23)] + ["X", "Y", "MT"]
DIRECTION_COLUMN = "Expression_High_in"
DIRECTIONS = ["Tumor", "Normal"]


# ---------------------------------------------------------------------------
# Fold change
# ---------------------------------------------------------------------------

def row_means(matrix: pd.DataFrame, probe_col: str, value_name: str) -> pd.DataFrame:
    """Mean of every probe across the sample columns, skipping missing values."""
    values = matrix.drop(columns=[probe_col])
    if values.shape[1]:
        values = values.apply(pd.to_numeric, errors="coerce")
    else:
        values = values.astype(float)
    means = values.mean(axis=1, skipna=True)
    return pd.DataFrame({probe_col: matrix[probe_col].values, value_name: means.values})


def group_means(
    tumor: pd.DataFrame,
    normal: pd.DataFrame,
    probe_col: str = "Probe_ID"
) -> pd.DataFrame:
    """Per-probe tumor and normal means, inner-joined on the probe id."""
    avg_tumor = row_means(tumor, probe_col, "tumor_mean")
    avg_normal = row_means(normal, probe_col, "normal_mean")
    return avg_tumor.merge(avg_normal, on=probe_col, how="inner")


def compute_log2_fold_change(tumor_mean, normal_mean):
    """log2((tumor_mean - normal_mean) / normal_mean), element-wise."""
    tumor = np.asarray(tumor_mean, dtype=float)
    normal = np.asarray(normal_mean, dtype=float)
    with np.errstate(divide="ignore", invalid="ignore"):
        return np.log2((tumor - normal) / normal)


def add_fold_change(means: pd.DataFrame) -> pd.DataFrame:
    """Return a copy of the means table with a log2FC column."""
    fc_table = means.copy()
    fc_table["log2FC"] = compute_log2_fold_change(
        fc_table["tumor_mean"], fc_table["normal_mean"]
    )
    return fc_table


def drop_undefined(fc_table: pd.DataFrame) -> pd.DataFrame:
    """Drop NaN fold changes. Infinite values are kept."""
    return fc_table[~fc_table["log2FC"].isna()].copy()


def filter_significant(fc_table: pd.DataFrame, threshold: float = 5.0) -> pd.DataFrame:
    """Keep probes with |log2FC| strictly above the threshold."""
    return fc_table[np.abs(fc_table["log2FC"]) > threshold].copy()


def annotate(
    significant: pd.DataFrame,
    gene_info: pd.DataFrame,
    probe_col: str = "Probe_ID"
) -> pd.DataFrame:
    """Inner-join gene annotation and label which group expresses higher.

    Ties go to "Normal".
    """
    if probe_col not in gene_info.columns:
        raise KeyError(f"Gene information has no '{probe_col}' column")
    annotated = significant.merge(gene_info, on=probe_col, how="inner")
    annotated[DIRECTION_COLUMN] = np.where(
        annotated["tumor_mean"] > annotated["normal_mean"], "Tumor", "Normal"
    )
    return annotated


def filter_valid_chromosomes(
    df: pd.DataFrame,
    column: str = "Chromosome",
    valid: Optional[Sequence[str]] = None
) -> pd.DataFrame:
    """Keep rows whose chromosome is exactly one of 1..22, X, Y, MT."""
    valid = list(valid) if valid is not None else VALID_CHROMOSOMES
    if column not in df.columns:
        raise KeyError(f"No '{column}' column to filter on")
    return df[df[column].isin(valid)].copy()


# ---------------------------------------------------------------------------
# Aggregations for reporting
# ---------------------------------------------------------------------------

def _chromosome_order(values: Sequence[str], valid: Sequence[str]) -> List[str]:
    present = set(values)
    return [c for c in valid if c in present]


def count_by_chromosome(
    deg: pd.DataFrame,
    column: str = "Chromosome",
    valid: Optional[Sequence[str]] = None
) -> pd.DataFrame:
    """Number of DEGs per chromosome, in karyotype order."""
    valid = list(valid) if valid is not None else VALID_CHROMOSOMES
    counts = deg[column].value_counts()
    order = _chromosome_order(counts.index.tolist(), valid)
    return pd.DataFrame({column: order, "n": [int(counts[c]) for c in order]})


def count_by_chromosome_direction(
    deg: pd.DataFrame,
    column: str = "Chromosome",
    valid: Optional[Sequence[str]] = None
) -> pd.DataFrame:
    """Number of DEGs per (chromosome, direction) pair."""
    valid = list(valid) if valid is not None else VALID_CHROMOSOMES
    counts = deg.groupby([column, DIRECTION_COLUMN]).size().rename("n").reset_index()
    rank = {c: i for i, c in enumerate(valid)}
    counts["_rank"] = counts[column].map(rank)
    counts = counts.sort_values(["_rank", DIRECTION_COLUMN]).drop(columns="_rank")
    counts["n"] = counts["n"].astype(int)
    return counts.reset_index(drop=True)


def direction_percentages(significant: pd.DataFrame) -> pd.DataFrame:
    """Count and percentage of DEGs per direction.

    Computed on the significant set before the chromosome filter, so the
    percentages cover every significant probe.
    """
    counts = significant[DIRECTION_COLUMN].value_counts()
    total = int(counts.sum())
    directions = [d for d in DIRECTIONS if d in counts.index]
    n = [int(counts[d]) for d in directions]
    pct = [round(value / total * 100, 2) for value in n] if total else []
    return pd.DataFrame({DIRECTION_COLUMN: directions, "n": n, "Percentage": pct})


# ---------------------------------------------------------------------------
# Top-variance selection for heatmaps
# ---------------------------------------------------------------------------

def select_top_variance(
    matrix: pd.DataFrame,
    probe_col: str = "Probe_ID",
    n: int = 500
) -> Tuple[pd.DataFrame, int]:
    """Rows of the most variable probes across all sample columns.

    Variance is the sample variance (ddof=1); probes with a missing value are
    not ranked. Asking for more probes than are ranked is clamped.

    Returns:
        (probe-indexed numeric matrix of the selected rows, number requested
        that could not be served)
    """
    if n < 1:
        raise ValueError(f"Number of top-variance probes must be positive, got {n}")

    values = matrix.set_index(probe_col)
    values = values.apply(pd.to_numeric, errors="coerce")
    variances = values.var(axis=1, ddof=1, skipna=False).dropna()

    n_available = len(variances)
    n_selected = min(n, n_available)
    shortfall = n - n_selected
    if shortfall:
        logger.warning(
            f"Requested top {n} probes by variance but only {n_available} can be ranked; "
            f"using {n_selected}"
        )

    top = variances.sort_values(ascending=False, kind="mergesort").index[:n_selected]
    return values.loc[top], shortfall


def zscore_rows(matrix: pd.DataFrame) -> pd.DataFrame:
    """Row-wise z-score; zero-variance rows become all zeros."""
    means = matrix.mean(axis=1)
    stds = matrix.std(axis=1, ddof=1).replace(0, np.nan)
    scaled = matrix.sub(means, axis=0).div(stds, axis=0)
    return scaled.fillna(0.0)


def summarize_filters(counts: Dict[str, int]) -> str:
    """One-line description of rows kept/dropped at each filter step."""
    return ", ".join(f"{name}={value}" for name, value in counts.items())

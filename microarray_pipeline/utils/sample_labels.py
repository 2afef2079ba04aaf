"""
Sample Label Parsing and Column Classification

Turns the composite "<tissue>\\t<patient token>" field of the sample sheet
into canonical column labels ("tumor_3", "normal_12") and tags every
expression column as tumor, normal or unclassified.

Parsing rules:
1. Split on the first tab; a field without a tab keeps an empty patient slot
2. Tissue is whitespace-trimmed
3. The first "patient", "patient:" or "patient: " is removed from the token
   and the rest is parsed as a number
4. A missing/unparseable patient number leaves the canonical label missing
"""

import logging
import math
import re
from dataclasses import dataclass
from enum import Enum
from typing import Dict, Iterable, List, Optional, Tuple

import pandas as pd

logger = logging.getLogger(__name__)

LABEL_SEPARATOR = "\t"
PATIENT_PREFIX = re.compile(r"patient:?\s*")


class SampleClass(str, Enum):
    """Partition a relabelled expression column belongs to."""

    TUMOR = "Tumor"
    NORMAL = "Normal"
    UNCLASSIFIED = "Unclassified"


CLASS_PREFIXES = {
    SampleClass.TUMOR: "tumor",
    SampleClass.NORMAL: "normal",
}


@dataclass(frozen=True)
class SampleLabel:
    """Structured form of one composite sample-sheet label."""

    tissue: str
    patient: Optional[float] = None

    @property
    def has_patient(self) -> bool:
        return self.patient is not None

    @property
    def patient_text(self) -> Optional[str]:
        if self.patient is None:
            return None
        if float(self.patient).is_integer():
            return str(int(self.patient))
        return repr(float(self.patient))

    @property
    def canonical(self) -> Optional[str]:
        """Canonical "<tissue>_<patient>" label, or None without a patient."""
        if not self.has_patient:
            return None
        return f"{self.tissue}_{self.patient_text}"


def _parse_patient_number(token: Optional[str]) -> Optional[float]:
    if token is None:
        return None
    remainder = PATIENT_PREFIX.sub("", token, count=1).strip()
    if not remainder:
        return None
    try:
        value = float(remainder)
    except ValueError:
        return None
    if math.isnan(value):
        return None
    return value


def split_label(text: Optional[str]) -> Tuple[str, Optional[str]]:
    """Split a composite field into (tissue, patient token).

    Always yields two slots; the second is None when the separator is absent.
    """
    if text is None or (isinstance(text, float) and math.isnan(text)):
        return "", None
    parts = str(text).split(LABEL_SEPARATOR, 1)
    if len(parts) == 1:
        return parts[0], None
    return parts[0], parts[1]


def parse_sample_label(text: Optional[str]) -> SampleLabel:
    """Parse a composite sample-sheet field into a SampleLabel."""
    tissue, token = split_label(text)
    return SampleLabel(tissue=tissue.strip(), patient=_parse_patient_number(token))


def clean_sample_metadata(
    sample_info: pd.DataFrame,
    group_column: str = "group",
    label_column: str = "patient"
) -> pd.DataFrame:
    """Return one cleaned row per sample: group, tissue, patient, new_name."""
    for column in (group_column, label_column):
        if column not in sample_info.columns:
            raise KeyError(f"Sample information has no '{column}' column")

    labels = [parse_sample_label(value) for value in sample_info[label_column]]
    return pd.DataFrame({
        "group": sample_info[group_column].astype(str).tolist(),
        "tissue": [label.tissue for label in labels],
        "patient": [label.patient for label in labels],
        "new_name": [label.canonical for label in labels],
    })


def build_rename_map(cleaned: pd.DataFrame) -> Dict[str, Optional[str]]:
    """Map raw sample ids to canonical labels; later rows overwrite earlier ones."""
    rename_map: Dict[str, Optional[str]] = {}
    for group, new_name in zip(cleaned["group"], cleaned["new_name"]):
        if group in rename_map:
            logger.debug(f"Duplicate sample id {group!r}: keeping last label {new_name!r}")
        rename_map[group] = None if pd.isna(new_name) else new_name
    return rename_map


def relabel_columns(
    matrix: pd.DataFrame,
    rename_map: Dict[str, Optional[str]]
) -> Tuple[pd.DataFrame, List[str]]:
    """Rename every sample column through the lookup.

    The first column (probe ids) is left untouched. A column without an entry,
    or whose entry is missing, gets a None label but keeps its data.

    Returns:
        (relabelled copy of the matrix, raw ids that did not resolve)
    """
    raw_ids = [str(c) for c in matrix.columns[1:]]
    new_labels = [rename_map.get(raw_id) for raw_id in raw_ids]
    unresolved = [raw_id for raw_id, label in zip(raw_ids, new_labels) if label is None]

    relabeled = matrix.copy()
    relabeled.columns = [matrix.columns[0]] + new_labels
    return relabeled, unresolved


def classify_label(label: Optional[str], case_sensitive: bool = False) -> SampleClass:
    """Tag a single column label by its tumor/normal prefix."""
    if label is None or not isinstance(label, str):
        return SampleClass.UNCLASSIFIED
    text = label if case_sensitive else label.lower()
    for sample_class, prefix in CLASS_PREFIXES.items():
        if text.startswith(prefix):
            return sample_class
    return SampleClass.UNCLASSIFIED


def classify_columns(
    labels: Iterable[Optional[str]],
    case_sensitive: bool = False
) -> List[SampleClass]:
    """Tag every sample column label as tumor, normal or unclassified."""
    return [classify_label(label, case_sensitive) for label in labels]


def partition_matrix(
    matrix: pd.DataFrame,
    classes: List[SampleClass]
) -> Tuple[pd.DataFrame, pd.DataFrame]:
    """Split a relabelled matrix into tumor and normal sub-matrices.

    Both keep the probe-id column. Unclassified columns go to neither.
    """
    n_samples = len(matrix.columns) - 1
    if len(classes) != n_samples:
        raise ValueError(
            f"Got {len(classes)} column classes for {n_samples} sample columns"
        )

    def _select(target: SampleClass) -> pd.DataFrame:
        mask = [True] + [c == target for c in classes]
        return matrix.loc[:, mask].copy()

    return _select(SampleClass.TUMOR), _select(SampleClass.NORMAL)


def sample_type_annotation(columns: Iterable[Optional[str]]) -> List[str]:
    """Heatmap strip: "Tumor" if "tumor" occurs anywhere in the label, else "Normal"."""
    annotation = []
    for column in columns:
        is_tumor = isinstance(column, str) and "tumor" in column.lower()
        annotation.append(SampleClass.TUMOR.value if is_tumor else SampleClass.NORMAL.value)
    return annotation

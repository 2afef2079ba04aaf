"""Utility modules for the microarray DEG pipeline."""

from .base_agent import BaseAgent
from .sample_labels import SampleClass, SampleLabel, parse_sample_label
from .expression import VALID_CHROMOSOMES, compute_log2_fold_change

__all__ = [
    "BaseAgent",
    "SampleClass",
    "SampleLabel",
    "parse_sample_label",
    "VALID_CHROMOSOMES",
    "compute_log2_fold_change",
]

"""
Microarray Tumor/Normal DEG Pipeline

A linear pipeline for microarray differential expression with 5 agents:
1. Ingestion (expression spreadsheet, gene annotation, sample sheet)
2. Sample relabelling & tumor/normal partitioning
3. Fold-change DEG analysis
4. Visualization (chromosome charts, top-variance heatmaps)
5. Summary report

Each agent has clear inputs and outputs and can be run independently.
"""

__version__ = "1.0.0"

from .orchestrator import MicroarrayPipeline, create_sample_data

__all__ = ["MicroarrayPipeline", "create_sample_data", "__version__"]

"""
Microarray DEG Pipeline Agents

Each agent handles a specific step of the analysis:
- Agent 1: Ingestion & validation of the three study files
- Agent 2: Sample relabelling & tumor/normal partitioning
- Agent 3: Fold-change DEG analysis
- Agent 4: Visualization
- Agent 5: Summary report
"""

from .agent1_ingest import IngestAgent
from .agent2_relabel import RelabelAgent
from .agent3_deg import DEGAgent
from .agent4_visualization import VisualizationAgent
from .agent5_report import ReportAgent

__all__ = [
    "IngestAgent",
    "RelabelAgent",
    "DEGAgent",
    "VisualizationAgent",
    "ReportAgent",
]

"""
Core module: interfaces and the batch analysis orchestrator.
"""

from disc_sph.core.interfaces import (
    OpacityModel,
    SnapshotFile,
    ICGenerator,
    NameData,
)
from disc_sph.core.analysis import (
    AnalysisConfig,
    GeneratorConfig,
    BatchAnalysis,
    AnalysisSummary,
    partition_files,
    effective_workers,
    generate_initial_conditions,
)

__all__ = [
    "OpacityModel",
    "SnapshotFile",
    "ICGenerator",
    "NameData",
    "AnalysisConfig",
    "GeneratorConfig",
    "BatchAnalysis",
    "AnalysisSummary",
    "partition_files",
    "effective_workers",
    "generate_initial_conditions",
]

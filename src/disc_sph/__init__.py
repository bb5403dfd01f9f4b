"""
disc_sph: initial conditions and snapshot analysis for SPH discs.

Generates protoplanetary disc, binary and cloud initial conditions and runs
batch analysis over simulation snapshots: Barnes-Hut gravity for disc
velocities, tree-walk column densities and optical depths on both sides of
the midplane, radiative cooling estimates, centering, and cross-file
sink/cloud diagnostics.
"""

__version__ = "1.0.0"
__author__ = "disc_sph Dev Team"

# Core imports for convenience
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
]

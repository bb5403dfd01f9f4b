"""
Radiation module: column densities, optical depths and cooling rates.
"""

from .optical_depth import OpticalDepthOctree
from .column_depth import ColumnDepthPass
from .cooling import cooling_rate, compute_thermo, compute_real_cooling, CoolingMap

__all__ = [
    "OpticalDepthOctree",
    "ColumnDepthPass",
    "cooling_rate",
    "compute_thermo",
    "compute_real_cooling",
    "CoolingMap",
]

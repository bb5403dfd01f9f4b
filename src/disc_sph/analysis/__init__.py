"""
Analysis module: centering, radial profiles and cross-file aggregators.
"""

from .centering import center_disc, center_cloud, find_outer_radius
from .aggregators import AggregatorSet, AGGREGATORS
from .radial import RadialProfile

__all__ = [
    "center_disc",
    "center_cloud",
    "find_outer_radius",
    "AggregatorSet",
    "AGGREGATORS",
    "RadialProfile",
]

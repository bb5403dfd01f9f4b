"""
Gravity module: Barnes-Hut tree gravity.
"""

from .barnes_hut import ForceOctree, THETA

__all__ = ["ForceOctree", "THETA"]

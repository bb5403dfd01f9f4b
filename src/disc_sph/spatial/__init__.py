"""
Spatial module: array-backed octree shared by the gravity and radiation trees.
"""

from .octree import Octree, MAX_DEPTH

__all__ = ["Octree", "MAX_DEPTH"]

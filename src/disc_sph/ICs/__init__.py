"""
Initial conditions module: disc, binary and cloud generators.
"""

from .disc import DiscGenerator
from .cloud import CloudGenerator

__all__ = ["DiscGenerator", "CloudGenerator"]

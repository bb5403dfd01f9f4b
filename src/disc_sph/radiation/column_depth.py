"""
Column depth pass with midplane reflection.

The optical depth walk only integrates material above a particle, so the
disc is handled one hemisphere at a time: particles with z >= 0 are walked
in a tree of their own, then particles with z < 0 are reflected through the
midplane, walked in a fresh tree and reflected back. Results are written by
index so the particle order never changes.
"""

from pathlib import Path
from typing import Optional, Union
import numpy as np

from ..constants import AU_TO_CM
from ..core.interfaces import OpacityModel
from ..io.diagnostics import write_column_depth_table, COLUMN_DEPTH_TABLE
from ..spatial.octree import MAX_DEPTH
from .cooling import compute_real_cooling
from .optical_depth import OpticalDepthOctree, DOMAIN_HALF_EXTENT


class ColumnDepthPass:
    """
    Tree-walk Σ and τ for every gas particle of one snapshot.

    Parameters
    ----------
    opacity : OpacityModel
        Provides κ_R for the walk.
    half_extent : float, default DOMAIN_HALF_EXTENT
        Root half size of each hemisphere tree [AU].
    length_unit : float, default AU_TO_CM
        Tree length to cm conversion.
    shift : float, optional
        Coordinate offset applied to tree points and queries. None uses
        the tree default, which maps ± half_extent into the (0,0,0)-based
        domain.
    max_depth : int, default MAX_DEPTH

    Attributes
    ----------
    n_upper, n_lower : int
        Hemisphere sizes of the last run.
    trees : list of OpticalDepthOctree
        Trees of the last run (upper, lower), kept only while `keep_trees`.
    """

    def __init__(
        self,
        opacity: OpacityModel,
        half_extent: float = DOMAIN_HALF_EXTENT,
        length_unit: float = AU_TO_CM,
        shift: Optional[float] = None,
        max_depth: int = MAX_DEPTH,
        keep_trees: bool = False,
    ):
        self.opacity = opacity
        self.half_extent = half_extent
        self.length_unit = length_unit
        self.shift = shift
        self.max_depth = max_depth
        self.keep_trees = keep_trees
        self.n_upper = 0
        self.n_lower = 0
        self.trees = []

    def _new_tree(self) -> OpticalDepthOctree:
        return OpticalDepthOctree(self.half_extent, self.length_unit, self.max_depth)

    def run(self, particles) -> None:
        """
        Set `real_sigma`, `real_tau` and `real_cooling` on `particles`.

        Requires the thermo pass (temperature, opacities) to have run.

        Raises
        ------
        ValueError
            If any position or mass is non-finite.
        """
        particles.validate()
        z = particles.positions[:, 2]
        upper = np.flatnonzero(z >= 0.0)
        lower = np.flatnonzero(z < 0.0)
        self.n_upper = len(upper)
        self.n_lower = len(lower)
        self.trees = []

        tree = self._new_tree()
        tree.construct(particles, self.shift, index=upper)
        tree.link_tree()
        tree.walk(particles, self.opacity, index=upper)
        if self.keep_trees:
            self.trees.append(tree)

        # Reflect the lower hemisphere so that "above" points away from the midplane
        particles.positions[lower, 2] = -particles.positions[lower, 2]
        try:
            tree = self._new_tree()
            tree.construct(particles, self.shift, index=lower)
            tree.link_tree()
            tree.walk(particles, self.opacity, index=lower)
        finally:
            particles.positions[lower, 2] = -particles.positions[lower, 2]
        if self.keep_trees:
            self.trees.append(tree)

        compute_real_cooling(particles)

    def write_table(self, particles, path: Union[str, Path, None] = None) -> Path:
        """Write the column depth diagnostic table, `new_sigma.dat` by default."""
        return write_column_depth_table(particles, path if path is not None else COLUMN_DEPTH_TABLE)

    def __repr__(self) -> str:
        return (
            f"ColumnDepthPass(opacity={self.opacity.name}, half_extent={self.half_extent}, "
            f"shift={self.shift})"
        )

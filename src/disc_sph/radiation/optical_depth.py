"""
Octree line-of-sight integration of column density and optical depth.

Each gas particle becomes an immutable point (position, density,
temperature) in an Octree spanning (0,0,0) to 2 half_extent on every axis.
Coordinates are shifted into that domain; the default shift of
half_extent (1 + 2^-50) also keeps the disc axis x = y = 0 off every split
plane down to the depth cap. For a query particle the walk visits every cell
whose (x, y) footprint strictly contains the query, and every occupied leaf
lying at or above the query adds

    Σ += ρ · 2 hz · L
    τ += ρ κ_R(ρ, T) · 2 hz · L

where hz is the leaf half height and L converts tree lengths to cm. The leaf
height stands in for the true path length through the cell, so the result
depends on how finely the tree has subdivided around each point.

Only material above the query counts ("up" is +z); the lower disc
hemisphere is handled by reflecting it, see `column_depth.ColumnDepthPass`.
"""

from typing import Optional, Tuple
import numpy as np
from numba import njit

from ..constants import AU_TO_CM
from ..core.interfaces import OpacityModel, NDArrayFloat
from ..spatial.octree import Octree, MAX_DEPTH

# Constants
DOMAIN_HALF_EXTENT = 1024.0  # Root half size [AU]
AXIS_SHIFT = 1.0 + 2.0 ** -50  # Default shift in units of the half extent


def default_shift(half_extent: float) -> float:
    """Shift that centres the origin in a (0,0,0)-based domain, off its split planes."""
    return float(half_extent) * AXIS_SHIFT


@njit(fastmath=True, nogil=True)
def _column_density_walk(qx, qy, qz, origin, half, children, payload,
                         point_z, point_rho, point_kappar, length_unit, max_depth):
    """Accumulate (Σ, τ) above one query point."""
    sigma = 0.0
    tau = 0.0

    stack = np.empty(8 * (max_depth + 2), dtype=np.int64)
    stack[0] = 0
    top = 1
    while top > 0:
        top -= 1
        node = stack[top]

        # Footprint test (open intervals)
        if qx <= origin[node, 0] - half[node, 0] or qx >= origin[node, 0] + half[node, 0]:
            continue
        if qy <= origin[node, 1] - half[node, 1] or qy >= origin[node, 1] + half[node, 1]:
            continue

        if children[node, 0] != -1:
            for k in range(8):
                stack[top] = children[node, k]
                top += 1
            continue

        p = payload[node]
        if p == -1:
            continue
        if point_z[p] < qz:
            # Cell lies below the query
            continue

        path = half[node, 2] * 2.0 * length_unit
        sigma += point_rho[p] * path
        tau += point_rho[p] * point_kappar[p] * path

    return sigma, tau


@njit(fastmath=True, nogil=True)
def _walk_all(queries, origin, half, children, payload, point_z, point_rho,
              point_kappar, length_unit, max_depth):
    n = queries.shape[0]
    sigma = np.zeros(n, dtype=np.float64)
    tau = np.zeros(n, dtype=np.float64)
    for i in range(n):
        s, t = _column_density_walk(
            queries[i, 0], queries[i, 1], queries[i, 2], origin, half, children,
            payload, point_z, point_rho, point_kappar, length_unit, max_depth,
        )
        sigma[i] = s
        tau[i] = t
    return sigma, tau


class OpticalDepthOctree(Octree):
    """
    Column density / optical depth tree over one hemisphere of a disc.

    Parameters
    ----------
    half_extent : float, default DOMAIN_HALF_EXTENT
        Root half size in tree length units; the root spans (0,0,0) to
        2 half_extent on every axis.
    length_unit : float, default AU_TO_CM
        Conversion from tree lengths to cm.
    max_depth : int, default MAX_DEPTH

    Attributes
    ----------
    shift : float
        Offset added to every coordinate of points and queries.
    point_density, point_temperature : NDArrayFloat, shape (n_points,)
        Values copied from the particles at construction.
    """

    def __init__(
        self,
        half_extent: float = DOMAIN_HALF_EXTENT,
        length_unit: float = AU_TO_CM,
        max_depth: int = MAX_DEPTH,
    ):
        if length_unit <= 0.0:
            raise ValueError(f"length_unit must be positive, got {length_unit}")
        self.length_unit = float(length_unit)
        self.shift = default_shift(half_extent)
        super().__init__((half_extent, half_extent, half_extent), half_extent, max_depth)

    def clear(self, expected_points: int = 0) -> None:
        super().clear(expected_points)
        self.point_density = np.zeros(0, dtype=np.float64)
        self.point_temperature = np.zeros(0, dtype=np.float64)
        self._kappar = None
        self._kappar_source = None

    def construct(self, particles, shift: Optional[float] = None,
                  index: Optional[np.ndarray] = None) -> None:
        """
        Rebuild the tree from `particles` (or the subset `index`).

        Points sit at position + shift and copy the particle's density and
        temperature. A shift of None uses `default_shift(half_extent)`, which
        maps positions within ± half_extent of the origin into the domain.

        Raises
        ------
        ValueError
            If any particle position is non-finite.
        """
        if index is None:
            index = np.arange(particles.n_particles)
        self.clear(len(index))
        self.shift = default_shift(self.root_half[0]) if shift is None else float(shift)
        self.insert_many(particles.positions[index] + self.shift)
        self.point_density = np.array(particles.density[index], dtype=np.float64)
        self.point_temperature = np.array(particles.temperature[index], dtype=np.float64)

    def link_tree(self) -> np.ndarray:
        """Node handles in pre-order, root first."""
        return self.preorder()

    def _point_kappar(self, opacity: OpacityModel) -> NDArrayFloat:
        if self._kappar is None or self._kappar_source is not opacity:
            if self.n_points:
                self._kappar = np.asarray(
                    opacity.get_kappar(self.point_density, self.point_temperature),
                    dtype=np.float64,
                ).reshape(self.n_points)
            else:
                self._kappar = np.zeros(0, dtype=np.float64)
            self._kappar_source = opacity
        return self._kappar

    def traverse_tree(self, position, opacity: OpacityModel) -> Tuple[float, float]:
        """
        Column density and optical depth above one position.

        Parameters
        ----------
        position : sequence of 3 floats
            Query position in unshifted coordinates.
        opacity : OpacityModel
            Provides κ_R at each point's (ρ, T).

        Returns
        -------
        sigma : float
            Column density Σ [g cm^-2] (for densities in g cm^-3).
        tau : float
            Optical depth τ.
        """
        q = np.asarray(position, dtype=np.float64).reshape(3) + self.shift
        sigma, tau = _column_density_walk(
            q[0], q[1], q[2], self.origin, self.half, self.children, self.payload,
            np.ascontiguousarray(self.points[:, 2]), self.point_density, self._point_kappar(opacity),
            self.length_unit, self.max_depth,
        )
        return float(sigma), float(tau)

    def walk(self, particles, opacity: OpacityModel,
             index: Optional[np.ndarray] = None) -> None:
        """
        Set `real_sigma` and `real_tau` for particles (or the subset `index`).
        """
        if index is None:
            index = np.arange(particles.n_particles)
        queries = particles.positions[index] + self.shift
        sigma, tau = _walk_all(
            np.ascontiguousarray(queries), self.origin, self.half, self.children,
            self.payload, np.ascontiguousarray(self.points[:, 2]), self.point_density,
            self._point_kappar(opacity), self.length_unit, self.max_depth,
        )
        particles.real_sigma[index] = sigma
        particles.real_tau[index] = tau

    def __repr__(self) -> str:
        return (
            f"OpticalDepthOctree(n_points={self.n_points}, n_nodes={self.n_nodes}, "
            f"half_extent={self.root_half[0]}, shift={self.shift})"
        )

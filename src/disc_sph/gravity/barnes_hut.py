
"""
Barnes-Hut gravity tree for assigning self-gravity orbital velocities.

Mass points are inserted into the shared Octree arena; node masses and
centres of mass are aggregated bottom-up over the pre-order before the first
query, then each query walks the tree from the root, accepting a cell as a
single point mass when it subtends a small enough angle.

Units follow the generators: positions in AU, masses in Msun, G = G_AU so
that accelerations come out in AU s^-2.

Reference:
    Barnes & Hut (1986) - A Hierarchical O(N log N) Force-Calculation Algorithm
"""

from typing import Optional, Sequence
import numpy as np
from numba import njit

from ..constants import G_AU
from ..core.interfaces import NDArrayFloat
from ..spatial.octree import Octree, MAX_DEPTH

# Constants
THETA = 0.5              # Multipole acceptance criterion (0.5-0.7 is standard)
TREE_HALF_EXTENT = 512.0  # Root half size [AU] used by the disc generator


@njit(fastmath=True, nogil=True)
def _accumulate_moments(order, children, node_mass, node_com):
    """
    Fold leaf masses and first moments into their ancestors.

    `node_com` holds mass-weighted positions on entry and centres of mass on
    exit. Reversed pre-order guarantees children are complete before parents.
    """
    for i in range(order.shape[0] - 1, -1, -1):
        node = order[i]
        if children[node, 0] != -1:
            for k in range(8):
                child = children[node, k]
                node_mass[node] += node_mass[child]
                node_com[node, 0] += node_com[child, 0]
                node_com[node, 1] += node_com[child, 1]
                node_com[node, 2] += node_com[child, 2]

    for node in range(node_mass.shape[0]):
        if node_mass[node] > 0.0:
            inv_m = 1.0 / node_mass[node]
            node_com[node, 0] *= inv_m
            node_com[node, 1] *= inv_m
            node_com[node, 2] *= inv_m


@njit(fastmath=True, nogil=True)
def _gravity_walk(qx, qy, qz, h, G, theta2, children, node_mass, node_com,
                  node_size, max_depth):
    """Iterative tree walk for the acceleration at one query position."""
    ax = 0.0
    ay = 0.0
    az = 0.0
    h2 = h * h

    stack = np.empty(8 * (max_depth + 2), dtype=np.int64)
    stack[0] = 0
    top = 1
    while top > 0:
        top -= 1
        node = stack[top]
        m = node_mass[node]
        if m <= 0.0:
            continue

        dx = node_com[node, 0] - qx
        dy = node_com[node, 1] - qy
        dz = node_com[node, 2] - qz
        r2 = dx*dx + dy*dy + dz*dz

        if children[node, 0] != -1:
            # MAC check: open unless size / r < theta
            s = node_size[node]
            if s * s >= theta2 * r2:
                for k in range(8):
                    stack[top] = children[node, k]
                    top += 1
                continue
        elif r2 == 0.0:
            # Query sits on this leaf -> self-interaction
            continue

        inv_r3 = (r2 + h2) ** (-1.5)
        f = G * m * inv_r3
        ax += f * dx
        ay += f * dy
        az += f * dz

    return ax, ay, az


class ForceOctree(Octree):
    """
    Barnes-Hut O(N log N) gravity tree.

    Parameters
    ----------
    origin : sequence of 3 floats, default (0, 0, 0)
        Centre of the root cell.
    half_extent : float, default TREE_HALF_EXTENT
        Half size of the root cell [AU].
    G : float, default G_AU
        Gravitational constant in tree units.
    theta : float, default THETA
        Opening angle; 0 reduces the walk to direct summation.
    max_depth : int, default MAX_DEPTH
    """

    def __init__(
        self,
        origin: Sequence[float] = (0.0, 0.0, 0.0),
        half_extent: float = TREE_HALF_EXTENT,
        G: float = G_AU,
        theta: float = THETA,
        max_depth: int = MAX_DEPTH,
    ):
        if theta < 0.0:
            raise ValueError(f"theta must be non-negative, got {theta}")
        self.G = float(G)
        self.theta = float(theta)
        super().__init__(origin, half_extent, max_depth)

    def clear(self, expected_points: int = 0) -> None:
        super().clear(expected_points)
        self._masses = np.zeros(self._points.shape[0], dtype=np.float64)
        self._node_mass = None
        self._node_com = None

    def insert_many(self, positions: NDArrayFloat, masses: NDArrayFloat = None) -> np.ndarray:
        """
        Insert mass points.

        Parameters
        ----------
        positions : NDArrayFloat, shape (K, 3)
            Point positions [AU].
        masses : NDArrayFloat, shape (K,)
            Point masses [Msun].

        Raises
        ------
        ValueError
            If positions or masses are non-finite or the shapes disagree.
        """
        positions = np.asarray(positions, dtype=np.float64).reshape(-1, 3)
        if masses is None:
            raise ValueError("ForceOctree points need masses")
        masses = np.asarray(masses, dtype=np.float64).reshape(-1)
        if masses.shape[0] != positions.shape[0]:
            raise ValueError(
                f"Got {positions.shape[0]} positions but {masses.shape[0]} masses"
            )
        if not np.all(np.isfinite(masses)):
            raise ValueError("Cannot insert points with non-finite masses")

        indices = super().insert_many(positions)
        if self._masses.shape[0] < self._points.shape[0]:
            grown = np.zeros(self._points.shape[0], dtype=np.float64)
            grown[:self._masses.shape[0]] = self._masses
            self._masses = grown
        self._masses[indices] = masses

        # Moments are rebuilt on the next query
        self._node_mass = None
        self._node_com = None
        return indices

    def insert(self, position: Sequence[float], mass: float = 0.0) -> int:
        """Insert a single mass point and return its index."""
        return int(self.insert_many(np.asarray(position, dtype=np.float64).reshape(1, 3), [mass])[0])

    @property
    def masses(self) -> NDArrayFloat:
        return self._masses[:self.n_points]

    def _build_moments(self) -> None:
        n = self.n_nodes
        owner = self.owner
        masses = self.masses
        points = self.points

        node_mass = np.bincount(owner, weights=masses, minlength=n).astype(np.float64)
        node_com = np.empty((n, 3), dtype=np.float64)
        for axis in range(3):
            node_com[:, axis] = np.bincount(owner, weights=masses * points[:, axis], minlength=n)

        _accumulate_moments(self.preorder(), self.children, node_mass, node_com)
        self._node_mass = node_mass
        self._node_com = node_com
        self._node_size = 2.0 * np.max(self.half, axis=1)

    @property
    def node_mass(self) -> NDArrayFloat:
        if self._node_mass is None:
            self._build_moments()
        return self._node_mass

    @property
    def node_com(self) -> NDArrayFloat:
        if self._node_com is None:
            self._build_moments()
        return self._node_com

    def compute_acceleration(
        self,
        query_position: Sequence[float],
        smoothing_length: float = 0.0,
    ) -> NDArrayFloat:
        """
        Gravitational acceleration at a single position.

        Parameters
        ----------
        query_position : sequence of 3 floats
            Position [AU].
        smoothing_length : float
            Softening length h [AU]; contributions are G m d / (r² + h²)^(3/2).

        Returns
        -------
        accel : NDArrayFloat, shape (3,)
            Acceleration [AU s^-2], pointing towards the attracting mass.
        """
        if self._node_mass is None:
            self._build_moments()
        qx, qy, qz = np.asarray(query_position, dtype=np.float64).reshape(3)
        ax, ay, az = _gravity_walk(
            qx, qy, qz, float(smoothing_length), self.G, self.theta ** 2,
            self.children, self._node_mass, self._node_com, self._node_size,
            self.max_depth,
        )
        return np.array([ax, ay, az], dtype=np.float64)

    def compute_accelerations(
        self,
        positions: NDArrayFloat,
        smoothing_lengths: Optional[NDArrayFloat] = None,
    ) -> NDArrayFloat:
        """
        Accelerations for a batch of query positions.

        Parameters
        ----------
        positions : NDArrayFloat, shape (N, 3)
        smoothing_lengths : NDArrayFloat, shape (N,), optional
            Per-query softening; zero if omitted.

        Returns
        -------
        accel : NDArrayFloat, shape (N, 3)
        """
        positions = np.asarray(positions, dtype=np.float64).reshape(-1, 3)
        n = positions.shape[0]
        h = (
            np.zeros(n) if smoothing_lengths is None
            else np.asarray(smoothing_lengths, dtype=np.float64).reshape(n)
        )
        if self._node_mass is None:
            self._build_moments()
        return _compute_accelerations(
            positions, h, self.G, self.theta ** 2, self.children,
            self._node_mass, self._node_com, self._node_size, self.max_depth,
        )

    def __repr__(self) -> str:
        return (
            f"ForceOctree(n_points={self.n_points}, n_nodes={self.n_nodes}, "
            f"theta={self.theta}, G={self.G:.4e})"
        )


@njit(fastmath=True, nogil=True)
def _compute_accelerations(positions, h, G, theta2, children, node_mass,
                           node_com, node_size, max_depth):
    N = positions.shape[0]
    accel = np.zeros((N, 3), dtype=np.float64)
    for i in range(N):
        ax, ay, az = _gravity_walk(
            positions[i, 0], positions[i, 1], positions[i, 2], h[i], G, theta2,
            children, node_mass, node_com, node_size, max_depth,
        )
        accel[i, 0] = ax
        accel[i, 1] = ay
        accel[i, 2] = az
    return accel

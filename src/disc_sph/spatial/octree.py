"""
Adaptive octree arena shared by the gravity and optical depth trees.

Nodes are stored in flat numpy arrays indexed by an integer handle (the root
is handle 0), so the whole tree is dropped by dropping the arrays. Each node
has an origin, a per-axis half extent, 8 child slots (-1 when empty) and at
most one payload point while it is a leaf.

Subdivision rule: a point reaching an empty leaf is stored there; a point
reaching an occupied leaf splits it into 8 children of half the size and
both points are pushed down again. Children are always created as a full
set of 8, so a node is a leaf iff its first child slot is empty.

Octant coding (ties go to the high side):
    bit 0 : x >= origin.x
    bit 1 : y >= origin.y
    bit 2 : z >= origin.z

Leaves at `max_depth` are never split: further points reaching them are
merged into the leaf (recorded in `owner`) so that coincident points cannot
recurse without bound.

Reference:
    Barnes & Hut (1986) - A Hierarchical O(N log N) Force-Calculation Algorithm
"""

from typing import Sequence, Union
import warnings
import numpy as np
from numba import njit

from ..core.interfaces import NDArrayFloat

# Constants
MAX_DEPTH = 48            # Depth cutoff for coincident points
INITIAL_NODES_FACTOR = 4  # Initial arena size relative to point count
MIN_NODES = 64


@njit(fastmath=True, nogil=True)
def _get_octant(x, y, z, cx, cy, cz):
    """Determine which octant (0-7) a point lies in relative to center."""
    idx = 0
    if x >= cx:
        idx |= 1
    if y >= cy:
        idx |= 2
    if z >= cz:
        idx |= 4
    return idx


@njit(nogil=True)
def _split_node(node, origin, half, children, payload, depth, n_nodes):
    """Create the 8 children of `node` at the end of the arena."""
    hx = half[node, 0] * 0.5
    hy = half[node, 1] * 0.5
    hz = half[node, 2] * 0.5

    for k in range(8):
        child = n_nodes + k
        origin[child, 0] = origin[node, 0] + (hx if (k & 1) else -hx)
        origin[child, 1] = origin[node, 1] + (hy if (k & 2) else -hy)
        origin[child, 2] = origin[node, 2] + (hz if (k & 4) else -hz)
        half[child, 0] = hx
        half[child, 1] = hy
        half[child, 2] = hz
        for j in range(8):
            children[child, j] = -1
        payload[child] = -1
        depth[child] = depth[node] + 1
        children[node, k] = child

    return n_nodes + 8


@njit(nogil=True)
def _insert_points(points, start, stop, origin, half, children, payload,
                   depth, owner, n_nodes, max_depth):
    """
    Insert points[start:stop] into the tree rooted at node 0.

    Stops early when the arena may not hold the worst-case number of nodes a
    single insertion can create, returning the index to resume from.
    """
    capacity = origin.shape[0]
    headroom = 8 * (max_depth + 1)

    for p in range(start, stop):
        if n_nodes + headroom > capacity:
            return n_nodes, p

        px = points[p, 0]
        py = points[p, 1]
        pz = points[p, 2]
        node = 0
        while True:
            if children[node, 0] == -1:
                q = payload[node]
                if q == -1:
                    # Empty leaf -> place point here
                    payload[node] = p
                    owner[p] = node
                    break
                if depth[node] >= max_depth:
                    # Depth cutoff -> merge into this leaf
                    owner[p] = node
                    break

                # Occupied leaf -> split and push the old point down
                n_nodes = _split_node(node, origin, half, children, payload, depth, n_nodes)
                payload[node] = -1
                octant = _get_octant(points[q, 0], points[q, 1], points[q, 2],
                                     origin[node, 0], origin[node, 1], origin[node, 2])
                child = children[node, octant]
                payload[child] = q
                owner[q] = child

            # Internal node -> descend towards the new point
            octant = _get_octant(px, py, pz, origin[node, 0], origin[node, 1], origin[node, 2])
            node = children[node, octant]

    return n_nodes, stop


@njit(nogil=True)
def _preorder(children, n_nodes, max_depth):
    """Pre-order flattening of all nodes, children visited in octant order."""
    order = np.empty(n_nodes, dtype=np.int64)
    stack = np.empty(8 * (max_depth + 2), dtype=np.int64)
    stack[0] = 0
    top = 1
    count = 0
    while top > 0:
        top -= 1
        node = stack[top]
        order[count] = node
        count += 1
        if children[node, 0] != -1:
            for k in range(7, -1, -1):
                stack[top] = children[node, k]
                top += 1
    return order


class Octree:
    """
    Arena-backed point octree.

    Parameters
    ----------
    origin : sequence of 3 floats
        Centre of the root cell.
    half_extent : float or sequence of 3 floats
        Half size of the root cell along each axis.
    max_depth : int, default MAX_DEPTH
        Depth at which leaves stop splitting.

    Attributes
    ----------
    n_nodes : int
        Number of nodes in use.
    n_points : int
        Number of points inserted.
    n_merged : int
        Points that reached a full leaf at `max_depth` and were merged.
    origin, half : NDArrayFloat, shape (n_nodes, 3)
    children : ndarray of int64, shape (n_nodes, 8)
    payload : ndarray of int64, shape (n_nodes,)
    depth : ndarray of int64, shape (n_nodes,)
    points : NDArrayFloat, shape (n_points, 3)
    owner : ndarray of int64, shape (n_points,)
        Leaf holding (or merged with) each point.
    """

    def __init__(
        self,
        origin: Sequence[float] = (0.0, 0.0, 0.0),
        half_extent: Union[float, Sequence[float]] = 1.0,
        max_depth: int = MAX_DEPTH,
    ):
        self.root_origin = np.asarray(origin, dtype=np.float64).reshape(3)
        self.root_half = np.broadcast_to(
            np.asarray(half_extent, dtype=np.float64), (3,)
        ).copy()
        if np.any(self.root_half <= 0.0):
            raise ValueError(f"half_extent must be positive, got {self.root_half}")
        if max_depth < 1:
            raise ValueError(f"max_depth must be >= 1, got {max_depth}")
        self.max_depth = int(max_depth)
        self.clear()

    def clear(self, expected_points: int = 0) -> None:
        """Reset to a single empty root leaf."""
        capacity = max(MIN_NODES, INITIAL_NODES_FACTOR * expected_points) + 8 * (self.max_depth + 1)
        self._origin = np.zeros((capacity, 3), dtype=np.float64)
        self._half = np.zeros((capacity, 3), dtype=np.float64)
        self._children = np.full((capacity, 8), -1, dtype=np.int64)
        self._payload = np.full(capacity, -1, dtype=np.int64)
        self._depth = np.zeros(capacity, dtype=np.int64)
        self._origin[0] = self.root_origin
        self._half[0] = self.root_half
        self.n_nodes = 1

        self._points = np.zeros((max(expected_points, 8), 3), dtype=np.float64)
        self._owner = np.full(self._points.shape[0], -1, dtype=np.int64)
        self.n_points = 0

    # Arena views (only the nodes / points in use)
    @property
    def origin(self) -> NDArrayFloat:
        return self._origin[:self.n_nodes]

    @property
    def half(self) -> NDArrayFloat:
        return self._half[:self.n_nodes]

    @property
    def children(self) -> np.ndarray:
        return self._children[:self.n_nodes]

    @property
    def payload(self) -> np.ndarray:
        return self._payload[:self.n_nodes]

    @property
    def depth(self) -> np.ndarray:
        return self._depth[:self.n_nodes]

    @property
    def points(self) -> NDArrayFloat:
        return self._points[:self.n_points]

    @property
    def owner(self) -> np.ndarray:
        return self._owner[:self.n_points]

    @property
    def n_merged(self) -> int:
        return int(self.n_points - np.count_nonzero(self.payload >= 0))

    def _grow_nodes(self) -> None:
        old = self._origin.shape[0]
        new = 2 * old
        n = self.n_nodes

        origin = np.zeros((new, 3), dtype=np.float64)
        half = np.zeros((new, 3), dtype=np.float64)
        children = np.full((new, 8), -1, dtype=np.int64)
        payload = np.full(new, -1, dtype=np.int64)
        depth = np.zeros(new, dtype=np.int64)
        origin[:n] = self._origin[:n]
        half[:n] = self._half[:n]
        children[:n] = self._children[:n]
        payload[:n] = self._payload[:n]
        depth[:n] = self._depth[:n]

        self._origin, self._half, self._children = origin, half, children
        self._payload, self._depth = payload, depth

    def _reserve_points(self, count: int) -> None:
        needed = self.n_points + count
        if needed <= self._points.shape[0]:
            return
        size = max(needed, 2 * self._points.shape[0])
        points = np.zeros((size, 3), dtype=np.float64)
        owner = np.full(size, -1, dtype=np.int64)
        points[:self.n_points] = self._points[:self.n_points]
        owner[:self.n_points] = self._owner[:self.n_points]
        self._points, self._owner = points, owner

    def insert_many(self, positions: NDArrayFloat) -> np.ndarray:
        """
        Insert a batch of points.

        Parameters
        ----------
        positions : NDArrayFloat, shape (K, 3)
            Point coordinates.

        Returns
        -------
        indices : ndarray of int64, shape (K,)
            Point indices assigned to the inserted points.

        Raises
        ------
        ValueError
            If any coordinate is NaN or infinite.
        """
        positions = np.asarray(positions, dtype=np.float64).reshape(-1, 3)
        if not np.all(np.isfinite(positions)):
            n_bad = int(np.count_nonzero(~np.all(np.isfinite(positions), axis=1)))
            raise ValueError(f"Cannot insert {n_bad} point(s) with non-finite coordinates")

        n_new = positions.shape[0]
        outside = np.any(np.abs(positions - self.root_origin) > self.root_half, axis=1)
        if np.any(outside):
            warnings.warn(
                f"{int(np.count_nonzero(outside))} point(s) lie outside the root cell "
                f"(origin {self.root_origin.tolist()}, half extent {self.root_half.tolist()})",
                RuntimeWarning,
            )

        merged_before = self.n_merged
        self._reserve_points(n_new)
        start = self.n_points
        stop = start + n_new
        self._points[start:stop] = positions
        self.n_points = stop

        cursor = start
        while cursor < stop:
            self.n_nodes, cursor = _insert_points(
                self._points, cursor, stop,
                self._origin, self._half, self._children, self._payload,
                self._depth, self._owner, self.n_nodes, self.max_depth,
            )
            cursor = int(cursor)
            self.n_nodes = int(self.n_nodes)
            if cursor < stop:
                self._grow_nodes()

        merged = self.n_merged - merged_before
        if merged > 0:
            warnings.warn(
                f"{merged} point(s) merged into leaves at the depth limit ({self.max_depth})",
                RuntimeWarning,
            )
        return np.arange(start, stop, dtype=np.int64)

    def insert(self, position: Sequence[float]) -> int:
        """Insert a single point and return its index."""
        return int(self.insert_many(np.asarray(position, dtype=np.float64).reshape(1, 3))[0])

    def octant(self, position: Sequence[float], node: int = 0) -> int:
        """Octant code (0-7) of `position` relative to the origin of `node`."""
        x, y, z = np.asarray(position, dtype=np.float64).reshape(3)
        o = self._origin[node]
        return int(_get_octant(x, y, z, o[0], o[1], o[2]))

    def is_leaf(self, node: int) -> bool:
        return bool(np.all(self._children[node] == -1))

    def preorder(self) -> np.ndarray:
        """Node handles in pre-order (root first, children in octant order)."""
        return _preorder(self._children, self.n_nodes, self.max_depth)

    def leaves(self) -> np.ndarray:
        """Handles of all leaf nodes."""
        return np.flatnonzero(self.children[:, 0] == -1)

    def __len__(self) -> int:
        return self.n_points

    def __repr__(self) -> str:
        return (
            f"{type(self).__name__}(n_points={self.n_points}, n_nodes={self.n_nodes}, "
            f"half_extent={self.root_half.tolist()})"
        )

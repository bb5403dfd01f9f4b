"""
Disc and cloud centering, and the outer disc radius.

Centering shifts every gas particle and sink by a reference position (and
velocity) and tags the snapshot name so centered outputs never overwrite
their inputs:

    sink     : position and velocity of sink `sink_index`   -> '.centered.<i>'
    position : a fixed position                             -> '.centered.<label>'
    densest  : mass-weighted centroid of the N densest gas  -> '.centered.densest'
"""

from typing import Optional, Sequence, Tuple
import numpy as np

from ..constants import ROUT_PERCS
from ..core.interfaces import NDArrayFloat, SnapshotFile

CENTER_MODES = ("none", "sink", "position", "densest")


def densest_centroid(particles, n_densest: int) -> Tuple[NDArrayFloat, NDArrayFloat]:
    """
    Mass-weighted position and velocity of the `n_densest` densest particles.

    At least one and at most all particles are used; density ties keep
    particle order.
    """
    if particles.n_particles == 0:
        raise ValueError("Cannot find the densest particles of an empty snapshot")
    n = min(max(1, int(n_densest)), particles.n_particles)
    order = np.argsort(-particles.density, kind="stable")[:n]
    m = particles.masses[order]
    total = np.sum(m)
    if total <= 0.0:
        raise ValueError("Densest particles have no mass")
    dx = np.sum(m[:, np.newaxis] * particles.positions[order], axis=0) / total
    dv = np.sum(m[:, np.newaxis] * particles.velocities[order], axis=0) / total
    return dx, dv


def shift_snapshot(snapshot: SnapshotFile, dx: NDArrayFloat, dv: NDArrayFloat) -> None:
    """Subtract dx from all positions and dv from all velocities, in place."""
    snapshot.particles.positions -= dx
    snapshot.particles.velocities -= dv
    if snapshot.sinks is not None and snapshot.sinks.n_sinks:
        snapshot.sinks.positions -= dx
        snapshot.sinks.velocities -= dv


def center_disc(
    snapshot: SnapshotFile,
    mode: str = "sink",
    sink_index: int = 0,
    position: Optional[Sequence[float]] = None,
    label: str = "position",
    n_densest: int = 1,
) -> Tuple[NDArrayFloat, NDArrayFloat]:
    """
    Center a disc snapshot in place.

    Parameters
    ----------
    snapshot : SnapshotFile
        Loaded snapshot.
    mode : {'none', 'sink', 'position', 'densest'}
    sink_index : int
        Sink used by 'sink' mode. In 'position' mode a zero z component is
        replaced by this sink's z when the sink exists.
    position : sequence of 3 floats
        Reference position for 'position' mode.
    label : str
        Name tag for 'position' mode.
    n_densest : int
        Particle count for 'densest' mode.

    Returns
    -------
    dx, dv : NDArrayFloat, shape (3,)
        Offsets subtracted.

    Raises
    ------
    ValueError
        On an unknown mode, a missing sink or a missing position.
    """
    if mode not in CENTER_MODES:
        raise ValueError(f"Unknown center mode '{mode}'. Choose from {CENTER_MODES}.")
    zero = np.zeros(3)
    if mode == "none":
        return zero, zero

    sinks = snapshot.sinks
    n_sinks = sinks.n_sinks if sinks is not None else 0

    if mode == "densest":
        dx, dv = densest_centroid(snapshot.particles, n_densest)
        tag = "densest"
    elif mode == "sink":
        if not 0 <= sink_index < n_sinks:
            raise ValueError(f"Sink index {sink_index} out of range ({n_sinks} sinks)")
        dx = sinks.positions[sink_index].copy()
        dv = sinks.velocities[sink_index].copy()
        tag = str(sink_index)
    else:
        if position is None:
            raise ValueError("Position centering needs a reference position")
        dx = np.array(position, dtype=np.float64).reshape(3)
        dv = zero
        if dx[2] == 0.0 and 0 <= sink_index < n_sinks:
            dx[2] = sinks.positions[sink_index, 2]
        tag = label

    shift_snapshot(snapshot, dx, dv)
    snapshot.name_data.append += f".centered.{tag}"
    return dx, dv


def center_cloud(snapshot: SnapshotFile, n_densest: int = 1) -> Tuple[NDArrayFloat, NDArrayFloat]:
    """Center a cloud snapshot on its densest particle(s)."""
    dx, dv = densest_centroid(snapshot.particles, n_densest)
    shift_snapshot(snapshot, dx, dv)
    snapshot.name_data.append += ".centered.densest"
    return dx, dv


def find_outer_radius(particles, fractions: Sequence[float] = ROUT_PERCS) -> Tuple[float, ...]:
    """
    Radii enclosing the given fractions of the gas mass.

    Radii are spherical distances from the origin, so center first.

    Returns
    -------
    radii : tuple of float
        One radius per fraction (0.0 for an empty snapshot).
    """
    if particles.n_particles == 0:
        return tuple(0.0 for _ in fractions)
    r = particles.radii
    order = np.argsort(r, kind="stable")
    cumulative = np.cumsum(particles.masses[order])
    total = cumulative[-1]
    radii = []
    for frac in fractions:
        k = int(np.searchsorted(cumulative, frac * total, side="left"))
        radii.append(float(r[order[min(k, len(order) - 1)]]))
    return tuple(radii)

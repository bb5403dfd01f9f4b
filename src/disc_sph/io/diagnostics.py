"""
Column depth diagnostic table.

`new_sigma.dat` is a tab-separated table without header, one row per gas
particle whose tree-walk optical depth is nonzero, in ascending id order.
Downstream plotting scripts index it by column number, so the order of
COLUMN_DEPTH_COLUMNS must not change.

Usage:
    >>> path = write_column_depth_table(particles, "out/new_sigma.dat")
    >>> table = read_column_depth_table(path)
    >>> table["real_tau"]
"""

from pathlib import Path
from typing import Dict, Union
import numpy as np

from ..core.interfaces import NDArrayFloat

COLUMN_DEPTH_TABLE = "new_sigma.dat"

# Column order of the diagnostic table
COLUMN_DEPTH_COLUMNS = (
    "radius",        # 0
    "x",             # 1
    "y",             # 2
    "z",             # 3
    "tau",           # 4  approximate, κ Σ
    "real_tau",      # 5  tree walk
    "density",       # 6
    "temperature",   # 7
    "heating",       # 8  cooling source term Q
    "pressure",      # 9
    "cooling",       # 10 approximate
    "real_cooling",  # 11 tree walk
    "sigma",         # 12 approximate
    "real_sigma",    # 13 tree walk
)


def column_depth_rows(particles) -> NDArrayFloat:
    """
    Table rows for `particles`, shape (K, 14).

    Only particles with nonzero `real_tau` are included, sorted by id.
    """
    order = np.argsort(particles.ids, kind="stable")
    order = order[particles.real_tau[order] != 0.0]
    pos = particles.positions[order]
    return np.column_stack([
        np.linalg.norm(pos, axis=1),
        pos[:, 0],
        pos[:, 1],
        pos[:, 2],
        particles.tau[order],
        particles.real_tau[order],
        particles.density[order],
        particles.temperature[order],
        particles.heating[order],
        particles.pressure[order],
        particles.cooling[order],
        particles.real_cooling[order],
        particles.sigma[order],
        particles.real_sigma[order],
    ]).reshape(-1, len(COLUMN_DEPTH_COLUMNS))


def write_column_depth_table(particles, path: Union[str, Path] = COLUMN_DEPTH_TABLE) -> Path:
    """
    Write the column depth table for `particles`.

    Returns
    -------
    path : Path
        File written.
    """
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    np.savetxt(path, column_depth_rows(particles), fmt="%.6g", delimiter="\t")
    return path


def read_column_depth_table(path: Union[str, Path]) -> Dict[str, NDArrayFloat]:
    """Load a column depth table into a dict of named columns."""
    path = Path(path)
    if path.stat().st_size == 0:
        data = np.zeros((0, len(COLUMN_DEPTH_COLUMNS)))
    else:
        data = np.loadtxt(path, dtype=np.float64, delimiter="\t", ndmin=2)
    if data.shape[1] != len(COLUMN_DEPTH_COLUMNS):
        raise ValueError(
            f"{path}: expected {len(COLUMN_DEPTH_COLUMNS)} columns, got {data.shape[1]}"
        )
    return {name: data[:, i] for i, name in enumerate(COLUMN_DEPTH_COLUMNS)}

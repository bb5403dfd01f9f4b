"""
Cross-file accumulators for batch analysis.

Each worker owns a private AggregatorSet and feeds it one snapshot at a
time. After all workers have joined, the partial sets are folded together
with `merge` and written once. Rows are kept unordered while collecting and
sorted on output, so the merge is associative and commutative and the files
do not depend on how snapshots were distributed across workers.

Outputs (CSV with header):
    mass_radius.csv    time, snap, sink_id, mass, radius
    nbody.csv          time, snap, sink_id, x, y, z, vx, vy, vz, mass
    cloud.csv          time, snap, rho_max, temp_max, x, y, z
    outer_radius.csv   time, snap, r90, r95, r99
"""

import csv
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Tuple, Union

import numpy as np

from ..core.interfaces import SnapshotFile
from .centering import find_outer_radius


class Aggregator(ABC):
    """
    Base accumulator: a list of row tuples with a fixed header.

    Subclasses implement `add(snapshot)`.
    """

    header: Tuple[str, ...] = ()
    file_name: str = ""

    def __init__(self, rows: Optional[Iterable[tuple]] = None):
        self.rows: List[tuple] = list(rows) if rows is not None else []

    @abstractmethod
    def add(self, snapshot: SnapshotFile) -> None:
        """Record the rows of one snapshot."""
        pass

    def merge(self, other: "Aggregator") -> "Aggregator":
        """New aggregator holding the rows of both."""
        if type(other) is not type(self):
            raise TypeError(f"Cannot merge {type(other).__name__} into {type(self).__name__}")
        return type(self)(self.rows + other.rows)

    def sorted_rows(self) -> List[tuple]:
        return sorted(self.rows)

    def write(self, path: Union[str, Path]) -> Path:
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w", newline="") as f:
            writer = csv.writer(f)
            writer.writerow(self.header)
            writer.writerows(self.sorted_rows())
        return path

    def __len__(self) -> int:
        return len(self.rows)

    def __repr__(self) -> str:
        return f"{type(self).__name__}(rows={len(self.rows)})"


class MassRadiusAggregator(Aggregator):
    """Sink mass and distance from the origin over time."""

    header = ("time", "snap", "sink_id", "mass", "radius")
    file_name = "mass_radius.csv"

    def add(self, snapshot: SnapshotFile) -> None:
        sinks = snapshot.sinks
        if sinks is None:
            return
        radii = sinks.radii
        for i in range(sinks.n_sinks):
            self.rows.append((
                float(snapshot.time), snapshot.name_data.snap, int(sinks.ids[i]),
                float(sinks.masses[i]), float(radii[i]),
            ))


class NbodyAggregator(Aggregator):
    """Sink trajectories."""

    header = ("time", "snap", "sink_id", "x", "y", "z", "vx", "vy", "vz", "mass")
    file_name = "nbody.csv"

    def add(self, snapshot: SnapshotFile) -> None:
        sinks = snapshot.sinks
        if sinks is None:
            return
        for i in range(sinks.n_sinks):
            self.rows.append((
                float(snapshot.time), snapshot.name_data.snap, int(sinks.ids[i]),
                *(float(v) for v in sinks.positions[i]),
                *(float(v) for v in sinks.velocities[i]),
                float(sinks.masses[i]),
            ))


class CloudAggregator(Aggregator):
    """Central (peak) density and temperature of a collapsing cloud."""

    header = ("time", "snap", "rho_max", "temp_max", "x", "y", "z")
    file_name = "cloud.csv"

    def add(self, snapshot: SnapshotFile) -> None:
        p = snapshot.particles
        if p is None or p.n_particles == 0:
            return
        k = int(np.argmax(p.density))
        self.rows.append((
            float(snapshot.time), snapshot.name_data.snap,
            float(p.density[k]), float(p.temperature[k]),
            *(float(v) for v in p.positions[k]),
        ))


class OuterRadiusAggregator(Aggregator):
    """Radii enclosing 90, 95 and 99 per cent of the gas mass."""

    header = ("time", "snap", "r90", "r95", "r99")
    file_name = "outer_radius.csv"

    def add(self, snapshot: SnapshotFile) -> None:
        if snapshot.particles is None:
            return
        self.rows.append((
            float(snapshot.time), snapshot.name_data.snap,
            *find_outer_radius(snapshot.particles),
        ))


AGGREGATORS = {
    "mass_radius": MassRadiusAggregator,
    "nbody": NbodyAggregator,
    "cloud": CloudAggregator,
    "outer_radius": OuterRadiusAggregator,
}


class AggregatorSet:
    """
    Named collection of aggregators owned by one worker.

    Parameters
    ----------
    names : iterable of str
        Keys of AGGREGATORS to enable.
    """

    def __init__(self, names: Iterable[str] = ()):
        self.aggregators: Dict[str, Aggregator] = {}
        for name in names:
            if name not in AGGREGATORS:
                raise ValueError(f"Unknown aggregator '{name}'. Choose from {sorted(AGGREGATORS)}.")
            self.aggregators[name] = AGGREGATORS[name]()

    def add(self, name: str, snapshot: SnapshotFile) -> None:
        if name in self.aggregators:
            self.aggregators[name].add(snapshot)

    def merge(self, other: "AggregatorSet") -> "AggregatorSet":
        """Fold two sets; aggregators present in only one are carried over."""
        merged = AggregatorSet()
        for name in sorted(set(self.aggregators) | set(other.aggregators)):
            mine = self.aggregators.get(name)
            theirs = other.aggregators.get(name)
            if mine is None:
                merged.aggregators[name] = type(theirs)(theirs.rows)
            elif theirs is None:
                merged.aggregators[name] = type(mine)(mine.rows)
            else:
                merged.aggregators[name] = mine.merge(theirs)
        return merged

    @classmethod
    def merge_all(cls, sets: Iterable["AggregatorSet"]) -> "AggregatorSet":
        merged = cls()
        for partial in sets:
            merged = merged.merge(partial)
        return merged

    def write(self, directory: Union[str, Path] = ".") -> List[Path]:
        """Write every aggregator to `directory/<file_name>`."""
        directory = Path(directory)
        return [agg.write(directory / agg.file_name) for agg in self.aggregators.values()]

    def __getitem__(self, name: str) -> Aggregator:
        return self.aggregators[name]

    def __contains__(self, name: str) -> bool:
        return name in self.aggregators

    def __repr__(self) -> str:
        return f"AggregatorSet({', '.join(f'{k}={len(v)}' for k, v in self.aggregators.items())})"

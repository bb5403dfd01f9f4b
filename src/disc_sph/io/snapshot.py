"""
Snapshot file formats and format selection.

Every format implements the SnapshotFile capability interface (read, write,
particles, sinks, name data) and is registered in FORMATS under its tag. The
tag is resolved once, when the file is opened; nothing downstream looks at
concrete format types.

Formats:
- column : tab-separated text. A '# time <t>' header line, then one row per
  particle `id type x y z vx vy vz m h rho u sigma` with type 1 for gas and
  -1 for sinks (sink rows store the sink radius in the sigma column).
- hdf5   : h5py file with /particles and /sinks groups (gzip compressed
  datasets) and a root `time` attribute.

File names follow `<run_id>.<format>.<snap>[append]`, e.g. `DISC.column.00042`.

Example usage:
    >>> snap = open_snapshot("runs/DISC.column.00042")
    >>> snap.read()
    >>> out = convert(snap, "hdf5", directory="converted")
"""

from dataclasses import replace
from pathlib import Path
from typing import Dict, Optional, Type, Union
import h5py
import numpy as np

from ..core.interfaces import NameData, SnapshotFile
from ..sph.particles import ParticleSystem, SinkSystem

GAS_TYPE = 1
SINK_TYPE = -1

COLUMN_NAMES = ("id", "type", "x", "y", "z", "vx", "vy", "vz", "m", "h", "rho", "u", "sigma")

_SUFFIX_FORMATS = {".h5": "hdf5", ".hdf5": "hdf5", ".dat": "column", ".txt": "column"}


def parse_file_name(path: Union[str, Path]) -> NameData:
    """
    Split a snapshot path into NameData.

    `<run_id>.<format>.<snap>[.extra...]` is parsed field by field (extra
    components become the append). Other names fall back to the stem as run
    id, a format guessed from the suffix and snapshot '00000'.
    """
    path = Path(path)
    directory = str(path.parent)
    parts = path.name.split(".")
    if len(parts) >= 3 and parts[1] and parts[2]:
        append = "." + ".".join(parts[3:]) if len(parts) > 3 else ""
        return NameData(directory=directory, run_id=parts[0], format=parts[1],
                        snap=parts[2], append=append)
    return NameData(
        directory=directory,
        run_id=path.stem,
        format=_SUFFIX_FORMATS.get(path.suffix.lower(), "column"),
        snap="00000",
    )


class ColumnFile(SnapshotFile):
    """Tab-separated text snapshot."""

    format_tag = "column"

    def read(self) -> None:
        if self.path is None:
            raise ValueError("ColumnFile has no path to read from")
        if not self.path.is_file():
            raise FileNotFoundError(f"Snapshot file not found: {self.path}")

        time = 0.0
        rows = []
        with open(self.path, "r") as f:
            for line_no, line in enumerate(f, start=1):
                tokens = line.split()
                if not tokens:
                    continue
                if tokens[0].startswith("#"):
                    words = line.lstrip("#").split()
                    if len(words) >= 2 and words[0] == "time":
                        time = float(words[1])
                    continue
                if len(tokens) != len(COLUMN_NAMES):
                    raise ValueError(
                        f"{self.path}:{line_no}: expected {len(COLUMN_NAMES)} columns, "
                        f"got {len(tokens)}"
                    )
                rows.append([float(t) for t in tokens])

        data = np.array(rows, dtype=np.float64).reshape(-1, len(COLUMN_NAMES))
        kind = data[:, 1].astype(np.int64)
        unknown = ~np.isin(kind, (GAS_TYPE, SINK_TYPE))
        if np.any(unknown):
            raise ValueError(f"{self.path}: unknown particle type {int(kind[unknown][0])}")

        gas = data[kind == GAS_TYPE]
        sink = data[kind == SINK_TYPE]
        self.time = time
        self.particles = ParticleSystem(
            len(gas),
            ids=gas[:, 0].astype(np.int64),
            positions=gas[:, 2:5],
            velocities=gas[:, 5:8],
            masses=gas[:, 8],
            smoothing_length=gas[:, 9],
            density=gas[:, 10],
            internal_energy=gas[:, 11],
            sigma=gas[:, 12],
        )
        self.sinks = SinkSystem(
            len(sink),
            ids=sink[:, 0].astype(np.int64),
            positions=sink[:, 2:5],
            velocities=sink[:, 5:8],
            masses=sink[:, 8],
            smoothing_length=sink[:, 9],
            radius=sink[:, 12],
        )

    def write(self, filename: Union[str, Path]) -> Path:
        if self.particles is None:
            raise ValueError("No particle data to write")
        path = Path(filename)
        path.parent.mkdir(parents=True, exist_ok=True)

        p = self.particles
        gas = np.column_stack([
            p.ids, np.full(p.n_particles, GAS_TYPE), p.positions, p.velocities,
            p.masses, p.smoothing_length, p.density, p.internal_energy, p.sigma,
        ]).reshape(-1, len(COLUMN_NAMES))
        blocks = [gas]
        s = self.sinks
        if s is not None and s.n_sinks:
            blocks.append(np.column_stack([
                s.ids, np.full(s.n_sinks, SINK_TYPE), s.positions, s.velocities,
                s.masses, s.smoothing_length, np.zeros(s.n_sinks), np.zeros(s.n_sinks),
                s.radius,
            ]))
        data = np.vstack(blocks)

        fmt = ["%d", "%d"] + ["%.10e"] * (len(COLUMN_NAMES) - 2)
        header = f"time {self.time:.10e}\n" + " ".join(COLUMN_NAMES)
        np.savetxt(path, data, fmt=fmt, delimiter="\t", header=header, comments="# ")
        return path


class HDF5File(SnapshotFile):
    """
    HDF5 snapshot.

    Attributes
    ----------
    compression : str
        Dataset compression (gzip level 4).
    """

    format_tag = "hdf5"
    compression = "gzip"
    compression_level = 4

    _particle_fields = ("ids", "positions", "velocities", "masses", "smoothing_length",
                        "density", "internal_energy", "sigma", "heating")
    _sink_fields = ("ids", "positions", "velocities", "masses", "smoothing_length", "radius")

    def read(self) -> None:
        if self.path is None:
            raise ValueError("HDF5File has no path to read from")
        if not self.path.is_file():
            raise FileNotFoundError(f"Snapshot file not found: {self.path}")

        with h5py.File(self.path, "r") as f:
            gas = {key: f["particles"][key][:] for key in self._particle_fields if key in f["particles"]}
            for key in ("positions", "masses"):
                if key not in gas:
                    raise KeyError(f"{self.path}: /particles/{key} missing")
            sinks = {}
            if "sinks" in f:
                sinks = {key: f["sinks"][key][:] for key in self._sink_fields if key in f["sinks"]}
            self.time = float(f.attrs.get("time", 0.0))

        self.particles = ParticleSystem(len(gas["masses"]), **gas)
        n_sinks = len(sinks["masses"]) if "masses" in sinks else 0
        self.sinks = SinkSystem(n_sinks, **sinks) if n_sinks else SinkSystem(0)

    def write(self, filename: Union[str, Path]) -> Path:
        if self.particles is None:
            raise ValueError("No particle data to write")
        path = Path(filename)
        path.parent.mkdir(parents=True, exist_ok=True)

        with h5py.File(path, "w") as f:
            group = f.create_group("particles")
            for key in self._particle_fields:
                self._write_dataset(group, key, getattr(self.particles, key))
            group.attrs["n_particles"] = self.particles.n_particles

            group = f.create_group("sinks")
            sinks = self.sinks if self.sinks is not None else SinkSystem(0)
            for key in self._sink_fields:
                self._write_dataset(group, key, getattr(sinks, key))
            group.attrs["n_sinks"] = sinks.n_sinks

            f.attrs["time"] = self.time
            f.attrs["run_id"] = self.name_data.run_id
            f.attrs["snap"] = self.name_data.snap
        return path

    def _write_dataset(self, group, key: str, array: np.ndarray) -> None:
        if len(array) == 0:
            group.create_dataset(key, data=array)
            return
        group.create_dataset(
            key,
            data=array,
            compression=self.compression,
            compression_opts=self.compression_level,
            chunks=True,
        )


FORMATS: Dict[str, Type[SnapshotFile]] = {
    "column": ColumnFile,
    "hdf5": HDF5File,
}


def open_snapshot(path: Union[str, Path], fmt: Optional[str] = None) -> SnapshotFile:
    """
    Snapshot object for `path` (not yet read).

    Parameters
    ----------
    path : str or Path
    fmt : str, optional
        Format tag; taken from the file name when omitted.

    Raises
    ------
    ValueError
        If the format tag is not registered.
    """
    name_data = parse_file_name(path)
    tag = fmt if fmt is not None else name_data.format
    if tag not in FORMATS:
        raise ValueError(f"Unknown snapshot format '{tag}'. Choose from {sorted(FORMATS)}.")
    return FORMATS[tag](path, name_data)


def load_snapshot(path: Union[str, Path], fmt: Optional[str] = None) -> SnapshotFile:
    """Open and read a snapshot."""
    snap = open_snapshot(path, fmt)
    snap.read()
    return snap


def convert(
    snapshot: SnapshotFile,
    fmt: str,
    directory: Optional[Union[str, Path]] = None,
) -> Path:
    """
    Write `snapshot` in format `fmt`.

    The output is named `<run_id>.<fmt>.<snap><append>` and placed in
    `directory` (default: next to the input).

    Returns
    -------
    path : Path
        File written.
    """
    if fmt not in FORMATS:
        raise ValueError(f"Unknown snapshot format '{fmt}'. Choose from {sorted(FORMATS)}.")
    name_data = replace(snapshot.name_data, format=fmt)
    out = FORMATS[fmt](name_data=name_data)
    out.particles = snapshot.particles
    out.sinks = snapshot.sinks
    out.time = snapshot.time
    return out.write(name_data.output_path(directory))


def write_snapshot(snapshot: SnapshotFile, directory: Optional[Union[str, Path]] = None) -> Path:
    """Write `snapshot` in its own format under its NameData-derived name."""
    return snapshot.write(snapshot.name_data.output_path(directory))

"""
Tests for snapshot formats, file naming and conversion.

Validates:
- Column and HDF5 write/read round trips
- File name parsing and output naming
- Format selection by tag
- Malformed files are rejected
"""

import h5py
import numpy as np
import pytest

from disc_sph.core.interfaces import NameData
from disc_sph.io import (
    FORMATS,
    ColumnFile,
    HDF5File,
    convert,
    load_snapshot,
    open_snapshot,
    parse_file_name,
    write_snapshot,
)

from conftest import make_snapshot


def assert_same_data(a, b, rtol=1e-9):
    np.testing.assert_array_equal(a.particles.ids, b.particles.ids)
    for key in ("positions", "velocities", "masses", "smoothing_length", "density",
                "internal_energy", "sigma"):
        np.testing.assert_allclose(getattr(a.particles, key), getattr(b.particles, key), rtol=rtol)
    np.testing.assert_array_equal(a.sinks.ids, b.sinks.ids)
    np.testing.assert_allclose(a.sinks.positions, b.sinks.positions, rtol=rtol)
    np.testing.assert_allclose(a.sinks.masses, b.sinks.masses, rtol=rtol)
    assert a.time == pytest.approx(b.time)


class TestFileNames:
    def test_standard_name(self, tmp_path):
        name = parse_file_name(tmp_path / "DISC.column.00042")
        assert name == NameData(directory=str(tmp_path), run_id="DISC", format="column", snap="00042")

    def test_append_kept(self):
        name = parse_file_name("runs/DISC.hdf5.00001.centered.0")
        assert name.format == "hdf5"
        assert name.append == ".centered.0"
        assert name.stem == "DISC.hdf5.00001.centered.0"

    def test_fallback_from_suffix(self):
        name = parse_file_name("disc.h5")
        assert (name.run_id, name.format, name.snap) == ("disc", "hdf5", "00000")
        assert parse_file_name("disc").format == "column"

    def test_output_path(self, tmp_path):
        name = NameData(directory="runs", run_id="A", format="column", snap="00003", append=".x")
        assert name.output_path() == name.output_path("runs")
        assert name.output_path(tmp_path) == tmp_path / "A.column.00003.x"


class TestColumnFile:
    def test_round_trip(self, tmp_path):
        snapshot = make_snapshot(time=12.5)
        snapshot.sinks.radius[:] = 0.75
        path = snapshot.write(tmp_path / "DISC.column.00001")
        restored = load_snapshot(path)
        assert isinstance(restored, ColumnFile)
        assert_same_data(snapshot, restored)
        # Sink rows carry the sink radius
        assert restored.sinks.radius[0] == pytest.approx(0.75)
        assert restored.particles.n_particles == 200

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_snapshot(tmp_path / "DISC.column.00001")

    def test_wrong_column_count(self, tmp_path):
        path = tmp_path / "DISC.column.00001"
        path.write_text("# time 0.0\n1 1 0.0 0.0 0.0\n")
        with pytest.raises(ValueError, match="expected 13 columns"):
            load_snapshot(path)

    def test_unknown_particle_type(self, tmp_path):
        path = tmp_path / "DISC.column.00001"
        row = "\t".join(["1", "7"] + ["0.5"] * 11)
        path.write_text(row + "\n")
        with pytest.raises(ValueError, match="unknown particle type"):
            load_snapshot(path)

    def test_write_needs_particles(self, tmp_path):
        with pytest.raises(ValueError):
            ColumnFile().write(tmp_path / "empty")

    def test_release(self, tmp_path):
        path = make_snapshot().write(tmp_path / "DISC.column.00001")
        snapshot = load_snapshot(path)
        assert snapshot.loaded
        snapshot.release()
        assert not snapshot.loaded


class TestHDF5File:
    def test_round_trip(self, tmp_path):
        snapshot = make_snapshot(time=3.0)
        out = convert(snapshot, "hdf5", directory=tmp_path)
        assert out == tmp_path / "DISC.hdf5.00001"
        restored = load_snapshot(out)
        assert isinstance(restored, HDF5File)
        assert_same_data(snapshot, restored, rtol=0.0)

    def test_layout(self, tmp_path):
        out = convert(make_snapshot(), "hdf5", directory=tmp_path)
        with h5py.File(out, "r") as f:
            assert f["particles"]["positions"].shape == (200, 3)
            assert f["sinks"].attrs["n_sinks"] == 1
            assert f.attrs["run_id"] == "DISC"

    def test_no_sinks(self, tmp_path):
        snapshot = make_snapshot()
        snapshot.sinks = None
        restored = load_snapshot(convert(snapshot, "hdf5", directory=tmp_path))
        assert restored.sinks.n_sinks == 0

    def test_missing_dataset(self, tmp_path):
        path = tmp_path / "DISC.hdf5.00001"
        with h5py.File(path, "w") as f:
            f.create_group("particles").create_dataset("masses", data=np.ones(3))
        with pytest.raises(KeyError, match="positions"):
            load_snapshot(path)


class TestFormatSelection:
    def test_registry(self):
        assert FORMATS == {"column": ColumnFile, "hdf5": HDF5File}

    def test_tag_from_name(self, tmp_path):
        assert isinstance(open_snapshot(tmp_path / "X.hdf5.00001"), HDF5File)
        assert isinstance(open_snapshot(tmp_path / "X.column.00001"), ColumnFile)

    def test_explicit_tag_overrides_name(self, tmp_path):
        assert isinstance(open_snapshot(tmp_path / "X.column.00001", fmt="hdf5"), HDF5File)

    def test_unknown_tag(self, tmp_path):
        with pytest.raises(ValueError, match="Unknown snapshot format"):
            open_snapshot(tmp_path / "X.gadget.00001")
        with pytest.raises(ValueError, match="Unknown snapshot format"):
            convert(make_snapshot(), "gadget")


class TestWriteSnapshot:
    def test_keeps_format_and_append(self, tmp_path):
        snapshot = make_snapshot(snap="00004")
        snapshot.name_data.append = ".centered.densest"
        path = write_snapshot(snapshot, tmp_path)
        assert path == tmp_path / "DISC.column.00004.centered.densest"
        assert load_snapshot(path).particles.n_particles == 200

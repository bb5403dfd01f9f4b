"""
Tests for the batch analysis orchestrator.

Validates:
- Static partition covers every file exactly once, in order
- Worker count selection and startup failures
- End-to-end batch over files on disk
- Outputs independent of the number of workers
- Read failures end a worker's slice; integrity failures skip one file
"""

import csv

import numpy as np
import pytest

from disc_sph.core import (
    AnalysisConfig,
    BatchAnalysis,
    GeneratorConfig,
    effective_workers,
    partition_files,
)
from disc_sph.io import load_snapshot

from conftest import make_snapshot


def quiet_config(tmp_path, **kwargs):
    kwargs.setdefault("verbose", False)
    kwargs.setdefault("tree_half_extent", 64.0)
    return AnalysisConfig(output_dir=str(tmp_path / "out"), **kwargs)


def read_csv(path):
    with open(path, newline="") as f:
        return list(csv.reader(f))


class TestPartition:
    def test_remainder_goes_to_first_workers(self):
        assert partition_files(10, 3) == [(0, 4), (4, 7), (7, 10)]

    @pytest.mark.parametrize("n_files,n_workers", [(1, 1), (7, 7), (9, 4), (100, 8), (3, 5)])
    def test_complete_and_ordered(self, n_files, n_workers):
        slices = partition_files(n_files, n_workers)
        assert len(slices) == n_workers
        covered = [i for start, end in slices for i in range(start, end)]
        assert covered == list(range(n_files))
        sizes = [end - start for start, end in slices]
        assert max(sizes) - min(sizes) <= 1

    def test_invalid(self):
        with pytest.raises(ValueError):
            partition_files(4, 0)


class TestWorkers:
    def test_hardware_default(self):
        assert effective_workers(0, 8, 3) == 3
        assert effective_workers(-1, 4, 10) == 4

    def test_clamped(self):
        assert effective_workers(2, 8, 10) == 2
        assert effective_workers(16, 4, 10) == 4

    def test_no_files(self):
        with pytest.raises(ValueError, match="No files selected"):
            effective_workers(2, 4, 0)

    def test_no_hardware(self):
        with pytest.raises(ValueError, match="not detected"):
            effective_workers(2, 0, 4)


class TestStartup:
    def test_no_files(self, tmp_path):
        with pytest.raises(ValueError, match="No files selected"):
            BatchAnalysis([], quiet_config(tmp_path))

    def test_missing_table(self, tmp_path, snapshot_files):
        config = quiet_config(tmp_path, eos_table=str(tmp_path / "missing.dat"))
        with pytest.raises(FileNotFoundError):
            BatchAnalysis(snapshot_files, config)

    def test_unknown_format(self, tmp_path):
        with pytest.raises(ValueError):
            BatchAnalysis([tmp_path / "RUN.bogus.00001"], quiet_config(tmp_path))

    def test_worker_count(self, tmp_path, snapshot_files):
        batch = BatchAnalysis(snapshot_files, quiet_config(tmp_path, threads=8), hardware_threads=2)
        assert batch.n_workers == 2
        assert batch.slices == [(0, 2), (2, 3)]


class TestBatchRun:
    def test_end_to_end(self, tmp_path, snapshot_files):
        config = quiet_config(tmp_path, threads=2, center_mode="sink", sink_analysis=True,
                              outer_radius=True)
        summary = BatchAnalysis(snapshot_files, config, hardware_threads=2).run()

        assert summary.files_total == 3
        assert summary.files_analysed == 3
        assert summary.failures == []
        out = tmp_path / "out"
        assert len(list(out.glob("*.new_sigma.dat"))) == 3
        # Per-file tables carry the centering tag
        assert (out / "DISC.column.00002.centered.0.new_sigma.dat").is_file()

        rows = read_csv(out / "mass_radius.csv")
        assert rows[0] == ["time", "snap", "sink_id", "mass", "radius"]
        assert len(rows) == 4
        # Centered on the sink, so every sink sits at the origin
        assert all(float(r[4]) == 0.0 for r in rows[1:])
        assert len(read_csv(out / "outer_radius.csv")) == 4

    def test_independent_of_worker_count(self, tmp_path, snapshot_files):
        outputs = {}
        for threads in (1, 3):
            config = AnalysisConfig(
                output_dir=str(tmp_path / f"out{threads}"), threads=threads, verbose=False,
                tree_half_extent=64.0, sink_analysis=True, cloud_analysis=True,
            )
            BatchAnalysis(snapshot_files, config, hardware_threads=4).run()
            outputs[threads] = tmp_path / f"out{threads}"

        for name in ("nbody.csv", "mass_radius.csv", "cloud.csv",
                     "DISC.column.00003.new_sigma.dat"):
            assert (outputs[1] / name).read_text() == (outputs[3] / name).read_text()

    def test_keep_data(self, tmp_path, snapshot_files):
        batch = BatchAnalysis(snapshot_files[:1], quiet_config(tmp_path), keep_data=True)
        batch.run()
        particles = batch.snapshots[0].particles
        assert particles is not None
        assert np.all(particles.real_sigma > 0.0)
        assert np.all(particles.temperature > 0.0)
        # A single file writes the plain table name
        assert (tmp_path / "out" / "new_sigma.dat").is_file()

    def test_densest_centering_keeps_column(self, tmp_path):
        snapshot = make_snapshot(seed=4)
        # Unit masses make the one-particle centroid exact
        snapshot.particles.masses[:] = 1.0
        densest = int(np.argmax(snapshot.particles.density))
        config = quiet_config(tmp_path, center_mode="densest", center_densest_num=1,
                              tree_half_extent=1024.0)
        batch = BatchAnalysis([snapshot], config, keep_data=True)
        batch.run()
        particles = batch.snapshots[0].particles
        np.testing.assert_array_equal(particles.positions[densest], [0.0, 0.0, 0.0])
        assert particles.real_sigma[densest] > 0.0
        assert np.all(particles.real_sigma > 0.0)

    def test_data_released_by_default(self, tmp_path, snapshot_files):
        batch = BatchAnalysis(snapshot_files, quiet_config(tmp_path))
        batch.run()
        assert all(not s.loaded for s in batch.snapshots)

    def test_conversion(self, tmp_path, snapshot_files):
        config = quiet_config(tmp_path, convert=True, output_files=True, out_format="hdf5",
                              column_depth=False)
        summary = BatchAnalysis(snapshot_files, config).run()
        converted = sorted((tmp_path / "out").glob("DISC.hdf5.*"))
        assert len(converted) == 3
        assert set(converted) <= set(summary.outputs)
        original = load_snapshot(snapshot_files[0])
        restored = load_snapshot(converted[0])
        np.testing.assert_allclose(restored.particles.positions, original.particles.positions)

    def test_radial_profiles(self, tmp_path, snapshot_files):
        config = quiet_config(tmp_path, radial_analysis=True, radius_in=0.5, radius_out=10.0,
                              radial_bins=5)
        BatchAnalysis(snapshot_files, config).run()
        assert len(list((tmp_path / "out").glob("*.radial"))) == 3


class TestFailures:
    def test_read_failure_ends_slice(self, tmp_path, snapshot_files):
        missing = tmp_path / "runs" / "DISC.column.00099"
        files = [snapshot_files[0], missing, snapshot_files[1], snapshot_files[2]]
        batch = BatchAnalysis(files, quiet_config(tmp_path, threads=1), hardware_threads=1)
        with pytest.warns(RuntimeWarning, match="read failed"):
            summary = batch.run()
        assert summary.files_analysed == 1
        assert summary.aborted_workers == [0]
        assert [name for name, _ in summary.failures] == ["DISC.column.00099"]

    def test_read_failure_spares_other_workers(self, tmp_path, snapshot_files):
        missing = tmp_path / "runs" / "DISC.column.00099"
        files = [snapshot_files[0], missing, snapshot_files[1], snapshot_files[2]]
        batch = BatchAnalysis(files, quiet_config(tmp_path, threads=2), hardware_threads=2)
        with pytest.warns(RuntimeWarning):
            summary = batch.run()
        assert summary.files_analysed == 3
        assert summary.aborted_workers == [0]

    def test_integrity_failure_skips_one_file(self, tmp_path):
        good = [make_snapshot(snap=f"{i:05d}", seed=i) for i in range(3)]
        bad = make_snapshot(snap="00010", seed=10)
        bad.particles.positions[0, 0] = np.nan
        files = [good[0], bad, good[1], good[2]]
        batch = BatchAnalysis(files, quiet_config(tmp_path, threads=1), hardware_threads=1)
        with pytest.warns(RuntimeWarning, match="non-finite"):
            summary = batch.run()
        assert summary.files_analysed == 3
        assert summary.aborted_workers == []
        assert len(summary.failures) == 1

    def test_bad_sink_index_fails_file(self, tmp_path, snapshot_files):
        config = quiet_config(tmp_path, center_mode="sink", center_sink=3)
        with pytest.warns(RuntimeWarning, match="out of range"):
            summary = BatchAnalysis(snapshot_files, config).run()
        assert summary.files_analysed == 0
        assert len(summary.failures) == 3

    def test_failed_file_leaves_no_aggregator_rows(self, tmp_path):
        good = make_snapshot(snap="00001", seed=1)
        bare = make_snapshot(snap="00002", seed=2)
        bare.sinks = None
        config = quiet_config(tmp_path, threads=1, cloud_analysis=True, center_mode="sink")
        with pytest.warns(RuntimeWarning, match="out of range"):
            summary = BatchAnalysis([good, bare], config, hardware_threads=1).run()
        assert summary.files_analysed == 1
        assert len(summary.failures) == 1
        assert len(summary.aggregators["cloud"]) == 1
        rows = read_csv(tmp_path / "out" / "cloud.csv")
        assert len(rows) == 2
        assert rows[1][1] == "00001"


class TestGeneration:
    def test_generated_snapshot_analysed_first(self, tmp_path, snapshot_files):
        config = quiet_config(tmp_path, tree_half_extent=1024.0,
                              generator=GeneratorConfig(n_hydro=200, seed=3))
        batch = BatchAnalysis(snapshot_files[:1], config, keep_data=True)
        assert len(batch.snapshots) == 2
        assert batch.generated_path.is_file()
        assert batch.snapshots[0].name_data.run_id == "SPA"

        summary = batch.run()
        assert summary.files_analysed == 2
        assert np.all(batch.snapshots[0].particles.real_sigma > 0.0)

    def test_generated_cloud(self, tmp_path):
        config = quiet_config(
            tmp_path,
            tree_half_extent=2048.0,
            cloud_analysis=True,
            generator=GeneratorConfig(ic_type="cloud", n_hydro=150, seed=1),
        )
        summary = BatchAnalysis([], config).run()
        assert summary.files_analysed == 1
        rows = read_csv(tmp_path / "out" / "cloud.csv")
        assert len(rows) == 2

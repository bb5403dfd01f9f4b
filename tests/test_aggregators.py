"""
Tests for cross-file aggregators.

Validates:
- Rows collected per snapshot
- Merging is independent of grouping and order
- Output files are sorted with a header
"""

import csv

import numpy as np
import pytest

from disc_sph.analysis import AGGREGATORS, AggregatorSet
from disc_sph.analysis.aggregators import (
    Aggregator,
    CloudAggregator,
    MassRadiusAggregator,
    NbodyAggregator,
)

from conftest import make_snapshot


@pytest.fixture
def snapshots():
    return [
        make_snapshot(snap=f"{i:05d}", seed=i, time=float(i), sink_offset=(float(i), 0.0, 0.0))
        for i in range(4)
    ]


def filled(names, snapshots):
    aggregators = AggregatorSet(names)
    for snapshot in snapshots:
        for name in names:
            aggregators.add(name, snapshot)
    return aggregators


class TestRows:
    def test_mass_radius(self, snapshots):
        agg = MassRadiusAggregator()
        agg.add(snapshots[2])
        assert agg.rows == [(2.0, "00002", 200, 1.0, 2.0)]

    def test_nbody(self, snapshots):
        agg = NbodyAggregator()
        agg.add(snapshots[1])
        row = agg.rows[0]
        assert row[:3] == (1.0, "00001", 200)
        assert row[3:6] == (1.0, 0.0, 0.0)
        assert row[-1] == 1.0

    def test_cloud_peak(self, snapshots):
        agg = CloudAggregator()
        snapshot = snapshots[0]
        snapshot.particles.density[17] = 1.0
        agg.add(snapshot)
        row = agg.rows[0]
        assert row[2] == 1.0
        assert row[4:] == tuple(snapshot.particles.positions[17])

    def test_snapshot_without_sinks(self, snapshots):
        snapshot = snapshots[0]
        snapshot.sinks = None
        agg = MassRadiusAggregator()
        agg.add(snapshot)
        assert len(agg) == 0

    def test_base_class_is_abstract(self):
        with pytest.raises(TypeError):
            Aggregator()


class TestMerge:
    def test_grouping_does_not_matter(self, snapshots):
        names = list(AGGREGATORS)
        whole = filled(names, snapshots)
        parts = [filled(names, snapshots[:1]), filled(names, snapshots[1:3]), filled(names, snapshots[3:])]
        merged = AggregatorSet.merge_all(parts)
        merged_reversed = AggregatorSet.merge_all(parts[::-1])
        for name in names:
            assert merged[name].sorted_rows() == whole[name].sorted_rows()
            assert merged_reversed[name].sorted_rows() == whole[name].sorted_rows()

    def test_partial_sets_carried_over(self, snapshots):
        a = filled(["nbody"], snapshots[:2])
        b = filled(["cloud"], snapshots[2:])
        merged = a.merge(b)
        assert "nbody" in merged and "cloud" in merged
        assert len(merged["nbody"]) == 2
        assert len(merged["cloud"]) == 2

    def test_merge_does_not_alias(self, snapshots):
        a = filled(["nbody"], snapshots[:1])
        merged = a.merge(AggregatorSet(["nbody"]))
        merged["nbody"].rows.append(("extra",))
        assert len(a["nbody"]) == 1

    def test_type_mismatch(self):
        with pytest.raises(TypeError):
            NbodyAggregator().merge(CloudAggregator())

    def test_unknown_name(self):
        with pytest.raises(ValueError, match="Unknown aggregator"):
            AggregatorSet(["mass_radius", "luminosity"])


class TestWrite:
    def test_sorted_with_header(self, snapshots, tmp_path):
        aggregators = filled(["mass_radius"], snapshots[::-1])
        paths = aggregators.write(tmp_path)
        assert paths == [tmp_path / "mass_radius.csv"]
        with open(paths[0], newline="") as f:
            rows = list(csv.reader(f))
        assert rows[0] == list(MassRadiusAggregator.header)
        assert [r[1] for r in rows[1:]] == ["00000", "00001", "00002", "00003"]
        np.testing.assert_allclose([float(r[4]) for r in rows[1:]], [0.0, 1.0, 2.0, 3.0])

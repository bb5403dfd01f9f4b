"""
Tests for the arena octree.

Validates:
- Octant coding and subdivision rule
- Every point owned by a leaf that contains it
- Pre-order flattening
- Depth cutoff for coincident points
- Arena growth and input validation
"""

import warnings

import numpy as np
import pytest

from disc_sph.spatial import Octree


class TestOctant:
    def test_bits(self):
        tree = Octree()
        assert tree.octant([-0.5, -0.5, -0.5]) == 0
        assert tree.octant([0.5, -0.5, -0.5]) == 1
        assert tree.octant([-0.5, 0.5, -0.5]) == 2
        assert tree.octant([-0.5, -0.5, 0.5]) == 4
        assert tree.octant([0.5, 0.5, 0.5]) == 7

    def test_ties_go_high(self):
        tree = Octree()
        assert tree.octant([0.0, 0.0, 0.0]) == 7
        assert tree.octant([0.0, -0.1, -0.1]) == 1


class TestSubdivision:
    def test_first_point_is_root_payload(self):
        tree = Octree()
        idx = tree.insert([0.3, 0.3, 0.3])
        assert tree.n_nodes == 1
        assert tree.is_leaf(0)
        assert tree.payload[0] == idx

    def test_second_point_splits_into_full_set(self):
        tree = Octree()
        a = tree.insert([0.3, 0.3, 0.3])
        b = tree.insert([-0.3, -0.3, -0.3])
        assert tree.n_nodes == 9
        assert not tree.is_leaf(0)
        assert np.all(tree.children[0] >= 1)
        assert tree.payload[0] == -1
        assert tree.payload[tree.children[0, 7]] == a
        assert tree.payload[tree.children[0, 0]] == b
        # Child geometry: half size, offset by half the child size
        child = tree.children[0, 7]
        np.testing.assert_allclose(tree.half[child], [0.5, 0.5, 0.5])
        np.testing.assert_allclose(tree.origin[child], [0.5, 0.5, 0.5])

    def test_points_owned_by_containing_leaf(self):
        rng = np.random.default_rng(3)
        points = rng.uniform(-1.0, 1.0, size=(500, 3))
        tree = Octree(half_extent=1.0)
        tree.insert_many(points)

        owner = tree.owner
        assert np.all(tree.children[owner, 0] == -1)
        lo = tree.origin[owner] - tree.half[owner]
        hi = tree.origin[owner] + tree.half[owner]
        assert np.all(points >= lo) and np.all(points <= hi)
        # One point per leaf without coincident points
        assert tree.n_merged == 0
        assert np.array_equal(np.sort(tree.payload[tree.payload >= 0]), np.arange(500))

    def test_leaf_iff_first_child_empty(self):
        rng = np.random.default_rng(4)
        tree = Octree(half_extent=1.0)
        tree.insert_many(rng.uniform(-1.0, 1.0, size=(200, 3)))
        first_empty = tree.children[:, 0] == -1
        all_empty = np.all(tree.children == -1, axis=1)
        assert np.array_equal(first_empty, all_empty)
        assert set(tree.leaves().tolist()) == set(np.flatnonzero(all_empty).tolist())


class TestPreorder:
    def test_root_first_and_complete(self):
        rng = np.random.default_rng(5)
        tree = Octree(half_extent=1.0)
        tree.insert_many(rng.uniform(-1.0, 1.0, size=(300, 3)))
        order = tree.preorder()
        assert order[0] == 0
        assert sorted(order.tolist()) == list(range(tree.n_nodes))

    def test_parents_before_children(self):
        rng = np.random.default_rng(6)
        tree = Octree(half_extent=1.0)
        tree.insert_many(rng.uniform(-1.0, 1.0, size=(300, 3)))
        position = np.empty(tree.n_nodes, dtype=np.int64)
        position[tree.preorder()] = np.arange(tree.n_nodes)
        for node in range(tree.n_nodes):
            if not tree.is_leaf(node):
                assert np.all(position[tree.children[node]] > position[node])


class TestDepthLimit:
    def test_coincident_points_merge(self):
        tree = Octree(half_extent=1.0, max_depth=6)
        with pytest.warns(RuntimeWarning, match="depth limit"):
            tree.insert_many(np.full((3, 3), 0.25))
        assert tree.n_points == 3
        assert tree.n_merged == 2
        assert tree.depth.max() <= 6
        # All three share one leaf
        assert len(set(tree.owner.tolist())) == 1

    def test_distinct_points_do_not_warn(self):
        tree = Octree(half_extent=1.0)
        with warnings.catch_warnings():
            warnings.simplefilter("error")
            tree.insert_many([[0.1, 0.1, 0.1], [0.1, 0.1, 0.1 + 1e-9]])
        assert tree.n_merged == 0


class TestValidation:
    def test_non_finite_rejected(self):
        tree = Octree()
        with pytest.raises(ValueError, match="non-finite"):
            tree.insert_many([[0.0, np.nan, 0.0]])
        assert tree.n_points == 0

    def test_outside_root_warns(self):
        tree = Octree(half_extent=1.0)
        with pytest.warns(RuntimeWarning, match="outside the root"):
            tree.insert([5.0, 0.0, 0.0])

    def test_bad_geometry(self):
        with pytest.raises(ValueError):
            Octree(half_extent=0.0)
        with pytest.raises(ValueError):
            Octree(max_depth=0)


class TestArena:
    def test_growth_preserves_tree(self):
        rng = np.random.default_rng(7)
        points = rng.uniform(-1.0, 1.0, size=(4000, 3))
        tree = Octree(half_extent=1.0)
        # Arena sized for no points, so it must grow repeatedly
        for chunk in np.array_split(points, 8):
            tree.insert_many(chunk)
        assert len(tree) == 4000
        np.testing.assert_array_equal(tree.points, points)
        owner = tree.owner
        assert np.all(tree.payload[owner] == np.arange(4000))

    def test_clear(self):
        tree = Octree()
        tree.insert_many([[0.1, 0.2, 0.3], [-0.1, -0.2, -0.3]])
        tree.clear()
        assert tree.n_nodes == 1
        assert tree.n_points == 0
        assert tree.is_leaf(0)

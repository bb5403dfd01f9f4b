import numpy as np
import pytest

from disc_sph.sph import ParticleSystem, SinkSystem
from disc_sph.sph.particles import DERIVED_FIELDS


def test_particle_system_defaults():
    n = 16
    particles = ParticleSystem(n)

    np.testing.assert_array_equal(particles.ids, np.arange(n))
    assert particles.positions.shape == (n, 3)
    assert particles.positions.dtype == np.float64
    assert particles.total_mass() == pytest.approx(1.0)
    np.testing.assert_allclose(particles.smoothing_length, 0.1)
    for field in DERIVED_FIELDS:
        values = getattr(particles, field)
        assert values.shape == (n,)
        assert values.dtype == np.float64
        assert np.all(values == 0.0)


def test_particle_system_copies_inputs():
    positions = np.ones((3, 3))
    particles = ParticleSystem(3, positions=positions)
    positions[0, 0] = 99.0
    assert particles.positions[0, 0] == 1.0


def test_particle_system_provides_plural_alias():
    n = 4
    particles = ParticleSystem(n)

    smoothing = np.full(n, 0.2)
    particles.smoothing_lengths = smoothing

    np.testing.assert_array_equal(particles.smoothing_length, smoothing)
    np.testing.assert_array_equal(particles.smoothing_lengths, smoothing)


def test_take_is_independent_subset():
    particles = ParticleSystem(5, positions=np.arange(15.0).reshape(5, 3), ids=[10, 11, 12, 13, 14])
    particles.real_sigma[:] = [1.0, 2.0, 3.0, 4.0, 5.0]

    subset = particles.take(np.array([False, True, False, True, False]))

    assert subset.n_particles == 2
    np.testing.assert_array_equal(subset.ids, [11, 13])
    np.testing.assert_array_equal(subset.real_sigma, [2.0, 4.0])
    subset.positions[0, 0] = -1.0
    subset.real_sigma[0] = -1.0
    assert particles.positions[1, 0] == 3.0
    assert particles.real_sigma[1] == 2.0


def test_validate_rejects_non_finite():
    particles = ParticleSystem(3, ids=[7, 8, 9])
    particles.validate()
    particles.masses[2] = np.inf
    with pytest.raises(ValueError, match="first id 9"):
        particles.validate()
    particles.masses[2] = 1.0
    particles.positions[1, 2] = np.nan
    with pytest.raises(ValueError, match="non-finite"):
        particles.validate()


def test_center_of_mass():
    particles = ParticleSystem(
        2,
        positions=[[0.0, 0.0, 0.0], [4.0, 0.0, 0.0]],
        velocities=[[0.0, 0.0, 0.0], [0.0, 8.0, 0.0]],
        masses=[3.0, 1.0],
    )
    np.testing.assert_allclose(particles.center_of_mass(), [1.0, 0.0, 0.0])
    np.testing.assert_allclose(particles.center_of_mass_velocity(), [0.0, 2.0, 0.0])
    np.testing.assert_array_equal(ParticleSystem(2, masses=[0.0, 0.0]).center_of_mass(), np.zeros(3))


def test_sink_radius_defaults_to_smoothing_length():
    sinks = SinkSystem(2, smoothing_length=[0.1, 0.2], positions=[[3.0, 4.0, 0.0], [0.0, 0.0, 0.0]])
    np.testing.assert_allclose(sinks.radius, [0.1, 0.2])
    np.testing.assert_allclose(sinks.radii, [5.0, 0.0])


def test_sink_concatenate_keeps_order():
    star = SinkSystem(1, masses=[1.0], ids=[101])
    planet = SinkSystem(1, masses=[0.001], ids=[102], radius=[0.5])
    sinks = SinkSystem.concatenate(star, None, SinkSystem(0), planet)
    assert sinks.n_sinks == 2
    np.testing.assert_array_equal(sinks.ids, [101, 102])
    np.testing.assert_allclose(sinks.radius, [0.0, 0.5])
    assert SinkSystem.concatenate().n_sinks == 0

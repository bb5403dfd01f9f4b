"""
Shared fixtures: small particle sets with a consistent thermodynamic state.
"""

import numpy as np
import pytest

from disc_sph.eos import AnalyticOpacity
from disc_sph.sph import ParticleSystem, SinkSystem
from disc_sph.io import ColumnFile
from disc_sph.core.interfaces import NameData


def make_particles(n=300, seed=0, thickness=0.2, radius=10.0, temperature=20.0, opacity=None):
    """Thin random disc with densities, energies and column densities set."""
    opacity = opacity or AnalyticOpacity()
    rng = np.random.default_rng(seed)
    R = radius * np.sqrt(rng.random(n))
    phi = 2.0 * np.pi * rng.random(n)
    z = thickness * (2.0 * rng.random(n) - 1.0)
    density = 1e-10 * np.exp(-R / radius)
    particles = ParticleSystem(
        n,
        positions=np.column_stack([R * np.cos(phi), R * np.sin(phi), z]),
        velocities=rng.normal(size=(n, 3)),
        masses=np.full(n, 1e-3 / n),
        smoothing_length=np.full(n, 0.1),
        density=density,
        internal_energy=opacity.get_energy(density, np.full(n, temperature)),
        sigma=np.full(n, 10.0),
    )
    return particles


def make_snapshot(run_id="DISC", snap="00001", n=200, seed=0, time=0.0, sink_offset=(0.0, 0.0, 0.0)):
    """In-memory column snapshot with one star sink."""
    snapshot = ColumnFile(name_data=NameData(run_id=run_id, format="column", snap=snap))
    snapshot.particles = make_particles(n, seed)
    snapshot.sinks = SinkSystem(
        1,
        positions=[list(sink_offset)],
        velocities=[[0.0, 0.0, 0.0]],
        masses=[1.0],
        smoothing_length=[0.1],
        ids=[n],
    )
    snapshot.time = time
    return snapshot


@pytest.fixture
def opacity():
    return AnalyticOpacity()


@pytest.fixture
def particles():
    return make_particles()


@pytest.fixture
def snapshot_files(tmp_path):
    """Three column snapshots on disk, in snapshot order."""
    paths = []
    for i in range(3):
        snapshot = make_snapshot(snap=f"{i + 1:05d}", seed=i, time=float(i),
                                 sink_offset=(0.1 * i, 0.0, 0.0))
        paths.append(snapshot.write(tmp_path / "runs" / snapshot.name_data.stem))
    return paths

"""
Particle and sink containers for SPH snapshots.

ParticleSystem stores gas particle state as parallel numpy arrays (one entry
per particle) and is mutated in place by every analysis pass. SinkSystem
holds the point masses (stars, planets) that accompany the gas.

Particles keep their original order for their whole lifetime; passes that
need a different traversal order (hemisphere splits, density sorting) work
on index arrays or on copies made with `take`.
"""

from typing import Optional
import numpy as np
import numpy.typing as npt

# Type alias for clarity
NDArrayFloat = npt.NDArray[np.float64]

# Per-particle scalar fields derived by the analysis passes
DERIVED_FIELDS = (
    "temperature",
    "pressure",
    "opacity",
    "real_opacity",
    "tau",
    "real_tau",
    "real_sigma",
    "cooling",
    "real_cooling",
)


def _as_array(values, shape, fill: float = 0.0, dtype=np.float64) -> np.ndarray:
    if values is None:
        return np.full(shape, fill, dtype=dtype)
    return np.array(values, dtype=dtype).reshape(shape)


class ParticleSystem:
    """
    Container for SPH gas particle data and derived analysis quantities.

    Attributes
    ----------
    n_particles : int
        Number of particles in the system.
    ids : ndarray of int64, shape (N,)
        Stable particle identities; the diagnostic table is ordered by them.
    positions : NDArrayFloat, shape (N, 3)
        Cartesian coordinates [AU].
    velocities : NDArrayFloat, shape (N, 3)
        Velocity components [km/s].
    masses : NDArrayFloat, shape (N,)
        Particle masses [Msun].
    smoothing_length : NDArrayFloat, shape (N,)
        Smoothing lengths h [AU].
    density : NDArrayFloat, shape (N,)
        Mass density ρ [g cm^-3].
    internal_energy : NDArrayFloat, shape (N,)
        Specific internal energy u [erg g^-1].
    sigma : NDArrayFloat, shape (N,)
        Approximate column density Σ [g cm^-2] from the generator or file.
    heating : NDArrayFloat, shape (N,)
        Cooling source term Q carried by the snapshot (zero if absent).
    temperature, pressure, opacity, real_opacity, tau, real_tau,
    real_sigma, cooling, real_cooling : NDArrayFloat, shape (N,)
        Derived quantities; the `real_` variants come from the tree walk.

    Notes
    -----
    All floating point arrays are float64: column integrals multiply
    densities of order 1e-12 g cm^-3 by path lengths of order 1e13 cm.
    """

    def __init__(
        self,
        n_particles: int,
        positions: Optional[NDArrayFloat] = None,
        velocities: Optional[NDArrayFloat] = None,
        masses: Optional[NDArrayFloat] = None,
        smoothing_length: Optional[NDArrayFloat] = None,
        density: Optional[NDArrayFloat] = None,
        internal_energy: Optional[NDArrayFloat] = None,
        ids: Optional[np.ndarray] = None,
        sigma: Optional[NDArrayFloat] = None,
        heating: Optional[NDArrayFloat] = None,
    ):
        """
        Initialize particle system.

        Parameters
        ----------
        n_particles : int
            Number of particles.
        positions, velocities : NDArrayFloat, shape (N, 3), optional
            Initial positions / velocities. If None, initialized to zeros.
        masses : NDArrayFloat, shape (N,), optional
            Particle masses. If None, equal masses summing to one.
        smoothing_length : NDArrayFloat, shape (N,), optional
            Smoothing lengths. If None, initialized to 0.1.
        density, internal_energy, sigma, heating : NDArrayFloat, optional
            Thermodynamic inputs. If None, initialized to zeros.
        ids : ndarray, shape (N,), optional
            Particle identities. If None, 0..N-1.
        """
        n = int(n_particles)
        self.n_particles = n

        self.ids = (
            np.arange(n, dtype=np.int64) if ids is None
            else np.array(ids, dtype=np.int64).reshape(n)
        )
        self.positions = _as_array(positions, (n, 3))
        self.velocities = _as_array(velocities, (n, 3))
        self.masses = _as_array(masses, (n,), fill=1.0 / max(n, 1))
        self.smoothing_length = _as_array(smoothing_length, (n,), fill=0.1)
        self.density = _as_array(density, (n,))
        self.internal_energy = _as_array(internal_energy, (n,))
        self.sigma = _as_array(sigma, (n,))
        self.heating = _as_array(heating, (n,))

        for field in DERIVED_FIELDS:
            setattr(self, field, np.zeros(n, dtype=np.float64))

    @property
    def radii(self) -> NDArrayFloat:
        """Spherical distance of every particle from the origin."""
        return np.linalg.norm(self.positions, axis=1)

    @property
    def smoothing_lengths(self) -> NDArrayFloat:
        """Alias for smoothing length array (plural for API consistency)."""
        return self.smoothing_length

    @smoothing_lengths.setter
    def smoothing_lengths(self, value: NDArrayFloat) -> None:
        self.smoothing_length = np.asarray(value, dtype=np.float64).reshape(self.n_particles)

    def take(self, index: np.ndarray) -> "ParticleSystem":
        """
        Independent copy of a subset of particles, derived fields included.

        Parameters
        ----------
        index : ndarray
            Integer indices or boolean mask selecting the subset.
        """
        index = np.asarray(index)
        if index.dtype == bool:
            index = np.flatnonzero(index)
        subset = ParticleSystem(
            len(index),
            positions=self.positions[index],
            velocities=self.velocities[index],
            masses=self.masses[index],
            smoothing_length=self.smoothing_length[index],
            density=self.density[index],
            internal_energy=self.internal_energy[index],
            ids=self.ids[index],
            sigma=self.sigma[index],
            heating=self.heating[index],
        )
        for field in DERIVED_FIELDS:
            setattr(subset, field, getattr(self, field)[index].copy())
        return subset

    def validate(self) -> None:
        """
        Check that positions and masses are finite.

        Raises
        ------
        ValueError
            If any position or mass is NaN or infinite.
        """
        bad_pos = ~np.all(np.isfinite(self.positions), axis=1)
        bad_mass = ~np.isfinite(self.masses)
        n_bad = int(np.count_nonzero(bad_pos | bad_mass))
        if n_bad:
            first = int(self.ids[np.flatnonzero(bad_pos | bad_mass)[0]])
            raise ValueError(
                f"{n_bad} particle(s) have non-finite position or mass "
                f"(first id {first})"
            )

    def total_mass(self) -> float:
        """Total gas mass ∑ m."""
        return float(np.sum(self.masses))

    def center_of_mass(self) -> NDArrayFloat:
        """Mass-weighted mean position (zeros for a massless system)."""
        total_mass = self.total_mass()
        if total_mass == 0:
            return np.zeros(3)
        return np.sum(self.masses[:, np.newaxis] * self.positions, axis=0) / total_mass

    def center_of_mass_velocity(self) -> NDArrayFloat:
        """Mass-weighted mean velocity (zeros for a massless system)."""
        total_mass = self.total_mass()
        if total_mass == 0:
            return np.zeros(3)
        return np.sum(self.masses[:, np.newaxis] * self.velocities, axis=0) / total_mass

    def __len__(self) -> int:
        return self.n_particles

    def __repr__(self) -> str:
        """String representation of particle system."""
        return (
            f"ParticleSystem(n_particles={self.n_particles}, "
            f"total_mass={self.total_mass():.3e})"
        )


class SinkSystem:
    """
    Container for sink particles (stars and planets).

    Attributes
    ----------
    n_sinks : int
        Number of sinks.
    ids : ndarray of int64, shape (S,)
    positions, velocities : NDArrayFloat, shape (S, 3)
    masses, smoothing_length, radius : NDArrayFloat, shape (S,)
        `radius` is derived: the Hill radius for planets, otherwise the
        smoothing length.
    """

    def __init__(
        self,
        n_sinks: int = 0,
        positions: Optional[NDArrayFloat] = None,
        velocities: Optional[NDArrayFloat] = None,
        masses: Optional[NDArrayFloat] = None,
        smoothing_length: Optional[NDArrayFloat] = None,
        ids: Optional[np.ndarray] = None,
        radius: Optional[NDArrayFloat] = None,
    ):
        n = int(n_sinks)
        self.n_sinks = n
        self.ids = (
            np.arange(n, dtype=np.int64) if ids is None
            else np.array(ids, dtype=np.int64).reshape(n)
        )
        self.positions = _as_array(positions, (n, 3))
        self.velocities = _as_array(velocities, (n, 3))
        self.masses = _as_array(masses, (n,))
        self.smoothing_length = _as_array(smoothing_length, (n,))
        self.radius = (
            self.smoothing_length.copy() if radius is None
            else _as_array(radius, (n,))
        )

    @classmethod
    def concatenate(cls, *systems: "SinkSystem") -> "SinkSystem":
        """Join several sink systems, preserving order."""
        systems = [s for s in systems if s is not None and s.n_sinks > 0]
        if not systems:
            return cls(0)
        return cls(
            sum(s.n_sinks for s in systems),
            positions=np.concatenate([s.positions for s in systems]),
            velocities=np.concatenate([s.velocities for s in systems]),
            masses=np.concatenate([s.masses for s in systems]),
            smoothing_length=np.concatenate([s.smoothing_length for s in systems]),
            ids=np.concatenate([s.ids for s in systems]),
            radius=np.concatenate([s.radius for s in systems]),
        )

    @property
    def radii(self) -> NDArrayFloat:
        """Distance of every sink from the origin."""
        return np.linalg.norm(self.positions, axis=1)

    def __len__(self) -> int:
        return self.n_sinks

    def __repr__(self) -> str:
        return f"SinkSystem(n_sinks={self.n_sinks}, masses={self.masses.tolist()})"

"""
Uniform spherical cloud initial conditions.

Particles are placed uniformly in volume inside `cloud_radius`, at rest, at
a uniform density and a temperature of 5 K (monatomic ideal gas).
"""

from typing import Optional, Tuple
import numpy as np

from ..constants import K_B_CGS, M_P_CGS, MU, MSOLPERAU3_TO_GPERCM3
from ..core.interfaces import ICGenerator
from ..sph.particles import ParticleSystem, SinkSystem
from .disc import smoothing_length

CLOUD_TEMPERATURE = 5.0  # [K]


class CloudGenerator(ICGenerator):
    """
    Generate a uniform, isothermal, static gas sphere.

    Parameters
    ----------
    n_hydro : int
        Number of particles.
    cloud_radius : float
        Cloud radius [AU].
    cloud_mass : float
        Cloud mass [Msun].
    n_neigh : int
        Target neighbour number for smoothing lengths.
    seed : int, optional
        Seed of the generator's own random stream.
    """

    def __init__(
        self,
        n_hydro: int = 10000,
        cloud_radius: float = 1000.0,
        cloud_mass: float = 1.0,
        n_neigh: int = 50,
        seed: Optional[int] = None,
    ):
        if n_hydro < 1:
            raise ValueError(f"n_hydro must be positive, got {n_hydro}")
        if cloud_radius <= 0.0 or cloud_mass <= 0.0:
            raise ValueError(
                f"cloud_radius and cloud_mass must be positive, got {cloud_radius}, {cloud_mass}"
            )
        self.n_hydro = int(n_hydro)
        self.cloud_radius = float(cloud_radius)
        self.cloud_mass = float(cloud_mass)
        self.n_neigh = int(n_neigh)
        self.seed = seed
        self.rng = np.random.default_rng(seed)
        self.cloud_volume = (4.0 / 3.0) * np.pi * self.cloud_radius ** 3

    @classmethod
    def from_config(cls, config) -> "CloudGenerator":
        return cls(
            n_hydro=config.n_hydro,
            cloud_radius=config.cloud_radius,
            cloud_mass=config.cloud_mass,
            n_neigh=config.n_neigh,
            seed=config.seed,
        )

    def generate(self) -> Tuple[ParticleSystem, SinkSystem]:
        n = self.n_hydro
        rands = self.rng.random((n, 3))

        r = rands[:, 0] ** (1.0 / 3.0) * self.cloud_radius
        theta = np.arccos(1.0 - 2.0 * rands[:, 1])
        phi = 2.0 * np.pi * rands[:, 2]
        positions = np.column_stack([
            r * np.sin(theta) * np.cos(phi),
            r * np.sin(theta) * np.sin(phi),
            r * np.cos(theta),
        ])

        m = np.full(n, self.cloud_mass / n)
        rho = np.full(n, self.cloud_mass / self.cloud_volume)
        u = K_B_CGS * CLOUD_TEMPERATURE / (MU * M_P_CGS * (2.0 / 3.0))

        particles = ParticleSystem(
            n,
            positions=positions,
            masses=m,
            smoothing_length=smoothing_length(m, rho, self.n_neigh),
            density=rho * MSOLPERAU3_TO_GPERCM3,
            internal_energy=np.full(n, u),
        )
        particles.temperature[:] = CLOUD_TEMPERATURE
        return particles, SinkSystem(0)

    def __repr__(self) -> str:
        return (
            f"CloudGenerator(n_hydro={self.n_hydro}, cloud_radius={self.cloud_radius}, "
            f"cloud_mass={self.cloud_mass}, seed={self.seed})"
        )

"""
Circumstellar disc initial conditions generator.

Generates a self-gravitating gas disc around a single star or an eccentric,
inclined binary, optionally with an embedded planet sink. Gas velocities are
circular speeds derived from the Barnes-Hut acceleration of the full
gas + star mass distribution.

Disc model (cylindrical radius R, code units AU / Msun / s):
    Σ(R)   = Σ0 (R0² / (R0² + R²))^(p/2)
    T(R)   = (T∞⁴ + T0⁴ (R² + R0²)^(-2q))^(1/4)
    z0(R)  : self-gravitating scale height solving
             z0² + (π Σ R³ / M*) z0 = c_s² R³ / (G M*)
    ρ(R,z) = ρ0(R) cos(π z / (2 z0)),   ρ0 = π Σ / (4 z0)

References
----------
- Stamatellos, D. & Whitworth, A. P. (2009), MNRAS 392, 413
  "The properties of brown dwarfs and low-mass hydrogen-burning stars
  formed by disc fragmentation"
- Lodato, G. (2007), Nuovo Cimento Rivista Serie 30, 293
  "Self-gravitating accretion discs"
"""

from typing import Optional, Tuple
import numpy as np

from ..constants import (
    AU_TO_KM, AU_TO_M, G_AU, G_SI, K_B, KMPERS_TO_MPERS, M_P, MSOLPERAU2_TO_GPERCM2,
    MSOLPERAU3_TO_GPERCM3, MSUN_TO_KG, MSUN_TO_MJUP, MU,
)
from ..core.interfaces import ICGenerator, OpacityModel, NDArrayFloat
from ..eos.opacity_table import AnalyticOpacity
from ..gravity.barnes_hut import ForceOctree, TREE_HALF_EXTENT
from ..sph.particles import ParticleSystem, SinkSystem

IC_TYPES = ("disc", "binary")


def smoothing_length(masses: NDArrayFloat, density: NDArrayFloat, n_neigh: int) -> NDArrayFloat:
    """h = (3 N_neigh m / (32 π ρ))^(1/3), in the units of m and ρ."""
    return (3.0 * n_neigh * masses / (32.0 * np.pi * density)) ** (1.0 / 3.0)


class DiscGenerator(ICGenerator):
    """
    Generate disc (+ binary, + planet) initial conditions.

    Parameters
    ----------
    opacity : OpacityModel, optional
        Supplies u(ρ, T); AnalyticOpacity if omitted.
    seed : int, optional
        Seed of the generator's own random stream. None draws fresh entropy.
    ic_type : {'disc', 'binary'}
    n_hydro : int
        Number of gas particles.
    m_star, binary_m : float
        Primary and companion masses [Msun].
    binary_a, binary_ecc, binary_inc : float
        Binary separation [AU], eccentricity and inclination [rad].
    m_disc, r_in, r_out, r_0 : float
        Disc mass [Msun], inner/outer/core radii [AU].
    t_0, t_inf : float
        Temperature at 1 AU scale and background temperature [K].
    p, q : float
        Surface density and temperature exponents (p != 2).
    n_neigh : int
        Target neighbour number for smoothing lengths.
    star_smoothing, planet_smoothing : float
        Sink smoothing lengths [AU].
    planet : bool
        Add a planet sink.
    planet_mass : float
        Planet mass [Mjup].
    planet_radius, planet_ecc, planet_inc : float
        Planet semi-major axis [AU], eccentricity and inclination [rad].
    theta : float
        Opening angle of the velocity tree.

    Attributes
    ----------
    rng : numpy.random.Generator
        Random stream used for all sampling.
    sigma0 : float
        Surface density normalisation [Msun AU^-2].
    """

    def __init__(
        self,
        opacity: Optional[OpacityModel] = None,
        seed: Optional[int] = None,
        ic_type: str = "disc",
        n_hydro: int = 10000,
        m_star: float = 1.0,
        binary_m: float = 0.0,
        binary_a: float = 0.0,
        binary_ecc: float = 0.0,
        binary_inc: float = 0.0,
        m_disc: float = 0.1,
        r_in: float = 1.0,
        r_out: float = 100.0,
        r_0: float = 0.25,
        t_0: float = 250.0,
        t_inf: float = 10.0,
        p: float = 1.0,
        q: float = 0.75,
        n_neigh: int = 50,
        star_smoothing: float = 0.1,
        planet_smoothing: float = 0.01,
        planet: bool = False,
        planet_mass: float = 1.0,
        planet_radius: float = 20.0,
        planet_ecc: float = 0.0,
        planet_inc: float = 0.0,
        theta: float = 0.5,
    ):
        if ic_type not in IC_TYPES:
            raise ValueError(f"Unknown ic_type: {ic_type}. Choose from {IC_TYPES}.")
        if n_hydro < 1:
            raise ValueError(f"n_hydro must be positive, got {n_hydro}")
        if not 0.0 <= r_in < r_out:
            raise ValueError(f"Need 0 <= r_in < r_out, got r_in={r_in}, r_out={r_out}")
        if r_0 <= 0.0:
            raise ValueError(f"r_0 must be positive, got {r_0}")
        if p == 2.0:
            raise ValueError("Surface density exponent p = 2 is singular")
        if ic_type == "binary" and (binary_a <= 0.0 or binary_m <= 0.0):
            raise ValueError("Binary discs need binary_a > 0 and binary_m > 0")
        if not 0.0 <= binary_ecc < 1.0 or not 0.0 <= planet_ecc < 1.0:
            raise ValueError("Eccentricities must lie in [0, 1)")

        self.opacity = opacity if opacity is not None else AnalyticOpacity()
        self.seed = seed
        self.rng = np.random.default_rng(seed)

        self.ic_type = ic_type
        self.n_hydro = int(n_hydro)
        self.m_star = float(m_star)
        self.binary_m = float(binary_m) if ic_type == "binary" else 0.0
        self.m_total = self.m_star + self.binary_m
        self.binary_a = float(binary_a)
        self.binary_ecc = float(binary_ecc)
        self.binary_inc = float(binary_inc)
        self.m_disc = float(m_disc)
        self.r_in = float(r_in)
        self.r_out = float(r_out)
        self.r_0 = float(r_0)
        self.t_0 = float(t_0)
        self.t_inf = float(t_inf)
        self.p = float(p)
        self.q = float(q)
        self.n_neigh = int(n_neigh)
        self.star_smoothing = float(star_smoothing)
        self.planet_smoothing = float(planet_smoothing)
        self.planet = bool(planet)
        self.planet_mass = float(planet_mass) / MSUN_TO_MJUP
        self.planet_radius = float(planet_radius)
        self.planet_ecc = float(planet_ecc)
        self.planet_inc = float(planet_inc)
        self.theta = float(theta)

        r02 = self.r_0 ** 2
        self.omega_in = self.r_in ** 2 / r02
        self.omega_out = self.r_out ** 2 / r02
        e = 1.0 - self.p / 2.0
        self.sigma0 = (
            (self.m_disc * (2.0 - self.p)) / (2.0 * np.pi * r02)
            / (((r02 + self.r_out ** 2) / r02) ** e - ((r02 + self.r_in ** 2) / r02) ** e)
        )

    @classmethod
    def from_config(cls, config, opacity: Optional[OpacityModel] = None) -> "DiscGenerator":
        """Build from a GeneratorConfig (cloud-only and naming fields are ignored)."""
        params = config.model_dump()
        for key in ("cloud_radius", "cloud_mass", "run_id"):
            params.pop(key, None)
        return cls(opacity=opacity, **params)

    def generate(self) -> Tuple[ParticleSystem, SinkSystem]:
        """
        Generate gas, stars, velocities and (optionally) the planet.

        Returns
        -------
        particles : ParticleSystem
        sinks : SinkSystem
            Primary first, then companion (binary), then planet.
        """
        particles = self.create_disc()
        sinks = self.create_stars(particles.n_particles)
        self.calculate_velocity(particles, sinks)
        if self.planet:
            sinks = SinkSystem.concatenate(sinks, self.create_planet(particles, sinks))
        return particles, sinks

    def create_disc(self) -> ParticleSystem:
        """Sample gas positions and thermodynamic state."""
        n = self.n_hydro
        rands = self.rng.random((n, 3))

        # Invert the enclosed mass M(<R) for R
        index0 = 1.0 - self.p / 2.0
        index1 = 2.0 / (2.0 - self.p)
        w_in = (1.0 + self.omega_in) ** index0
        w_out = (1.0 + self.omega_out) ** index0
        omega = (w_in + rands[:, 0] * (w_out - w_in)) ** index1 - 1.0
        R = self.r_0 * np.sqrt(omega)
        phi = 2.0 * np.pi * rands[:, 1]

        r02 = self.r_0 ** 2
        sigma = self.sigma0 * (r02 / (r02 + R * R)) ** (self.p / 2.0)
        T = (self.t_inf ** 4 + self.t_0 ** 4 * (R * R + r02) ** (-2.0 * self.q)) ** 0.25
        cs2 = (K_B * T / (MU * M_P)) / (AU_TO_M * AU_TO_M)

        a = np.pi * sigma * R ** 3 / (2.0 * self.m_star)
        z0 = -a + np.sqrt(a * a + cs2 * R ** 3 / (G_AU * self.m_star))
        z = (2.0 / np.pi) * z0 * np.arcsin(2.0 * rands[:, 2] - 1.0)

        rho0 = (np.pi * self.sigma0 / (4.0 * z0)) * (r02 / (r02 + R * R)) ** (self.p / 2.0)
        rho = rho0 * np.cos(np.pi * z / (2.0 * z0))

        m = np.full(n, self.m_disc / n)
        h = smoothing_length(m, rho, self.n_neigh)
        rho_cgs = rho * MSOLPERAU3_TO_GPERCM3
        u = self.opacity.get_energy(rho_cgs, T)

        particles = ParticleSystem(
            n,
            positions=np.column_stack([R * np.cos(phi), R * np.sin(phi), z]),
            masses=m,
            smoothing_length=h,
            density=rho_cgs,
            internal_energy=u,
            sigma=sigma * MSOLPERAU2_TO_GPERCM2,
        )
        particles.temperature[:] = T
        return particles

    def create_stars(self, n_gas: int) -> SinkSystem:
        """Primary star, plus the companion on the binary orbit; ids continue from n_gas."""
        if self.ic_type != "binary":
            return SinkSystem(
                1,
                masses=[self.m_star],
                smoothing_length=[self.star_smoothing],
                ids=[n_gas],
            )

        a = self.binary_a
        ecc = self.binary_ecc
        inc = self.binary_inc
        tilt = (a / 2.0) * (1.0 - np.cos(inc))
        x1 = -a * (1.0 - ecc) * (self.binary_m / self.m_total) + tilt
        x2 = a * (1.0 - ecc) * (self.m_star / self.m_total) - tilt
        z1 = (a / 2.0) * np.sin(inc)
        z2 = -z1

        return SinkSystem(
            2,
            positions=[[x1, 0.0, z1], [x2, 0.0, z2]],
            masses=[self.m_star, self.binary_m],
            smoothing_length=[self.star_smoothing, self.star_smoothing],
            ids=[n_gas, n_gas + 1],
        )

    def binary_velocities(self) -> Tuple[float, float]:
        """Periastron y-velocities [km/s] of primary and companion."""
        v_orb = np.sqrt(G_SI * self.m_total * MSUN_TO_KG / (self.binary_a * AU_TO_M))
        boost = np.sqrt((1.0 + self.binary_ecc) / (1.0 - self.binary_ecc))
        v1 = -v_orb * boost * (self.binary_m / self.m_total) / KMPERS_TO_MPERS
        v2 = v_orb * boost * (self.m_star / self.m_total) / KMPERS_TO_MPERS
        return float(v1), float(v2)

    def calculate_velocity(self, particles: ParticleSystem, sinks: SinkSystem) -> ForceOctree:
        """
        Circular gas velocities from the self-gravity of gas and stars.

        v = sqrt(|a| R) with R the distance from the origin, directed
        tangentially in the disc plane. Star velocities are set from the
        binary orbit (zero for a single star).

        Returns
        -------
        tree : ForceOctree
            The tree used, for inspection.
        """
        tree = ForceOctree(half_extent=TREE_HALF_EXTENT, G=G_AU, theta=self.theta)
        tree.insert_many(particles.positions, particles.masses)
        tree.insert_many(sinks.positions, sinks.masses)

        accel = tree.compute_accelerations(particles.positions, particles.smoothing_length)
        R = particles.radii
        v = np.sqrt(np.linalg.norm(accel, axis=1) * R) * AU_TO_KM
        x = particles.positions[:, 0]
        y = particles.positions[:, 1]
        particles.velocities[:, 0] = -v * y / (R + 1e-6)
        particles.velocities[:, 1] = v * x / (R + 1e-6)
        particles.velocities[:, 2] = 0.0

        sinks.velocities[:] = 0.0
        if self.ic_type == "binary":
            v1, v2 = self.binary_velocities()
            sinks.velocities[0, 1] = v1
            sinks.velocities[1, 1] = v2
        return tree

    def create_planet(self, particles: ParticleSystem, sinks: SinkSystem) -> SinkSystem:
        """
        Planet sink at periastron on a circular-speed orbit.

        The orbital speed uses the star plus the gas mass interior to the
        planet's radius; the inclination tilts the velocity out of the disc
        plane. The sink radius is the Hill radius.
        """
        a = self.planet_radius
        interior_mass = float(np.sum(particles.masses[particles.radii < a]))
        v = np.sqrt(G_SI * (self.m_star + interior_mass) * MSUN_TO_KG / (a * AU_TO_M)) / KMPERS_TO_MPERS
        hill_radius = a * (self.planet_mass / (3.0 * self.m_star)) ** (1.0 / 3.0)

        return SinkSystem(
            1,
            positions=[[a * (1.0 - self.planet_ecc), 0.0, 0.0]],
            velocities=[[0.0, v * np.cos(self.planet_inc), v * np.sin(self.planet_inc)]],
            masses=[self.planet_mass],
            smoothing_length=[self.planet_smoothing],
            ids=[particles.n_particles + sinks.n_sinks],
            radius=[hill_radius],
        )

    def __repr__(self) -> str:
        return (
            f"DiscGenerator(ic_type='{self.ic_type}', n_hydro={self.n_hydro}, "
            f"m_disc={self.m_disc}, r_in={self.r_in}, r_out={self.r_out}, seed={self.seed})"
        )

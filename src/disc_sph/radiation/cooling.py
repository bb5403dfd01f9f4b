"""
Thermodynamic pass and radiative cooling estimates.

The cooling rate follows the diffusion/optically-thin interpolation

    du/dt = 4 σ_SB (T - T_bg) / (Σ² κ + 1/κ_R)

which tends to the optically thin limit for small Σ and to radiative
diffusion for large Σ. The per-particle estimate is linear in the
temperature excess over the background; `CoolingMap` uses the full T⁴ law.

References:
    Stamatellos et al. (2007) - Radiative transfer and the energy equation
        in SPH simulations of star formation
"""

from pathlib import Path
from typing import List, Sequence, Union
import numpy as np

from ..constants import SB, T_BACKGROUND, AU_TO_CM
from ..core.interfaces import OpacityModel, NDArrayFloat

# Opacity modifiers sampled by the cooling map
OPACITY_MODIFIERS = (0.1, 1.0, 10.0)


def cooling_rate(
    temperature: NDArrayFloat,
    sigma: NDArrayFloat,
    kappa: NDArrayFloat,
    kappar: NDArrayFloat,
    t_background: float = T_BACKGROUND,
) -> NDArrayFloat:
    """
    Radiative cooling rate du/dt [erg g^-1 s^-1].

    Parameters
    ----------
    temperature : NDArrayFloat
        Gas temperature T [K].
    sigma : NDArrayFloat
        Column density Σ [g cm^-2].
    kappa, kappar : NDArrayFloat
        Mean and Rosseland mean opacities [cm^2 g^-1].
    t_background : float
        Temperature the gas radiates against [K].
    """
    temperature = np.asarray(temperature, dtype=np.float64)
    sigma = np.asarray(sigma, dtype=np.float64)
    kappa = np.asarray(kappa, dtype=np.float64)
    kappar = np.asarray(kappar, dtype=np.float64)

    numer = 4.0 * SB * (temperature - t_background)
    with np.errstate(divide="ignore"):
        denom = sigma * sigma * kappa + 1.0 / kappar
    return numer / denom


def compute_thermo(particles, opacity: OpacityModel) -> None:
    """
    Derive temperature, pressure, opacities, approximate τ and cooling.

    Updates `particles` in place:
        T = T(ρ, u), P = (γ - 1) ρ u, κ, κ_R, τ = κ Σ,
        cooling = du/dt(T, Σ, κ, κ_R)
    """
    density = particles.density
    energy = particles.internal_energy

    temp = np.asarray(opacity.get_temp(density, energy), dtype=np.float64)
    gamma = np.asarray(opacity.get_gamma(density, temp), dtype=np.float64)
    kappa = np.asarray(opacity.get_kappa(density, temp), dtype=np.float64)
    kappar = np.asarray(opacity.get_kappar(density, temp), dtype=np.float64)

    particles.temperature[:] = temp
    particles.pressure[:] = (gamma - 1.0) * density * energy
    particles.opacity[:] = kappa
    particles.real_opacity[:] = kappar
    particles.tau[:] = kappa * particles.sigma
    particles.cooling[:] = cooling_rate(temp, particles.sigma, kappa, kappar)


def compute_real_cooling(particles) -> None:
    """Cooling rate from the tree-walk column density `real_sigma`."""
    particles.real_cooling[:] = cooling_rate(
        particles.temperature, particles.real_sigma,
        particles.opacity, particles.real_opacity,
    )


class CoolingMap:
    """
    Cooling rate over a log-spaced (density, temperature) grid.

    For each opacity modifier m the map writes
        `<name>_<i>.dat`          rows: density, temperature, log10(du/dt)
        `<name>_<i>_contour.dat`  rows: density, temperature where τ first
                                  exceeds 1 along each temperature row
    using Σ = ρ · 1 AU as the representative column.

    Parameters
    ----------
    opacity : OpacityModel
    dens_min, dens_max : float
        log10 density range [g cm^-3].
    temp_min, temp_max : float
        log10 temperature range [K].
    dens_bins, temp_bins : int
    name : str
        Output file prefix.
    """

    def __init__(
        self,
        opacity: OpacityModel,
        dens_min: float = -18.0,
        dens_max: float = -8.0,
        temp_min: float = 0.5,
        temp_max: float = 4.0,
        dens_bins: int = 100,
        temp_bins: int = 100,
        name: str = "cooling_map",
        modifiers: Sequence[float] = OPACITY_MODIFIERS,
    ):
        if dens_bins < 1 or temp_bins < 1:
            raise ValueError(f"Need at least one bin per axis, got {dens_bins}x{temp_bins}")
        self.opacity = opacity
        self.name = name
        self.modifiers = tuple(modifiers)
        dens_step = abs(dens_max - dens_min) / dens_bins
        temp_step = abs(temp_max - temp_min) / temp_bins
        self.densities = 10.0 ** (dens_min + dens_step * np.arange(dens_bins))
        self.temperatures = 10.0 ** (temp_min + temp_step * np.arange(temp_bins))

    def dudt(self, modifier: float = 1.0) -> NDArrayFloat:
        """Cooling rate grid, shape (temp_bins, dens_bins)."""
        t, d = np.meshgrid(self.temperatures, self.densities, indexing="ij")
        kappa = self.opacity.get_kappa(d, t) * modifier
        sigma = d * AU_TO_CM
        return 4.0 * SB * t ** 4 / (sigma * sigma * kappa + 1.0 / kappa)

    def contour(self, modifier: float = 1.0) -> NDArrayFloat:
        """
        Optically thin / thick boundary, shape (K, 2).

        For every temperature row, the midpoint between the last density
        with τ <= 1 and the first with τ > 1.
        """
        points = []
        for t_idx, temp in enumerate(self.temperatures):
            kappa = self.opacity.get_kappa(self.densities, np.full_like(self.densities, temp)) * modifier
            tau = kappa * self.densities * AU_TO_CM
            crossing = np.flatnonzero((tau[1:] > 1.0) & (tau[:-1] < 1.0))
            if crossing.size == 0:
                continue
            d_idx = crossing[0] + 1
            t_prev = self.temperatures[t_idx - 1] if t_idx > 0 else temp
            points.append((
                0.5 * (self.densities[d_idx] + self.densities[d_idx - 1]),
                0.5 * (temp + t_prev),
            ))
        return np.array(points, dtype=np.float64).reshape(-1, 2)

    def output(self, directory: Union[str, Path] = ".") -> List[Path]:
        """Write heat map and contour files for every modifier."""
        directory = Path(directory)
        directory.mkdir(parents=True, exist_ok=True)
        written = []
        for i, mod in enumerate(self.modifiers):
            t, d = np.meshgrid(self.temperatures, self.densities, indexing="ij")
            rows = np.column_stack([d.ravel(), t.ravel(), np.log10(self.dudt(mod)).ravel()])
            path = directory / f"{self.name}_{i}.dat"
            np.savetxt(path, rows, fmt="%.6g", delimiter="\t")
            written.append(path)

            path = directory / f"{self.name}_{i}_contour.dat"
            np.savetxt(path, self.contour(mod), fmt="%.6g", delimiter="\t")
            written.append(path)
        return written

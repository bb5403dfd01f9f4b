"""
Tabulated and analytic opacity / equation-of-state providers.

The table provider reads a text file laid out as

    n_dens n_temp
    density temperature energy gamma kappa kappa_r
    ...

with n_dens * n_temp rows in density-major order (temperature varies
fastest). Lookups are bilinear in (log ρ, log T) with inputs clamped to the
table range; the temperature inversion T(ρ, u) is a numba kernel that
searches the density-interpolated energy row.

References:
    Stamatellos et al. (2007) - Radiative transfer and the energy equation
        in SPH simulations of star formation
    Bell & Lin (1994) - Using FU Orionis outbursts to constrain
        self-regulated protostellar disk models
"""

from pathlib import Path
from typing import Union
import numpy as np
from numba import njit
from scipy.interpolate import RegularGridInterpolator

from ..constants import K_B_CGS, M_P_CGS, MU
from ..core.interfaces import OpacityModel, NDArrayFloat, ArrayLike

# Column layout of a table row
COLUMNS = ("density", "temperature", "energy", "gamma", "kappa", "kappar")


@njit(fastmath=True, nogil=True)
def _invert_energy(log_rho, log_u, log_dens, log_temp, log_energy):
    """Temperature (log10) from density and energy by row search."""
    n = log_rho.shape[0]
    n_dens = log_dens.shape[0]
    n_temp = log_temp.shape[0]
    out = np.empty(n, dtype=np.float64)

    for p in range(n):
        # Density bracket, clamped
        lr = min(max(log_rho[p], log_dens[0]), log_dens[n_dens - 1])
        i = 0
        while i < n_dens - 2 and log_dens[i + 1] <= lr:
            i += 1
        w = (lr - log_dens[i]) / (log_dens[i + 1] - log_dens[i])

        lu = log_u[p]
        e_lo = (1.0 - w) * log_energy[i, 0] + w * log_energy[i + 1, 0]
        e_hi = (1.0 - w) * log_energy[i, n_temp - 1] + w * log_energy[i + 1, n_temp - 1]
        if lu <= e_lo:
            out[p] = log_temp[0]
            continue
        if lu >= e_hi:
            out[p] = log_temp[n_temp - 1]
            continue

        # Binary search along temperature
        lo = 0
        hi = n_temp - 1
        while hi - lo > 1:
            mid = (lo + hi) // 2
            e_mid = (1.0 - w) * log_energy[i, mid] + w * log_energy[i + 1, mid]
            if e_mid <= lu:
                lo = mid
            else:
                hi = mid

        e0 = (1.0 - w) * log_energy[i, lo] + w * log_energy[i + 1, lo]
        e1 = (1.0 - w) * log_energy[i, hi] + w * log_energy[i + 1, hi]
        if e1 > e0:
            f = (lu - e0) / (e1 - e0)
        else:
            f = 0.0
        out[p] = log_temp[lo] + f * (log_temp[hi] - log_temp[lo])

    return out


class OpacityTable(OpacityModel):
    """
    Opacity and EOS lookups from a (density, temperature) table.

    Parameters
    ----------
    path : str or Path
        Table file.

    Attributes
    ----------
    densities : NDArrayFloat, shape (n_dens,)
        Density grid [g cm^-3], strictly increasing.
    temperatures : NDArrayFloat, shape (n_temp,)
        Temperature grid [K], strictly increasing.
    energy, gamma, kappa, kappar : NDArrayFloat, shape (n_dens, n_temp)
        Tabulated fields.

    Raises
    ------
    FileNotFoundError
        If the table file does not exist.
    ValueError
        If the table is malformed.
    """

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)
        if not self.path.is_file():
            raise FileNotFoundError(f"EOS table not found: {self.path}")
        self.read()

    def read(self) -> None:
        with open(self.path, "r") as f:
            header = f.readline().split()
            try:
                n_dens, n_temp = int(header[0]), int(header[1])
            except (IndexError, ValueError) as e:
                raise ValueError(
                    f"{self.path}: first line must hold 'n_dens n_temp', got {header}"
                ) from e
            data = np.loadtxt(f, dtype=np.float64, ndmin=2)

        if n_dens < 2 or n_temp < 2:
            raise ValueError(f"{self.path}: need at least 2x2 grid points, got {n_dens}x{n_temp}")
        if data.shape != (n_dens * n_temp, len(COLUMNS)):
            raise ValueError(
                f"{self.path}: expected {n_dens * n_temp} rows of {len(COLUMNS)} columns, "
                f"got shape {data.shape}"
            )

        grid = data.reshape(n_dens, n_temp, len(COLUMNS))
        self.densities = grid[:, 0, 0].copy()
        self.temperatures = grid[0, :, 1].copy()
        self.energy = grid[:, :, 2].copy()
        self.gamma = grid[:, :, 3].copy()
        self.kappa = grid[:, :, 4].copy()
        self.kappar = grid[:, :, 5].copy()

        for label, axis in (("density", self.densities), ("temperature", self.temperatures)):
            if np.any(axis <= 0.0) or np.any(np.diff(axis) <= 0.0):
                raise ValueError(f"{self.path}: {label} axis must be positive and strictly increasing")
        for label in ("energy", "kappa", "kappar"):
            if np.any(getattr(self, label) <= 0.0):
                raise ValueError(f"{self.path}: {label} values must be positive")

        self._log_dens = np.log10(self.densities)
        self._log_temp = np.log10(self.temperatures)
        self._log_energy = np.log10(self.energy)
        axes = (self._log_dens, self._log_temp)
        self._interp_energy = RegularGridInterpolator(axes, self._log_energy)
        self._interp_gamma = RegularGridInterpolator(axes, self.gamma)
        self._interp_kappa = RegularGridInterpolator(axes, np.log10(self.kappa))
        self._interp_kappar = RegularGridInterpolator(axes, np.log10(self.kappar))

    def _points(self, density: ArrayLike, temp: ArrayLike) -> np.ndarray:
        density, temp = np.broadcast_arrays(
            np.asarray(density, dtype=np.float64), np.asarray(temp, dtype=np.float64)
        )
        log_d = np.clip(np.log10(np.maximum(density, 1e-300)), self._log_dens[0], self._log_dens[-1])
        log_t = np.clip(np.log10(np.maximum(temp, 1e-300)), self._log_temp[0], self._log_temp[-1])
        return np.stack([log_d, log_t], axis=-1)

    def get_temp(self, density: ArrayLike, energy: ArrayLike) -> NDArrayFloat:
        density, energy = np.broadcast_arrays(
            np.asarray(density, dtype=np.float64), np.asarray(energy, dtype=np.float64)
        )
        shape = density.shape
        log_rho = np.log10(np.maximum(density.ravel(), 1e-300))
        log_u = np.log10(np.maximum(energy.ravel(), 1e-300))
        log_t = _invert_energy(log_rho, log_u, self._log_dens, self._log_temp, self._log_energy)
        return (10.0 ** log_t).reshape(shape)

    def get_gamma(self, density: ArrayLike, temp: ArrayLike) -> NDArrayFloat:
        return self._interp_gamma(self._points(density, temp))

    def get_kappa(self, density: ArrayLike, temp: ArrayLike) -> NDArrayFloat:
        return 10.0 ** self._interp_kappa(self._points(density, temp))

    def get_kappar(self, density: ArrayLike, temp: ArrayLike) -> NDArrayFloat:
        return 10.0 ** self._interp_kappar(self._points(density, temp))

    def get_energy(self, density: ArrayLike, temp: ArrayLike) -> NDArrayFloat:
        return 10.0 ** self._interp_energy(self._points(density, temp))

    def get_file_name(self) -> str:
        return str(self.path)

    def __repr__(self) -> str:
        return (
            f"OpacityTable('{self.path}', n_dens={len(self.densities)}, "
            f"n_temp={len(self.temperatures)})"
        )


class AnalyticOpacity(OpacityModel):
    """
    Ideal gas with power-law opacities.

        u = k_B T / ((γ - 1) μ m_p)
        κ = κ0 T^β,   κ_R = κ_R0 T^β

    Parameters
    ----------
    gamma : float, default 5/3
        Adiabatic index.
    mu : float, default MU
        Mean molecular weight.
    kappa0, kappar0 : float, default 2e-4
        Opacity normalisations [cm^2 g^-1 K^-β] (ice grain regime).
    beta : float, default 2.0
        Temperature exponent.
    """

    def __init__(
        self,
        gamma: float = 5.0 / 3.0,
        mu: float = MU,
        kappa0: float = 2e-4,
        kappar0: float = 2e-4,
        beta: float = 2.0,
    ):
        if gamma <= 1.0:
            raise ValueError(f"Adiabatic index gamma must be > 1, got {gamma}")
        if mu <= 0.0:
            raise ValueError(f"Mean molecular weight must be positive, got {mu}")
        self.gamma = float(gamma)
        self.mu = float(mu)
        self.kappa0 = float(kappa0)
        self.kappar0 = float(kappar0)
        self.beta = float(beta)
        self._u_per_kelvin = K_B_CGS / ((self.gamma - 1.0) * self.mu * M_P_CGS)

    def get_temp(self, density: ArrayLike, energy: ArrayLike) -> NDArrayFloat:
        density, energy = np.broadcast_arrays(
            np.asarray(density, dtype=np.float64), np.asarray(energy, dtype=np.float64)
        )
        return np.maximum(energy, 0.0) / self._u_per_kelvin

    def get_gamma(self, density: ArrayLike, temp: ArrayLike) -> NDArrayFloat:
        density, temp = np.broadcast_arrays(
            np.asarray(density, dtype=np.float64), np.asarray(temp, dtype=np.float64)
        )
        return np.full(density.shape, self.gamma)

    def get_kappa(self, density: ArrayLike, temp: ArrayLike) -> NDArrayFloat:
        density, temp = np.broadcast_arrays(
            np.asarray(density, dtype=np.float64), np.asarray(temp, dtype=np.float64)
        )
        return self.kappa0 * np.maximum(temp, 0.0) ** self.beta

    def get_kappar(self, density: ArrayLike, temp: ArrayLike) -> NDArrayFloat:
        density, temp = np.broadcast_arrays(
            np.asarray(density, dtype=np.float64), np.asarray(temp, dtype=np.float64)
        )
        return self.kappar0 * np.maximum(temp, 0.0) ** self.beta

    def get_energy(self, density: ArrayLike, temp: ArrayLike) -> NDArrayFloat:
        density, temp = np.broadcast_arrays(
            np.asarray(density, dtype=np.float64), np.asarray(temp, dtype=np.float64)
        )
        return self._u_per_kelvin * temp

    def __repr__(self) -> str:
        return (
            f"AnalyticOpacity(gamma={self.gamma:.4f}, mu={self.mu}, "
            f"kappa0={self.kappa0:.2e}, beta={self.beta})"
        )


def tabulate_opacity(
    model: OpacityModel,
    densities: NDArrayFloat,
    temperatures: NDArrayFloat,
    path: Union[str, Path],
) -> Path:
    """
    Write `model` sampled on a (density, temperature) grid as a table file.

    Returns
    -------
    path : Path
        File written.
    """
    densities = np.asarray(densities, dtype=np.float64)
    temperatures = np.asarray(temperatures, dtype=np.float64)
    d, t = np.meshgrid(densities, temperatures, indexing="ij")
    rows = np.column_stack([
        d.ravel(),
        t.ravel(),
        model.get_energy(d, t).ravel(),
        model.get_gamma(d, t).ravel(),
        model.get_kappa(d, t).ravel(),
        model.get_kappar(d, t).ravel(),
    ])

    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    np.savetxt(path, rows, fmt="%.8e", header=f"{len(densities)} {len(temperatures)}", comments="")
    return path


def load_opacity(path: Union[str, Path, None] = None) -> OpacityModel:
    """Table provider for `path`, or the analytic provider when no table is configured."""
    if path is None or str(path) == "":
        return AnalyticOpacity()
    return OpacityTable(path)

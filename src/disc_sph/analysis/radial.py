"""
Azimuthally averaged radial profiles of one snapshot.

Gas is binned in cylindrical radius R between r_in and r_out (linear or
logarithmic bins). Per bin: particle count, mass, surface density, and
mass-weighted density, temperature and tree-walk optical depth; optionally
the mass-weighted rms height as a vertical structure measure.
"""

from pathlib import Path
from typing import Dict, Union
import numpy as np

from ..constants import MSOLPERAU2_TO_GPERCM2
from ..core.interfaces import NDArrayFloat

PROFILE_COLUMNS = ("r_mid", "count", "mass", "sigma", "density", "temperature", "real_tau")


class RadialProfile:
    """
    Radial binning of gas quantities.

    Parameters
    ----------
    r_in, r_out : float
        Bin range [AU].
    bins : int
        Number of bins.
    log : bool
        Logarithmic bin spacing (requires r_in > 0).
    vertical : bool
        Also compute the rms height per bin.
    """

    def __init__(self, r_in: float = 1.0, r_out: float = 100.0, bins: int = 50,
                 log: bool = False, vertical: bool = False):
        if bins < 1:
            raise ValueError(f"bins must be positive, got {bins}")
        if not r_out > r_in >= 0.0:
            raise ValueError(f"Need 0 <= r_in < r_out, got {r_in}, {r_out}")
        if log and r_in <= 0.0:
            raise ValueError("Logarithmic bins need r_in > 0")
        self.r_in = float(r_in)
        self.r_out = float(r_out)
        self.bins = int(bins)
        self.log = bool(log)
        self.vertical = bool(vertical)
        if self.log:
            self.edges = np.logspace(np.log10(self.r_in), np.log10(self.r_out), self.bins + 1)
        else:
            self.edges = np.linspace(self.r_in, self.r_out, self.bins + 1)

    def run(self, particles) -> Dict[str, NDArrayFloat]:
        """
        Compute the profile.

        Returns
        -------
        profile : dict of NDArrayFloat, shape (bins,)
            Keys PROFILE_COLUMNS (plus 'z_rms' when vertical). Empty bins
            hold zeros.
        """
        R = np.hypot(particles.positions[:, 0], particles.positions[:, 1])
        idx = np.searchsorted(self.edges, R, side="right") - 1
        inside = (idx >= 0) & (idx < self.bins)
        # The outer edge belongs to the last bin
        inside |= R == self.edges[-1]
        idx = np.where(R == self.edges[-1], self.bins - 1, idx)
        idx = idx[inside]
        m = particles.masses[inside]

        count = np.bincount(idx, minlength=self.bins).astype(np.float64)
        mass = np.bincount(idx, weights=m, minlength=self.bins)
        area = np.pi * (self.edges[1:] ** 2 - self.edges[:-1] ** 2)

        def weighted(values: NDArrayFloat) -> NDArrayFloat:
            total = np.bincount(idx, weights=m * values[inside], minlength=self.bins)
            return np.divide(total, mass, out=np.zeros(self.bins), where=mass > 0)

        profile = {
            "r_mid": 0.5 * (self.edges[1:] + self.edges[:-1]),
            "count": count,
            "mass": mass,
            "sigma": mass / area * MSOLPERAU2_TO_GPERCM2,
            "density": weighted(particles.density),
            "temperature": weighted(particles.temperature),
            "real_tau": weighted(particles.real_tau),
        }
        if self.vertical:
            profile["z_rms"] = np.sqrt(weighted(particles.positions[:, 2] ** 2))
        return profile

    def write(self, profile: Dict[str, NDArrayFloat], path: Union[str, Path]) -> Path:
        """Write a profile as a tab-separated table with a header line."""
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        names = list(PROFILE_COLUMNS) + (["z_rms"] if "z_rms" in profile else [])
        data = np.column_stack([profile[name] for name in names])
        np.savetxt(path, data, fmt="%.6g", delimiter="\t", header="\t".join(names))
        return path

    def __repr__(self) -> str:
        return (
            f"RadialProfile(r_in={self.r_in}, r_out={self.r_out}, bins={self.bins}, "
            f"log={self.log}, vertical={self.vertical})"
        )

"""
Abstract base classes defining interfaces for pluggable disc_sph modules.

The tree passes and the batch orchestrator only depend on these contracts:
an opacity/EOS provider, a snapshot file capability interface and an
initial-condition generator. Concrete implementations live in `eos`, `io`
and `ICs`.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Tuple, Union
import numpy as np
import numpy.typing as npt


# Type aliases for clarity
NDArrayFloat = npt.NDArray[np.float64]
ArrayLike = Union[float, NDArrayFloat]


class OpacityModel(ABC):
    """
    Abstract base class for opacity / equation-of-state providers.

    All lookups are pure functions of density [g cm^-3] and either specific
    internal energy [erg g^-1] or temperature [K], vectorised over numpy
    arrays. Implementations: OpacityTable (tabulated), AnalyticOpacity.
    """

    @abstractmethod
    def get_temp(self, density: ArrayLike, energy: ArrayLike) -> NDArrayFloat:
        """
        Temperature from density and specific internal energy.

        Parameters
        ----------
        density : array_like, shape (N,)
            Mass density ρ [g cm^-3].
        energy : array_like, shape (N,)
            Specific internal energy u [erg g^-1].

        Returns
        -------
        T : NDArrayFloat, shape (N,)
            Gas temperature [K].
        """
        pass

    @abstractmethod
    def get_gamma(self, density: ArrayLike, temp: ArrayLike) -> NDArrayFloat:
        """Effective adiabatic index γ at (ρ, T)."""
        pass

    @abstractmethod
    def get_kappa(self, density: ArrayLike, temp: ArrayLike) -> NDArrayFloat:
        """Mean opacity κ [cm^2 g^-1] at (ρ, T)."""
        pass

    @abstractmethod
    def get_kappar(self, density: ArrayLike, temp: ArrayLike) -> NDArrayFloat:
        """Rosseland mean opacity κ_R [cm^2 g^-1] at (ρ, T)."""
        pass

    @abstractmethod
    def get_energy(self, density: ArrayLike, temp: ArrayLike) -> NDArrayFloat:
        """Specific internal energy u [erg g^-1] at (ρ, T)."""
        pass

    @property
    def name(self) -> str:
        """Return human-readable provider name."""
        return type(self).__name__


@dataclass
class NameData:
    """
    Components of a snapshot file name `<run_id>.<format>.<snap><append>`.

    Attributes
    ----------
    directory : str
        Directory holding the snapshot.
    run_id : str
        Run identifier (leading part of the file name).
    format : str
        Format tag, e.g. 'column' or 'hdf5'.
    snap : str
        Snapshot number, zero padded.
    append : str
        Suffix appended by analysis passes (e.g. '.centered.densest').
    """
    directory: str = "."
    run_id: str = "SPA"
    format: str = "column"
    snap: str = "00000"
    append: str = ""

    @property
    def stem(self) -> str:
        return f"{self.run_id}.{self.format}.{self.snap}{self.append}"

    def output_path(self, directory: Optional[Union[str, Path]] = None) -> Path:
        """Full output path, in `directory` if given, else next to the input."""
        base = Path(directory) if directory is not None else Path(self.directory)
        return base / self.stem


class SnapshotFile(ABC):
    """
    Capability interface for particle snapshot files.

    A snapshot owns one ParticleSystem and one SinkSystem. Format variants
    implement `read` and `write`; everything else is shared. Variants are
    selected once, by format tag, in `disc_sph.io.snapshot.open_snapshot`.

    Attributes
    ----------
    path : Optional[Path]
        File the snapshot is read from (None for in-memory snapshots).
    name_data : NameData
        Parsed file name, used to derive output names.
    particles : ParticleSystem or None
        Gas particles, populated by `read` or assigned directly.
    sinks : SinkSystem or None
        Sink particles (stars, planets).
    time : float
        Snapshot time.
    """

    format_tag: str = ""

    def __init__(self, path: Optional[Union[str, Path]] = None, name_data: Optional[NameData] = None):
        self.path = Path(path) if path is not None else None
        self.name_data = name_data if name_data is not None else NameData(format=self.format_tag)
        self.particles = None
        self.sinks = None
        self.time = 0.0

    @property
    def loaded(self) -> bool:
        """True once particle data is present."""
        return self.particles is not None

    @abstractmethod
    def read(self) -> None:
        """
        Read particles and sinks from `self.path`.

        Raises
        ------
        FileNotFoundError
            If the file does not exist.
        ValueError
            If the file content is malformed.
        """
        pass

    @abstractmethod
    def write(self, filename: Union[str, Path]) -> Path:
        """Write particles and sinks to `filename`, returning the path written."""
        pass

    def get_particles(self):
        return self.particles

    def get_sinks(self):
        return self.sinks

    def get_name_data(self) -> NameData:
        return self.name_data

    def release(self) -> None:
        """Drop particle data once a file has been fully processed."""
        self.particles = None
        self.sinks = None

    def __repr__(self) -> str:
        n = self.particles.n_particles if self.particles is not None else 0
        return f"{type(self).__name__}('{self.name_data.stem}', n_particles={n})"


class ICGenerator(ABC):
    """
    Abstract base class for initial conditions generators.

    Implementations: DiscGenerator (disc, binary, planet), CloudGenerator.
    """

    @abstractmethod
    def generate(self) -> Tuple["ParticleSystem", "SinkSystem"]:
        """
        Generate particle initial conditions.

        Returns
        -------
        particles : ParticleSystem
            Gas particles with positions, velocities, masses, smoothing
            lengths, densities and internal energies set.
        sinks : SinkSystem
            Sink particles (possibly empty).
        """
        pass

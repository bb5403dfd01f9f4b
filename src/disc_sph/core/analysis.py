"""
Batch analysis orchestrator for disc_sph.

BatchAnalysis drives a list of snapshot files through the per-file passes on
a fixed pool of worker threads:

    read -> thermo -> [cloud analysis / centering] -> [disc centering]
         -> column depth (two hemisphere trees) -> [sink aggregation]
         -> [radial profile] -> [conversion / output]

Design:
- Files are split into contiguous static slices, one per worker, in file
  order; there is no work stealing.
- Per-file data and trees never leave the worker that owns the file.
- Each worker fills a private AggregatorSet; the partial sets are merged
  after all workers have joined and written exactly once.
- The numba kernels release the GIL, so threads overlap the tree work of
  different files.
"""

from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional, Sequence, Tuple, Union
import os
import time as time_module
import warnings
from pydantic import BaseModel, Field, field_validator, model_validator, ConfigDict

from ..analysis.aggregators import AggregatorSet
from ..analysis.centering import CENTER_MODES, center_cloud, center_disc
from ..analysis.radial import RadialProfile
from ..constants import AU_TO_CM
from ..eos.opacity_table import load_opacity
from ..ICs.cloud import CloudGenerator
from ..ICs.disc import DiscGenerator
from ..io.diagnostics import COLUMN_DEPTH_TABLE
from ..io.snapshot import FORMATS, ColumnFile, convert, open_snapshot, write_snapshot
from ..radiation.column_depth import ColumnDepthPass
from ..radiation.cooling import compute_thermo
from ..radiation.optical_depth import DOMAIN_HALF_EXTENT
from ..spatial.octree import MAX_DEPTH
from .interfaces import NameData, OpacityModel, SnapshotFile


class GeneratorConfig(BaseModel):
    """
    Initial-condition generator parameters.

    Attributes
    ----------
    ic_type : str
        'disc', 'binary' or 'cloud'.
    run_id : str
        Run identifier of the generated snapshot name.
    seed : Optional[int]
        Seed of the generator's private random stream.
    """

    ic_type: str = Field(default="disc", description="IC type: 'disc', 'binary' or 'cloud'")
    run_id: str = Field(default="SPA", min_length=1, description="Run id of the generated snapshot")
    seed: Optional[int] = Field(default=None, description="Random seed for reproducibility")
    n_hydro: int = Field(default=10000, ge=1, description="Number of gas particles")
    n_neigh: int = Field(default=50, ge=1, description="Target neighbour number")

    # Stars
    m_star: float = Field(default=1.0, gt=0.0, description="Primary mass [Msun]")
    binary_m: float = Field(default=0.0, ge=0.0, description="Companion mass [Msun]")
    binary_a: float = Field(default=0.0, ge=0.0, description="Binary separation [AU]")
    binary_ecc: float = Field(default=0.0, ge=0.0, lt=1.0, description="Binary eccentricity")
    binary_inc: float = Field(default=0.0, description="Binary inclination [rad]")
    star_smoothing: float = Field(default=0.1, gt=0.0, description="Star smoothing length [AU]")

    # Disc
    m_disc: float = Field(default=0.1, gt=0.0, description="Disc mass [Msun]")
    r_in: float = Field(default=1.0, ge=0.0, description="Inner disc radius [AU]")
    r_out: float = Field(default=100.0, gt=0.0, description="Outer disc radius [AU]")
    r_0: float = Field(default=0.25, gt=0.0, description="Core radius [AU]")
    t_0: float = Field(default=250.0, gt=0.0, description="Temperature scale [K]")
    t_inf: float = Field(default=10.0, ge=0.0, description="Background temperature [K]")
    p: float = Field(default=1.0, description="Surface density exponent")
    q: float = Field(default=0.75, description="Temperature exponent")
    theta: float = Field(default=0.5, ge=0.0, description="Velocity tree opening angle")

    # Planet
    planet: bool = Field(default=False, description="Embed a planet sink")
    planet_mass: float = Field(default=1.0, gt=0.0, description="Planet mass [Mjup]")
    planet_radius: float = Field(default=20.0, gt=0.0, description="Planet semi-major axis [AU]")
    planet_ecc: float = Field(default=0.0, ge=0.0, lt=1.0, description="Planet eccentricity")
    planet_inc: float = Field(default=0.0, description="Planet inclination [rad]")
    planet_smoothing: float = Field(default=0.01, gt=0.0, description="Planet smoothing length [AU]")

    # Cloud
    cloud_radius: float = Field(default=1000.0, gt=0.0, description="Cloud radius [AU]")
    cloud_mass: float = Field(default=1.0, gt=0.0, description="Cloud mass [Msun]")

    model_config = ConfigDict(validate_assignment=True, extra="forbid")

    @field_validator("ic_type")
    @classmethod
    def validate_ic_type(cls, v: str) -> str:
        valid = ["disc", "binary", "cloud"]
        if v not in valid:
            raise ValueError(f"ic_type must be one of {valid}, got '{v}'")
        return v

    @model_validator(mode="after")
    def validate_geometry(self):
        if self.ic_type != "cloud":
            if self.r_out <= self.r_in:
                raise ValueError(f"r_out ({self.r_out}) must be greater than r_in ({self.r_in})")
            if self.p == 2.0:
                raise ValueError("Surface density exponent p = 2 is singular")
        if self.ic_type == "binary" and (self.binary_m <= 0.0 or self.binary_a <= 0.0):
            raise ValueError("ic_type='binary' needs binary_m > 0 and binary_a > 0")
        return self


class AnalysisConfig(BaseModel):
    """
    Configuration for a batch analysis run with Pydantic validation.

    Attributes
    ----------
    threads : int
        Worker threads; <= 0 uses every hardware thread.
    in_format, out_format : str
        Snapshot format tags (in_format None: from each file name).
    center_mode : str
        'none', 'sink', 'position' or 'densest'.
    tree_half_extent, length_unit, tree_shift, max_tree_depth
        Optical depth tree geometry.
    generator : Optional[GeneratorConfig]
        Generate initial conditions and analyse them as the first file.
    """

    # Workers and formats
    threads: int = Field(default=0, description="Worker threads (<= 0: hardware concurrency)")
    in_format: Optional[str] = Field(default=None, description="Input format tag")
    out_format: str = Field(default="column", description="Output format tag")
    convert: bool = Field(default=False, description="Write outputs in out_format")
    output_files: bool = Field(default=False, description="Write processed snapshots")
    output_dir: str = Field(default=".", description="Directory for all outputs")
    eos_table: Optional[str] = Field(default=None, description="Opacity/EOS table path")

    # Disc analysis and centering
    disc_analysis: bool = Field(default=True, description="Run disc centering / outer radius")
    center_mode: str = Field(default="none", description="Centering mode")
    center_sink: int = Field(default=0, ge=0, description="Sink index for centering")
    center_position: Optional[List[float]] = Field(default=None, description="Reference position [AU]")
    center_label: str = Field(default="position", min_length=1, description="Name tag for position centering")
    center_densest_num: int = Field(default=1, ge=1, description="Particles in the densest centroid")
    outer_radius: bool = Field(default=False, description="Record 90/95/99 % mass radii")

    # Cloud and sinks
    cloud_analysis: bool = Field(default=False, description="Record cloud central quantities")
    cloud_center: bool = Field(default=False, description="Center clouds on the densest particles")
    sink_analysis: bool = Field(default=False, description="Record sink mass-radius and trajectories")

    # Radial profiles
    radial_analysis: bool = Field(default=False, description="Write per-file radial profiles")
    radius_in: float = Field(default=1.0, ge=0.0, description="Inner profile radius [AU]")
    radius_out: float = Field(default=100.0, gt=0.0, description="Outer profile radius [AU]")
    radial_bins: int = Field(default=50, ge=1, description="Number of radial bins")
    radial_log: bool = Field(default=False, description="Logarithmic radial bins")
    vertical_analysis: bool = Field(default=False, description="Add rms height to profiles")

    # Column depth
    column_depth: bool = Field(default=True, description="Run the column depth pass")
    write_table: bool = Field(default=True, description="Write the column depth table")
    tree_half_extent: float = Field(default=DOMAIN_HALF_EXTENT, gt=0.0, description="Tree half extent [AU]")
    length_unit: float = Field(default=AU_TO_CM, gt=0.0, description="Tree length unit [cm]")
    tree_shift: Optional[float] = Field(default=None, description="Coordinate shift of tree points (None: automatic)")
    max_tree_depth: int = Field(default=MAX_DEPTH, ge=1, le=64, description="Tree depth cutoff")

    # Misc
    verbose: bool = Field(default=True, description="Enable verbose logging")
    generator: Optional[GeneratorConfig] = Field(default=None, description="Initial-condition generation")

    model_config = ConfigDict(
        validate_assignment=True,
        extra="forbid",  # Raise error on unknown fields
    )

    @field_validator("in_format")
    @classmethod
    def validate_in_format(cls, v: Optional[str]) -> Optional[str]:
        if v is not None and v not in FORMATS:
            raise ValueError(f"in_format must be one of {sorted(FORMATS)}, got '{v}'")
        return v

    @field_validator("out_format")
    @classmethod
    def validate_out_format(cls, v: str) -> str:
        if v not in FORMATS:
            raise ValueError(f"out_format must be one of {sorted(FORMATS)}, got '{v}'")
        return v

    @field_validator("center_mode")
    @classmethod
    def validate_center_mode(cls, v: str) -> str:
        if v not in CENTER_MODES:
            raise ValueError(f"center_mode must be one of {list(CENTER_MODES)}, got '{v}'")
        return v

    @field_validator("center_position")
    @classmethod
    def validate_center_position(cls, v: Optional[List[float]]) -> Optional[List[float]]:
        if v is not None and len(v) != 3:
            raise ValueError(f"center_position needs 3 components, got {len(v)}")
        return v

    @model_validator(mode="after")
    def validate_configuration_consistency(self):
        if self.center_mode == "position" and self.center_position is None:
            raise ValueError("center_mode='position' requires center_position")
        if self.radius_out <= self.radius_in:
            raise ValueError(
                f"radius_out ({self.radius_out}) must be greater than radius_in ({self.radius_in})"
            )
        if self.radial_log and self.radius_in <= 0.0:
            raise ValueError("radial_log requires radius_in > 0")
        if self.cloud_center and not self.cloud_analysis:
            warnings.warn("cloud_center has no effect without cloud_analysis")
        return self


def partition_files(n_files: int, n_workers: int) -> List[Tuple[int, int]]:
    """
    Split file indices 0..n_files-1 into contiguous per-worker slices.

    The first `n_files % n_workers` workers receive one extra file.

    Returns
    -------
    slices : list of (start, end)
        Half-open index ranges in file order, one per worker.
    """
    if n_workers < 1:
        raise ValueError(f"Need at least one worker, got {n_workers}")
    if n_files < 0:
        raise ValueError(f"Negative file count {n_files}")
    base, remainder = divmod(n_files, n_workers)
    slices = []
    start = 0
    for w in range(n_workers):
        end = start + base + (1 if w < remainder else 0)
        slices.append((start, end))
        start = end
    return slices


def effective_workers(configured: int, hardware: Optional[int], n_files: int) -> int:
    """
    min(configured, hardware, n_files), with configured <= 0 meaning hardware.

    Raises
    ------
    ValueError
        If no files are selected or hardware concurrency is undetected.
    """
    if not hardware or hardware <= 0:
        raise ValueError("Number of hardware threads not detected")
    if n_files <= 0:
        raise ValueError("No files selected")
    threads = hardware if configured <= 0 else min(configured, hardware)
    return min(threads, n_files)


def generate_initial_conditions(
    config: GeneratorConfig,
    opacity: Optional[OpacityModel] = None,
) -> SnapshotFile:
    """Run the configured generator into an in-memory column snapshot."""
    if config.ic_type == "cloud":
        generator = CloudGenerator.from_config(config)
    else:
        generator = DiscGenerator.from_config(config, opacity=opacity)
    particles, sinks = generator.generate()

    snapshot = ColumnFile(name_data=NameData(run_id=config.run_id, format="column", snap="00000"))
    snapshot.particles = particles
    snapshot.sinks = sinks
    return snapshot


@dataclass
class WorkerResult:
    """Outcome of one worker's slice."""
    worker: int
    start: int
    end: int
    processed: int = 0
    failures: List[Tuple[str, str]] = field(default_factory=list)
    aborted: bool = False
    aggregators: AggregatorSet = field(default_factory=AggregatorSet)
    outputs: List[Path] = field(default_factory=list)
    elapsed: float = 0.0


@dataclass
class AnalysisSummary:
    """
    Result of a batch run.

    Attributes
    ----------
    files_total : int
        Files in the batch.
    files_analysed : int
        Files that completed the pipeline (sum over workers).
    failures : list of (name, message)
        Files that failed to read or failed a data-integrity check.
    n_workers : int
    slices : list of (start, end)
    aborted_workers : list of int
        Workers that stopped early after a read failure.
    outputs : list of Path
        Files written.
    wall_time : float
        Seconds spent in `run`.
    """
    files_total: int
    files_analysed: int
    failures: List[Tuple[str, str]]
    n_workers: int
    slices: List[Tuple[int, int]]
    aborted_workers: List[int]
    outputs: List[Path]
    aggregators: AggregatorSet
    wall_time: float = 0.0


class BatchAnalysis:
    """
    Batch orchestrator: static partition of files over a worker pool.

    Usage:
        >>> config = AnalysisConfig(threads=4, center_mode="sink")
        >>> batch = BatchAnalysis(["DISC.column.00010", "DISC.column.00020"], config)
        >>> summary = batch.run()
        >>> summary.files_analysed
        2

    Parameters
    ----------
    files : sequence of str, Path or SnapshotFile
        Snapshots in processing order.
    config : AnalysisConfig, optional
    opacity : OpacityModel, optional
        Overrides `config.eos_table`.
    hardware_threads : int, optional
        Available hardware concurrency (default os.cpu_count()).
    keep_data : bool
        Keep particle data of processed snapshots instead of releasing it.

    Raises
    ------
    FileNotFoundError, ValueError
        On startup failures: missing/malformed opacity table, unknown format,
        no files, undetected hardware concurrency.
    """

    def __init__(
        self,
        files: Sequence[Union[str, Path, SnapshotFile]],
        config: Optional[AnalysisConfig] = None,
        opacity: Optional[OpacityModel] = None,
        hardware_threads: Optional[int] = None,
        keep_data: bool = False,
    ):
        self.config = config or AnalysisConfig()
        self.keep_data = keep_data
        self.hardware_threads = os.cpu_count() if hardware_threads is None else hardware_threads
        if not self.hardware_threads or self.hardware_threads <= 0:
            raise ValueError("Number of hardware threads not detected")

        self.opacity = opacity if opacity is not None else load_opacity(self.config.eos_table)
        self.output_dir = Path(self.config.output_dir)

        self.snapshots: List[SnapshotFile] = []
        if self.config.generator is not None:
            generated = generate_initial_conditions(self.config.generator, self.opacity)
            self.snapshots.append(generated)
            self.generated_path = write_snapshot(generated, self.output_dir)
            self._log(f"Generated {generated!r} -> {self.generated_path}")
        for f in files:
            if isinstance(f, SnapshotFile):
                self.snapshots.append(f)
            else:
                self.snapshots.append(open_snapshot(f, self.config.in_format))

        self.n_workers = effective_workers(
            self.config.threads, self.hardware_threads, len(self.snapshots)
        )
        self.slices = partition_files(len(self.snapshots), self.n_workers)

    def _log(self, message: str, worker: Optional[int] = None) -> None:
        """Log message if verbose."""
        if self.config.verbose:
            prefix = f"[worker {worker}] " if worker is not None else ""
            print(f"   {prefix}{message}")

    def _aggregator_names(self) -> List[str]:
        names = []
        if self.config.cloud_analysis:
            names.append("cloud")
        if self.config.disc_analysis and self.config.outer_radius:
            names.append("outer_radius")
        if self.config.sink_analysis:
            names.extend(["mass_radius", "nbody"])
        return names

    def table_path(self, snapshot: SnapshotFile) -> Path:
        """Column depth table path; per-snapshot names when the batch has several files."""
        if len(self.snapshots) == 1:
            return self.output_dir / COLUMN_DEPTH_TABLE
        return self.output_dir / f"{snapshot.name_data.stem}.{COLUMN_DEPTH_TABLE}"

    def run(self) -> AnalysisSummary:
        """
        Process every file and merge the aggregators.

        Returns
        -------
        summary : AnalysisSummary
        """
        t0 = time_module.time()
        self._log(f"Threads          : {self.n_workers}")
        self._log(f"Files            : {len(self.snapshots)}")
        self._log(f"Files per thread : {len(self.snapshots) // self.n_workers}")
        self._log(f"Remainder        : {len(self.snapshots) % self.n_workers}")
        self._log(f"EOS              : {self.opacity!r}")

        with ThreadPoolExecutor(max_workers=self.n_workers) as pool:
            futures = [
                pool.submit(self._analyse_slice, worker, start, end)
                for worker, (start, end) in enumerate(self.slices)
            ]
            # Join barrier
            results = [future.result() for future in futures]

        merged = AggregatorSet.merge_all(r.aggregators for r in results)
        outputs = [path for r in results for path in r.outputs]
        if merged.aggregators:
            outputs.extend(merged.write(self.output_dir))

        summary = AnalysisSummary(
            files_total=len(self.snapshots),
            files_analysed=sum(r.processed for r in results),
            failures=[f for r in results for f in r.failures],
            n_workers=self.n_workers,
            slices=list(self.slices),
            aborted_workers=[r.worker for r in results if r.aborted],
            outputs=outputs,
            aggregators=merged,
            wall_time=time_module.time() - t0,
        )
        self._log(f"Files analysed   : {summary.files_analysed}")
        if summary.failures:
            self._log(f"Files failed     : {len(summary.failures)}")
        return summary

    def _analyse_slice(self, worker: int, start: int, end: int) -> WorkerResult:
        """Process snapshots[start:end] in order; runs on a pool thread."""
        result = WorkerResult(worker, start, end,
                              aggregators=AggregatorSet(self._aggregator_names()))
        t0 = time_module.time()

        for i in range(start, end):
            snapshot = self.snapshots[i]
            name = snapshot.name_data.stem
            if not snapshot.loaded:
                try:
                    snapshot.read()
                except (OSError, ValueError, KeyError) as e:
                    # A read failure ends this worker's slice
                    message = f"read failed: {e}"
                    result.failures.append((name, message))
                    result.aborted = True
                    self._log(f"{name} {message}; skipping {end - i - 1} remaining file(s)", worker)
                    warnings.warn(f"{name}: {message}", RuntimeWarning)
                    break

            # Rows of a failed file never reach the worker's set
            file_aggregators = AggregatorSet(self._aggregator_names())
            try:
                result.outputs.extend(self.analyse_file(snapshot, file_aggregators, worker))
                result.aggregators = result.aggregators.merge(file_aggregators)
            except ValueError as e:
                result.failures.append((name, str(e)))
                self._log(f"{name} failed: {e}", worker)
                warnings.warn(f"{name}: {e}", RuntimeWarning)
                continue
            finally:
                if not self.keep_data:
                    snapshot.release()

            result.processed += 1

        result.elapsed = time_module.time() - t0
        return result

    def analyse_file(
        self,
        snapshot: SnapshotFile,
        aggregators: Optional[AggregatorSet] = None,
        worker: Optional[int] = None,
    ) -> List[Path]:
        """
        Run the per-file pipeline on a loaded snapshot.

        Returns
        -------
        outputs : list of Path
            Files written for this snapshot.

        Raises
        ------
        ValueError
            If the snapshot fails a data-integrity check or cannot be
            centered as configured.
        """
        cfg = self.config
        particles = snapshot.particles
        if particles is None:
            raise ValueError(f"{snapshot.name_data.stem} has no particle data")
        particles.validate()
        outputs = []

        compute_thermo(particles, self.opacity)

        if cfg.cloud_analysis:
            if aggregators is not None:
                aggregators.add("cloud", snapshot)
            if cfg.cloud_center:
                center_cloud(snapshot, cfg.center_densest_num)

        if cfg.disc_analysis:
            if cfg.center_mode != "none":
                dx, _ = center_disc(
                    snapshot,
                    mode=cfg.center_mode,
                    sink_index=cfg.center_sink,
                    position=cfg.center_position,
                    label=cfg.center_label,
                    n_densest=cfg.center_densest_num,
                )
                self._log(f"{snapshot.name_data.run_id} centering on {dx.tolist()}", worker)
            if cfg.outer_radius and aggregators is not None:
                aggregators.add("outer_radius", snapshot)

        if cfg.column_depth:
            column_pass = ColumnDepthPass(
                self.opacity,
                half_extent=cfg.tree_half_extent,
                length_unit=cfg.length_unit,
                shift=cfg.tree_shift,
                max_depth=cfg.max_tree_depth,
            )
            column_pass.run(particles)
            if cfg.write_table:
                outputs.append(column_pass.write_table(particles, self.table_path(snapshot)))

        if cfg.sink_analysis and aggregators is not None:
            aggregators.add("mass_radius", snapshot)
            aggregators.add("nbody", snapshot)

        if cfg.radial_analysis:
            profile = RadialProfile(cfg.radius_in, cfg.radius_out, cfg.radial_bins,
                                    cfg.radial_log, cfg.vertical_analysis)
            outputs.append(profile.write(
                profile.run(particles),
                self.output_dir / f"{snapshot.name_data.stem}.radial",
            ))

        if cfg.output_files:
            if cfg.convert:
                outputs.append(convert(snapshot, cfg.out_format, self.output_dir))
            else:
                outputs.append(write_snapshot(snapshot, self.output_dir))

        self._log(f"{snapshot.name_data.stem} done ({particles.n_particles} particles)", worker)
        return outputs

    def __repr__(self) -> str:
        return (
            f"BatchAnalysis(files={len(self.snapshots)}, workers={self.n_workers}, "
            f"opacity={self.opacity.name})"
        )

#!/usr/bin/env python3
"""
Command-line entrypoint for disc_sph batch analysis.

Workflow:
1. Build the analysis configuration (config file, then CLI overrides)
2. Optionally generate disc / binary / cloud initial conditions
3. Run every snapshot through the per-file passes on a thread pool
4. Write column depth tables, aggregator CSVs and converted snapshots

Usage:
    python scripts/run_analysis.py runs/DISC.column.000*
    python scripts/run_analysis.py --config analysis.yaml --threads 8 runs/*.hdf5
    python scripts/run_analysis.py --generate binary --n-hydro 20000 --seed 1
    python scripts/run_analysis.py --help
"""

import argparse
import sys
from pathlib import Path

# Add src to path if running from repository root
src_path = Path(__file__).parent.parent / "src"
if src_path.exists():
    sys.path.insert(0, str(src_path))

from disc_sph.config import load_config
from disc_sph.core import AnalysisConfig, BatchAnalysis, GeneratorConfig
from disc_sph.eos import load_opacity
from disc_sph.radiation import CoolingMap


def build_config(args) -> AnalysisConfig:
    """Configuration from --config (if any) with CLI overrides applied."""
    overrides = {}
    if args.threads is not None:
        overrides["threads"] = args.threads
    if args.in_format is not None:
        overrides["in_format"] = args.in_format
    if args.out_format is not None:
        overrides["out_format"] = args.out_format
        overrides["convert"] = True
        overrides["output_files"] = True
    if args.output_files:
        overrides["output_files"] = True
    if args.output_dir is not None:
        overrides["output_dir"] = args.output_dir
    if args.eos is not None:
        overrides["eos_table"] = args.eos
    if args.center is not None:
        overrides["center_mode"] = args.center
    if args.sink is not None:
        overrides["center_sink"] = args.sink
    if args.position is not None:
        overrides["center_position"] = args.position
    if args.densest is not None:
        overrides["center_densest_num"] = args.densest
    if args.no_column_depth:
        overrides["column_depth"] = False
    if args.sinks:
        overrides["sink_analysis"] = True
    if args.cloud:
        overrides["cloud_analysis"] = True
        overrides["cloud_center"] = True
    if args.outer_radius:
        overrides["outer_radius"] = True
    if args.radial:
        overrides["radial_analysis"] = True
    if args.quiet:
        overrides["verbose"] = False
    if args.generate is not None:
        overrides["generator"] = GeneratorConfig(
            ic_type=args.generate, n_hydro=args.n_hydro, seed=args.seed,
        )

    if args.config is not None:
        return load_config(args.config, **overrides)
    return AnalysisConfig(**overrides)


def main():
    """Main entrypoint."""
    parser = argparse.ArgumentParser(
        description="Analyse SPH disc snapshots: column depths, centering and sink diagnostics",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter
    )

    parser.add_argument("files", nargs="*",
                        help="Snapshot files, processed in the given order")
    parser.add_argument("--config", "-c", type=str, default=None,
                        help="YAML/JSON analysis configuration")

    # Run
    parser.add_argument("--threads", "-j", type=int, default=None,
                        help="Worker threads (<= 0: all hardware threads)")
    parser.add_argument("--in-format", type=str, default=None,
                        help="Input format tag (default: from file name)")
    parser.add_argument("--out-format", type=str, default=None,
                        help="Convert outputs to this format")
    parser.add_argument("--output-files", action="store_true",
                        help="Write processed snapshots")
    parser.add_argument("--output-dir", "-o", type=str, default=None,
                        help="Output directory")
    parser.add_argument("--eos", type=str, default=None,
                        help="Opacity/EOS table (default: analytic opacity)")

    # Passes
    parser.add_argument("--center", type=str, default=None,
                        choices=["none", "sink", "position", "densest"],
                        help="Disc centering mode")
    parser.add_argument("--sink", type=int, default=None,
                        help="Sink index for centering")
    parser.add_argument("--position", type=float, nargs=3, default=None,
                        help="Reference position for --center position [AU]")
    parser.add_argument("--densest", type=int, default=None,
                        help="Particles in the densest centroid")
    parser.add_argument("--no-column-depth", action="store_true",
                        help="Skip the column depth pass")
    parser.add_argument("--sinks", action="store_true",
                        help="Record sink mass-radius and trajectories")
    parser.add_argument("--cloud", action="store_true",
                        help="Cloud analysis with densest-particle centering")
    parser.add_argument("--outer-radius", action="store_true",
                        help="Record disc outer radii")
    parser.add_argument("--radial", action="store_true",
                        help="Write radial profiles")
    parser.add_argument("--cooling-map", action="store_true",
                        help="Write cooling rate maps for the opacity model and exit")

    # Initial conditions
    parser.add_argument("--generate", type=str, default=None,
                        choices=["disc", "binary", "cloud"],
                        help="Generate initial conditions and analyse them first")
    parser.add_argument("--n-hydro", type=int, default=10000,
                        help="Gas particles for --generate")
    parser.add_argument("--seed", type=int, default=None,
                        help="Random seed for --generate")

    parser.add_argument("--quiet", "-q", action="store_true",
                        help="Suppress verbose output")

    args = parser.parse_args()

    try:
        config = build_config(args)
    except (FileNotFoundError, ValueError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    if config.verbose:
        print("=" * 70)
        print("disc_sph: SPH disc initial conditions and snapshot analysis")
        print("=" * 70)
        print()

    if args.cooling_map:
        opacity = load_opacity(config.eos_table)
        written = CoolingMap(opacity).output(config.output_dir)
        print(f"Wrote {len(written)} cooling map files to {config.output_dir}")
        return 0

    try:
        batch = BatchAnalysis(args.files, config)
    except (FileNotFoundError, ValueError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    summary = batch.run()

    if config.verbose:
        print("\n" + "=" * 70)
        print("Analysis complete!")
        print(f"Files analysed: {summary.files_analysed}/{summary.files_total}")
        print(f"Workers: {summary.n_workers}")
        print(f"Wall time: {summary.wall_time:.2f} s")
        print(f"Output directory: {config.output_dir}")
        print("=" * 70)

    for name, message in summary.failures:
        print(f"Failed: {name}: {message}", file=sys.stderr)

    return 0 if not summary.failures else 2


if __name__ == "__main__":
    sys.exit(main())

#!/usr/bin/env python3
"""
Configuration System Demo

Demonstrates:
1. Loading analysis configs from YAML files
2. Creating configs programmatically
3. Config validation and error handling
4. Config overrides and saving

Run from project root:
    python examples/config_demo.py
"""

from pathlib import Path
import sys
import tempfile

sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from disc_sph.core import AnalysisConfig, GeneratorConfig
from disc_sph.config import load_config, save_config, config_from_dict


CONFIG_DIR = Path(__file__).parent.parent / "configs"


def demo_default_config():
    """Demo 1: Default configuration."""
    print("=" * 70)
    print("DEMO 1: Default Configuration")
    print("=" * 70)

    config = AnalysisConfig()

    print(f"Threads: {config.threads} (<= 0 uses every hardware thread)")
    print(f"Center mode: {config.center_mode}")
    print(f"Column depth: {config.column_depth}")
    print(f"Tree half extent: {config.tree_half_extent} AU")
    print(f"Max tree depth: {config.max_tree_depth}")
    print()


def demo_load_yaml_configs():
    """Demo 2: Load the example YAML configurations."""
    print("=" * 70)
    print("DEMO 2: Loading YAML Configurations")
    print("=" * 70)

    for config_file in ("disc_analysis.yaml", "binary_disc_ic.yaml", "collapsing_cloud.yaml"):
        config_path = CONFIG_DIR / config_file
        if not config_path.exists():
            print(f"Config not found: {config_file}")
            continue

        config = load_config(config_path)
        print(f"{config_file}:")
        print(f"  center_mode={config.center_mode}, column_depth={config.column_depth}, "
              f"radial={config.radial_analysis}, cloud={config.cloud_analysis}")
        if config.generator is not None:
            gen = config.generator
            print(f"  generator: {gen.ic_type}, n_hydro={gen.n_hydro}, "
                  f"r_in={gen.r_in}, r_out={gen.r_out}")
    print()


def demo_programmatic_config():
    """Demo 3: Build a config from a nested dictionary."""
    print("=" * 70)
    print("DEMO 3: Programmatic Configuration")
    print("=" * 70)

    config = config_from_dict({
        "run": {"threads": 4, "out_format": "hdf5", "convert": True, "output_files": True},
        "centering": {"mode": "densest", "densest": 20},
        "generator": {"ic_type": "disc", "n_hydro": 5000, "seed": 1},
    })
    print(f"Workers: {config.threads}, output format: {config.out_format}")
    print(f"Centering on the {config.center_densest_num} densest particles")
    print(f"Generator seed: {config.generator.seed}")
    print()


def demo_validation():
    """Demo 4: Invalid values are rejected."""
    print("=" * 70)
    print("DEMO 4: Validation")
    print("=" * 70)

    cases = [
        ("unknown center mode", dict(center_mode="barycentre")),
        ("position mode without position", dict(center_mode="position")),
        ("inverted radial range", dict(radius_in=50.0, radius_out=10.0)),
        ("unknown field", dict(gpu=True)),
    ]
    for label, kwargs in cases:
        try:
            AnalysisConfig(**kwargs)
            print(f"  {label}: accepted (unexpected)")
        except ValueError as e:
            first_line = str(e).splitlines()[0]
            print(f"  {label}: rejected ({first_line})")

    try:
        GeneratorConfig(ic_type="binary", binary_a=10.0)
    except ValueError:
        print("  binary without companion mass: rejected")
    print()


def demo_overrides_and_save():
    """Demo 5: Override loaded values and save the result."""
    print("=" * 70)
    print("DEMO 5: Overrides and Saving")
    print("=" * 70)

    config_path = CONFIG_DIR / "disc_analysis.yaml"
    if not config_path.exists():
        print("Config not found: disc_analysis.yaml")
        return

    config = load_config(config_path, threads=2, center_mode="densest")
    print(f"Overridden: threads={config.threads}, center_mode={config.center_mode}")

    with tempfile.TemporaryDirectory() as tmp:
        out = Path(tmp) / "saved.json"
        save_config(config, out)
        reloaded = load_config(out)
        print(f"Saved to {out.name}, round trip equal: {reloaded == config}")
    print()


def main():
    demo_default_config()
    demo_load_yaml_configs()
    demo_programmatic_config()
    demo_validation()
    demo_overrides_and_save()


if __name__ == "__main__":
    main()

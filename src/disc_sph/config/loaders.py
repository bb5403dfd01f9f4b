"""
Configuration loaders for YAML and JSON files.

Analysis runs are described by nested sections that flatten onto
AnalysisConfig fields, e.g.

    run:
      threads: 4
      out_format: hdf5
    centering:
      mode: sink
      sink: 0
    column_depth:
      half_extent: 1024.0
    generator:
      ic_type: binary
      binary_m: 0.5
      binary_a: 20.0

The `generator` section is not flattened; it maps onto GeneratorConfig.
"""

from typing import Dict, Any, Union
from pathlib import Path
import yaml
import json

from ..core.analysis import AnalysisConfig

FIELD_MAPPINGS = {
    'run': {
        'threads': 'threads',
        'in_format': 'in_format',
        'out_format': 'out_format',
        'convert': 'convert',
        'output_files': 'output_files',
        'output_dir': 'output_dir',
        'verbose': 'verbose',
    },
    'opacity': {
        'table': 'eos_table',
    },
    'disc': {
        'analysis': 'disc_analysis',
        'outer_radius': 'outer_radius',
    },
    'centering': {
        'mode': 'center_mode',
        'sink': 'center_sink',
        'position': 'center_position',
        'label': 'center_label',
        'densest': 'center_densest_num',
    },
    'column_depth': {
        'enabled': 'column_depth',
        'write_table': 'write_table',
        'half_extent': 'tree_half_extent',
        'length_unit': 'length_unit',
        'shift': 'tree_shift',
        'max_depth': 'max_tree_depth',
    },
    'radial': {
        'enabled': 'radial_analysis',
        'r_in': 'radius_in',
        'r_out': 'radius_out',
        'bins': 'radial_bins',
        'log': 'radial_log',
        'vertical': 'vertical_analysis',
    },
    'sinks': {
        'analysis': 'sink_analysis',
    },
    'cloud': {
        'analysis': 'cloud_analysis',
        'center': 'cloud_center',
    },
}

# Sections passed through as nested models
NESTED_SECTIONS = ('generator',)


def load_config(filename: Union[str, Path], **overrides) -> AnalysisConfig:
    """
    Load analysis configuration from a YAML or JSON file.

    Parameters
    ----------
    filename : str or Path
        Path to configuration file (.yaml, .yml, or .json)
    **overrides : keyword arguments
        Override specific config values (e.g., threads=8, center_mode="densest")

    Returns
    -------
    config : AnalysisConfig
        Validated analysis configuration

    Raises
    ------
    FileNotFoundError
        If configuration file does not exist
    ValueError
        If file format is unsupported or config is invalid

    Examples
    --------
    >>> config = load_config("disc_analysis.yaml")
    >>> config = load_config("disc_analysis.yaml", threads=2)
    """
    filepath = Path(filename)

    if not filepath.exists():
        raise FileNotFoundError(f"Configuration file not found: {filepath}")

    suffix = filepath.suffix.lower()
    if suffix in ['.yaml', '.yml']:
        config_dict = load_yaml(filepath)
    elif suffix == '.json':
        config_dict = load_json(filepath)
    else:
        raise ValueError(
            f"Unsupported config file format: {suffix}. "
            "Use .yaml, .yml, or .json"
        )

    flat_config = flatten_config(config_dict)
    flat_config.update(overrides)

    try:
        config = AnalysisConfig(**flat_config)
    except Exception as e:
        raise ValueError(
            f"Configuration validation failed for {filepath}: {e}"
        ) from e

    return config


def load_yaml(filepath: Path) -> Dict[str, Any]:
    """Load a YAML file; an empty file gives an empty dict."""
    with open(filepath, 'r') as f:
        config_dict = yaml.safe_load(f)

    if config_dict is None:
        config_dict = {}

    return config_dict


def load_json(filepath: Path) -> Dict[str, Any]:
    with open(filepath, 'r') as f:
        return json.load(f)


def flatten_config(config_dict: Dict[str, Any]) -> Dict[str, Any]:
    """
    Flatten nested configuration sections onto AnalysisConfig field names.

    Converts
        {'centering': {'mode': 'sink', 'sink': 1}}
    to
        {'center_mode': 'sink', 'center_sink': 1}

    Unmapped keys inside a known section pass through unchanged; unknown
    sections are flattened recursively; NESTED_SECTIONS are kept as dicts.
    """
    flat = {}

    for key, value in config_dict.items():
        if key in NESTED_SECTIONS:
            flat[key] = value
        elif key in FIELD_MAPPINGS and isinstance(value, dict):
            for subkey, subvalue in value.items():
                flat[FIELD_MAPPINGS[key].get(subkey, subkey)] = subvalue
        elif isinstance(value, dict):
            flat.update(flatten_config(value))
        else:
            flat[key] = value

    return flat


def save_config(config: AnalysisConfig, filename: Union[str, Path]) -> None:
    """
    Save AnalysisConfig to a YAML or JSON file, organised by section.

    Round-trips through `load_config`.
    """
    filepath = Path(filename)
    config_dict = config.model_dump()

    organized = {}
    for section, mapping in FIELD_MAPPINGS.items():
        organized[section] = {subkey: config_dict[field] for subkey, field in mapping.items()}
    if config_dict.get('generator') is not None:
        organized['generator'] = config_dict['generator']

    suffix = filepath.suffix.lower()
    if suffix in ['.yaml', '.yml']:
        with open(filepath, 'w') as f:
            yaml.dump(organized, f, default_flow_style=False, sort_keys=False)
    elif suffix == '.json':
        with open(filepath, 'w') as f:
            json.dump(organized, f, indent=2)
    else:
        raise ValueError(f"Unsupported output format: {suffix}. Use .yaml or .json")


def config_from_dict(config_dict: Dict[str, Any]) -> AnalysisConfig:
    """Create AnalysisConfig from a (possibly nested) dictionary."""
    return AnalysisConfig(**flatten_config(config_dict))

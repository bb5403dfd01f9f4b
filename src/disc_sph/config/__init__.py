"""
Configuration module: YAML/JSON loading and validation of analysis runs.
"""

from disc_sph.config.loaders import (
    load_config,
    save_config,
    config_from_dict,
    flatten_config,
)

__all__ = [
    'load_config',
    'save_config',
    'config_from_dict',
    'flatten_config',
]

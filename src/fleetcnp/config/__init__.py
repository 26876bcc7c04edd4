"""Configuration schema and loading."""

from .loader import config_from_dict, load_config, merge_layers, with_overrides
from .schema import Config

__all__ = ["Config", "config_from_dict", "load_config", "merge_layers", "with_overrides"]

"""Configuration loader.

The packaged ``defaults.yaml`` is always the base layer. A user YAML file, a
plain dict, or dotted ``section.key`` overrides are merged over it section by
section, so a partial file only needs the values it changes. Every merge
result is validated again through the pydantic schema.
"""

import copy
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Union

import yaml

from .schema import Config

DEFAULT_CONFIG_PATH: Path = Path(__file__).parent / "defaults.yaml"


def read_yaml(path: Union[str, Path]) -> Dict[str, Any]:
    """Read a YAML mapping; an empty or non-mapping document reads as {}."""
    with open(path, 'r') as f:
        loaded = yaml.safe_load(f)
    return loaded if isinstance(loaded, dict) else {}


def merge_layers(base: Mapping[str, Any], overrides: Mapping[str, Any]) -> Dict[str, Any]:
    """
    Merge ``overrides`` over ``base`` recursively.

    Nested mappings are merged key by key; any other value replaces the base
    value outright (lists included).

    Returns:
        New dict; neither input is modified
    """
    merged = copy.deepcopy(dict(base))
    for key, value in overrides.items():
        if isinstance(value, Mapping) and isinstance(merged.get(key), Mapping):
            merged[key] = merge_layers(merged[key], value)
        else:
            merged[key] = copy.deepcopy(value)
    return merged


def load_config(yaml_path: Optional[Union[str, Path]] = None) -> Config:
    """
    Load configuration, layering an optional user file over the defaults.

    Args:
        yaml_path: User YAML file (packaged defaults only when omitted)

    Returns:
        Validated Config

    Raises:
        FileNotFoundError: If yaml_path does not exist
        pydantic.ValidationError: If the merged config is invalid
    """
    data = read_yaml(DEFAULT_CONFIG_PATH)
    if yaml_path is not None:
        data = merge_layers(data, read_yaml(yaml_path))
    return Config.from_dict(data)


def config_from_dict(overrides: Optional[Mapping[str, Any]] = None) -> Config:
    """Build a config from the packaged defaults with ``overrides`` merged over them."""
    return Config.from_dict(merge_layers(read_yaml(DEFAULT_CONFIG_PATH), overrides or {}))


def with_overrides(config: Config, overrides: Mapping[str, Any]) -> Config:
    """
    Return a re-validated copy of ``config`` with dotted-key overrides applied.

    Examples:
        with_overrides(config, {"simulation.random_seed": 7, "store.backend": "sqlite"})

    Raises:
        ValueError: If a key does not name an existing section field
        pydantic.ValidationError: If an overridden value is invalid
    """
    data = config.to_dict()
    for key, value in overrides.items():
        section, _, field = key.partition(".")
        if not field or section not in data or field not in data[section]:
            raise ValueError(f"Unknown config key: {key!r}")
        data[section][field] = value
    return Config.from_dict(data)

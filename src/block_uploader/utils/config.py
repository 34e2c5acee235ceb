import logging
from collections.abc import Iterable
from copy import deepcopy
from os import PathLike
from pathlib import Path

import yaml
from pydantic import ValidationError

from ..exceptions import InvalidConfiguration
from ..models.config import ConfigModel

__all__ = [
    "merge_config_dicts",
    "read_and_merge_config_files",
    "read_config",
]

log = logging.getLogger(__name__)


def _merge_into(target: dict, source: dict, path: tuple[str, ...]) -> dict:
    for key, new_value in source.items():
        key_path = ".".join((*path, str(key)))
        if key not in target or target[key] is None:
            target[key] = deepcopy(new_value)
            continue

        old_value = target[key]
        if new_value is None:
            continue
        if isinstance(old_value, dict) and isinstance(new_value, dict):
            _merge_into(old_value, new_value, (*path, str(key)))
        elif type(old_value) is type(new_value):
            log.warning(f"Overriding configuration key {key_path} with value: {new_value}")
            target[key] = deepcopy(new_value)
        else:
            raise ValueError(f"Conflict at {key_path}: {old_value!r} != {new_value!r}")
    return target


def merge_config_dicts(a: dict, b: dict) -> dict:
    """Merge configuration dictionary ``b`` into a copy of ``a``.

    - Nested dictionaries are merged recursively.
    - Values of the same type in ``b`` replace those in ``a``.
    - ``None`` never replaces a value, and is replaced by any value.
    - Values of different types raise a ``ValueError``.

    Neither input is modified.

    :raises ValueError: If there is a conflict between values that cannot be merged.
    """
    return _merge_into(deepcopy(a), b, path=())


def read_and_merge_config_files(config_files: Iterable[str | PathLike]) -> dict:
    """
    Read and merge YAML configuration files, later files taking precedence.

    :raises RuntimeError: If there is an error reading any of the configuration files.
    """
    configuration: dict[str, object] = {}
    for config_file in config_files:
        try:
            with open(config_file) as fd:
                content = yaml.safe_load(fd) or {}
            configuration = merge_config_dicts(configuration, content)
        except Exception as e:
            raise RuntimeError(f"Error reading configuration file: '{config_file}'") from e

    return configuration


def read_config(config_files: Iterable[str | PathLike], **overrides) -> ConfigModel:
    """
    Load and validate the configuration.

    Environment variables (prefix ``BLOCK_UPLOADER_``) fill in whatever the files leave unset.

    :param config_files: YAML files to merge; missing files are skipped
    :param overrides: Nested option dictionaries merged on top of the files, e.g. from CLI options
    :raises InvalidConfiguration: if the merged configuration is invalid
    """
    existing = []
    for config_file in config_files:
        if Path(config_file).is_file():
            existing.append(config_file)
        else:
            log.debug(f"Skipping missing configuration file {config_file}")

    configuration = read_and_merge_config_files(existing)
    configuration = merge_config_dicts(configuration, overrides)

    try:
        return ConfigModel(**configuration)
    except ValidationError as e:
        raise InvalidConfiguration(f"Invalid configuration: {e}") from e

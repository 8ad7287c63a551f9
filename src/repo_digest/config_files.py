from __future__ import annotations

import json
import os
from pathlib import Path
from typing import TYPE_CHECKING, Any

import tomlkit
import yaml
from dotenv import dotenv_values
from pydantic.alias_generators import to_snake
from tomlkit.exceptions import TOMLKitError

from repo_digest.config import CONFIG_FILES, ENV_CONFIG_VAR, ENV_LOG_FILE_VAR, PYPROJECT_TOOL_KEY
from repo_digest.exceptions import ConfigFileNotFoundError, ConfigLoadError
from repo_digest.logging import logger
from repo_digest.settings import ENV_FILE, Settings

if TYPE_CHECKING:
    from collections.abc import Mapping

ConfigDict = dict[str, Any]

_KEY_ALIASES = {"dir": "directory"}


def normalize_keys(config: Mapping[str, Any]) -> ConfigDict:
    """Rename camelCase (and ``dir``) keys to settings field names.

    Args:
        config (Mapping[str, Any]): a raw configuration mapping

    Returns:
        ConfigDict: the same values keyed by snake_case field name
    """
    return {_KEY_ALIASES.get(k, to_snake(k)): v for k, v in config.items()}


def env_defaults(env_file: str | Path | None = None) -> dict[str, str]:
    """Read ``REPO_DIGEST_*`` defaults from the process environment and ``.env``.

    Process environment variables win over the ``.env`` file.

    Args:
        env_file (str | Path | None): the dotenv file, the discovered one when None

    Returns:
        dict[str, str]: the non-empty values among the supported variables
    """
    source = ENV_FILE if env_file is None else env_file
    values: dict[str, str | None] = dict(dotenv_values(source)) if source else {}
    out: dict[str, str] = {}
    for var in (ENV_CONFIG_VAR, ENV_LOG_FILE_VAR):
        value = os.environ.get(var) or values.get(var)
        if value:
            out[var] = value
    return out


def load_config_file(path: Path) -> ConfigDict:
    """Load one JSON or YAML configuration file.

    ``.yaml``/``.yml`` files are parsed as YAML, anything else as JSON.

    Args:
        path (Path): the file to load

    Raises:
        ConfigLoadError: if the file cannot be read or parsed, or is not a mapping

    Returns:
        ConfigDict: the raw configuration mapping
    """
    try:
        text = path.read_text(encoding="utf-8")
        data = yaml.safe_load(text) if path.suffix.lower() in {".yaml", ".yml"} else json.loads(text)
    except (OSError, ValueError, yaml.YAMLError) as e:
        raise ConfigLoadError(file=path, reason=str(e)) from e
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigLoadError(file=path, reason=f"expected a mapping, got {type(data).__name__}")
    return data


def load_pyproject_config(cwd: Path) -> ConfigDict | None:
    """Load the ``[tool.repo-digest]`` table of ``pyproject.toml`` in ``cwd``.

    A missing file, a missing table or an unparsable file yields None.

    Args:
        cwd (Path): the directory holding ``pyproject.toml``

    Returns:
        ConfigDict | None: the table as plain data, or None
    """
    pyproject = cwd / "pyproject.toml"
    if not pyproject.is_file():
        return None
    try:
        doc = tomlkit.parse(pyproject.read_text(encoding="utf-8")).unwrap()
    except (OSError, TOMLKitError) as e:
        logger.warning("pyproject_unreadable", file=str(pyproject), error=str(e))
        return None
    table = doc.get("tool", {}).get(PYPROJECT_TOOL_KEY)
    return dict(table) if isinstance(table, dict) else None


def find_config_file(cwd: Path) -> Path | None:
    """Return the first known config file present in ``cwd``."""
    for name in CONFIG_FILES:
        candidate = cwd / name
        if candidate.is_file():
            return candidate
    return None


def merge_configs(base: Mapping[str, Any], override: Mapping[str, Any]) -> ConfigDict:
    """Merge two raw configurations, ``override`` taking priority.

    Keys are normalized first, so ``maxFileSize`` and ``max_file_size`` are
    the same option. List options are replaced as a whole, never concatenated.

    Args:
        base (Mapping[str, Any]): lower-priority configuration
        override (Mapping[str, Any]): higher-priority configuration

    Returns:
        ConfigDict: the merged configuration
    """
    return {**normalize_keys(base), **normalize_keys(override)}


def load_config(config_path: str | Path | None = None, cwd: Path | None = None) -> ConfigDict:
    """Load the raw configuration for a run.

    An explicit ``config_path`` must exist. Otherwise the first file of
    ``CONFIG_FILES`` found in ``cwd`` is used, if any. The ``[tool.repo-digest]``
    table of ``pyproject.toml`` is merged underneath.

    Args:
        config_path (str | Path | None): explicit config file
        cwd (Path | None): the directory searched for config files, the current one when None

    Raises:
        ConfigFileNotFoundError: if ``config_path`` does not exist

    Returns:
        ConfigDict: the raw configuration mapping
    """
    cwd = cwd or Path.cwd()
    config: ConfigDict = {}
    if config_path:
        path = Path(config_path)
        if not path.is_file():
            raise ConfigFileNotFoundError(file=path)
        config = load_config_file(path)
        logger.info("config_loaded", file=str(path))
    else:
        found = find_config_file(cwd)
        if found is not None:
            config = load_config_file(found)
            logger.info("config_loaded", file=str(found))

    pyproject_config = load_pyproject_config(cwd)
    if pyproject_config:
        config = merge_configs(pyproject_config, config)
    return config


def merge_config_with_args(config: Mapping[str, Any], args: Mapping[str, Any]) -> ConfigDict:
    """Overlay command-line values on a raw configuration.

    Arguments left unset on the command line (None) do not override anything.

    Args:
        config (Mapping[str, Any]): the file configuration
        args (Mapping[str, Any]): parsed arguments, keyed by settings field name

    Returns:
        ConfigDict: the merged configuration
    """
    given = {k: v for k, v in args.items() if v is not None}
    return merge_configs(config, given)


def resolve_settings(args: Mapping[str, Any], config_path: str | Path | None = None) -> Settings:
    """Build the settings of a run from config files, ``.env`` and CLI arguments.

    Args:
        args (Mapping[str, Any]): parsed arguments, keyed by settings field name
        config_path (str | Path | None): explicit config file

    Raises:
        ConfigFileNotFoundError: if ``config_path`` does not exist
        ConfigLoadError: if a config file cannot be parsed
        pydantic.ValidationError: if the merged options are invalid

    Returns:
        Settings: the validated settings
    """
    env = env_defaults()
    config = load_config(config_path or env.get(ENV_CONFIG_VAR))
    merged = merge_config_with_args(config, args)
    if ENV_LOG_FILE_VAR in env:
        merged.setdefault("log_file", env[ENV_LOG_FILE_VAR])
    return Settings.model_validate(merged)

"""Site configuration for Tessera.

Configuration is a plain dictionary: ``DEFAULT_CONFIG`` updated with the
contents of ``tessera.yaml`` in the project root, then with any command-line
overrides. Nothing here is mutated after the build starts.

Key functions:
- load_config: Loads site configuration from tessera.yaml.
- load_locals: Loads the initial site locals from the config.
- generator_options: Merge a generator's defaults with its config section.
"""

from __future__ import annotations

import copy
import json
import logging
from pathlib import Path
from typing import Any

import yaml

from .errors import ConfigError

logger = logging.getLogger(__name__)

CONFIG_FILENAME = "tessera.yaml"

DEFAULT_CONFIG: dict[str, Any] = {
    "contents": "contents",
    "templates": "templates",
    "output": "build",
    "base_url": "/",
    "default_template": None,
    "filename_template": None,
    "ignore": [],
    "locals": {},
    "plugins": [],
    "intro_cutoffs": ['<span class="more', "<h2", "<hr"],
    "port": 8080,
    "ws_port": None,
}


def load_config(project_root: Path, config_file: Path | None = None) -> dict[str, Any]:
    """Load site configuration from tessera.yaml.

    Args:
        project_root: Root directory of the project.
        config_file: Optional explicit config path (relative to the project root).

    Returns:
        Dictionary containing configuration values, with defaults applied.

    Raises:
        ConfigError: If an explicitly requested config file is missing or the
            YAML cannot be parsed.
    """
    config = copy.deepcopy(DEFAULT_CONFIG)
    config_path = project_root / (config_file or CONFIG_FILENAME)
    if not config_path.exists():
        if config_file is not None:
            raise ConfigError(str(config_file), "config file does not exist")
        logger.debug("No config file found at %s", config_path)
        return config
    logger.info("Using config file %s", config_path)
    try:
        with open(config_path, encoding="utf-8") as f:
            loaded = yaml.safe_load(f) or {}
    except yaml.YAMLError as exc:
        raise ConfigError(config_path.name, f"invalid YAML: {exc}", exc) from exc
    if isinstance(loaded, dict):
        config.update(loaded)
    else:
        logger.warning("Ignoring %s: expected a mapping at the top level", config_path.name)
    return config


def load_locals(config: dict[str, Any], project_root: Path) -> dict[str, Any]:
    """Load the initial site locals named by the config.

    ``locals`` may be a mapping or the path to a YAML or JSON file whose
    top-level mapping becomes the locals.

    Args:
        config: Site configuration.
        project_root: Root directory of the project.

    Returns:
        A fresh dictionary of locals.

    Raises:
        ConfigError: If the locals file is missing or not a mapping.
    """
    source = config.get("locals") or {}
    if isinstance(source, dict):
        return dict(source)
    path = project_root / str(source)
    logger.debug("Loading locals from %s", path)
    if not path.exists():
        raise ConfigError("locals", f"locals file {source} does not exist")
    with open(path, encoding="utf-8") as f:
        if path.suffix.lower() == ".json":
            payload = json.load(f)
        else:
            payload = yaml.safe_load(f) or {}
    if not isinstance(payload, dict):
        raise ConfigError("locals", f"locals file {source} must contain a mapping")
    return payload


def generator_options(config: dict[str, Any], name: str, defaults: dict[str, Any]) -> dict[str, Any]:
    """Merge a generator's defaults with the matching config section.

    Args:
        config: Site configuration.
        name: Config key holding the generator's options.
        defaults: Default option values.

    Returns:
        New dictionary with every default key present.
    """
    options = dict(defaults)
    section = config.get(name) or {}
    if isinstance(section, dict):
        options.update({k: v for k, v in section.items() if v is not None})
    return options

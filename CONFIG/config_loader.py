# SPDX-License-Identifier: AGPL-3.0-or-later OR Commercial
# Copyright (c) 2025-2026 Fox ML Infrastructure LLC

"""
Centralized Configuration Loader

Loads pipeline, feature-selection and learner configurations from YAML files.
Supports variants and overrides for learner hyperparameters.

CONFIG-AVAILABILITY BOUNDARY:
=============================

This module is the SINGLE defensive boundary for config fallbacks.

- `get_cfg()` can return its `default` parameter if a key is missing
- `load_config()` returns an empty dict if the file is missing
- Code below this layer (config_schemas, pipeline) treats the resolved
  values as authoritative and validates them instead of adding fallbacks
"""


import yaml
import threading
from pathlib import Path
from typing import Dict, Any, Optional
import logging

logger = logging.getLogger(__name__)

# Resolve CONFIG directory (parent of this file)
CONFIG_DIR = Path(__file__).resolve().parent

# Map of config names to canonical paths
_CONFIG_MAPPINGS = {
    "logging_config": "core/logging.yaml",
    "pipeline_config": "pipeline/pipeline.yaml",
    "threading_config": "pipeline/threading.yaml",
    "feature_selection_config": "selection/feature_selection.yaml",
}

# Loaded YAML documents keyed by resolved path, protected by RLock for thread safety
_CONFIG_CACHE: Dict[Path, Dict[str, Any]] = {}
_CONFIG_CACHE_LOCK = threading.RLock()


def clear_config_cache() -> None:
    """
    Clear all config caches to force reload on next access.
    Useful when config files are modified and you want changes to take effect immediately.
    """
    with _CONFIG_CACHE_LOCK:
        _CONFIG_CACHE.clear()
    logger.info("Cleared config cache - configs will be reloaded on next access")


def get_config_path(config_name: str) -> Path:
    """
    Get the path to a config file using canonical paths only.

    Args:
        config_name: Name of config file (e.g., "pipeline_config", "svm")

    Returns:
        Path to config file (may not exist - caller should check)

    Examples:
        >>> get_config_path("pipeline_config")  # CONFIG/pipeline/pipeline.yaml
        >>> get_config_path("xgboost")  # CONFIG/models/xgboost.yaml
    """
    if config_name in _CONFIG_MAPPINGS:
        return CONFIG_DIR / _CONFIG_MAPPINGS[config_name]

    model_file = CONFIG_DIR / "models" / f"{config_name}.yaml"
    if model_file.exists():
        return model_file

    # Default: assume it's in the root
    return CONFIG_DIR / f"{config_name}.yaml"


def _load_yaml(config_file: Path) -> Dict[str, Any]:
    with _CONFIG_CACHE_LOCK:
        if config_file in _CONFIG_CACHE:
            return _CONFIG_CACHE[config_file]

        if not config_file.exists():
            logger.debug(f"Config file not found: {config_file}")
            return {}

        try:
            with open(config_file, 'r') as f:
                loaded = yaml.safe_load(f)
        except (OSError, yaml.YAMLError) as e:
            logger.error(f"Failed to load config {config_file}: {e}")
            return {}

        if loaded is None:
            logger.warning(f"Config file {config_file} is empty or invalid YAML, using empty config")
            loaded = {}
        elif not isinstance(loaded, dict):
            logger.warning(f"Config file {config_file} is not a mapping (got {type(loaded).__name__}), ignoring")
            loaded = {}
        else:
            logger.debug(f"Loaded config from {config_file}")

        _CONFIG_CACHE[config_file] = loaded
        return loaded


def load_config(config_name: str) -> Dict[str, Any]:
    """
    Load a named configuration file.

    Args:
        config_name: Config name (see get_config_path) or an explicit path to a YAML file

    Returns:
        Dictionary with configuration (empty if the file does not exist)
    """
    candidate = Path(config_name)
    if candidate.suffix in (".yaml", ".yml"):
        return _load_yaml(candidate.resolve())
    return _load_yaml(get_config_path(config_name))


def load_model_config(
    learner: str,
    variant: Optional[str] = None,
    overrides: Optional[Dict[str, Any]] = None,
    task: Optional[str] = None,
) -> Dict[str, Any]:
    """
    Load hyperparameters for a learner family.

    Layout of CONFIG/models/<learner>.yaml:

        hyperparameters:        # shared by all tasks
          max_depth: 6
        classification: {...}  # task-specific additions
        regression: {...}
        variants:
          shallow: {max_depth: 3}

    Args:
        learner: Learner family name (e.g., "decision_tree", "svm")
        variant: Configuration variant name
        overrides: Parameters to override (highest priority)
        task: "classification" or "regression" (adds the task section)

    Returns:
        Dictionary with learner hyperparameters

    Example:
        >>> load_model_config("random_forest", task="regression")
        >>> load_model_config("xgboost", overrides={"n_estimators": 50})
    """
    config_file = CONFIG_DIR / "models" / f"{learner.lower()}.yaml"
    config = _load_yaml(config_file)
    if not config:
        logger.debug(f"No model config for {learner}, using library defaults")

    result = dict(config.get("hyperparameters") or {})

    if task and isinstance(config.get(task), dict):
        result.update(config[task])

    if variant:
        variants = config.get("variants") or {}
        if variant in variants:
            result.update(variants[variant])
            logger.info(f"Applied variant '{variant}' for {learner}")
        else:
            logger.warning(f"Variant '{variant}' not found for {learner}, using defaults")

    # Apply overrides LAST (highest priority)
    if overrides:
        result.update(overrides)
        logger.debug(f"Applied {len(overrides)} overrides for {learner}")

    return result


def get_cfg(path: str, default: Any = None, config_name: str = "pipeline_config") -> Any:
    """
    Get a nested config value using dot notation.

    Args:
        path: Dot-separated path to config value (e.g., "pipeline.scoring.par10_multiplier")
        default: Default value if path not found (should match config file default)
        config_name: Name of config file (without .yaml)

    Returns:
        Config value or default

    Example:
        >>> get_cfg("pipeline.scoring.feature_cost_coefficient", default=50)
        >>> get_cfg("threading.parallel.max_workers", default=None, config_name="threading_config")
    """
    config = load_config(config_name)
    if not config:
        return default

    value: Any = config
    for key in path.split("."):
        if isinstance(value, dict) and key in value:
            value = value[key]
        else:
            return default
    return value

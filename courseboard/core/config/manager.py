"""
ConfigManager: cache-backed leaderboard tunables for Courseboard.

Purpose
-------
- Provide hierarchical, dot-notation access to tunable leaderboard values
  (scoring defaults, pagination limits, sweep debounce, retry settings).
- Back configuration with YAML files from the `config/` directory.

Responsibilities
----------------
- Load and deep-merge every YAML file under the config directory.
- Serve configuration reads from an in-memory cache with default fallback.
- Allow in-process overrides for operators and tests.

Key Design Decisions
--------------------
- YAML is the single source for defaults; overrides live only in memory.
- Reads never raise: a missing key resolves to the caller's default.

Dependencies
------------
- PyYAML for parsing.
- `courseboard.core.logging.logger.get_logger` for structured logging.
"""

from __future__ import annotations

import asyncio
import copy
from pathlib import Path
from typing import Any, Dict, List, MutableMapping, Optional, Union

import yaml

from courseboard.core.config.config import Config
from courseboard.core.config.errors import ConfigInitializationError, ConfigValidationError
from courseboard.core.logging.logger import get_logger

logger = get_logger(__name__)

__all__ = ["ConfigManager"]


# ============================================================================
# ConfigManager
# ============================================================================


class ConfigManager:
    """
    Leaderboard tunables with YAML backing and an in-memory cache.

    Features
    --------
    - Hierarchical config access with dot notation
      (e.g. `"leaderboard.sweep.debounce_seconds"`).
    - Deep merge across all YAML files, so tunables can be split by topic.
    - Runtime overrides via `override()` that never touch disk.
    """

    # Fully materialized configuration (defaults + overrides).
    _cache: Dict[str, Any] = {}

    # YAML defaults.
    _defaults: Dict[str, Any] = {}

    _initialized: bool = False
    _init_lock: Optional[asyncio.Lock] = None

    # =========================================================================
    # YAML LOADING & DEFAULTS
    # =========================================================================

    @staticmethod
    def _deep_merge_dict(
        target: MutableMapping[str, Any],
        source: MutableMapping[str, Any],
    ) -> None:
        """Recursively merge `source` into `target` (in-place)."""
        for key, value in source.items():
            if isinstance(value, dict) and isinstance(target.get(key), dict):
                ConfigManager._deep_merge_dict(target[key], value)  # type: ignore[index]
            else:
                target[key] = copy.deepcopy(value)

    @classmethod
    def _load_yaml_configs(cls, config_dir: Path) -> None:
        """
        Recursively load all YAML config files from `config_dir` into `_defaults`.

        Raises
        ------
        ConfigValidationError
            If a file does not parse or its root object is not a mapping.
        """
        cls._defaults = {}

        if not config_dir.exists():
            logger.warning(
                "Config directory not found; using built-in defaults only",
                extra={"config_dir": str(config_dir)},
            )
            cls._cache = {}
            return

        yaml_files = sorted(config_dir.rglob("*.yaml")) + sorted(config_dir.rglob("*.yml"))
        if not yaml_files:
            logger.info(
                "No YAML config files discovered; using built-in defaults only",
                extra={"config_dir": str(config_dir)},
            )

        loaded_count = 0

        for yaml_file in yaml_files:
            relative = str(yaml_file.relative_to(config_dir))
            try:
                with yaml_file.open("r", encoding="utf-8") as handle:
                    data = yaml.safe_load(handle)
            except yaml.YAMLError as exc:
                logger.error(
                    "Failed to parse YAML config",
                    extra={"file": relative, "error": str(exc)},
                )
                raise ConfigValidationError(f"Invalid YAML in {relative}: {exc}") from exc

            if data is None:
                continue
            if not isinstance(data, dict):
                raise ConfigValidationError(
                    f"YAML root of {relative} must be a mapping, got {type(data).__name__}"
                )

            cls._deep_merge_dict(cls._defaults, data)
            loaded_count += 1
            logger.debug("Loaded YAML config", extra={"file": relative})

        cls._cache = copy.deepcopy(cls._defaults)

        logger.info(
            "YAML configs loaded",
            extra={
                "yaml_file_count": loaded_count,
                "total_cache_keys": len(cls._cache),
            },
        )

    # =========================================================================
    # LIFECYCLE
    # =========================================================================

    @classmethod
    async def initialize(cls, config_dir: Union[str, Path, None] = None) -> None:
        """
        Initialize ConfigManager from YAML (idempotent).

        Parameters
        ----------
        config_dir:
            Directory to scan. Defaults to `Config.CONFIG_DIR`.

        Raises
        ------
        ConfigInitializationError
            If the YAML tree is invalid.
        """
        if cls._initialized:
            return

        if cls._init_lock is None:
            cls._init_lock = asyncio.Lock()

        async with cls._init_lock:
            if cls._initialized:
                return

            directory = Path(config_dir) if config_dir is not None else Config.CONFIG_DIR
            try:
                cls._load_yaml_configs(directory)
            except ConfigValidationError as exc:
                raise ConfigInitializationError(str(exc)) from exc

            cls._initialized = True
            logger.info(
                "ConfigManager initialized",
                extra={"config_dir": str(directory), "keys": cls.get_all_keys()},
            )

    @classmethod
    def reset(cls) -> None:
        """Drop all loaded state; the next `initialize()` reloads from disk."""
        cls._cache = {}
        cls._defaults = {}
        cls._initialized = False
        cls._init_lock = None

    # =========================================================================
    # READS
    # =========================================================================

    @classmethod
    def _get_from_defaults(cls, key: str) -> Any:
        """Traverse default config using dot notation; returns `None` if missing."""
        value: Any = cls._defaults
        for k in key.split("."):
            if isinstance(value, dict):
                value = value.get(k)
                if value is None:
                    return None
            else:
                return None
        return value

    @classmethod
    def get(cls, key: str, default: Any = None) -> Any:
        """
        Retrieve a configuration value by dot-notation path.

        Parameters
        ----------
        key:
            Dot-notation config path (e.g. `"leaderboard.pagination.default_limit"`).
        default:
            Value to return if the key is not found in cache or defaults.

        Returns
        -------
        Any
            The resolved configuration value, or `default` if not present.

        Examples
        --------
        >>> ConfigManager.get("leaderboard.pagination.default_limit", 50)
        50
        """
        if not cls._initialized:
            logger.debug(
                "ConfigManager accessed before explicit initialization; "
                "falling back to defaults only",
                extra={"config_key": key},
            )

        value: Any = cls._cache
        for part in key.split("."):
            if not isinstance(value, dict):
                value = None
                break
            value = value.get(part)
            if value is None:
                break

        if value is None:
            fallback = cls._get_from_defaults(key)
            return fallback if fallback is not None else default
        return value

    @classmethod
    def get_all_keys(cls) -> List[str]:
        """Return a list of all top-level configuration keys currently in cache."""
        return list(cls._cache.keys())

    # =========================================================================
    # OVERRIDES
    # =========================================================================

    @classmethod
    def override(cls, key: str, value: Any) -> None:
        """
        Set a value in the in-memory cache by dot-notation path.

        Overrides are not persisted and are dropped by `reset()`.
        """
        parts = key.split(".")
        node: Dict[str, Any] = cls._cache
        for part in parts[:-1]:
            child = node.get(part)
            if not isinstance(child, dict):
                child = {}
                node[part] = child
            node = child
        node[parts[-1]] = value

        logger.info("Configuration override applied", extra={"config_key": key})

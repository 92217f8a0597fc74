"""
Configuration subsystem for Courseboard.

- **config.py**: Static configuration from environment variables
- **manager.py**: Leaderboard tunables loaded from YAML
- **errors.py**: Configuration exception hierarchy

Static vs Dynamic Configuration
--------------------------------
**Static (Config):** database URL, pool sizes, Redis, logging. Loaded from the
environment at import, validated at startup.

**Tunables (ConfigManager):** scoring defaults, pagination, sweep debounce and
locking, optimistic-concurrency retry. Loaded from `config/*.yaml`.

`ConfigManager` is imported from `courseboard.core.config.manager` directly;
it depends on the logging subsystem, which itself reads `Config`.
"""

from courseboard.core.config.config import Config, Environment
from courseboard.core.config.errors import (
    ConfigError,
    ConfigInitializationError,
    ConfigValidationError,
)

__all__ = [
    "Config",
    "Environment",
    "ConfigError",
    "ConfigInitializationError",
    "ConfigValidationError",
]

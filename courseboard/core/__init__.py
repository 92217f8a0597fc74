"""
Core infrastructure layer for Courseboard.

Subsystems
----------
- config: static settings (Config) and YAML tunables (ConfigManager)
- logging: structured logging, logger factory, log context
- database: async SQLAlchemy engine, sessions, transactions, retry policy
- event: in-process EventBus with priority tiers
- redis: optional distributed locking
- validation: InputValidator for caller-supplied values
- concurrency: per-key asyncio locks
- services: ServiceContainer wiring

Import concrete names from the submodules; this package performs no imports
so that `Config` and the logger can bootstrap without cycles.
"""

"""Application services wiring."""

from courseboard.core.services.container import ServiceContainer

__all__ = ["ServiceContainer"]

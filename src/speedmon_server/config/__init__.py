"""Configuration package: re-exports for convenience."""

from speedmon_server.config.loader import ConfigLoader
from speedmon_server.config.settings import Settings

__all__ = ["ConfigLoader", "Settings"]

"""Application services built on the bridge, the store and the sync engine."""

from .configuration import ConfigurationService, EditSession

__all__ = ["ConfigurationService", "EditSession"]

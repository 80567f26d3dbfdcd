"""Layered configuration (TOML files + ``VRL_*`` environment variables)."""

from vrlookup.settings.config import Settings, get_settings

__all__ = ["Settings", "get_settings"]

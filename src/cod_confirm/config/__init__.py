"""Configuration module."""

from cod_confirm.config.settings import Settings, settings

__all__ = ["Settings", "settings"]

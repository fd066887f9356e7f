"""
Configuration settings for SiteLedger

Thin re-export of the pydantic-settings implementation in settings.py.

Usage:
    from app.core.config import settings
    # or
    from app.core.settings import get_settings
    settings = get_settings()
"""
from app.core.settings import Settings, get_settings, settings

__all__ = ["Settings", "get_settings", "settings"]

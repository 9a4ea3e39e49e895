"""Module-level settings instance shared across the application."""
from po_workflow.core.settings import Settings, get_settings

settings: Settings = get_settings()

__all__ = ["Settings", "get_settings", "settings"]

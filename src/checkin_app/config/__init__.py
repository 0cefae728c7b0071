from .settings import ConfigurationError, Settings, load_settings
from .user_settings_store import UserSettingsStore

__all__ = ["ConfigurationError", "Settings", "UserSettingsStore", "load_settings"]

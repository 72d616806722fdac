from authbridge.config.settings import ConfigurationError, Settings, settings

__all__ = ["ConfigurationError", "Settings", "settings"]

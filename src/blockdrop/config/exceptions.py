"""Configuration errors."""

from blockdrop.errors import BlockdropError


class ConfigError(BlockdropError):
    """Raised when configuration data cannot be loaded, merged, or validated."""

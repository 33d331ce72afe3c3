from __future__ import annotations


class PantryError(Exception):
    """Base error for the seed pipeline and search."""


class ConfigError(PantryError):
    """Invalid or unreadable configuration."""


class DatabaseError(PantryError):
    """Catalog store operation error."""


class ProviderError(PantryError):
    """A provider call failed (timeout, non-success status, bad payload)."""


class RuleError(PantryError):
    """A rule table failed schema validation."""


class CustomFoodError(PantryError, ValueError):
    """Custom food payload rejected."""


class DuplicateFoodError(CustomFoodError):
    def __init__(self, message: str, existing=None):
        super().__init__(message)
        self.existing = existing

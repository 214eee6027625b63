"""Domain-specific errors for lexmod."""

from __future__ import annotations


class LexModError(Exception):
    """Base error for lexmod."""


class ConfigurationError(LexModError):
    """Raised when an export/import request is malformed (e.g. both names and `except_`)."""


class VisibilityError(LexModError):
    """Raised when an import names a function the module keeps hidden."""


class UnknownSymbolError(LexModError):
    """Raised when an export/import names a function the module does not define."""


class ConflictError(LexModError):
    """Raised when an imported name is already bound in the importing scope."""


class IntrospectionError(LexModError):
    """Raised when a function's parameter list cannot be recovered or forwarded."""


class EmptyExportWarning(UserWarning):
    """Emitted when an export selects zero functions."""

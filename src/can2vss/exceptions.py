"""Custom exception hierarchy for can2vss."""

from __future__ import annotations


class FeederError(Exception):
    """Base exception for all can2vss errors."""


class ConfigError(FeederError):
    """Invalid or missing mapping configuration.

    ``entry`` identifies the offending mapping entry (its signal name when
    known, otherwise its position in the ``mappings`` list).
    """

    def __init__(self, message: str, *, entry: str | int | None = None) -> None:
        self.entry = entry
        super().__init__(message)


class SourceError(FeederError):
    """Bus signal source could not be initialized or read."""


class EngineError(FeederError):
    """Transform engine rejected the mapping table."""


class StoreError(FeederError):
    """Remote signal store operation failed (transport or status)."""

    def __init__(
        self,
        message: str,
        *,
        path: str = "",
        status_code: int | None = None,
    ) -> None:
        self.path = path
        self.status_code = status_code
        super().__init__(message)


class ResolveError(StoreError):
    """The store does not know the requested signal path."""

"""Signals flowing through a dispatch pass."""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any

from pydantic import Field

from can2vss.models._base import FeederBaseModel, SignalQuality


def _utcnow() -> datetime:
    return datetime.now(UTC)


class SignalUpdate(FeederBaseModel):
    """One decoded value reported by the bus source."""

    name: str
    value: Any
    timestamp: float | None = Field(
        default=None,
        description="Capture timestamp (epoch seconds) reported by the bus, if any.",
    )


class QualifiedValue(FeederBaseModel):
    """A value paired with its quality."""

    value: Any = None
    quality: SignalQuality = SignalQuality.VALID
    timestamp: datetime = Field(default_factory=_utcnow)

    @property
    def is_valid(self) -> bool:
        return self.quality == SignalQuality.VALID and self.value is not None

    @classmethod
    def invalid(cls, quality: SignalQuality = SignalQuality.INVALID) -> QualifiedValue:
        return cls(value=None, quality=quality)


class OutputSignal(FeederBaseModel):
    """A VSS signal produced by the transform engine."""

    path: str
    qualified_value: QualifiedValue


def describe_signal(signal: OutputSignal) -> str:
    """Render *signal* for debug logs as ``path = value [quality]``."""
    qv = signal.qualified_value
    value = "<none>" if qv.value is None else repr(qv.value)
    return f"{signal.path} = {value} [{qv.quality.value}]"

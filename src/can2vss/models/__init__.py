"""Data models for mappings and signals."""

from can2vss.models._base import FeederBaseModel, SignalQuality, UpdateTrigger, ValueType
from can2vss.models.mapping import (
    CodeTransform,
    DirectTransform,
    SignalMapping,
    SignalSource,
    Transform,
    ValueMapTransform,
)
from can2vss.models.signal import OutputSignal, QualifiedValue, SignalUpdate, describe_signal

__all__ = [
    "CodeTransform",
    "DirectTransform",
    "FeederBaseModel",
    "OutputSignal",
    "QualifiedValue",
    "SignalMapping",
    "SignalQuality",
    "SignalSource",
    "SignalUpdate",
    "Transform",
    "UpdateTrigger",
    "ValueMapTransform",
    "ValueType",
    "describe_signal",
]

"""Base model and enums shared by the mapping and signal models.

Every model inherits from :class:`FeederBaseModel`, which is frozen so
that a loaded mapping table and the signals flowing through a dispatch
pass can be shared without copying.
"""

from __future__ import annotations

from enum import StrEnum

from pydantic import BaseModel, ConfigDict


class FeederBaseModel(BaseModel):
    """Immutable base for all can2vss models."""

    model_config = ConfigDict(
        frozen=True,
        extra="forbid",
        populate_by_name=True,
    )


class ValueType(StrEnum):
    """Closed set of VSS datatypes a mapping can declare.

    Matching against configuration strings is case-sensitive; see
    :meth:`from_config`.
    """

    BOOL = "bool"
    INT8 = "int8"
    INT16 = "int16"
    INT32 = "int32"
    INT64 = "int64"
    UINT8 = "uint8"
    UINT16 = "uint16"
    UINT32 = "uint32"
    UINT64 = "uint64"
    FLOAT = "float"
    DOUBLE = "double"
    STRING = "string"
    STRUCT = "struct"
    UNSPECIFIED = "unspecified"

    @classmethod
    def from_config(cls, value: str) -> ValueType | None:
        """Return the member whose value is exactly *value*, else ``None``."""
        for member in cls:
            if member.value == value:
                return member
        return None

    @property
    def is_integer(self) -> bool:
        return self in _INTEGER_TYPES

    @property
    def is_floating(self) -> bool:
        return self in (ValueType.FLOAT, ValueType.DOUBLE)


_INTEGER_TYPES = frozenset(
    {
        ValueType.INT8,
        ValueType.INT16,
        ValueType.INT32,
        ValueType.INT64,
        ValueType.UINT8,
        ValueType.UINT16,
        ValueType.UINT32,
        ValueType.UINT64,
    }
)


class UpdateTrigger(StrEnum):
    """Which cadence may cause a mapping to be (re-)evaluated."""

    ON_DEPENDENCY = "on_dependency"
    PERIODIC = "periodic"
    BOTH = "both"

    @classmethod
    def from_config(cls, value: str | None) -> UpdateTrigger:
        # Anything other than the two explicit keywords means "on dependency".
        if value == "periodic":
            return cls.PERIODIC
        if value == "both":
            return cls.BOTH
        return cls.ON_DEPENDENCY

    @property
    def reacts_to_input(self) -> bool:
        return self in (UpdateTrigger.ON_DEPENDENCY, UpdateTrigger.BOTH)

    @property
    def reacts_to_time(self) -> bool:
        return self in (UpdateTrigger.PERIODIC, UpdateTrigger.BOTH)


class SignalQuality(StrEnum):
    VALID = "valid"
    INVALID = "invalid"
    NOT_AVAILABLE = "not_available"
    STALE = "stale"

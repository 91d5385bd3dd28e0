"""Signal mapping model.

A :class:`SignalMapping` declares one output signal and how to produce it.
The transform is a closed sum of three variants discriminated on ``kind``;
the mapping-table loader decides which variant to build, so everything
downstream only ever sees exactly one of them.
"""

from __future__ import annotations

from typing import Annotated, Literal

from pydantic import Field, model_validator

from can2vss.models._base import FeederBaseModel, UpdateTrigger, ValueType


class SignalSource(FeederBaseModel):
    """External input that feeds a mapping directly (e.g. a DBC signal)."""

    type: str
    name: str


class DirectTransform(FeederBaseModel):
    """Pass the source value through unchanged."""

    kind: Literal["direct"] = "direct"


class CodeTransform(FeederBaseModel):
    """Evaluate an expression against the input values."""

    kind: Literal["code"] = "code"
    code: str


class ValueMapTransform(FeederBaseModel):
    """Substitute one discrete input value for an output value.

    Keys are the text form of the input value. Inputs without an entry
    produce no output.
    """

    kind: Literal["value_map"] = "value_map"
    mapping: dict[str, str] = Field(default_factory=dict)


Transform = Annotated[
    DirectTransform | CodeTransform | ValueMapTransform,
    Field(discriminator="kind"),
]


class SignalMapping(FeederBaseModel):
    """Declarative rule describing how one output signal is derived."""

    name: str = Field(min_length=1)
    source: SignalSource | None = None
    datatype: ValueType = ValueType.UNSPECIFIED
    interval_ms: int = Field(default=0, ge=0)
    is_struct: bool = False
    struct_type: str | None = None
    depends_on: tuple[str, ...] = ()
    transform: Transform = Field(default_factory=DirectTransform)
    update_trigger: UpdateTrigger = UpdateTrigger.ON_DEPENDENCY

    @model_validator(mode="after")
    def _check_struct_fields(self) -> SignalMapping:
        if self.is_struct != (self.datatype == ValueType.STRUCT):
            raise ValueError("is_struct must be set exactly when datatype is struct")
        if self.struct_type is not None and not self.is_struct:
            raise ValueError("struct_type is only allowed for struct datatypes")
        return self

    @property
    def is_periodic(self) -> bool:
        """Whether elapsed time alone can cause this mapping to emit."""
        return self.update_trigger.reacts_to_time and self.interval_ms > 0

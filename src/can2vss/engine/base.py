"""Transform engine contract."""

from __future__ import annotations

from collections.abc import Sequence
from typing import Protocol

from can2vss.mapping_table import MappingTable
from can2vss.models import OutputSignal, SignalUpdate


class TransformEngine(Protocol):
    """Structural interface of the dependency-aware transform engine.

    ``initialize`` raises :class:`~can2vss.exceptions.EngineError` when it
    rejects the table. ``process_updates`` must accept an empty sequence:
    that call is the periodic evaluation trigger.
    """

    def initialize(self, table: MappingTable) -> None: ...

    def required_input_signals(self) -> set[str]: ...

    def process_updates(self, updates: Sequence[SignalUpdate]) -> list[OutputSignal]: ...

"""Default transform engine.

Mappings are evaluated in declaration order, so a mapping may only depend
on mappings declared before it. Latest input values are cached by source
name and latest valid outputs by mapping name, which lets a periodic pass
(empty update batch) re-emit time-driven mappings from cached state.
Time-driven mappings are only considered on such a pass; an input batch
updates the cache without emitting them.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable, Sequence
from typing import Any

from can2vss.engine.evaluate import (
    TransformError,
    UnmatchedValue,
    apply_transform,
    check_transform,
    make_evaluator,
)
from can2vss.exceptions import EngineError
from can2vss.mapping_table import MappingTable
from can2vss.models import OutputSignal, QualifiedValue, SignalMapping, SignalQuality, SignalUpdate
from can2vss.normalize import coerce_value

_logger = logging.getLogger(__name__)

_NS_PER_MS = 1_000_000


class SignalProcessor:
    """In-order evaluator implementing :class:`~can2vss.engine.base.TransformEngine`."""

    def __init__(self, *, clock: Callable[[], int] = time.monotonic_ns) -> None:
        self._clock = clock
        self._table = MappingTable()
        self._evaluator = make_evaluator()
        self._inputs: dict[str, Any] = {}
        self._outputs: dict[str, Any] = {}
        self._last_emit_ns: dict[str, int] = {}

    def initialize(self, table: MappingTable) -> None:
        """Validate *table* and take it over for evaluation."""
        declared: set[str] = set()
        for mapping in table.values():
            for dep in mapping.depends_on:
                if dep not in declared:
                    where = "declared after it" if dep in table else "unknown"
                    raise EngineError(f"Signal {mapping.name} depends on {dep}, which is {where}")
            try:
                check_transform(mapping.transform)
            except ValueError as exc:
                raise EngineError(f"Signal {mapping.name}: {exc}") from exc
            declared.add(mapping.name)

        self._table = table
        self._inputs.clear()
        self._outputs.clear()
        self._last_emit_ns.clear()
        _logger.debug("Transform engine initialized with %d mappings", len(table))

    def required_input_signals(self) -> set[str]:
        return self._table.input_signals()

    def _periodic_due(self, mapping: SignalMapping, now_ns: int) -> bool:
        if not mapping.is_periodic:
            return False
        last = self._last_emit_ns.get(mapping.name)
        return last is None or now_ns - last >= mapping.interval_ms * _NS_PER_MS

    def _evaluate(self, mapping: SignalMapping) -> QualifiedValue | None:
        x: Any = None
        if mapping.source is not None:
            if mapping.source.name not in self._inputs:
                return QualifiedValue.invalid(SignalQuality.NOT_AVAILABLE)
            x = self._inputs[mapping.source.name]

        deps: dict[str, Any] = {}
        for dep in mapping.depends_on:
            if dep not in self._outputs:
                return QualifiedValue.invalid(SignalQuality.NOT_AVAILABLE)
            deps[dep] = self._outputs[dep]
        if mapping.source is None and len(mapping.depends_on) == 1:
            x = deps[mapping.depends_on[0]]

        try:
            value = apply_transform(mapping.transform, x, deps, self._evaluator)
        except UnmatchedValue as exc:
            _logger.debug("No value mapping for %s input %s", mapping.name, exc)
            return None
        except TransformError as exc:
            _logger.warning("Transform for %s failed: %s", mapping.name, exc)
            return QualifiedValue.invalid()

        if value is None:
            return QualifiedValue.invalid(SignalQuality.NOT_AVAILABLE)
        try:
            return QualifiedValue(value=coerce_value(mapping.datatype, value))
        except ValueError as exc:
            _logger.debug("Cannot convert %s result: %s", mapping.name, exc)
            return QualifiedValue.invalid()

    def process_updates(self, updates: Sequence[SignalUpdate]) -> list[OutputSignal]:
        now_ns = self._clock()
        periodic_pass = not updates
        changed_inputs: set[str] = set()
        for update in updates:
            self._inputs[update.name] = update.value
            changed_inputs.add(update.name)

        changed_outputs: set[str] = set()
        produced: list[OutputSignal] = []
        for mapping in self._table.values():
            trigger = mapping.update_trigger
            by_input = (mapping.source is not None and mapping.source.name in changed_inputs) or any(
                dep in changed_outputs for dep in mapping.depends_on
            )
            fire = (trigger.reacts_to_input and by_input) or (
                trigger.reacts_to_time and periodic_pass and self._periodic_due(mapping, now_ns)
            )
            if not fire:
                continue

            result = self._evaluate(mapping)
            if result is None:
                continue
            self._last_emit_ns[mapping.name] = now_ns
            if result.is_valid:
                self._outputs[mapping.name] = result.value
                changed_outputs.add(mapping.name)
            produced.append(OutputSignal(path=mapping.name, qualified_value=result))
        return produced

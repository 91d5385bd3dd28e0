"""Dispatch loop: bus polling, periodic evaluation and publishing.

One asyncio task drives everything. Each fast tick polls the bus source
and, when it returned updates, runs the transform engine on the whole
batch. Independently, whenever the slow-tick period has elapsed on the
monotonic clock, the engine is run with an empty batch so that
time-driven mappings get re-evaluated. Every produced signal goes through
the :class:`~can2vss.publisher.Publisher`.

Collaborator calls are made one at a time; a slow call simply makes the
iteration longer. When an iteration finishes early the loop sleeps the
rest of the fast-tick period; when it overran, the next iteration starts
immediately without any catch-up.
"""

from __future__ import annotations

import asyncio
import dataclasses
import logging
import threading
import time
from collections import Counter
from collections.abc import Awaitable, Callable, Sequence
from enum import StrEnum

from can2vss._constants import DEFAULT_FAST_TICK_MS, DEFAULT_SLOW_TICK_MS
from can2vss.engine.base import TransformEngine
from can2vss.exceptions import FeederError
from can2vss.mapping_table import MappingTable
from can2vss.models import OutputSignal, SignalUpdate
from can2vss.publisher import PublishOutcome, Publisher
from can2vss.sources.base import BusSource

_logger = logging.getLogger(__name__)

_NS_PER_MS = 1_000_000


class LoopState(StrEnum):
    CONSTRUCTING = "constructing"
    RUNNING = "running"
    STOPPED = "stopped"


class ShutdownToken:
    """Cancellation flag shared between the loop and the signal handler.

    Setting it is a single atomic operation and may happen from any thread.
    The loop only looks at it once per iteration.
    """

    def __init__(self) -> None:
        self._event = threading.Event()

    def request(self) -> None:
        self._event.set()

    @property
    def requested(self) -> bool:
        return self._event.is_set()


@dataclasses.dataclass
class LoopStats:
    """Counters kept by the dispatch loop."""

    fast_passes: int = 0
    periodic_passes: int = 0
    outcomes: Counter[PublishOutcome] = dataclasses.field(default_factory=Counter)

    def record(self, outcomes: Sequence[PublishOutcome]) -> None:
        self.outcomes.update(outcomes)


class DispatchLoop:
    def __init__(
        self,
        *,
        table: MappingTable,
        source: BusSource,
        engine: TransformEngine,
        publisher: Publisher,
        shutdown: ShutdownToken,
        fast_tick_ms: int = DEFAULT_FAST_TICK_MS,
        slow_tick_ms: int = DEFAULT_SLOW_TICK_MS,
        clock: Callable[[], int] = time.monotonic_ns,
        sleep: Callable[[float], Awaitable[object]] = asyncio.sleep,
    ) -> None:
        self._table = table
        self._source = source
        self._engine = engine
        self._publisher = publisher
        self._shutdown = shutdown
        self._fast_tick_ns = fast_tick_ms * _NS_PER_MS
        self._slow_tick_ns = slow_tick_ms * _NS_PER_MS
        self._clock = clock
        self._sleep = sleep
        self._state = LoopState.CONSTRUCTING
        self._stats = LoopStats()

    @property
    def state(self) -> LoopState:
        return self._state

    @property
    def stats(self) -> LoopStats:
        return self._stats

    def _log_schedule(self) -> None:
        periodic = self._table.periodic_mappings()
        _logger.info(
            "Dispatching %d mappings (%d periodic); polling every %d ms, periodic pass every %d ms",
            len(self._table),
            len(periodic),
            self._fast_tick_ns // _NS_PER_MS,
            self._slow_tick_ns // _NS_PER_MS,
        )
        for mapping in periodic:
            if mapping.interval_ms * _NS_PER_MS < self._slow_tick_ns:
                _logger.info(
                    "Signal %s interval %d ms is finer than the %d ms periodic pass",
                    mapping.name,
                    mapping.interval_ms,
                    self._slow_tick_ns // _NS_PER_MS,
                )

    def _poll(self) -> list[SignalUpdate]:
        try:
            return self._source.poll()
        except Exception:
            _logger.warning("Bus source poll failed", exc_info=True)
            return []

    def _process(self, updates: Sequence[SignalUpdate]) -> list[OutputSignal]:
        try:
            return self._engine.process_updates(updates)
        except Exception:
            _logger.error("Transform engine failed on %d updates", len(updates), exc_info=True)
            return []

    async def _publish(self, signals: list[OutputSignal]) -> None:
        self._stats.record(await self._publisher.publish_all(signals))

    async def run(self) -> None:
        """Run until the shutdown token is set, then stop the bus source."""
        if self._state != LoopState.CONSTRUCTING:
            raise FeederError(f"Dispatch loop cannot be started from state {self._state}")
        self._state = LoopState.RUNNING
        self._log_schedule()

        last_periodic = self._clock()
        try:
            while not self._shutdown.requested:
                loop_start = self._clock()

                updates = self._poll()
                if updates:
                    _logger.debug("Processing %d signal updates", len(updates))
                    signals = self._process(updates)
                    _logger.debug("Produced %d VSS signals", len(signals))
                    self._stats.fast_passes += 1
                    await self._publish(signals)

                now = self._clock()
                if now - last_periodic >= self._slow_tick_ns:
                    signals = self._process([])
                    if signals:
                        _logger.debug("Periodic processing produced %d signals", len(signals))
                    self._stats.periodic_passes += 1
                    await self._publish(signals)
                    last_periodic = now

                elapsed = self._clock() - loop_start
                if elapsed < self._fast_tick_ns:
                    await self._sleep((self._fast_tick_ns - elapsed) / 1e9)
        finally:
            self._source.stop()
            self._state = LoopState.STOPPED
            _logger.info(
                "Dispatch loop stopped after %d input passes and %d periodic passes (%s)",
                self._stats.fast_passes,
                self._stats.periodic_passes,
                ", ".join(f"{o.value}={n}" for o, n in sorted(self._stats.outcomes.items())) or "nothing published",
            )

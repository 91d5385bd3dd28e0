"""Tests for the dispatch loop scheduling and end-to-end signal flow.

The loop runs against a fake monotonic clock that only moves when the loop
sleeps (or when a fake collaborator pretends to be slow), so tick arithmetic
is exact.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from typing import Any

import pytest
import yaml

from can2vss.dispatch import DispatchLoop, LoopState, ShutdownToken
from can2vss.engine import SignalProcessor
from can2vss.exceptions import FeederError, StoreError
from can2vss.handles import HandleCache
from can2vss.mapping_table import MappingTable, build_mapping_table
from can2vss.models import OutputSignal, QualifiedValue, SignalUpdate
from can2vss.publisher import PublishOutcome, Publisher
from can2vss.store import SignalHandle

_MS = 1_000_000

_SPEED_MAPPING = """
mappings:
  - signal: Vehicle.Speed
    source:
      type: can
      name: VehicleSpeed
    datatype: float
    interval_ms: {interval}
    transform:
      math: "x * 0.01"
    update_trigger: {trigger}
"""


class FakeClock:
    def __init__(self) -> None:
        self.now_ns = 0

    def __call__(self) -> int:
        return self.now_ns

    def advance_ms(self, ms: int) -> None:
        self.now_ns += ms * _MS


class FakeSleep:
    """Advances the clock by the requested time; stops the loop at *stop_at_ms*."""

    def __init__(self, clock: FakeClock, shutdown: ShutdownToken, stop_at_ms: int | None = None) -> None:
        self.clock = clock
        self.shutdown = shutdown
        self.stop_at_ns = None if stop_at_ms is None else stop_at_ms * _MS
        self.calls: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)
        self.clock.now_ns += round(seconds * 1e9)
        if self.stop_at_ns is not None and self.clock.now_ns >= self.stop_at_ns:
            self.shutdown.request()


class ScriptedSource:
    """Returns scripted batches keyed by 1-based poll number."""

    def __init__(
        self,
        batches: dict[int, list[SignalUpdate]] | None = None,
        *,
        on_poll: Callable[[int], None] | None = None,
    ) -> None:
        self.batches = dict(batches or {})
        self.on_poll = on_poll
        self.polls = 0
        self.stop_calls = 0

    def poll(self) -> list[SignalUpdate]:
        self.polls += 1
        if self.on_poll is not None:
            self.on_poll(self.polls)
        return list(self.batches.get(self.polls, []))

    def stop(self) -> None:
        self.stop_calls += 1


class RecordingEngine:
    def __init__(self, respond: Callable[[Sequence[SignalUpdate]], list[OutputSignal]] | None = None) -> None:
        self.calls: list[list[SignalUpdate]] = []
        self.respond = respond

    def initialize(self, table: MappingTable) -> None:
        pass

    def required_input_signals(self) -> set[str]:
        return set()

    def process_updates(self, updates: Sequence[SignalUpdate]) -> list[OutputSignal]:
        self.calls.append(list(updates))
        return self.respond(updates) if self.respond is not None else []


class FakeStore:
    """Records published values together with the fake clock time."""

    def __init__(self, clock: FakeClock, *, failing: set[str] | None = None) -> None:
        self.clock = clock
        self.failing = failing or set()
        self.published: list[tuple[str, Any]] = []
        self.published_at_ms: list[int] = []

    async def resolve(self, path: str) -> SignalHandle:
        return SignalHandle(path=path, target=path)

    async def publish(self, handle: SignalHandle, value: QualifiedValue) -> None:
        if handle.path in self.failing:
            raise StoreError("rejected", path=handle.path, status_code=500)
        self.published.append((handle.path, value.value))
        self.published_at_ms.append(self.clock.now_ns // _MS)


def _speed(value: Any) -> OutputSignal:
    return OutputSignal(path="Vehicle.Speed", qualified_value=QualifiedValue(value=value))


async def _make_loop(
    *,
    clock: FakeClock,
    shutdown: ShutdownToken,
    source: ScriptedSource,
    engine: Any,
    store: FakeStore,
    sleep: FakeSleep,
    table: MappingTable | None = None,
) -> DispatchLoop:
    table = table if table is not None else MappingTable()
    names = table.names() or ("Vehicle.Speed",)
    handles = await HandleCache.build(store, names)
    return DispatchLoop(
        table=table,
        source=source,
        engine=engine,
        publisher=Publisher(store, handles),
        shutdown=shutdown,
        clock=clock,
        sleep=sleep,
    )


# ------------------------------------------------------------------
# Scheduling
# ------------------------------------------------------------------


@pytest.mark.asyncio
async def test_periodic_pass_every_slow_tick() -> None:
    clock = FakeClock()
    shutdown = ShutdownToken()
    source = ScriptedSource()
    engine = RecordingEngine()
    sleep = FakeSleep(clock, shutdown, stop_at_ms=210)
    loop = await _make_loop(
        clock=clock, shutdown=shutdown, source=source, engine=engine, store=FakeStore(clock), sleep=sleep
    )

    await loop.run()

    # iterations at 0, 10, ..., 200 ms; periodic passes at 50, 100, 150, 200 ms
    assert source.polls == 21
    assert engine.calls == [[], [], [], []]
    assert loop.stats.periodic_passes == 4
    assert loop.stats.fast_passes == 0
    assert sleep.calls == [pytest.approx(0.01)] * 21


@pytest.mark.asyncio
async def test_fast_pass_only_when_updates_arrive() -> None:
    clock = FakeClock()
    shutdown = ShutdownToken()
    update = SignalUpdate(name="VehicleSpeed", value=1000)
    source = ScriptedSource({3: [update]})
    engine = RecordingEngine()
    loop = await _make_loop(
        clock=clock,
        shutdown=shutdown,
        source=source,
        engine=engine,
        store=FakeStore(clock),
        sleep=FakeSleep(clock, shutdown, stop_at_ms=40),
    )

    await loop.run()

    assert engine.calls == [[update]]
    assert loop.stats.fast_passes == 1
    assert loop.stats.periodic_passes == 0


@pytest.mark.asyncio
async def test_overrun_skips_sleep_without_catch_up() -> None:
    clock = FakeClock()
    shutdown = ShutdownToken()

    def slow_poll(count: int) -> None:
        clock.advance_ms(15)
        if count == 5:
            shutdown.request()

    source = ScriptedSource(on_poll=slow_poll)
    sleep = FakeSleep(clock, shutdown)
    loop = await _make_loop(
        clock=clock, shutdown=shutdown, source=source, engine=RecordingEngine(), store=FakeStore(clock), sleep=sleep
    )

    await loop.run()

    assert sleep.calls == []
    assert source.polls == 5
    # one periodic pass at 60 ms; the backlog is not replayed
    assert loop.stats.periodic_passes == 1


@pytest.mark.asyncio
async def test_sleeps_only_the_remaining_tick() -> None:
    clock = FakeClock()
    shutdown = ShutdownToken()
    source = ScriptedSource(on_poll=lambda _count: clock.advance_ms(4))
    sleep = FakeSleep(clock, shutdown, stop_at_ms=30)
    loop = await _make_loop(
        clock=clock, shutdown=shutdown, source=source, engine=RecordingEngine(), store=FakeStore(clock), sleep=sleep
    )

    await loop.run()

    assert sleep.calls == [pytest.approx(0.006)] * 3


# ------------------------------------------------------------------
# Lifecycle
# ------------------------------------------------------------------


@pytest.mark.asyncio
async def test_shutdown_before_start_stops_source() -> None:
    clock = FakeClock()
    shutdown = ShutdownToken()
    shutdown.request()
    source = ScriptedSource()
    loop = await _make_loop(
        clock=clock,
        shutdown=shutdown,
        source=source,
        engine=RecordingEngine(),
        store=FakeStore(clock),
        sleep=FakeSleep(clock, shutdown),
    )
    assert loop.state == LoopState.CONSTRUCTING

    await loop.run()

    assert loop.state == LoopState.STOPPED
    assert source.polls == 0
    assert source.stop_calls == 1


@pytest.mark.asyncio
async def test_loop_cannot_be_restarted() -> None:
    clock = FakeClock()
    shutdown = ShutdownToken()
    shutdown.request()
    loop = await _make_loop(
        clock=clock,
        shutdown=shutdown,
        source=ScriptedSource(),
        engine=RecordingEngine(),
        store=FakeStore(clock),
        sleep=FakeSleep(clock, shutdown),
    )
    await loop.run()

    with pytest.raises(FeederError):
        await loop.run()


@pytest.mark.asyncio
async def test_poll_failure_is_logged_and_loop_continues(caplog: pytest.LogCaptureFixture) -> None:
    clock = FakeClock()
    shutdown = ShutdownToken()

    def flaky(count: int) -> None:
        if count == 1:
            raise OSError("bus down")

    source = ScriptedSource({2: [SignalUpdate(name="VehicleSpeed", value=1)]}, on_poll=flaky)
    engine = RecordingEngine()
    loop = await _make_loop(
        clock=clock,
        shutdown=shutdown,
        source=source,
        engine=engine,
        store=FakeStore(clock),
        sleep=FakeSleep(clock, shutdown, stop_at_ms=20),
    )

    with caplog.at_level(logging.WARNING, logger="can2vss.dispatch"):
        await loop.run()

    assert source.polls == 2
    assert len(engine.calls) == 1
    assert any("poll failed" in r.message for r in caplog.records)


@pytest.mark.asyncio
async def test_publish_failure_does_not_abort_batch() -> None:
    clock = FakeClock()
    shutdown = ShutdownToken()
    outputs = [
        OutputSignal(path="Vehicle.A", qualified_value=QualifiedValue(value=1)),
        OutputSignal(path="Vehicle.B", qualified_value=QualifiedValue(value=2)),
        OutputSignal(path="Vehicle.C", qualified_value=QualifiedValue(value=3)),
    ]
    store = FakeStore(clock, failing={"Vehicle.B"})
    table = build_mapping_table(
        {"mappings": [{"signal": name, "datatype": "int32"} for name in ("Vehicle.A", "Vehicle.B", "Vehicle.C")]}
    )
    loop = await _make_loop(
        clock=clock,
        shutdown=shutdown,
        source=ScriptedSource({1: [SignalUpdate(name="Raw", value=0)]}),
        engine=RecordingEngine(lambda updates: outputs if updates else []),
        store=store,
        sleep=FakeSleep(clock, shutdown, stop_at_ms=10),
        table=table,
    )

    await loop.run()

    assert store.published == [("Vehicle.A", 1), ("Vehicle.C", 3)]
    assert loop.stats.outcomes[PublishOutcome.PUBLISHED] == 2
    assert loop.stats.outcomes[PublishOutcome.FAILED] == 1


# ------------------------------------------------------------------
# End-to-end scenarios
# ------------------------------------------------------------------


@pytest.mark.asyncio
async def test_bus_update_is_scaled_and_published_once() -> None:
    clock = FakeClock()
    shutdown = ShutdownToken()
    table = build_mapping_table(yaml.safe_load(_SPEED_MAPPING.format(trigger="both", interval=100)))
    engine = SignalProcessor(clock=clock)
    engine.initialize(table)
    store = FakeStore(clock)
    loop = await _make_loop(
        clock=clock,
        shutdown=shutdown,
        source=ScriptedSource({1: [SignalUpdate(name="VehicleSpeed", value=1000)]}),
        engine=engine,
        store=store,
        sleep=FakeSleep(clock, shutdown, stop_at_ms=40),
        table=table,
    )

    await loop.run()

    assert store.published == [("Vehicle.Speed", 10.0)]
    assert store.published_at_ms == [0]


@pytest.mark.asyncio
async def test_periodic_pass_output_is_published_on_slow_tick() -> None:
    clock = FakeClock()
    shutdown = ShutdownToken()
    table = build_mapping_table(yaml.safe_load(_SPEED_MAPPING.format(trigger="periodic", interval=100)))
    engine = RecordingEngine(lambda updates: [] if updates else [_speed(10.0)])
    store = FakeStore(clock)
    loop = await _make_loop(
        clock=clock,
        shutdown=shutdown,
        source=ScriptedSource(),
        engine=engine,
        store=store,
        sleep=FakeSleep(clock, shutdown, stop_at_ms=210),
        table=table,
    )

    await loop.run()

    assert store.published_at_ms == [50, 100, 150, 200]
    assert store.published == [("Vehicle.Speed", 10.0)] * 4
    assert all(call == [] for call in engine.calls)
    assert loop.stats.fast_passes == 0


@pytest.mark.asyncio
async def test_periodic_mapping_publishes_only_on_slow_tick() -> None:
    clock = FakeClock()
    shutdown = ShutdownToken()
    table = build_mapping_table(yaml.safe_load(_SPEED_MAPPING.format(trigger="periodic", interval=50)))
    engine = SignalProcessor(clock=clock)
    engine.initialize(table)
    store = FakeStore(clock)
    loop = await _make_loop(
        clock=clock,
        shutdown=shutdown,
        source=ScriptedSource({1: [SignalUpdate(name="VehicleSpeed", value=1000)]}),
        engine=engine,
        store=store,
        sleep=FakeSleep(clock, shutdown, stop_at_ms=210),
        table=table,
    )

    await loop.run()

    assert store.published_at_ms == [50, 100, 150, 200]
    assert store.published == [("Vehicle.Speed", 10.0)] * 4
    assert loop.stats.fast_passes == 1
    assert loop.stats.periodic_passes == 4
    assert loop.stats.outcomes[PublishOutcome.PUBLISHED] == 4


@pytest.mark.asyncio
async def test_periodic_mapping_without_any_bus_input_publishes_nothing() -> None:
    clock = FakeClock()
    shutdown = ShutdownToken()
    table = build_mapping_table(yaml.safe_load(_SPEED_MAPPING.format(trigger="periodic", interval=50)))
    engine = SignalProcessor(clock=clock)
    engine.initialize(table)
    store = FakeStore(clock)
    loop = await _make_loop(
        clock=clock,
        shutdown=shutdown,
        source=ScriptedSource(),
        engine=engine,
        store=store,
        sleep=FakeSleep(clock, shutdown, stop_at_ms=210),
        table=table,
    )

    await loop.run()

    # each slow tick evaluates the mapping, but with no input it is not available
    assert store.published == []
    assert loop.stats.periodic_passes == 4
    assert loop.stats.outcomes[PublishOutcome.INVALID] == 4
    assert loop.stats.outcomes[PublishOutcome.PUBLISHED] == 0

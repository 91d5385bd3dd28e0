"""Command line entry point for the CAN to VSS feeder.

Usage::

    can2vss-feeder <dbc_file> <mapping_yaml_file> <can_interface> <store_address>

Tunables (tick periods, log level, store options) come from ``CAN2VSS_*``
environment variables, see :class:`~can2vss.config.FeederConfig`.
"""

from __future__ import annotations

import asyncio
import logging
import os
import signal
import sys
from collections.abc import Sequence
from dataclasses import dataclass

from can2vss._constants import USAGE
from can2vss.config import FeederConfig
from can2vss.dispatch import DispatchLoop, ShutdownToken
from can2vss.engine import SignalProcessor
from can2vss.exceptions import ConfigError, EngineError, SourceError, StoreError
from can2vss.handles import HandleCache
from can2vss.mapping_table import load_mapping_table
from can2vss.publisher import Publisher
from can2vss.sources import CANSignalSource
from can2vss.store import open_store

_logger = logging.getLogger("can2vss")

_LOG_FORMAT = "%(levelname)s %(name)s: %(message)s"


@dataclass(frozen=True)
class FeederArgs:
    dbc_file: str
    mapping_file: str
    can_interface: str
    store_address: str


def _print_usage(prog: str) -> None:
    print(USAGE.format(prog=prog))


def _install_signal_handlers(shutdown: ShutdownToken) -> None:
    loop = asyncio.get_running_loop()

    def handler(signum: int) -> None:
        _logger.info("Received signal %d, shutting down...", signum)
        shutdown.request()

    for signum in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(signum, handler, signum)


def _remove_signal_handlers() -> None:
    loop = asyncio.get_running_loop()
    for signum in (signal.SIGINT, signal.SIGTERM):
        loop.remove_signal_handler(signum)


async def run_feeder(args: FeederArgs, config: FeederConfig, shutdown: ShutdownToken) -> int:
    """Start every component, run the dispatch loop and return an exit code."""
    _logger.info("Starting CAN to VSS feeder")
    _logger.info("DBC file: %s", args.dbc_file)
    _logger.info("Mapping file: %s", args.mapping_file)
    _logger.info("CAN interface: %s", args.can_interface)
    _logger.info("Store address: %s", args.store_address)

    try:
        table = load_mapping_table(args.mapping_file)
    except ConfigError as exc:
        _logger.error("%s", exc)
        return 1

    engine = SignalProcessor()
    try:
        engine.initialize(table)
    except EngineError as exc:
        _logger.error("Failed to initialize transform engine: %s", exc)
        return 1

    source = CANSignalSource(
        args.can_interface,
        args.dbc_file,
        table,
        bustype=config.can_bustype,
        batch_limit=config.poll_batch_limit,
    )
    try:
        source.initialize()
    except SourceError as exc:
        _logger.error("Failed to initialize CAN signal source: %s", exc)
        return 1

    required = sorted(engine.required_input_signals())
    _logger.info("Monitoring %d input signals:", len(required))
    for name in required:
        _logger.info("  - %s", name)

    try:
        store = open_store(args.store_address, config)
    except ValueError as exc:
        source.stop()
        _logger.error("Invalid store address: %s", exc)
        return 1

    try:
        async with store:
            _logger.info("Connected to signal store at %s", args.store_address)
            handles = await HandleCache.build(store, table.names())
            loop = DispatchLoop(
                table=table,
                source=source,
                engine=engine,
                publisher=Publisher(store, handles),
                shutdown=shutdown,
                fast_tick_ms=config.fast_tick_ms,
                slow_tick_ms=config.slow_tick_ms,
            )
            await loop.run()
    except StoreError as exc:
        _logger.error("Failed to connect to signal store: %s", exc)
        return 1
    finally:
        source.stop()

    _logger.info("CAN to VSS feeder stopped")
    return 0


async def _main_async(args: FeederArgs, config: FeederConfig) -> int:
    shutdown = ShutdownToken()
    _install_signal_handlers(shutdown)
    try:
        return await run_feeder(args, config, shutdown)
    finally:
        _remove_signal_handlers()


def main(argv: Sequence[str] | None = None) -> int:
    raw = list(sys.argv if argv is None else argv)
    prog = os.path.basename(raw[0]) if raw else "can2vss-feeder"
    if len(raw) != 5:
        _print_usage(prog)
        return 1

    try:
        config = FeederConfig.from_env()
    except ValueError as exc:
        logging.basicConfig(format=_LOG_FORMAT)
        _logger.error("Invalid configuration: %s", exc)
        return 1
    logging.basicConfig(
        level=getattr(logging, config.log_level.upper(), logging.INFO),
        format=_LOG_FORMAT,
    )

    args = FeederArgs(*raw[1:])
    return asyncio.run(_main_async(args, config))


if __name__ == "__main__":
    sys.exit(main())

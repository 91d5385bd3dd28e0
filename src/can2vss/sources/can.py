"""CAN bus signal source (python-can + cantools DBC decoding)."""

from __future__ import annotations

import logging
from pathlib import Path

import can
import cantools
from cantools.database.can import Database, Message
from cantools.database.errors import DecodeError

from can2vss._constants import DEFAULT_CAN_BUSTYPE, DEFAULT_POLL_BATCH_LIMIT
from can2vss.exceptions import SourceError
from can2vss.mapping_table import MappingTable
from can2vss.models import SignalUpdate

_logger = logging.getLogger(__name__)

_STANDARD_MASK = 0x7FF
_EXTENDED_MASK = 0x1FFFFFFF


class CANSignalSource:
    """Decode DBC signals referenced by ``source.type == "can"`` mappings.

    Frames are drained from the bus without blocking on every :meth:`poll`;
    the kernel (or python-can's interface) buffers them between polls.
    """

    SOURCE_TYPE = "can"

    def __init__(
        self,
        interface: str,
        dbc_file: str | Path,
        table: MappingTable,
        *,
        bustype: str = DEFAULT_CAN_BUSTYPE,
        batch_limit: int = DEFAULT_POLL_BATCH_LIMIT,
        bus: can.BusABC | None = None,
    ) -> None:
        self._interface = interface
        self._dbc_file = Path(dbc_file)
        self._required = table.input_signals(self.SOURCE_TYPE)
        self._bustype = bustype
        self._batch_limit = batch_limit
        self._bus = bus
        self._frames: dict[int, Message] = {}

    @property
    def required_signals(self) -> set[str]:
        return set(self._required)

    def _load_database(self) -> Database:
        try:
            database = cantools.database.load_file(str(self._dbc_file))
        except (OSError, cantools.database.UnsupportedDatabaseFormatError) as exc:
            raise SourceError(f"Cannot load DBC file {self._dbc_file}: {exc}") from exc
        if not isinstance(database, Database):
            raise SourceError(f"{self._dbc_file} is not a CAN database")
        return database

    def initialize(self) -> None:
        """Load the DBC file and open the bus.

        Raises :class:`SourceError` when either step fails.
        """
        database = self._load_database()

        known: set[str] = set()
        for message in database.messages:
            names = {signal.name for signal in message.signals}
            known |= names
            if names & self._required:
                self._frames[message.frame_id] = message

        for name in sorted(self._required - known):
            _logger.warning("CAN signal %s is not defined in %s", name, self._dbc_file)
        _logger.info(
            "Decoding %d CAN frames for %d mapped signals",
            len(self._frames),
            len(self._required & known),
        )

        if self._bus is None:
            try:
                self._bus = can.Bus(channel=self._interface, interface=self._bustype)
            except (can.CanError, OSError, ValueError, NotImplementedError) as exc:
                raise SourceError(f"Cannot open CAN interface {self._interface}: {exc}") from exc

        if self._frames:
            self._bus.set_filters(
                [
                    {
                        "can_id": message.frame_id,
                        "can_mask": _EXTENDED_MASK if message.is_extended_frame else _STANDARD_MASK,
                        "extended": message.is_extended_frame,
                    }
                    for message in self._frames.values()
                ]
            )

    def poll(self) -> list[SignalUpdate]:
        bus = self._bus
        if bus is None:
            return []

        updates: list[SignalUpdate] = []
        for _ in range(self._batch_limit):
            try:
                frame = bus.recv(timeout=0.0)
            except can.CanError:
                _logger.warning("CAN receive failed on %s", self._interface, exc_info=True)
                break
            if frame is None:
                break

            message = self._frames.get(frame.arbitration_id)
            if message is None:
                continue
            try:
                decoded = message.decode(frame.data, decode_choices=False)
            except (DecodeError, ValueError):
                _logger.debug("Cannot decode CAN frame 0x%x", frame.arbitration_id, exc_info=True)
                continue

            for name, value in decoded.items():
                if name in self._required:
                    updates.append(SignalUpdate(name=name, value=value, timestamp=frame.timestamp))
        return updates

    def stop(self) -> None:
        bus = self._bus
        self._bus = None
        if bus is None:
            return
        bus.shutdown()
        _logger.debug("CAN interface %s closed", self._interface)

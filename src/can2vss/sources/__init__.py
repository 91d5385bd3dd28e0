"""Bus signal sources."""

from can2vss.sources.base import BusSource
from can2vss.sources.can import CANSignalSource

__all__ = ["BusSource", "CANSignalSource"]

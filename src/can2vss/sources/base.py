"""Bus signal source contract."""

from __future__ import annotations

from typing import Protocol

from can2vss.models import SignalUpdate


class BusSource(Protocol):
    """Structural interface for decoded bus input.

    ``poll`` must return promptly; an empty list is the normal idle case.
    """

    def poll(self) -> list[SignalUpdate]: ...

    def stop(self) -> None: ...

"""Remote signal store contract."""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any, Protocol

from can2vss.models import QualifiedValue, ValueType

# Dotted VSS path: at least two identifier segments, e.g. ``Vehicle.Speed``.
_VSS_PATH_RE = re.compile(r"^[A-Za-z][A-Za-z0-9_]*(\.[A-Za-z0-9_]+)+$")


def is_vss_path(path: str) -> bool:
    return bool(_VSS_PATH_RE.match(path))


@dataclass(frozen=True)
class SignalHandle:
    """Pre-resolved permission to publish to one signal path.

    ``target`` is backend-specific (an URL, a topic). Only the store that
    created a handle knows how to use it.
    """

    path: str
    target: str
    datatype: ValueType | None = None


class SignalStore(Protocol):
    """Structural store interface consumed by the feeder core.

    Both methods are awaited one at a time from the dispatch loop. Failures
    are reported by raising :class:`~can2vss.exceptions.StoreError` (or
    :class:`~can2vss.exceptions.ResolveError` for unknown paths).
    """

    async def resolve(self, path: str) -> SignalHandle: ...

    async def publish(self, handle: SignalHandle, value: QualifiedValue) -> None: ...


def encode_value(value: QualifiedValue) -> dict[str, Any]:
    """JSON body shared by the store backends."""
    return {
        "value": value.value,
        "quality": value.quality.value,
        "timestamp": value.timestamp.isoformat(),
    }

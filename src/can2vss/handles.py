"""Pre-resolved publish handles."""

from __future__ import annotations

import logging
from collections.abc import Iterable

from can2vss.exceptions import StoreError
from can2vss.store.base import SignalHandle, SignalStore

_logger = logging.getLogger(__name__)


class HandleCache:
    """Output path -> :class:`SignalHandle`, built once at startup.

    A path whose resolution failed has no entry at all; :meth:`get` returns
    ``None`` for it and nothing is ever re-resolved.
    """

    def __init__(self, handles: dict[str, SignalHandle] | None = None) -> None:
        self._handles: dict[str, SignalHandle] = dict(handles or {})

    @classmethod
    async def build(cls, store: SignalStore, names: Iterable[str]) -> HandleCache:
        """Resolve every name against *store* exactly once."""
        handles: dict[str, SignalHandle] = {}
        for name in names:
            if name in handles:
                continue
            try:
                handles[name] = await store.resolve(name)
            except StoreError as exc:
                _logger.warning("Failed to resolve signal %s: %s", name, exc)
                continue
            except Exception:
                _logger.warning("Failed to resolve signal %s", name, exc_info=True)
                continue
            _logger.debug("Resolved signal: %s", name)
        _logger.info("Pre-resolved %d signal handles", len(handles))
        return cls(handles)

    def get(self, path: str) -> SignalHandle | None:
        return self._handles.get(path)

    def __contains__(self, path: object) -> bool:
        return path in self._handles

    def __len__(self) -> int:
        return len(self._handles)

    def paths(self) -> tuple[str, ...]:
        return tuple(self._handles)

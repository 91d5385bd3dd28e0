"""Publishing of output signals through pre-resolved handles."""

from __future__ import annotations

import logging
from enum import StrEnum

from can2vss.exceptions import StoreError
from can2vss.handles import HandleCache
from can2vss.models import OutputSignal, describe_signal
from can2vss.store.base import SignalStore

_logger = logging.getLogger(__name__)


class PublishOutcome(StrEnum):
    PUBLISHED = "published"
    UNRESOLVED = "unresolved"
    INVALID = "invalid"
    FAILED = "failed"


class Publisher:
    """Writes output signals to the store, one at a time.

    :meth:`publish` never raises on store failures: every problem is
    logged and reported through the returned :class:`PublishOutcome`.
    """

    def __init__(self, store: SignalStore, handles: HandleCache) -> None:
        self._store = store
        self._handles = handles
        self._reported_unresolved: set[str] = set()

    async def publish(self, signal: OutputSignal) -> PublishOutcome:
        _logger.debug("VSS %s", describe_signal(signal))

        handle = self._handles.get(signal.path)
        if handle is None:
            # info once per path, then debug
            if signal.path in self._reported_unresolved:
                _logger.debug("Skipping signal %s (not in remote VSS tree)", signal.path)
            else:
                self._reported_unresolved.add(signal.path)
                _logger.info("Skipping signal %s (not in remote VSS tree)", signal.path)
            return PublishOutcome.UNRESOLVED

        if not signal.qualified_value.is_valid:
            _logger.debug("Skipping invalid signal %s", signal.path)
            return PublishOutcome.INVALID

        try:
            await self._store.publish(handle, signal.qualified_value)
        except StoreError as exc:
            _logger.error("Failed to publish %s (status=%s): %s", signal.path, exc.status_code, exc)
            return PublishOutcome.FAILED
        except Exception:
            _logger.error("Failed to publish %s", signal.path, exc_info=True)
            return PublishOutcome.FAILED

        _logger.debug("Published %s", signal.path)
        return PublishOutcome.PUBLISHED

    async def publish_all(self, signals: list[OutputSignal]) -> list[PublishOutcome]:
        return [await self.publish(signal) for signal in signals]

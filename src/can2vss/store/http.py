"""HTTP signal store backend.

Signals are addressed by their dotted path:

* ``GET  {base}/metadata/{path}`` resolves a path; a 200 response carries
  the server-side ``datatype``.
* ``PUT  {base}/signals/{path}`` publishes a value as JSON.
"""

from __future__ import annotations

import json
import logging
from types import TracebackType
from typing import Any

import aiohttp

from can2vss._constants import DEFAULT_STORE_TIMEOUT
from can2vss.exceptions import ResolveError, StoreError
from can2vss.models import QualifiedValue, ValueType
from can2vss.store.base import SignalHandle, encode_value

_logger = logging.getLogger(__name__)


class HttpSignalStore:
    """aiohttp-backed store client.

    Use as an async context manager. An externally owned
    :class:`aiohttp.ClientSession` may be passed in; it is then left open
    on exit.
    """

    def __init__(
        self,
        base_url: str,
        *,
        timeout: float = DEFAULT_STORE_TIMEOUT,
        http_session: aiohttp.ClientSession | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._timeout = aiohttp.ClientTimeout(total=timeout)
        self._http = http_session
        self._owns_session = http_session is None

    @property
    def base_url(self) -> str:
        return self._base_url

    async def __aenter__(self) -> HttpSignalStore:
        if self._http is None:
            self._http = aiohttp.ClientSession(timeout=self._timeout)
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.close()

    async def close(self) -> None:
        http = self._http
        if http is not None and self._owns_session:
            self._http = None
            await http.close()

    def _session(self) -> aiohttp.ClientSession:
        if self._http is None:
            raise StoreError("HTTP store used outside of its context manager")
        return self._http

    async def resolve(self, path: str) -> SignalHandle:
        url = f"{self._base_url}/metadata/{path}"
        _logger.debug("GET %s", url)
        try:
            async with self._session().get(url, timeout=self._timeout) as resp:
                text = await resp.text()
                if resp.status == 404:
                    raise ResolveError(f"Unknown signal {path}", path=path, status_code=resp.status)
                if resp.status != 200:
                    raise ResolveError(
                        f"HTTP {resp.status} resolving {path}: {text[:200]}",
                        path=path,
                        status_code=resp.status,
                    )
        except StoreError:
            raise
        except (aiohttp.ClientError, TimeoutError) as exc:
            raise ResolveError(f"Resolving {path} failed: {exc}", path=path) from exc

        datatype: ValueType | None = None
        try:
            body: Any = json.loads(text) if text else {}
        except json.JSONDecodeError:
            body = {}
        if isinstance(body, dict) and isinstance(body.get("datatype"), str):
            datatype = ValueType.from_config(body["datatype"])

        return SignalHandle(path=path, target=f"{self._base_url}/signals/{path}", datatype=datatype)

    async def publish(self, handle: SignalHandle, value: QualifiedValue) -> None:
        try:
            async with self._session().put(handle.target, json=encode_value(value), timeout=self._timeout) as resp:
                if resp.status not in (200, 201, 204):
                    text = await resp.text()
                    raise StoreError(
                        f"HTTP {resp.status} publishing {handle.path}: {text[:200]}",
                        path=handle.path,
                        status_code=resp.status,
                    )
        except StoreError:
            raise
        except (aiohttp.ClientError, TimeoutError) as exc:
            raise StoreError(f"Publishing {handle.path} failed: {exc}", path=handle.path) from exc

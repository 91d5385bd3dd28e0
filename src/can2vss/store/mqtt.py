"""MQTT signal store backend.

Each VSS path maps to one topic (``{prefix}/Vehicle/Speed`` for
``Vehicle.Speed``) and every publish carries the JSON-encoded qualified
value. Brokers carry no signal schema, so resolution only checks that the
path is a well-formed dotted VSS path.
"""

from __future__ import annotations

import asyncio
import json
import logging
from types import TracebackType
from typing import Any, cast

import paho.mqtt.client as mqtt

from can2vss._constants import DEFAULT_MQTT_KEEPALIVE, DEFAULT_MQTT_TOPIC_PREFIX
from can2vss.exceptions import ResolveError, StoreError
from can2vss.models import QualifiedValue
from can2vss.store.base import SignalHandle, encode_value, is_vss_path

_logger = logging.getLogger(__name__)


class MqttSignalStore:
    """Threaded paho-mqtt publisher used as a signal store."""

    def __init__(
        self,
        host: str,
        port: int,
        *,
        topic_prefix: str = DEFAULT_MQTT_TOPIC_PREFIX,
        keepalive: int = DEFAULT_MQTT_KEEPALIVE,
        retain: bool = True,
        use_tls: bool = False,
        username: str | None = None,
        password: str | None = None,
        client: mqtt.Client | None = None,
    ) -> None:
        self._host = host
        self._port = port
        self._topic_prefix = topic_prefix.strip("/")
        self._keepalive = keepalive
        self._retain = retain
        self._use_tls = use_tls
        self._username = username
        self._password = password
        self._client = client
        self._running = False

    @property
    def is_running(self) -> bool:
        return self._running

    def topic_for(self, path: str) -> str:
        suffix = path.replace(".", "/")
        return f"{self._topic_prefix}/{suffix}" if self._topic_prefix else suffix

    def _build_client(self) -> mqtt.Client:
        client = mqtt.Client(
            callback_api_version=cast(Any, mqtt).CallbackAPIVersion.VERSION2,
            protocol=mqtt.MQTTv5,
        )
        client.enable_logger(_logger)
        if self._username is not None:
            client.username_pw_set(self._username, self._password)
        if self._use_tls:
            client.tls_set()

        def on_connect(
            _client: mqtt.Client,
            _userdata: Any,
            _flags: Any,
            reason_code: Any,
            _properties: Any,
        ) -> None:
            if reason_code.value != 0:
                _logger.warning("MQTT connect failed: %s", reason_code)
                return
            _logger.debug("MQTT connected successfully reason=%s", reason_code)

        def on_disconnect(
            _client: mqtt.Client,
            _userdata: Any,
            _disconnect_flags: Any,
            reason_code: Any,
            _properties: Any,
        ) -> None:
            if self._running:
                _logger.warning("MQTT disconnected: %s", reason_code)

        client.on_connect = on_connect
        client.on_disconnect = on_disconnect
        return client

    def start(self) -> None:
        """Connect to the broker and start the network loop thread."""
        client = self._client or self._build_client()
        try:
            client.connect(self._host, self._port, keepalive=self._keepalive)
        except (OSError, ValueError) as exc:
            raise StoreError(f"Cannot connect to MQTT broker {self._host}:{self._port}: {exc}") from exc
        client.loop_start()
        self._client = client
        self._running = True
        _logger.debug("MQTT network loop started host=%s port=%s", self._host, self._port)

    def stop(self) -> None:
        """Disconnect and stop the network loop if running."""
        client = self._client
        was_running = self._running
        self._running = False
        if client is None or not was_running:
            return
        try:
            client.disconnect()
        finally:
            client.loop_stop()
            _logger.debug("MQTT network loop stopped")

    async def __aenter__(self) -> MqttSignalStore:
        await asyncio.get_running_loop().run_in_executor(None, self.start)
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await asyncio.get_running_loop().run_in_executor(None, self.stop)

    async def resolve(self, path: str) -> SignalHandle:
        if not is_vss_path(path):
            raise ResolveError(f"{path!r} is not a valid VSS path", path=path)
        return SignalHandle(path=path, target=self.topic_for(path))

    async def publish(self, handle: SignalHandle, value: QualifiedValue) -> None:
        client = self._client
        if client is None or not self._running:
            raise StoreError("MQTT store is not connected", path=handle.path)
        payload = json.dumps({"path": handle.path, **encode_value(value)}, default=str)
        info = client.publish(handle.target, payload, qos=0, retain=self._retain)
        if info.rc != mqtt.MQTT_ERR_SUCCESS:
            raise StoreError(
                f"MQTT publish to {handle.target} failed: {mqtt.error_string(info.rc)}",
                path=handle.path,
                status_code=info.rc,
            )

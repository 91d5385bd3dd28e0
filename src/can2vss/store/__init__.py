"""Remote signal store backends.

The feeder core only depends on :class:`SignalStore`; :func:`open_store`
picks a concrete backend from the store address given on the command line.
"""

from __future__ import annotations

from urllib.parse import urlsplit

from can2vss._constants import DEFAULT_MQTT_PORT
from can2vss.config import FeederConfig
from can2vss.store.base import SignalHandle, SignalStore, encode_value, is_vss_path
from can2vss.store.http import HttpSignalStore
from can2vss.store.mqtt import MqttSignalStore


def open_store(address: str, config: FeederConfig) -> HttpSignalStore | MqttSignalStore:
    """Create (but do not connect) the store backend for *address*.

    ``mqtt://`` / ``mqtts://`` select the MQTT backend, ``http://`` /
    ``https://`` the HTTP backend. A bare ``host:port`` is treated as HTTP.
    """
    value = address.strip()
    if not value:
        raise ValueError("Store address is empty")
    if "://" not in value:
        value = f"http://{value}"

    parts = urlsplit(value)
    scheme = parts.scheme.lower()
    if scheme in ("mqtt", "mqtts"):
        if not parts.hostname:
            raise ValueError(f"MQTT store address {address!r} has no host")
        return MqttSignalStore(
            parts.hostname,
            parts.port or (8883 if scheme == "mqtts" else DEFAULT_MQTT_PORT),
            topic_prefix=config.mqtt_topic_prefix,
            keepalive=config.mqtt_keepalive,
            retain=config.mqtt_retain,
            use_tls=scheme == "mqtts",
            username=parts.username,
            password=parts.password,
        )
    if scheme in ("http", "https"):
        return HttpSignalStore(value, timeout=config.store_timeout)
    raise ValueError(f"Unsupported store address scheme {parts.scheme!r}")


__all__ = [
    "HttpSignalStore",
    "MqttSignalStore",
    "SignalHandle",
    "SignalStore",
    "encode_value",
    "is_vss_path",
    "open_store",
]

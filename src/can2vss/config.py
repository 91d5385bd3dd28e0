"""Feeder runtime configuration."""

from __future__ import annotations

import dataclasses
import os
from typing import Any

from can2vss._constants import (
    DEFAULT_CAN_BUSTYPE,
    DEFAULT_FAST_TICK_MS,
    DEFAULT_MQTT_KEEPALIVE,
    DEFAULT_MQTT_TOPIC_PREFIX,
    DEFAULT_POLL_BATCH_LIMIT,
    DEFAULT_SLOW_TICK_MS,
    DEFAULT_STORE_TIMEOUT,
)


def _env_bool(value: str | None, default: bool) -> bool:
    if value is None:
        return default
    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "y", "on"}:
        return True
    if normalized in {"0", "false", "no", "n", "off"}:
        return False
    return default


@dataclasses.dataclass(frozen=True)
class FeederConfig:
    """Feeder configuration.

    The four CLI arguments (DBC file, mapping file, CAN interface and store
    address) are not part of this object; it only holds the tunables that
    have sensible defaults.

    Parameters
    ----------
    fast_tick_ms : int
        Bus polling period in milliseconds.
    slow_tick_ms : int
        Period of the empty-batch engine pass that drives periodic
        mappings. This is the loop's own granularity and is unrelated to
        any mapping's ``interval_ms``.
    log_level : str
        Root log level name used by the CLI.
    can_bustype : str
        python-can interface type (``socketcan``, ``virtual``, ...).
    poll_batch_limit : int
        Maximum number of CAN frames drained by a single poll.
    store_timeout : float
        Per-request timeout in seconds for the HTTP store backend.
    mqtt_keepalive : int
        MQTT keepalive in seconds.
    mqtt_topic_prefix : str
        Topic prefix for the MQTT store backend.
    mqtt_retain : bool
        Publish MQTT messages with the retain flag.
    """

    fast_tick_ms: int = DEFAULT_FAST_TICK_MS
    slow_tick_ms: int = DEFAULT_SLOW_TICK_MS
    log_level: str = "INFO"
    can_bustype: str = DEFAULT_CAN_BUSTYPE
    poll_batch_limit: int = DEFAULT_POLL_BATCH_LIMIT
    store_timeout: float = DEFAULT_STORE_TIMEOUT
    mqtt_keepalive: int = DEFAULT_MQTT_KEEPALIVE
    mqtt_topic_prefix: str = DEFAULT_MQTT_TOPIC_PREFIX
    mqtt_retain: bool = True

    def __post_init__(self) -> None:
        if self.fast_tick_ms <= 0:
            raise ValueError(f"fast_tick_ms must be positive, got {self.fast_tick_ms}")
        if self.slow_tick_ms <= 0:
            raise ValueError(f"slow_tick_ms must be positive, got {self.slow_tick_ms}")

    @classmethod
    def from_env(cls, **overrides: Any) -> FeederConfig:
        """Create configuration from ``CAN2VSS_*`` environment variables.

        Explicit keyword arguments override environment values.
        """
        env = os.environ
        config_kwargs: dict[str, Any] = {}

        _ENV_INT_MAP = {
            "CAN2VSS_FAST_TICK_MS": "fast_tick_ms",
            "CAN2VSS_SLOW_TICK_MS": "slow_tick_ms",
            "CAN2VSS_POLL_BATCH_LIMIT": "poll_batch_limit",
            "CAN2VSS_MQTT_KEEPALIVE": "mqtt_keepalive",
        }
        for env_key, field_name in _ENV_INT_MAP.items():
            val = env.get(env_key)
            if val is not None and field_name not in overrides:
                config_kwargs[field_name] = int(val)

        _ENV_STR_MAP = {
            "CAN2VSS_LOG_LEVEL": "log_level",
            "CAN2VSS_CAN_BUSTYPE": "can_bustype",
            "CAN2VSS_MQTT_TOPIC_PREFIX": "mqtt_topic_prefix",
        }
        for env_key, field_name in _ENV_STR_MAP.items():
            val = env.get(env_key)
            if val is not None:
                config_kwargs[field_name] = val

        timeout_env = env.get("CAN2VSS_STORE_TIMEOUT")
        if timeout_env is not None and "store_timeout" not in overrides:
            config_kwargs["store_timeout"] = float(timeout_env)

        if "mqtt_retain" not in overrides:
            config_kwargs["mqtt_retain"] = _env_bool(env.get("CAN2VSS_MQTT_RETAIN"), True)

        config_kwargs.update(overrides)

        return cls(**config_kwargs)

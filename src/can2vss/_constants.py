"""Internal constants shared across the package."""

#: Fast tick: how often the bus source is polled.
DEFAULT_FAST_TICK_MS = 10
#: Slow tick: how often the engine is run with an empty batch.
DEFAULT_SLOW_TICK_MS = 50

DEFAULT_CAN_BUSTYPE = "socketcan"
DEFAULT_POLL_BATCH_LIMIT = 1000

DEFAULT_STORE_TIMEOUT = 5.0
DEFAULT_MQTT_PORT = 1883
DEFAULT_MQTT_KEEPALIVE = 60
DEFAULT_MQTT_TOPIC_PREFIX = "vss"

#: Top-level section of the mapping YAML file.
MAPPINGS_SECTION = "mappings"

USAGE = (
    "Usage: {prog} <dbc_file> <mapping_yaml_file> <can_interface> <store_address>\n"
    "Example: {prog} vehicle.dbc mappings.yaml can0 127.0.0.1:55555"
)

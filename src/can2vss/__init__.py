"""can2vss - Feed decoded CAN signals into a VSS signal store."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("can2vss-feeder")
except PackageNotFoundError:
    __version__ = "0+local"
from can2vss.config import FeederConfig
from can2vss.dispatch import DispatchLoop, LoopState, LoopStats, ShutdownToken
from can2vss.engine import SignalProcessor, TransformEngine
from can2vss.exceptions import (
    ConfigError,
    EngineError,
    FeederError,
    ResolveError,
    SourceError,
    StoreError,
)
from can2vss.handles import HandleCache
from can2vss.mapping_table import MappingTable, build_mapping_table, load_mapping_table
from can2vss.models import (
    CodeTransform,
    DirectTransform,
    OutputSignal,
    QualifiedValue,
    SignalMapping,
    SignalQuality,
    SignalSource,
    SignalUpdate,
    UpdateTrigger,
    ValueMapTransform,
    ValueType,
)
from can2vss.publisher import PublishOutcome, Publisher
from can2vss.sources import BusSource, CANSignalSource
from can2vss.store import HttpSignalStore, MqttSignalStore, SignalHandle, SignalStore, open_store

__all__ = [
    "__version__",
    "BusSource",
    "CANSignalSource",
    "CodeTransform",
    "ConfigError",
    "DirectTransform",
    "DispatchLoop",
    "EngineError",
    "FeederConfig",
    "FeederError",
    "HandleCache",
    "HttpSignalStore",
    "LoopState",
    "LoopStats",
    "MappingTable",
    "MqttSignalStore",
    "OutputSignal",
    "PublishOutcome",
    "Publisher",
    "QualifiedValue",
    "ResolveError",
    "ShutdownToken",
    "SignalHandle",
    "SignalMapping",
    "SignalProcessor",
    "SignalQuality",
    "SignalSource",
    "SignalStore",
    "SignalUpdate",
    "SourceError",
    "StoreError",
    "TransformEngine",
    "UpdateTrigger",
    "ValueMapTransform",
    "ValueType",
    "build_mapping_table",
    "load_mapping_table",
    "open_store",
]

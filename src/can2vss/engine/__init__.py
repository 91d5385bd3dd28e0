"""Transform engine contract and the default in-order implementation."""

from can2vss.engine.base import TransformEngine
from can2vss.engine.processor import SignalProcessor

__all__ = ["SignalProcessor", "TransformEngine"]

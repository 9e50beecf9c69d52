"""Pluggable sinks for ecobee-sync.

Import any sink you need directly from this package::

    from ecobee_sync.sinks import ConsoleSink, InfluxSink, MqttSink
"""

from __future__ import annotations

import importlib
from typing import Any

from ecobee_sync.sinks.base import Sink, SinkConfig
from ecobee_sync.sinks.callback import CallbackSink
from ecobee_sync.sinks.console import ConsoleSink

# Lazy-loaded sinks (require optional extras)
#   from ecobee_sync.sinks.influx import InfluxSink
#   from ecobee_sync.sinks.mqtt import MqttSink

__all__ = [
    "CallbackSink",
    "ConsoleSink",
    "Sink",
    "SinkConfig",
]


def __getattr__(name: str) -> Any:
    """Lazy-import sinks that require optional dependencies."""
    _lazy = {
        "InfluxSink": "ecobee_sync.sinks.influx",
        "MqttSink": "ecobee_sync.sinks.mqtt",
    }
    if name in _lazy:
        mod = importlib.import_module(_lazy[name])
        return getattr(mod, name)
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")

"""Sink factory - creates sink instances from configuration dicts.

Used by the config-driven (YAML) mode to instantiate sinks declaratively::

    sinks:
      - type: console
      - type: influx
        url: http://localhost:8086
        bucket: ecobee
        token: my-token
      - type: mqtt
        host: broker.local
        topic_root: ecobee
"""

from __future__ import annotations

import importlib
import logging
from typing import Any

from ecobee_sync.sinks.base import Sink

__all__ = ["available_sinks", "create_sink", "register_sink"]

logger = logging.getLogger("ecobee_sync.sinks.factory")

# Registry of type names -> (module_path, class_name)
_SINK_REGISTRY: dict[str, tuple[str, str]] = {
    "console": ("ecobee_sync.sinks.console", "ConsoleSink"),
    "callback": ("ecobee_sync.sinks.callback", "CallbackSink"),
    "influx": ("ecobee_sync.sinks.influx", "InfluxSink"),
    "mqtt": ("ecobee_sync.sinks.mqtt", "MqttSink"),
}


def create_sink(config: dict[str, Any]) -> Sink:
    """Create a sink instance from a configuration dict.

    The dict must contain a ``"type"`` key matching a registered sink
    name.  All other keys are forwarded as keyword arguments to the
    sink constructor.

    Example::

        sink = create_sink({
            "type": "influx",
            "url": "http://localhost:8086",
            "bucket": "ecobee",
            "token": "secret",
        })

    Returns:
        A fully-constructed :class:`Sink` instance (not yet connected).
    """
    config = dict(config)  # shallow copy
    sink_type = config.pop("type", None)

    if sink_type is None:
        raise ValueError("Sink config must include a 'type' key")

    sink_type = sink_type.lower().strip()

    if sink_type not in _SINK_REGISTRY:
        raise ValueError(f"Unknown sink type '{sink_type}'.  Available: {available_sinks()}")

    module_path, class_name = _SINK_REGISTRY[sink_type]
    module = importlib.import_module(module_path)
    cls = getattr(module, class_name)

    config.setdefault("name", sink_type)
    logger.debug("Creating %s with config keys: %s", class_name, sorted(config))
    return cls(**config)


def register_sink(name: str, module_path: str, class_name: str) -> None:
    """Register a custom sink type for config-driven instantiation.

    Example::

        from ecobee_sync.sinks.factory import register_sink
        register_sink("my_sink", "mypackage.sinks", "MySink")

    Then in YAML::

        sinks:
          - type: my_sink
            custom_param: value
    """
    _SINK_REGISTRY[name.lower().strip()] = (module_path, class_name)


def available_sinks() -> list[str]:
    return sorted(_SINK_REGISTRY)

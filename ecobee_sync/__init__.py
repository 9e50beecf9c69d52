"""ecobee-sync - poll an ecobee thermostat and publish every new sample
(runtime, remote sensors, weather, air quality) to pluggable sinks such as
InfluxDB and MQTT.

Quick start::

    from ecobee_sync import CredentialProvider, Synchronizer
    from ecobee_sync.sinks import ConsoleSink

    provider = CredentialProvider("API_KEY", "ecobee-cred-cache")
    client = await provider.authenticated_client()
    sync = Synchronizer(client, "511234567890")
    sync.add_sink(ConsoleSink())
    await sync.run_async()
"""

from __future__ import annotations

from ecobee_sync.auth import CredentialProvider
from ecobee_sync.client import EcobeeClient
from ecobee_sync.models import Snapshot, StreamType, SyncRecord
from ecobee_sync.normalizer import Normalizer
from ecobee_sync.publisher import DeliveryPolicy, SinkPublisher
from ecobee_sync.retry import RetryPolicy
from ecobee_sync.sync import CycleReport, Synchronizer
from ecobee_sync.units import TemperatureUnit
from ecobee_sync.watermark import WatermarkTracker

__all__ = [
    "CredentialProvider",
    "CycleReport",
    "DeliveryPolicy",
    "EcobeeClient",
    "Normalizer",
    "RetryPolicy",
    "SinkPublisher",
    "Snapshot",
    "StreamType",
    "SyncRecord",
    "Synchronizer",
    "TemperatureUnit",
    "WatermarkTracker",
]

__version__ = "0.1.0"

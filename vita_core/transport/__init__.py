# vita_core/transport/__init__.py
import os
from vita_core.transport.transport_base import (
    BaseTransport,
    ComputationNetworkClient,
    TransportError,
    TransportPermanentError,
    TransportTransientError,
)
from vita_core.transport.transport_local import LocalEventBus, LocalMXE
from vita_core.transport.transport_http import HTTPComputationNetwork
from vita_core.transport.transport_kafka import KafkaEventPublisher


def network_factory() -> ComputationNetworkClient:
    """VITA_MXE_TRANSPORT: "local" (default) or "http"."""
    mode = os.getenv("VITA_MXE_TRANSPORT", "local").lower()

    if mode == "http":
        return HTTPComputationNetwork(
            os.getenv("VITA_MXE_URL", "http://localhost:8080"),
            poll_interval=float(os.getenv("VITA_MXE_POLL_INTERVAL", "1.0")),
        )

    return LocalMXE()


def event_publisher_factory() -> BaseTransport:
    """VITA_EVENT_TRANSPORT: "local" (default) or "kafka"."""
    mode = os.getenv("VITA_EVENT_TRANSPORT", "local").lower()

    if mode == "kafka":
        return KafkaEventPublisher(
            brokers=os.getenv("KAFKA_BROKERS", "localhost:9092"),
            enabled=os.getenv("KAFKA_ENABLED", "1") == "1",
        )

    return LocalEventBus()


__all__ = [
    "BaseTransport",
    "ComputationNetworkClient",
    "TransportError",
    "TransportPermanentError",
    "TransportTransientError",
    "LocalEventBus",
    "LocalMXE",
    "HTTPComputationNetwork",
    "KafkaEventPublisher",
    "network_factory",
    "event_publisher_factory",
]

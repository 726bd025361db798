# vita_core/transport/transport_kafka.py
from typing import Any, Dict, Optional

from vita_core.logger import get_logger
from vita_core.transport.transport_base import BaseTransport

log = get_logger("Vita.Transport.Kafka")


class KafkaEventPublisher(BaseTransport):
    """
    Privacy event egress to Kafka.

    Events are keyed by position id so one position's events stay ordered
    within a partition; the event type travels as a header for consumers
    that filter without decoding. Payloads carry identifiers and hashes,
    never plaintext amounts.
    """

    name = "kafka"

    def __init__(self, brokers="localhost:9092", enabled=True, client_id="vita-privacy", producer=None):
        self.brokers = brokers
        self.enabled = enabled
        self.client_id = client_id
        self._producer = producer
        self.published = 0

        if not self.enabled or self._producer is not None:
            if not self.enabled:
                log.warning("[KAFKA] event publishing disabled")
            return

        try:
            from kafka import KafkaProducer

            self._producer = KafkaProducer(
                bootstrap_servers=self.brokers,
                client_id=self.client_id,
                linger_ms=5,
                acks="all",
            )
            log.info({"event": "kafka_connected", "brokers": self.brokers, "client_id": self.client_id})

        except Exception:
            log.exception("[KAFKA] producer init failed, events will be skipped")
            self.enabled = False

    @staticmethod
    def _headers(payload: Any, extra: Optional[Dict[str, str]]) -> list:
        headers = dict(extra or {})
        if isinstance(payload, dict) and payload.get("type"):
            headers.setdefault("event-type", str(payload["type"]))
        return [(k, str(v).encode("utf-8")) for k, v in headers.items()]

    def publish(self, topic: str, payload, headers=None, key: Optional[str] = None) -> bool:
        if not self.enabled:
            log.info(f"[KAFKA-SKIP] {topic}")
            return False

        if key is None and isinstance(payload, dict):
            key = payload.get("position_id")
        data = self.to_bytes(payload)

        try:
            self._producer.send(
                topic,
                value=data,
                key=key.encode("utf-8") if key else None,
                headers=self._headers(payload, headers),
            )
            self._producer.flush(timeout=1.0)
        except Exception:
            # event egress is best effort; the ledger is the record
            log.exception({"event": "privacy_event_publish_failed", "topic": topic, "key": key})
            return False

        self.published += 1
        log.info({"event": "privacy_event_published", "topic": topic, "key": key, "bytes": len(data)})
        return True

    def close(self) -> None:
        if self._producer is not None:
            self._producer.close()

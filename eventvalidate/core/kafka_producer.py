# eventvalidate/core/kafka_producer.py

import json
from kafka import KafkaProducer
from eventvalidate.core.config import settings


def build_producer() -> KafkaProducer:
    """
    Producer for domain events. Messages are keyed by subject id so one
    attendee's events stay ordered within a partition.
    """
    return KafkaProducer(
        bootstrap_servers=settings.KAFKA_BOOTSTRAP_SERVERS,
        value_serializer=lambda v: json.dumps(v, default=str).encode("utf-8"),
        key_serializer=lambda k: k.encode("utf-8") if k else None,
        # Fail fast instead of hanging a relay run on a dead broker
        request_timeout_ms=5000,
        max_block_ms=5000,
    )

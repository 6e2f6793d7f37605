"""
Outbound registry events over Redis pub/sub.

Messages are JSON envelopes so subscribers (dashboards, distributor systems)
can dispatch on ``event_type`` without knowing our dataclasses:

    {"event_type": "DrugStatusChanged", "payload": {...}}
"""

import json
import logging
from dataclasses import asdict
from datetime import date, datetime

import redis

from config import get_redis_host_and_port, get_store_timeout_seconds
from shared.domain.commands import Event

logger = logging.getLogger(__name__)

r = redis.Redis(
    **get_redis_host_and_port(),
    socket_timeout=get_store_timeout_seconds(),
    socket_connect_timeout=get_store_timeout_seconds(),
)


def _json_default(value):
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    raise TypeError(f"{type(value).__name__} is not JSON serializable")


def to_message(event: Event) -> str:
    return json.dumps(
        {"event_type": type(event).__name__, "payload": asdict(event)},
        default=_json_default,
    )


def publish(channel: str, event: Event) -> int:
    """Publish ``event`` on ``channel``; returns how many subscribers received it."""
    receivers = r.publish(channel, to_message(event))
    logger.info(f"Published {type(event).__name__} on {channel} to {receivers} subscriber(s)")
    return receivers

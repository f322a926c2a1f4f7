"""
Event sink implementations for ApplicationTransitioned events.

The engine bounds every publish with a timeout and never rolls back a
committed transition because of a sink failure, so sinks raise freely and
leave the logging of failures to the engine.
"""

import redis.asyncio as redis

from admissions.core.config import get_settings
from admissions.core.logging import get_logger
from admissions.schemas.transition_event import ApplicationTransitioned
from admissions.services.interfaces.event_sink import EventSink

logger = get_logger(__name__)


class RedisStreamEventSink(EventSink):
    """
    Appends events to a Redis stream.

    Stream entries carry the event as a JSON payload plus the dedup key
    consumers use to discard redeliveries. The stream is capped
    approximately at EVENT_STREAM_MAXLEN entries.
    """

    def __init__(self, client: redis.Redis, stream_key: str | None = None, maxlen: int | None = None):
        settings = get_settings()
        self.client = client
        self.stream_key = stream_key or settings.EVENT_STREAM_KEY
        self.maxlen = maxlen or settings.EVENT_STREAM_MAXLEN

    async def publish(self, event: ApplicationTransitioned) -> None:
        entry_id = await self.client.xadd(
            self.stream_key,
            {
                "dedup_key": event.dedup_key,
                "payload": event.model_dump_json(),
            },
            maxlen=self.maxlen,
            approximate=True,
        )
        logger.debug("event_published", stream=self.stream_key, entry_id=entry_id, key=event.dedup_key)


class LoggingEventSink(EventSink):
    """Writes each event as a structured log line. Used when Redis is disabled."""

    async def publish(self, event: ApplicationTransitioned) -> None:
        logger.info(
            "application_transition_event",
            application_id=event.application_id,
            institution_id=event.institution_id,
            from_status=event.from_status.value,
            to_status=event.to_status.value,
            auto_rejected=event.auto_rejected,
            version=event.version,
        )

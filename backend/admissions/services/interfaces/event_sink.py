"""
Event sink interface for transition events.
"""

from abc import ABC, abstractmethod

from admissions.schemas.transition_event import ApplicationTransitioned


class EventSink(ABC):
    """
    Receives one ApplicationTransitioned per mutated application.

    Implementations:
    - RedisStreamEventSink: XADD onto a Redis stream for downstream consumers
    - LoggingEventSink: structured log line per event (Redis disabled)
    """

    @abstractmethod
    async def publish(self, event: ApplicationTransitioned) -> None:
        pass

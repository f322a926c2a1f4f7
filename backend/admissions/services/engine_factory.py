"""
Decision engine factory.
Wires the configured store and event sink into a process-wide engine.
"""

from typing import Optional

from admissions.core.logging import get_logger
from admissions.db.session import AsyncSessionLocal
from admissions.infrastructure.redis_client import get_redis
from admissions.services.decision_engine import AdmissionDecisionEngine
from admissions.services.event_sink import LoggingEventSink, RedisStreamEventSink
from admissions.services.interfaces.event_sink import EventSink
from admissions.services.sql_store import SqlApplicationStore

logger = get_logger(__name__)


async def build_event_sink() -> EventSink:
    """
    Redis stream when Redis is enabled and reachable, log lines otherwise.
    """
    client = await get_redis()
    if client is not None:
        return RedisStreamEventSink(client)
    logger.warning("event_sink_fallback", sink="logging", message="Redis unavailable")
    return LoggingEventSink()


# Singleton instance
_engine: Optional[AdmissionDecisionEngine] = None


async def get_decision_engine() -> AdmissionDecisionEngine:
    """Get decision engine singleton."""
    global _engine
    if _engine is None:
        store = SqlApplicationStore(AsyncSessionLocal)
        _engine = AdmissionDecisionEngine(store, await build_event_sink())
    return _engine


def reset_decision_engine() -> None:
    global _engine
    _engine = None

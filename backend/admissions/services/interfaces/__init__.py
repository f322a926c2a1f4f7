"""
Service interfaces for dependency inversion.
Allows swapping implementations without changing business logic.
"""

from .event_sink import EventSink
from .store import ApplicationStore, VersionedWrite

__all__ = ['ApplicationStore', 'EventSink', 'VersionedWrite']

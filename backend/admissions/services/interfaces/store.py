"""
Application store interface.
Keeps the decision engine independent of the persistence backend.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Optional

from admissions.schemas.application import ApplicationRecord, StatusCounts


@dataclass(frozen=True)
class VersionedWrite:
    """
    One member of a conditional multi-write.

    `fields` are applied and the version incremented only if the stored
    version still equals `expected_version`. With `fields=None` the entry is a
    pure precondition: the record must be unchanged, but is not written.
    """

    application_id: str
    expected_version: int
    fields: Optional[dict[str, Any]] = field(default=None)

    @property
    def is_check_only(self) -> bool:
        return self.fields is None


class ApplicationStore(ABC):
    """
    Interface for application storage.

    Implementations:
    - SqlApplicationStore: SQLAlchemy async, versioned UPDATEs in one transaction
    - InMemoryApplicationStore: dict + asyncio.Lock, for development and tests
    """

    @abstractmethod
    async def get(self, application_id: str) -> Optional[ApplicationRecord]:
        """Point read. Returns None for an unknown id."""
        pass

    @abstractmethod
    async def query_by_student_and_institution(
        self, student_id: str, institution_id: str
    ) -> list[ApplicationRecord]:
        """Every application in the competing set, including terminal ones."""
        pass

    @abstractmethod
    async def conditional_multi_write(self, writes: list[VersionedWrite]) -> bool:
        """
        Apply all writes atomically.

        Returns:
            True if every precondition held and all writes committed
            False if any version had changed (nothing was written)

        Raises:
            StoreUnavailableError on transient I/O failure
        """
        pass

    @abstractmethod
    async def add(self, application: ApplicationRecord) -> ApplicationRecord:
        """Insert a new application (used by the submission collaborator)."""
        pass

    @abstractmethod
    async def status_counts(self, institution_id: str) -> StatusCounts:
        """Per-status application counts, aggregated at read time."""
        pass

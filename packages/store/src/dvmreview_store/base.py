"""Abstract store interface.

Any storage backend implements this interface. The CLI depends on BaseStore,
not on a concrete backend, so backends are swappable without touching CLI
code.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from dvmreview_store.models import JobRecord, ResponseRecord


class BaseStore(ABC):
    """Pluggable persistence layer for submitted jobs and their responses."""

    @abstractmethod
    def save_job(self, record: JobRecord) -> None:
        """Persist a published job request."""

    @abstractmethod
    def save_response(self, record: ResponseRecord) -> None:
        """Persist a response, replacing any earlier copy with the same event id.

        Saving again is how payment state changes are recorded.
        """

    @abstractmethod
    def list_jobs(self, limit: int | None = None) -> list[JobRecord]:
        """Return stored jobs, newest first. Empty list if there are none."""

    @abstractmethod
    def list_responses(self, job_id: str) -> list[ResponseRecord]:
        """Return responses to ``job_id``, newest first. Empty list if there are none."""

    def close(self) -> None:
        """Release any resources held by the store (connections, file handles).

        Default is a no-op so callers can always call close() safely.
        """

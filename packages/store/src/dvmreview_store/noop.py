"""No-op store, the default when no store is configured.

Jobs are published and responses shown but nothing is kept. Using a NoOpStore
rather than None lets the CLI always call store.save_job() without
conditional checks.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from dvmreview_store.base import BaseStore

if TYPE_CHECKING:
    from dvmreview_store.models import JobRecord, ResponseRecord


class NoOpStore(BaseStore):
    """Silently discards all records."""

    def save_job(self, record: JobRecord) -> None:
        pass

    def save_response(self, record: ResponseRecord) -> None:
        pass

    def list_jobs(self, limit: int | None = None) -> list[JobRecord]:
        return []

    def list_responses(self, job_id: str) -> list[ResponseRecord]:
        return []

"""Report repository abstractions.

A finalized audit is stored as one record holding the report document, the
audited URL and the primary screenshot URL.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ReportRecord(BaseModel):
    """Persisted audit report."""

    id: str
    url: str
    report_data: Dict[str, Any]
    screenshot_url: Optional[str] = None
    created_at: datetime = Field(default_factory=_utcnow)


class ReportRepository(ABC):
    """Abstract base class for report repositories."""

    @abstractmethod
    async def insert(self, record: ReportRecord) -> None:
        """Insert a new report record.

        Raises:
            ValueError: If a record with the same ID already exists
        """
        pass

    @abstractmethod
    async def get(self, report_id: str) -> Optional[ReportRecord]:
        """Get a report by ID."""
        pass

    @abstractmethod
    async def delete(self, report_id: str) -> bool:
        """Delete a report. Returns True if it existed."""
        pass


class InMemoryReportRepository(ReportRepository):
    """In-memory implementation for development and testing."""

    def __init__(self):
        self._records: Dict[str, ReportRecord] = {}
        self._lock = asyncio.Lock()

    async def insert(self, record: ReportRecord) -> None:
        async with self._lock:
            if record.id in self._records:
                raise ValueError(f"Report {record.id} already exists")
            self._records[record.id] = record.model_copy(deep=True)
            logger.debug(f"Inserted report {record.id}")

    async def get(self, report_id: str) -> Optional[ReportRecord]:
        async with self._lock:
            record = self._records.get(report_id)
            return record.model_copy(deep=True) if record else None

    async def delete(self, report_id: str) -> bool:
        async with self._lock:
            return self._records.pop(report_id, None) is not None

    def __len__(self) -> int:
        return len(self._records)


"""Finalization of completed audits into durable storage.

Finalizing is all-or-nothing: screenshots are uploaded first, then one report
record is inserted. If any step fails the already-uploaded screenshots are
removed and nothing is recorded.
"""

import asyncio
import logging
import uuid
from typing import Any, Dict, List, Optional

from .factory import StorageConfig, create_artifact_store, create_report_repository
from .repositories import ReportRecord, ReportRepository
from .storage import ArtifactStore
from ..audit.errors import AuditNotFoundError, PersistenceError
from ..audit.models.capture import Screenshot

logger = logging.getLogger(__name__)

SCREENSHOT_CONTENT_TYPE = "image/jpeg"


def screenshot_path(audit_id: str, index: int, is_mobile: bool) -> str:
    """Storage path for the ``index``-th screenshot of an audit."""
    device = "mobile" if is_mobile else "desktop"
    return f"public/{audit_id}/{index}-{device}.jpeg"


def primary_screenshot_url(entries: List[Dict[str, Any]]) -> Optional[str]:
    """URL of the first desktop screenshot, falling back to any screenshot."""
    for entry in entries:
        if not entry.get("isMobile") and entry.get("url"):
            return entry["url"]
    for entry in entries:
        if entry.get("url"):
            return entry["url"]
    return None


class FinalizeService:
    """Persists completed reports and serves them back by ID."""

    def __init__(self, repository: ReportRepository, artifact_store: ArtifactStore):
        self.repository = repository
        self.artifact_store = artifact_store

    @classmethod
    def from_config(cls, config: Optional[StorageConfig] = None) -> "FinalizeService":
        config = config or StorageConfig.from_settings()
        return cls(create_report_repository(config), create_artifact_store(config))

    async def finalize(
        self,
        report: Dict[str, Any],
        screenshots: List[Screenshot],
        url: str
    ) -> Dict[str, Any]:
        """Persist a report and its screenshots.

        Args:
            report: Serialized report document
            screenshots: Screenshots captured or uploaded during acquisition
            url: The audited URL (or a label for uploads)

        Returns:
            Dict with ``auditId`` and ``screenshotUrl``

        Raises:
            PersistenceError: If any upload or the insert fails
        """
        audit_id = str(uuid.uuid4())
        uploaded: List[str] = []
        logger.info(f"Finalizing audit {audit_id} for {url} with {len(screenshots)} screenshots")

        try:
            entries: List[Dict[str, Any]] = []
            for index, shot in enumerate(screenshots):
                durable_url = shot.url
                if shot.data:
                    path = screenshot_path(audit_id, index, shot.is_mobile)
                    await self.artifact_store.put(
                        shot.image_bytes(),
                        path,
                        content_type=SCREENSHOT_CONTENT_TYPE,
                        metadata={"audit_id": audit_id, "page": shot.path},
                    )
                    uploaded.append(path)
                    durable_url = await self.artifact_store.get_url(path)
                entries.append({"path": shot.path, "isMobile": shot.is_mobile, "url": durable_url})

            primary_url = primary_screenshot_url(entries)
            document = {**report, "screenshots": entries}

            await self.repository.insert(ReportRecord(
                id=audit_id,
                url=url,
                report_data=document,
                screenshot_url=primary_url,
            ))
        except asyncio.CancelledError:
            await self._discard(uploaded)
            raise
        except Exception as e:
            logger.error(f"Finalization of audit {audit_id} failed: {e}")
            await self._discard(uploaded)
            raise PersistenceError(f"Failed to save audit: {e}", audit_id=audit_id) from e

        logger.info(f"Audit {audit_id} saved")
        return {"auditId": audit_id, "screenshotUrl": primary_url}

    async def _discard(self, paths: List[str]) -> None:
        for path in paths:
            try:
                await self.artifact_store.delete(path)
            except Exception as e:
                logger.warning(f"Failed to remove uploaded screenshot {path}: {e}")

    async def fetch(self, audit_id: str) -> Dict[str, Any]:
        """Load a finalized audit.

        Returns:
            Dict with ``report``, ``url`` and ``screenshotUrl``

        Raises:
            AuditNotFoundError: If no audit has this ID
        """
        record = await self.repository.get(audit_id)
        if record is None:
            raise AuditNotFoundError(audit_id)
        return {
            "report": record.report_data,
            "url": record.url,
            "screenshotUrl": record.screenshot_url,
        }

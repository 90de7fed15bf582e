"""Storage factory for finalized audits.

Creates the report repository and artifact store from configuration, with
environment variables taking precedence over the YAML settings.
"""

import logging
import os
from enum import Enum
from typing import Any, Dict, Optional

from .repositories import InMemoryReportRepository, ReportRepository
from .storage import ArtifactStore, LocalArtifactStore, S3ArtifactStore
from ..config import StorageSettings, get_settings

logger = logging.getLogger(__name__)


class StorageBackend(str, Enum):
    """Supported report repository backends."""
    MEMORY = "memory"
    DATABASE = "database"


class ArtifactBackend(str, Enum):
    """Supported artifact store backends."""
    LOCAL = "local"
    S3 = "s3"


class StorageConfig:
    """Configuration for repository and artifact store creation."""

    def __init__(
        self,
        backend: StorageBackend = StorageBackend.MEMORY,
        artifact_backend: ArtifactBackend = ArtifactBackend.LOCAL,
        **options: Any
    ):
        """Initialize storage configuration.

        Args:
            backend: Report repository backend
            artifact_backend: Screenshot storage backend
            **options: Backend-specific options (database_url, artifacts_path,
                public_base_url, bucket, s3_prefix, s3_region, s3_endpoint_url)
        """
        self.backend = backend
        self.artifact_backend = artifact_backend
        self.options: Dict[str, Any] = options

    @classmethod
    def from_settings(cls, settings: Optional[StorageSettings] = None) -> "StorageConfig":
        """Create configuration from settings, overridden by environment variables.

        Environment variables:
        - SITE_AUDITOR_STORAGE_BACKEND: Repository backend (memory, database)
        - SITE_AUDITOR_DATABASE_URL: Database URL (for database backend)
        - SITE_AUDITOR_ARTIFACTS_PATH: Local screenshot directory
        - SITE_AUDITOR_PUBLIC_BASE_URL: Public URL prefix for screenshots
        """
        settings = settings or get_settings().storage

        backend_str = os.getenv("SITE_AUDITOR_STORAGE_BACKEND", settings.backend).lower()
        try:
            backend = StorageBackend(backend_str)
        except ValueError:
            logger.warning(f"Invalid storage backend '{backend_str}', defaulting to memory")
            backend = StorageBackend.MEMORY

        return cls(
            backend=backend,
            artifact_backend=ArtifactBackend(settings.artifact_backend),
            database_url=os.getenv("SITE_AUDITOR_DATABASE_URL", settings.database_url),
            artifacts_path=os.getenv("SITE_AUDITOR_ARTIFACTS_PATH", settings.artifacts_path),
            public_base_url=os.getenv("SITE_AUDITOR_PUBLIC_BASE_URL", settings.public_base_url),
            bucket=settings.bucket,
            s3_prefix=settings.s3_prefix,
            s3_region=settings.s3_region,
            s3_endpoint_url=settings.s3_endpoint_url,
        )

    @classmethod
    def for_testing(cls, artifacts_path: str) -> "StorageConfig":
        return cls(backend=StorageBackend.MEMORY, artifacts_path=artifacts_path)


def create_report_repository(config: StorageConfig) -> ReportRepository:
    """Create the report repository for a configuration."""
    if config.backend == StorageBackend.DATABASE:
        # Imported lazily so the memory backend never touches SQLAlchemy engines.
        from .database_repositories import DatabaseReportRepository
        database_url = config.options.get("database_url", "sqlite:///./site_auditor.db")
        logger.info(f"Creating database report repository: {database_url}")
        return DatabaseReportRepository(database_url)

    logger.info("Creating in-memory report repository")
    return InMemoryReportRepository()


def create_artifact_store(config: StorageConfig) -> ArtifactStore:
    """Create the artifact store for a configuration."""
    options = config.options
    if config.artifact_backend == ArtifactBackend.S3:
        logger.info(f"Creating S3 artifact store for bucket {options.get('bucket')}")
        return S3ArtifactStore(
            bucket=options.get("bucket", "screenshots"),
            prefix=options.get("s3_prefix", ""),
            region=options.get("s3_region", "us-east-1"),
            endpoint_url=options.get("s3_endpoint_url"),
            public_base_url=options.get("public_base_url"),
        )

    artifacts_path = options.get("artifacts_path", "./artifacts")
    logger.info(f"Creating local artifact store at {artifacts_path}")
    return LocalArtifactStore(artifacts_path, public_base_url=options.get("public_base_url"))

"""Durable storage for finalized audits: screenshots and report records."""

from .repositories import InMemoryReportRepository, ReportRecord, ReportRepository
from .storage import ArtifactRef, ArtifactStore, LocalArtifactStore, S3ArtifactStore
from .factory import (
    ArtifactBackend,
    StorageBackend,
    StorageConfig,
    create_artifact_store,
    create_report_repository,
)
from .service import FinalizeService, primary_screenshot_url, screenshot_path

__all__ = [
    'InMemoryReportRepository',
    'ReportRecord',
    'ReportRepository',
    'ArtifactRef',
    'ArtifactStore',
    'LocalArtifactStore',
    'S3ArtifactStore',
    'ArtifactBackend',
    'StorageBackend',
    'StorageConfig',
    'create_artifact_store',
    'create_report_repository',
    'FinalizeService',
    'primary_screenshot_url',
    'screenshot_path',
]

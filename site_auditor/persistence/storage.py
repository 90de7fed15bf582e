"""Screenshot artifact storage for finalized audits.

Stores captured screenshots under a public path and resolves them to URLs
that can be embedded in the persisted report. Two backends are provided:
the local filesystem and S3-compatible object storage.
"""

import asyncio
import hashlib
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional

try:
    import boto3
    from botocore.exceptions import BotoCoreError, ClientError
    HAS_BOTO3 = True
except ImportError:
    HAS_BOTO3 = False

logger = logging.getLogger(__name__)


@dataclass
class ArtifactRef:
    """Reference to a stored artifact."""
    path: str
    checksum: str
    size_bytes: int
    content_type: Optional[str] = None
    metadata: Optional[Dict[str, Any]] = None


class ArtifactStore(ABC):
    """Abstract base class for artifact storage backends."""

    @abstractmethod
    async def put(
        self,
        content: bytes,
        path: str,
        content_type: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None
    ) -> ArtifactRef:
        """Store an artifact.

        Args:
            content: Raw bytes to store
            path: Storage path relative to the backend root
            content_type: MIME type of the content
            metadata: Additional metadata to store with the artifact

        Returns:
            Reference to the stored artifact
        """
        pass

    @abstractmethod
    async def get_url(self, path: str) -> str:
        """Get a URL for a stored artifact."""
        pass

    @abstractmethod
    async def delete(self, path: str) -> bool:
        """Delete an artifact. Returns True if something was deleted."""
        pass

    @abstractmethod
    async def exists(self, path: str) -> bool:
        pass

    def _calculate_checksum(self, content: bytes) -> str:
        return hashlib.sha256(content).hexdigest()


class LocalArtifactStore(ArtifactStore):
    """Local filesystem artifact storage backend."""

    def __init__(self, base_path: str = "./artifacts", public_base_url: Optional[str] = None):
        """Initialize local storage.

        Args:
            base_path: Base directory for artifact storage
            public_base_url: URL prefix that serves ``base_path``; file URLs
                are returned when unset
        """
        self.base_path = Path(base_path)
        self.base_path.mkdir(parents=True, exist_ok=True)
        self.public_base_url = public_base_url.rstrip('/') if public_base_url else None

    def _file_path(self, path: str) -> Path:
        return self.base_path / path.lstrip('/')

    async def put(
        self,
        content: bytes,
        path: str,
        content_type: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None
    ) -> ArtifactRef:
        file_path = self._file_path(path)
        file_path.parent.mkdir(parents=True, exist_ok=True)

        with open(file_path, 'wb') as f:
            f.write(content)

        logger.debug(f"Stored artifact {path} ({len(content)} bytes)")
        return ArtifactRef(
            path=path,
            checksum=self._calculate_checksum(content),
            size_bytes=len(content),
            content_type=content_type,
            metadata=metadata
        )

    async def get_url(self, path: str) -> str:
        file_path = self._file_path(path)
        if not file_path.exists():
            raise FileNotFoundError(f"Artifact not found: {path}")

        if self.public_base_url:
            return f"{self.public_base_url}/{path.lstrip('/')}"
        return file_path.absolute().as_uri()

    async def delete(self, path: str) -> bool:
        file_path = self._file_path(path)
        if file_path.exists():
            file_path.unlink()
            return True
        return False

    async def exists(self, path: str) -> bool:
        return self._file_path(path).exists()


class S3ArtifactStore(ArtifactStore):
    """S3-compatible object storage backend.

    boto3 calls are blocking, so they run in the default executor.
    """

    def __init__(
        self,
        bucket: str,
        prefix: str = "",
        region: str = "us-east-1",
        endpoint_url: Optional[str] = None,
        public_base_url: Optional[str] = None
    ):
        """Initialize S3 storage.

        Args:
            bucket: Bucket name
            prefix: Key prefix for all artifacts
            region: AWS region
            endpoint_url: Custom endpoint URL for S3-compatible services
            public_base_url: Public URL prefix of the bucket; objects are
                assumed to be publicly readable under it
        """
        if not HAS_BOTO3:
            raise ImportError("boto3 is required for the S3 storage backend")

        self.bucket = bucket
        self.prefix = prefix.rstrip('/') + '/' if prefix else ''
        self.public_base_url = public_base_url.rstrip('/') if public_base_url else None

        client_args = {'region_name': region}
        if endpoint_url:
            client_args['endpoint_url'] = endpoint_url
        self._client = boto3.client('s3', **client_args)

    def _get_key(self, path: str) -> str:
        return self.prefix + path.lstrip('/')

    async def _call(self, method: str, **kwargs) -> Any:
        loop = asyncio.get_running_loop()
        operation = getattr(self._client, method)
        return await loop.run_in_executor(None, lambda: operation(**kwargs))

    async def put(
        self,
        content: bytes,
        path: str,
        content_type: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None
    ) -> ArtifactRef:
        checksum = self._calculate_checksum(content)
        s3_metadata = {'checksum-sha256': checksum}
        for key, value in (metadata or {}).items():
            # S3 metadata values must be strings
            s3_metadata[f'custom-{key}'] = str(value)

        put_args = {
            'Bucket': self.bucket,
            'Key': self._get_key(path),
            'Body': content,
            'Metadata': s3_metadata,
        }
        if content_type:
            put_args['ContentType'] = content_type

        try:
            await self._call('put_object', **put_args)
        except (BotoCoreError, ClientError) as e:
            raise RuntimeError(f"Failed to upload to S3: {e}") from e

        return ArtifactRef(
            path=path,
            checksum=checksum,
            size_bytes=len(content),
            content_type=content_type,
            metadata=metadata
        )

    async def get_url(self, path: str) -> str:
        key = self._get_key(path)
        if self.public_base_url:
            return f"{self.public_base_url}/{key}"
        return await self._call(
            'generate_presigned_url',
            ClientMethod='get_object',
            Params={'Bucket': self.bucket, 'Key': key},
            ExpiresIn=7 * 24 * 3600
        )

    async def delete(self, path: str) -> bool:
        try:
            await self._call('delete_object', Bucket=self.bucket, Key=self._get_key(path))
            return True
        except (BotoCoreError, ClientError) as e:
            logger.warning(f"Failed to delete S3 object {path}: {e}")
            return False

    async def exists(self, path: str) -> bool:
        try:
            await self._call('head_object', Bucket=self.bucket, Key=self._get_key(path))
            return True
        except ClientError:
            return False

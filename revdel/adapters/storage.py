"""Storage adapters for file version bytes.

Every adapter has two zones: ``public`` (served to readers) and ``deleted``
(restricted copies of hidden versions, addressed by storage key).
"""

import hashlib
import logging
import shutil
from abc import ABC, abstractmethod
from collections.abc import Sequence
from pathlib import Path

import boto3
from botocore.config import Config as BotoConfig
from botocore.exceptions import BotoCoreError, ClientError

from ..config import get_settings
from ..files import ZONE_DELETED, ZONE_PUBLIC, deleted_rel
from ..migration import DeleteOp, MigrationPhase, StageOp
from ..status import OperationStatus

logger = logging.getLogger(__name__)


class StorageAdapter(ABC):
    """Abstract base class for storage adapters."""

    @abstractmethod
    def store_batch(
        self, ops: Sequence[StageOp], overwrite_same: bool = True
    ) -> OperationStatus:
        """Copy restricted-zone bytes into the public zone.

        With ``overwrite_same`` an existing destination holding identical
        content counts as success; differing content is always a failure.
        """
        pass

    @abstractmethod
    def delete_batch(self, ops: Sequence[DeleteOp]) -> OperationStatus:
        """Move public-zone bytes into the restricted zone."""
        pass

    @abstractmethod
    def cleanup_deleted_batch(self, keys: Sequence[str]) -> OperationStatus:
        """Erase restricted-zone copies by storage key."""
        pass

    @abstractmethod
    def file_exists(self, zone: str, path: str) -> bool:
        """Check if a file exists at ``path`` in ``zone``."""
        pass


class LocalStorageAdapter(StorageAdapter):
    """Storage adapter for the local filesystem (development, tests)."""

    def __init__(self, base_path: str | Path):
        self.base_path = Path(base_path)
        self.zones = {
            ZONE_PUBLIC: self.base_path / ZONE_PUBLIC,
            ZONE_DELETED: self.base_path / ZONE_DELETED,
        }
        for root in self.zones.values():
            root.mkdir(parents=True, exist_ok=True)

    def path_for(self, zone: str, path: str) -> Path:
        return self.zones[zone] / path

    def file_exists(self, zone: str, path: str) -> bool:
        full_path = self.path_for(zone, path)
        return full_path.exists() and full_path.is_file()

    @staticmethod
    def _sha1(path: Path) -> str:
        return hashlib.sha1(path.read_bytes()).hexdigest()

    def store_batch(
        self, ops: Sequence[StageOp], overwrite_same: bool = True
    ) -> OperationStatus:
        status = OperationStatus()
        for op in ops:
            src = self.path_for(ZONE_DELETED, op.src)
            dst = self.path_for(ZONE_PUBLIC, op.dst)
            try:
                if not src.is_file():
                    status.fail(MigrationPhase.STAGE.value, op.src, "source missing")
                    continue
                if dst.exists():
                    if not overwrite_same or self._sha1(src) != self._sha1(dst):
                        status.fail(
                            MigrationPhase.STAGE.value, op.dst, "destination exists"
                        )
                        continue
                else:
                    dst.parent.mkdir(parents=True, exist_ok=True)
                    shutil.copy2(src, dst)
            except OSError as e:
                status.fail(MigrationPhase.STAGE.value, op.dst, str(e))
                continue
            status.success()
            logger.info("file.staged", extra={"src": op.src, "dst": op.dst})
        return status

    def delete_batch(self, ops: Sequence[DeleteOp]) -> OperationStatus:
        status = OperationStatus()
        for op in ops:
            src = self.path_for(ZONE_PUBLIC, op.src)
            dst = self.path_for(ZONE_DELETED, op.dst)
            try:
                if not src.is_file():
                    status.fail(MigrationPhase.DELETE.value, op.src, "source missing")
                    continue
                if dst.exists():
                    # Content-addressed: an existing copy must be the same bytes
                    if self._sha1(src) != self._sha1(dst):
                        status.fail(
                            MigrationPhase.DELETE.value, op.dst, "hash mismatch"
                        )
                        continue
                else:
                    dst.parent.mkdir(parents=True, exist_ok=True)
                    shutil.copy2(src, dst)
                src.unlink()
            except OSError as e:
                status.fail(MigrationPhase.DELETE.value, op.src, str(e))
                continue
            status.success()
            logger.info("file.deleted", extra={"src": op.src, "dst": op.dst})
        return status

    def cleanup_deleted_batch(self, keys: Sequence[str]) -> OperationStatus:
        status = OperationStatus()
        for key in keys:
            path = self.path_for(ZONE_DELETED, deleted_rel(key))
            try:
                if path.exists():
                    path.unlink()
            except OSError as e:
                status.fail(MigrationPhase.CLEANUP.value, key, str(e))
                continue
            status.success()
            logger.info("file.cleaned", extra={"key": key})
        return status


class S3StorageAdapter(StorageAdapter):
    """Storage adapter for AWS S3 (production), one bucket per zone."""

    def __init__(self, public_bucket: str, deleted_bucket: str, region: str):
        self.buckets = {ZONE_PUBLIC: public_bucket, ZONE_DELETED: deleted_bucket}
        self.region = region
        self.client = boto3.client(
            "s3",
            region_name=region,
            config=BotoConfig(signature_version="s3v4"),
        )

    def _etag(self, zone: str, path: str) -> str | None:
        try:
            head = self.client.head_object(Bucket=self.buckets[zone], Key=path)
        except ClientError as e:
            if e.response.get("Error", {}).get("Code") in ("404", "NoSuchKey", "NotFound"):
                return None
            raise
        return head["ETag"]

    def file_exists(self, zone: str, path: str) -> bool:
        return self._etag(zone, path) is not None

    def _copy(self, src_zone: str, src: str, dst_zone: str, dst: str) -> None:
        self.client.copy_object(
            Bucket=self.buckets[dst_zone],
            Key=dst,
            CopySource={"Bucket": self.buckets[src_zone], "Key": src},
        )

    def store_batch(
        self, ops: Sequence[StageOp], overwrite_same: bool = True
    ) -> OperationStatus:
        status = OperationStatus()
        for op in ops:
            try:
                src_etag = self._etag(ZONE_DELETED, op.src)
                if src_etag is None:
                    status.fail(MigrationPhase.STAGE.value, op.src, "source missing")
                    continue
                dst_etag = self._etag(ZONE_PUBLIC, op.dst)
                if dst_etag is not None:
                    if not overwrite_same or dst_etag != src_etag:
                        status.fail(
                            MigrationPhase.STAGE.value, op.dst, "destination exists"
                        )
                        continue
                else:
                    self._copy(ZONE_DELETED, op.src, ZONE_PUBLIC, op.dst)
            except (BotoCoreError, ClientError) as e:
                status.fail(MigrationPhase.STAGE.value, op.dst, str(e))
                continue
            status.success()
            logger.info("s3.file_staged", extra={"src": op.src, "dst": op.dst})
        return status

    def delete_batch(self, ops: Sequence[DeleteOp]) -> OperationStatus:
        status = OperationStatus()
        for op in ops:
            try:
                src_etag = self._etag(ZONE_PUBLIC, op.src)
                if src_etag is None:
                    status.fail(MigrationPhase.DELETE.value, op.src, "source missing")
                    continue
                dst_etag = self._etag(ZONE_DELETED, op.dst)
                if dst_etag is None:
                    self._copy(ZONE_PUBLIC, op.src, ZONE_DELETED, op.dst)
                elif dst_etag != src_etag:
                    status.fail(MigrationPhase.DELETE.value, op.dst, "hash mismatch")
                    continue
                self.client.delete_object(Bucket=self.buckets[ZONE_PUBLIC], Key=op.src)
            except (BotoCoreError, ClientError) as e:
                status.fail(MigrationPhase.DELETE.value, op.src, str(e))
                continue
            status.success()
            logger.info("s3.file_deleted", extra={"src": op.src, "dst": op.dst})
        return status

    def cleanup_deleted_batch(self, keys: Sequence[str]) -> OperationStatus:
        status = OperationStatus()
        for key in keys:
            try:
                self.client.delete_object(
                    Bucket=self.buckets[ZONE_DELETED], Key=deleted_rel(key)
                )
            except (BotoCoreError, ClientError) as e:
                status.fail(MigrationPhase.CLEANUP.value, key, str(e))
                continue
            status.success()
            logger.info("s3.file_cleaned", extra={"key": key})
        return status


def get_storage_adapter() -> StorageAdapter:
    """Get the configured storage adapter."""
    settings = get_settings()

    if settings.storage_backend == "s3":
        if not settings.s3_public_bucket or not settings.s3_deleted_bucket:
            raise ValueError(
                "S3_PUBLIC_BUCKET and S3_DELETED_BUCKET required when STORAGE_BACKEND=s3"
            )
        return S3StorageAdapter(
            public_bucket=settings.s3_public_bucket,
            deleted_bucket=settings.s3_deleted_bucket,
            region=settings.aws_region,
        )
    else:
        return LocalStorageAdapter(base_path=settings.local_file_path)

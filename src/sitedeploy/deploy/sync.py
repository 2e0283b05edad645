"""Artifact synchronization between object storage and local trees.

Each file maps to exactly one storage key: ``{prefix}{relative_path}``. No
manifest or index object is written. All S3 calls are blocking boto3 calls
offloaded to worker threads so transfers can run concurrently.
"""

from __future__ import annotations

import asyncio
import mimetypes
from pathlib import Path
from typing import Any

from boto3.exceptions import Boto3Error
from botocore.exceptions import BotoCoreError, ClientError

from sitedeploy.lib.errors import ArtifactTransferError, DeploymentError
from sitedeploy.lib.logging_config import get_logger
from sitedeploy.models.deployment import ArtifactEntry, UploadReport

logger = get_logger(__name__)

NOT_FOUND_CODES = {"404", "NoSuchKey", "NotFound"}
DEFAULT_CONTENT_TYPE = "application/octet-stream"


def guess_content_type(path: str) -> str:
    """Guess a content type from a file name, defaulting to binary."""
    content_type, _ = mimetypes.guess_type(path)
    return content_type or DEFAULT_CONTENT_TYPE


class ArtifactSynchronizer:
    """Moves file trees between an S3 bucket and the local filesystem.

    Example:
        >>> sync = ArtifactSynchronizer("my-bucket", s3_client)
        >>> entries = await sync.download("repos/abc123/", Path("/tmp/abc123"))
        >>> report = await sync.upload_tree(build_dir, "builds/abc123/")
    """

    def __init__(
        self, bucket: str, s3_client: Any, upload_concurrency: int = 8
    ) -> None:
        self.bucket = bucket
        self._s3 = s3_client
        self._concurrency = upload_concurrency

    async def download(self, prefix: str, local_root: Path) -> list[ArtifactEntry]:
        """Materialize every object under ``prefix`` below ``local_root``.

        Args:
            prefix: Storage prefix, e.g. ``repos/{id}/``
            local_root: Directory receiving the tree (created if missing)

        Returns:
            One entry per downloaded file; empty if the prefix holds nothing

        Raises:
            DeploymentError: If the listing fails
            ArtifactTransferError: If any object fails to download
        """
        keys = await asyncio.to_thread(self._list_keys, prefix)
        local_root = local_root.resolve()
        local_root.mkdir(parents=True, exist_ok=True)

        entries: list[ArtifactEntry] = []
        for key in keys:
            relative = key[len(prefix) :]
            if not relative or relative.endswith("/"):
                # Directory placeholder objects carry no content
                continue
            destination = (local_root / relative).resolve()
            if not destination.is_relative_to(local_root):
                logger.warning(f"Skipping key outside the staging root: {key}")
                continue
            entries.append(
                ArtifactEntry(relative_path=relative, location=destination)
            )

        semaphore = asyncio.Semaphore(self._concurrency)

        async def fetch(entry: ArtifactEntry) -> None:
            async with semaphore:
                await asyncio.to_thread(
                    self._download_one, prefix + entry.relative_path, entry.location
                )

        results = await asyncio.gather(
            *(fetch(entry) for entry in entries), return_exceptions=True
        )
        for result in results:
            if isinstance(result, BaseException):
                raise result

        logger.info(
            f"Downloaded {len(entries)} file(s) from s3://{self.bucket}/{prefix}"
        )
        return entries

    @staticmethod
    def enumerate(local_root: Path) -> list[Path]:
        """Recursively list regular files under ``local_root``.

        Symbolic links and special files are skipped. A missing root yields
        an empty list.
        """
        if not local_root.is_dir():
            return []
        files = [
            path.resolve()
            for path in local_root.rglob("*")
            if path.is_file() and not path.is_symlink()
        ]
        return sorted(files)

    async def upload(self, local_path: Path, key: str) -> None:
        """Stream one local file to ``key``, overwriting any existing object.

        Raises:
            ArtifactTransferError: If this file fails to upload
        """
        await asyncio.to_thread(self._upload_one, local_path, key)

    async def upload_tree(self, local_root: Path, key_prefix: str) -> UploadReport:
        """Upload every file under ``local_root`` to ``{key_prefix}{relative}``.

        Transfers run concurrently and are all awaited; a failed transfer
        does not cancel the others. Failures are collected in the report.
        """
        return await self.upload_files(self.tree_targets(local_root, key_prefix))

    def tree_targets(self, local_root: Path, key_prefix: str) -> dict[str, Path]:
        """Map every file under ``local_root`` to its storage key."""
        root = local_root.resolve()
        return {
            f"{key_prefix}{path.relative_to(root).as_posix()}": path
            for path in self.enumerate(local_root)
        }

    async def upload_files(self, targets: dict[str, Path]) -> UploadReport:
        """Upload a batch of ``{storage_key: local_path}`` transfers."""
        semaphore = asyncio.Semaphore(self._concurrency)

        async def send(key: str, path: Path) -> None:
            async with semaphore:
                await self.upload(path, key)

        keys = list(targets)
        results = await asyncio.gather(
            *(send(key, targets[key]) for key in keys), return_exceptions=True
        )

        report = UploadReport()
        for key, result in zip(keys, results, strict=True):
            if isinstance(result, BaseException):
                report.failed[key] = str(result)
                logger.warning(f"Upload failed for {key}: {result}")
            else:
                report.uploaded.append(key)

        logger.info(
            f"Uploaded {len(report.uploaded)}/{len(keys)} file(s) "
            f"to s3://{self.bucket}"
        )
        return report

    async def exists(self, key: str) -> bool:
        """Return True if an object exists at ``key``."""
        return await asyncio.to_thread(self._exists, key)

    def _list_keys(self, prefix: str) -> list[str]:
        keys: list[str] = []
        try:
            paginator = self._s3.get_paginator("list_objects_v2")
            for page in paginator.paginate(Bucket=self.bucket, Prefix=prefix):
                keys.extend(obj["Key"] for obj in page.get("Contents", []))
        except (BotoCoreError, ClientError) as e:
            raise DeploymentError(
                operation="download",
                message=f"Failed to list s3://{self.bucket}/{prefix}: {e}",
            ) from e
        return keys

    def _download_one(self, key: str, destination: Path) -> None:
        destination.parent.mkdir(parents=True, exist_ok=True)
        try:
            self._s3.download_file(self.bucket, key, str(destination))
        except (Boto3Error, BotoCoreError, ClientError, OSError) as e:
            raise ArtifactTransferError("download", key, str(e)) from e

    def _upload_one(self, local_path: Path, key: str) -> None:
        try:
            self._s3.upload_file(
                str(local_path),
                self.bucket,
                key,
                ExtraArgs={"ContentType": guess_content_type(key)},
            )
        except (Boto3Error, BotoCoreError, ClientError, OSError) as e:
            raise ArtifactTransferError("upload", key, str(e)) from e

    def _exists(self, key: str) -> bool:
        try:
            self._s3.head_object(Bucket=self.bucket, Key=key)
        except ClientError as e:
            if e.response.get("Error", {}).get("Code") in NOT_FOUND_CODES:
                return False
            raise DeploymentError(
                operation="status",
                message=f"Failed to check s3://{self.bucket}/{key}: {e}",
            ) from e
        return True

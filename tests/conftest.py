"""Pytest configuration and shared fixtures for sitedeploy tests."""

from __future__ import annotations

import shutil
import tempfile
from collections.abc import Generator, Iterator
from pathlib import Path
from typing import Any

import pytest
from boto3.exceptions import S3UploadFailedError
from botocore.exceptions import ClientError

from sitedeploy.deploy.sync import ArtifactSynchronizer
from sitedeploy.models.config import WorkerConfig

TEST_BUCKET = "sitedeploy-test"
TEST_QUEUE_URL = "https://sqs.us-east-1.amazonaws.com/123456789012/deployments"


def _not_found(operation: str) -> ClientError:
    return ClientError({"Error": {"Code": "404", "Message": "Not Found"}}, operation)


class FakePaginator:
    """Paginates the fake bucket listing two keys per page."""

    page_size = 2

    def __init__(self, client: FakeS3Client) -> None:
        self._client = client

    def paginate(self, Bucket: str, Prefix: str = "") -> Iterator[dict[str, Any]]:
        keys = sorted(k for k in self._client.objects if k.startswith(Prefix))
        if not keys:
            yield {"KeyCount": 0}
            return
        for i in range(0, len(keys), self.page_size):
            yield {"Contents": [{"Key": k} for k in keys[i : i + self.page_size]]}


class FakeS3Client:
    """In-memory stand-in for the boto3 S3 client calls sitedeploy makes.

    ``fail_uploads`` maps a key to the number of upload attempts that should
    fail before it succeeds.
    """

    def __init__(self) -> None:
        self.objects: dict[str, bytes] = {}
        self.content_types: dict[str, str] = {}
        self.fail_uploads: dict[str, int] = {}
        self.upload_calls: list[str] = []

    def put(self, key: str, data: bytes) -> None:
        self.objects[key] = data

    def keys_under(self, prefix: str) -> list[str]:
        return sorted(k for k in self.objects if k.startswith(prefix))

    def get_paginator(self, operation_name: str) -> FakePaginator:
        assert operation_name == "list_objects_v2"
        return FakePaginator(self)

    def download_file(self, Bucket: str, Key: str, Filename: str) -> None:
        if Key not in self.objects:
            raise _not_found("HeadObject")
        Path(Filename).write_bytes(self.objects[Key])

    def upload_file(
        self,
        Filename: str,
        Bucket: str,
        Key: str,
        ExtraArgs: dict[str, str] | None = None,
    ) -> None:
        self.upload_calls.append(Key)
        remaining = self.fail_uploads.get(Key, 0)
        if remaining:
            self.fail_uploads[Key] = remaining - 1
            raise S3UploadFailedError(
                f"Failed to upload {Filename} to {Bucket}/{Key}"
            )
        self.objects[Key] = Path(Filename).read_bytes()
        if ExtraArgs and "ContentType" in ExtraArgs:
            self.content_types[Key] = ExtraArgs["ContentType"]

    def head_object(self, Bucket: str, Key: str) -> dict[str, Any]:
        if Key not in self.objects:
            raise _not_found("HeadObject")
        return {"ContentLength": len(self.objects[Key])}


@pytest.fixture
def temp_dir() -> Generator[Path]:
    """Create a temporary directory for test file operations.

    Yields:
        Path to temporary directory

    Cleanup:
        Automatically removes directory after test
    """
    tmp = Path(tempfile.mkdtemp())
    yield tmp
    shutil.rmtree(tmp, ignore_errors=True)


@pytest.fixture
def fake_s3() -> FakeS3Client:
    """Empty in-memory S3 bucket."""
    return FakeS3Client()


@pytest.fixture
def synchronizer(fake_s3: FakeS3Client) -> ArtifactSynchronizer:
    """Synchronizer bound to the in-memory bucket."""
    return ArtifactSynchronizer(TEST_BUCKET, fake_s3, upload_concurrency=4)


@pytest.fixture
def worker_config(temp_dir: Path) -> WorkerConfig:
    """Worker configuration with zero delays and a temporary staging root."""
    return WorkerConfig.model_validate(
        {
            "aws": {"region": "us-east-1"},
            "bucket": TEST_BUCKET,
            "queue_url": TEST_QUEUE_URL,
            "consumer": {"wait_time_seconds": 0, "error_backoff_seconds": 0},
            "dispatcher": {"poll_interval_seconds": 0},
            "container": {"staging_dir": str(temp_dir / "staging")},
        }
    )

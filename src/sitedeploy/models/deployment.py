"""Models for deployment tasks, queue deliveries and build jobs.

This module defines the data passed between the queue consumer, the build
dispatcher, the build strategies and the artifact synchronizer.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from sitedeploy.lib.errors import TaskPayloadError

# Storage key layout
SOURCE_PREFIX = "repos"
OUTPUT_PREFIX = "builds"


def source_prefix(task_id: str) -> str:
    """Return the storage prefix holding a task's source tree."""
    return f"{SOURCE_PREFIX}/{task_id}/"


def output_prefix(task_id: str) -> str:
    """Return the storage prefix receiving a task's build output."""
    return f"{OUTPUT_PREFIX}/{task_id}/"


class DeploymentTask(BaseModel):
    """A single deployment request as carried in a queue message body.

    Attributes:
        id: Unique deployment id, used as storage prefix and subdomain label
        repo_url: Source repository location (informational)
    """

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    id: str = Field(..., description="Unique deployment id")
    repo_url: str = Field(
        default="", alias="repoUrl", description="Source repository URL"
    )

    @field_validator("id")
    @classmethod
    def validate_id(cls, v: str) -> str:
        """Reject ids that cannot be used as a storage prefix."""
        v = v.strip()
        if not v:
            raise ValueError("id must not be empty")
        if "/" in v or v in (".", ".."):
            raise ValueError(f"Invalid deployment id: {v!r}")
        return v

    @classmethod
    def from_body(cls, body: str) -> DeploymentTask:
        """Parse a JSON message body into a task.

        Raises:
            TaskPayloadError: If the body is not a valid task
        """
        try:
            return cls.model_validate_json(body)
        except ValidationError as exc:
            raise TaskPayloadError(body, str(exc)) from exc

    def to_body(self) -> str:
        """Serialize the task to its wire JSON form."""
        return self.model_dump_json(by_alias=True)


@dataclass
class QueueMessage:
    """One delivery of a queue message.

    The receipt handle identifies this specific delivery; a redelivered copy
    of the same message carries a different handle.
    """

    body: str | None
    receipt_handle: str | None
    message_id: str | None = None
    receive_count: int = 1

    @classmethod
    def from_sqs(cls, message: dict[str, Any]) -> QueueMessage:
        """Build a QueueMessage from a raw SQS ``ReceiveMessage`` entry."""
        attributes = message.get("Attributes") or {}
        try:
            receive_count = int(attributes.get("ApproximateReceiveCount", 1))
        except (TypeError, ValueError):
            receive_count = 1
        return cls(
            body=message.get("Body"),
            receipt_handle=message.get("ReceiptHandle"),
            message_id=message.get("MessageId"),
            receive_count=receive_count,
        )


class BuildStatus(str, Enum):
    """Lifecycle status of a build job."""

    PENDING = "PENDING"
    RUNNING = "RUNNING"
    SUCCEEDED = "SUCCEEDED"
    FAILED = "FAILED"

    @property
    def is_terminal(self) -> bool:
        return self in (BuildStatus.SUCCEEDED, BuildStatus.FAILED)


_STATUS_RANK = {
    BuildStatus.PENDING: 0,
    BuildStatus.RUNNING: 1,
    BuildStatus.SUCCEEDED: 2,
    BuildStatus.FAILED: 2,
}


@dataclass
class BuildJob:
    """Handle to an externally executing build.

    Attributes:
        external_id: Id assigned by the strategy that started the build
        task_id: Deployment id being built
        status: Current status; only moves forward
        detail: Provider status or failure detail for logging
    """

    external_id: str
    task_id: str
    status: BuildStatus = BuildStatus.PENDING
    detail: str | None = None

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal

    def advance(self, status: BuildStatus, detail: str | None = None) -> bool:
        """Move the job to a new status if the transition is forward.

        Returns:
            True if the status changed, False if the update was ignored
        """
        if self.is_terminal or _STATUS_RANK[status] < _STATUS_RANK[self.status]:
            return False
        if detail is not None:
            self.detail = detail
        if status == self.status:
            return False
        self.status = status
        return True


@dataclass
class ArtifactEntry:
    """A single file in a synchronization pass.

    Attributes:
        relative_path: POSIX path relative to the tree root, also the key suffix
        location: Absolute local path holding the file's bytes
    """

    relative_path: str
    location: Path


@dataclass
class UploadReport:
    """Result of uploading a local tree to storage."""

    uploaded: list[str] = field(default_factory=list)
    failed: dict[str, str] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return not self.failed


class OutcomeKind(str, Enum):
    """Result of processing one deployment task."""

    SUCCEEDED = "succeeded"
    FAILED = "failed"
    DEADLINE_EXCEEDED = "deadline_exceeded"
    CANCELLED = "cancelled"
    ABANDONED = "abandoned"


@dataclass(frozen=True)
class Outcome:
    """Outcome of a dispatch or of a whole queue cycle."""

    kind: OutcomeKind
    reason: str | None = None

    @property
    def ok(self) -> bool:
        return self.kind == OutcomeKind.SUCCEEDED

    @classmethod
    def success(cls) -> Outcome:
        return cls(OutcomeKind.SUCCEEDED)

    @classmethod
    def failure(cls, reason: str) -> Outcome:
        return cls(OutcomeKind.FAILED, reason)

    @classmethod
    def deadline_exceeded(cls, reason: str) -> Outcome:
        return cls(OutcomeKind.DEADLINE_EXCEEDED, reason)

    @classmethod
    def cancelled(cls, reason: str) -> Outcome:
        return cls(OutcomeKind.CANCELLED, reason)

    @classmethod
    def abandoned(cls, reason: str) -> Outcome:
        return cls(OutcomeKind.ABANDONED, reason)

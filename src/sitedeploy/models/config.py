"""Pydantic models for worker configuration.

The configuration is resolved once at process start and handed to each
component's constructor.
"""

import re
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, field_validator

from sitedeploy.config.defaults import (
    DEFAULT_BUILD_COMMAND,
    DEFAULT_BUILD_ENVIRONMENT,
    DEFAULT_CODEBUILD_PROJECT,
    DEFAULT_CONTAINER_IMAGE,
    DEFAULT_INDEX_DOCUMENT,
    DEFAULT_INSTALL_COMMAND,
    DEFAULT_OUTPUT_DIR,
    DEFAULT_STAGING_DIR,
)

SQS_QUEUE_URL_PATTERN = re.compile(r"^https?://\S+/\d{12}/[\w-]+(\.fifo)?$")
OUTPUT_DIR_PATTERN = re.compile(r"^[\w.-]+(/[\w.-]+)*$")


class BuildStrategyType(str, Enum):
    """Available build strategies."""

    CODEBUILD = "codebuild"
    CONTAINER = "container"


class AWSConfig(BaseModel):
    """AWS client configuration.

    Attributes:
        region: AWS region for all clients
        access_key_id: Explicit access key (falls back to the boto3 chain)
        secret_access_key: Explicit secret key (falls back to the boto3 chain)
        endpoint_url: Alternate endpoint, e.g. a local emulator
    """

    model_config = ConfigDict(extra="forbid")

    region: str = Field(..., description="AWS region")
    access_key_id: str | None = Field(default=None, description="AWS access key")
    secret_access_key: str | None = Field(
        default=None, description="AWS secret access key"
    )
    endpoint_url: str | None = Field(
        default=None, description="Alternate endpoint URL for all AWS clients"
    )


class ConsumerConfig(BaseModel):
    """Queue consumer settings."""

    model_config = ConfigDict(extra="forbid")

    wait_time_seconds: int = Field(
        default=20, ge=0, le=20, description="Long-poll wait per receive"
    )
    error_backoff_seconds: float = Field(
        default=5.0, ge=0, description="Delay after an error in the polling loop"
    )
    max_receive_count: int | None = Field(
        default=5,
        ge=1,
        description="Deliveries after which a message is abandoned (None: never)",
    )


class DispatcherConfig(BaseModel):
    """Build dispatcher settings."""

    model_config = ConfigDict(extra="forbid")

    poll_interval_seconds: float = Field(
        default=10.0, ge=0, description="Delay between build status queries"
    )
    build_deadline_seconds: float | None = Field(
        default=None, gt=0, description="Abort builds running longer than this"
    )
    skip_completed: bool = Field(
        default=False,
        description="Skip tasks whose output index document already exists",
    )
    index_document: str = Field(
        default=DEFAULT_INDEX_DOCUMENT, description="Completion marker document"
    )


class BuildRecipe(BaseModel):
    """Commands and output location shared by both build strategies."""

    model_config = ConfigDict(extra="forbid")

    install_command: str = Field(default=DEFAULT_INSTALL_COMMAND)
    build_command: str = Field(default=DEFAULT_BUILD_COMMAND)
    output_dir: str = Field(
        default=DEFAULT_OUTPUT_DIR, description="Build output directory"
    )
    environment: dict[str, str] = Field(
        default_factory=lambda: dict(DEFAULT_BUILD_ENVIRONMENT),
        description="Environment variables for the build",
    )

    @field_validator("output_dir")
    @classmethod
    def validate_output_dir(cls, v: str) -> str:
        """Require a relative path inside the source tree."""
        v = v.strip("/")
        if not OUTPUT_DIR_PATTERN.match(v) or ".." in v.split("/"):
            raise ValueError(
                f"Invalid output_dir: {v!r}. Must be a relative path "
                "inside the source tree"
            )
        return v


class CodeBuildConfig(BaseModel):
    """Remote managed build (AWS CodeBuild) settings."""

    model_config = ConfigDict(extra="forbid")

    project_name: str = Field(
        default=DEFAULT_CODEBUILD_PROJECT, description="CodeBuild project name"
    )


class ContainerConfig(BaseModel):
    """Local containerized build settings."""

    model_config = ConfigDict(extra="forbid")

    image: str = Field(default=DEFAULT_CONTAINER_IMAGE, description="Build image")
    staging_dir: str = Field(
        default=DEFAULT_STAGING_DIR, description="Local root for staging trees"
    )
    upload_concurrency: int = Field(
        default=8, ge=1, le=64, description="Concurrent uploads per task"
    )
    upload_retries: int = Field(
        default=2, ge=0, description="Retries for files that failed to upload"
    )
    keep_staging: bool = Field(
        default=False, description="Keep staging trees after the build"
    )


class WorkerConfig(BaseModel):
    """Top-level deployment worker configuration.

    Attributes:
        aws: AWS client settings
        bucket: Object storage bucket holding sources and build output
        queue_url: Task queue URL
        strategy: Build strategy used for every task
    """

    model_config = ConfigDict(extra="forbid")

    aws: AWSConfig
    bucket: str = Field(..., min_length=3, description="S3 bucket name")
    queue_url: str = Field(..., description="SQS queue URL")
    strategy: BuildStrategyType = Field(
        default=BuildStrategyType.CODEBUILD, description="Build strategy"
    )
    consumer: ConsumerConfig = Field(default_factory=ConsumerConfig)
    dispatcher: DispatcherConfig = Field(default_factory=DispatcherConfig)
    recipe: BuildRecipe = Field(default_factory=BuildRecipe)
    codebuild: CodeBuildConfig = Field(default_factory=CodeBuildConfig)
    container: ContainerConfig = Field(default_factory=ContainerConfig)

    @field_validator("queue_url")
    @classmethod
    def validate_queue_url(cls, v: str) -> str:
        """Validate the SQS queue URL shape."""
        if not SQS_QUEUE_URL_PATTERN.match(v):
            raise ValueError(
                f"Invalid SQS queue URL: {v}. "
                "Expected https://sqs.<region>.amazonaws.com/<account-id>/<name>"
            )
        return v

"""Remote managed build strategy backed by AWS CodeBuild."""

from __future__ import annotations

import asyncio
from typing import Any

from botocore.exceptions import BotoCoreError, ClientError

from sitedeploy.deploy.buildspec import render_buildspec
from sitedeploy.deploy.strategies.base import BaseBuildStrategy
from sitedeploy.lib.aws import create_client
from sitedeploy.lib.errors import DeploymentError
from sitedeploy.lib.logging_config import get_logger
from sitedeploy.models.config import WorkerConfig
from sitedeploy.models.deployment import (
    BuildJob,
    BuildStatus,
    output_prefix,
    source_prefix,
)

logger = get_logger(__name__)

# CodeBuild buildStatus values that end a build without success
FAILED_STATUSES = frozenset({"FAILED", "FAULT", "STOPPED", "TIMED_OUT"})
# currentPhase values before the build container is running
QUEUED_PHASES = frozenset({"SUBMITTED", "QUEUED"})


def map_build_status(build: dict[str, Any]) -> BuildStatus:
    """Map a CodeBuild build description to a BuildStatus."""
    status = build.get("buildStatus")
    if status == "SUCCEEDED":
        return BuildStatus.SUCCEEDED
    if status in FAILED_STATUSES:
        return BuildStatus.FAILED
    if status == "IN_PROGRESS" and build.get("currentPhase") in QUEUED_PHASES:
        return BuildStatus.PENDING
    return BuildStatus.RUNNING


class CodeBuildStrategy(BaseBuildStrategy):
    """Delegate builds to an AWS CodeBuild project.

    CodeBuild reads the source straight from ``repos/{id}/`` in the bucket and
    writes the artifact set to ``builds/{id}/``; nothing passes through the
    worker.
    """

    name = "codebuild"

    def __init__(self, config: WorkerConfig, client: Any | None = None) -> None:
        """Initialize the CodeBuild strategy.

        Args:
            config: Worker configuration
            client: Optional boto3 CodeBuild client (created from config if None)
        """
        self._config = config
        self._client = client or create_client(config.aws, "codebuild")
        self._buildspec = render_buildspec(config.recipe)

    def start_build_request(self, task_id: str) -> dict[str, Any]:
        """Return the ``StartBuild`` arguments for a deployment."""
        bucket = self._config.bucket
        return {
            "projectName": self._config.codebuild.project_name,
            "sourceTypeOverride": "S3",
            "sourceLocationOverride": f"{bucket}/{source_prefix(task_id)}",
            "artifactsOverride": {
                "type": "S3",
                "location": bucket,
                "path": output_prefix(task_id),
                "namespaceType": "NONE",
                "name": "/",
                "packaging": "NONE",
            },
            "buildspecOverride": self._buildspec,
        }

    async def start(self, task_id: str) -> BuildJob:
        """Start a CodeBuild build for a deployment."""
        logger.info(f"[CodeBuild] Starting build for {task_id}")
        try:
            response = await asyncio.to_thread(
                self._client.start_build, **self.start_build_request(task_id)
            )
        except (BotoCoreError, ClientError) as exc:
            raise DeploymentError(
                operation="start",
                message=f"CodeBuild could not start a build for {task_id}: {exc}",
            ) from exc

        build_id = (response.get("build") or {}).get("id")
        if not build_id:
            raise DeploymentError(
                operation="start",
                message=f"CodeBuild returned no build id for {task_id}",
            )

        logger.info(f"[CodeBuild] Build started with ID: {build_id}")
        return BuildJob(external_id=build_id, task_id=task_id)

    async def get_status(self, job: BuildJob) -> BuildJob:
        """Query CodeBuild for the job's current status."""
        try:
            response = await asyncio.to_thread(
                self._client.batch_get_builds, ids=[job.external_id]
            )
        except (BotoCoreError, ClientError) as exc:
            raise DeploymentError(
                operation="status",
                message=f"Failed to fetch status of build {job.external_id}: {exc}",
            ) from exc

        builds = response.get("builds") or []
        if not builds:
            raise DeploymentError(
                operation="status",
                message=f"Build {job.external_id} not found",
            )

        build = builds[0]
        job.advance(map_build_status(build), detail=build.get("buildStatus"))
        logger.info(
            f"[CodeBuild] Build {job.external_id}: {build.get('buildStatus')} "
            f"(phase {build.get('currentPhase')})"
        )
        return job

    async def stop(self, job: BuildJob) -> None:
        """Stop a running CodeBuild build."""
        try:
            await asyncio.to_thread(self._client.stop_build, id=job.external_id)
        except (BotoCoreError, ClientError) as exc:
            raise DeploymentError(
                operation="stop",
                message=f"Failed to stop build {job.external_id}: {exc}",
            ) from exc
        logger.info(f"[CodeBuild] Stop requested for build {job.external_id}")

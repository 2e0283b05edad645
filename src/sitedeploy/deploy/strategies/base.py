"""Base interface for build strategies."""

from __future__ import annotations

from abc import ABC, abstractmethod

from sitedeploy.models.deployment import BuildJob


class BaseBuildStrategy(ABC):
    """Abstract base class for turning a stored source tree into build output.

    A strategy reads the source tree from ``repos/{task_id}/`` and leaves the
    artifact tree under ``builds/{task_id}/``. The dispatcher depends only on
    this interface.
    """

    name: str = "base"

    @abstractmethod
    async def start(self, task_id: str) -> BuildJob:
        """Start a build for a deployment.

        Args:
            task_id: Deployment id whose source tree should be built.

        Returns:
            BuildJob handle. The dispatcher reports a job that is already
            terminal without polling it.

        Raises:
            DeploymentError: If the build could not be started.
        """

    @abstractmethod
    async def get_status(self, job: BuildJob) -> BuildJob:
        """Refresh a job's status from the build backend.

        Args:
            job: Handle returned by ``start``.

        Returns:
            The same job, advanced to its current status.

        Raises:
            DeploymentError: If the status query fails.
        """

    @abstractmethod
    async def stop(self, job: BuildJob) -> None:
        """Ask the build backend to abort a running job.

        Args:
            job: Handle returned by ``start``.

        Raises:
            DeploymentError: If the stop request fails.
        """

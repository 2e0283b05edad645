"""Build strategies for sitedeploy deployments."""

from __future__ import annotations

from sitedeploy.deploy.strategies.base import BaseBuildStrategy
from sitedeploy.deploy.sync import ArtifactSynchronizer
from sitedeploy.lib.errors import DeploymentError
from sitedeploy.models.config import BuildStrategyType, WorkerConfig


def create_strategy(
    config: WorkerConfig,
    synchronizer: ArtifactSynchronizer | None = None,
) -> BaseBuildStrategy:
    """Create the build strategy selected by the worker configuration."""
    if config.strategy == BuildStrategyType.CODEBUILD:
        from sitedeploy.deploy.strategies.codebuild import CodeBuildStrategy

        return CodeBuildStrategy(config)

    if config.strategy == BuildStrategyType.CONTAINER:
        if synchronizer is None:
            raise DeploymentError(
                operation="init",
                message="The container strategy requires an artifact synchronizer.",
            )
        from sitedeploy.deploy.strategies.container import ContainerBuildStrategy

        return ContainerBuildStrategy(config, synchronizer)

    raise DeploymentError(
        operation="init",
        message=f"Unsupported build strategy: {config.strategy}",
    )


__all__ = ["BaseBuildStrategy", "create_strategy"]

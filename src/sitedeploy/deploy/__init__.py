"""sitedeploy deployment engine.

This package provides the deployment worker: the queue consumer, the build
dispatcher, the build strategies and the artifact synchronizer.
"""

from sitedeploy.deploy.buildspec import render_buildspec
from sitedeploy.deploy.consumer import QueueConsumer
from sitedeploy.deploy.dispatcher import BuildDispatcher
from sitedeploy.deploy.strategies import BaseBuildStrategy, create_strategy
from sitedeploy.deploy.sync import ArtifactSynchronizer

__all__ = [
    "ArtifactSynchronizer",
    "BaseBuildStrategy",
    "BuildDispatcher",
    "QueueConsumer",
    "create_strategy",
    "render_buildspec",
]

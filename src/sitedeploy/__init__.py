"""sitedeploy: build source repositories and publish them as static sites."""

__version__ = "0.1.0"

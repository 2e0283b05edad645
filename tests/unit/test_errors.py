"""Tests for the sitedeploy exception hierarchy."""

from __future__ import annotations

from sitedeploy.lib.errors import (
    ArtifactTransferError,
    ConfigError,
    DeploymentError,
    DockerNotAvailableError,
    SiteDeployError,
    TaskPayloadError,
)


class TestErrors:
    def test_config_error(self) -> None:
        error = ConfigError("bucket", "Field required")

        assert isinstance(error, SiteDeployError)
        assert error.field == "bucket"
        assert str(error) == "Configuration error in 'bucket': Field required"

    def test_deployment_error(self) -> None:
        error = DeploymentError("start", "quota exceeded")

        assert error.operation == "start"
        assert error.message == "quota exceeded"
        assert str(error) == "Deployment start failed: quota exceeded"

    def test_docker_not_available(self) -> None:
        error = DockerNotAvailableError()

        assert isinstance(error, DeploymentError)
        assert error.operation == "init"
        assert "docker info" in error.message

    def test_artifact_transfer_error_names_key(self) -> None:
        error = ArtifactTransferError("upload", "builds/abc/app.js", "timeout")

        assert isinstance(error, DeploymentError)
        assert error.key == "builds/abc/app.js"
        assert error.message == "builds/abc/app.js: timeout"

    def test_task_payload_error_keeps_body(self) -> None:
        error = TaskPayloadError("{bad", "Invalid JSON")

        assert error.body == "{bad"
        assert not isinstance(error, DeploymentError)

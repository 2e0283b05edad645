"""Custom exception hierarchy for sitedeploy configuration and operations."""


class SiteDeployError(Exception):
    """Base exception for all sitedeploy errors.

    All sitedeploy-specific exceptions inherit from this class, enabling
    centralized exception handling at the worker loop boundary.
    """

    pass


class ConfigError(SiteDeployError):
    """Exception raised for configuration errors.

    This exception is raised when configuration loading or parsing fails.
    It includes field-specific information to help operators identify and fix
    configuration issues.

    Attributes:
        field: The configuration field that caused the error
        message: Human-readable error message describing the issue
    """

    def __init__(self, field: str, message: str) -> None:
        """Initialize ConfigError with field and message.

        Args:
            field: Configuration field name where error occurred
            message: Descriptive error message
        """
        self.field = field
        self.message = message
        super().__init__(f"Configuration error in '{field}': {message}")


class DeploymentError(SiteDeployError):
    """Exception raised when a deployment operation fails.

    Covers every step of the consume/build/sync cycle: starting or polling a
    build, running the build container, and moving artifacts to and from
    object storage.

    Attributes:
        operation: Name of the step that failed (start, status, build, ...)
        message: Human-readable error message
    """

    def __init__(self, operation: str, message: str) -> None:
        """Initialize DeploymentError with the failing operation.

        Args:
            operation: Step of the deployment that failed
            message: Descriptive error message
        """
        self.operation = operation
        self.message = message
        super().__init__(f"Deployment {operation} failed: {message}")


class DockerNotAvailableError(DeploymentError):
    """Error raised when the Docker daemon cannot be reached."""

    def __init__(self, operation: str = "init") -> None:
        """Create a Docker availability error for the given operation."""
        super().__init__(
            operation=operation,
            message=(
                "Docker daemon is not available. "
                "Ensure Docker is installed and running: docker info"
            ),
        )


class ArtifactTransferError(DeploymentError):
    """Error raised when a single artifact fails to transfer.

    Attributes:
        key: Storage key of the object that failed to transfer
    """

    def __init__(self, operation: str, key: str, message: str) -> None:
        """Create a transfer error attributed to one storage key.

        Args:
            operation: Transfer direction (download or upload)
            key: Storage key of the failed object
            message: Descriptive error message
        """
        self.key = key
        super().__init__(operation=operation, message=f"{key}: {message}")


class TaskPayloadError(SiteDeployError):
    """Exception raised when a queue message body is not a valid task.

    Attributes:
        body: The raw message body that failed to parse
        message: Human-readable error message
    """

    def __init__(self, body: str | None, message: str) -> None:
        """Create a payload error for a raw message body."""
        self.body = body
        self.message = message
        super().__init__(f"Invalid deployment task payload: {message}")

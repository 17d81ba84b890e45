"""Custom exception hierarchy for Dreadnot orchestration and operations."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from dreadnot.models.deployment import DeploymentSummary


class DreadnotError(Exception):
    """Base exception for all Dreadnot errors.

    All Dreadnot-specific exceptions inherit from this class, enabling
    centralized exception handling at the CLI and API boundary.
    """

    title = "Error"


class ConfigError(DreadnotError):
    """Exception raised for configuration errors.

    Raised when the settings file or a stack module cannot be loaded or
    does not satisfy the expected schema.

    Attributes:
        field: The configuration field that caused the error
        message: Human-readable error message describing the issue
    """

    title = "Configuration Error"

    def __init__(self, field: str, message: str) -> None:
        """Initialize ConfigError with field and message.

        Args:
            field: Configuration field name where error occurred
            message: Descriptive error message
        """
        self.field = field
        self.message = message
        super().__init__(f"Configuration error in '{field}': {message}")


class NotFoundError(DreadnotError):
    """Exception raised when a stack, region, target or deployment is unknown."""

    title = "Not Found"

    def __init__(self, message: str = "Requested resource not found") -> None:
        """Create a not-found error."""
        self.message = message
        super().__init__(message)


class StackLockedError(DreadnotError):
    """Exception raised when a deployment cannot start because of a lock.

    Carries the deployment currently holding the stack (or the conflicting
    named lock) so callers can point the user at the in-progress run. The
    holder is None when another process holds the stack's lock file and has
    not recorded its deployment yet.

    Attributes:
        deployment: Summary of the deployment holding the lock, if known
    """

    title = "Stack Locked"

    def __init__(self, deployment: DeploymentSummary | None) -> None:
        """Create a locked error for the holding deployment."""
        self.deployment = deployment
        if deployment is None:
            super().__init__("Stack locked by another Dreadnot process")
        else:
            super().__init__(
                f"Stack locked for Deployment #{deployment.name} of "
                f"{deployment.stack_name}:{deployment.region}"
            )


class TaskError(DreadnotError):
    """Exception describing a failed task function.

    Task errors are recorded in the deployment log, they never reach the
    caller that triggered the deployment.

    Attributes:
        task: Name of the failed task
        cause: The exception raised by the task function
    """

    def __init__(self, task: str, cause: BaseException) -> None:
        """Wrap a task failure with the task name."""
        self.task = task
        self.cause = cause
        super().__init__(f"Task '{task}' failed: {cause}")


class PersistenceError(DreadnotError):
    """Exception raised when a deployment record cannot be read or written.

    Attributes:
        operation: The store operation that failed (read, write, scan)
        path: Filesystem path involved
        message: Human-readable error message
    """

    def __init__(self, operation: str, path: str, message: str) -> None:
        """Initialize PersistenceError with operation context."""
        self.operation = operation
        self.path = path
        self.message = message
        super().__init__(f"Failed to {operation} {path}: {message}")


class RevisionLookupError(DreadnotError):
    """Exception raised when a stack module cannot report a revision."""

    def __init__(self, stack_name: str, message: str) -> None:
        """Create a lookup error for the given stack."""
        self.stack_name = stack_name
        self.message = message
        super().__init__(f"Revision lookup for stack '{stack_name}' failed: {message}")


class DeploymentFrozenError(DreadnotError):
    """Exception raised when a finished deployment record is mutated."""

    def __init__(self, name: str) -> None:
        """Create a frozen-record error."""
        self.name = name
        super().__init__(f"Deployment #{name} is finished and can no longer change")


class CommandError(DreadnotError):
    """Exception raised when a spawned command exits with a non-zero status.

    Attributes:
        cmd: The command line that was executed
        returncode: Process exit code
        stdout: Captured standard output
        stderr: Captured standard error
    """

    def __init__(self, cmd: str, returncode: int, stdout: str, stderr: str) -> None:
        """Initialize CommandError with process output."""
        self.cmd = cmd
        self.returncode = returncode
        self.stdout = stdout
        self.stderr = stderr
        super().__init__(
            f"Failed command {cmd} (exit {returncode}):\n"
            f"stderr:\n{stderr}\nstdout:\n{stdout}"
        )

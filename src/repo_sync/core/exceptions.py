"""Exception hierarchy for repo-sync."""

from typing import Any


class RepoSyncError(Exception):
    """Base exception for all repo-sync errors."""

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}


class ConfigError(RepoSyncError):
    """Invalid configuration, or a configured resource that cannot be used."""

    pass


class LocalPathNotFoundError(ConfigError):
    """A configured local repository path does not exist."""

    pass


class LocalPathNotADirectoryError(ConfigError):
    """A configured local repository path exists but is not a directory."""

    pass


class ProtocolError(RepoSyncError):
    """A code host answered with an error status or without required metadata."""

    def __init__(
        self,
        message: str,
        provider: str | None = None,
        status_code: int | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, details)
        self.provider = provider
        self.status_code = status_code


class ProcessError(RepoSyncError):
    """A git or indexer subprocess failed to launch or exited non-zero."""

    def __init__(
        self,
        message: str,
        command: list[str],
        returncode: int | None = None,
        stdout: str = "",
        stderr: str = "",
    ) -> None:
        super().__init__(
            message,
            details={"command": command, "returncode": returncode, "stderr": stderr},
        )
        self.command = command
        self.returncode = returncode
        self.stdout = stdout
        self.stderr = stderr


class CancelledError(RepoSyncError):
    """A subprocess was terminated because its cancellation token was signalled.

    Deliberately unrelated to ``ProcessError``: a superseded sync is not a failure.
    """

    def __init__(self, message: str, command: list[str]) -> None:
        super().__init__(message, details={"command": command})
        self.command = command

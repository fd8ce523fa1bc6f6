"""
Custom exception hierarchy for the tools runner.

All exceptions inherit from ToolsRunnerError, which provides optional context
for structured error handling and logging.
"""

from __future__ import annotations

from typing import Any


class ToolsRunnerError(Exception):
    """Base exception for all tools runner errors.

    Attributes:
        message: Human-readable error message.
        context: Optional structured context for logging/debugging.
    """

    def __init__(self, message: str, context: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.context = context or {}

    def __str__(self) -> str:
        if self.context:
            ctx_str = ", ".join(f"{k}={v!r}" for k, v in self.context.items())
            return f"{self.message} ({ctx_str})"
        return self.message

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.message!r}, context={self.context!r})"


class ConfigurationError(ToolsRunnerError):
    """Raised when the project config is invalid or missing."""

    pass


class EnvConfigNotFoundError(ConfigurationError):
    """Raised when no project config file exists in any parent directory.

    Context should include:
        - filename: The config file name that was searched for
        - start: The directory the search started from
    """

    pass


class EnvConfigUnreadableError(ConfigurationError):
    """Raised when the project config file exists but cannot be read.

    Context should include:
        - path: The config file
        - reason: The underlying OS error
    """

    pass


class RequiredValuesNotSpecifiedError(ConfigurationError):
    """Raised when required keys are missing from the project config."""

    def __init__(self, keys: list[str], filename: str = ".toolsEnv") -> None:
        super().__init__(
            f"Please specify values {', '.join(keys)} in {filename} file."
        )
        self.keys = keys


class InvalidUrlError(ConfigurationError):
    """Raised when the archive URL cannot be parsed."""

    def __init__(self, url: str) -> None:
        super().__init__(f'URL "{url}" is invalid.')
        self.url = url


class MissingChecksumError(ConfigurationError):
    """Raised when a remote archive is requested without a version token."""

    def __init__(self) -> None:
        super().__init__("CHECKSUM should be set for remote archives.")


class UnsupportedArchitectureError(ConfigurationError):
    """Raised when the host machine architecture has no config mapping."""

    pass


class CacheError(ToolsRunnerError):
    """Raised when the cache index or cache directories cannot be managed."""

    pass


class CorruptIndexError(CacheError):
    """Raised when the cache index file exists but cannot be decoded.

    Context should include:
        - path: The index file path
        - reason: The decoder error
    """

    pass


class IndexWriteError(CacheError):
    """Raised when the cache index cannot be written back to disk."""

    pass


class DirectoryCreateError(CacheError):
    """Raised when a cache slot directory cannot be created."""

    pass


class TransportError(ToolsRunnerError):
    """Raised when an archive cannot be fetched or read.

    Context should include:
        - url: The archive URL
        - status_code: HTTP status code if applicable
    """

    pass


class ExtractionError(ToolsRunnerError):
    """Raised when the archive tool exits with a failure."""

    def __init__(self, diagnostic: str, context: dict[str, Any] | None = None) -> None:
        super().__init__(f"Unzip error: {diagnostic}", context)
        self.diagnostic = diagnostic


class ExecutableNotFoundError(ToolsRunnerError):
    """Raised when the configured executable is missing from the cache slot."""

    def __init__(self, name: str) -> None:
        super().__init__(f"File {name} doesn't exist.")
        self.name = name


class ExecutionError(ToolsRunnerError):
    """Raised when the tool binary exists but cannot be started.

    Context should include:
        - binary: Path of the binary
        - reason: The underlying OS error
    """

    pass

"""Exception types shared across the qmake builder."""
from __future__ import annotations


class QmakeBuilderError(RuntimeError):
    """Base class for failures raised by the builder."""


class ConfigurationError(QmakeBuilderError):
    """Raised when job or tool configuration cannot be used."""


class ToolResolutionError(ConfigurationError):
    """Raised when the qmake binary cannot be determined."""

    def __init__(self, configured_path: str | None, message: str):
        super().__init__(message)
        self.configured_path = configured_path


class BuildDirectoryError(QmakeBuilderError):
    """Raised when the build directory cannot be created."""

    def __init__(self, path, message: str):
        super().__init__(f"Unable to create build directory '{path}': {message}")
        self.path = path


__all__ = [
    "BuildDirectoryError",
    "ConfigurationError",
    "QmakeBuilderError",
    "ToolResolutionError",
]

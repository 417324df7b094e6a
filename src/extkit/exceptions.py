"""Custom exceptions for extkit."""

from pathlib import Path
from typing import Sequence


class ExtkitError(Exception):
    """Base exception for all pipeline errors."""

    pass


class DiscoveryError(ExtkitError):
    """Raised when a source or test directory cannot be scanned."""

    pass


class DirectoryNotFoundError(DiscoveryError):
    """Raised when a directory to scan does not exist."""

    def __init__(self, path: Path):
        self.path = path
        super().__init__(f"Directory not found: {path}")


class CompileError(ExtkitError):
    """Raised when the bundler reports diagnostics for a build target."""

    def __init__(self, target: str, diagnostics: Sequence[str]):
        self.target = target
        self.diagnostics = list(diagnostics)
        message = f"Failed to compile {target}"
        if self.diagnostics:
            message += ": " + "; ".join(self.diagnostics)
        super().__init__(message)


class IntrospectionError(ExtkitError):
    """Raised when a compiled artifact cannot be loaded or described."""

    def __init__(self, artifact: Path | str, reason: str):
        self.artifact = str(artifact)
        self.reason = reason
        super().__init__(f"Cannot introspect {self.artifact}: {reason}")


class ValidationFailure(ExtkitError):
    """Raised when the validator exits with a non-zero status."""

    def __init__(self, entry: str, status: int, stderr: str = ""):
        self.entry = entry
        self.status = status
        self.stderr = stderr
        super().__init__(f"Validation of {entry} failed with exit status {status}")


class ManifestWriteError(ExtkitError):
    """Raised when the catalog manifest cannot be written."""

    def __init__(self, path: Path, reason: str):
        self.path = path
        super().__init__(f"Cannot write manifest {path}: {reason}")

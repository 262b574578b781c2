"""Error taxonomy for git-appconfig.

Every error raised by the sync engine derives from `AppConfigError`, so callers
can surface the failure kind and the offending path with a single handler.
"""

from pathlib import Path


class AppConfigError(Exception):
    """Base class for all git-appconfig failures."""


class InvalidInputError(AppConfigError, ValueError):
    """Raised for a missing passphrase, a missing option or a malformed path list."""


class MalformedContainerError(AppConfigError):
    """Raised when an encrypted file is not valid base64 or is too short."""

    def __init__(self, message: str, path: Path | str | None = None):
        self.path = path
        if path is not None:
            message = f"{message}: {path}"
        super().__init__(message)


class DecryptionFailure(AppConfigError):
    """Raised when no key derivation strategy could decrypt a container."""

    def __init__(self, path: Path | str | None = None, reason: str = ""):
        self.path = path
        message = f"Error decrypting '{path}'" if path is not None else "Error decrypting"
        if reason:
            message = f"{message} ({reason})"
        super().__init__(message)


class EncryptionFailure(AppConfigError):
    """Raised when the cipher fails while producing a container."""


class RepositoryError(AppConfigError, RuntimeError):
    """Raised when a git operation (clone, checkout, commit, push) fails."""


class FilesystemError(AppConfigError):
    """Raised when a copy, mkdir or remove fails."""

from dataclasses import dataclass, field
from pathlib import Path, PurePosixPath, PureWindowsPath

from .constants import DEFAULT_REF
from .exceptions import InvalidInputError


def validate_relative_path(value: str) -> str:
    """Rejects paths that could escape the roots they are joined onto.

    Args:
        value (str): A file path relative to the project and repository subtree.

    Returns:
        str: The unchanged path.

    Raises:
        InvalidInputError: If the path is empty, absolute, or contains '..'.
    """
    if not value or not value.strip():
        raise InvalidInputError("File paths must not be empty")
    posix = PurePosixPath(value)
    windows = PureWindowsPath(value)
    if posix.is_absolute() or windows.is_absolute() or windows.drive:
        raise InvalidInputError(f"File paths must be relative: {value}")
    if ".." in posix.parts or ".." in windows.parts:
        raise InvalidInputError(f"File paths must not contain '..': {value}")
    return value


@dataclass(frozen=True)
class BundleSpec:
    """The immutable input of a single pull or push.

    Attributes:
        bundle_id (str): The application identifier; names the bundle subtree.
        repository_url (str): The configuration repository to clone.
        passphrase (str): The shared secret for encrypted files.
        bundled_files (tuple[str, ...]): Plain files under `<bundle_id>/`.
        bundled_encrypted_files (tuple[str, ...]): Encrypted files under `<bundle_id>/`.
        common_files (tuple[str, ...]): Plain files under `common/`.
        common_encrypted_files (tuple[str, ...]): Encrypted files under `common/`.
        ref (str): The branch, tag or commit to sync against.
        local_project_root (Path): The project directory files are copied to/from.
    """

    bundle_id: str
    repository_url: str
    passphrase: str = ""
    bundled_files: tuple[str, ...] = ()
    bundled_encrypted_files: tuple[str, ...] = ()
    common_files: tuple[str, ...] = ()
    common_encrypted_files: tuple[str, ...] = ()
    ref: str = DEFAULT_REF
    local_project_root: Path = field(default_factory=Path.cwd)

    def __post_init__(self) -> None:
        # Accept any iterable for the file lists and freeze them.
        for name in (
            "bundled_files",
            "bundled_encrypted_files",
            "common_files",
            "common_encrypted_files",
        ):
            value = getattr(self, name)
            if isinstance(value, str):
                raise InvalidInputError(f"{name} must be a list of paths, not a string")
            object.__setattr__(
                self, name, tuple(validate_relative_path(p) for p in value)
            )
        object.__setattr__(self, "local_project_root", Path(self.local_project_root))

        if not self.bundle_id:
            raise InvalidInputError("bundle_id is required")
        validate_relative_path(self.bundle_id)
        if not self.repository_url:
            raise InvalidInputError("repository_url is required")
        if not self.ref:
            raise InvalidInputError("ref must not be empty")
        if self.has_encrypted_files and not self.passphrase:
            raise InvalidInputError(
                "A passphrase is required when encrypted files are listed"
            )

    @property
    def has_encrypted_files(self) -> bool:
        return bool(self.bundled_encrypted_files or self.common_encrypted_files)

    @property
    def all_files(self) -> tuple[str, ...]:
        return (
            self.bundled_files
            + self.bundled_encrypted_files
            + self.common_files
            + self.common_encrypted_files
        )

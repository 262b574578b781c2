"""Maps the logical file lists of a bundle onto the repository and project trees.

The configuration repository keeps one subtree per bundle (`<bundle_id>/...`)
and a shared `common/...` subtree. Both mirror the relative paths listed in a
`BundleSpec`, and the project side is always `local_project_root/<path>`.
"""

import logging
import shutil
from dataclasses import dataclass
from enum import Enum
from pathlib import Path

from .constants import APP_NAME, COMMON_DIR
from .exceptions import FilesystemError
from .models import BundleSpec

logger = logging.getLogger(APP_NAME)


class Direction(Enum):
    """Which way files flow for a transfer."""

    PULL = "pull"  # repository -> project
    PUSH = "push"  # project -> repository


class Category(Enum):
    """The four file lists of a bundle, in execution order."""

    BUNDLED = "bundled_files"
    BUNDLED_ENCRYPTED = "bundled_encrypted_files"
    COMMON = "common_files"
    COMMON_ENCRYPTED = "common_encrypted_files"

    @property
    def encrypted(self) -> bool:
        return self in (Category.BUNDLED_ENCRYPTED, Category.COMMON_ENCRYPTED)

    @property
    def common(self) -> bool:
        return self in (Category.COMMON, Category.COMMON_ENCRYPTED)


@dataclass(frozen=True)
class FileTransfer:
    """A single planned copy.

    Attributes:
        source (Path): The file read from.
        destination (Path): The file written to.
        encrypted (bool): Whether the repository side holds an encrypted container.
        category (Category): The list the path came from.
    """

    source: Path
    destination: Path
    encrypted: bool
    category: Category


def resolve_bundle_root(repo_root: Path, bundle_id: str) -> Path:
    return repo_root / bundle_id


def resolve_common_root(repo_root: Path) -> Path:
    return repo_root / COMMON_DIR


def plan_transfers(
    spec: BundleSpec, repo_root: Path, direction: Direction
) -> list[FileTransfer]:
    """Builds the source/destination pairs for every file of a bundle.

    Args:
        spec (BundleSpec): The bundle being synchronized.
        repo_root (Path): The root of the repository checkout.
        direction (Direction): PULL copies repository -> project, PUSH the reverse.

    Returns:
        list[FileTransfer]: Transfers ordered bundled, bundled encrypted,
                            common, common encrypted; each list keeps its order.
    """
    bundle_root = resolve_bundle_root(repo_root, spec.bundle_id)
    common_root = resolve_common_root(repo_root)
    project_root = spec.local_project_root

    plan = []
    for category in Category:
        remote_root = common_root if category.common else bundle_root
        for relative in getattr(spec, category.value):
            remote = remote_root / relative
            local = project_root / relative
            if direction is Direction.PULL:
                source, destination = remote, local
            else:
                source, destination = local, remote
            plan.append(FileTransfer(source, destination, category.encrypted, category))
    return plan


def copy_file(source: Path, destination: Path) -> None:
    """Overwrites `destination` with the bytes of `source`, creating parents.

    Raises:
        FilesystemError: If the source is missing or the destination is unwritable.
    """
    if not source.is_file():
        raise FilesystemError(f"File not found: {source}")
    try:
        destination.parent.mkdir(parents=True, exist_ok=True)
        shutil.copyfile(source, destination)
    except OSError as e:
        raise FilesystemError(f"Cannot copy {source} to {destination}: {e}") from e
    logger.debug(f"Copied {source} -> {destination}")

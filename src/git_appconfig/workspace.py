import logging
import os
import secrets
import shutil
from pathlib import Path
from types import TracebackType

from .constants import APP_NAME, DEFAULT_WORKSPACE_DIR
from .exceptions import FilesystemError

logger = logging.getLogger(APP_NAME)


class Workspace:
    """A scratch directory holding a repository checkout for one operation.

    The directory is wiped before use, in case a previous run crashed before
    cleaning up, and removed again when the operation ends. Use it as a context
    manager so release happens on every exit path.

    Attributes:
        path (Path): The scratch directory.
    """

    def __init__(self, path: Path):
        self.path = Path(path)

    @classmethod
    def for_project(
        cls,
        project_root: Path,
        directory: str = DEFAULT_WORKSPACE_DIR,
        isolate: bool = True,
    ) -> "Workspace":
        """Builds the workspace for a project directory.

        Args:
            project_root (Path): The directory the scratch area is created in.
            directory (str, optional): The scratch directory name. Defaults to '.tmp'.
            isolate (bool, optional): Append a per-invocation suffix so concurrent
                                      operations never share a path. Defaults to True.

        Returns:
            Workspace: The (not yet acquired) workspace.
        """
        name = directory
        if isolate:
            name = f"{directory}-{os.getpid()}-{secrets.token_hex(4)}"
        return cls(Path(project_root) / name)

    def acquire(self) -> Path:
        """Removes any leftover scratch directory and creates a fresh one.

        Returns:
            Path: The scratch directory.
        """
        if self.path.exists():
            logger.warning(f"Removing stale workspace {self.path}")
            self._remove()
        try:
            self.path.mkdir(parents=True)
        except OSError as e:
            raise FilesystemError(f"Cannot create workspace {self.path}: {e}") from e
        logger.debug(f"Acquired workspace {self.path}")
        return self.path

    def release(self) -> None:
        """Removes the scratch directory. Safe to call repeatedly."""
        if not self.path.exists():
            return
        self._remove()
        logger.debug(f"Released workspace {self.path}")

    def _remove(self) -> None:
        try:
            shutil.rmtree(self.path)
        except FileNotFoundError:
            return
        except OSError as e:
            raise FilesystemError(f"Cannot remove workspace {self.path}: {e}") from e

    def __enter__(self) -> Path:
        return self.acquire()

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.release()

    def __repr__(self) -> str:
        return f"Workspace({str(self.path)!r})"

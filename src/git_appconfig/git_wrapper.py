import logging
import subprocess
from pathlib import Path

from .constants import APP_NAME
from .exceptions import RepositoryError

logger = logging.getLogger(APP_NAME)


def _git(args: list[str], cwd: Path | None = None, capture: bool = True) -> str:
    """Executes a git command, translating failures into `RepositoryError`.

    Args:
        args (list[str]): A list of arguments to pass to the git command.
        cwd (Path | None, optional): The working directory. Defaults to None.
        capture (bool, optional): Whether to capture and return stdout.
                                  Defaults to True.

    Returns:
        str:    The stripped stdout of the command if capture is True,
                otherwise an empty string.

    Raises:
        RepositoryError: If git is missing or the command exits non-zero.
    """
    try:
        res = subprocess.run(
            ["git", *args],
            cwd=cwd,
            capture_output=capture,
            text=True,
            check=True,
        )
        return res.stdout.strip() if capture else ""
    except FileNotFoundError as e:
        raise RepositoryError("Git executable not found") from e
    except subprocess.CalledProcessError as e:
        detail = (e.stderr or "").strip() or str(e)
        raise RepositoryError(f"Git error: {detail}") from e


def repo_name_from_url(url: str) -> str:
    """Derives the checkout directory name from a repository URL.

    Handles HTTPS (https://host/team/config.git), SSH (git@host:team/config.git)
    and local paths. The '.git' suffix is kept, as the last path segment is used
    verbatim.

    Args:
        url (str): The repository URL.

    Returns:
        str: The last path segment of the URL.

    Raises:
        RepositoryError: If no name can be derived.
    """
    tail = url.rstrip("/\\").replace("\\", "/").rsplit("/", 1)[-1]
    # scp-style SSH URLs with no slash: git@host:config.git
    if ":" in tail:
        tail = tail.rsplit(":", 1)[-1]
    if not tail or tail in (".", ".."):
        raise RepositoryError(f"Cannot derive a repository name from '{url}'")
    return tail


class GitRepo:
    """A wrapper around the Git command-line interface for a specific checkout.

    This class covers the operations needed to synchronize configuration
    bundles: clone, checkout (or branch creation), staging, commit and push.

    Attributes:
        path (Path): The file system path to the repository root.
    """

    def __init__(self, path: Path):
        """Initializes the GitRepo instance.

        Args:
            path (Path): The path to the repository root directory.

        Raises:
            RepositoryError: If the specified path does not contain a .git directory.
        """
        self.path = Path(path)
        if not (self.path / ".git").exists():
            raise RepositoryError(f"Not a git repository: {self.path}")

    @classmethod
    def clone(cls, url: str, destination: Path) -> "GitRepo":
        """Clones a repository into `destination`.

        Args:
            url (str): The repository URL or path.
            destination (Path): The directory to create for the checkout.

        Returns:
            GitRepo: The wrapper for the new checkout.
        """
        logger.info(f"Cloning {url} into {destination}")
        _git(["clone", "--quiet", url, str(destination)])
        return cls(destination)

    def _run(self, args: list[str], capture: bool = True) -> str:
        """Executes a Git command within the repository context."""
        return _git(args, cwd=self.path, capture=capture)

    def current_branch(self) -> str:
        """Retrieves the name of the currently checked-out branch.

        Returns:
            str: The name of the current branch (empty when HEAD is detached).
        """
        return self._run(["branch", "--show-current"])

    def checkout(self, ref: str) -> None:
        """Checks out a branch, tag or commit.

        Args:
            ref (str): The target reference.

        Raises:
            RepositoryError: If the reference does not exist.
        """
        self._run(["checkout", "--quiet", ref])

    def create_branch(self, name: str) -> None:
        """Creates a new local branch from HEAD and switches to it.

        Args:
            name (str): The branch name.
        """
        self._run(["checkout", "--quiet", "-b", name])

    def add_all(self) -> None:
        """
        Stages all changes (modified, deleted, and untracked files)
        in the working directory.
        """
        self._run(["add", "--all"], capture=False)

    def has_staged_changes(self) -> bool:
        """Reports whether the index differs from HEAD.

        On an unborn branch (empty repository) anything staged counts.
        """
        if self.rev_parse("HEAD") is None:
            return bool(self._run(["ls-files", "--cached"]))
        try:
            self._run(["diff", "--cached", "--quiet"])
        except RepositoryError:
            return True
        return False

    def commit(self, message: str) -> None:
        """Creates a new commit with the provided message.

        Args:
            message (str): The commit message.
        """
        self._run(["commit", "--quiet", "-m", message])

    def push(self, remote: str, ref: str) -> None:
        """Pushes HEAD to `ref` on `remote`.

        Args:
            remote (str): The remote name (e.g., 'origin').
            ref (str): The branch name to publish to.
        """
        logger.info(f"Pushing to {remote}/{ref}")
        self._run(["push", "--quiet", remote, f"HEAD:refs/heads/{ref}"])

    def rev_parse(self, rev: str) -> str | None:
        """Resolves a revision (tag, branch, relative ref) to a full SHA-1 hash.

        Args:
            rev (str): The revision to parse (e.g., 'HEAD', 'master').

        Returns:
            Optional[str]:  The full SHA-1 hash,
                            or None if the revision could not be resolved.
        """
        try:
            return self._run(["rev-parse", "--verify", "--quiet", f"{rev}^{{commit}}"])
        except RepositoryError as e:
            logger.debug(f"rev-parse failed for '{rev}': {e}")
            return None

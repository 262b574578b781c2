import logging
from collections.abc import Callable, Iterator, Sequence
from contextlib import contextmanager
from dataclasses import dataclass, field
from enum import Enum

from . import crypto
from .constants import (
    APP_NAME,
    COMMIT_MESSAGE,
    DEFAULT_DIGESTS,
    DEFAULT_REMOTE,
    V2_DEFAULT_ITERATIONS,
)
from .crypto import ContainerFormat
from .exceptions import FilesystemError, RepositoryError
from .git_wrapper import GitRepo, repo_name_from_url
from .mapper import Direction, FileTransfer, copy_file, plan_transfers
from .models import BundleSpec
from .workspace import Workspace

logger = logging.getLogger(APP_NAME)

Reporter = Callable[[BundleSpec, str], None]


class SyncState(Enum):
    """Progress of a pull or push. DONE and ABORTED are terminal."""

    INIT = "init"
    CLONED = "cloned"
    TRANSFERRED = "transferred"
    COMMITTED = "committed"
    DONE = "done"
    ABORTED = "aborted"


@dataclass
class SyncResult:
    """Outcome of a pull or push.

    Attributes:
        direction (Direction): PULL or PUSH.
        state (SyncState): The last state reached.
        transfers (list[FileTransfer]): Transfers completed, in order.
        branch_created (bool): Whether push created `ref` as a new branch.
        committed (bool): Whether push created a commit.
        pushed (bool): Whether push published `ref` to the remote.
    """

    direction: Direction
    state: SyncState = SyncState.INIT
    transfers: list[FileTransfer] = field(default_factory=list)
    branch_created: bool = False
    committed: bool = False
    pushed: bool = False


class SyncEngine:
    """Synchronizes a bundle between a project directory and a config repository.

    Each operation clones the repository into the workspace, copies the planned
    files (decrypting on pull, encrypting on push) and, for push, commits and
    publishes the result. The workspace is released whatever the outcome; files
    already written before a failure are left in place.
    """

    def __init__(
        self,
        workspace: Workspace,
        git: type[GitRepo] = GitRepo,
        reporter: Reporter | None = None,
        remote: str = DEFAULT_REMOTE,
        container_format: ContainerFormat = ContainerFormat.LEGACY,
        kdf_iterations: int = V2_DEFAULT_ITERATIONS,
        digests: Sequence[str] = DEFAULT_DIGESTS,
    ):
        self.workspace = workspace
        self.git = git
        self.reporter = reporter
        self.remote = remote
        self.container_format = ContainerFormat(container_format)
        self.kdf_iterations = kdf_iterations
        self.digests = tuple(digests)

    def pull(self, spec: BundleSpec) -> SyncResult:
        """Fetches the bundle and common files into the project, decrypting as needed.

        The checkout of `spec.ref` must succeed; pull never creates refs.

        Args:
            spec (BundleSpec): The bundle to fetch.

        Returns:
            SyncResult: The completed operation.
        """
        result = SyncResult(Direction.PULL)
        self._report(spec, "Pull Config")

        with self._operation(result):
            repo = self._clone(spec)
            repo.checkout(spec.ref)
            self._advance(result, SyncState.CLONED)

            for transfer in plan_transfers(spec, repo.path, Direction.PULL):
                if transfer.encrypted:
                    crypto.decrypt_to(
                        transfer.source,
                        transfer.destination,
                        spec.passphrase,
                        digests=self.digests,
                    )
                else:
                    copy_file(transfer.source, transfer.destination)
                result.transfers.append(transfer)
            self._advance(result, SyncState.TRANSFERRED)

        return result

    def push(self, spec: BundleSpec) -> SyncResult:
        """Publishes the project's bundle and common files to the repository.

        If `spec.ref` cannot be checked out, a new local branch of that name is
        created and pushed instead.

        Args:
            spec (BundleSpec): The bundle to publish.

        Returns:
            SyncResult: The completed operation.
        """
        result = SyncResult(Direction.PUSH)
        self._report(spec, "Push Config")

        with self._operation(result):
            repo = self._clone(spec)
            try:
                repo.checkout(spec.ref)
            except RepositoryError as e:
                logger.info(f"Ref '{spec.ref}' not found, creating branch ({e})")
                repo.create_branch(spec.ref)
                result.branch_created = True
            logger.debug(f"Working on branch '{repo.current_branch() or spec.ref}'")
            self._advance(result, SyncState.CLONED)

            for transfer in plan_transfers(spec, repo.path, Direction.PUSH):
                copy_file(transfer.source, transfer.destination)
                if transfer.encrypted:
                    crypto.encrypt_file(
                        transfer.destination,
                        spec.passphrase,
                        fmt=self.container_format,
                        iterations=self.kdf_iterations,
                    )
                result.transfers.append(transfer)
            self._advance(result, SyncState.TRANSFERRED)

            repo.add_all()
            if repo.has_staged_changes():
                repo.commit(COMMIT_MESSAGE.format(bundle_id=spec.bundle_id))
                result.committed = True
                self._advance(result, SyncState.COMMITTED)
            else:
                logger.info(f"Nothing to commit for {spec.bundle_id}")

            # A new branch is published even when it matches its base.
            if result.committed or result.branch_created:
                repo.push(self.remote, spec.ref)
                result.pushed = True

        return result

    def _report(self, spec: BundleSpec, title: str) -> None:
        if self.reporter is not None:
            self.reporter(spec, title)

    def _clone(self, spec: BundleSpec) -> GitRepo:
        destination = self.workspace.path / repo_name_from_url(spec.repository_url)
        return self.git.clone(spec.repository_url, destination)

    @staticmethod
    def _advance(result: SyncResult, state: SyncState) -> None:
        logger.debug(f"{result.direction.value}: {result.state.value} -> {state.value}")
        result.state = state

    @contextmanager
    def _operation(self, result: SyncResult) -> Iterator[None]:
        """Scopes one operation to the workspace, releasing it on every exit path."""
        try:
            self.workspace.acquire()
            yield
        except BaseException as e:
            logger.info(f"{result.direction.value} aborted in state {result.state.value}: {e}")
            self._advance(result, SyncState.ABORTED)
            try:
                self.workspace.release()
            except FilesystemError as cleanup_error:
                logger.warning(f"Workspace cleanup failed after abort: {cleanup_error}")
            raise

        self.workspace.release()
        self._advance(result, SyncState.DONE)

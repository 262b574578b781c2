import argparse
import logging
import os
import sys
from dataclasses import replace
from logging.handlers import RotatingFileHandler
from pathlib import Path

from rich.console import Console
from rich.prompt import Prompt
from rich.table import Table

from . import crypto, report
from .config import Config, parse_format
from .constants import (
    APP_NAME,
    CONFIG_FILE,
    ENV_BUNDLE_ID,
    ENV_GIT_REF,
    ENV_GIT_REPO,
    ENV_PASSPHRASE,
    LOCAL_CONFIG_NAME,
    LOG_FILE,
)
from .engine import SyncEngine, SyncResult
from .exceptions import AppConfigError, FilesystemError
from .workspace import Workspace

logger = logging.getLogger(APP_NAME)
console = Console()
err_console = Console(stderr=True)


def setup_logging(verbose: bool, config: Config | None = None) -> None:
    """Configures the logging subsystem.

    Args:
        verbose (bool): Emit debug messages to stderr.
        config (Config | None): When given, also write to the rotating log file
                                bounded by `limits.max_log_size`.
    """
    logger.setLevel(logging.DEBUG)
    logger.handlers.clear()

    formatter = logging.Formatter(
        "[%(asctime)s] %(levelname)s: %(message)s", "%Y-%m-%d %H:%M:%S"
    )

    stream_handler = logging.StreamHandler(sys.stderr)
    stream_handler.setLevel(logging.DEBUG if verbose else logging.WARNING)
    stream_handler.setFormatter(formatter)
    logger.addHandler(stream_handler)

    if config is not None:
        try:
            LOG_FILE.parent.mkdir(parents=True, exist_ok=True)
            file_handler = RotatingFileHandler(
                LOG_FILE,
                maxBytes=config.limits.max_log_size,
                backupCount=5,
            )
        except OSError as e:
            logger.warning(f"File logging disabled: {e}")
            return
        file_handler.setLevel(logging.INFO)
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)


def _apply_overrides(conf: Config, args: argparse.Namespace) -> None:
    """Layers command-line flags over the loaded configuration."""
    conf.bundle = replace(conf.bundle)
    conf.workspace = replace(conf.workspace)
    conf.crypto = replace(conf.crypto)
    b = conf.bundle
    if args.bundle_id:
        b.bundle_id = args.bundle_id
    if args.git_repo:
        b.git_repo = args.git_repo
    if args.git_ref:
        b.git_ref = args.git_ref
    if args.project_path:
        b.project_path = args.project_path
    if args.passphrase:
        b.passphrase = args.passphrase
    for key in (
        "bundled_files",
        "bundled_encrypted_files",
        "common_files",
        "common_encrypted_files",
    ):
        values = getattr(args, key)
        if values:
            setattr(b, key, values)
    if args.workspace:
        conf.workspace.directory = args.workspace
    if args.no_isolate:
        conf.workspace.isolate = False
    if getattr(args, "format", None):
        conf.crypto.format = parse_format(args.format)


def build_engine(conf: Config) -> SyncEngine:
    """Creates a `SyncEngine` wired to the configured workspace and reporter."""
    workspace = Workspace.for_project(
        conf.project_root,
        directory=conf.workspace.directory,
        isolate=conf.workspace.isolate,
    )
    return SyncEngine(
        workspace,
        reporter=report.print_parameters,
        remote=conf.core.remote_name,
        container_format=conf.crypto.format,
        kdf_iterations=conf.crypto.kdf_iterations,
    )


def run_sync(conf: Config, direction: str) -> SyncResult:
    """Runs a pull or push for the configured bundle.

    Args:
        conf (Config): The merged configuration.
        direction (str): 'pull' or 'push'.

    Returns:
        SyncResult: The completed operation.
    """
    spec = conf.to_bundle_spec()
    engine = build_engine(conf)

    if direction == "pull":
        with console.status("Pulling configuration...", spinner="dots"):
            result = engine.pull(spec)
        console.print(
            f"[bold green]✔ Pulled {len(result.transfers)} file(s) "
            f"for {spec.bundle_id}.[/bold green]"
        )
        return result

    with console.status("Pushing configuration...", spinner="dots"):
        result = engine.push(spec)
    if result.branch_created:
        console.print(f"[blue]INFO:[/blue] Created branch '{spec.ref}'.")
    if result.committed:
        console.print(
            f"[bold green]✔ Pushed {len(result.transfers)} file(s) "
            f"for {spec.bundle_id} to {spec.ref}.[/bold green]"
        )
    elif result.pushed:
        console.print(f"[bold green]✔ Published branch '{spec.ref}' with no changes.[/bold green]")
    else:
        console.print("[dim]No changes to push.[/dim]")
    return result


def _resolve_passphrase(args: argparse.Namespace) -> str:
    passphrase = args.passphrase or os.environ.get(ENV_PASSPHRASE)
    if not passphrase:
        passphrase = Prompt.ask("Passphrase", password=True, console=console)
    return passphrase


def encrypt_command(args: argparse.Namespace) -> None:
    """Encrypts a single file in place, or into `--output`."""
    source = Path(args.path)
    passphrase = _resolve_passphrase(args)
    fmt = parse_format(args.format) if args.format else Config.load().crypto.format

    if args.output:
        target = Path(args.output)
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_bytes(source.read_bytes())
        except OSError as e:
            raise FilesystemError(f"Cannot copy {source} to {target}: {e}") from e
    else:
        target = source

    crypto.encrypt_file(target, passphrase, fmt=fmt)
    console.print(f"[bold green]✔ Encrypted {target}.[/bold green]")


def decrypt_command(args: argparse.Namespace) -> None:
    """Decrypts a single file in place, or into `--output`."""
    source = Path(args.path)
    target = Path(args.output) if args.output else source
    crypto.decrypt_to(source, target, _resolve_passphrase(args))
    console.print(f"[bold green]✔ Decrypted {target}.[/bold green]")


def show_config_reference() -> None:
    """Displays every configuration option, where it is read from, and its default."""
    table = Table(title="Configuration Reference")
    table.add_column("Section", style="cyan")
    table.add_column("Key", style="bold")
    table.add_column("Default")
    table.add_column("Description")

    rows = [
        ("bundle", "bundle_id", "-", f"The bundle id of the configuration (${ENV_BUNDLE_ID})"),
        ("bundle", "git_repo", "-", f"Repository storing the configurations (${ENV_GIT_REPO})"),
        ("bundle", "git_ref", "master", f"Tag, branch or commit to sync (${ENV_GIT_REF})"),
        ("bundle", "passphrase", "-", f"Passphrase for encrypted files (${ENV_PASSPHRASE})"),
        ("bundle", "project_path", ".", "Project directory relative to the root directory"),
        ("bundle", "bundled_files", "[]", "Files stored in the bundle folder"),
        ("bundle", "bundled_encrypted_files", "[]", "Encrypted files stored in the bundle folder"),
        ("bundle", "common_files", "[]", "Files stored in the common folder"),
        ("bundle", "common_encrypted_files", "[]", "Encrypted files stored in the common folder"),
        ("core", "remote_name", "origin", "Remote that push publishes to"),
        ("crypto", "format", "legacy", "Container for new files: legacy or v2"),
        ("crypto", "kdf_iterations", "600000", "PBKDF2 iterations for v2 containers"),
        ("workspace", "directory", ".tmp", "Scratch directory inside the project"),
        ("workspace", "isolate", "true", "Unique scratch directory per invocation"),
        ("limits", "max_log_size", "5MB", "Log file size before rotation"),
    ]
    for row in rows:
        table.add_row(*row)

    console.print(table)
    console.print(
        f"[dim]Read from {CONFIG_FILE}, then ./{LOCAL_CONFIG_NAME} "
        "(or \\[tool.appconfig] in pyproject.toml), then the environment.[/dim]"
    )


def _add_sync_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--bundle-id", help="The bundle id of the configuration")
    parser.add_argument("--git-repo", help="The configuration repository URL")
    parser.add_argument("--git-ref", help="Tag, branch or commit (default: master)")
    parser.add_argument("--project-path", help="Project directory (default: .)")
    parser.add_argument("--passphrase", help=f"Passphrase (prefer ${ENV_PASSPHRASE})")
    parser.add_argument(
        "--bundled-file",
        dest="bundled_files",
        action="append",
        metavar="PATH",
        help="File stored in the bundle folder (repeatable)",
    )
    parser.add_argument(
        "--bundled-encrypted-file",
        dest="bundled_encrypted_files",
        action="append",
        metavar="PATH",
        help="Encrypted file stored in the bundle folder (repeatable)",
    )
    parser.add_argument(
        "--common-file",
        dest="common_files",
        action="append",
        metavar="PATH",
        help="File stored in the common folder (repeatable)",
    )
    parser.add_argument(
        "--common-encrypted-file",
        dest="common_encrypted_files",
        action="append",
        metavar="PATH",
        help="Encrypted file stored in the common folder (repeatable)",
    )
    parser.add_argument("--workspace", help="Scratch directory name (default: .tmp)")
    parser.add_argument(
        "--no-isolate",
        action="store_true",
        help="Reuse the shared scratch directory instead of a unique one",
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog=APP_NAME,
        description="Synchronize encrypted app configuration bundles with a git repository.",
    )
    parser.add_argument(
        "-v", "--verbose", action="store_true", help="Show debug output"
    )
    subparsers = parser.add_subparsers(dest="command")

    pull_parser = subparsers.add_parser(
        "pull", help="Pull bundle and common files, decrypting as needed"
    )
    _add_sync_arguments(pull_parser)

    push_parser = subparsers.add_parser(
        "push", help="Push bundle and common files, encrypting as needed"
    )
    _add_sync_arguments(push_parser)
    push_parser.add_argument(
        "--format", choices=["legacy", "v2"], help="Container format for encrypted files"
    )

    encrypt_parser = subparsers.add_parser("encrypt", help="Encrypt a single file")
    encrypt_parser.add_argument("path", help="File to encrypt")
    encrypt_parser.add_argument("--output", "-o", help="Write here instead of in place")
    encrypt_parser.add_argument("--passphrase", help=f"Passphrase (prefer ${ENV_PASSPHRASE})")
    encrypt_parser.add_argument("--format", choices=["legacy", "v2"], help="Container format")

    decrypt_parser = subparsers.add_parser("decrypt", help="Decrypt a single file")
    decrypt_parser.add_argument("path", help="File to decrypt")
    decrypt_parser.add_argument("--output", "-o", help="Write here instead of in place")
    decrypt_parser.add_argument("--passphrase", help=f"Passphrase (prefer ${ENV_PASSPHRASE})")

    config_parser = subparsers.add_parser("config", help="View configuration options")
    config_parser.add_argument(
        "--list",
        "-l",
        action="store_true",
        help="List all available configuration options and their descriptions",
    )
    return parser


def main(argv: list[str] | None = None) -> None:
    """Main entry point for the git-appconfig CLI."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return

    if args.command == "config":
        if args.list:
            show_config_reference()
        else:
            console.print(f"Global config: [cyan]{CONFIG_FILE}[/cyan]")
            console.print(f"Project config: [cyan]{LOCAL_CONFIG_NAME}[/cyan]")
        return

    conf = Config.load()
    setup_logging(args.verbose, conf)

    try:
        if args.command in ("pull", "push"):
            _apply_overrides(conf, args)
            run_sync(conf, args.command)
        elif args.command == "encrypt":
            encrypt_command(args)
        elif args.command == "decrypt":
            decrypt_command(args)
    except AppConfigError as e:
        # Below the stream threshold unless --verbose.
        logger.info(f"{type(e).__name__}: {e}")
        err_console.print(f"[bold red]ERROR:[/bold red] {type(e).__name__}: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()

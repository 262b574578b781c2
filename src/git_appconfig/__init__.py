"""git-appconfig: encrypted configuration bundles synchronized through git.

This package provides the command-line interface, the OpenSSL-compatible file
cipher, and the pull/push engine that moves per-application configuration
between a project directory and a shared configuration repository.
"""

from . import (
    cli,
    config,
    constants,
    crypto,
    engine,
    exceptions,
    git_wrapper,
    mapper,
    models,
    report,
    workspace,
)

__all__ = [
    "cli",
    "config",
    "constants",
    "crypto",
    "engine",
    "exceptions",
    "git_wrapper",
    "mapper",
    "models",
    "report",
    "workspace",
]

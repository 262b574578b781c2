import os
from pathlib import Path

"""Global constants and path definitions for git-appconfig.

This module defines the filesystem layout (adhering to XDG standards where applicable),
the configuration repository layout, environment variable names, and the
cryptographic constants of the container formats.
"""

# --- Identity ---
APP_NAME = "git-appconfig"
"""str: The human-readable application name."""

# --- Paths ---
_XDG_STATE = os.environ.get("XDG_STATE_HOME")
_BASE_STATE = Path(_XDG_STATE) if _XDG_STATE else Path.home() / ".local/state"

STATE_DIR = _BASE_STATE / "git-appconfig"
"""Path: The directory for runtime state data (logs)."""

LOG_FILE = STATE_DIR / "appconfig.log"
"""Path: The file path for persistent logs."""

# --- Configuration Paths ---
CONFIG_DIR: Path = Path.home() / ".config/git-appconfig"
"""Path: The directory for user configuration files."""

CONFIG_FILE: Path = CONFIG_DIR / "config.toml"
"""Path: The global configuration file path."""

LOCAL_CONFIG_NAME = "appconfig.toml"
"""str: The per-project configuration file name."""

PYPROJECT_SECTION = "tool.appconfig"
"""str: The pyproject.toml section read when no local config file exists."""

# --- Environment ---
ENV_BUNDLE_ID = "APPCONFIG_BUNDLE_ID"
ENV_GIT_REPO = "APPCONFIG_GIT_REPO"
ENV_GIT_REF = "APPCONFIG_GIT_REF"
ENV_PASSPHRASE = "APPCONFIG_PASSPHRASE"

# --- Repository Layout ---
COMMON_DIR = "common"
"""str: The repository subtree holding files shared by every bundle."""

DEFAULT_REF = "master"
"""str: The git reference used when none is configured."""

DEFAULT_REMOTE = "origin"
"""str: The remote that push publishes to."""

DEFAULT_WORKSPACE_DIR = ".tmp"
"""str: The scratch directory name, relative to the project root."""

COMMIT_MESSAGE = "[AppConfig] Updating files for {bundle_id}"
"""str: Template for the commit created by push."""

# --- Crypto ---
LEGACY_MAGIC = b"Salted__"
"""bytes: The 8-byte marker opening every legacy container."""

LEGACY_SALT_SIZE = 8
LEGACY_KEY_SIZE = 32
LEGACY_IV_SIZE = 16

DEFAULT_DIGESTS = ("md5", "sha256")
"""
tuple[str, ...]: Key derivation digests tried, in order, when decrypting a
legacy container. OpenSSL 1.0.x defaulted to MD5 and 1.1.0c onwards to SHA-256,
and the container does not record which one produced it.
"""

V2_MAGIC = b"AppCfg\x00\x02"
"""bytes: The 8-byte marker opening an authenticated (v2) container."""

V2_SALT_SIZE = 16
V2_NONCE_SIZE = 12
V2_DEFAULT_ITERATIONS = 600_000
"""int: PBKDF2-HMAC-SHA256 iteration count for newly written v2 containers."""

BASE64_LINE_LENGTH = 60
"""int: Characters per line of encoded container text."""

import logging
import os
import re
import tomllib
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any

from .constants import (
    APP_NAME,
    CONFIG_FILE,
    DEFAULT_REF,
    DEFAULT_REMOTE,
    DEFAULT_WORKSPACE_DIR,
    ENV_BUNDLE_ID,
    ENV_GIT_REF,
    ENV_GIT_REPO,
    ENV_PASSPHRASE,
    LOCAL_CONFIG_NAME,
    PYPROJECT_SECTION,
    V2_DEFAULT_ITERATIONS,
)
from .crypto import ContainerFormat
from .exceptions import InvalidInputError
from .models import BundleSpec

logger = logging.getLogger(APP_NAME)


def parse_size(value: int | str) -> int:
    """Converts human-readable size strings (e.g., '100MB') to bytes."""
    if isinstance(value, int):
        return value
    match = re.match(r"^(\d+(?:\.\d+)?)\s*([kmg]b?)$", str(value).strip().lower())
    if not match:
        raise ValueError(f"Invalid size format '{value}'")
    num, unit = float(match.group(1)), match.group(2)
    multiplier = {
        "k": 1024,
        "kb": 1024,
        "m": 1024**2,
        "mb": 1024**2,
        "g": 1024**3,
        "gb": 1024**3,
    }
    return int(num * multiplier[unit])


def parse_format(value: str) -> ContainerFormat:
    """Converts a format name ('legacy' or 'v2') to a `ContainerFormat`."""
    try:
        return ContainerFormat(str(value).strip().lower())
    except ValueError:
        raise ValueError(f"Invalid container format '{value}'") from None


def parse_file_list(value: Any) -> list[str]:
    """Accepts a TOML array or a comma-separated string of paths."""
    if isinstance(value, str):
        return [p.strip() for p in value.split(",") if p.strip()]
    if isinstance(value, list) and all(isinstance(p, str) for p in value):
        return list(value)
    raise ValueError(f"Invalid file list {value!r}")


@dataclass
class CoreConfig:
    """Core application settings.

    Attributes:
        remote_name (str): The git remote push publishes to.
    """

    remote_name: str = DEFAULT_REMOTE


@dataclass
class BundleConfig:
    """The bundle to synchronize.

    Attributes:
        bundle_id (str | None): The application identifier.
        git_repo (str | None): The configuration repository URL.
        git_ref (str): The branch, tag or commit to sync against.
        passphrase (str | None): The shared secret (prefer the environment).
        project_path (str): The project directory, relative to the config root.
        bundled_files (list[str]): Plain files stored under the bundle.
        bundled_encrypted_files (list[str]): Encrypted files stored under the bundle.
        common_files (list[str]): Plain files stored under common/.
        common_encrypted_files (list[str]): Encrypted files stored under common/.
    """

    bundle_id: str | None = None
    git_repo: str | None = None
    git_ref: str = DEFAULT_REF
    passphrase: str | None = None
    project_path: str = "."
    bundled_files: list[str] = field(default_factory=list)
    bundled_encrypted_files: list[str] = field(default_factory=list)
    common_files: list[str] = field(default_factory=list)
    common_encrypted_files: list[str] = field(default_factory=list)


@dataclass
class CryptoConfig:
    """Encryption settings.

    Attributes:
        format (ContainerFormat): Container format for newly encrypted files.
        kdf_iterations (int): PBKDF2 iterations for v2 containers.
    """

    format: ContainerFormat = ContainerFormat.LEGACY
    kdf_iterations: int = V2_DEFAULT_ITERATIONS


@dataclass
class WorkspaceConfig:
    """Scratch directory settings.

    Attributes:
        directory (str): Scratch directory name inside the project root.
        isolate (bool): Give every invocation its own scratch directory.
    """

    directory: str = DEFAULT_WORKSPACE_DIR
    isolate: bool = True


@dataclass
class LimitsConfig:
    """Resource limitation settings.

    Attributes:
        max_log_size (int): Max bytes for log files before rotation.
    """

    max_log_size: int = 5 * 1024 * 1024


_FILE_LIST_KEYS = (
    "bundled_files",
    "bundled_encrypted_files",
    "common_files",
    "common_encrypted_files",
)

_ENV_KEYS = {
    "bundle_id": ENV_BUNDLE_ID,
    "git_repo": ENV_GIT_REPO,
    "git_ref": ENV_GIT_REF,
    "passphrase": ENV_PASSPHRASE,
}


@dataclass
class Config:
    """Global configuration aggregator.

    Attributes:
        core (CoreConfig): Core settings.
        bundle (BundleConfig): The bundle definition.
        crypto (CryptoConfig): Encryption settings.
        workspace (WorkspaceConfig): Scratch directory settings.
        limits (LimitsConfig): Resource limits.
        root (Path): The directory relative paths are resolved against.
    """

    core: CoreConfig = field(default_factory=CoreConfig)
    bundle: BundleConfig = field(default_factory=BundleConfig)
    crypto: CryptoConfig = field(default_factory=CryptoConfig)
    workspace: WorkspaceConfig = field(default_factory=WorkspaceConfig)
    limits: LimitsConfig = field(default_factory=LimitsConfig)
    root: Path = field(default_factory=Path.cwd)

    # Cache for the base global configuration
    _global_cache: "Config | None" = None

    @classmethod
    def load(cls, project_root: Path | None = None) -> "Config":
        """Loads and merges configuration from defaults, global, local and environment.

        Args:
            project_root (Path | None): The directory to search for local config.
                                        Defaults to the current directory.

        Returns:
            Config: The fully merged configuration object.
        """
        # 1. Load or Retrieve Global Config
        if cls._global_cache is None:
            instance = cls()
            if CONFIG_FILE.exists():
                instance._merge_from_file(CONFIG_FILE)
            cls._global_cache = instance

        # Start with a copy of the cached global config
        root = Path(project_root) if project_root else Path.cwd()
        instance = replace(cls._global_cache, root=root)

        # 2. Load Local Config
        local_toml = root / LOCAL_CONFIG_NAME
        pyproject = root / "pyproject.toml"
        if local_toml.exists():
            instance._merge_from_file(local_toml)
        elif pyproject.exists():
            instance._merge_from_file(pyproject, section=PYPROJECT_SECTION)

        # 3. Environment
        instance._merge_from_env()
        return instance

    def _merge_from_file(self, path: Path, section: str | None = None) -> None:
        """Parses a TOML file and merges it into the current instance.

        Args:
            path (Path): Path to the TOML file.
            section (str | None): Dot-separated section path (e.g., 'tool.appconfig').
        """
        try:
            with open(path, "rb") as f:
                data = tomllib.load(f)

            if section:
                for key in section.split("."):
                    data = data.get(key, {})

            if not data:
                return

            for name in ("core", "bundle", "crypto", "workspace", "limits"):
                if name in data:
                    updated = self._update_dataclass(name, getattr(self, name), data[name])
                    setattr(self, name, updated)

        except tomllib.TOMLDecodeError as e:
            logger.error(f"Config syntax error in {path}: {e}")
        except OSError as e:
            logger.warning(f"Failed to load config from {path}: {e}")

    def _merge_from_env(self) -> None:
        updates = {}
        for key, env_name in _ENV_KEYS.items():
            value = os.environ.get(env_name)
            if value:
                updates[key] = value
        if updates:
            self.bundle = replace(self.bundle, **updates)

    @staticmethod
    def _update_dataclass(section_name: str, instance: Any, updates: dict) -> Any:
        """Updates a dataclass, warning on invalid keys and parsing human-readable formats."""
        valid_keys = instance.__dataclass_fields__.keys()
        filtered_updates = {}

        # 1. Catch and warn about typos / unknown keys
        invalid_keys = set(updates.keys()) - set(valid_keys)
        if invalid_keys:
            logger.warning(
                f"Unknown config keys in [{section_name}]: {', '.join(sorted(invalid_keys))}. Ignoring."
            )

        # 2. Process valid keys
        for k, v in updates.items():
            if k not in valid_keys:
                continue

            try:
                if k == "max_log_size":
                    filtered_updates[k] = parse_size(v)
                elif k == "format":
                    filtered_updates[k] = parse_format(v)
                elif k in _FILE_LIST_KEYS:
                    filtered_updates[k] = parse_file_list(v)
                elif k == "kdf_iterations":
                    if not isinstance(v, int) or isinstance(v, bool) or v < 1:
                        raise ValueError(f"Invalid iteration count '{v}'")
                    filtered_updates[k] = v
                else:
                    filtered_updates[k] = v
            except ValueError as e:
                logger.warning(
                    f"Config error in [{section_name}].{k}: {e}. Falling back to default."
                )

        return replace(instance, **filtered_updates)

    @property
    def project_root(self) -> Path:
        return (self.root / self.bundle.project_path).resolve()

    def to_bundle_spec(self) -> BundleSpec:
        """Validates the bundle section and builds a `BundleSpec`.

        Raises:
            InvalidInputError: If a required option is missing or a path is invalid.
        """
        b = self.bundle
        missing = [
            (name, env)
            for name, env in (
                ("bundle_id", ENV_BUNDLE_ID),
                ("git_repo", ENV_GIT_REPO),
                ("passphrase", ENV_PASSPHRASE),
            )
            if not getattr(b, name)
        ]
        if missing:
            hints = ", ".join(f"{name} (or ${env})" for name, env in missing)
            raise InvalidInputError(f"Missing required option(s): {hints}")

        return BundleSpec(
            bundle_id=b.bundle_id,
            repository_url=b.git_repo,
            passphrase=b.passphrase,
            bundled_files=tuple(b.bundled_files),
            bundled_encrypted_files=tuple(b.bundled_encrypted_files),
            common_files=tuple(b.common_files),
            common_encrypted_files=tuple(b.common_encrypted_files),
            ref=b.git_ref or DEFAULT_REF,
            local_project_root=self.project_root,
        )

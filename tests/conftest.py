"""Shared fixtures: isolated git identity and a seeded bare configuration remote."""

import shutil
import subprocess
from pathlib import Path
from typing import Any

import pytest

from git_appconfig import crypto
from git_appconfig.config import Config

PASSPHRASE = "correct horse battery staple"
SECRET_PLIST = b"<plist><dict><key>API_KEY</key><string>s3cr3t</string></dict></plist>\n"
COMMON_ENV = b'{"env": "staging"}\n'
BUNDLE_INFO = b"name=Example\n"


def git(*args: str, cwd: Path | None = None) -> str:
    res = subprocess.run(
        ["git", *args], cwd=cwd, capture_output=True, text=True, check=True
    )
    return res.stdout.strip()


@pytest.fixture(autouse=True)
def clear_config_cache() -> Any:
    """Ensures every test starts with a clean config cache."""
    Config._global_cache = None
    yield
    Config._global_cache = None


@pytest.fixture
def git_env(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    """Gives git a throwaway identity and ignores the user's global config."""
    if shutil.which("git") is None:
        pytest.skip("git is not installed")
    gitconfig = tmp_path / "gitconfig"
    gitconfig.write_text(
        "[user]\n\tname = Test Bot\n\temail = bot@example.com\n"
        "[init]\n\tdefaultBranch = master\n"
    )
    monkeypatch.setenv("GIT_CONFIG_GLOBAL", str(gitconfig))
    monkeypatch.setenv("GIT_CONFIG_NOSYSTEM", "1")


@pytest.fixture
def remote_repo(tmp_path: Path, git_env: None) -> Path:
    """Creates a bare repository whose master holds a bundle and common files.

    Layout on master:
        com.app/info.properties     (plain)
        com.app/Secrets.plist       (legacy container)
        common/env.json             (plain)
    """
    remote = tmp_path / "config.git"
    git("init", "--quiet", "--bare", str(remote))

    seed = tmp_path / "seed"
    git("clone", "--quiet", str(remote), str(seed))
    (seed / "com.app").mkdir()
    (seed / "common").mkdir()
    (seed / "com.app" / "info.properties").write_bytes(BUNDLE_INFO)
    (seed / "com.app" / "Secrets.plist").write_bytes(
        crypto.encrypt(SECRET_PLIST, PASSPHRASE)
    )
    (seed / "common" / "env.json").write_bytes(COMMON_ENV)
    git("add", "--all", cwd=seed)
    git("commit", "--quiet", "-m", "Seed", cwd=seed)
    git("push", "--quiet", "origin", "HEAD:refs/heads/master", cwd=seed)
    shutil.rmtree(seed)
    return remote

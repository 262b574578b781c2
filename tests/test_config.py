"""Tests for the configuration management subsystem."""

import logging
from pathlib import Path
from unittest.mock import MagicMock

import pytest

from git_appconfig.config import Config, parse_file_list, parse_size
from git_appconfig.crypto import ContainerFormat
from git_appconfig.exceptions import InvalidInputError


@pytest.fixture(autouse=True)
def no_global_config(tmp_path: Path, mocker: MagicMock, monkeypatch: pytest.MonkeyPatch) -> None:
    """Points the global config at a missing file and clears the environment."""
    mocker.patch("git_appconfig.config.CONFIG_FILE", tmp_path / "absent.toml")
    for name in (
        "APPCONFIG_BUNDLE_ID",
        "APPCONFIG_GIT_REPO",
        "APPCONFIG_GIT_REF",
        "APPCONFIG_PASSPHRASE",
    ):
        monkeypatch.delenv(name, raising=False)


def test_config_defaults() -> None:
    """Verifies that the configuration initializes with sensible defaults."""
    conf = Config()
    assert conf.core.remote_name == "origin"
    assert conf.bundle.git_ref == "master"
    assert conf.bundle.project_path == "."
    assert conf.bundle.common_files == []
    assert conf.crypto.format is ContainerFormat.LEGACY
    assert conf.workspace.directory == ".tmp"
    assert conf.workspace.isolate is True


def test_config_load_merges_layers(tmp_path: Path, mocker: MagicMock) -> None:
    """Verifies the cascading merge logic (Defaults -> Global -> Local)."""
    global_config_path = tmp_path / "global_config.toml"
    global_config_path.write_text(
        '[core]\nremote_name = "upstream"\n'
        '[bundle]\ngit_repo = "git@host:team/config.git"\ngit_ref = "develop"\n'
    )
    mocker.patch("git_appconfig.config.CONFIG_FILE", global_config_path)

    (tmp_path / "appconfig.toml").write_text(
        '[bundle]\nbundle_id = "com.app"\ngit_ref = "release"\n'
        'common_files = ["env.json"]\n'
        '[crypto]\nformat = "V2"\n'
    )

    conf = Config.load(tmp_path)

    assert conf.core.remote_name == "upstream"  # From Global
    assert conf.bundle.git_repo == "git@host:team/config.git"  # From Global
    assert conf.bundle.git_ref == "release"  # Local overrides Global
    assert conf.bundle.common_files == ["env.json"]
    assert conf.crypto.format is ContainerFormat.V2
    assert conf.root == tmp_path


def test_config_load_from_pyproject(tmp_path: Path) -> None:
    """Verifies that configuration can be loaded from pyproject.toml."""
    (tmp_path / "pyproject.toml").write_text(
        '[tool.appconfig.bundle]\nbundle_id = "com.rn"\nproject_path = "ios"\n'
        '[tool.appconfig.workspace]\nisolate = false\n'
    )

    conf = Config.load(tmp_path)

    assert conf.bundle.bundle_id == "com.rn"
    assert conf.project_root == (tmp_path / "ios").resolve()
    assert conf.workspace.isolate is False


def test_environment_overrides_files(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    """Verifies APPCONFIG_* variables take precedence over config files."""
    (tmp_path / "appconfig.toml").write_text('[bundle]\nbundle_id = "com.file"\n')
    monkeypatch.setenv("APPCONFIG_BUNDLE_ID", "com.env")
    monkeypatch.setenv("APPCONFIG_GIT_REPO", "https://example.com/config.git")
    monkeypatch.setenv("APPCONFIG_PASSPHRASE", "pw")

    conf = Config.load(tmp_path)

    assert conf.bundle.bundle_id == "com.env"
    assert conf.bundle.git_repo == "https://example.com/config.git"
    assert conf.bundle.passphrase == "pw"


def test_global_cache_not_mutated(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    """Verifies per-project loads do not leak into each other through the cache."""
    first = tmp_path / "one"
    second = tmp_path / "two"
    first.mkdir()
    second.mkdir()
    (first / "appconfig.toml").write_text('[bundle]\nbundle_id = "com.one"\n')

    assert Config.load(first).bundle.bundle_id == "com.one"
    assert Config.load(second).bundle.bundle_id is None


def test_to_bundle_spec(tmp_path: Path) -> None:
    """Verifies a complete configuration produces a validated BundleSpec."""
    (tmp_path / "appconfig.toml").write_text(
        "[bundle]\n"
        'bundle_id = "com.app"\n'
        'git_repo = "https://example.com/config.git"\n'
        'passphrase = "pw"\n'
        'project_path = "mobile"\n'
        'bundled_encrypted_files = "Secrets.plist, keys/api.json"\n'
    )

    spec = Config.load(tmp_path).to_bundle_spec()

    assert spec.bundle_id == "com.app"
    assert spec.ref == "master"
    assert spec.bundled_encrypted_files == ("Secrets.plist", "keys/api.json")
    assert spec.local_project_root == (tmp_path / "mobile").resolve()


def test_to_bundle_spec_reports_missing_options(tmp_path: Path) -> None:
    """Verifies missing required options are named along with their env variables."""
    conf = Config.load(tmp_path)

    with pytest.raises(InvalidInputError) as exc:
        conf.to_bundle_spec()

    message = str(exc.value)
    assert "bundle_id (or $APPCONFIG_BUNDLE_ID)" in message
    assert "git_repo (or $APPCONFIG_GIT_REPO)" in message
    assert "passphrase (or $APPCONFIG_PASSPHRASE)" in message


def test_parse_size() -> None:
    """Verifies that human-readable sizes are correctly converted to bytes."""
    assert parse_size(100) == 100
    assert parse_size("100kb") == 102400
    assert parse_size("10 MB") == 10485760

    with pytest.raises(ValueError, match=r"Invalid size format '100 bits'"):
        parse_size("100 bits")


def test_parse_file_list() -> None:
    """Verifies file lists accept arrays and comma-separated strings."""
    assert parse_file_list(["a", "b"]) == ["a", "b"]
    assert parse_file_list("a, b ,,c") == ["a", "b", "c"]

    with pytest.raises(ValueError, match="Invalid file list"):
        parse_file_list([1, 2])


def test_config_invalid_keys_and_values(
    tmp_path: Path, caplog: pytest.LogCaptureFixture
) -> None:
    """Verifies that unknown keys are ignored and invalid values fall back to defaults."""
    caplog.set_level(logging.WARNING)

    (tmp_path / "appconfig.toml").write_text(
        "[crypto]\n"
        'format = "rot13"\n'
        "kdf_iterations = 0\n"
        "[bundle]\n"
        'bundel_id = "typo"\n'
        "[limits]\n"
        'max_log_size = "10 gallons"\n'
    )

    conf = Config.load(tmp_path)

    assert conf.crypto.format is ContainerFormat.LEGACY
    assert conf.crypto.kdf_iterations == 600_000
    assert conf.limits.max_log_size == 5242880
    assert conf.bundle.bundle_id is None

    assert "Unknown config keys in [bundle]: bundel_id" in caplog.text
    assert "Config error in [crypto].format: Invalid container format" in caplog.text
    assert "Config error in [crypto].kdf_iterations" in caplog.text
    assert "Config error in [limits].max_log_size: Invalid size format" in caplog.text


def test_config_syntax_error_is_logged(
    tmp_path: Path, caplog: pytest.LogCaptureFixture
) -> None:
    """Verifies a broken TOML file is reported and defaults are kept."""
    (tmp_path / "appconfig.toml").write_text("[bundle\nbundle_id = ")

    conf = Config.load(tmp_path)

    assert conf.bundle.bundle_id is None
    assert "Config syntax error" in caplog.text

"""Tests for BundleSpec validation."""

from pathlib import Path

import pytest

from git_appconfig.exceptions import InvalidInputError
from git_appconfig.models import BundleSpec


def test_defaults() -> None:
    """Verifies ref defaults to master and the project root to the current directory."""
    spec = BundleSpec(bundle_id="com.app", repository_url="git@host:config.git")
    assert spec.ref == "master"
    assert spec.local_project_root == Path.cwd()
    assert spec.all_files == ()


def test_file_lists_are_frozen() -> None:
    """Verifies list inputs are stored as tuples, preserving order."""
    spec = BundleSpec(
        bundle_id="com.app",
        repository_url="url",
        passphrase="pw",
        bundled_files=["b.txt", "a.txt"],
        common_encrypted_files=["keys.enc"],
    )
    assert spec.bundled_files == ("b.txt", "a.txt")
    assert spec.has_encrypted_files
    assert spec.all_files == ("b.txt", "a.txt", "keys.enc")


def test_passphrase_required_for_encrypted_files() -> None:
    """Verifies encrypted lists without a passphrase are rejected before any I/O."""
    with pytest.raises(InvalidInputError, match="passphrase"):
        BundleSpec(
            bundle_id="com.app",
            repository_url="url",
            bundled_encrypted_files=["Secrets.plist"],
        )


@pytest.mark.parametrize(
    "path",
    ["../secrets.env", "ios/../../etc/passwd", "/etc/passwd", "C:\\keys", "..\\x", ""],
)
def test_unsafe_paths_rejected(path: str) -> None:
    """Verifies traversal, absolute and empty paths are refused."""
    with pytest.raises(InvalidInputError):
        BundleSpec(bundle_id="com.app", repository_url="url", common_files=[path])


def test_string_file_list_rejected() -> None:
    """Verifies a bare string is not silently split into characters."""
    with pytest.raises(InvalidInputError, match="list of paths"):
        BundleSpec(bundle_id="com.app", repository_url="url", bundled_files="a.txt")


@pytest.mark.parametrize(
    ("field", "value"),
    [("bundle_id", ""), ("bundle_id", "../other"), ("repository_url", ""), ("ref", "")],
)
def test_required_fields(field: str, value: str) -> None:
    """Verifies identifiers and the repository URL must be present and safe."""
    kwargs = {"bundle_id": "com.app", "repository_url": "url", field: value}
    with pytest.raises(InvalidInputError):
        BundleSpec(**kwargs)

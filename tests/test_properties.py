from pathlib import Path

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from git_appconfig import crypto
from git_appconfig.exceptions import InvalidInputError, MalformedContainerError
from git_appconfig.models import validate_relative_path

# Strategy: non-empty passwords (the cipher rejects empty ones)
passwords = st.text(min_size=1, max_size=64)


@given(plaintext=st.binary(max_size=4096), password=passwords)
def test_legacy_round_trip(plaintext: bytes, password: str) -> None:
    """
    Property: decrypting what was encrypted with the same password returns the
    original bytes, whatever their length (including block multiples and empty).
    """
    container = crypto.encrypt(plaintext, password)
    assert crypto.decrypt(container, password) == plaintext


@settings(max_examples=25, deadline=None)
@given(plaintext=st.binary(max_size=1024), password=passwords)
def test_v2_round_trip(plaintext: bytes, password: str) -> None:
    """Property: the authenticated format round-trips as well."""
    container = crypto.encrypt(plaintext, password, fmt="v2", iterations=1000)
    assert crypto.decrypt(container, password) == plaintext


@given(plaintext=st.binary(max_size=512), password=passwords)
def test_salt_makes_containers_unique(plaintext: bytes, password: str) -> None:
    """
    Property: encrypting twice yields different containers (fresh random salt)
    that both decrypt to the same plaintext.
    """
    first = crypto.encrypt(plaintext, password)
    second = crypto.encrypt(plaintext, password)

    assert first != second
    assert crypto.decrypt(first, password) == plaintext
    assert crypto.decrypt(second, password) == plaintext


@given(raw=st.binary(max_size=15))
def test_short_containers_never_decrypt(raw: bytes) -> None:
    """Property: any base64 blob under 16 raw bytes is malformed, never a crash."""
    import base64

    with pytest.raises(MalformedContainerError):
        crypto.decrypt(base64.b64encode(raw), "secret")


@given(
    parts=st.lists(
        st.text(alphabet="abcdefghijklmnopqrstuvwxyz0123456789._-", min_size=1),
        min_size=1,
        max_size=5,
    ).filter(lambda ps: all(p not in (".", "..") for p in ps))
)
def test_relative_paths_accepted(parts: list[str]) -> None:
    """Property: plain relative paths without '..' segments pass validation."""
    path = "/".join(parts)
    assert validate_relative_path(path) == path


@given(
    prefix=st.lists(st.sampled_from(["ios", "android", "config"]), max_size=3),
    suffix=st.lists(st.sampled_from(["env.json", "keys"]), max_size=3),
)
def test_traversal_paths_rejected(prefix: list[str], suffix: list[str]) -> None:
    """Property: a '..' segment anywhere in a path is rejected."""
    path = str(Path(*prefix, "..", *suffix))
    with pytest.raises(InvalidInputError):
        validate_relative_path(path)

import base64
import binascii
import hashlib
import logging
import os
import struct
from collections.abc import Sequence
from dataclasses import dataclass
from enum import Enum
from pathlib import Path

from cryptography.exceptions import InvalidTag, UnsupportedAlgorithm
from cryptography.hazmat.primitives import hashes, padding
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from .constants import (
    APP_NAME,
    BASE64_LINE_LENGTH,
    DEFAULT_DIGESTS,
    LEGACY_IV_SIZE,
    LEGACY_KEY_SIZE,
    LEGACY_MAGIC,
    LEGACY_SALT_SIZE,
    V2_DEFAULT_ITERATIONS,
    V2_MAGIC,
    V2_NONCE_SIZE,
    V2_SALT_SIZE,
)
from .exceptions import (
    DecryptionFailure,
    EncryptionFailure,
    FilesystemError,
    InvalidInputError,
    MalformedContainerError,
)

logger = logging.getLogger(APP_NAME)

_LEGACY_HEADER_SIZE = len(LEGACY_MAGIC) + LEGACY_SALT_SIZE
_V2_HEADER = struct.Struct(f">{len(V2_MAGIC)}sI{V2_SALT_SIZE}s{V2_NONCE_SIZE}s")
_V2_TAG_SIZE = 16
_V2_MAX_ITERATIONS = 10_000_000
_BLOCK_SIZE = 16


class ContainerFormat(str, Enum):
    """On-disk encodings of an encrypted file.

    Attributes:
        LEGACY: OpenSSL `enc` compatible `Salted__` container (AES-256-CBC,
            one-round key derivation). Readable by every existing consumer.
        V2: Authenticated container (AES-256-GCM, PBKDF2-HMAC-SHA256 with the
            iteration count stored in the header).
    """

    LEGACY = "legacy"
    V2 = "v2"


@dataclass(frozen=True)
class LegacyKeyDerivation:
    """One candidate way of turning a password and salt into an AES key and IV.

    This is OpenSSL's `EVP_BytesToKey` with a single iteration. The digest is
    the only free parameter, and legacy containers do not record which digest
    produced them.

    Attributes:
        digest (str): A hashlib algorithm name (e.g. 'md5', 'sha256').
    """

    digest: str

    def derive(self, password: bytes, salt: bytes) -> tuple[bytes, bytes]:
        """Derives the 32-byte key and 16-byte IV.

        Args:
            password (bytes): The encoded passphrase.
            salt (bytes): The 8-byte salt read from the container.

        Returns:
            tuple[bytes, bytes]: The (key, iv) pair.
        """
        wanted = LEGACY_KEY_SIZE + LEGACY_IV_SIZE
        material = b""
        block = b""
        while len(material) < wanted:
            block = hashlib.new(
                self.digest, block + password + salt, usedforsecurity=False
            ).digest()
            material += block
        return material[:LEGACY_KEY_SIZE], material[LEGACY_KEY_SIZE:wanted]

    def try_decrypt(self, ciphertext: bytes, password: bytes, salt: bytes) -> bytes | None:
        """Attempts a CBC decryption under this derivation.

        Returns:
            bytes | None: The plaintext, or None if the digest is unavailable, the
                          ciphertext has an invalid length, or the PKCS#7
                          padding does not check out.
        """
        if not ciphertext or len(ciphertext) % _BLOCK_SIZE:
            return None
        try:
            key, iv = self.derive(password, salt)
            decryptor = Cipher(algorithms.AES(key), modes.CBC(iv)).decryptor()
            padded = decryptor.update(ciphertext) + decryptor.finalize()
            unpadder = padding.PKCS7(algorithms.AES.block_size).unpadder()
            return unpadder.update(padded) + unpadder.finalize()
        except (ValueError, TypeError, UnsupportedAlgorithm):
            return None


def _password_bytes(password: str | bytes) -> bytes:
    if not password:
        raise InvalidInputError("A non-empty passphrase is required")
    if isinstance(password, str):
        return password.encode("utf-8")
    return password


def _encode(raw: bytes) -> bytes:
    """Base64-encodes a container, wrapped the way the legacy encoder wraps it."""
    text = base64.b64encode(raw)
    lines = [
        text[i : i + BASE64_LINE_LENGTH]
        for i in range(0, len(text), BASE64_LINE_LENGTH)
    ]
    return b"\n".join(lines) + b"\n"


def _decode(container: bytes | str, path: Path | str | None) -> bytes:
    if isinstance(container, str):
        try:
            container = container.encode("ascii")
        except UnicodeEncodeError as e:
            raise MalformedContainerError("Container is not base64 text", path) from e
    try:
        return base64.b64decode(b"".join(container.split()), validate=True)
    except binascii.Error as e:
        raise MalformedContainerError("Container is not valid base64", path) from e


def detect_format(raw: bytes) -> ContainerFormat:
    """Identifies the format of a decoded container by its leading marker.

    Anything not carrying the v2 marker is treated as legacy; the legacy
    `Salted__` marker itself is positional and never re-validated.
    """
    if raw[: len(V2_MAGIC)] == V2_MAGIC:
        return ContainerFormat.V2
    return ContainerFormat.LEGACY


def encrypt(
    plaintext: bytes,
    password: str | bytes,
    fmt: ContainerFormat = ContainerFormat.LEGACY,
    digest: str = DEFAULT_DIGESTS[0],
    salt: bytes | None = None,
    iterations: int = V2_DEFAULT_ITERATIONS,
) -> bytes:
    """Encrypts bytes into a base64-encoded container.

    Args:
        plaintext (bytes): The data to protect.
        password (str | bytes): The shared passphrase. Must be non-empty.
        fmt (ContainerFormat, optional): The container format. Defaults to LEGACY.
        digest (str, optional): Key derivation digest for LEGACY containers.
                                Defaults to 'md5'.
        salt (bytes | None, optional): A fixed salt, for reproducible output.
                                       A random one is generated when omitted.
        iterations (int, optional): PBKDF2 iterations for V2 containers.

    Returns:
        bytes: The base64 text of the container, newline terminated.

    Raises:
        InvalidInputError: If the password is empty or the salt/iterations are invalid.
        EncryptionFailure: If the underlying cipher fails.
    """
    secret = _password_bytes(password)
    fmt = ContainerFormat(fmt)

    if fmt is ContainerFormat.V2:
        return _encrypt_v2(plaintext, secret, salt, iterations)

    if salt is None:
        salt = os.urandom(LEGACY_SALT_SIZE)
    elif len(salt) != LEGACY_SALT_SIZE:
        raise InvalidInputError(f"Salt must be {LEGACY_SALT_SIZE} bytes")

    try:
        key, iv = LegacyKeyDerivation(digest).derive(secret, salt)
        padder = padding.PKCS7(algorithms.AES.block_size).padder()
        padded = padder.update(plaintext) + padder.finalize()
        encryptor = Cipher(algorithms.AES(key), modes.CBC(iv)).encryptor()
        ciphertext = encryptor.update(padded) + encryptor.finalize()
    except (ValueError, TypeError, UnsupportedAlgorithm) as e:
        raise EncryptionFailure(f"Encryption failed: {e}") from e

    return _encode(LEGACY_MAGIC + salt + ciphertext)


def _encrypt_v2(
    plaintext: bytes, secret: bytes, salt: bytes | None, iterations: int
) -> bytes:
    if iterations < 1 or iterations > _V2_MAX_ITERATIONS:
        raise InvalidInputError(f"Iteration count out of range: {iterations}")
    if salt is None:
        salt = os.urandom(V2_SALT_SIZE)
    elif len(salt) != V2_SALT_SIZE:
        raise InvalidInputError(f"Salt must be {V2_SALT_SIZE} bytes")

    nonce = os.urandom(V2_NONCE_SIZE)
    header = _V2_HEADER.pack(V2_MAGIC, iterations, salt, nonce)
    try:
        key = _pbkdf2(secret, salt, iterations)
        sealed = AESGCM(key).encrypt(nonce, plaintext, header)
    except (ValueError, TypeError, UnsupportedAlgorithm) as e:
        raise EncryptionFailure(f"Encryption failed: {e}") from e
    return _encode(header + sealed)


def _pbkdf2(secret: bytes, salt: bytes, iterations: int) -> bytes:
    kdf = PBKDF2HMAC(
        algorithm=hashes.SHA256(),
        length=LEGACY_KEY_SIZE,
        salt=salt,
        iterations=iterations,
    )
    return kdf.derive(secret)


def decrypt(
    container: bytes | str,
    password: str | bytes,
    digests: Sequence[str] = DEFAULT_DIGESTS,
    path: Path | str | None = None,
) -> bytes:
    """Decrypts a base64-encoded container produced by `encrypt` or by legacy tooling.

    Legacy containers are tried against each key derivation digest in order
    until one yields valid padding.

    Args:
        container (bytes | str): The base64 container text.
        password (str | bytes): The shared passphrase.
        digests (Sequence[str], optional): Candidate legacy digests, in order.
        path (Path | str | None, optional): The file being decrypted, for errors.

    Returns:
        bytes: The recovered plaintext.

    Raises:
        MalformedContainerError: If the container is not base64 or is truncated.
        DecryptionFailure: If no candidate could decrypt the container.
    """
    secret = _password_bytes(password)
    raw = _decode(container, path)
    if len(raw) < _LEGACY_HEADER_SIZE:
        raise MalformedContainerError(
            f"Container is {len(raw)} bytes, expected at least {_LEGACY_HEADER_SIZE}",
            path,
        )

    if detect_format(raw) is ContainerFormat.V2:
        return _decrypt_v2(raw, secret, path)

    salt = raw[len(LEGACY_MAGIC) : _LEGACY_HEADER_SIZE]
    ciphertext = raw[_LEGACY_HEADER_SIZE:]
    for strategy in (LegacyKeyDerivation(d) for d in digests):
        plaintext = strategy.try_decrypt(ciphertext, secret, salt)
        if plaintext is not None:
            logger.debug(f"Decrypted {path or 'container'} using {strategy.digest}")
            return plaintext
        logger.debug(f"Digest {strategy.digest} did not match for {path or 'container'}")

    raise DecryptionFailure(path, f"tried {', '.join(digests)}")


def _decrypt_v2(raw: bytes, secret: bytes, path: Path | str | None) -> bytes:
    if len(raw) < _V2_HEADER.size + _V2_TAG_SIZE:
        raise MalformedContainerError("Truncated v2 container", path)

    _, iterations, salt, nonce = _V2_HEADER.unpack_from(raw)
    if iterations < 1 or iterations > _V2_MAX_ITERATIONS:
        raise MalformedContainerError(f"Invalid iteration count {iterations}", path)

    header = raw[: _V2_HEADER.size]
    try:
        key = _pbkdf2(secret, salt, iterations)
        return AESGCM(key).decrypt(nonce, raw[_V2_HEADER.size :], header)
    except InvalidTag as e:
        raise DecryptionFailure(path, "authentication failed") from e


def encrypt_file(path: Path, password: str | bytes, **options) -> None:
    """Replaces a plaintext file with its encrypted container, in place.

    Args:
        path (Path): The file to encrypt.
        password (str | bytes): The shared passphrase.
        **options: Forwarded to `encrypt` (fmt, digest, salt, iterations).
    """
    try:
        plaintext = path.read_bytes()
    except OSError as e:
        raise FilesystemError(f"Cannot read {path}: {e}") from e

    container = encrypt(plaintext, password, **options)

    try:
        path.write_bytes(container)
    except OSError as e:
        raise FilesystemError(f"Cannot write {path}: {e}") from e


def decrypt_file(
    path: Path, password: str | bytes, digests: Sequence[str] = DEFAULT_DIGESTS
) -> None:
    """Replaces an encrypted container with its plaintext, in place."""
    decrypt_to(path, path, password, digests)


def decrypt_to(
    source: Path,
    destination: Path,
    password: str | bytes,
    digests: Sequence[str] = DEFAULT_DIGESTS,
) -> None:
    """Decrypts `source` and writes the plaintext to `destination`.

    The source file is left untouched unless it is also the destination.
    Parent directories of the destination are created as needed.
    """
    try:
        container = source.read_bytes()
    except OSError as e:
        raise FilesystemError(f"Cannot read {source}: {e}") from e

    plaintext = decrypt(container, password, digests=digests, path=source)

    try:
        destination.parent.mkdir(parents=True, exist_ok=True)
        destination.write_bytes(plaintext)
    except OSError as e:
        raise FilesystemError(f"Cannot write {destination}: {e}") from e

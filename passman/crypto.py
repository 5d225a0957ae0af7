"""
crypto.py - Key derivation and authenticated encryption
This is the security core of PassMan

Key derivation: Argon2id with fixed cost parameters, 16-byte salt, 32-byte key.
Encryption: AES-256-GCM, fresh 12-byte nonce per call, output is
nonce || ciphertext || tag.

Never log key material, plaintext or ciphertext from this module.
"""
import secrets
from typing import Tuple

from argon2.exceptions import HashingError
from argon2.low_level import Type, hash_secret_raw
from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from .errors import CryptoError

KEY_SIZE = 32    # AES-256
SALT_SIZE = 16
NONCE_SIZE = 12  # 96-bit GCM nonce
TAG_SIZE = 16

# Argon2id cost parameters. Changing these makes existing vaults unreadable.
ARGON2_TIME_COST = 3
ARGON2_MEMORY_COST = 65536  # KiB (64 MiB)
ARGON2_PARALLELISM = 4


class SecureKey:
    """
    A 32-byte symmetric key held in a mutable buffer that can be wiped.

    Use it as a context manager, or call wipe() on every exit path.
    Garbage collection also wipes it, but nothing should rely on that.
    """

    __slots__ = ("_buffer", "_wiped")

    def __init__(self, key_bytes) -> None:
        if len(key_bytes) != KEY_SIZE:
            raise CryptoError(f"Key must be {KEY_SIZE} bytes, got {len(key_bytes)}")
        self._buffer = bytearray(key_bytes)
        self._wiped = False

    @property
    def material(self) -> bytearray:
        """The live key buffer. Do not keep references to it."""
        if self._wiped:
            raise CryptoError("Key has been wiped")
        return self._buffer

    @property
    def is_wiped(self) -> bool:
        return self._wiped

    def wipe(self) -> None:
        """Overwrite the key bytes with zeros."""
        for i in range(len(self._buffer)):
            self._buffer[i] = 0
        self._wiped = True

    def __enter__(self) -> "SecureKey":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.wipe()

    def __del__(self) -> None:
        try:
            self.wipe()
        except AttributeError:
            # __init__ failed before the buffer existed
            pass

    def __repr__(self) -> str:
        state = "wiped" if self._wiped else "set"
        return f"SecureKey(<{state}>)"

    __str__ = __repr__

    def __eq__(self, other) -> bool:
        if not isinstance(other, SecureKey):
            return NotImplemented
        return secrets.compare_digest(bytes(self.material), bytes(other.material))

    __hash__ = None

    def __reduce_ex__(self, protocol):
        raise TypeError("SecureKey cannot be serialized")

    def __copy__(self):
        raise TypeError("SecureKey cannot be copied")

    def __deepcopy__(self, memo):
        raise TypeError("SecureKey cannot be copied")


class Salt:
    """A 16-byte random salt. Not secret, but fixed for the life of a vault."""

    __slots__ = ("_value",)

    def __init__(self, value: bytes) -> None:
        if not isinstance(value, (bytes, bytearray)) or len(value) != SALT_SIZE:
            raise CryptoError(f"Malformed salt: expected {SALT_SIZE} bytes")
        self._value = bytes(value)

    @classmethod
    def generate(cls) -> "Salt":
        return cls(secrets.token_bytes(SALT_SIZE))

    def as_bytes(self) -> bytes:
        return self._value

    def __eq__(self, other) -> bool:
        if not isinstance(other, Salt):
            return NotImplemented
        return self._value == other._value

    def __hash__(self) -> int:
        return hash(self._value)

    def __repr__(self) -> str:
        return f"Salt({self._value.hex()})"


def derive_key(password: str, salt: Salt) -> SecureKey:
    """
    Derive an encryption key from the master password.

    Argon2id with fixed parameters; derived keys are never cached.

    Args:
        password: The master password
        salt: The vault's salt

    Returns:
        A SecureKey; the caller owns it and must wipe it

    Raises:
        CryptoError: If the salt is malformed or Argon2 fails
    """
    if not isinstance(salt, Salt):
        raise CryptoError("Malformed salt: expected a Salt instance")

    try:
        raw = hash_secret_raw(
            secret=password.encode("utf-8"),
            salt=salt.as_bytes(),
            time_cost=ARGON2_TIME_COST,
            memory_cost=ARGON2_MEMORY_COST,
            parallelism=ARGON2_PARALLELISM,
            hash_len=KEY_SIZE,
            type=Type.ID,
        )
    except HashingError as e:
        raise CryptoError(f"Key derivation failed: {e}") from e

    return SecureKey(raw)


def generate_and_derive(password: str) -> Tuple[SecureKey, Salt]:
    """Create a new random salt and derive a key from it. Vault creation only."""
    salt = Salt.generate()
    return derive_key(password, salt), salt


def encrypt(key: SecureKey, plaintext: bytes) -> bytes:
    """
    Encrypt bytes with AES-256-GCM under a fresh random nonce.

    Returns:
        nonce (12 bytes) || ciphertext || tag (16 bytes)
    """
    nonce = secrets.token_bytes(NONCE_SIZE)
    cipher = AESGCM(key.material)
    return nonce + cipher.encrypt(nonce, plaintext, None)


def decrypt(key: SecureKey, data: bytes) -> bytes:
    """
    Decrypt output of encrypt().

    Will raise CryptoError if:
    - The input is shorter than a nonce
    - The key is wrong (wrong password)
    - The data was tampered with or corrupted

    The last two cases raise the same error.
    """
    if len(data) < NONCE_SIZE:
        raise CryptoError("Invalid encrypted data: too short")

    nonce, ciphertext = data[:NONCE_SIZE], data[NONCE_SIZE:]
    cipher = AESGCM(key.material)
    try:
        return cipher.decrypt(nonce, ciphertext, None)
    except InvalidTag as e:
        raise CryptoError("Decryption failed: authentication tag mismatch") from e


class CryptoContext:
    """
    The key and salt of one open vault.

    Created fresh for each init/open and handed explicitly to whatever needs
    to encrypt. wipe() zeroes the key; the context is unusable afterwards.
    """

    def __init__(self, key: SecureKey, salt: Salt) -> None:
        self._key = key
        self.salt = salt

    @classmethod
    def derive(cls, password: str, salt: Salt) -> "CryptoContext":
        return cls(derive_key(password, salt), salt)

    @classmethod
    def create(cls, password: str) -> "CryptoContext":
        key, salt = generate_and_derive(password)
        return cls(key, salt)

    @property
    def is_wiped(self) -> bool:
        return self._key.is_wiped

    def encrypt(self, plaintext: bytes) -> bytes:
        return encrypt(self._key, plaintext)

    def decrypt(self, data: bytes) -> bytes:
        return decrypt(self._key, data)

    def wipe(self) -> None:
        self._key.wipe()

    def __enter__(self) -> "CryptoContext":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.wipe()

    def __repr__(self) -> str:
        return f"CryptoContext(key={self._key!r}, salt={self.salt!r})"

    def __reduce_ex__(self, protocol):
        raise TypeError("CryptoContext cannot be serialized")

"""
PassMan - Local-first password manager with an encrypted, atomically saved vault.

Features:
- Argon2id memory-hard key derivation
- AES-256-GCM authenticated encryption
- Atomic saves with rotating backups
- Session expiry and failed-attempt lockout
- Explicit wiping of key material
"""

from .errors import (
    AccountNotFound,
    AuthenticationFailed,
    CryptoError,
    InvalidInput,
    LockedOut,
    PassManError,
    SerializationError,
    StorageError,
    VaultNotFound,
)
from .manager import PassMan
from .models import Account, AccountType, PasswordOptions, Vault
from .generator import generate_password

__version__ = "1.0.0"
__license__ = "MIT"

__all__ = [
    "PassMan",
    "Account",
    "AccountType",
    "PasswordOptions",
    "Vault",
    "generate_password",
    "PassManError",
    "AuthenticationFailed",
    "LockedOut",
    "CryptoError",
    "StorageError",
    "SerializationError",
    "VaultNotFound",
    "AccountNotFound",
    "InvalidInput",
]

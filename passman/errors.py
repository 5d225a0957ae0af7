"""
errors.py - Exception hierarchy shared by every PassMan component
"""


class PassManError(Exception):
    """Base class for all PassMan errors"""


class AuthenticationFailed(PassManError):
    """Wrong master password, no authenticated session, or session expired"""


class LockedOut(AuthenticationFailed):
    """Too many failed attempts; authentication is refused without trying"""


class CryptoError(PassManError):
    """Key derivation or AEAD failure (includes wrong password and tampering)"""


class StorageError(PassManError):
    """Filesystem failure, or a vault file that is short or corrupt"""


class SerializationError(StorageError):
    """Decrypted vault content could not be decoded into a vault document"""


class VaultNotFound(PassManError):
    """Operation on a vault that does not exist"""


class AccountNotFound(PassManError):
    """Record lookup miss"""


class InvalidInput(PassManError):
    """Malformed caller-supplied parameters"""

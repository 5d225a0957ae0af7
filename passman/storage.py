'''
storage.py - Durable, atomic storage of encrypted vault files
This is the data core of PassMan

File format: salt (16 bytes) || nonce (12 bytes) || ciphertext || tag (16 bytes)
'''
import logging
import os
import re
import tempfile
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import List, Optional, Tuple

from . import config
from .crypto import SALT_SIZE, CryptoContext, Salt
from .errors import InvalidInput, StorageError, VaultNotFound
from .models import Vault

logger = logging.getLogger("passman.storage")

BACKUP_PREFIX = "vault_backup_"
BACKUP_TIMESTAMP_FORMAT = "%Y%m%dT%H%M%S_%fZ"
_BACKUP_PATTERN = re.compile(
    r"^vault_backup_(?P<stamp>\d{8}T\d{6}_\d{6}Z)_(?P<name>.+)\.vault$"
)


def validate_vault_name(name: str) -> str:
    """Vault names become file names; reject anything that could escape the directory."""
    if not name or not name.strip():
        raise InvalidInput("Vault name must not be empty")
    if name.startswith(".") or "/" in name or "\\" in name or "\x00" in name:
        raise InvalidInput(f"Invalid vault name: {name!r}")
    return name


def parse_backup_name(filename: str) -> Optional[Tuple[str, str]]:
    """Return (timestamp, vault name) for a backup file name, or None."""
    match = _BACKUP_PATTERN.match(filename)
    if not match:
        return None
    return match.group("stamp"), match.group("name")


def set_secure_permissions(path: Path) -> None:
    """Owner read/write only (Unix/Linux/Mac)."""
    if os.name == "posix":
        os.chmod(path, 0o600)


def atomic_write(path: Path, data: bytes) -> None:
    """
    Write data so that path holds either its old content or all of data.

    Temp file in the same directory, flushed and fsynced, then renamed over
    the target, then restricted to the owner.
    """
    fd, temp_path = tempfile.mkstemp(
        dir=str(path.parent), prefix=".passman_", suffix=".tmp"
    )
    try:
        with os.fdopen(fd, "wb") as f:
            f.write(data)
            f.flush()
            os.fsync(f.fileno())
        os.replace(temp_path, path)
        set_secure_permissions(path)
    except OSError as e:
        try:
            os.unlink(temp_path)
        except FileNotFoundError:
            pass
        raise StorageError(f"Failed to write {path.name}: {e}") from e


class VaultStorage:
    """Manages the on-disk file of one named vault and its backups"""

    def __init__(
        self,
        vault_name: str = config.DEFAULT_VAULT_NAME,
        vault_dir: Optional[Path] = None,
        backup_retention: int = config.BACKUP_RETENTION,
    ):
        """
        Initialize storage for a vault, creating its directories if needed.

        Args:
            vault_name: Name of the vault (used for the file name)
            vault_dir: Directory holding vault files (default: per-user config root)
            backup_retention: How many backups of this vault to keep
        """
        self.vault_name = validate_vault_name(vault_name)
        self.vault_dir = config.get_vault_directory(vault_dir)
        self.backup_dir = config.get_backup_directory(self.vault_dir)
        self.backup_retention = backup_retention
        self.vault_path = self.vault_dir / f"{self.vault_name}{config.VAULT_EXTENSION}"
        # (inode, mtime_ns, size) of the file as this instance last read or wrote it
        self._last_seen: Optional[Tuple[int, int, int]] = None

        try:
            config.ensure_directory(self.vault_dir)
            config.ensure_directory(self.backup_dir)
        except OSError as e:
            raise StorageError(f"Failed to create vault directory: {e}") from e

    def vault_exists(self) -> bool:
        return self.vault_path.exists()

    def _fingerprint(self) -> Optional[Tuple[int, int, int]]:
        try:
            st = self.vault_path.stat()
        except FileNotFoundError:
            return None
        return st.st_ino, st.st_mtime_ns, st.st_size

    # Saving

    def save(self, vault: Vault, context: CryptoContext) -> None:
        """
        Encrypt and persist the whole vault.

        Args:
            vault: The document to save
            context: Crypto context holding the vault's key and salt

        Raises:
            StorageError: On any filesystem failure, or if another writer
                replaced the file since this instance last saw it
            CryptoError: If encryption fails (e.g. wiped key)
        """
        current = self._fingerprint()
        if current is not None and self._last_seen is not None and current != self._last_seen:
            raise StorageError(
                f"Vault '{self.vault_name}' was modified by another process; "
                "reopen it before saving"
            )

        if current is not None:
            self.create_backup()

        payload = context.encrypt(vault.to_json())
        atomic_write(self.vault_path, context.salt.as_bytes() + payload)
        self._last_seen = self._fingerprint()
        logger.info("Saved vault '%s' (%d accounts)", self.vault_name, len(vault.accounts))

        self.cleanup_old_backups()

    # Loading

    def read_raw(self) -> Tuple[Salt, bytes]:
        """Read the vault file and split it into salt and encrypted payload."""
        if not self.vault_exists():
            raise VaultNotFound(f"Vault not found at: {self.vault_path}")

        try:
            data = self.vault_path.read_bytes()
        except OSError as e:
            raise StorageError(f"Failed to read vault file: {e}") from e

        if len(data) < SALT_SIZE:
            raise StorageError("Vault file is corrupted: too small")

        self._last_seen = self._fingerprint()
        return Salt(data[:SALT_SIZE]), data[SALT_SIZE:]

    def unlock(self, password: str) -> Tuple[Vault, CryptoContext]:
        """
        Load the vault and keep its crypto context for later saves.

        Returns:
            (vault, context); the caller owns the context and must wipe it

        Raises:
            VaultNotFound, StorageError, CryptoError, SerializationError
        """
        salt, payload = self.read_raw()
        context = CryptoContext.derive(password, salt)
        try:
            vault = Vault.from_json(context.decrypt(payload))
        except Exception:
            context.wipe()
            raise
        logger.debug("Decrypted vault '%s'", self.vault_name)
        return vault, context

    def load(self, password: str) -> Vault:
        """Load and decrypt the vault; the derived key is wiped before returning."""
        vault, context = self.unlock(password)
        context.wipe()
        return vault

    # Backups

    def _backup_path(self, when: datetime) -> Path:
        stamp = when.strftime(BACKUP_TIMESTAMP_FORMAT)
        return self.backup_dir / f"{BACKUP_PREFIX}{stamp}_{self.vault_name}{config.VAULT_EXTENSION}"

    def create_backup(self) -> Optional[Path]:
        """
        Copy the current vault file into the backup directory.

        Returns:
            Path of the new backup, or None if there is no vault file yet
        """
        if not self.vault_exists():
            return None

        when = datetime.now(timezone.utc)
        backup_path = self._backup_path(when)
        while backup_path.exists():
            when += timedelta(microseconds=1)
            backup_path = self._backup_path(when)

        try:
            data = self.vault_path.read_bytes()
        except OSError as e:
            raise StorageError(f"Failed to create backup: {e}") from e
        atomic_write(backup_path, data)

        logger.info("Created backup %s", backup_path.name)
        return backup_path

    def list_backups(self) -> List[Path]:
        """Backups of this vault, newest first."""
        entries = []
        for path in self.backup_dir.glob(f"{BACKUP_PREFIX}*{config.VAULT_EXTENSION}"):
            parsed = parse_backup_name(path.name)
            if parsed is None or parsed[1] != self.vault_name:
                continue
            try:
                mtime = path.stat().st_mtime_ns
            except FileNotFoundError:
                continue
            entries.append((mtime, parsed[0], path))

        entries.sort(key=lambda entry: (entry[0], entry[1]), reverse=True)
        return [path for _, _, path in entries]

    def cleanup_old_backups(self) -> int:
        """
        Keep only the most recent backups of this vault.

        Returns:
            Number of backups deleted
        """
        removed = 0
        for old in self.list_backups()[self.backup_retention:]:
            try:
                old.unlink()
            except FileNotFoundError:
                continue
            except OSError as e:
                raise StorageError(f"Failed to remove old backup {old.name}: {e}") from e
            removed += 1

        if removed:
            logger.info("Pruned %d old backup(s) of '%s'", removed, self.vault_name)
        return removed

    # Export / import

    def export_vault(self, vault: Vault, context: CryptoContext, export_path: Path) -> None:
        """
        Write the vault encrypted under the session key, without the salt.

        The file can only be imported by a session holding the same key.
        """
        export_path = Path(export_path)
        payload = context.encrypt(vault.to_json())
        atomic_write(export_path, payload)
        logger.info("Exported vault '%s' to %s", self.vault_name, export_path)

    def import_vault(self, context: CryptoContext, import_path: Path) -> Vault:
        """
        Decrypt an exported vault with the session key.

        Raises:
            StorageError: If the file is missing or unreadable
            CryptoError: If it was not exported under this key, or was altered
            SerializationError: If the decrypted content is not a vault
        """
        import_path = Path(import_path)
        if not import_path.exists():
            raise StorageError(f"Import file not found: {import_path}")
        try:
            data = import_path.read_bytes()
        except OSError as e:
            raise StorageError(f"Failed to read import file: {e}") from e

        return Vault.from_json(context.decrypt(data))

    # File info

    def vault_size(self) -> int:
        """Size in bytes, or 0 if the vault does not exist."""
        try:
            return self.vault_path.stat().st_size
        except FileNotFoundError:
            return 0

    def vault_modified(self) -> Optional[datetime]:
        try:
            mtime = self.vault_path.stat().st_mtime
        except FileNotFoundError:
            return None
        return datetime.fromtimestamp(mtime, tz=timezone.utc)

    def get_file_info(self) -> Optional[dict]:
        """
        Get information about the vault file.

        Returns:
            Dictionary with file info, or None if file doesn't exist
        """
        if not self.vault_exists():
            return None

        stat = self.vault_path.stat()
        return {
            "path": str(self.vault_path),
            "size": stat.st_size,
            "modified": self.vault_modified(),
            "permissions": oct(stat.st_mode)[-3:] if os.name == "posix" else "N/A",
            "backups": len(self.list_backups()),
        }

    # Vault directory operations

    @staticmethod
    def list_vaults(vault_dir: Optional[Path] = None) -> List[str]:
        """Names of all vaults in the vault directory."""
        directory = config.get_vault_directory(vault_dir)
        if not directory.exists():
            return []
        return sorted(
            p.stem for p in directory.iterdir()
            if p.is_file() and p.suffix == config.VAULT_EXTENSION
        )

    @staticmethod
    def delete_vault(vault_name: str, vault_dir: Optional[Path] = None) -> int:
        """
        Delete a vault and all its backups.

        Backups of the vault are removed even when the vault file itself is
        already gone.

        Returns:
            Number of backups removed

        Raises:
            VaultNotFound: If the vault file does not exist
        """
        validate_vault_name(vault_name)
        directory = config.get_vault_directory(vault_dir)
        vault_path = directory / f"{vault_name}{config.VAULT_EXTENSION}"
        backup_dir = config.get_backup_directory(directory)
        existed = vault_path.exists()

        try:
            if existed:
                vault_path.unlink()
            removed = 0
            if backup_dir.exists():
                for entry in backup_dir.iterdir():
                    parsed = parse_backup_name(entry.name)
                    if parsed is not None and parsed[1] == vault_name:
                        entry.unlink()
                        removed += 1
        except OSError as e:
            raise StorageError(f"Failed to delete vault: {e}") from e

        if not existed:
            if removed:
                logger.info("Removed %d orphaned backup(s) of '%s'", removed, vault_name)
            raise VaultNotFound(f"Vault not found: {vault_name}")

        logger.info("Deleted vault '%s' and %d backup(s)", vault_name, removed)
        return removed

    @staticmethod
    def restore_backup(backup_path: Path, vault_name: str, vault_dir: Optional[Path] = None) -> None:
        """
        Put a backup file back at the canonical path of a vault.

        The backup is checked for a plausible size only; its password is the
        one in force when the backup was taken.
        """
        backup_path = Path(backup_path)
        if not backup_path.exists():
            raise StorageError(f"Backup file not found: {backup_path}")
        storage = VaultStorage(vault_name, vault_dir)
        if storage.vault_exists():
            storage.create_backup()
        try:
            data = backup_path.read_bytes()
        except OSError as e:
            raise StorageError(f"Failed to read backup: {e}") from e
        if len(data) < SALT_SIZE:
            raise StorageError("Backup file is corrupted: too small")
        atomic_write(storage.vault_path, data)
        storage.cleanup_old_backups()
        logger.info("Restored vault '%s' from %s", vault_name, backup_path.name)

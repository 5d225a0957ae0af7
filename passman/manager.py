"""
manager.py - Main PassMan class that orchestrates crypto, storage and sessions
"""
import logging
import time
from pathlib import Path
from typing import Callable, Dict, List, Optional, Tuple

from . import config
from .auth import PasswordValidator, SessionManager
from .crypto import CryptoContext
from .errors import AccountNotFound, AuthenticationFailed, InvalidInput, StorageError
from .generator import generate_password
from .models import Account, AccountType, PasswordOptions, Vault, VaultMetadata, utcnow
from .storage import VaultStorage

logger = logging.getLogger("passman.manager")


class PassMan:
    """
    One vault, its session, and the decrypted document while it is open.

    Use as a context manager, or call close_vault() when done, so the key is
    wiped on every exit path.
    """

    def __init__(
        self,
        vault_name: str = config.DEFAULT_VAULT_NAME,
        vault_dir: Optional[Path] = None,
        max_failed_attempts: int = config.MAX_FAILED_ATTEMPTS,
        session_timeout: Optional[float] = None,
        lockout_duration: Optional[float] = None,
        validator: Optional[PasswordValidator] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Initialize the password manager.

        Args:
            vault_name: Name of the vault file (without extension)
            vault_dir: Directory holding vaults (default: per-user config root)
            max_failed_attempts: Failures before authentication is locked out
            session_timeout: Seconds a session lasts (None: use the vault's
                auto_lock_timeout setting once it is unlocked)
            lockout_duration: Seconds until a lockout clears (None: never)
            validator: Master-password policy applied when creating a vault
            clock: Monotonic time source for session expiry
        """
        self.vault_name = vault_name
        self.storage = VaultStorage(vault_name, vault_dir)
        self.auth = SessionManager(
            max_failed_attempts=max_failed_attempts,
            session_timeout=config.SESSION_TIMEOUT if session_timeout is None else session_timeout,
            lockout_duration=lockout_duration,
            clock=clock,
        )
        self.validator = validator or PasswordValidator()
        self._session_timeout = session_timeout
        self._vault: Optional[Vault] = None

    # Lifecycle

    def init_vault(self, email: str, master_password: str) -> None:
        """
        Create a new vault protected by the master password.

        The salt is generated here, once, and the new key is handed to the
        session only through authenticate(), like any other unlock.

        Raises:
            StorageError: If the vault already exists
            InvalidInput: If the master password does not meet the policy
        """
        if self.storage.vault_exists():
            raise StorageError(
                f"Vault '{self.vault_name}' already exists. Use open_vault() to access it."
            )
        self.validator.validate(master_password)

        vault = Vault.new(email)

        def create(password: str) -> Tuple[Vault, CryptoContext]:
            context = CryptoContext.create(password)
            try:
                self.storage.save(vault, context)
            except Exception:
                context.wipe()
                raise
            return vault, context

        self._vault = None
        self._vault = self.auth.authenticate(master_password, create)
        self._apply_settings()
        logger.info("Created new vault '%s'", self.vault_name)

    def open_vault(self, master_password: str) -> None:
        """
        Unlock the vault using the master password.

        Raises:
            LockedOut: Too many failed attempts
            AuthenticationFailed: Wrong password or corrupted vault (not distinguished)
            VaultNotFound: No vault with this name
        """
        self._vault = None
        self._vault = self.auth.authenticate(master_password, self.storage.unlock)
        self._apply_settings()
        logger.info("Opened vault '%s'", self.vault_name)

    def _apply_settings(self) -> None:
        # An explicit timeout from the caller wins over the vault setting
        if self._session_timeout is not None:
            return
        minutes = self._vault.metadata.settings.auto_lock_timeout
        if minutes > 0:
            self.auth.extend(minutes * 60)

    def close_vault(self) -> None:
        """Drop the decrypted document and wipe the key."""
        if self._vault is not None:
            logger.info("Closed vault '%s'", self.vault_name)
        self._vault = None
        self.auth.logout()

    lock = close_vault

    def __enter__(self) -> "PassMan":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close_vault()

    def is_vault_open(self) -> bool:
        return self._vault is not None and self.auth.is_authenticated()

    def _require_open(self) -> Vault:
        if self._vault is None:
            raise AuthenticationFailed("Vault not open")
        try:
            self.auth.crypto()
        except AuthenticationFailed:
            self._vault = None
            raise
        self.auth.touch()
        return self._vault

    def _save(self) -> None:
        self.storage.save(self._vault, self.auth.crypto())

    # Accounts

    def add_account(
        self,
        name: str,
        account_type: AccountType,
        password: str,
        url: Optional[str] = None,
        username: Optional[str] = None,
        notes: Optional[str] = None,
        tags: Optional[List[str]] = None,
    ) -> str:
        """
        Add an account and save the vault.

        Returns:
            The new account's id
        """
        vault = self._require_open()
        if not name or not name.strip():
            raise InvalidInput("Account name must not be empty")
        if not password:
            raise InvalidInput("Account password must not be empty")

        account = Account(
            name=name.strip(),
            account_type=account_type,
            password=password,
            url=url,
            username=username,
            notes=notes,
            tags=list(tags or []),
        )
        vault.add_account(account)
        self._save()
        return account.id

    def update_account(
        self,
        account_id: str,
        name: Optional[str] = None,
        account_type: Optional[AccountType] = None,
        password: Optional[str] = None,
        url: Optional[str] = None,
        username: Optional[str] = None,
        notes: Optional[str] = None,
        tags: Optional[List[str]] = None,
    ) -> Account:
        """
        Update the given fields of an account; None leaves a field unchanged.

        Raises:
            AccountNotFound: If no account has this id
        """
        vault = self._require_open()
        account = vault.get_account(account_id)
        if account is None:
            raise AccountNotFound(f"Account with ID {account_id} not found")

        if name is not None:
            if not name.strip():
                raise InvalidInput("Account name must not be empty")
            account.name = name.strip()
        if account_type is not None:
            account.account_type = account_type
        if password is not None:
            if not password:
                raise InvalidInput("Account password must not be empty")
            account.password = password
        if url is not None:
            account.url = url
        if username is not None:
            account.username = username
        if notes is not None:
            account.notes = notes
        if tags is not None:
            account.tags = list(tags)

        account.touch()
        vault.metadata.last_modified = utcnow()
        self._save()
        return account

    def delete_account(self, account_id: str) -> Account:
        vault = self._require_open()
        account = vault.remove_account(account_id)
        if account is None:
            raise AccountNotFound(f"Account with ID {account_id} not found")
        self._save()
        return account

    def get_account(self, account_id: str) -> Account:
        """Look up an account and mark it accessed (persisted on the next save)."""
        vault = self._require_open()
        account = vault.get_account(account_id)
        if account is None:
            raise AccountNotFound(f"Account with ID {account_id} not found")
        account.mark_accessed()
        return account

    def get_all_accounts(self) -> List[Account]:
        return self._require_open().get_all_accounts()

    def search_accounts(self, query: str) -> List[Account]:
        return self._require_open().search_accounts(query)

    def get_accounts_by_type(self, account_type: AccountType) -> List[Account]:
        return self._require_open().get_accounts_by_type(account_type)

    def get_accounts_by_tag(self, tag: str) -> List[Account]:
        return self._require_open().get_accounts_by_tag(tag)

    def find_accounts_by_name(self, name: str) -> List[Account]:
        """Exact, case-insensitive name match."""
        wanted = name.strip().lower()
        return [a for a in self._require_open().get_all_accounts() if a.name.lower() == wanted]

    # Export / import

    def export_vault(self, export_path: Path) -> None:
        """Write the open vault, encrypted under the current session key."""
        vault = self._require_open()
        self.storage.export_vault(vault, self.auth.crypto(), export_path)

    def import_vault(self, import_path: Path) -> Vault:
        """
        Replace the open document with an exported one and save it.

        Decrypts with the current session key; nothing is re-derived.
        """
        self._require_open()
        context = self.auth.crypto()
        imported = self.storage.import_vault(context, import_path)
        self.storage.save(imported, context)
        self._vault = imported
        logger.info("Imported %d account(s) into '%s'", len(imported.accounts), self.vault_name)
        return imported

    # Information

    def get_vault_metadata(self) -> VaultMetadata:
        return self._require_open().metadata

    def get_vault_info(self) -> Dict:
        """
        Get information about the vault.

        Returns:
            Dictionary with vault metadata and file info
        """
        vault = self._require_open()
        return {
            "name": self.vault_name,
            "version": vault.metadata.version,
            "email": vault.metadata.email,
            "created": vault.metadata.created_at,
            "last_modified": vault.metadata.last_modified,
            "account_count": len(vault.accounts),
            "file_info": self.storage.get_file_info(),
        }

    def is_session_valid(self) -> bool:
        return self.auth.is_authenticated()

    def update_activity(self) -> None:
        self.auth.touch()

    def get_session_info(self) -> Dict:
        return self.auth.session_info()

    # Utilities

    @staticmethod
    def generate_password(options: Optional[PasswordOptions] = None) -> str:
        return generate_password(options)

    @staticmethod
    def list_vaults(vault_dir: Optional[Path] = None) -> List[str]:
        return VaultStorage.list_vaults(vault_dir)

    @staticmethod
    def delete_vault(vault_name: str, vault_dir: Optional[Path] = None) -> int:
        return VaultStorage.delete_vault(vault_name, vault_dir)

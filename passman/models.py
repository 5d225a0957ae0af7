"""
models.py - The decrypted vault document and its records
"""
import json
import uuid
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Dict, List, Optional

from .errors import SerializationError

VAULT_FORMAT_VERSION = "1.0.0"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _to_iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value is not None else None


def _from_iso(value: Optional[str]) -> Optional[datetime]:
    if value is None:
        return None
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


class AccountType(Enum):
    """Category of a stored account"""

    SOCIAL = "Social"
    BANKING = "Banking"
    WORK = "Work"
    PERSONAL = "Personal"
    EMAIL = "Email"
    SHOPPING = "Shopping"
    GAMING = "Gaming"
    OTHER = "Other"

    @property
    def display_name(self) -> str:
        return self.value

    @classmethod
    def parse(cls, value: str) -> "AccountType":
        """Case-insensitive lookup by name or display name."""
        for member in cls:
            if value.lower() in (member.name.lower(), member.value.lower()):
                return member
        raise ValueError(f"Unknown account type: {value}")


@dataclass
class PasswordOptions:
    """Options for the password generator"""

    length: int = 16
    include_uppercase: bool = True
    include_lowercase: bool = True
    include_numbers: bool = True
    include_special: bool = True
    exclude_similar: bool = True
    exclude_ambiguous: bool = False

    @classmethod
    def simple(cls, length: int) -> "PasswordOptions":
        return cls(length=length, include_special=False, exclude_ambiguous=True)

    @classmethod
    def strong(cls, length: int) -> "PasswordOptions":
        return cls(length=length)


@dataclass
class VaultSettings:
    auto_lock_timeout: int = 15  # minutes
    require_confirmation: bool = True
    auto_clear_clipboard: bool = True
    clipboard_timeout: int = 30  # seconds
    show_strength_indicators: bool = True
    default_password_options: PasswordOptions = field(default_factory=PasswordOptions)

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> "VaultSettings":
        data = dict(data)
        options = data.pop("default_password_options", None) or {}
        return cls(default_password_options=PasswordOptions(**options), **data)


@dataclass
class VaultMetadata:
    email: str
    version: str = VAULT_FORMAT_VERSION
    created_at: datetime = field(default_factory=utcnow)
    last_modified: datetime = field(default_factory=utcnow)
    account_count: int = 0
    settings: VaultSettings = field(default_factory=VaultSettings)

    def to_dict(self) -> dict:
        return {
            "version": self.version,
            "email": self.email,
            "created_at": _to_iso(self.created_at),
            "last_modified": _to_iso(self.last_modified),
            "account_count": self.account_count,
            "settings": self.settings.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "VaultMetadata":
        return cls(
            version=data["version"],
            email=data["email"],
            created_at=_from_iso(data["created_at"]),
            last_modified=_from_iso(data["last_modified"]),
            account_count=data["account_count"],
            settings=VaultSettings.from_dict(data.get("settings") or {}),
        )


@dataclass
class Account:
    """
    A single credential record.

    The id is assigned once at creation and never changes.
    """

    name: str
    account_type: AccountType
    password: str
    url: Optional[str] = None
    username: Optional[str] = None
    notes: Optional[str] = None
    tags: List[str] = field(default_factory=list)
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)
    last_accessed: Optional[datetime] = None

    def mark_accessed(self) -> None:
        self.last_accessed = utcnow()

    def touch(self) -> None:
        self.updated_at = utcnow()

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "account_type": self.account_type.value,
            "url": self.url,
            "username": self.username,
            "password": self.password,
            "notes": self.notes,
            "tags": list(self.tags),
            "created_at": _to_iso(self.created_at),
            "updated_at": _to_iso(self.updated_at),
            "last_accessed": _to_iso(self.last_accessed),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Account":
        return cls(
            id=data["id"],
            name=data["name"],
            account_type=AccountType(data["account_type"]),
            url=data.get("url"),
            username=data.get("username"),
            password=data["password"],
            notes=data.get("notes"),
            tags=list(data.get("tags") or []),
            created_at=_from_iso(data["created_at"]),
            updated_at=_from_iso(data["updated_at"]),
            last_accessed=_from_iso(data.get("last_accessed")),
        )


@dataclass
class Vault:
    """The decrypted vault document: metadata plus accounts keyed by id."""

    metadata: VaultMetadata
    accounts: Dict[str, Account] = field(default_factory=dict)
    tags: List[str] = field(default_factory=list)

    @classmethod
    def new(cls, email: str) -> "Vault":
        return cls(metadata=VaultMetadata(email=email))

    def _changed(self) -> None:
        self.metadata.account_count = len(self.accounts)
        self.metadata.last_modified = utcnow()

    def add_account(self, account: Account) -> None:
        self.accounts[account.id] = account
        self._changed()

    def remove_account(self, account_id: str) -> Optional[Account]:
        account = self.accounts.pop(account_id, None)
        if account is not None:
            self._changed()
        return account

    def get_account(self, account_id: str) -> Optional[Account]:
        return self.accounts.get(account_id)

    def get_all_accounts(self) -> List[Account]:
        return sorted(self.accounts.values(), key=lambda a: a.name.lower())

    def search_accounts(self, query: str) -> List[Account]:
        query_lower = query.lower()
        return [a for a in self.get_all_accounts() if query_lower in a.name.lower()]

    def get_accounts_by_type(self, account_type: AccountType) -> List[Account]:
        return [a for a in self.get_all_accounts() if a.account_type == account_type]

    def get_accounts_by_tag(self, tag: str) -> List[Account]:
        return [a for a in self.get_all_accounts() if tag in a.tags]

    # Serialization

    def to_dict(self) -> dict:
        return {
            "metadata": self.metadata.to_dict(),
            "accounts": {aid: acc.to_dict() for aid, acc in self.accounts.items()},
            "tags": list(self.tags),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Vault":
        accounts = {}
        for aid, raw in data["accounts"].items():
            account = Account.from_dict(raw)
            if account.id != aid:
                raise ValueError(f"Account key {aid} does not match its id")
            accounts[aid] = account
        return cls(
            metadata=VaultMetadata.from_dict(data["metadata"]),
            accounts=accounts,
            tags=list(data.get("tags") or []),
        )

    def to_json(self) -> bytes:
        return json.dumps(self.to_dict(), indent=2).encode("utf-8")

    @classmethod
    def from_json(cls, raw: bytes) -> "Vault":
        """
        Decode a serialized vault.

        Raises:
            SerializationError: If the content is not a well-formed vault
        """
        try:
            data = json.loads(raw.decode("utf-8"))
            if not isinstance(data, dict):
                raise ValueError("Vault document must be a JSON object")
            return cls.from_dict(data)
        except (UnicodeDecodeError, ValueError, KeyError, TypeError, AttributeError) as e:
            raise SerializationError(f"Malformed vault content: {e}") from e

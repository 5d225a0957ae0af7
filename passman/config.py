"""
config.py - Directory layout and policy defaults

The config root is $PASSMAN_HOME when set, otherwise the per-user
application directory reported by click. Vaults live in <root>/vaults and
backups in <root>/vaults/backups.
"""
import os
from pathlib import Path
from typing import Optional

import click

APP_NAME = "passman"
ENV_HOME = "PASSMAN_HOME"

VAULT_EXTENSION = ".vault"
DEFAULT_VAULT_NAME = "default"

# Security policy
MAX_FAILED_ATTEMPTS = 5
SESSION_TIMEOUT = 15 * 60  # seconds
BACKUP_RETENTION = 10


def get_config_root() -> Path:
    """Return the per-user configuration root (not created here)."""
    override = os.environ.get(ENV_HOME)
    if override:
        return Path(override).expanduser()
    return Path(click.get_app_dir(APP_NAME))


def get_vault_directory(vault_dir: Optional[Path] = None) -> Path:
    """Directory holding the canonical vault files."""
    if vault_dir is not None:
        return Path(vault_dir)
    return get_config_root() / "vaults"


def get_backup_directory(vault_dir: Optional[Path] = None) -> Path:
    """Backups are nested inside the vault directory."""
    return get_vault_directory(vault_dir) / "backups"


def ensure_directory(path: Path) -> Path:
    """Create a directory (and parents) readable by the owner only."""
    path.mkdir(mode=0o700, parents=True, exist_ok=True)
    return path

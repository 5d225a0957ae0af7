#!/usr/bin/env python3
"""
PassMan - Secure Password Manager CLI
"""
import logging
import sys
from contextlib import contextmanager
from typing import List, Optional

import click
from tabulate import tabulate

from . import __version__, config
from .errors import LockedOut, PassManError
from .generator import generate_password
from .manager import PassMan
from .models import Account, AccountType, PasswordOptions

TYPE_CHOICES = [t.name.lower() for t in AccountType]


def fail(message: str) -> None:
    click.echo(f"❌ {message}", err=True)
    sys.exit(1)


def prompt_master_password(confirm: bool = False) -> str:
    """Prompt for master password with optional confirmation"""
    return click.prompt(
        "Master password",
        hide_input=True,
        confirmation_prompt="Confirm master password" if confirm else False,
    )


@contextmanager
def open_manager(ctx: click.Context):
    """Yield an unlocked PassMan; the vault is closed (key wiped) on exit."""
    pm = PassMan(ctx.obj["vault"])
    try:
        pm.open_vault(prompt_master_password())
        yield pm
    except LockedOut as e:
        fail(f"{e}")
    except PassManError as e:
        fail(f"Error: {e}")
    finally:
        pm.close_vault()


def format_accounts(accounts: List[Account], show_passwords: bool = False) -> str:
    headers = ["Name", "Type", "Username", "URL", "Tags"]
    if show_passwords:
        headers.append("Password")
    rows = []
    for account in accounts:
        row = [
            account.name,
            account.account_type.display_name,
            account.username or "",
            account.url or "",
            ", ".join(account.tags),
        ]
        if show_passwords:
            row.append(account.password)
        rows.append(row)
    return tabulate(rows, headers=headers, tablefmt="simple")


def resolve_account(pm: PassMan, name: str, account_id: Optional[str]) -> Account:
    """Pick one account by id, or by exact name when that is unambiguous."""
    if account_id:
        return pm.get_account(account_id)

    matches = pm.find_accounts_by_name(name)
    if len(matches) == 1:
        return pm.get_account(matches[0].id)

    if not matches:
        suggestions = pm.search_accounts(name)
        if suggestions:
            click.echo(f"No exact match for '{name}'. Did you mean:")
            for match in suggestions[:5]:
                click.echo(f"  • {match.name}")
        fail(f"No account named '{name}'")

    click.echo(f"Several accounts are named '{name}'; pass --id:")
    click.echo(tabulate([[a.id, a.name, a.username or ""] for a in matches],
                        headers=["ID", "Name", "Username"]))
    sys.exit(1)


@click.group()
@click.version_option(version=__version__, prog_name="PassMan")
@click.option("--vault", "-V", default=config.DEFAULT_VAULT_NAME, show_default=True,
              help="Name of the vault to use")
@click.option("--verbose", is_flag=True, help="Log what PassMan is doing")
@click.pass_context
def cli(ctx, vault, verbose):
    """PassMan - A secure, local-first password manager

    Your vault is encrypted with AES-256-GCM under a key derived from your
    master password with Argon2id. Nothing ever leaves your device and the
    master password is never stored.
    """
    ctx.ensure_object(dict)
    ctx.obj["vault"] = vault
    if verbose:
        logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")


@cli.command()
@click.option("--email", "-e", prompt="Email", help="Owner identity stored in the vault")
@click.pass_context
def init(ctx, email):
    """Initialize a new password vault"""
    pm = PassMan(ctx.obj["vault"])
    if pm.storage.vault_exists():
        fail(f"Vault '{ctx.obj['vault']}' already exists!")

    click.echo("🔐 Creating a new password vault...\n")
    click.echo("Choose a strong master password (8+ chars, upper, lower, digit, symbol).")

    password = prompt_master_password(confirm=True)
    try:
        pm.init_vault(email, password)
    except PassManError as e:
        fail(f"Error creating vault: {e}")
    finally:
        pm.close_vault()

    click.echo("\n✅ Password vault created successfully!")
    click.echo(f"📁 Location: {pm.storage.vault_path}")


@cli.command()
@click.option("--name", "-n", prompt="Account name", help="Account or service name")
@click.option("--type", "-t", "account_type", type=click.Choice(TYPE_CHOICES),
              default="personal", show_default=True, help="Account category")
@click.option("--url", help="Website URL")
@click.option("--username", "-u", help="Username or email")
@click.option("--notes", help="Optional notes about this account")
@click.option("--tag", "tags", multiple=True, help="Tag (repeatable)")
@click.option("--generate", "-g", is_flag=True, help="Generate a secure password")
@click.option("--length", "-l", default=16, show_default=True, help="Generated password length")
@click.pass_context
def add(ctx, name, account_type, url, username, notes, tags, generate, length):
    """Add a new account to the vault"""
    with open_manager(ctx) as pm:
        if generate:
            secret = generate_password(PasswordOptions(length=length))
            click.echo(f"🎲 Generated password: {click.style(secret, fg='green', bold=True)}")
        else:
            secret = click.prompt("Account password", hide_input=True,
                                  confirmation_prompt="Confirm account password")

        account_id = pm.add_account(
            name,
            AccountType[account_type.upper()],
            secret,
            url=url,
            username=username,
            notes=notes,
            tags=list(tags),
        )
        click.echo(f"✅ Account '{name}' saved ({account_id})")


@cli.command(name="list")
@click.option("--type", "-t", "account_type", type=click.Choice(TYPE_CHOICES),
              help="Only this category")
@click.option("--search", "-s", help="Filter names by search term")
@click.option("--tag", help="Only accounts with this tag")
@click.option("--show-passwords", is_flag=True, help="Show passwords in plain text")
@click.pass_context
def list_accounts(ctx, account_type, search, tag, show_passwords):
    """List accounts in the vault"""
    with open_manager(ctx) as pm:
        if search:
            accounts = pm.search_accounts(search)
        else:
            accounts = pm.get_all_accounts()
        if account_type:
            accounts = [a for a in accounts if a.account_type == AccountType[account_type.upper()]]
        if tag:
            accounts = [a for a in accounts if tag in a.tags]

        if not accounts:
            click.echo("📭 No accounts found.")
            return

        click.echo(format_accounts(accounts, show_passwords))
        click.echo(f"\n{len(accounts)} account(s)")


@cli.command()
@click.argument("name")
@click.option("--id", "account_id", help="Account id (when several share a name)")
@click.option("--show-password", "-S", is_flag=True, help="Show password in plain text")
@click.pass_context
def show(ctx, name, account_id, show_password):
    """Show one account"""
    with open_manager(ctx) as pm:
        account = resolve_account(pm, name, account_id)

        click.echo(f"\n🔐 {click.style(account.name, bold=True)} ({account.account_type.display_name})")
        if account.username:
            click.echo(f"👤 Username: {click.style(account.username, fg='cyan')}")
        if account.url:
            click.echo(f"🌐 URL: {account.url}")
        if show_password:
            click.echo(f"🔑 Password: {click.style(account.password, fg='yellow')}")
        else:
            click.echo(f"🔑 Password: {'*' * len(account.password)} (use --show-password to display)")
        if account.notes:
            click.echo(f"📝 Notes: {account.notes}")
        if account.tags:
            click.echo(f"🏷  Tags: {', '.join(account.tags)}")
        click.echo(f"📅 Last modified: {account.updated_at:%Y-%m-%d}")


@cli.command()
@click.argument("name")
@click.option("--id", "account_id", help="Account id (when several share a name)")
@click.option("--force", "-f", is_flag=True, help="Skip confirmation prompt")
@click.pass_context
def delete(ctx, name, account_id, force):
    """Delete an account from the vault"""
    with open_manager(ctx) as pm:
        account = resolve_account(pm, name, account_id)
        if not force and not click.confirm(f"Delete '{account.name}'?"):
            click.echo("Cancelled.")
            return
        pm.delete_account(account.id)
        click.echo(f"🗑  Deleted '{account.name}'")


@cli.command()
@click.option("--length", "-l", default=16, type=int, show_default=True, help="Password length")
@click.option("--count", "-c", default=1, type=int, help="Number of passwords to generate")
@click.option("--no-special", is_flag=True, help="Exclude symbols")
@click.option("--no-numbers", is_flag=True, help="Exclude numbers")
@click.option("--no-uppercase", is_flag=True, help="Exclude uppercase letters")
@click.option("--no-lowercase", is_flag=True, help="Exclude lowercase letters")
@click.option("--allow-similar", is_flag=True, help="Allow look-alike characters (0,O,l,1)")
@click.option("--no-ambiguous", is_flag=True, help="Exclude brackets, slashes and punctuation")
def generate(length, count, no_special, no_numbers, no_uppercase, no_lowercase,
             allow_similar, no_ambiguous):
    """Generate secure passwords (no vault needed)"""
    options = PasswordOptions(
        length=length,
        include_uppercase=not no_uppercase,
        include_lowercase=not no_lowercase,
        include_numbers=not no_numbers,
        include_special=not no_special,
        exclude_similar=not allow_similar,
        exclude_ambiguous=no_ambiguous,
    )
    try:
        for _ in range(count):
            click.echo(generate_password(options))
    except PassManError as e:
        fail(f"Error: {e}")


@cli.command()
def vaults():
    """List available vaults"""
    names = PassMan.list_vaults()
    if not names:
        click.echo("📭 No vaults yet. Create one with 'passman init'.")
        return
    for name in names:
        click.echo(f"  • {name}")


@cli.command(name="delete-vault")
@click.argument("name")
@click.option("--force", "-f", is_flag=True, help="Skip confirmation prompt")
def delete_vault(name, force):
    """Delete a vault and all of its backups"""
    if not force and not click.confirm(f"Permanently delete vault '{name}' and its backups?"):
        click.echo("Cancelled.")
        return
    try:
        removed = PassMan.delete_vault(name)
    except PassManError as e:
        fail(f"Error: {e}")
    click.echo(f"🗑  Deleted vault '{name}' ({removed} backup(s) removed)")


@cli.command(name="export")
@click.argument("path", type=click.Path(dir_okay=False))
@click.pass_context
def export_vault(ctx, path):
    """Export the vault, encrypted under its current key"""
    with open_manager(ctx) as pm:
        pm.export_vault(path)
        click.echo(f"📦 Exported to {path}")


@cli.command(name="import")
@click.argument("path", type=click.Path(exists=True, dir_okay=False))
@click.option("--force", "-f", is_flag=True, help="Skip confirmation prompt")
@click.pass_context
def import_vault(ctx, path, force):
    """Replace the vault contents with an export of the same vault"""
    with open_manager(ctx) as pm:
        if not force and not click.confirm("This replaces every account in the vault. Continue?"):
            click.echo("Cancelled.")
            return
        imported = pm.import_vault(path)
        click.echo(f"✅ Imported {len(imported.accounts)} account(s)")


@cli.command()
@click.pass_context
def info(ctx):
    """Show vault information"""
    with open_manager(ctx) as pm:
        details = pm.get_vault_info()
        file_info = details["file_info"] or {}
        rows = [
            ["Vault", details["name"]],
            ["Owner", details["email"]],
            ["Format version", details["version"]],
            ["Created", f"{details['created']:%Y-%m-%d %H:%M} UTC"],
            ["Last modified", f"{details['last_modified']:%Y-%m-%d %H:%M} UTC"],
            ["Accounts", details["account_count"]],
            ["File", file_info.get("path", "")],
            ["Size (bytes)", file_info.get("size", 0)],
            ["Permissions", file_info.get("permissions", "")],
            ["Backups", file_info.get("backups", 0)],
        ]
        click.echo(tabulate(rows, tablefmt="plain"))


def main():
    cli(obj={})


if __name__ == "__main__":
    main()

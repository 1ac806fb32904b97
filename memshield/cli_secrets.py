#!/usr/bin/env python3
"""
memshield CLI - token, key and secrets command groups.

Extracted from cli.py to keep the main CLI module manageable.
"""
from __future__ import annotations

from typing import Optional

import click

from rich.table import Table

from memshield.cli_helpers import (
    build_examples_epilog,
    console,
    get_services,
    mask_secret,
    print_error,
    print_success,
    print_warning,
)
from memshield.vault.keyring_store import SecretKey

SECRET_NAMES = [k.value for k in SecretKey]


def _warn_if_not_persistent(services) -> None:
    if not services.store.is_keyring_available():
        print_warning("No OS keyring available: this value lasts for this process only")


# ============================================================
# TOKEN COMMANDS
# ============================================================

@click.group()
def token():
    """Manage the worker API bearer token."""
    pass


@token.command("show",
    epilog=build_examples_epilog([
        ("memshield token show", "Show the masked token"),
        ("memshield token show --reveal", "Show the full token"),
    ])
)
@click.option("--reveal", is_flag=True, help="Print the full token instead of the masked form")
@click.pass_context
def token_show(ctx: click.Context, reveal: bool):
    """Show the current API token."""
    tokens = get_services(ctx).tokens

    if reveal:
        value = tokens.get_or_create_token()
        click.echo(value)
        return

    display = tokens.get_token_for_display()
    if display is None:
        print_warning("No API token configured")
        console.print("  [white]Hint: Create one with: memshield token regenerate[/white]")
        return
    console.print(f"API token: {display}")


@token.command("regenerate")
@click.pass_context
def token_regenerate(ctx: click.Context):
    """Generate a new API token. The old token stops working immediately."""
    services = get_services(ctx)
    new_token = services.tokens.regenerate_token()

    print_success("Generated new API token")
    _warn_if_not_persistent(services)
    click.echo(new_token)


@token.command("verify")
@click.argument("candidate", metavar="TOKEN")
@click.pass_context
def token_verify(ctx: click.Context, candidate: str):
    """Check whether TOKEN is the current API token."""
    if get_services(ctx).tokens.validate_token(candidate):
        print_success("Token is valid")
    else:
        print_error("Token is not valid")
        raise SystemExit(1)


# ============================================================
# KEY COMMANDS
# ============================================================

@click.group()
def key():
    """Manage the database encryption key."""
    pass


@key.command("status")
@click.pass_context
def key_status(ctx: click.Context):
    """Show whether an encryption key exists and where it is stored."""
    services = get_services(ctx)

    if services.encryption.has_key():
        print_success("Database encryption key present")
    else:
        print_warning("No database encryption key")
    console.print(f"[white]Backend: {services.store.backend_name}[/white]")


@key.command("rotate",
    epilog=build_examples_epilog([
        ("memshield key rotate", "Generate a replacement key (masked)"),
        ("memshield key rotate --reveal", "Print both keys in full for re-encryption"),
        ("memshield key confirm", "Store the new key once data is re-encrypted"),
    ])
)
@click.option("--reveal", is_flag=True, help="Print both keys in full")
@click.pass_context
def key_rotate(ctx: click.Context, reveal: bool):
    """Generate a replacement key WITHOUT storing it."""
    from memshield.crypto.database_encryption import KeyRotationError

    try:
        rotation = get_services(ctx).encryption.rotate_key()
    except KeyRotationError as e:
        print_error(str(e), fix_hint="Nothing to rotate until a key has been created")
        raise SystemExit(1)

    show = (lambda v: v) if reveal else mask_secret
    console.print(f"Old key: {show(rotation.old_key)}")
    console.print(f"New key: {show(rotation.new_key)}")
    print_warning("The new key is NOT stored yet")
    console.print("  [white]Re-encrypt your data, then run: memshield key confirm[/white]")


@key.command("confirm")
@click.argument("new_key", required=False, default=None)
@click.pass_context
def key_confirm(ctx: click.Context, new_key: Optional[str]):
    """Store NEW_KEY as the encryption key after re-encryption."""
    if new_key is None:
        # Prompt so the key stays out of shell history
        new_key = click.prompt("New encryption key", hide_input=True)

    if get_services(ctx).encryption.confirm_rotation(new_key.strip()):
        print_success("Key rotation confirmed, new key stored")
    else:
        print_error(
            "Failed to store the new key",
            fix_hint="Keys are 64 hex characters; a keyring is required to store them",
        )
        raise SystemExit(1)


@key.command("delete")
@click.option("--yes", is_flag=True, help="Skip the confirmation prompt")
@click.pass_context
def key_delete(ctx: click.Context, yes: bool):
    """Delete the encryption key. Encrypted data becomes unreadable."""
    if not yes:
        click.confirm(
            "Deleting the key makes all data encrypted with it unrecoverable. Continue?",
            abort=True,
        )

    if get_services(ctx).encryption.delete_key():
        print_success("Database encryption key deleted")
    else:
        print_warning("No encryption key to delete")


# ============================================================
# SECRETS COMMANDS
# ============================================================

@click.group()
def secrets():
    """Manage stored secrets (Keychain on macOS, Secret Service on Linux)."""
    pass


@secrets.command("list")
@click.pass_context
def secrets_list(ctx: click.Context):
    """List the managed secrets and whether each is set."""
    store = get_services(ctx).store
    present = set(store.list_secrets())

    table = Table(title="Secrets")
    table.add_column("Name", style="cyan")
    table.add_column("Status")
    for name in SecretKey:
        status = "[green]set[/green]" if name in present else "[white]missing[/white]"
        table.add_row(name.value, status)

    console.print(table)
    console.print(f"[white]Backend: {store.backend_name}[/white]")


@secrets.command("set",
    epilog=build_examples_epilog([
        ("memshield secrets set GEMINI_API_KEY", "Prompt for the value securely"),
    ])
)
@click.argument("name", metavar="KEY", type=click.Choice(SECRET_NAMES, case_sensitive=False))
@click.pass_context
def secrets_set(ctx: click.Context, name: str):
    """Store a secret. The value is read from a hidden prompt."""
    value = click.prompt(f"Enter value for {name}", hide_input=True)

    store = get_services(ctx).store
    if store.set_secret(name, value):
        print_success(f"Stored {name}")
        console.print(f"[white]Backend: {store.backend_name}[/white]")
    else:
        print_error(
            f"Failed to store {name}",
            fix_hint=f"Without a keyring, set the {name} environment variable instead",
        )
        raise SystemExit(1)


@secrets.command("delete")
@click.argument("name", metavar="KEY", type=click.Choice(SECRET_NAMES, case_sensitive=False))
@click.pass_context
def secrets_delete(ctx: click.Context, name: str):
    """Delete a secret from secure storage."""
    if get_services(ctx).store.delete_secret(name):
        print_success(f"Deleted {name}")
    else:
        print_warning(f"Secret not found in secure storage: {name}")

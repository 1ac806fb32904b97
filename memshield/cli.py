#!/usr/bin/env python3
"""
memshield CLI - privacy and credential tooling for the memory layer.

Usage:
    memshield redact [FILE] [--json] [--count]
    memshield token show|regenerate|verify TOKEN
    memshield key status|rotate|confirm|delete
    memshield secrets list|set KEY|delete KEY
    memshield harden
    memshield logs [--limit N]
    memshield logs verify|stats|prune|export
"""
from __future__ import annotations

import json
from typing import Optional

import click

from memshield import __version__
from memshield.cli_helpers import (
    build_examples_epilog,
    get_services,
    print_error,
    print_success,
)
from memshield.cli_logs import logs
from memshield.cli_secrets import key, secrets, token


@click.group()
@click.version_option(version=__version__, prog_name="memshield")
@click.option("--log-level", default=None,
              type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
              help="Operational log level (defaults to the configured level)")
@click.pass_context
def main(ctx: click.Context, log_level: Optional[str]):
    """memshield - keep secrets and private content out of persistent memory."""
    from memshield.config.settings import load_settings
    from memshield.logging import configure_logging

    ctx.ensure_object(dict)
    services = ctx.obj.get("services")
    settings = services.settings if services is not None else load_settings()
    configure_logging(log_level or settings.log_level.value)


@main.command(
    epilog=build_examples_epilog([
        ("memshield redact notes.txt", "Print a sanitized copy of a file"),
        ("cat payload.json | memshield redact --json", "Sanitize JSON from stdin"),
        ("memshield redact notes.txt --count", "Also report the redaction count"),
    ])
)
@click.argument("file", type=click.File("r", encoding="utf-8"), default="-")
@click.option("--json", "as_json", is_flag=True, help="Treat the input as JSON-serialized tool content")
@click.option("--count", "show_count", is_flag=True, help="Print the number of redactions to stderr")
@click.pass_context
def redact(ctx: click.Context, file, as_json: bool, show_count: bool):
    """Strip memory tags and redact secrets from FILE (or stdin)."""
    services = get_services(ctx)
    content = file.read()

    if as_json:
        try:
            json.loads(content)
        except ValueError:
            click.echo("Warning: input is not valid JSON; sanitizing it as plain text", err=True)

    result = services.redactor.strip_tags(content)
    # Payload text is written raw; Rich would parse the marker as markup
    click.echo(result.redacted)

    if show_count:
        click.echo(f"Redactions: {result.count}", err=True)


@main.command(
    epilog=build_examples_epilog([
        ("memshield harden", "Restrict the data directory to the current user"),
    ])
)
@click.pass_context
def harden(ctx: click.Context):
    """Apply owner-only permissions to the data directory."""
    from memshield.logging.security_log import EventType, audit_event
    from memshield.utils.file_permissions import harden_data_directory

    services = get_services(ctx)
    data_dir = services.settings.data_dir

    ok = harden_data_directory(data_dir)
    audit_event(
        services.audit,
        EventType.PERMISSIONS_HARDENED,
        "cli",
        decision="allow" if ok else "deny",
        metadata={"success": ok},
        source="cli",
    )

    if ok:
        print_success(f"Hardened permissions on {data_dir}")
    else:
        print_error(
            f"Some permissions on {data_dir} could not be changed",
            fix_hint="Check file ownership, then re-run 'memshield harden'",
        )
        raise SystemExit(1)


main.add_command(token)
main.add_command(key)
main.add_command(secrets)
main.add_command(logs)


if __name__ == "__main__":
    main()

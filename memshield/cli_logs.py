#!/usr/bin/env python3
"""
memshield CLI - audit log command group.

Extracted from cli.py to keep the main CLI module manageable.
"""
from __future__ import annotations

import json
from datetime import datetime
from pathlib import Path
from typing import Optional

import click

from rich.panel import Panel
from rich.table import Table

from memshield.cli_helpers import build_examples_epilog, console, get_services, print_warning


def _audit_logger(ctx: click.Context):
    audit = get_services(ctx).audit
    if audit is None:
        print_warning("Audit logging is disabled (audit_log_enabled: false)")
        raise SystemExit(1)
    return audit


# ============================================================
# LOGS COMMANDS
# ============================================================

@click.group(invoke_without_command=True,
    epilog=build_examples_epilog([
        ("memshield logs", "Show the last 20 audit events"),
        ("memshield logs --limit 50", "Show the last 50 events"),
        ("memshield logs --type auth_failure", "Filter by event type"),
        ("memshield logs verify", "Verify the audit log hash chain"),
    ])
)
@click.option("--limit", "-n", default=20, show_default=True, help="Number of events to show")
@click.option("--type", "-t", "event_type", help="Filter by event type")
@click.option("--component", "-c", help="Filter by component (vault, auth, crypto, redaction, cli)")
@click.pass_context
def logs(ctx: click.Context, limit: int, event_type: Optional[str], component: Optional[str]):
    """View and manage the security audit log."""
    if ctx.invoked_subcommand is not None:
        return

    from memshield.logging.security_log import EventType

    et = None
    if event_type:
        try:
            et = EventType(event_type)
        except ValueError:
            console.print(f"[red]Unknown event type: {event_type}[/red]")
            console.print(f"[white]Valid types: {', '.join(e.value for e in EventType)}[/white]")
            raise SystemExit(1)

    events = _audit_logger(ctx).get_recent_events(limit=limit, event_type=et, component=component)
    if not events:
        console.print("[yellow]No events found[/yellow]")
        return

    table = Table(title="Recent Security Events")
    table.add_column("Time", style="white")
    table.add_column("Type", style="cyan")
    table.add_column("Component", style="green")
    table.add_column("Decision")

    decision_styles = {"allow": "green", "deny": "red"}

    for event in events:
        timestamp = event.get("timestamp", "")
        if timestamp:
            try:
                timestamp = datetime.fromisoformat(timestamp).strftime("%m/%d %H:%M:%S")
            except (ValueError, TypeError):
                pass

        decision = event.get("decision") or ""
        style = decision_styles.get(decision, "white")
        table.add_row(
            timestamp,
            event.get("event_type", ""),
            event.get("component", ""),
            f"[{style}]{decision}[/{style}]" if decision else "",
        )

    console.print(table)
    console.print(f"\n[white]Showing {len(events)} events. Use --limit to see more.[/white]")


@logs.command("stats")
@click.option("--days", "-d", default=7, show_default=True, help="Number of days to analyze")
@click.pass_context
def logs_stats(ctx: click.Context, days: int):
    """Show audit event counts by type and component."""
    stat_data = _audit_logger(ctx).get_stats(days=days)

    console.print(Panel.fit(
        f"[cyan]Period:[/cyan] Last {days} days\n"
        f"[cyan]Total Events:[/cyan] {stat_data['total_events']}",
        title="Security Statistics"
    ))

    for title, key in (("Events by Type", "by_type"), ("Events by Component", "by_component")):
        if not stat_data[key]:
            continue
        table = Table(title=title)
        table.add_column("Name", style="cyan")
        table.add_column("Count", justify="right")
        for name, count in stat_data[key].items():
            table.add_row(name, str(count))
        console.print(table)


@logs.command("verify")
@click.option("--json", "json_out", is_flag=True, help="Output as JSON")
@click.pass_context
def logs_verify(ctx: click.Context, json_out: bool):
    """Verify the integrity of the audit log hash chain.

    Exit code 0 if the chain is intact, 1 if tampering was detected.
    """
    result = _audit_logger(ctx).verify_chain()

    if json_out:
        click.echo(json.dumps(result, indent=2))
        if not result["valid"]:
            raise SystemExit(1)
        return

    if result["total"] == 0:
        console.print("[yellow]No log entries to verify[/yellow]")
        return

    if result["valid"]:
        console.print(
            f"[green]✓[/green] Audit log chain verified: {result['verified']} entries intact"
        )
        return

    console.print(f"[red]✗ Audit log chain BROKEN[/red] at entry #{result['broken_at']}")
    console.print(
        f"  {result['verified']} verified, {len(result['errors'])} tampered "
        f"out of {result['total']} total"
    )
    raise SystemExit(1)


@logs.command("prune")
@click.option("--days", "-d", type=int, default=None,
              help="Delete events older than N days (defaults to retention_days)")
@click.pass_context
def logs_prune(ctx: click.Context, days: Optional[int]):
    """Delete audit events older than the retention period."""
    settings = get_services(ctx).settings
    if days is None:
        if not settings.retention_enabled:
            print_warning("Retention is disabled (retention_enabled: false); pass --days to prune anyway")
            return
        days = settings.retention_days

    deleted = _audit_logger(ctx).delete_events(days=days)
    if deleted > 0:
        console.print(f"[green]Pruned {deleted} event(s) older than {days} days[/green]")
    else:
        console.print("[white]No events to prune[/white]")


@logs.command("export")
@click.option("--days", "-d", type=int, help="Limit to last N days")
@click.option("--output", "-o", default="memshield_security_log.csv", help="Output file path")
@click.pass_context
def logs_export(ctx: click.Context, days: Optional[int], output: str):
    """Export the audit log to CSV."""
    output_path = Path(output)
    count = _audit_logger(ctx).export_csv(output_path, days=days)

    if count > 0:
        console.print(f"[green]✓[/green] Exported {count} events to {output_path}")
    else:
        console.print("[yellow]No events to export[/yellow]")

#!/usr/bin/env python3
"""
memshield CLI Helpers

Shared formatting utilities for consistent CLI output across all commands,
plus lazy access to the process's security services.
"""
from __future__ import annotations

from typing import List, Optional, Tuple

import click

from rich.console import Console

# Single shared Console instance for the entire CLI
console = Console()

MASK_PREFIX_LENGTH = 8


def print_success(message: str) -> None:
    """Print a success message with green checkmark."""
    console.print(f"[green]✓[/green] {message}")


def print_warning(message: str) -> None:
    """Print a warning message with yellow triangle."""
    console.print(f"[yellow]⚠[/yellow]  {message}")


def print_error(message: str, fix_hint: str = "") -> None:
    """Print an error message with red X and optional fix hint."""
    console.print(f"[red]✗[/red] {message}")
    if fix_hint:
        console.print(f"  [white]Hint: {fix_hint}[/white]")


def mask_secret(value: Optional[str], prefix_length: int = MASK_PREFIX_LENGTH) -> str:
    """Show only the first characters of a secret, e.g. 'a1b2c3d4...'."""
    if not value:
        return "(none)"
    if len(value) <= prefix_length:
        return "*" * len(value)
    return f"{value[:prefix_length]}..."


def format_command_example(command: str, description: str) -> str:
    """
    Format a single command example line.

    Args:
        command: The command string, e.g., "memshield key rotate"
        description: Brief explanation of what it does.
    """
    return f"  {command:<40s} {description}"


def build_examples_epilog(examples: List[Tuple[str, str]]) -> str:
    """
    Build a formatted epilog string with command examples.

    Args:
        examples: List of (command, description) tuples.

    Returns:
        Multi-line string suitable for Click's epilog parameter.
    """
    lines = ["\b\nExamples:"]
    for cmd, desc in examples:
        lines.append(format_command_example(cmd, desc))
    return "\n".join(lines) + "\n"


def get_services(ctx: click.Context):
    """Return the SecurityServices for this invocation, building them once.

    Tests (or embedding code) may pre-populate ``ctx.obj["services"]``.
    """
    from memshield.config.settings import load_settings
    from memshield.services import build_services

    obj = ctx.ensure_object(dict)
    services = obj.get("services")
    if services is None:
        services = build_services(load_settings())
        obj["services"] = services
        ctx.find_root().call_on_close(services.close)
    return services

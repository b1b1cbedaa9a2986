"""
Main application entry point for fmadmin.

Provides the CLI for viewing, watching and editing agency profiles.
"""

import sys
from typing import Optional

import click
from rich.console import Console

from fmadmin.cli_commands.doctor import doctor
from fmadmin.cli_commands.profiles import edit, show, status, watch
from fmadmin.core.config import print_configuration_summary, validate_required_settings
from fmadmin.core.logging import set_correlation_id, setup_logging

console = Console()


@click.group()
@click.option("--debug", is_flag=True, help="Enable debug logging")
@click.option("--dry-run", is_flag=True, help="Run in dry-run mode (no writes to the backend)")
@click.option("--correlation-id", help="Set correlation ID for request tracing")
@click.pass_context
def main(ctx, debug: bool, dry_run: bool, correlation_id: Optional[str]):
    """Profile console for parent and surrogate records.

    Resolves display views from loosely structured profile rows, applies
    edits optimistically and follows live changes from the backend.
    """
    ctx.ensure_object(dict)

    setup_logging(debug=debug, rich_output=True)

    if correlation_id:
        set_correlation_id(correlation_id)

    ctx.obj["debug"] = debug
    ctx.obj["dry_run"] = dry_run
    ctx.obj["correlation_id"] = correlation_id


main.add_command(show)
main.add_command(watch)
main.add_command(edit)
main.add_command(status)
main.add_command(doctor)


@main.command()
@click.pass_context
def config(ctx):
    """Display current configuration."""
    try:
        console.print("[blue]fmadmin Configuration[/blue]")

        missing = validate_required_settings("sync")
        if missing:
            console.print("[red]Configuration Issues:[/red]")
            for item in missing:
                console.print(f"  • Missing: {item}")
            console.print()
        else:
            console.print("[green]Configuration Valid[/green]")
            console.print()

        print_configuration_summary()

        sys.exit(0 if not missing else 1)

    except Exception as e:
        console.print(f"[red]Configuration Error:[/red] {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()

"""
"Doctor" command: configuration and backend diagnostics.

Runs a series of checks and prints a concise report:
 - Config summary and required keys
 - Profiles table reachability
 - Optional lookup of one profile row
"""

from __future__ import annotations

import asyncio
from typing import Optional

import click

from fmadmin.core.config import (
    get_settings,
    print_configuration_summary,
    validate_required_settings,
)
from fmadmin.data.rest_backend import RestProfileBackend


async def _check_backend(entity_id: Optional[str]) -> dict:
    cfg = get_settings()
    async with RestProfileBackend(cfg.backend, cfg.feed, dry_run=True) as backend:
        result = await backend.health_check()
        if entity_id and result.get("status") == "healthy":
            record = await backend.fetch(entity_id)
            result["profile_found"] = record is not None
        return result


@click.command()
@click.option("--profile", "entity_id", help="Also look up this profile id")
@click.pass_context
def doctor(ctx, entity_id: Optional[str]):
    """Run fmadmin diagnostics and print a summary report."""
    click.echo("fmadmin Doctor")
    click.echo("=" * 40)

    print_configuration_summary()

    missing = validate_required_settings("sync")
    if missing:
        for item in missing:
            click.echo(f"✗ Missing: {item}")
        ctx.exit(1)

    try:
        health = asyncio.run(_check_backend(entity_id))
    except Exception as e:
        click.echo(f"✗ Backend check failed: {e}")
        ctx.exit(1)

    if health.get("status") == "healthy":
        breaker = health.get("circuit_breaker", {})
        click.echo(f"✓ Profiles backend healthy (circuit {breaker.get('state', 'unknown')})")
    else:
        click.echo(f"✗ Profiles backend unhealthy: {health.get('error', 'unknown')}")

    if "profile_found" in health:
        mark = "✓" if health["profile_found"] else "✗"
        click.echo(f"{mark} Profile {entity_id}: {'found' if health['profile_found'] else 'not found'}")

    click.echo("\nDone.")
    ctx.exit(0 if health.get("status") == "healthy" else 1)

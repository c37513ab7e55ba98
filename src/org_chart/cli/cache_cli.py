"""Flask CLI commands for cache maintenance.

Provides ``flask cache stats``, ``flask cache clear`` and
``flask cache invalidate <prefix>``.
"""

import click
from flask import current_app
from flask.cli import AppGroup

cache_cli = AppGroup("cache", help="Hierarchy cache commands.")


def _cache():
    cache = current_app.extensions.get("cache")
    if cache is None:
        click.echo("Error: cache is not initialized", err=True)
        raise SystemExit(1)
    return cache


@cache_cli.command("stats")
def stats_command() -> None:
    """Show backend, namespace and hit/miss counters for this process."""
    for name, value in _cache().stats.items():
        if name == "hit_rate":
            value = f"{value:.1%}"
        click.echo(f"  {name + ':':<15}{value}")


@cache_cli.command("clear")
@click.confirmation_option(prompt="Drop every cached view in this namespace?")
def clear_command() -> None:
    """Drop every key in the configured namespace."""
    cache = _cache()
    removed = cache.clear()
    click.echo(f"Cleared {removed} keys from namespace {cache.namespace}.")


@cache_cli.command("invalidate")
@click.argument("prefix")
def invalidate_command(prefix: str) -> None:
    """Drop keys starting with PREFIX (e.g. 'department:7:' or 'employee:all:')."""
    removed = _cache().invalidate_by_prefix(prefix)
    click.echo(f"Invalidated {removed} keys under '{prefix}'.")

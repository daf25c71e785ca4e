#!/usr/bin/env python3
"""CLI for the listing resolver."""

import json
import logging
import sys

import click

from config import DB_PATH
from errors import InvalidURL, ListingNotFound, UnsupportedDomain
from resolver import create_resolver
from scheduler import prune_caches


def _echo_json(payload: dict):
    click.echo(json.dumps(payload, ensure_ascii=False, indent=2))


@click.group()
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose logging")
@click.option("--db", "db_path", default=DB_PATH, show_default=True, help="SQLite database path")
@click.pass_context
def cli(ctx, verbose, db_path):
    """Listing Resolver"""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(message)s",
        datefmt="%H:%M:%S",
    )
    ctx.obj = create_resolver(db_path)


@cli.command()
@click.argument("url")
@click.pass_obj
def resolve(resolver, url):
    """Resolve a listing URL into a record."""
    try:
        result = resolver.resolve(url)
    except (InvalidURL, UnsupportedDomain) as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(2)

    _echo_json({
        "created": result.created,
        "degraded": result.degraded,
        "warnings": result.warnings,
        "ad": result.record.to_dict(),
    })


@cli.command()
@click.argument("ad_id")
@click.pass_obj
def show(resolver, ad_id):
    """Show a listing (counts as a view)."""
    try:
        record = resolver.get_and_touch(ad_id)
    except ListingNotFound as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)
    _echo_json(record.to_dict())


@cli.command()
@click.option("--limit", "-n", default=20, help="Number of listings to show")
@click.option("--offset", default=0, help="Listings to skip")
@click.pass_obj
def top(resolver, limit, offset):
    """Show the most viewed listings."""
    page = resolver.list_top(limit, offset)
    if not page.records:
        click.echo("No listings yet. Run 'resolve' first.")
        return

    click.echo(f"\nTop {len(page.records)} of {page.total} listings:\n")
    click.echo(f"{'Title':<50} {'Views':>6} {'Approx':>6}  {'Id'}")
    click.echo("-" * 100)
    for record in page.records:
        click.echo(
            f"{record.title[:49]:<50} "
            f"{record.views:>6} "
            f"{('yes' if record.approximate else ''):>6}  "
            f"{record.id}"
        )


@cli.command()
@click.argument("ad_id")
@click.pass_obj
def refresh(resolver, ad_id):
    """Re-fetch a listing and fill in missing details."""
    try:
        result = resolver.refresh(ad_id)
    except ListingNotFound as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)
    _echo_json({
        "refreshed": result.refreshed,
        "degraded": result.degraded,
        "warnings": result.warnings,
        "ad": result.record.to_dict(),
    })


@cli.command()
@click.pass_obj
def prune(resolver):
    """Drop expired entries from the in-memory caches."""
    _echo_json(prune_caches(resolver))


@cli.command()
@click.option("--host", default="0.0.0.0", envvar="HOST", show_default=True)
@click.option("--port", default=5000, envvar="PORT", help="Port to serve on")
@click.option("--workers", default=1, envvar="WORKERS",
              help="Worker processes; each keeps its own mirror and parse cache")
@click.option("--log-level", default="info", envvar="LOG_LEVEL")
@click.pass_obj
def serve(resolver, host, port, workers, log_level):
    """Start the API server."""
    import uvicorn

    click.echo(f"Starting API on http://{host}:{port}")
    if workers > 1:
        # Workers import the app themselves and build their own resolver.
        uvicorn.run("app:app", host=host, port=port, workers=workers, log_level=log_level)
        return

    from app import app
    app.state.resolver = resolver
    uvicorn.run(app, host=host, port=port, log_level=log_level)


if __name__ == "__main__":
    cli()

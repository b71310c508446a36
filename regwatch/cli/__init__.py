"""CLI entry point for regulatory page change detection."""

from __future__ import annotations

import click

from regwatch.cli.commands import check_page, history, init_db, show_config


@click.group()
def cli() -> None:
    """Regulatory page change detection."""


cli.add_command(init_db)
cli.add_command(check_page)
cli.add_command(history)
cli.add_command(show_config)

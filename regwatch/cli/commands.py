"""CLI command implementations for regulatory page change detection."""

from __future__ import annotations

import json
from typing import IO, TYPE_CHECKING, Any

import click

from regwatch.exceptions import ConfigurationError, RegwatchError
from regwatch.models.config import Settings, load_settings
from regwatch.utils.logger import configure_logging

if TYPE_CHECKING:
    from regwatch.services.database import Database
    from regwatch.services.protocols import VersionStoreProtocol


def _get_settings() -> Settings:
    """Load settings from the environment and .env file."""
    try:
        return load_settings()
    except ConfigurationError as exc:
        click.echo(f"[ERROR] Invalid configuration: {exc}")
        raise click.exceptions.Exit(1) from exc


def _get_db(settings: Settings) -> Database:
    """Initialize database with schema."""
    from regwatch.services.database import Database

    db = Database(db_path=settings.database_path, timeout=settings.storage_timeout_seconds)
    db.init_db()
    return db


def _get_store(settings: Settings) -> tuple[VersionStoreProtocol, Database | None]:
    """Version store for the configured backend, plus its database if any."""
    from regwatch.domains.monitoring.repositories.store_factory import create_version_store

    db = _get_db(settings) if settings.storage_backend == "sqlite" else None
    return create_version_store(settings, db=db), db


def _print_summary(title: str, stats: dict[str, Any]) -> None:
    """Print a formatted summary of a command's results."""
    click.echo(f"\n[SUCCESS] {title}")
    for key, value in stats.items():
        if key == "errors" and isinstance(value, list):
            if value:
                click.echo(f"  Errors ({len(value)}):")
                for error in value[:10]:
                    click.echo(f"    - {error}")
                if len(value) > 10:
                    click.echo(f"    ... and {len(value) - 10} more")
        elif key != "results":
            click.echo(f"  {key}: {value}")


@click.command()
def init_db() -> None:
    """Create the SQLite schema for page versions."""
    settings = _get_settings()
    configure_logging(settings.log_level)

    db = _get_db(settings)
    click.echo(f"[SUCCESS] Database initialized at {settings.database_path}")
    db.close()


@click.command()
@click.argument("url")
@click.option(
    "--text-file",
    required=True,
    type=click.File("r", encoding="utf-8"),
    help="File with the extracted page text",
)
@click.option(
    "--html-file",
    default=None,
    type=click.File("r", encoding="utf-8"),
    help="File with the rendered page HTML",
)
@click.option(
    "--output-format",
    default="summary",
    type=click.Choice(["summary", "json"]),
    help="Output format",
)
def check_page(
    url: str,
    text_file: IO[str],
    html_file: IO[str] | None,
    output_format: str,
) -> None:
    """Compare a captured page against its stored history and record it."""
    settings = _get_settings()
    configure_logging(settings.log_level)

    from regwatch.domains.monitoring.services.change_detection_service import (
        ChangeDetectionService,
    )

    try:
        config = settings.detection_config()
        store, db = _get_store(settings)
    except RegwatchError as exc:
        click.echo(f"[ERROR] {exc}")
        raise click.exceptions.Exit(1) from exc

    service = ChangeDetectionService(store, config)
    new_text = text_file.read()
    new_html = html_file.read() if html_file is not None else ""

    if output_format != "json":
        click.echo(f"[INFO] Checking {url}...")
    try:
        result = service.detect_and_record(url, new_html, new_text)
    except RegwatchError as exc:
        click.echo(f"[ERROR] {type(exc).__name__}: {exc}")
        raise click.exceptions.Exit(1) from exc
    finally:
        if db is not None:
            db.close()

    if output_format == "json":
        click.echo(json.dumps(result.to_dict(), indent=2))
        return

    _print_summary(
        "Change check complete",
        {
            "change_type": result.change_type.value,
            "significant": result.has_significant_changes,
            "importance_level": result.importance_level,
            "weighted_score": f"{result.weighted_score:.3f}",
            "change_percentage": f"{result.change_percentage * 100:.1f}%",
            "summary": result.summary,
        },
    )
    if result.changed_sections:
        click.echo("  Changed sections:")
        for title in result.changed_sections[:10]:
            click.echo(f"    - {title}")


@click.command()
@click.argument("url", required=False)
@click.option("--limit", default=10, type=int, help="Max versions to display")
def history(url: str | None, limit: int) -> None:
    """Show stored versions for a URL, or list tracked URLs when none is given."""
    settings = _get_settings()
    configure_logging(settings.log_level)

    try:
        store, db = _get_store(settings)
    except RegwatchError as exc:
        click.echo(f"[ERROR] {exc}")
        raise click.exceptions.Exit(1) from exc

    try:
        if url is None:
            urls = store.list_urls()
            if not urls:
                click.echo("[INFO] No pages tracked yet.")
            else:
                click.echo(f"[INFO] Tracking {len(urls)} pages:\n")
                for tracked in urls:
                    click.echo(f"  {tracked} ({store.count_versions(tracked)} versions)")
        else:
            versions = store.get_version_history(url, limit)
            if not versions:
                click.echo(f"[INFO] No versions stored for {url}.")
            else:
                click.echo(f"\n[INFO] Version history for: {url}\n")
                for version in versions:
                    click.echo(
                        f"  {version.captured_at.isoformat()} | "
                        f"{version.change_from_previous.value} | "
                        f"{version.content_hash[:12]} | "
                        f"{version.content_length} chars"
                    )
                    if version.content_summary:
                        click.echo(f"    {version.content_summary[:100]}")
    except RegwatchError as exc:
        click.echo(f"[ERROR] {exc}")
        raise click.exceptions.Exit(1) from exc
    finally:
        if db is not None:
            db.close()


@click.command()
def show_config() -> None:
    """Print the effective configuration as JSON."""
    settings = _get_settings()
    click.echo(json.dumps(settings.model_dump(mode="json"), indent=2))

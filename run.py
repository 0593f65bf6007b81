"""Entry-point for the educational content service."""

from __future__ import annotations

import asyncio
import json
import logging
from pathlib import Path
from typing import Optional

import typer
import uvicorn

from edu_content.bootstrap import initialize_app
from edu_content.logging_utils import DEFAULT_LOG_FORMAT, configure_logging, get_log_file_path
from edu_content.services.errors import ContentServiceError, InvalidVideoURLError
from edu_content.services.imports import ContentImporter
from edu_content.services.storage import CONTENT_STATUSES, ContentRepository
from edu_content.services.youtube import YouTubeClient, extract_video_id
from edu_content.ui.console import ContentOverview
from edu_content.web import create_app
from edu_content.web.server import normalize_root_path


LOGGER = logging.getLogger("edu_content.cli")


cli = typer.Typer(add_completion=False, help="Educational content service commands")


DEFAULT_HOST = "127.0.0.1"
DEFAULT_PORT = 8000


def _prepare_logging(storage_root: Path) -> None:
    log_file = get_log_file_path(storage_root)
    formatter = logging.Formatter(DEFAULT_LOG_FORMAT)
    file_handler = logging.FileHandler(log_file, encoding="utf-8")
    file_handler.setFormatter(formatter)
    stream_handler = logging.StreamHandler()
    stream_handler.setFormatter(formatter)
    configure_logging(handlers=[file_handler, stream_handler])


@cli.callback(invoke_without_command=True)
def main(ctx: typer.Context) -> None:
    """Launch the web server when no explicit command is provided."""

    if ctx.invoked_subcommand is None:
        ctx.invoke(serve, host=DEFAULT_HOST, port=DEFAULT_PORT, root_path=None)


@cli.command()
def serve(
    host: str = typer.Option(DEFAULT_HOST, help="Host interface for the web server"),
    port: int = typer.Option(DEFAULT_PORT, help="Port for the web server"),
    root_path: Optional[str] = typer.Option(
        None,
        help="Prefix the application expects when mounted behind a proxy",
        envvar="EDU_CONTENT_ROOT_PATH",
    ),
) -> None:
    """Run the FastAPI web service."""

    app_config = initialize_app()
    _prepare_logging(app_config.storage_root)
    if not app_config.youtube.api_key:
        LOGGER.warning("No YouTube API key configured; video lookups will fail.")

    repository = ContentRepository(app_config)
    normalized_root = normalize_root_path(root_path)
    app = create_app(repository, config=app_config, root_path=normalized_root)

    server_config = uvicorn.Config(
        app,
        host=host,
        port=port,
        log_config=None,
        root_path=normalized_root,
    )
    server = uvicorn.Server(server_config)
    app.state.server = server
    LOGGER.info("Serving on http://%s:%s%s/", host, port, normalized_root)
    server.run()


@cli.command("import-video")
def import_video(
    url: str = typer.Argument(..., help="YouTube video URL to import."),
    content_id: Optional[str] = typer.Option(
        None, "--id", help="Identifier to assign to the new content record."
    ),
) -> None:
    """Import a single video and report the resulting status."""

    config = initialize_app()
    _prepare_logging(config.storage_root)

    repository = ContentRepository(config)
    importer = ContentImporter(repository, YouTubeClient(config.youtube))
    try:
        record = asyncio.run(importer.import_video(url, content_id=content_id))
    except InvalidVideoURLError as error:
        typer.echo(f"Import rejected: {error}")
        raise typer.Exit(code=2) from error
    except ContentServiceError as error:
        typer.echo(f"Import failed: {error}")
        raise typer.Exit(code=1) from error

    typer.echo(f"Content {record.id}: {record.status} ({record.progress}%)")
    if record.error_details:
        typer.echo(f"Error: {record.error_details}")
        raise typer.Exit(code=1)


@cli.command()
def status(content_id: str = typer.Argument(..., help="Content record identifier.")) -> None:
    """Print the import status of a content record."""

    config = initialize_app()
    importer = ContentImporter(ContentRepository(config))
    typer.echo(json.dumps(importer.check_import_status(content_id).to_dict(), indent=2))


@cli.command()
def video(target: str = typer.Argument(..., help="Video URL or identifier.")) -> None:
    """Fetch and print metadata for a single video."""

    config = initialize_app()
    video_id = extract_video_id(target) or target
    client = YouTubeClient(config.youtube)
    try:
        details = asyncio.run(client.get_video_details(video_id))
    except ContentServiceError as error:
        typer.echo(f"Lookup failed: {error}")
        raise typer.Exit(code=1) from error
    if details is None:
        typer.echo(f"No video found for id '{video_id}'")
        raise typer.Exit(code=1)
    typer.echo(json.dumps(details, indent=2, ensure_ascii=False))


@cli.command()
def overview(
    status_filter: Optional[str] = typer.Option(
        None, "--status", help="Only show imports in this status."
    ),
) -> None:
    """Render stored imports and learning paths as a console overview."""

    if status_filter is not None and status_filter not in CONTENT_STATUSES:
        typer.echo(f"Unknown status '{status_filter}'")
        raise typer.Exit(code=2)

    config = initialize_app()
    ContentOverview(ContentRepository(config)).run(status=status_filter)


if __name__ == "__main__":
    cli()

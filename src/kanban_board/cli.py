"""
Click CLI for the Kanban Board

Entry point ``kanban-board`` with subcommands to serve the REST API, run the
MCP server, seed a board from YAML, print the board, and manage the schema.
Options fall back to the environment (see BoardSettings).
"""

import logging
import socket
import sys
from typing import Optional

import click

from .config import BoardSettings
from .database import TaskDatabase
from .errors import TaskBoardError
from .importer import import_board_from_file
from .models import BoardColumns, TaskStatus
from .service import TaskService

logger = logging.getLogger(__name__)


def check_port_available(host: str, port: int) -> bool:
    """Return True if (host, port) can be bound right now."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        try:
            sock.bind((host, port))
        except OSError:
            return False
    return True


def configure_logging(level: str) -> None:
    # MCP stdio owns stdout, so logs always go to stderr
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )


def print_startup_banner(settings: BoardSettings) -> None:
    click.echo("Kanban Board")
    click.echo(f"  API:      http://{settings.host}:{settings.port}/api/tasks")
    click.echo(f"  Health:   http://{settings.host}:{settings.port}/healthz")
    click.echo(f"  Database: {settings.database_path}")


def _open_database(settings: BoardSettings) -> TaskDatabase:
    try:
        return TaskDatabase(settings.database_path)
    except RuntimeError as e:
        raise click.ClickException(f"Failed to initialize database: {e}")


@click.group()
@click.option("--log-level", default=None, help="Logging level (default: LOG_LEVEL or INFO)")
@click.pass_context
def main(ctx: click.Context, log_level: Optional[str]):
    """Kanban task board with drag-and-drop reordering."""
    settings = BoardSettings.from_env().with_overrides(log_level=log_level.upper() if log_level else None)
    configure_logging(settings.log_level)
    ctx.obj = settings


@main.command()
@click.option("--host", default=None, help="Bind host (default: SERVER_HOST or 0.0.0.0)")
@click.option("--port", type=int, default=None, help="Bind port (default: SERVER_PORT or 2022)")
@click.option("--db-path", default=None, help="SQLite database path (default: DATABASE_PATH)")
@click.option("--reindex-on-update/--no-reindex-on-update", default=None,
              help="Reindex columns when update changes status or position")
@click.pass_obj
def serve(settings: BoardSettings, host, port, db_path, reindex_on_update):
    """Run the REST API with uvicorn."""
    import uvicorn

    from . import api

    settings = settings.with_overrides(
        host=host, port=port, database_path=db_path, reindex_on_update=reindex_on_update
    )
    if not check_port_available(settings.host, settings.port):
        raise click.ClickException(f"Port conflict: {settings.port} is already in use")

    api.configure_app(settings)
    print_startup_banner(settings)
    uvicorn.run(api.app, host=settings.host, port=settings.port, log_level=settings.log_level.lower())


@main.command()
@click.option("--transport", type=click.Choice(["stdio", "sse", "http"]), default="stdio",
              show_default=True, help="MCP transport")
@click.option("--host", default="127.0.0.1", show_default=True, help="Bind host for sse/http")
@click.option("--port", type=int, default=8000, show_default=True, help="Bind port for sse/http")
@click.option("--db-path", default=None, help="SQLite database path (default: DATABASE_PATH)")
@click.pass_obj
def mcp(settings: BoardSettings, transport, host, port, db_path):
    """Run the MCP server exposing the board tools."""
    from .mcp_server import create_mcp_server

    settings = settings.with_overrides(database_path=db_path)
    db = _open_database(settings)
    logger.info(f"Starting MCP server ({transport}) for {settings.database_path}")
    try:
        server = create_mcp_server(TaskService(db, settings))
        server.run(transport=transport, host=host, port=port)
    finally:
        db.close()


@main.command()
@click.argument("yaml_file", type=click.Path(exists=True, dir_okay=False))
@click.option("--db-path", default=None, help="SQLite database path (default: DATABASE_PATH)")
@click.pass_obj
def seed(settings: BoardSettings, yaml_file, db_path):
    """Append the tasks in YAML_FILE to the board."""
    settings = settings.with_overrides(database_path=db_path)
    with _open_database(settings) as db:
        try:
            stats = import_board_from_file(db, yaml_file)
        except TaskBoardError as e:
            raise click.ClickException(f"Import failed: {e}")

    columns = ", ".join(f"{name}={count}" for name, count in stats["columns"].items())
    click.echo(f"Imported {stats['tasks_created']} tasks ({columns})")


@main.command(name="list")
@click.option("--db-path", default=None, help="SQLite database path (default: DATABASE_PATH)")
@click.pass_obj
def list_tasks(settings: BoardSettings, db_path):
    """Print the board grouped by column."""
    settings = settings.with_overrides(database_path=db_path)
    with _open_database(settings) as db:
        board = BoardColumns.from_tasks(TaskService(db, settings).list())

    for status in TaskStatus:
        tasks = getattr(board, status.value)
        click.echo(f"{status.value} ({len(tasks)})")
        for task in tasks:
            click.echo(f"  [{task.position}] #{task.id} {task.title}")


@main.command(name="init-db")
@click.option("--db-path", default=None, help="SQLite database path (default: DATABASE_PATH)")
@click.option("--fresh", is_flag=True, help="Drop existing tasks and recreate the schema")
@click.pass_obj
def init_db(settings: BoardSettings, db_path, fresh):
    """Create the database schema."""
    settings = settings.with_overrides(database_path=db_path)
    if fresh:
        click.confirm(f"Delete every task in {settings.database_path}?", abort=True)
    with _open_database(settings) as db:
        if fresh:
            db.initialize_fresh()
    click.echo(f"Database ready: {settings.database_path}")


@main.command()
@click.option("--db-path", default=None, help="SQLite database path (default: DATABASE_PATH)")
@click.pass_obj
def check(settings: BoardSettings, db_path):
    """Verify that every column's positions run 0..k-1."""
    settings = settings.with_overrides(database_path=db_path)
    with _open_database(settings) as db:
        broken = TaskService(db, settings).verify_density()

    if not broken:
        click.echo("All columns are dense")
        return
    for status, positions in broken.items():
        click.echo(f"{status}: positions {positions} are not dense", err=True)
    sys.exit(1)


if __name__ == "__main__":
    main()

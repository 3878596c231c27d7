"""TaskRelay CLI: in-process channel adapter and server launcher.

Usage:
    taskrelay analyze "Create a task in Linear for Friday"
    taskrelay send "Create a task in Linear for Friday" --tenant acme --conversation c1
    taskrelay session acme c1
    taskrelay serve --port 8000
"""

import asyncio
import os
from typing import Optional

import typer
from rich.console import Console
from sqlalchemy.orm import sessionmaker

from taskrelay import __version__
from taskrelay.cli.output import (
    format_preview,
    format_relay_error,
    format_result,
    format_session,
)
from taskrelay.config import RelayConfig, load_config
from taskrelay.db.connection import SessionLocal, create_db_engine, engine, init_db
from taskrelay.errors import RelayError
from taskrelay.orchestrator.models import Category, Request
from taskrelay.orchestrator.pipeline import Orchestrator
from taskrelay.services.session_persistence_service import SqlSessionStore

app = typer.Typer(
    name="taskrelay",
    help="Route natural-language work requests to an execution backend",
    no_args_is_help=True,
)

console = Console()

# --- Global state ---
_config_path: str | None = None


@app.callback()
def main(
    config: Optional[str] = typer.Option(
        None, "--config", help="Path to taskrelay.yaml config file"
    ),
):
    """TaskRelay CLI."""
    global _config_path
    _config_path = config


def _load() -> RelayConfig:
    try:
        return load_config(config_path=_config_path)
    except FileNotFoundError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(1)


def _build(cfg: RelayConfig) -> Orchestrator:
    """Wire an in-process orchestrator backed by the durable session store."""
    if cfg.database_url:
        db_engine = create_db_engine(cfg.database_url)
        session_factory = sessionmaker(autocommit=False, autoflush=False, bind=db_engine)
    else:
        db_engine = engine
        session_factory = SessionLocal
    init_db(db_engine)
    return Orchestrator.from_config(cfg, durable=SqlSessionStore(session_factory))


def _parse_category(value: str | None) -> Category | None:
    if value is None:
        return None
    try:
        return Category(value)
    except ValueError:
        choices = ", ".join(c.value for c in Category)
        console.print(f"[red]Unknown category '{value}'. Choose from: {choices}[/red]")
        raise typer.Exit(2)


# --- Version ---


@app.command()
def version():
    """Show TaskRelay version and dependency info."""
    console.print(f"[bold]TaskRelay[/bold] v{__version__}")
    try:
        import anthropic
        console.print(f"  Anthropic SDK: {getattr(anthropic, '__version__', 'unknown')}")
    except ImportError:
        console.print("  Anthropic SDK: [red]not installed[/red]")


# --- Routing ---


@app.command()
def analyze(
    text: str = typer.Argument(..., help="Request text"),
    tenant: str = typer.Option("default", "--tenant", "-t", help="Tenant ID"),
    conversation: Optional[str] = typer.Option(
        None, "--conversation", "-c", help="Conversation whose history informs continuity"
    ),
    category: Optional[str] = typer.Option(None, "--category", help="Pin a category"),
    json_output: bool = typer.Option(False, "--json", help="Output as JSON"),
):
    """Analyze a request and preview its route without executing it."""
    cfg = _load()
    pin = _parse_category(category)

    async def _run():
        orchestrator = _build(cfg)
        try:
            preview = await orchestrator.preview(
                text, tenant, conversation_id=conversation, category_pin=pin
            )
        except RelayError as e:
            console.print(format_relay_error(e, as_json=json_output))
            raise typer.Exit(1)
        finally:
            await orchestrator.aclose()
        console.print(format_preview(preview, as_json=json_output))

    asyncio.run(_run())


@app.command()
def send(
    text: str = typer.Argument(..., help="Request text"),
    tenant: str = typer.Option(..., "--tenant", "-t", help="Tenant ID"),
    conversation: str = typer.Option(..., "--conversation", "-c", help="Conversation ID"),
    user: str = typer.Option("cli", "--user", help="User ID"),
    deadline: Optional[float] = typer.Option(
        None, "--deadline", help="Time budget in seconds"
    ),
    category: Optional[str] = typer.Option(None, "--category", help="Pin a category"),
    json_output: bool = typer.Option(False, "--json", help="Output as JSON"),
):
    """Route and execute a request in-process."""
    cfg = _load()
    request = Request(
        text=text,
        tenant_id=tenant,
        conversation_id=conversation,
        user_id=user,
        channel="cli",
        deadline_seconds=deadline,
        category_pin=_parse_category(category),
    )

    async def _run():
        orchestrator = _build(cfg)
        try:
            result = await orchestrator.handle(request)
        except RelayError as e:
            console.print(format_relay_error(e, as_json=json_output))
            raise typer.Exit(1)
        finally:
            await orchestrator.aclose()
        console.print(format_result(result, as_json=json_output))

    asyncio.run(_run())


# --- Sessions ---


@app.command()
def session(
    tenant: str = typer.Argument(..., help="Tenant ID"),
    conversation: str = typer.Argument(..., help="Conversation ID"),
    json_output: bool = typer.Option(False, "--json", help="Output as JSON"),
):
    """Show a session's recent turns and continuity."""
    cfg = _load()

    async def _run():
        orchestrator = _build(cfg)
        try:
            summary = await orchestrator.inspect_session(tenant, conversation)
        finally:
            await orchestrator.aclose()
        if summary is None:
            console.print(f"[yellow]No session found for {tenant}/{conversation}.[/yellow]")
            raise typer.Exit(1)
        console.print(format_session(summary, as_json=json_output))

    asyncio.run(_run())


# --- Server ---


@app.command()
def serve(
    host: Optional[str] = typer.Option(None, "--host", help="Bind address"),
    port: Optional[int] = typer.Option(None, "--port", help="Bind port"),
):
    """Start the HTTP API with uvicorn."""
    import uvicorn

    cfg = _load()
    final_host = host or cfg.server.host
    final_port = port or cfg.server.port

    # Propagate config path to API startup so it loads the same config
    if _config_path:
        os.environ["TASKRELAY_CONFIG_PATH"] = str(_config_path)

    console.print(f"[bold]Starting TaskRelay API on {final_host}:{final_port}[/bold]")
    uvicorn.run(
        "taskrelay.api.main:app",
        host=final_host,
        port=final_port,
        log_level=cfg.server.log_level,
    )


if __name__ == "__main__":
    app()

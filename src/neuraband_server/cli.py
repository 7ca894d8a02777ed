"""CLI entry point for neuraband-server."""

import asyncio
import json

import typer
import uvicorn

from neuraband_server import __version__
from neuraband_server.core.config import settings

app = typer.Typer(
    name="neuraband-server",
    help="Live biosignal monitoring server for NeuraBand wearables",
    no_args_is_help=True,
)


@app.command()
def serve(
    host: str = typer.Option(None, help="Host to bind to (overrides config)"),
    port: int = typer.Option(None, help="Port to bind to (overrides config)"),
    reload: bool = typer.Option(False, help="Enable auto-reload for development"),
) -> None:
    """Start the API server.

    Example:
        neuraband-server serve
        neuraband-server serve --host 0.0.0.0 --port 8080 --reload
    """
    uvicorn.run(
        "neuraband_server.app:app",
        host=host or settings.api_host,
        port=port or settings.api_port,
        reload=reload,
        log_level=settings.log_level.lower(),
    )


@app.command()
def version() -> None:
    """Show version information."""
    typer.echo(f"neuraband-server v{__version__}")


@app.command("create-user")
def create_user(
    email: str = typer.Option(None, help="Email address"),
    display_name: str = typer.Option(None, help="Display name"),
) -> None:
    """Register a user in the configured database and print its id.

    Example:
        neuraband-server create-user --email ada@example.com
    """
    from neuraband_server.core.database import async_session_maker, close_database
    from neuraband_server.services.store import SQLAlchemyStore

    async def _create() -> str:
        try:
            user = await SQLAlchemyStore(async_session_maker).create_user(email, display_name)
            return user.id
        finally:
            await close_database()

    typer.echo(asyncio.run(_create()))


@app.command()
def simulate(
    frames: int = typer.Option(10, min=1, help="Number of mock frames to play"),
    interval: float = typer.Option(0.05, min=0.0, help="Seconds between frames"),
    seed: int = typer.Option(None, help="Seed for reproducible frames"),
) -> None:
    """Play mock frames through a live session and print the last dashboard.

    Nothing is written to the database.

    Example:
        neuraband-server simulate --frames 25 --seed 7
    """
    from neuraband_server.schemas.dashboard import ConnectionStatus, DashboardSnapshot
    from neuraband_server.services.lifecycle import SessionLifecycle
    from neuraband_server.services.mock_feed import MockFeed
    from neuraband_server.services.monitor import MonitorRegistry
    from neuraband_server.services.store import InMemoryStore

    store = InMemoryStore()

    def feed_factory(device_id: str) -> MockFeed:
        return MockFeed(device_id, interval=interval, max_frames=frames, seed=seed)

    registry = MonitorRegistry.from_settings(settings, store, feed_factory)

    async def _run() -> DashboardSnapshot | None:
        monitor: SessionLifecycle = registry.get_or_create("simulator")
        last: list[DashboardSnapshot] = []

        def keep_open(snapshot: DashboardSnapshot) -> None:
            if snapshot.connection_status == ConnectionStatus.OPEN:
                last[:] = [snapshot]

        monitor.subscribe(keep_open)
        await monitor.select_device("mock-device")
        await monitor.wait_closed()
        await registry.shutdown()
        return last[0] if last else None

    snapshot = asyncio.run(_run())
    if snapshot is None:
        typer.echo("No frames were accepted", err=True)
        raise typer.Exit(code=1)

    typer.echo(json.dumps(snapshot.model_dump(mode="json", by_alias=True), indent=2))
    typer.echo(f"{len(store.rows)} rows recorded in {len(store.sessions)} session(s)", err=True)


def main() -> None:
    """Main entry point."""
    app()


if __name__ == "__main__":
    main()

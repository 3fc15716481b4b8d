import os

import click


@click.group()
def main() -> None:
    """deskgate - control plane for a local AI coding engine."""


@main.command()
@click.option("--host", default=None, help="Bind host (default: from DESKGATE_HOST or 127.0.0.1).")
@click.option("--port", default=None, type=int, help="Bind port (default: from DESKGATE_PORT or 8787).")
@click.option("--workspace", "workspaces", multiple=True, help="Workspace root; repeat for more. First is active.")
@click.option("--approval", type=click.Choice(["manual", "auto"]), default=None, help="Approval mode for writes.")
@click.option("--read-only", is_flag=True, default=False, help="Reject every mutating request.")
@click.option("--config", "config_path", default=None, help="Server file (default: ~/.config/deskgate/server.json).")
def serve(
    host: str | None,
    port: int | None,
    workspaces: tuple[str, ...],
    approval: str | None,
    read_only: bool,
    config_path: str | None,
) -> None:
    """Start the control-plane server."""
    import uvicorn

    from deskgate.control_plane.settings import GatewaySettings

    # Options become env vars so the app's own settings loader sees them.
    overrides = {
        "DESKGATE_HOST": host,
        "DESKGATE_PORT": str(port) if port else None,
        "DESKGATE_WORKSPACES": ",".join(workspaces) if workspaces else None,
        "DESKGATE_APPROVAL_MODE": approval,
        "DESKGATE_READ_ONLY": "true" if read_only else None,
        "DESKGATE_CONFIG_PATH": config_path,
    }
    for key, value in overrides.items():
        if value is not None:
            os.environ[key] = value

    settings = GatewaySettings().load_server_file()

    uvicorn.run(
        "deskgate.control_plane.app:app",
        host=settings.host,
        port=settings.port,
        log_level="warning",  # uvicorn's own logging is intercepted by loguru
    )


@main.command()
def token() -> None:
    """Print a fresh random token suitable for DESKGATE_TOKEN / DESKGATE_HOST_TOKEN."""
    from deskgate.control_plane.auth import generate_token

    click.echo(generate_token())

# device_client/main.py
"""Command-line client for exercising the device assignment API.

Commands:
- setup-certs: generate a development CA, server and device certificates
- auth: authenticate (and register) a device with its client certificate
- device / assign / unassign / history: user operations on one device
- my-devices: devices currently assigned to the token's user
"""
import json
from pathlib import Path
from typing import List, Optional

import typer

from device_client.api.api_client import ApiClient, ApiError
from device_client.utils.certs import setup_dev_pki

app = typer.Typer(help="Device assignment API client")


def _print(data) -> None:
    typer.echo(json.dumps(data, indent=2, sort_keys=True))


def _client(ctx: typer.Context) -> ApiClient:
    return ctx.obj


def _run(call):
    try:
        _print(call())
    except ApiError as e:
        typer.secho(str(e), fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1)


@app.callback()
def main_options(
    ctx: typer.Context,
    url: str = typer.Option("https://localhost:8443", "--url", envvar="DEVICE_API_URL",
                            help="Base URL of the API"),
    cert: Optional[Path] = typer.Option(None, "--cert", envvar="DEVICE_CLIENT_CERT",
                                        help="Client certificate (PEM)"),
    key: Optional[Path] = typer.Option(None, "--key", envvar="DEVICE_CLIENT_KEY",
                                       help="Client private key (PEM)"),
    ca: Optional[Path] = typer.Option(None, "--ca", envvar="DEVICE_CA_FILE",
                                      help="CA bundle used to verify the server"),
    token: Optional[str] = typer.Option(None, "--token", envvar="DEVICE_API_TOKEN",
                                        help="Bearer token for user operations"),
) -> None:
    if (cert is None) != (key is None):
        raise typer.BadParameter("--cert and --key must be given together")
    ctx.obj = ApiClient(
        url,
        cert=(str(cert), str(key)) if cert else None,
        ca_file=str(ca) if ca else None,
        token=token,
    )


@app.command("setup-certs")
def setup_certs(
    out_dir: Path = typer.Option(Path("certs"), "--out", "-o", help="Output directory"),
    clients: List[str] = typer.Option(["client"], "--client", "-c",
                                      help="Device certificate name (repeatable)"),
) -> None:
    """Generate ca.crt, server.crt and one certificate per --client."""
    written = setup_dev_pki(out_dir, clients)
    for name, paths in written.items():
        typer.echo(f"{name:10} {paths.cert}  {paths.key}")


@app.command()
def auth(ctx: typer.Context) -> None:
    """Authenticate this device; registers it on first contact."""
    _run(_client(ctx).authenticate)


@app.command()
def device(ctx: typer.Context, device_id: str) -> None:
    """Show a device and its current assignment."""
    _run(lambda: _client(ctx).get_device(device_id))


@app.command()
def assign(ctx: typer.Context, device_id: str) -> None:
    """Assign an unowned device to the token's user."""
    _run(lambda: _client(ctx).assign(device_id))


@app.command()
def unassign(ctx: typer.Context, device_id: str) -> None:
    """Release a device owned by the token's user."""
    _run(lambda: _client(ctx).unassign(device_id))


@app.command("my-devices")
def my_devices(ctx: typer.Context) -> None:
    _run(_client(ctx).my_devices)


@app.command()
def history(ctx: typer.Context, device_id: str) -> None:
    """Assignment history of a device (current owner only)."""
    _run(lambda: _client(ctx).assignment_history(device_id))


def main() -> None:
    app()


if __name__ == "__main__":
    main()

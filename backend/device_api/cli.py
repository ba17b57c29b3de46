"""Management commands for the device assignment service.

Commands:
- serve: run the HTTPS server with client certificate verification
- init-db: create tables and indexes in the configured store
- issue-token: print a bearer token for a user (development)
- verify-token: check a bearer token and print its claims
"""
import dataclasses
from datetime import timedelta
from typing import Optional

import typer

from backend.device_api.core.config import get_settings
from backend.device_api.core.errors import InvalidToken
from backend.device_api.core.logger_config import setup_logging
from backend.device_api.core.security import TokenManager, TokenSettings

app = typer.Typer(help="Device assignment API management commands")


def _token_manager(minutes: Optional[int] = None) -> TokenManager:
    token_settings = TokenSettings.from_settings(get_settings())
    if minutes is not None:
        token_settings = dataclasses.replace(token_settings, lifetime=timedelta(minutes=minutes))
    return TokenManager(token_settings)


@app.command()
def serve() -> None:
    """Start the API server (mutual TLS unless TLS_REQUIRE_SSL=false)."""
    from backend.device_api.server import run

    settings = get_settings()
    setup_logging(settings.LOG_LEVEL, settings.LOG_FILE)
    try:
        run(settings)
    except ValueError as e:
        typer.secho(f"ERROR: {e}", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1)


@app.command("init-db")
def init_db() -> None:
    """Create the schema in the configured store. Safe to re-run."""
    from backend.device_api.main import open_store

    settings = get_settings()
    setup_logging(settings.LOG_LEVEL, settings.LOG_FILE)
    db = open_store(settings)
    db.close()
    typer.secho(f"Schema ready ({settings.STORAGE_BACKEND})", fg=typer.colors.GREEN)


@app.command("issue-token")
def issue_token(
    user_id: str = typer.Argument(..., help="User the token is issued to"),
    minutes: Optional[int] = typer.Option(
        None,
        "--minutes",
        "-m",
        min=1,
        help="Token lifetime in minutes (default: JWT_EXP_MINUTES)",
    ),
) -> None:
    """Print a signed bearer token for USER_ID."""
    try:
        token = _token_manager(minutes).issue_token(user_id)
    except ValueError as e:
        typer.secho(f"ERROR: {e}", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1)
    typer.echo(token)


@app.command("verify-token")
def verify_token(token: str = typer.Argument(..., help="Bearer token to check")) -> None:
    """Print the verified claims of TOKEN, or exit 1 if it is invalid."""
    try:
        claims = _token_manager().verify_token(token)
    except InvalidToken as e:
        typer.secho(f"Invalid token: {e}", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1)

    typer.echo(f"user_id:    {claims.user_id}")
    typer.echo(f"issuer:     {claims.issuer}")
    typer.echo(f"issued_at:  {claims.issued_at.isoformat()}")
    typer.echo(f"not_before: {claims.not_before.isoformat()}")
    typer.echo(f"expires_at: {claims.expires_at.isoformat()}")


def main() -> None:
    app()


if __name__ == "__main__":
    main()

"""CLI entry point for luminus-auth."""

from __future__ import annotations

from pathlib import Path
from typing import Any

import click

from luminus_auth import __version__
from luminus_auth.cli import config as config_commands
from luminus_auth.cli.config import error_result, json_option, output_result
from luminus_auth.core.config import AppConfig, ConfigError, load_config
from luminus_auth.core.exceptions import AuthError, InvalidCredentialsError
from luminus_auth.core.logging import configure_logging
from luminus_auth.core.oidc import Authorization, decode_jwt, format_token_claims


@click.group()
@click.version_option(version=__version__, prog_name="luminus-auth")
@click.option(
    "--config",
    "config_path",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="Config file (default: ~/.luminus-auth/config.yaml).",
)
@click.option(
    "--log-level",
    type=click.Choice(["ERROR", "INFO", "DEBUG", "TRACE"], case_sensitive=False),
    default=None,
    help="Protocol log level (written to stderr).",
)
@click.option("--trace", is_flag=True, help="Allow TRACE logging of passwords and tokens.")
@click.pass_context
def cli(ctx: click.Context, config_path: Path | None, log_level: str | None, trace: bool) -> None:
    """luminus-auth - LumiNUS identity token login and renewal."""
    ctx.ensure_object(dict)
    try:
        app_config = load_config(config_path)
    except ConfigError as e:
        raise click.ClickException(str(e)) from None

    if log_level:
        app_config.logging.level = log_level.upper()
    if trace:
        app_config.logging.trace = True

    ctx.obj["config"] = app_config
    ctx.obj["protocol_logger"] = configure_logging(
        level=app_config.logging.level,
        trace_enabled=app_config.logging.trace,
        log_file=str(app_config.logging.log_file) if app_config.logging.log_file else None,
    )


def _session_result(auth: Authorization) -> dict[str, Any]:
    expires_at = auth.token_expires_at
    return {
        "token": auth.token,
        "idsrv": auth.session_cookie,
        "expires_at": expires_at.isoformat() if expires_at else None,
    }


def _authorization_kwargs(obj: dict[str, Any]) -> dict[str, Any]:
    app_config: AppConfig = obj["config"]
    return {
        "settings": app_config.provider,
        "protocol_logger": obj.get("protocol_logger"),
        "transport": obj.get("transport"),
    }


@cli.command()
@click.option("--username", "-u", default=None, help="LumiNUS username (prompted if omitted).")
@click.option("--password", "-p", default=None, help="Password (prompted if omitted).")
@click.option(
    "--attempts",
    type=click.IntRange(min=1),
    default=3,
    show_default=True,
    help="Credential prompts before giving up.",
)
@json_option
@click.pass_obj
def login(obj: dict[str, Any], username: str | None, password: str | None, attempts: int, output_json: bool) -> None:
    """Log in with username and password and print the identity token.

    With --json, the output also carries the idsrv session cookie needed
    by 'luminus-auth renew'.
    """
    with Authorization(**_authorization_kwargs(obj)) as auth:
        for attempt in range(1, attempts + 1):
            if username is None:
                username = click.prompt("Username")
            if password is None:
                password = click.prompt("Password", hide_input=True)
            try:
                auth.login(username, password)
                break
            except InvalidCredentialsError as e:
                if attempt == attempts:
                    error_result(str(e), output_json)
                click.echo(f"{e}, please try again.", err=True)
                username = click.prompt("Username", default=username)
                password = None
            except AuthError as e:
                error_result(str(e), output_json)

        if output_json:
            output_result(_session_result(auth), as_json=True)
        else:
            click.echo(auth.token)


@cli.command()
@click.option("--token", envvar="LUMINUS_AUTH_TOKEN", required=True, help="Current identity token.")
@click.option("--idsrv", envvar="LUMINUS_AUTH_IDSRV", required=True, help="Value of the idsrv session cookie.")
@json_option
@click.pass_obj
def renew(obj: dict[str, Any], token: str, idsrv: str, output_json: bool) -> None:
    """Obtain a fresh identity token without re-entering credentials."""
    try:
        with Authorization.resume(token, idsrv, **_authorization_kwargs(obj)) as auth:
            auth.renew()
    except AuthError as e:
        error_result(str(e), output_json)

    if output_json:
        output_result(_session_result(auth), as_json=True)
    else:
        click.echo(auth.token)


@cli.command("inspect")
@click.argument("token")
@json_option
def inspect_token(token: str, output_json: bool) -> None:
    """Decode an identity token and show its claims (signature not verified)."""
    decoded = decode_jwt(token)
    if not decoded.is_valid_format:
        error_result(decoded.error or "Invalid token", output_json)

    if output_json:
        output_result(
            {
                "header": decoded.header,
                "payload": decoded.payload,
                "expires_at": decoded.expiration.isoformat() if decoded.expiration else None,
                "expired": decoded.is_expired,
            },
            as_json=True,
        )
        return

    click.echo(f"Algorithm: {decoded.algorithm or 'unknown'}")
    for name, value in format_token_claims(decoded.payload):
        click.echo(f"  {name}: {value}")
    if decoded.expiration:
        status = "EXPIRED" if decoded.is_expired else "valid"
        click.echo(f"Expires: {decoded.expiration.isoformat()} ({status})")


cli.add_command(config_commands.config)


if __name__ == "__main__":
    cli()

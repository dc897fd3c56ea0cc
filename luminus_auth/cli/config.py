"""Configuration CLI commands and shared output helpers."""

from __future__ import annotations

import json
import sys
from pathlib import Path
from typing import Any, NoReturn

import click

from luminus_auth.core.config import AppConfig, get_default_config_yaml

# Common option for JSON output
json_option = click.option(
    "--json",
    "output_json",
    is_flag=True,
    help="Output results as JSON for scripting",
)


def output_result(data: dict[str, Any], as_json: bool = False) -> None:
    """Output a result mapping as JSON or as ``key: value`` lines.

    Args:
        data: Data to output
        as_json: If True, output as JSON
    """
    if as_json:
        click.echo(json.dumps(data, indent=2, default=str))
        return
    for key, value in data.items():
        click.echo(f"{key}: {value}")


def error_result(message: str, as_json: bool = False) -> NoReturn:
    """Output error message and exit.

    Args:
        message: Error message
        as_json: If True, output as JSON
    """
    if as_json:
        click.echo(json.dumps({"error": message}, indent=2), err=True)
        sys.exit(1)
    raise click.ClickException(message)


@click.group()
def config() -> None:
    """Manage luminus-auth configuration."""
    pass


@config.command("show")
@json_option
@click.pass_obj
def config_show(obj: dict[str, Any], output_json: bool) -> None:
    """Show the effective configuration.

    Values come from the config file, then LUMINUS_AUTH_* environment variables.
    """
    app_config: AppConfig = obj["config"]
    data = app_config.to_dict()
    data["config_path"] = str(app_config.config_path) if app_config.config_path else None

    if output_json:
        output_result(data, as_json=True)
        return

    for section in ("provider", "logging"):
        click.echo(f"[{section}]")
        for key, value in data[section].items():
            click.echo(f"  {key}: {value}")
    click.echo(f"config_path: {data['config_path'] or '(defaults)'}")


@config.command("init")
@click.option(
    "--path",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="Where to write the file (default: ~/.luminus-auth/config.yaml).",
)
@click.option("--force", is_flag=True, help="Overwrite an existing config file.")
@click.pass_obj
def config_init(obj: dict[str, Any], path: Path | None, force: bool) -> None:
    """Write a commented default config.yaml.

    Examples:

        luminus-auth config init

        luminus-auth config init --path ./config.yaml --force
    """
    from luminus_auth.core.config import DEFAULT_CONFIG_FILE

    target = path or DEFAULT_CONFIG_FILE
    if target.exists() and not force:
        raise click.ClickException(f"{target} already exists (use --force to overwrite)")

    target.parent.mkdir(parents=True, exist_ok=True)
    target.write_text(get_default_config_yaml())
    click.echo(f"Configuration written to: {target}")

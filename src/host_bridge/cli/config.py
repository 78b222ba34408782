"""CLI: host-bridge config show|set"""

import json
import typing

import click
from pydantic import ValidationError
from rich.console import Console

from host_bridge import config as config_module
from host_bridge.config import RuntimeConfig

console = Console()


def _is_list_field(name: str) -> bool:
    annotation = RuntimeConfig.model_fields[name].annotation
    return typing.get_origin(annotation) is list


@click.group()
def config():
    """Runtime configuration."""


@config.command("show")
def config_show():
    """Print the current configuration."""
    cfg = config_module.load_config(config_module.CONFIG_FILE)
    click.echo(json.dumps(cfg.model_dump(), indent=2))


@config.command("set")
@click.argument("key")
@click.argument("value")
def config_set(key: str, value: str):
    """Set KEY to VALUE. List settings take comma-separated values."""
    if key not in RuntimeConfig.model_fields:
        raise click.BadParameter(f"unknown setting {key!r}", param_hint="KEY")
    cfg = config_module.load_config(config_module.CONFIG_FILE)
    data = cfg.model_dump()
    data[key] = [v.strip() for v in value.split(",") if v.strip()] if _is_list_field(key) else value
    try:
        updated = RuntimeConfig.model_validate(data)
    except ValidationError as e:
        raise click.BadParameter(str(e.errors()[0]["msg"]), param_hint="VALUE")
    config_module.save_config(updated, config_module.CONFIG_FILE)
    console.print(f"[green]{key} updated.[/green]")

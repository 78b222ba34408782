"""CLI: host-bridge session status|logout"""

import click
from rich.console import Console

from host_bridge import config as config_module
from host_bridge import providers
from host_bridge.providers import FileCredentialStore, account_from_record

console = Console()


def _store() -> FileCredentialStore:
    return FileCredentialStore(providers.CREDENTIALS_FILE)


@click.group()
def session():
    """Stored session commands."""


@session.command("status")
def session_status():
    """Show the stored account for the configured origin."""
    cfg = config_module.load_config(config_module.CONFIG_FILE)
    account = account_from_record(_store().get(cfg.origin))
    if account:
        console.print(f"[green]Signed in[/green] as {account.username or account.id} on {cfg.origin}")
    else:
        console.print(f"[yellow]No stored account for {cfg.origin}.[/yellow]")


@session.command("logout")
def session_logout():
    """Forget the stored account for the configured origin."""
    cfg = config_module.load_config(config_module.CONFIG_FILE)
    _store().delete(cfg.origin)
    console.print("[green]Logged out.[/green]")

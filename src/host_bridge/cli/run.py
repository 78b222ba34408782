"""CLI: host-bridge run [LAUNCH_URL]"""

import asyncio
from datetime import datetime, timedelta, timezone
from typing import Optional

import click
from rich.console import Console

from host_bridge import config as config_module
from host_bridge import providers
from host_bridge.data import HttpDataService
from host_bridge.errors import AuthError, HostBridgeError
from host_bridge.models.session import AccessToken, Account, AuthResult, InteractionMode
from host_bridge.runtime import EmbeddedRuntime
from host_bridge.transport.http import HttpClient
from host_bridge.transport.socketio import SocketIOChannel

console = Console()

PROMPTED_TOKEN_LIFETIME = timedelta(hours=1)


class PromptIdentityProvider:
    """Asks for an access token on the terminal. Nothing is refreshed silently."""

    async def acquire_silent(self, scopes: list[str], account: Account) -> AuthResult:
        raise AuthError(f"No cached token for {account.id}", code="login_required")

    async def acquire_interactive(self, scopes: list[str], mode: InteractionMode) -> AuthResult:
        def _prompt() -> AuthResult:
            console.print(f"[bold]Sign-in required[/bold] ({mode.value}, scopes: {', '.join(scopes) or '-'})")
            username = click.prompt("Account")
            token = click.prompt("Access token", hide_input=True)
            return AuthResult(
                account=Account(id=username, username=username),
                token=AccessToken(
                    value=token,
                    expires_at=datetime.now(timezone.utc) + PROMPTED_TOKEN_LIFETIME,
                    scopes=frozenset(scopes),
                ),
            )

        return await asyncio.to_thread(_prompt)


async def _bridge(cfg: config_module.RuntimeConfig) -> int:
    channel = SocketIOChannel(cfg.host_url)  # type: ignore[arg-type]
    service = HttpDataService(HttpClient(cfg.data_base_url or cfg.host_url))  # type: ignore[arg-type]
    runtime = EmbeddedRuntime(
        cfg,
        identity=PromptIdentityProvider(),
        data_service=service,
        credential_store=providers.FileCredentialStore(providers.CREDENTIALS_FILE),
        channel=channel,
    )
    runtime.contexts.subscribe(
        lambda entity: console.print(f"[cyan]context[/cyan] {entity.id if entity else None} {entity.name if entity else ''}")
    )
    runtime.navigator.on_change(lambda url: console.print(f"[magenta]navigate[/magenta] {url}"))

    with console.status("Connecting to host relay..."):
        await channel.connect()
    try:
        async with runtime:
            try:
                entity = await runtime.gate.wait_open()
            except HostBridgeError as e:
                console.print(f"[red]Blocked: {e}[/red]")
                return 1
            console.print(f"[green]Ready[/green] (context: {entity.id if entity else 'standalone'})")
            await asyncio.Event().wait()
    finally:
        await channel.disconnect()
        await service.close()
    return 0


@click.command("run")
@click.argument("launch_url", required=False)
def run_cmd(launch_url: Optional[str]):
    """Bridge to the configured host relay until interrupted."""
    cfg = config_module.load_config(config_module.CONFIG_FILE)
    if launch_url:
        cfg = cfg.model_copy(update={"session_id": config_module.parse_launch_session_id(launch_url)})
    if not cfg.host_url:
        console.print("[red]No host_url configured. Run `host-bridge config set host_url URL` first.[/red]")
        raise SystemExit(1)
    try:
        code = asyncio.run(_bridge(cfg))
    except KeyboardInterrupt:
        code = 0
    raise SystemExit(code)

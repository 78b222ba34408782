"""
host-bridge CLI: `host-bridge` command.

Commands:
  host-bridge config show|set     Runtime configuration
  host-bridge session status      Stored account for the configured origin
  host-bridge session logout      Forget the stored account
  host-bridge run [LAUNCH_URL]    Bridge to a host relay and print traffic
"""

import logging

try:
    import click
    from rich.console import Console
    from rich.logging import RichHandler
except ImportError:
    raise SystemExit("CLI requires extras: pip install host-bridge[cli]")

console = Console()


@click.group()
@click.version_option("0.1.0")
@click.option("-v", "--verbose", is_flag=True, help="Debug logging")
def main(verbose: bool):
    """host-bridge CLI: embedded runtime tooling."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=console, show_path=False)],
        force=True,
    )


# Register subcommands from separate modules
from host_bridge.cli.config import config  # noqa: E402
from host_bridge.cli.run import run_cmd  # noqa: E402
from host_bridge.cli.session import session  # noqa: E402

main.add_command(config)
main.add_command(session)
main.add_command(run_cmd)


if __name__ == "__main__":
    main()

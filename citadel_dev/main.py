"""
Main entry point for the citadel-dev command-line interface.

This module contains all the CLI command definitions and the main entry point.
The environment management itself is in dev_environment.py.
"""

import logging
import subprocess
from typing import Callable, List, Optional

import typer
from typer.core import TyperGroup

from citadel_dev.dev_environment import DEFAULT_NETWORK, NETWORKS, DevEnvironment
from citadel_dev.utils import setup_logging

logger = logging.getLogger(__name__)

# Global state for options
_global_state = {
    "log_dir": None,
    "verbose": False,
    "debug": False,
}

# Pass flags such as -getinfo through to the wrapped command
PASSTHROUGH = {"allow_extra_args": True, "ignore_unknown_options": True}


class CitadelDevGroup(TyperGroup):
    """Command group that answers unknown commands with the help text."""

    def resolve_command(self, ctx, args):
        if args and self.get_command(ctx, args[0]) is None:
            typer.echo(ctx.get_help())
            ctx.exit(1)
        return super().resolve_command(ctx, args)


app = typer.Typer(
    name="citadel-dev",
    cls=CitadelDevGroup,
    help="Automatically initialize and manage a Citadel development environment.",
    epilog="""
Examples:
  citadel-dev init --path ~/citadel-dev
  citadel-dev boot -n testnet
  citadel-dev rebuild middleware
  citadel-dev logs manager
  citadel-dev bitcoin-cli -getinfo
  citadel-dev auto-mine 10
    """,
    invoke_without_command=True,
    add_completion=False,
    rich_markup_mode=None,
)


def _setup_global_options(log_dir: Optional[str], verbose: bool, debug: bool) -> None:
    """Set up global options that apply to all commands."""
    _global_state["log_dir"] = log_dir
    _global_state["verbose"] = verbose
    _global_state["debug"] = debug

    # Debug takes precedence over verbose
    if debug:
        setup_logging(verbose=True)
        logger.debug("Debug mode enabled - captured command output is kept on disk")
    elif verbose:
        setup_logging(verbose=True)
        logger.debug("Verbose mode enabled for all commands")
    else:
        setup_logging(verbose=False)


@app.callback()
def main_callback(
    ctx: typer.Context,
    log_dir: Optional[str] = typer.Option(None, envvar="CITADEL_DEV_LOG_DIR",
                                          help="Directory for captured command output"),
    verbose: bool = typer.Option(False, "--verbose", "-v", envvar="CITADEL_DEV_VERBOSE",
                                 help="Enable verbose logging"),
    debug: bool = typer.Option(False, "--debug", "-d", envvar="CITADEL_DEV_DEBUG",
                               help="Enable debug logging and keep captured command output"),
) -> None:
    """Automatically initialize and manage a Citadel development environment."""
    _setup_global_options(log_dir, verbose, debug)

    if ctx.invoked_subcommand is None:
        typer.echo(ctx.get_help())
        raise typer.Exit(1)


def _environment() -> DevEnvironment:
    return DevEnvironment(log_dir=_global_state["log_dir"], debug=_global_state["debug"])


def _execute(action: Callable[..., None], *args, **kwargs) -> None:
    """Run a DevEnvironment operation, turning failures into exit codes."""
    try:
        action(*args, **kwargs)
    except subprocess.CalledProcessError as e:
        logger.error(f"Command failed with exit code {e.returncode}")
        raise typer.Exit(e.returncode)
    except KeyboardInterrupt:
        logger.info("Operation cancelled by user")
        raise typer.Exit(130)
    except Exception as e:
        logger.error(f"Unexpected error: {e}")
        raise typer.Exit(1)


@app.command("help")
def show_help(ctx: typer.Context) -> None:
    """Show this help message."""
    typer.echo(ctx.parent.get_help())


@app.command()
def init(
    path: Optional[str] = typer.Option(None, "--path", "-p",
                                       help="Directory to initialize (default: current directory)"),
    production: bool = typer.Option(False, "--production", help="Only clone the core repository"),
    ssh: bool = typer.Option(False, "--ssh", help="Clone repositories over SSH instead of HTTPS"),
) -> None:
    """Initialize a development environment."""
    _execute(_environment().init, path=path, production=production, ssh=ssh)


@app.command()
def boot(
    network: str = typer.Option(DEFAULT_NETWORK, "--network", "-n",
                                help=f"Bitcoin network: {', '.join(NETWORKS)}"),
) -> None:
    """Boot the development VM."""
    _execute(_environment().boot, network)


@app.command()
def shutdown() -> None:
    """Shut down the development VM."""
    _execute(_environment().shutdown)


@app.command()
def destroy(
    force: bool = typer.Option(False, "--force", "-f", help="Do not ask for confirmation"),
) -> None:
    """Destroy the development VM."""
    _execute(_environment().destroy, force=force)


@app.command()
def containers() -> None:
    """List container services."""
    _execute(_environment().containers)


@app.command()
def rebuild(
    service: Optional[str] = typer.Argument(None, help="Container service to rebuild"),
) -> None:
    """Rebuild a container service."""
    _execute(_environment().rebuild, service)


@app.command()
def reload() -> None:
    """Reload the Citadel services."""
    _execute(_environment().reload)


@app.command("app", context_settings=PASSTHROUGH)
def app_command(args: Optional[List[str]] = typer.Argument(None, help="Arguments for scripts/app")) -> None:
    """Manage app installations."""
    _execute(_environment().app, args or [])


@app.command(context_settings=PASSTHROUGH)
def logs(args: Optional[List[str]] = typer.Argument(None, help="Arguments for docker-compose logs")) -> None:
    """Stream container logs."""
    _execute(_environment().logs, args or [])


@app.command(context_settings=PASSTHROUGH)
def run(command: Optional[List[str]] = typer.Argument(None, help="Shell command to run")) -> None:
    """Run a command inside the development VM."""
    _execute(_environment().run, command or [])


@app.command()
def ssh() -> None:
    """Open an SSH session inside the development VM."""
    _execute(_environment().ssh)


@app.command("bitcoin-cli", context_settings=PASSTHROUGH)
def bitcoin_cli(args: Optional[List[str]] = typer.Argument(None, help="Arguments for bitcoin-cli")) -> None:
    """Run bitcoin-cli with arguments."""
    _execute(_environment().bitcoin_cli, args or [])


@app.command(context_settings=PASSTHROUGH)
def lncli(args: Optional[List[str]] = typer.Argument(None, help="Arguments for lncli")) -> None:
    """Run lncli with arguments."""
    _execute(_environment().lncli, args or [])


@app.command("auto-mine")
def auto_mine(
    interval: Optional[str] = typer.Argument(None, help="Seconds between generated blocks"),
) -> None:
    """Generate a block continuously."""
    _execute(_environment().auto_mine, interval)


def main() -> None:
    """Main entry point for citadel-dev command."""
    app()


if __name__ == "__main__":
    main()

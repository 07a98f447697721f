"""Command-line interface for the hybrid bridge."""

from __future__ import annotations

import sys
from pathlib import Path
from typing import Optional

import click
from loguru import logger

from hybrid_bridge import __version__


def find_config_file() -> Optional[Path]:
    """
    Find the configuration file in common locations.

    Returns:
        Path to config file or None.
    """
    search_paths = [
        Path("config.yaml"),
        Path("config.yml"),
        Path.home() / ".config" / "hybrid-bridge" / "config.yaml",
        Path("/etc/hybrid-bridge/config.yaml"),
    ]

    for path in search_paths:
        if path.exists():
            return path

    return None


@click.group()
@click.version_option(version=__version__, prog_name="hybrid-bridge")
def main():
    """Stratum bridge that turns pool shared work into a lambda seed."""
    pass


@main.command()
@click.option(
    "-c",
    "--config",
    "config_path",
    type=click.Path(exists=True, path_type=Path),
    help="Path to configuration file",
)
@click.option(
    "--log-level",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"], case_sensitive=False),
    default=None,
    help="Override log level from config",
)
@click.option(
    "--pid-file",
    type=click.Path(dir_okay=False),
    default=None,
    help="Write the process ID to this file",
)
def start(config_path: Optional[Path], log_level: Optional[str], pid_file: Optional[str]):
    """Start the bridge in the foreground."""
    from hybrid_bridge.config.loader import ConfigError, load_config
    from hybrid_bridge.daemon import DaemonError, DaemonManager
    from hybrid_bridge.logging.setup import setup_logging

    if config_path is None:
        config_path = find_config_file()
        if config_path is None:
            click.echo("Error: No configuration file found", err=True)
            click.echo("Please specify a config file with -c/--config", err=True)
            sys.exit(1)

    click.echo(f"Using configuration: {config_path}")

    try:
        config = load_config(config_path)
    except ConfigError as e:
        click.echo(f"Configuration error: {e}", err=True)
        sys.exit(1)

    if log_level:
        config.logging.level = log_level.upper()

    setup_logging(config.logging)

    daemon = DaemonManager(config, pid_file_path=pid_file)
    try:
        daemon.run_foreground()
    except DaemonError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)
    except KeyboardInterrupt:
        click.echo("\nShutdown requested...")
    except Exception as e:
        logger.exception(f"Fatal error: {e}")
        sys.exit(1)


@main.command()
@click.argument("config_path", type=click.Path(exists=True, path_type=Path))
def validate(config_path: Path):
    """Validate a configuration file."""
    from hybrid_bridge.config.loader import load_config, validate_config

    is_valid, message = validate_config(config_path)
    if not is_valid:
        click.echo(f"✗ {message}", err=True)
        sys.exit(1)

    click.echo(f"✓ {message}")
    config = load_config(config_path)

    click.echo("\nServers:")
    for server in config.servers:
        state = "active" if server.id >= 0 else "disabled"
        click.echo(f"  - {server.id}: {server.address} ({server.protocol}, {state})")

    api = config.api_server
    click.echo(f"\nQuery API: {api.host}:{api.port}" + ("" if api.enabled else " (disabled)"))
    click.echo(f"Auto reconnect: {config.client.auto_reconnect_on_error}")


@main.command()
def init():
    """Create a sample configuration file."""
    dest_path = Path("config.yaml")
    if dest_path.exists():
        if not click.confirm(f"{dest_path} already exists. Overwrite?"):
            click.echo("Skipping config file creation.")
            return

    dest_path.write_text(SAMPLE_CONFIG)
    click.echo(f"Created {dest_path}")
    click.echo("Edit this file to configure your pool servers.")


SAMPLE_CONFIG = """# Hybrid bridge configuration

servers:
  - id: 0
    host: "pool1.example.com"
    port: 8008
    login: "0x0000000000000000000000000000000000000000"
    worker: "hybrid"
    protocol: "ethproxy"          # ethproxy or stratum
    timeout: 30

  - id: 1
    host: "pool2.example.com"
    port: 8008
    login: "0x0000000000000000000000000000000000000000"

  # Negative ids are kept but never connected
  - id: -1
    host: "pool3.example.com"

client:
  poll_interval: 2.0              # Seconds between eth_getWork polls
  auto_reconnect_on_error: true   # Reconnect with exponential backoff
  reconnect_initial_delay: 1.0
  reconnect_max_delay: 60.0
  send_timeout: 10.0
  tcp_keepalive: true
  stats_interval: 900             # Seconds between stats summaries

api_server:
  enabled: true
  host: "127.0.0.1"
  port: 8545

derivation:
  virtual_block_count: 4          # Must divide 32

logging:
  level: "INFO"                   # DEBUG, INFO, WARNING, ERROR
  file: null                      # Log file path (null for console only)
  stats_file: null                # Stats summaries file (null to skip)
  rotation: "50 MB"
  retention: 10
  format: "{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {message}"
"""


if __name__ == "__main__":
    main()

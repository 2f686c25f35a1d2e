"""
Command-line interface for GitLedger.

This module provides the command-line entry point for the GitLedger backup
store.
"""

import json
import logging
import os
import sys
from pathlib import Path
from typing import Annotated, List, Optional

import keyring
import typer
from rich.console import Console
from rich.logging import RichHandler

from gitledger_py import __version__
from gitledger_py.config import GitledgerConfig
from gitledger_py.errors import GitledgerError
from gitledger_py.state import FingerprintStore
from gitledger_py.sync import SyncEngine

# Set up the console and logger
console = Console()
logging.basicConfig(
    level=logging.INFO,
    format="%(message)s",
    datefmt="[%X]",
    handlers=[RichHandler(console=console, rich_tracebacks=True)],
)
logger = logging.getLogger("gitledger")

# Keyring service and account used to remember the default remote
KEYRING_SERVICE = "GITLEDGER_REMOTE"
KEYRING_ACCOUNT = "gitledger"
DEFAULT_LOCATION = "default"

# Create the Typer app
app = typer.Typer(
    help="Append-only backup ledger kept in a git repository.",
    add_completion=False,
)

LocationOption = Annotated[
    Optional[str],
    typer.Option(
        "--location", "-l", help="Name of a location from the config file."
    ),
]
RemoteOption = Annotated[
    Optional[str],
    typer.Option(
        "--remote",
        "-r",
        help="Remote repository address. Uses GITLEDGER_REMOTE env var if not set.",
    ),
]
ConfigOption = Annotated[
    Optional[Path],
    typer.Option("--config", "-c", help="Path to the configuration file."),
]


def get_remote(remote: Optional[str]) -> Optional[str]:
    """
    Get the remote address from args, env vars, or keyring.

    The order of precedence is:
    1. Command-line arguments
    2. Environment variables
    3. Keyring
    """
    address = remote or os.environ.get("GITLEDGER_REMOTE")
    if not address:
        address = keyring.get_password(KEYRING_SERVICE, KEYRING_ACCOUNT)
        if address:
            logger.debug("Loaded remote address from keyring.")
    return address or None


def log_error(message: str) -> None:
    """Log an error message to both logger and console."""
    logger.error(message)
    console.print(f"[red]{message}[/red]")
    return None


def build_engine(
    location: Optional[str],
    remote: Optional[str],
    config_path: Optional[Path],
) -> SyncEngine:
    """
    Resolve the location to operate on and build its sync engine.

    A named location comes from the config file; otherwise an explicit remote
    (option, env var or keyring) wins over the first enabled configured one.
    """
    config = GitledgerConfig.load(config_path)
    fingerprints = FingerprintStore()

    if location:
        selected = config.get_location(location)
        if selected is None:
            log_error(f"Location {location} is not defined in the config file.")
            raise typer.Exit(1)
        return SyncEngine.for_location(selected, config, fingerprints)

    address = get_remote(remote)
    if address:
        selected = config.make_location(DEFAULT_LOCATION, address)
        return SyncEngine.for_location(selected, config, fingerprints)

    enabled = [loc for loc in config.locations if loc.enabled]
    if not enabled:
        log_error(
            "Remote not specified. "
            "Use --remote, set GITLEDGER_REMOTE env var, or add a location to "
            "the config file."
        )
        raise typer.Exit(1)
    return SyncEngine.for_location(enabled[0], config, fingerprints)


@app.callback()
def callback(
    verbose: bool = typer.Option(
        False, "--verbose", "-v", help="Enable verbose output."
    ),
    json: bool = typer.Option(False, "--json", help="Output logs in JSON format."),
    version: bool = typer.Option(
        False, "--version", help="Show the application version and exit."
    ),
) -> None:
    """
    GitLedger: every backup is a commit, history is the ledger.
    """
    if version:
        console.print(f"GitLedger version: {__version__}")
        raise typer.Exit()

    # Configure logging level based on verbosity
    if verbose:
        logger.setLevel(logging.DEBUG)
        logger.debug("Verbose logging enabled")

    # Configure JSON logging if requested
    if json:
        for handler in list(logging.root.handlers):
            logging.root.removeHandler(handler)
        logging.basicConfig(
            level=logging.INFO if not verbose else logging.DEBUG,
            format='{"timestamp": "%(asctime)s", "level": "%(levelname)s", '
            '"message": "%(message)s"}',
            datefmt="%Y-%m-%dT%H:%M:%S",
            stream=sys.stdout,
        )
        logger.debug("JSON logging enabled")


@app.command()
def init(
    location: LocationOption = None,
    remote: RemoteOption = None,
    config_path: ConfigOption = None,
    save: Annotated[
        bool,
        typer.Option(
            "--save/--no-save", help="Remember the remote in the system keychain."
        ),
    ] = True,
) -> None:
    """
    Clone or verify the working copy of a location.
    """
    logger.info("Initializing location...")
    engine = build_engine(location, remote, config_path)

    try:
        state = engine.initialize()
    except GitledgerError as e:
        log_error(f"Failed to initialize {engine.config.display_name}: {e}")
        raise typer.Exit(1) from e

    message = f"{engine.config.display_name} is {state.value}"
    logger.info(message)
    typer.echo(message)
    if engine.fingerprint:
        typer.echo(f"Initial fingerprint: {engine.fingerprint}")

    if save and remote:
        logger.info("Saving remote to system keychain...")
        keyring.set_password(KEYRING_SERVICE, KEYRING_ACCOUNT, remote)
        logger.info("Remote saved successfully.")


@app.command()
def store(
    paths: Annotated[
        List[Path], typer.Argument(help="Archive files or directories to store.")
    ],
    descriptor: Annotated[
        Optional[str],
        typer.Option("--descriptor", "-d", help="Descriptor text for this backup."),
    ] = None,
    descriptor_file: Annotated[
        Optional[Path],
        typer.Option("--descriptor-file", help="File holding the descriptor blob."),
    ] = None,
    location: LocationOption = None,
    remote: RemoteOption = None,
    config_path: ConfigOption = None,
) -> None:
    """
    Store archive files as a new backup commit and push it.
    """
    if (descriptor is None) == (descriptor_file is None):
        log_error("Exactly one of --descriptor or --descriptor-file is required.")
        raise typer.Exit(1)

    blob = descriptor_file.read_bytes() if descriptor_file else descriptor
    assert blob is not None

    engine = build_engine(location, remote, config_path)
    logger.info(f"Storing {len(paths)} paths in {engine.config.display_name}...")
    try:
        revision = engine.store([p.expanduser() for p in paths], blob)
    except (GitledgerError, OSError) as e:
        log_error(f"Backup failed: {e}")
        raise typer.Exit(1) from e

    logger.info(f"Backup successful. Revision: {revision}")
    typer.echo(f"Stored backup as revision {revision}")


@app.command(name="list")
def list_backups(
    json_output: bool = typer.Option(
        False, "--json", help="Output backups in JSON format."
    ),
    location: LocationOption = None,
    remote: RemoteOption = None,
    config_path: ConfigOption = None,
) -> None:
    """
    List available backups, oldest first.
    """
    logger.info("Listing backups...")
    engine = build_engine(location, remote, config_path)

    try:
        descriptors = engine.list_available()
    except GitledgerError as e:
        log_error(f"Failed to list backups: {e}")
        raise typer.Exit(1) from e

    if not descriptors:
        logger.info("No backups found")
        return

    if json_output:
        data = [
            {"descriptor": d, "revision": engine.index.lookup(d)} for d in descriptors
        ]
        console.print(json.dumps(data, indent=2))
    else:
        from rich.table import Table

        table = Table(title=f"Backups in {engine.config.display_name}")
        table.add_column("#")
        table.add_column("Revision")
        table.add_column("Descriptor")

        for number, d in enumerate(descriptors, start=1):
            revision = engine.index.lookup(d) or ""
            table.add_row(str(number), revision[:8], d)
        console.print(table)


@app.command()
def retrieve(
    descriptor: str = typer.Argument(..., help="Descriptor of the backup."),
    target: Optional[str] = typer.Option(
        None,
        "--target",
        "-t",
        help="Directory to copy the archive files into (default: current directory).",
    ),
    location: LocationOption = None,
    remote: RemoteOption = None,
    config_path: ConfigOption = None,
) -> None:
    """
    Restore the archive files of a backup into a directory.
    """
    target_path = Path(target).expanduser() if target else Path.cwd()
    engine = build_engine(location, remote, config_path)

    logger.info(f"Restoring backup {descriptor} to {target_path}...")
    try:
        restored = engine.restore(descriptor, target_path)
    except (GitledgerError, OSError) as e:
        log_error(f"Failed to restore backup {descriptor}: {e}")
        raise typer.Exit(1) from e

    console.print(f"Successfully restored {len(restored)} entries to {target_path}")


@app.command()
def verify(
    location: LocationOption = None,
    remote: RemoteOption = None,
    config_path: ConfigOption = None,
) -> None:
    """
    Check the working copy against the recorded initial fingerprint.
    """
    engine = build_engine(location, remote, config_path)
    try:
        verified = engine.verify()
    except GitledgerError as e:
        log_error(f"Verification failed: {e}")
        raise typer.Exit(1) from e

    if verified:
        console.print(f"Lineage verified against {engine.fingerprint}")
    elif not engine.fingerprint:
        console.print("[yellow]No backups stored yet; nothing to verify.[/yellow]")
    else:
        log_error(f"History does not contain {engine.fingerprint}")
        raise typer.Exit(1)


@app.command()
def reset(
    location: LocationOption = None,
    remote: RemoteOption = None,
    config_path: ConfigOption = None,
    yes: bool = typer.Option(False, "--yes", "-y", help="Do not ask for confirmation."),
) -> None:
    """
    Delete the working copy and forget the recorded fingerprint.
    """
    engine = build_engine(location, remote, config_path)
    if not yes:
        typer.confirm(
            f"Forget the lineage of {engine.config.display_name}?", abort=True
        )
    engine.reset()
    console.print(f"{engine.config.display_name} was reset")


@app.command()
def version() -> None:
    """Show the application version and exit."""
    console.print(f"GitLedger version: {__version__}")


if __name__ == "__main__":
    app()

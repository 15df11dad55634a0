"""
CLI entry point for the IBC relayer.
"""

import asyncio
import json
import logging
import signal
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, List, Optional

import structlog
import typer
from dotenv import load_dotenv

from .config import Settings
from .errors import RelayerError
from .models import ChainSetupOptions, ConnectOptions, Ordering, PathConfig, PathDefinition
from .registry import ChainRegistry
from .relayer import Relayer
from .store import ConfigStore

app = typer.Typer(
    name="ibc-relayer",
    help="Link chains over IBC and relay packets between them",
    add_completion=False,
)


def configure_logging(level: str) -> None:
    structlog.configure(
        processors=[
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.dev.ConsoleRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(
            logging.getLevelName(level.upper())
        ),
    )


@contextmanager
def _handle_errors() -> Iterator[None]:
    try:
        yield
    except RelayerError as e:
        typer.echo(f"Error: {e.message}", err=True)
        raise typer.Exit(1)


def _settings(ctx: typer.Context) -> Settings:
    return ctx.obj


def _registry(ctx: typer.Context) -> ChainRegistry:
    return ChainRegistry(ConfigStore(_settings(ctx).config_path))


def _print_path(path_config: PathConfig) -> None:
    path = path_config.path
    typer.echo(f"{path.id}:")
    for end in (path.src, path.dst):
        typer.echo(
            f"    {end.chain_id}  >  (port: {end.port_id})  (channel: {end.channel_id or '-'})"
        )


async def _relay_until_stopped(relayer: Relayer, path_ids: list[str]) -> None:
    await relayer.start(path_ids)
    stop = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop.set)
        except NotImplementedError:
            # Windows: Ctrl+C surfaces as KeyboardInterrupt instead.
            pass
    try:
        await stop.wait()
    finally:
        typer.echo("\nStopping relayer...")
        await relayer.stop()


@app.callback()
def main_callback(
    ctx: typer.Context,
    config_dir: Optional[Path] = typer.Option(
        None,
        "--config-dir",
        help="Directory holding the relayer config document",
    ),
    log_level: Optional[str] = typer.Option(None, "--log-level", help="Minimum log level"),
) -> None:
    settings = Settings()
    if config_dir is not None:
        settings.config_dir = config_dir
    if log_level is not None:
        settings.log_level = log_level
    configure_logging(settings.log_level)
    ctx.obj = settings


@app.command("chain-setup")
def chain_setup(
    ctx: typer.Context,
    chain_id: str = typer.Argument(..., help="Chain id"),
    rpc_addr: str = typer.Option(..., "--rpc", help="Tendermint RPC address"),
    address_prefix: str = typer.Option(..., "--prefix", help="Bech32 address prefix"),
    gas_price: str = typer.Option(..., "--gas-price", help="Gas price, e.g. 0.025uatom"),
    gas_limit: int = typer.Option(300_000, "--gas-limit", help="Gas limit for handshakes"),
    account: str = typer.Option("", "--account", help="Relayer account name"),
) -> None:
    """
    Register a chain or update its settings.
    """
    options = ChainSetupOptions(
        account=account,
        rpc_addr=rpc_addr,
        address_prefix=address_prefix,
        gas_price=gas_price,
        gas_limit=gas_limit,
    )
    with _handle_errors():
        result = _registry(ctx).ensure_chain_setup(chain_id, options)
    typer.echo(f"✓ Chain {result.id} is set up")


@app.command("create-path")
def create_path(
    ctx: typer.Context,
    src_chain_id: str = typer.Argument(..., help="Source chain id"),
    dst_chain_id: str = typer.Argument(..., help="Destination chain id"),
    path_id: Optional[str] = typer.Option(None, "--id", help="Path id (default: src-dst)"),
    source_port: str = typer.Option("transfer", "--source-port"),
    source_version: str = typer.Option("ics20-1", "--source-version"),
    target_port: str = typer.Option("transfer", "--target-port"),
    target_version: str = typer.Option("ics20-1", "--target-version"),
    ordered: bool = typer.Option(False, "--ordered", help="Create an ordered channel"),
) -> None:
    """
    Create an unlinked path between two configured chains.
    """
    definition = PathDefinition(
        id=path_id,
        src_chain_id=src_chain_id,
        dst_chain_id=dst_chain_id,
        options=ConnectOptions(
            source_port=source_port,
            source_version=source_version,
            target_port=target_port,
            target_version=target_version,
            ordering=Ordering.ORDERED if ordered else Ordering.UNORDERED,
        ),
    )
    with _handle_errors():
        path_config = _registry(ctx).create_path(definition)
    typer.echo(f"✓ Created path {path_config.id}")


@app.command()
def paths(ctx: typer.Context) -> None:
    """
    List all paths.
    """
    with _handle_errors():
        path_configs = _registry(ctx).list_paths()
    if not path_configs:
        typer.echo("No paths defined.")
        return
    for path_config in path_configs:
        _print_path(path_config)


@app.command()
def path(ctx: typer.Context, path_id: str = typer.Argument(..., help="Path id")) -> None:
    """
    Show a path as JSON.
    """
    with _handle_errors():
        path_config = _registry(ctx).path_by_id(path_id)
    typer.echo(path_config.model_dump_json(by_alias=True, indent=2))


@app.command()
def balance(
    ctx: typer.Context,
    chain_ids: List[str] = typer.Argument(..., help="Chain ids"),
) -> None:
    """
    Show relayer account balances on chains.
    """
    with _handle_errors():
        relayer = Relayer.from_settings(_settings(ctx))
        coins = asyncio.run(relayer.get_account_balance(chain_ids))
    typer.echo(json.dumps([coin.model_dump() for coin in coins], indent=2))


@app.command()
def link(
    ctx: typer.Context,
    path_ids: List[str] = typer.Argument(..., help="Path ids to link"),
) -> None:
    """
    Link paths by creating connections and channels.
    """
    with _handle_errors():
        relayer = Relayer.from_settings(_settings(ctx))
        response = asyncio.run(relayer.link(path_ids))
    typer.echo(response.model_dump_json(by_alias=True, indent=2))
    if response.failed_to_link_paths:
        raise typer.Exit(1)


@app.command()
def start(
    ctx: typer.Context,
    path_ids: List[str] = typer.Argument(..., help="Linked path ids to relay"),
) -> None:
    """
    Relay packets on linked paths until interrupted.
    """
    with _handle_errors():
        relayer = Relayer.from_settings(_settings(ctx))
        typer.echo("Relaying packets. Press Ctrl+C to stop.")
        try:
            asyncio.run(_relay_until_stopped(relayer, path_ids))
        except KeyboardInterrupt:
            typer.echo("\nStopped.")


@app.command()
def connect(
    ctx: typer.Context,
    path_ids: Optional[List[str]] = typer.Argument(None, help="Paths to connect (default: all)"),
) -> None:
    """
    Link paths and start relaying packets between their chains.
    """
    with _handle_errors():
        relayer = Relayer.from_settings(_settings(ctx))
        all_ids = [p.id for p in relayer.list_paths()]
        wanted = [p for p in path_ids if p in all_ids] if path_ids else all_ids

        if not wanted:
            typer.echo("No chains found to connect.")
            return

        typer.echo("Linking paths between chains...")
        response = asyncio.run(relayer.link(wanted))

        if response.already_linked_paths:
            typer.echo(f"✓ {len(response.already_linked_paths)} paths already linked.")
            for path_id in response.already_linked_paths:
                typer.echo(f"  - {path_id}")
        if response.linked_paths:
            typer.echo(f"✓ Linked chains with {len(response.linked_paths)} paths.")
            for path_id in response.linked_paths:
                typer.echo(f"  - {path_id}")
        if response.failed_to_link_paths:
            typer.echo(f"✗ Failed to link chains in {len(response.failed_to_link_paths)} paths.")
            for failed in response.failed_to_link_paths:
                typer.echo(f"  - {failed.path_name} failed with error: {failed.error}")

        to_relay = response.linked_paths + response.already_linked_paths
        if not to_relay:
            typer.echo("No paths to connect.")
            return

        typer.echo(f"\nContinuing with {len(to_relay)} paths...\n")
        for path_id in to_relay:
            _print_path(relayer.get_path(path_id))

        typer.echo("\nListening and relaying packets between chains...")
        try:
            asyncio.run(_relay_until_stopped(relayer, to_relay))
        except KeyboardInterrupt:
            typer.echo("\nStopped.")


@app.command()
def info(ctx: typer.Context) -> None:
    """
    Show where the relayer config lives.
    """
    typer.echo(f"Config: {_settings(ctx).config_path}")


@app.command()
def version() -> None:
    """Show the relayer version."""
    from ibc_relayer import __version__
    typer.echo(f"ibc-relayer v{__version__}")


def main() -> None:
    """Main entry point."""
    load_dotenv()
    app()


if __name__ == "__main__":
    main()

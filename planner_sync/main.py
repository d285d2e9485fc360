#!/usr/bin/env python3
"""CLI entry point for planner cloud sync."""

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path

from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from .core.auth import AuthFlow, AuthOutcome, BrowserNavigator
from .core.engine import SyncEngine
from .core.errors import InvalidProviderError, PlannerSyncError
from .core.storage import LocalStorage
from .core.tokens import TokenStore
from .models.config import Provider, SyncConfig

console = Console()

DEFAULT_CONFIG = Path("planner-sync.yaml")


def setup_logging(verbose: bool) -> None:
    """Route log records through Rich."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, show_path=False)],
    )
    # requests/urllib3 debug output would include auth headers
    logging.getLogger("urllib3").setLevel(logging.WARNING)


def load_config(args: argparse.Namespace) -> SyncConfig:
    """Load the YAML config if present, otherwise built-in defaults."""
    config_path = Path(args.config) if args.config else DEFAULT_CONFIG
    if config_path.exists():
        config = SyncConfig.load(config_path)
    else:
        if args.config:
            console.print(f"[yellow]Config not found: {config_path}, using defaults")
        config = SyncConfig.default()

    # settings.verbose turns on debug output without -v
    if config.settings.verbose and not args.verbose:
        logging.getLogger().setLevel(logging.DEBUG)
    return config


def build_engine(config: SyncConfig) -> SyncEngine:
    storage = LocalStorage(Path(config.settings.state_dir))
    return SyncEngine(config, storage=storage, token_store=TokenStore(storage))


def cmd_auth_begin(args: argparse.Namespace) -> int:
    """Open the provider's authorization page."""
    config = load_config(args)
    engine = build_engine(config)
    flow = AuthFlow(config, engine.token_store)

    try:
        engine.select_provider(args.provider)
        url = flow.begin_authentication(args.provider)
    except InvalidProviderError as e:
        console.print(f"[red]{e}")
        return 1

    console.print(f"Opened the {args.provider} sign-in page. If no browser appeared, visit:\n{url}")
    console.print("Then run [bold]planner-sync auth complete '<redirected URL>'[/bold]")
    return 0


def cmd_auth_complete(args: argparse.Namespace) -> int:
    """Store the token carried by a redirect URL."""
    config = load_config(args)
    engine = build_engine(config)
    flow = AuthFlow(config, engine.token_store, BrowserNavigator(current_url=args.url))

    try:
        result = flow.complete_authentication(provider=args.provider)
    except InvalidProviderError as e:
        console.print(f"[red]{e}")
        return 1

    if result.outcome == AuthOutcome.NO_CALLBACK:
        console.print("[yellow]No access token found in that URL.")
        return 1
    if result.outcome == AuthOutcome.FAILED:
        detail = f": {result.error_description}" if result.error_description else ""
        console.print(f"[red]Authentication failed ({result.error}){detail}")
        return 1

    engine.select_provider(result.provider)
    expires = result.credential.expires_at if result.credential else None
    console.print(f"[green]Connected to {result.provider}" + (f" until {expires:%Y-%m-%d %H:%M} UTC" if expires else ""))
    return 0


def cmd_sync(args: argparse.Namespace) -> int:
    """Run one sync cycle."""
    config = load_config(args)
    engine = build_engine(config)

    if args.provider:
        try:
            engine.select_provider(args.provider)
        except InvalidProviderError as e:
            console.print(f"[red]{e}")
            return 1

    result = asyncio.run(engine.sync_data())

    if result.success:
        style = "yellow" if result.first_sync else "green"
        console.print(f"[{style}]{result.summary()}")
        return 0

    console.print(f"[red]{result.summary()}")
    if result.needs_reauth:
        provider = result.provider or "<provider>"
        console.print(f"Sign in again with [bold]planner-sync auth begin {provider}[/bold]")
    return 1


def cmd_status(args: argparse.Namespace) -> int:
    """Show provider connections and local state."""
    config = load_config(args)
    engine = build_engine(config)
    status = engine.status()

    console.print(f"\n[bold]Active Provider:[/bold] {status['provider'] or 'None'}")
    console.print(f"[bold]State Directory:[/bold] {status['state_dir']}")

    table = Table(title="\nProviders")
    table.add_column("Provider")
    table.add_column("Client ID")
    table.add_column("Connected")
    table.add_column("Expires")
    table.add_column("Folder ID")

    for name in Provider.ALL:
        provider_config = config.get_provider(name)
        credential = engine.token_store.load(name)
        table.add_row(
            name,
            "[green]Set" if provider_config and provider_config.client_id else "[red]Missing",
            "[green]Yes" if credential else "[red]No",
            credential.expires_at.isoformat() if credential and credential.expires_at else "-",
            engine.token_store.load_folder_id(name) or "-",
        )

    console.print(table)
    return 0


def cmd_disconnect(args: argparse.Namespace) -> int:
    """Forget a provider's credential."""
    config = load_config(args)
    engine = build_engine(config)

    try:
        if args.provider:
            engine.select_provider(args.provider)
    except InvalidProviderError as e:
        console.print(f"[red]{e}")
        return 1

    if engine.provider is None:
        console.print("[yellow]No provider selected.")
        return 1

    engine.disconnect()
    console.print(f"[green]Disconnected from {engine.provider}")
    return 0


def cmd_local(args: argparse.Namespace) -> int:
    """Show or import the local planner document."""
    config = load_config(args)
    engine = build_engine(config)

    try:
        if args.local_command == "show":
            console.print_json(json.dumps(engine.read_local(is_settings=args.settings)))
            return 0

        with open(args.file, encoding="utf-8") as f:
            data = json.load(f)
        if not isinstance(data, dict):
            console.print("[red]File must contain a JSON object")
            return 1
        engine.write_local(data, is_settings=args.settings)
    except (OSError, ValueError, PlannerSyncError) as e:
        console.print(f"[red]{e}")
        return 1

    console.print(f"[green]Imported {len(data)} keys from {args.file}")
    return 0


def main() -> int:
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(
        description="Sync planner data with Box, OneDrive or Google Drive",
    )
    parser.add_argument("--config", help=f"YAML config file (default: ./{DEFAULT_CONFIG})")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    subparsers = parser.add_subparsers(dest="command", help="Command to run")

    # auth
    auth_parser = subparsers.add_parser("auth", help="Connect to a provider")
    auth_subparsers = auth_parser.add_subparsers(dest="auth_command")

    auth_begin = auth_subparsers.add_parser("begin", help="Open the provider sign-in page")
    auth_begin.add_argument("provider", choices=Provider.ALL)

    auth_complete = auth_subparsers.add_parser("complete", help="Finish sign-in from the redirected URL")
    auth_complete.add_argument("url", help="URL the browser was redirected to")
    auth_complete.add_argument("--provider", choices=Provider.ALL, help="Provider (default: the pending one)")

    # sync
    sync_parser = subparsers.add_parser("sync", help="Sync local data with the cloud")
    sync_parser.add_argument("--provider", choices=Provider.ALL, help="Switch provider before syncing")

    # status
    subparsers.add_parser("status", help="Show connection status")

    # disconnect
    disconnect_parser = subparsers.add_parser("disconnect", help="Forget a provider's credential")
    disconnect_parser.add_argument("--provider", choices=Provider.ALL, help="Provider (default: active one)")

    # local
    local_parser = subparsers.add_parser("local", help="Inspect local planner data")
    local_subparsers = local_parser.add_subparsers(dest="local_command")

    local_show = local_subparsers.add_parser("show", help="Print the local document")
    local_show.add_argument("--settings", action="store_true", help="Use the settings document")

    local_import = local_subparsers.add_parser("import", help="Replace the local document from a JSON file")
    local_import.add_argument("file", help="JSON file")
    local_import.add_argument("--settings", action="store_true", help="Use the settings document")

    args = parser.parse_args()
    setup_logging(args.verbose)

    if args.command == "auth":
        if args.auth_command == "begin":
            return cmd_auth_begin(args)
        elif args.auth_command == "complete":
            return cmd_auth_complete(args)
        else:
            auth_parser.print_help()
            return 1
    elif args.command == "sync":
        return cmd_sync(args)
    elif args.command == "status":
        return cmd_status(args)
    elif args.command == "disconnect":
        return cmd_disconnect(args)
    elif args.command == "local":
        if args.local_command:
            return cmd_local(args)
        else:
            local_parser.print_help()
            return 1
    else:
        parser.print_help()
        return 1


if __name__ == "__main__":
    sys.exit(main())

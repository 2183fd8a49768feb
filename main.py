#!/usr/bin/env python3
"""Gateway Route Sync - Entry point."""
import asyncio
import json
import logging
import sys
import os

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

import click
from colorama import Fore, Style, init

from config import GatewayConfig
from src.compiler import compile_document
from src.gateway import build_routes
from src.refresh import RefreshCoordinator
from src.resolver import resolve_routes

# Initialize colorama
init(autoreset=True)


def print_banner():
    """Print application banner."""
    print(f"{Fore.CYAN}{'=' * 44}")
    print(f"{Fore.CYAN}║   {Fore.WHITE}Gateway Route Sync{Fore.CYAN}                   ║")
    print(f"{Fore.CYAN}║   {Fore.WHITE}OpenAPI driven gateway routes{Fore.CYAN}        ║")
    print(f"{Fore.CYAN}{'=' * 44}{Style.RESET_ALL}")
    print()


def _load_config(config_path):
    try:
        return GatewayConfig.load(config_path)
    except ValueError as e:
        raise click.ClickException(str(e))


def _print_records(records):
    for record in records:
        if record.is_fallback:
            click.echo(f"{Fore.YELLOW}⚠ {record.service.host}: no schema, wildcard fallback")
        else:
            click.echo(f"{Fore.GREEN}✅ {record.service.host}: {len(record.routes)} routes")


def _print_route_table(routes):
    for route in routes:
        methods = ",".join(route.methods) if len(route.methods) == 1 else "*"
        limit = f"{route.limit.max}/{route.limit.time_window}" if route.limit else "-"
        click.echo(f"  {methods:7} {route.url:40} -> {route.upstream}  limit={limit}")


@click.group()
@click.version_option(version="0.1.0")
@click.option("-v", "--verbose", is_flag=True, help="Enable debug logging")
def cli(verbose):
    """Gateway Route Sync - expose backend OpenAPI routes through the gateway."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


@cli.command(name="compile")
@click.argument("document", type=click.Path(exists=True))
@click.option("--tag", default=None, help="Resolve with this public tag")
@click.option("--hidden-tag", default=None, help="Resolve with this hidden tag")
@click.option("--ignore-hidden", is_flag=True, help="Drop hidden routes")
def compile_doc(document, tag, hidden_tag, ignore_hidden):
    """Compile a local OpenAPI JSON document and list its routes."""
    try:
        with open(document, "r", encoding="utf-8") as f:
            data = json.load(f)
    except json.JSONDecodeError as e:
        raise click.ClickException(f"Invalid JSON in {document}: {e}")

    compiled = compile_document(data)
    routes = compiled.routes
    if tag or hidden_tag or ignore_hidden:
        routes = resolve_routes(routes, public_tag=tag, hidden_tag=hidden_tag, ignore_hidden=ignore_hidden)

    click.echo(f"{Fore.CYAN}Routes: {len(routes)} of {len(compiled.routes)}")
    for route in routes:
        tags = ", ".join(route.tags)
        click.echo(f"  {route.method:7} {route.url:40} {route.operation_id}  [{tags}]")
    if compiled.content_types:
        click.echo(f"{Fore.CYAN}Content types: {', '.join(sorted(compiled.content_types))}")


@cli.command()
@click.option("--config", "config_path", type=click.Path(exists=True), help="Gateway config JSON file")
@click.option("--force", is_flag=True, help="Ignore the routes file and fetch every service")
def sync(config_path, force):
    """Run one refresh cycle and write the routes file."""
    print_banner()
    config = _load_config(config_path)

    async def run():
        coordinator = RefreshCoordinator(config)
        try:
            return await coordinator.services_to_routes(reload=force)
        finally:
            await coordinator.close()

    result = asyncio.run(run())
    source = "routes file" if result.from_cache else "services"
    click.echo(f"{Fore.CYAN}Loaded {len(result.records)} services from {source}")
    _print_records(result.records)
    if config.routes_file and not result.from_cache:
        click.echo(f"{Fore.GREEN}   Cached at: {config.routes_file}")


@cli.command()
@click.option("--config", "config_path", type=click.Path(exists=True), help="Gateway config JSON file")
def routes(config_path):
    """Print the gateway route table."""
    config = _load_config(config_path)

    async def run():
        coordinator = RefreshCoordinator(config)
        try:
            return await coordinator.load()
        finally:
            await coordinator.close()

    result = asyncio.run(run())
    table = build_routes(result.records, config)
    click.echo(f"{Fore.CYAN}Gateway routes: {len(table)}")
    _print_route_table(table)


@cli.command()
@click.option("--config", "config_path", type=click.Path(exists=True), help="Gateway config JSON file")
def watch(config_path):
    """Keep the routes in sync until interrupted."""
    print_banner()
    config = _load_config(config_path)
    if not config.refresh_interval:
        raise click.ClickException("watch needs a refresh interval (refreshInterval / GATEWAY_REFRESH_INTERVAL)")

    async def restart(result):
        click.echo(f"{Fore.YELLOW}Routes changed, rebuilding route table")
        _print_route_table(build_routes(result.records, config))

    async def run():
        coordinator = RefreshCoordinator(config, restarter=restart)
        try:
            result = await coordinator.load()
            _print_records(result.records)
            _print_route_table(build_routes(result.records, config))
            coordinator.start()
            click.echo(f"{Fore.CYAN}Refreshing every {config.refresh_interval}s, Ctrl-C to stop")
            await asyncio.Event().wait()
        finally:
            await coordinator.close()

    try:
        asyncio.run(run())
    except KeyboardInterrupt:
        click.echo(f"{Fore.YELLOW}Stopped")


if __name__ == "__main__":
    cli()

"""CLI entry point for OPSkins Auth.

Operational commands for the site's OAuth client registration: inspect and
clean up clients owned by the API key, force a reconciliation, and produce
login URLs or refreshed access tokens for manual testing.
"""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Any, NoReturn

import click

from . import __version__
from .config import StrategyConfig, load_config
from .errors import ConfigurationError, OpskinsAuthError
from .oauth.clients import ClientRegistrationManager
from .oauth.store import ClientStoreError, EncryptedClientStore
from .oauth.strategy import OpskinsStrategy
from .output import OutputHandler

logger = logging.getLogger("opskins_auth")


@click.group()
@click.option("--json", "json_mode", is_flag=True, help="Output in JSON format")
@click.option("--env-file", "env_path", type=click.Path(exists=True), help="Path to .env file")
@click.option("--store-dir", "store_dir", type=click.Path(file_okay=False), help="Directory for stored client credentials")
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose logging")
@click.version_option(version=__version__)
@click.pass_context
def main(ctx: click.Context, json_mode: bool, env_path: str | None, store_dir: str | None, verbose: bool) -> None:
    """OPSkins Auth - manage the OPSkins OAuth client for your site."""
    ctx.ensure_object(dict)
    ctx.obj["json_mode"] = json_mode
    ctx.obj["env_path"] = Path(env_path) if env_path else None
    ctx.obj["store_dir"] = Path(store_dir) if store_dir else None
    ctx.obj["output"] = OutputHandler(json_mode)

    if verbose:
        logging.basicConfig(
            level=logging.DEBUG,
            format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        )
    else:
        logging.basicConfig(level=logging.WARNING)


def get_config(ctx: click.Context) -> StrategyConfig | NoReturn:
    """Load config for the command, exiting on errors."""
    output: OutputHandler = ctx.obj["output"]
    try:
        return load_config(ctx.obj["env_path"])
    except ConfigurationError as e:
        output.error(e, help_text="Set OPSKINS_SITE_NAME, OPSKINS_RETURN_URL and OPSKINS_API_KEY.")
        raise SystemExit(1)  # Never reached due to sys.exit in output.error


def get_store(ctx: click.Context) -> EncryptedClientStore | NoReturn:
    """Open the credential store, exiting if its directory is unusable."""
    output: OutputHandler = ctx.obj["output"]
    try:
        return EncryptedClientStore(ctx.obj["store_dir"])
    except OSError as e:
        output.error(e, help_text="Check that the store directory (--store-dir) is writable.")
        raise SystemExit(1)  # Never reached due to sys.exit in output.error


def _run(ctx: click.Context, coro: Any) -> Any:
    """Run a coroutine, reporting strategy errors through the output handler."""
    output: OutputHandler = ctx.obj["output"]
    try:
        return asyncio.run(coro)
    except OpskinsAuthError as e:
        output.error(e)
        raise SystemExit(1)  # Never reached due to sys.exit in output.error


@main.group()
@click.pass_context
def clients(ctx: click.Context) -> None:
    """Manage OAuth clients owned by the API key."""
    pass


@clients.command("list")
@click.pass_context
def clients_list(ctx: click.Context) -> None:
    """List OAuth clients registered with OPSkins."""
    output: OutputHandler = ctx.obj["output"]
    config = get_config(ctx)
    manager = ClientRegistrationManager(config, get_store(ctx))

    owned = _run(ctx, manager.list_clients())

    if not owned and not ctx.obj["json_mode"]:
        click.echo("No OAuth clients registered.")
        return

    output.table(
        ["client_id", "name", "redirect_uri"],
        [[c.client_id, c.name or "", c.redirect_uri or ""] for c in owned],
    )


@clients.command("reconcile")
@click.pass_context
def clients_reconcile(ctx: click.Context) -> None:
    """Reuse or re-register this site's OAuth client."""
    output: OutputHandler = ctx.obj["output"]
    config = get_config(ctx)
    manager = ClientRegistrationManager(config, get_store(ctx))

    async def reconcile() -> str:
        try:
            registration = await manager.reconcile()
        finally:
            await manager.wait_for_cleanup()
        return registration.client_id

    client_id = _run(ctx, reconcile())
    output.success(
        {"client_id": client_id},
        human_message=click.style(f"Using OAuth client {client_id}", fg="green"),
    )


@clients.command("delete")
@click.argument("client_id")
@click.pass_context
def clients_delete(ctx: click.Context, client_id: str) -> None:
    """Delete an OAuth client by id."""
    output: OutputHandler = ctx.obj["output"]
    config = get_config(ctx)
    manager = ClientRegistrationManager(config, get_store(ctx))

    deleted = _run(ctx, manager.delete_client(client_id))
    if not deleted:
        output.error(OpskinsAuthError(f"Could not delete OAuth client {client_id}"))

    output.success(
        {"client_id": client_id, "deleted": True},
        human_message=f"Deleted OAuth client {client_id}",
    )


@clients.command("forget")
@click.pass_context
def clients_forget(ctx: click.Context) -> None:
    """Remove locally stored client credentials."""
    output: OutputHandler = ctx.obj["output"]
    try:
        removed = get_store(ctx).clear()
    except (ClientStoreError, OSError) as e:
        output.error(e)
        return

    output.success(
        {"removed": removed},
        human_message="Stored client credentials removed." if removed else "No stored client credentials.",
    )


def _strategy(ctx: click.Context, config: StrategyConfig) -> OpskinsStrategy:
    # The CLI never completes a callback, so the profile is returned as-is
    return OpskinsStrategy(config, lambda profile: profile, store=get_store(ctx))


@main.command("login-url")
@click.pass_context
def login_url(ctx: click.Context) -> None:
    """Print a fresh OPSkins authorize URL."""
    output: OutputHandler = ctx.obj["output"]
    config = get_config(ctx)

    async def build() -> str:
        async with _strategy(ctx, config) as strategy:
            await strategy.ready(config.ready_timeout)
            return strategy.login()

    url = _run(ctx, build())
    output.success({"url": url}, human_message=url)


@main.command()
@click.argument("refresh_token")
@click.pass_context
def refresh(ctx: click.Context, refresh_token: str) -> None:
    """Exchange a refresh token for a new access token."""
    output: OutputHandler = ctx.obj["output"]
    config = get_config(ctx)

    async def exchange() -> str:
        async with _strategy(ctx, config) as strategy:
            return await strategy.refresh_access_token(refresh_token)

    access_token = _run(ctx, exchange())
    output.success({"access_token": access_token}, human_message=access_token)

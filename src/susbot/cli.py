from __future__ import annotations

from pathlib import Path

import anyio
import typer
from rich.console import Console
from rich.table import Table

from . import __version__
from .commands import build_registry
from .config import ConfigError
from .logging import get_logger, setup_logging
from .membership import WelcomeMembership
from .prefix import PrefixResolver
from .settings import BotSettings, load_settings, require_bot_token
from .store import ProfileStore, StoreError
from .telegram.client import HttpBotClient
from .telegram.loop import BotConfig, run_main_loop

logger = get_logger(__name__)

HTTP_TIMEOUT_MARGIN_S = 20


def _print_version_and_exit() -> None:
    typer.echo(__version__)
    raise typer.Exit()


def _version_callback(value: bool) -> None:
    if value:
        _print_version_and_exit()


def _load(config: Path | None) -> tuple[BotSettings, Path]:
    try:
        return load_settings(config)
    except ConfigError as e:
        typer.echo(str(e), err=True)
        raise typer.Exit(code=1)


def _open_store(settings: BotSettings, config_path: Path) -> ProfileStore:
    try:
        return ProfileStore(settings.resolve_database_path(config_path=config_path))
    except StoreError as e:
        typer.echo(str(e), err=True)
        raise typer.Exit(code=1)


async def _serve(settings: BotSettings, token: str, store: ProfileStore) -> None:
    bot = HttpBotClient(
        token, timeout_s=settings.poll_timeout_s + HTTP_TIMEOUT_MARGIN_S
    )
    me = await bot.get_me()
    if me is None:
        logger.warning("startup.get_me_failed")
    prefixes = PrefixResolver(store, settings.bot_prefix)
    cfg = BotConfig(
        bot=bot,
        store=store,
        registry=build_registry(store=store, prefixes=prefixes),
        prefixes=prefixes,
        admin_ids=frozenset(settings.admins),
        bot_username=me.username if me is not None else None,
        poll_timeout_s=settings.poll_timeout_s,
        membership=WelcomeMembership(),
    )
    await run_main_loop(cfg)


def _run(*, config: Path | None, debug: bool) -> None:
    setup_logging(debug=debug)
    settings, config_path = _load(config)
    try:
        token = require_bot_token(settings, config_path)
    except ConfigError as e:
        typer.echo(str(e), err=True)
        raise typer.Exit(code=1)
    store = _open_store(settings, config_path)
    logger.info("startup.config", config_path=str(config_path), db_path=store.path)
    try:
        anyio.run(_serve, settings, token, store)
    except KeyboardInterrupt:
        logger.info("shutdown.interrupted")
    finally:
        store.close()


app = typer.Typer(
    add_completion=False,
    invoke_without_command=True,
    help="Telegram group bot with XP, levels and prefixed commands.",
)

CONFIG_OPTION = typer.Option(
    None,
    "--config",
    "-c",
    help="Path to the TOML config file (default: ~/.susbot/susbot.toml).",
)
DEBUG_OPTION = typer.Option(
    False,
    "--debug/--no-debug",
    help="Log Telegram requests and dispatch decisions.",
)


@app.callback()
def app_main(
    ctx: typer.Context,
    version: bool = typer.Option(
        False,
        "--version",
        help="Show the version and exit.",
        callback=_version_callback,
        is_eager=True,
    ),
    config: Path | None = CONFIG_OPTION,
    debug: bool = DEBUG_OPTION,
) -> None:
    """Susbot CLI."""
    if ctx.invoked_subcommand is None:
        _run(config=config, debug=debug)


@app.command()
def run(
    config: Path | None = CONFIG_OPTION,
    debug: bool = DEBUG_OPTION,
) -> None:
    """Start polling Telegram and dispatching messages."""
    _run(config=config, debug=debug)


@app.command()
def top(
    config: Path | None = CONFIG_OPTION,
    limit: int = typer.Option(10, "--limit", "-n", min=1, help="Rows to show."),
) -> None:
    """Print the XP leaderboard from the profile store."""
    settings, config_path = _load(config)
    store = _open_store(settings, config_path)
    try:
        leaders = anyio.run(store.top_users, limit)
    except StoreError as e:
        typer.echo(str(e), err=True)
        raise typer.Exit(code=1)
    finally:
        store.close()

    table = Table(title="Leaderboard")
    table.add_column("#", justify="right")
    table.add_column("User")
    table.add_column("Level", justify="right")
    table.add_column("XP", justify="right")
    for position, profile in enumerate(leaders, start=1):
        table.add_row(
            str(position),
            profile.display_name,
            str(profile.level),
            str(profile.xp),
        )
    Console().print(table)


def main() -> None:
    app()


if __name__ == "__main__":
    main()

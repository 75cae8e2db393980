"""Commands every deployment ships with.

Handlers close over the store, the prefix resolver and the registry they
are registered into, so the table is built per process by
``builtin_commands``.
"""

from __future__ import annotations

from functools import partial
from html import escape

from ..logging import get_logger
from ..prefix import PrefixResolver
from ..store import ProfileStore
from ..telegram.client import BotClient
from ..telegram.reply import make_reply
from ..telegram.types import TelegramIncomingMessage
from .registry import CommandDescriptor, CommandRegistry

logger = get_logger(__name__)

TOP_LIMIT = 10
MAX_PREFIX_LENGTH = 5
RESET_WORDS = frozenset({"reset", "default"})


def _usage(descriptor: CommandDescriptor, prefix: str) -> str:
    lead = prefix if descriptor.use_prefix else ""
    if descriptor.usage:
        return f"{lead}{descriptor.name} {descriptor.usage}"
    return f"{lead}{descriptor.name}"


async def help_command(
    bot: BotClient,
    msg: TelegramIncomingMessage,
    arg: str | None,
    *,
    registry: CommandRegistry,
    prefixes: PrefixResolver,
) -> None:
    reply = make_reply(bot, msg)
    prefix = await prefixes.resolve(msg.chat_id)
    if arg:
        wanted = arg.strip().lower()
        for descriptor in registry:
            if wanted in descriptor.names:
                lines = [f"<b>{escape(_usage(descriptor, prefix))}</b>"]
                if descriptor.description:
                    lines.append(escape(descriptor.description))
                if descriptor.aliases:
                    lines.append(f"Aliases: {escape(', '.join(descriptor.aliases))}")
                if descriptor.cooldown_s:
                    lines.append(f"Cooldown: {descriptor.cooldown_s:g}s")
                if descriptor.requires_admin:
                    lines.append("Admins only.")
                await reply(text="\n".join(lines), parse_mode="HTML")
                return
        await reply(text=f"Unknown command: {escape(arg.strip())}", parse_mode="HTML")
        return

    lines = ["<b>Commands</b>"]
    for descriptor in registry:
        entry = f"<code>{escape(_usage(descriptor, prefix))}</code>"
        if descriptor.description:
            entry += f" - {escape(descriptor.description)}"
        lines.append(entry)
    await reply(text="\n".join(lines), parse_mode="HTML")


async def rank_command(
    bot: BotClient,
    msg: TelegramIncomingMessage,
    arg: str | None,
    *,
    store: ProfileStore,
) -> None:
    _ = arg
    reply = make_reply(bot, msg)
    profile = await store.get_user(msg.sender_id)
    if profile is None:
        await reply(text="No profile yet. Say something first!")
        return
    total = await store.count_users()
    text = "\n".join(
        [
            f"🏅 <b>{escape(profile.display_name)}</b>",
            f"Level: <b>{profile.level}</b>",
            f"XP: {profile.current_xp}/{profile.required_xp} (total {profile.xp})",
            f"Rank: #{profile.rank} of {total}",
        ]
    )
    await reply(text=text, parse_mode="HTML")


async def top_command(
    bot: BotClient,
    msg: TelegramIncomingMessage,
    arg: str | None,
    *,
    store: ProfileStore,
) -> None:
    _ = arg
    reply = make_reply(bot, msg)
    leaders = await store.top_users(TOP_LIMIT)
    if not leaders:
        await reply(text="Nobody has earned XP yet.")
        return
    lines = [f"🏆 <b>Top {len(leaders)}</b>"]
    for position, profile in enumerate(leaders, start=1):
        lines.append(
            f"{position}. {escape(profile.display_name)} - "
            f"Level {profile.level} ({profile.xp} XP)"
        )
    await reply(text="\n".join(lines), parse_mode="HTML")


async def prefix_command(
    bot: BotClient,
    msg: TelegramIncomingMessage,
    arg: str | None,
    *,
    store: ProfileStore,
    prefixes: PrefixResolver,
) -> None:
    reply = make_reply(bot, msg)
    if not msg.is_group:
        await reply(text="Custom prefixes can only be set in groups.")
        return

    if arg is None:
        current = await prefixes.resolve(msg.chat_id)
        await reply(
            text=f"Current prefix: <code>{escape(current)}</code>", parse_mode="HTML"
        )
        return

    wanted = arg.strip()
    if wanted.lower() in RESET_WORDS:
        await store.set_group_prefix(msg.chat_id, None)
        logger.info("prefix.reset", chat_id=msg.chat_id)
        await reply(
            text=f"Prefix reset to <code>{escape(prefixes.default)}</code>",
            parse_mode="HTML",
        )
        return

    if any(ch.isspace() for ch in wanted) or len(wanted) > MAX_PREFIX_LENGTH:
        await reply(
            text=(
                "A prefix must be a single word of at most "
                f"{MAX_PREFIX_LENGTH} characters."
            )
        )
        return

    await store.set_group_prefix(msg.chat_id, wanted)
    logger.info("prefix.set", chat_id=msg.chat_id, prefix=wanted)
    await reply(text=f"Prefix set to <code>{escape(wanted)}</code>", parse_mode="HTML")


def builtin_commands(
    *,
    store: ProfileStore,
    prefixes: PrefixResolver,
    registry: CommandRegistry,
) -> tuple[CommandDescriptor, ...]:
    return (
        CommandDescriptor(
            name="help",
            aliases=("start", "commands"),
            execute=partial(help_command, registry=registry, prefixes=prefixes),
            cooldown_s=3,
            description="List commands or describe one.",
            usage="[command]",
        ),
        CommandDescriptor(
            name="rank",
            aliases=("level", "lvl"),
            execute=partial(rank_command, store=store),
            cooldown_s=5,
            description="Show your level, XP and rank.",
        ),
        CommandDescriptor(
            name="top",
            aliases=("leaderboard",),
            execute=partial(top_command, store=store),
            cooldown_s=10,
            description="Show the XP leaderboard.",
        ),
        CommandDescriptor(
            name="prefix",
            execute=partial(prefix_command, store=store, prefixes=prefixes),
            role=1,
            cooldown_s=5,
            description="Show, set or reset this group's command prefix.",
            usage="[new prefix | reset]",
        ),
    )


def build_registry(
    *,
    store: ProfileStore,
    prefixes: PrefixResolver,
    extra: tuple[object, ...] = (),
) -> CommandRegistry:
    registry = CommandRegistry()
    registry.load(builtin_commands(store=store, prefixes=prefixes, registry=registry))
    if extra:
        registry.load(extra)
    logger.info("commands.loaded", count=len(registry))
    return registry

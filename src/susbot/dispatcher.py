"""Per-message pipeline: ban gate, profile upkeep, XP, then command routing.

``Dispatcher.handle`` never raises. Each inbound message is isolated from
every other one, and each command handler is isolated from the pipeline that
invoked it.
"""

from __future__ import annotations

import inspect
from collections.abc import Awaitable, Callable, Iterable
from html import escape
from typing import Any, Protocol

from .commands.registry import CommandDescriptor, CommandMatch, CommandRegistry
from .cooldowns import CooldownTracker
from .leveling import XP_PER_MESSAGE, award_xp
from .logging import bind_context, clear_context, get_logger
from .membership import MembershipHandler
from .model import UserProfile, now_ms
from .prefix import PrefixResolver
from .scheduler import TaskGroup
from .store import ProfileStore
from .telegram.client import BotClient
from .telegram.reply import make_reply
from .telegram.types import TelegramCallbackQuery, TelegramIncomingMessage

logger = get_logger(__name__)

BAN_TEMPLATE = "🚫 You are banned from using the bot.\nReason: <b>{reason}</b>"
NO_BAN_REASON = "No reason provided"
COOLDOWN_TEMPLATE = "Please wait {remaining} seconds before using {name} again."
PERMISSION_DENIED = "Only group admins or bot admins can use this command."
LEVEL_UP_TEMPLATE = "🎉 <b>{name}</b> leveled up to <b>Level {level}</b>!"


class FallbackHandler(Protocol):
    async def __call__(self, bot: BotClient, msg: TelegramIncomingMessage) -> None: ...


class LogFallback:
    """Default fallback: records what arrived and does nothing else."""

    async def __call__(self, bot: BotClient, msg: TelegramIncomingMessage) -> None:
        _ = bot
        if msg.media is not None:
            logger.info(
                "fallback.media",
                chat_id=msg.chat_id,
                kind=msg.media.kind,
                file_id=msg.media.file_id,
            )
            return
        logger.debug("fallback.text", chat_id=msg.chat_id, text=msg.text)


async def _maybe_await(result: Awaitable[None] | None) -> None:
    if inspect.isawaitable(result):
        await result


class Dispatcher:
    def __init__(
        self,
        *,
        bot: BotClient,
        store: ProfileStore,
        registry: CommandRegistry,
        prefixes: PrefixResolver,
        admin_ids: Iterable[int | str] = (),
        bot_username: str | None = None,
        cooldowns: CooldownTracker | None = None,
        fallback: FallbackHandler | None = None,
        membership: MembershipHandler | None = None,
        task_group: TaskGroup | None = None,
        xp_per_message: int = XP_PER_MESSAGE,
        clock: Callable[[], int] = now_ms,
    ) -> None:
        self._bot = bot
        self._store = store
        self._registry = registry
        self._prefixes = prefixes
        self._admin_ids = frozenset(str(admin) for admin in admin_ids)
        self._bot_username = bot_username
        self._cooldowns = cooldowns if cooldowns is not None else CooldownTracker()
        self._fallback = fallback if fallback is not None else LogFallback()
        self._membership = membership
        self._task_group = task_group
        self._xp_per_message = xp_per_message
        self._clock = clock

    @property
    def cooldowns(self) -> CooldownTracker:
        return self._cooldowns

    async def handle(self, msg: TelegramIncomingMessage) -> None:
        bind_context(chat_id=msg.chat_id, user_id=msg.sender_id, message_id=msg.message_id)
        try:
            await self._handle(msg)
        except Exception as exc:  # noqa: BLE001
            logger.exception(
                "dispatch.failed",
                error=str(exc),
                error_type=exc.__class__.__name__,
            )
        finally:
            clear_context()

    async def _handle(self, msg: TelegramIncomingMessage) -> None:
        user_id = str(msg.sender_id)
        profile = await self._store.get_user(user_id)
        if profile is not None and profile.ban:
            reason = profile.ban_reason or NO_BAN_REASON
            logger.info("dispatch.banned", reason=reason)
            await make_reply(self._bot, msg)(
                text=BAN_TEMPLATE.format(reason=escape(reason)), parse_mode="HTML"
            )
            return

        if profile is None:
            profile = UserProfile.new(
                user_id,
                username=msg.sender.username,
                first_name=msg.sender.first_name,
                last_name=msg.sender.last_name,
            )
            logger.info("profile.created")

        profile.last_interaction = self._clock()
        profile.command_count += 1
        if msg.is_group:
            profile.last_active_group = str(msg.chat_id)
        await self._store.save_user(profile)

        leveled_up = award_xp(profile, self._xp_per_message)
        await self._store.save_user(profile)
        profile.rank = await self._store.rank_of(user_id)
        await self._store.set_rank(user_id, profile.rank)
        if leveled_up:
            logger.info("profile.level_up", level=profile.level)
            await self._spawn(self._notify_level_up, msg, profile.display_name, profile.level)

        logger.info(
            "message.received",
            chat_type=msg.chat_type,
            has_text=msg.text is not None,
            media=msg.media.kind if msg.media is not None else None,
        )

        if msg.has_membership_change and self._membership is not None:
            await self._run_membership(msg)

        if not msg.text:
            return

        prefix = await self._prefixes.resolve(msg.chat_id)
        match = self._registry.match(msg.text, prefix, bot_username=self._bot_username)
        if match is None:
            await self._run_fallback(msg)
            return
        await self._dispatch(msg, match)

    async def _dispatch(self, msg: TelegramIncomingMessage, match: CommandMatch) -> None:
        descriptor = match.descriptor
        user_id = str(msg.sender_id)
        reply = make_reply(self._bot, msg)

        on_cooldown, remaining = self._cooldowns.is_on_cooldown(
            user_id, descriptor.name, descriptor.cooldown_s
        )
        if on_cooldown:
            logger.info("dispatch.cooldown", command=descriptor.name, remaining=remaining)
            await reply(
                text=COOLDOWN_TEMPLATE.format(remaining=remaining, name=descriptor.name)
            )
            return

        if descriptor.requires_admin and not await self.is_admin(msg):
            logger.info("dispatch.denied", command=descriptor.name)
            await reply(text=PERMISSION_DENIED)
            return

        self._cooldowns.mark(user_id, descriptor.name)
        logger.info(
            "dispatch.command",
            command=descriptor.name,
            prefix=match.prefix,
            has_argument=match.argument is not None,
        )
        await self._spawn(self._run_command, descriptor, msg, match.argument)

    async def is_admin(self, msg: TelegramIncomingMessage) -> bool:
        """Bot admins always pass; otherwise the sender must be a chat admin.

        An administrator lookup that fails counts as "not an admin".
        """
        if str(msg.sender_id) in self._admin_ids:
            return True
        try:
            admins = await self._bot.get_chat_administrators(msg.chat_id)
        except Exception as exc:  # noqa: BLE001
            logger.warning(
                "dispatch.admin_lookup_failed",
                error=str(exc),
                error_type=exc.__class__.__name__,
            )
            return False
        return any(member.user.id == msg.sender_id for member in admins)

    async def _spawn(self, func: Callable[..., Awaitable[None]], *args: Any) -> None:
        if self._task_group is None:
            await func(*args)
            return
        self._task_group.start_soon(func, *args)

    async def _run_command(
        self,
        descriptor: CommandDescriptor,
        msg: TelegramIncomingMessage,
        argument: str | None,
    ) -> None:
        try:
            await _maybe_await(descriptor.execute(self._bot, msg, argument))
        except Exception as exc:  # noqa: BLE001
            logger.exception(
                "dispatch.handler_failed",
                command=descriptor.name,
                chat_id=msg.chat_id,
                user_id=msg.sender_id,
                error=str(exc),
                error_type=exc.__class__.__name__,
            )

    async def _run_fallback(self, msg: TelegramIncomingMessage) -> None:
        try:
            await self._fallback(self._bot, msg)
        except Exception as exc:  # noqa: BLE001
            logger.exception(
                "dispatch.fallback_failed",
                error=str(exc),
                error_type=exc.__class__.__name__,
            )

    async def _run_membership(self, msg: TelegramIncomingMessage) -> None:
        membership = self._membership
        if membership is None:
            return
        try:
            if msg.new_chat_members:
                await membership.on_members_joined(self._bot, msg, msg.new_chat_members)
            if msg.left_chat_member is not None:
                await membership.on_member_left(self._bot, msg, msg.left_chat_member)
        except Exception as exc:  # noqa: BLE001
            logger.exception(
                "dispatch.membership_failed",
                error=str(exc),
                error_type=exc.__class__.__name__,
            )

    async def _notify_level_up(
        self, msg: TelegramIncomingMessage, name: str, level: int
    ) -> None:
        try:
            await make_reply(self._bot, msg)(
                text=LEVEL_UP_TEMPLATE.format(name=escape(name), level=level),
                parse_mode="HTML",
            )
        except Exception as exc:  # noqa: BLE001
            logger.exception(
                "dispatch.level_up_failed",
                chat_id=msg.chat_id,
                error=str(exc),
                error_type=exc.__class__.__name__,
            )

    async def handle_callback(self, query: TelegramCallbackQuery) -> None:
        descriptor = (
            self._registry.find_callback(query.data) if query.data is not None else None
        )
        if descriptor is None or descriptor.on_callback_query is None:
            logger.debug("callback.unrouted", data=query.data)
            await self._bot.answer_callback_query(query.callback_query_id)
            return
        logger.info("callback.routed", command=descriptor.name, data=query.data)
        try:
            await _maybe_await(descriptor.on_callback_query(self._bot, query))
        except Exception as exc:  # noqa: BLE001
            logger.exception(
                "callback.failed",
                command=descriptor.name,
                user_id=query.sender_id,
                error=str(exc),
                error_type=exc.__class__.__name__,
            )

    async def notify_restart(self) -> None:
        for descriptor in self._registry.all():
            hook = descriptor.notify_on_restart
            if hook is None:
                continue
            try:
                await _maybe_await(hook(self._bot))
            except Exception as exc:  # noqa: BLE001
                logger.exception(
                    "dispatch.restart_hook_failed",
                    command=descriptor.name,
                    error=str(exc),
                    error_type=exc.__class__.__name__,
                )

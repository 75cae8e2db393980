from __future__ import annotations

from collections.abc import Sequence
from html import escape
from typing import Protocol

from .logging import get_logger
from .telegram.client import BotClient
from .telegram.reply import make_reply
from .telegram.types import TelegramIncomingMessage, TelegramSender

logger = get_logger(__name__)


class MembershipHandler(Protocol):
    async def on_members_joined(
        self,
        bot: BotClient,
        msg: TelegramIncomingMessage,
        members: Sequence[TelegramSender],
    ) -> None: ...

    async def on_member_left(
        self,
        bot: BotClient,
        msg: TelegramIncomingMessage,
        member: TelegramSender,
    ) -> None: ...


def _name(member: TelegramSender) -> str:
    return member.username or member.first_name or "User"


class WelcomeMembership:
    """Greets people joining a group and notes people leaving it.

    Bot accounts are ignored in both directions.
    """

    async def on_members_joined(
        self,
        bot: BotClient,
        msg: TelegramIncomingMessage,
        members: Sequence[TelegramSender],
    ) -> None:
        humans = [member for member in members if not member.is_bot]
        if not humans:
            return
        names = ", ".join(f"<b>{escape(_name(member))}</b>" for member in humans)
        logger.info("membership.joined", chat_id=msg.chat_id, count=len(humans))
        await make_reply(bot, msg)(text=f"👋 Welcome, {names}!", parse_mode="HTML")

    async def on_member_left(
        self,
        bot: BotClient,
        msg: TelegramIncomingMessage,
        member: TelegramSender,
    ) -> None:
        if member.is_bot:
            return
        logger.info("membership.left", chat_id=msg.chat_id, user_id=member.id)
        await make_reply(bot, msg)(
            text=f"<b>{escape(_name(member))}</b> left the group.", parse_mode="HTML"
        )

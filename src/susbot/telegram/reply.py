from __future__ import annotations

from collections.abc import Awaitable, Callable
from functools import partial
from typing import Any

from ..logging import get_logger
from .api_schemas import Message
from .client import BotClient, ParseMode
from .types import TelegramIncomingMessage

logger = get_logger(__name__)


async def send_reply(
    bot: BotClient,
    *,
    chat_id: int,
    user_msg_id: int,
    text: str,
    parse_mode: ParseMode | None = None,
    reply_markup: dict[str, Any] | None = None,
) -> Message | None:
    sent = await bot.send_message(
        chat_id=chat_id,
        text=text,
        reply_to_message_id=user_msg_id,
        parse_mode=parse_mode,
        reply_markup=reply_markup,
    )
    if sent is None:
        logger.warning("reply.not_sent", chat_id=chat_id, user_msg_id=user_msg_id)
    return sent


def make_reply(
    bot: BotClient, msg: TelegramIncomingMessage
) -> Callable[..., Awaitable[Message | None]]:
    return partial(
        send_reply,
        bot,
        chat_id=msg.chat_id,
        user_msg_id=msg.message_id,
    )

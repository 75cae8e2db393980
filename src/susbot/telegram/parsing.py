from __future__ import annotations

import msgspec

from .api_schemas import Message, Update, User
from .types import (
    MediaAttachment,
    TelegramCallbackQuery,
    TelegramIncomingMessage,
    TelegramIncomingUpdate,
    TelegramSender,
)


def _sender(user: User) -> TelegramSender:
    return TelegramSender(
        id=user.id,
        username=user.username,
        first_name=user.first_name,
        last_name=user.last_name,
        is_bot=user.is_bot,
    )


def _media(msg: Message) -> MediaAttachment | None:
    if msg.photo:
        # telegram lists sizes smallest first
        return MediaAttachment(kind="photo", file_id=msg.photo[-1].file_id)
    if msg.video is not None:
        return MediaAttachment(
            kind="video",
            file_id=msg.video.file_id,
            file_name=msg.video.file_name,
            mime_type=msg.video.mime_type,
        )
    if msg.document is not None:
        return MediaAttachment(
            kind="document",
            file_id=msg.document.file_id,
            file_name=msg.document.file_name,
            mime_type=msg.document.mime_type,
        )
    return None


def parse_incoming_message(msg: Message) -> TelegramIncomingMessage | None:
    if msg.from_ is None:
        # channel posts and anonymous admins have no sender profile
        return None
    return TelegramIncomingMessage(
        chat_id=msg.chat.id,
        message_id=msg.message_id,
        sender=_sender(msg.from_),
        chat_type=msg.chat.type,
        text=msg.text,
        caption=msg.caption,
        media=_media(msg),
        new_chat_members=tuple(_sender(user) for user in msg.new_chat_members or ()),
        left_chat_member=(
            _sender(msg.left_chat_member) if msg.left_chat_member is not None else None
        ),
        raw=msgspec.to_builtins(msg),
    )


def parse_incoming_update(update: Update) -> TelegramIncomingUpdate | None:
    if update.message is not None:
        return parse_incoming_message(update.message)
    query = update.callback_query
    if query is not None:
        return TelegramCallbackQuery(
            callback_query_id=query.id,
            sender=_sender(query.from_),
            data=query.data,
            chat_id=query.message.chat.id if query.message is not None else None,
            message_id=query.message.message_id if query.message is not None else None,
            raw=msgspec.to_builtins(query),
        )
    return None

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Literal

MediaKind = Literal["photo", "video", "document"]


@dataclass(frozen=True, slots=True)
class TelegramSender:
    id: int
    username: str | None = None
    first_name: str | None = None
    last_name: str | None = None
    is_bot: bool | None = None


@dataclass(frozen=True, slots=True)
class MediaAttachment:
    kind: MediaKind
    file_id: str
    file_name: str | None = None
    mime_type: str | None = None


@dataclass(frozen=True, slots=True)
class TelegramIncomingMessage:
    chat_id: int
    message_id: int
    sender: TelegramSender
    chat_type: str | None = None
    text: str | None = None
    caption: str | None = None
    media: MediaAttachment | None = None
    new_chat_members: tuple[TelegramSender, ...] = ()
    left_chat_member: TelegramSender | None = None
    raw: dict[str, Any] | None = field(default=None, compare=False, repr=False)
    transport: str = "telegram"

    @property
    def sender_id(self) -> int:
        return self.sender.id

    @property
    def is_group(self) -> bool:
        return self.chat_type in {"group", "supergroup"}

    @property
    def is_private(self) -> bool:
        if self.chat_type is not None:
            return self.chat_type == "private"
        return self.chat_id > 0

    @property
    def has_membership_change(self) -> bool:
        return bool(self.new_chat_members) or self.left_chat_member is not None


@dataclass(frozen=True, slots=True)
class TelegramCallbackQuery:
    callback_query_id: str
    sender: TelegramSender
    data: str | None
    chat_id: int | None = None
    message_id: int | None = None
    raw: dict[str, Any] | None = field(default=None, compare=False, repr=False)
    transport: str = "telegram"

    @property
    def sender_id(self) -> int:
        return self.sender.id


TelegramIncomingUpdate = TelegramIncomingMessage | TelegramCallbackQuery

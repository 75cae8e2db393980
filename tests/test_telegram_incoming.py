import msgspec

from susbot.telegram.api_schemas import Update
from susbot.telegram.parsing import parse_incoming_update
from susbot.telegram.types import TelegramCallbackQuery, TelegramIncomingMessage


def decode_update(payload: bytes) -> Update:
    return msgspec.json.decode(payload, type=Update)


def test_parse_text_message() -> None:
    update = decode_update(
        b'{"update_id": 1, "message": {"message_id": 5, "date": 0,'
        b' "chat": {"id": -100, "type": "supergroup", "title": "g"},'
        b' "from": {"id": 42, "is_bot": false, "username": "alice", "first_name": "A"},'
        b' "text": "/rank"}}'
    )

    msg = parse_incoming_update(update)

    assert isinstance(msg, TelegramIncomingMessage)
    assert msg.chat_id == -100
    assert msg.message_id == 5
    assert msg.sender_id == 42
    assert msg.sender.username == "alice"
    assert msg.text == "/rank"
    assert msg.is_group
    assert msg.media is None
    assert msg.raw is not None
    assert msg.raw["from"]["id"] == 42


def test_parse_photo_uses_largest_size() -> None:
    update = decode_update(
        b'{"update_id": 2, "message": {"message_id": 6,'
        b' "chat": {"id": 42, "type": "private"}, "from": {"id": 42},'
        b' "caption": "look",'
        b' "photo": [{"file_id": "small", "width": 90, "height": 90},'
        b' {"file_id": "big", "width": 800, "height": 800}]}}'
    )

    msg = parse_incoming_update(update)

    assert isinstance(msg, TelegramIncomingMessage)
    assert msg.text is None
    assert msg.caption == "look"
    assert msg.media is not None
    assert (msg.media.kind, msg.media.file_id) == ("photo", "big")
    assert msg.is_private


def test_parse_membership_markers() -> None:
    update = decode_update(
        b'{"update_id": 3, "message": {"message_id": 7,'
        b' "chat": {"id": -100, "type": "group"}, "from": {"id": 1},'
        b' "new_chat_members": [{"id": 2, "is_bot": false, "first_name": "B"},'
        b' {"id": 3, "is_bot": true}]}}'
    )

    msg = parse_incoming_update(update)

    assert isinstance(msg, TelegramIncomingMessage)
    assert msg.has_membership_change
    assert [member.id for member in msg.new_chat_members] == [2, 3]
    assert msg.left_chat_member is None


def test_message_without_sender_is_dropped() -> None:
    update = decode_update(
        b'{"update_id": 4, "message": {"message_id": 8,'
        b' "chat": {"id": -100, "type": "channel"}, "text": "post"}}'
    )

    assert parse_incoming_update(update) is None


def test_parse_callback_query() -> None:
    update = decode_update(
        b'{"update_id": 5, "callback_query": {"id": "cb1",'
        b' "from": {"id": 42, "username": "alice"},'
        b' "message": {"message_id": 9, "chat": {"id": -100, "type": "group"}},'
        b' "data": "shop_buy_1"}}'
    )

    query = parse_incoming_update(update)

    assert isinstance(query, TelegramCallbackQuery)
    assert query.callback_query_id == "cb1"
    assert query.sender_id == 42
    assert query.data == "shop_buy_1"
    assert query.chat_id == -100
    assert query.message_id == 9


def test_unknown_update_kind_is_ignored() -> None:
    update = decode_update(b'{"update_id": 6, "edited_message": {"message_id": 1}}')

    assert parse_incoming_update(update) is None

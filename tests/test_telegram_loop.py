from collections.abc import AsyncIterator

import pytest

from susbot.commands import CommandDescriptor, CommandRegistry
from susbot.dispatcher import Dispatcher
from susbot.telegram.api_schemas import Chat, Message, Update, User
from susbot.telegram.loop import BotConfig, poll_incoming, run_main_loop
from susbot.telegram.types import TelegramIncomingMessage, TelegramIncomingUpdate
from tests.telegram_fakes import make_callback, make_message, make_sender


def _update(update_id: int, text: str | None = "hi", *, sender: bool = True) -> Update:
    return Update(
        update_id=update_id,
        message=Message(
            message_id=update_id,
            chat=Chat(id=-100, type="group"),
            from_=User(id=7, is_bot=False) if sender else None,
            text=text,
        ),
    )


@pytest.mark.anyio
async def test_poll_advances_offset_past_every_update(fake_bot) -> None:
    fake_bot.updates = [[_update(3), _update(4, sender=False), _update(5)], [_update(6)]]
    seen: list[int] = []

    async for incoming in poll_incoming(fake_bot, timeout_s=0):
        assert isinstance(incoming, TelegramIncomingMessage)
        seen.append(incoming.message_id)
        if len(seen) == 3:
            break

    assert seen == [3, 5, 6]
    assert [call["offset"] for call in fake_bot.update_calls] == [None, 6]
    assert fake_bot.update_calls[0]["allowed_updates"] == ["message", "callback_query"]


@pytest.mark.anyio
async def test_poll_backs_off_on_failure(fake_bot) -> None:
    fake_bot.updates = [None, None, [_update(1)]]
    delays: list[float] = []

    async def fake_sleep(delay: float) -> None:
        delays.append(delay)

    async for incoming in poll_incoming(fake_bot, timeout_s=0, sleep=fake_sleep):
        assert incoming.message_id == 1
        break

    assert delays == [1.0, 2.0]


def _cfg(fake_bot, store, prefixes, registry) -> BotConfig:
    return BotConfig(bot=fake_bot, store=store, registry=registry, prefixes=prefixes)


def _poller(*updates: TelegramIncomingUpdate):
    async def poller(cfg: BotConfig) -> AsyncIterator[TelegramIncomingUpdate]:
        _ = cfg
        for update in updates:
            yield update

    return poller


@pytest.mark.anyio
async def test_main_loop_dispatches_and_closes(fake_bot, store, prefixes, registry) -> None:
    calls: list[str | None] = []
    restarts: list[str] = []

    async def echo(bot, msg, arg) -> None:
        _ = bot, msg
        calls.append(arg)

    async def on_restart(bot) -> None:
        _ = bot
        restarts.append("echo")

    registry.register(
        CommandDescriptor(name="echo", execute=echo, notify_on_restart=on_restart)
    )

    await run_main_loop(
        _cfg(fake_bot, store, prefixes, registry),
        poller=_poller(
            make_message("/echo one", message_id=1),
            make_message("/echo two", message_id=2),
        ),
    )

    assert restarts == ["echo"]
    assert calls == ["one", "two"]
    assert fake_bot.closed is True
    profile = await store.get_user(make_sender().id)
    assert profile is not None
    assert profile.xp == 20


@pytest.mark.anyio
async def test_callback_routed_to_owner(fake_bot, store, prefixes) -> None:
    seen: list[str | None] = []

    async def on_query(bot, query) -> None:
        _ = bot
        seen.append(query.data)

    async def noop(bot, msg, arg) -> None:
        _ = bot, msg, arg

    registry = CommandRegistry(
        [
            CommandDescriptor(
                name="shop", execute=noop, on_callback_query=on_query
            )
        ]
    )
    dispatcher = Dispatcher(
        bot=fake_bot, store=store, registry=registry, prefixes=prefixes
    )

    await dispatcher.handle_callback(make_callback("shop_buy_1"))
    await dispatcher.handle_callback(make_callback("other_thing"))

    assert seen == ["shop_buy_1"]
    assert [call["callback_query_id"] for call in fake_bot.answer_calls] == ["cbq-1"]


@pytest.mark.anyio
async def test_callback_failure_is_logged_not_raised(fake_bot, store, prefixes) -> None:
    async def on_query(bot, query) -> None:
        _ = bot, query
        raise RuntimeError("game crashed")

    async def noop(bot, msg, arg) -> None:
        _ = bot, msg, arg

    registry = CommandRegistry(
        [CommandDescriptor(name="mines", execute=noop, on_callback_query=on_query)]
    )
    dispatcher = Dispatcher(
        bot=fake_bot, store=store, registry=registry, prefixes=prefixes
    )

    await dispatcher.handle_callback(make_callback("mines_1"))

    assert fake_bot.answer_calls == []


@pytest.mark.anyio
async def test_restart_hook_failure_does_not_stop_others(
    fake_bot, store, prefixes
) -> None:
    notified: list[str] = []

    async def noop(bot, msg, arg) -> None:
        _ = bot, msg, arg

    def broken(bot) -> None:
        _ = bot
        raise RuntimeError("no state file")

    def ok(bot) -> None:
        _ = bot
        notified.append("ok")

    registry = CommandRegistry(
        [
            CommandDescriptor(name="a", execute=noop, notify_on_restart=broken),
            CommandDescriptor(name="b", execute=noop, notify_on_restart=ok),
        ]
    )
    dispatcher = Dispatcher(
        bot=fake_bot, store=store, registry=registry, prefixes=prefixes
    )

    await dispatcher.notify_restart()

    assert notified == ["ok"]

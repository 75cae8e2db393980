from __future__ import annotations

from collections.abc import AsyncIterator, Awaitable, Callable
from dataclasses import dataclass, field

import anyio

from ..commands.registry import CommandRegistry
from ..cooldowns import CooldownTracker
from ..dispatcher import Dispatcher, FallbackHandler
from ..logging import get_logger
from ..membership import MembershipHandler
from ..prefix import PrefixResolver
from ..scheduler import UserScheduler
from ..store import ProfileStore
from .client import BotClient
from .parsing import parse_incoming_update
from .types import TelegramCallbackQuery, TelegramIncomingMessage, TelegramIncomingUpdate

logger = get_logger(__name__)

ALLOWED_UPDATES = ["message", "callback_query"]
MIN_BACKOFF_S = 1.0
MAX_BACKOFF_S = 30.0


@dataclass(slots=True)
class BotConfig:
    bot: BotClient
    store: ProfileStore
    registry: CommandRegistry
    prefixes: PrefixResolver
    admin_ids: frozenset[str] = frozenset()
    bot_username: str | None = None
    poll_timeout_s: int = 50
    cooldowns: CooldownTracker = field(default_factory=CooldownTracker)
    fallback: FallbackHandler | None = None
    membership: MembershipHandler | None = None


async def poll_incoming(
    bot: BotClient,
    *,
    timeout_s: int = 50,
    offset: int | None = None,
    sleep: Callable[[float], Awaitable[None]] = anyio.sleep,
) -> AsyncIterator[TelegramIncomingUpdate]:
    """Long-poll forever, yielding parsed updates in arrival order.

    The offset advances past every update received, including ones that do
    not parse, so nothing is fetched twice. A failed poll backs off
    exponentially up to ``MAX_BACKOFF_S``.
    """
    backoff = MIN_BACKOFF_S
    while True:
        updates = await bot.get_updates(
            offset=offset, timeout_s=timeout_s, allowed_updates=ALLOWED_UPDATES
        )
        if updates is None:
            logger.info("loop.get_updates_failed", retry_in=backoff)
            await sleep(backoff)
            backoff = min(backoff * 2, MAX_BACKOFF_S)
            continue
        backoff = MIN_BACKOFF_S
        for update in updates:
            offset = update.update_id + 1
            incoming = parse_incoming_update(update)
            if incoming is None:
                logger.debug("loop.update_ignored", update_id=update.update_id)
                continue
            yield incoming


async def poll_updates(cfg: BotConfig) -> AsyncIterator[TelegramIncomingUpdate]:
    async for update in poll_incoming(cfg.bot, timeout_s=cfg.poll_timeout_s):
        yield update


async def run_main_loop(
    cfg: BotConfig,
    poller: Callable[[BotConfig], AsyncIterator[TelegramIncomingUpdate]] = poll_updates,
) -> None:
    try:
        async with anyio.create_task_group() as tg:
            dispatcher = Dispatcher(
                bot=cfg.bot,
                store=cfg.store,
                registry=cfg.registry,
                prefixes=cfg.prefixes,
                admin_ids=cfg.admin_ids,
                bot_username=cfg.bot_username,
                cooldowns=cfg.cooldowns,
                fallback=cfg.fallback,
                membership=cfg.membership,
                task_group=tg,
            )
            scheduler: UserScheduler[TelegramIncomingMessage] = UserScheduler(
                task_group=tg, run_job=dispatcher.handle
            )
            await dispatcher.notify_restart()
            logger.info(
                "loop.started",
                commands=len(cfg.registry),
                bot_username=cfg.bot_username,
            )
            async for update in poller(cfg):
                if isinstance(update, TelegramCallbackQuery):
                    tg.start_soon(dispatcher.handle_callback, update)
                    continue
                await scheduler.enqueue(update.sender_id, update)
    finally:
        await cfg.bot.close()

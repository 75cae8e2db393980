from __future__ import annotations

import re
from collections.abc import Awaitable, Callable, Iterable, Iterator
from dataclasses import dataclass, replace
from typing import TYPE_CHECKING, Any

from ..logging import get_logger
from ..prefix import escape_prefix

if TYPE_CHECKING:
    from ..telegram.client import BotClient
    from ..telegram.types import TelegramCallbackQuery, TelegramIncomingMessage

logger = get_logger(__name__)

CommandHandler = Callable[
    ["BotClient", "TelegramIncomingMessage", "str | None"], "Awaitable[None] | None"
]
CallbackHandler = Callable[
    ["BotClient", "TelegramCallbackQuery"], "Awaitable[None] | None"
]
RestartHook = Callable[["BotClient"], "Awaitable[None] | None"]


class CommandRegistryError(ValueError):
    pass


@dataclass(frozen=True, slots=True)
class CommandDescriptor:
    name: str
    execute: CommandHandler
    aliases: tuple[str, ...] = ()
    use_prefix: bool = True
    role: int = 0
    cooldown_s: float = 0
    description: str = ""
    usage: str | None = None
    on_callback_query: CallbackHandler | None = None
    callback_prefix: str | None = None
    notify_on_restart: RestartHook | None = None

    @property
    def names(self) -> tuple[str, ...]:
        return (self.name, *self.aliases)

    @property
    def requires_admin(self) -> bool:
        return self.role > 0

    @property
    def callback_key(self) -> str:
        return self.callback_prefix or f"{self.name}_"


@dataclass(frozen=True, slots=True)
class CommandMatch:
    descriptor: CommandDescriptor
    argument: str | None
    prefix: str | None


def build_pattern(
    descriptor: CommandDescriptor,
    prefix: str,
    bot_username: str | None = None,
) -> re.Pattern[str]:
    """Compile the matcher for one descriptor under one prefix.

    Each name or alias matches the whole text, optionally followed by
    whitespace and a single-line argument (group 1). Prefixed commands also
    accept Telegram's ``/name@botname`` form.
    """
    lead = escape_prefix(prefix) if descriptor.use_prefix else ""
    names = "|".join(re.escape(name) for name in descriptor.names)
    mention = ""
    if descriptor.use_prefix and bot_username:
        mention = f"(?:@(?i:{re.escape(bot_username)}))?"
    return re.compile(rf"^{lead}(?:{names}){mention}(?:\s+(.+))?\Z")


def _valid_name(name: object) -> bool:
    return isinstance(name, str) and bool(name) and not any(ch.isspace() for ch in name)


class CommandRegistry:
    """Commands in registration order; the first matching entry wins."""

    def __init__(self, descriptors: Iterable[CommandDescriptor] = ()) -> None:
        self._commands: dict[str, CommandDescriptor] = {}
        self._patterns: dict[tuple[str, str, str | None], re.Pattern[str]] = {}
        for descriptor in descriptors:
            self.register(descriptor)

    def __len__(self) -> int:
        return len(self._commands)

    def __iter__(self) -> Iterator[CommandDescriptor]:
        return iter(self._commands.values())

    def __contains__(self, name: object) -> bool:
        return name in self._commands

    def register(self, descriptor: CommandDescriptor) -> None:
        aliases = descriptor.aliases
        if not isinstance(aliases, tuple):
            aliases = (aliases,) if isinstance(aliases, str) else tuple(aliases)
            descriptor = replace(descriptor, aliases=aliases)
        if not _valid_name(descriptor.name):
            raise CommandRegistryError(
                f"Invalid command name {descriptor.name!r}; expected a non-empty word."
            )
        if not callable(descriptor.execute):
            raise CommandRegistryError(
                f"Command {descriptor.name!r} has no callable handler."
            )
        for alias in descriptor.aliases:
            if not _valid_name(alias):
                raise CommandRegistryError(
                    f"Invalid alias {alias!r} for command {descriptor.name!r}."
                )
        if descriptor.name in self._commands:
            raise CommandRegistryError(f"Duplicate command name {descriptor.name!r}.")
        self._commands[descriptor.name] = descriptor
        logger.debug(
            "commands.registered",
            command=descriptor.name,
            aliases=list(descriptor.aliases),
            role=descriptor.role,
        )

    def load(self, entries: Iterable[Any]) -> int:
        """Register every well-formed descriptor, skipping malformed entries."""
        loaded = 0
        for entry in entries:
            if (
                not isinstance(entry, CommandDescriptor)
                or not _valid_name(entry.name)
                or not callable(entry.execute)
            ):
                logger.warning("commands.skipped", entry=repr(entry))
                continue
            self.register(entry)
            loaded += 1
        return loaded

    def all(self) -> tuple[CommandDescriptor, ...]:
        return tuple(self._commands.values())

    def get(self, name: str) -> CommandDescriptor | None:
        return self._commands.get(name)

    def match(
        self,
        text: str,
        prefix: str,
        *,
        bot_username: str | None = None,
    ) -> CommandMatch | None:
        for descriptor in self._commands.values():
            found = self._pattern(descriptor, prefix, bot_username).match(text)
            if found is None:
                continue
            return CommandMatch(
                descriptor=descriptor,
                argument=found.group(1),
                prefix=prefix if descriptor.use_prefix else None,
            )
        return None

    def _pattern(
        self, descriptor: CommandDescriptor, prefix: str, bot_username: str | None
    ) -> re.Pattern[str]:
        key = (descriptor.name, prefix, bot_username)
        pattern = self._patterns.get(key)
        if pattern is None:
            pattern = build_pattern(descriptor, prefix, bot_username)
            self._patterns[key] = pattern
        return pattern

    def find_callback(self, data: str) -> CommandDescriptor | None:
        for descriptor in self._commands.values():
            if descriptor.on_callback_query is None:
                continue
            if data.startswith(descriptor.callback_key):
                return descriptor
        return None

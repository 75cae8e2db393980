from dataclasses import dataclass

import pytest

from susbot.commands import (
    CommandDescriptor,
    CommandRegistry,
    CommandRegistryError,
    build_pattern,
)


async def _noop(bot, msg, arg) -> None:
    _ = bot, msg, arg


def _cmd(name: str, **fields) -> CommandDescriptor:
    return CommandDescriptor(name=name, execute=_noop, **fields)


def test_match_without_argument() -> None:
    registry = CommandRegistry([_cmd("rank")])

    match = registry.match("/rank", "/")

    assert match is not None
    assert match.descriptor.name == "rank"
    assert match.argument is None
    assert match.prefix == "/"


def test_match_captures_argument() -> None:
    registry = CommandRegistry([_cmd("say")])

    match = registry.match("/say  hello there", "/")

    assert match is not None
    assert match.argument == "hello there"


def test_alias_matches() -> None:
    registry = CommandRegistry([_cmd("rank", aliases=("lvl",))])

    match = registry.match("/lvl me", "/")

    assert match is not None
    assert match.descriptor.name == "rank"
    assert match.argument == "me"


def test_name_must_be_whole_word() -> None:
    registry = CommandRegistry([_cmd("rank")])

    assert registry.match("/ranking", "/") is None
    assert registry.match("rank", "/") is None
    assert registry.match("say /rank", "/") is None


def test_matching_is_case_sensitive() -> None:
    registry = CommandRegistry([_cmd("rank")])

    assert registry.match("/RANK", "/") is None


def test_regex_prefix_is_literal() -> None:
    registry = CommandRegistry([_cmd("rank")])

    assert registry.match(".rank", ".") is not None
    assert registry.match("xrank", ".") is None


def test_unprefixed_command() -> None:
    registry = CommandRegistry([_cmd("hi", use_prefix=False)])

    match = registry.match("hi there", "/")

    assert match is not None
    assert match.prefix is None
    assert registry.match("/hi", "/") is None


def test_first_registered_wins() -> None:
    first = _cmd("play")
    second = _cmd("music", aliases=("play",))
    registry = CommandRegistry([first, second])

    match = registry.match("/play song", "/")

    assert match is not None
    assert match.descriptor is first


def test_bot_mention_suffix() -> None:
    registry = CommandRegistry([_cmd("rank")])

    match = registry.match("/rank@Sus_Bot", "/", bot_username="sus_bot")

    assert match is not None
    assert match.argument is None
    assert registry.match("/rank@other_bot", "/", bot_username="sus_bot") is None


def test_multiline_argument_does_not_match() -> None:
    registry = CommandRegistry([_cmd("say")])

    assert registry.match("/say hello\nworld", "/") is None


def test_duplicate_name_rejected() -> None:
    registry = CommandRegistry([_cmd("rank")])

    with pytest.raises(CommandRegistryError, match="Duplicate"):
        registry.register(_cmd("rank"))


def test_invalid_name_rejected() -> None:
    with pytest.raises(CommandRegistryError):
        CommandRegistry([_cmd("two words")])


def test_load_skips_malformed_entries() -> None:
    registry = CommandRegistry()

    loaded = registry.load(
        [
            _cmd("rank"),
            {"name": "dict"},
            CommandDescriptor(name="", execute=_noop),
            CommandDescriptor(name="broken", execute=None),  # type: ignore[arg-type]
            _cmd("top"),
        ]
    )

    assert loaded == 2
    assert [descriptor.name for descriptor in registry.all()] == ["rank", "top"]
    assert "rank" in registry
    assert registry.get("broken") is None


def test_find_callback_by_prefix() -> None:
    async def on_query(bot, query) -> None:
        _ = bot, query

    shop = _cmd("shop", on_callback_query=on_query)
    mines = _cmd("mines", on_callback_query=on_query, callback_prefix="minegame_")
    registry = CommandRegistry([_cmd("rank"), shop, mines])

    assert registry.find_callback("shop_buy_1") is shop
    assert registry.find_callback("minegame_3_4") is mines
    assert registry.find_callback("rank_x") is None
    assert registry.find_callback("unknown") is None


def test_build_pattern_groups_argument() -> None:
    pattern = build_pattern(_cmd("rank", aliases=("r",)), "!")

    found = pattern.match("!r someone")

    assert found is not None
    assert found.group(1) == "someone"


def test_trailing_newline_does_not_match() -> None:
    registry = CommandRegistry([_cmd("rank"), _cmd("say")])

    assert registry.match("/rank\n", "/") is None
    assert registry.match("/say hello\n", "/") is None


@dataclass
class _CountingHandler:
    calls: int = 0

    async def __call__(self, bot, msg, arg) -> None:
        _ = bot, msg, arg
        self.calls += 1


def test_unhashable_handler_and_list_aliases() -> None:
    handler = _CountingHandler()
    registry = CommandRegistry(
        [
            CommandDescriptor(name="count", execute=handler),
            _cmd("rank", aliases=["x"]),  # type: ignore[arg-type]
        ]
    )

    counted = registry.match("/count 3", "/")
    aliased = registry.match("/x me", "/")

    assert counted is not None
    assert counted.descriptor.execute is handler
    assert counted.argument == "3"
    assert aliased is not None
    assert aliased.descriptor.name == "rank"
    assert aliased.argument == "me"
    assert registry.get("rank").aliases == ("x",)
    assert registry.match("/count", "/") is not None

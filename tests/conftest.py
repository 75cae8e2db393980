import logging
from collections.abc import Iterator
from pathlib import Path

import pytest
import structlog

from susbot.commands import CommandRegistry
from susbot.cooldowns import CooldownTracker
from susbot.dispatcher import Dispatcher
from susbot.prefix import PrefixResolver
from susbot.store import ProfileStore
from tests.telegram_fakes import FakeBot, FakeClock


@pytest.fixture(autouse=True)
def _reset_logging_config() -> Iterator[None]:
    # setup_logging() binds structlog and the root logger to the sys.stderr
    # of the moment (pytest's capture stream); undo it after each test so
    # later tests don't write to a closed stream.
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield
    structlog.reset_defaults()
    root.handlers[:] = handlers
    root.setLevel(level)


@pytest.fixture
def fake_bot() -> FakeBot:
    return FakeBot()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def store(tmp_path: Path) -> Iterator[ProfileStore]:
    profile_store = ProfileStore(tmp_path / "susbot.db")
    try:
        yield profile_store
    finally:
        profile_store.close()


@pytest.fixture
def prefixes(store: ProfileStore) -> PrefixResolver:
    return PrefixResolver(store, "/")


@pytest.fixture
def registry() -> CommandRegistry:
    return CommandRegistry()


@pytest.fixture
def make_dispatcher(fake_bot, store, registry, prefixes, clock):
    def _factory(**overrides) -> Dispatcher:
        params = {
            "bot": fake_bot,
            "store": store,
            "registry": registry,
            "prefixes": prefixes,
            "cooldowns": CooldownTracker(clock=clock),
        }
        params.update(overrides)
        return Dispatcher(**params)

    return _factory

from __future__ import annotations

import re

from .logging import get_logger
from .store import ProfileStore, StoreError

logger = get_logger(__name__)


def escape_prefix(prefix: str) -> str:
    return re.escape(prefix)


class PrefixResolver:
    def __init__(self, store: ProfileStore, default: str) -> None:
        self._store = store
        self.default = default

    async def resolve(self, chat_id: int | str) -> str:
        try:
            group = await self._store.get_group(chat_id)
        except StoreError as exc:
            logger.error(
                "prefix.lookup_failed",
                chat_id=chat_id,
                error=str(exc),
                error_type=exc.__class__.__name__,
            )
            return self.default
        if group is None or not group.prefix:
            logger.debug("prefix.default", chat_id=chat_id, prefix=self.default)
            return self.default
        logger.debug("prefix.group", chat_id=chat_id, prefix=group.prefix)
        return group.prefix

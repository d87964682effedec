"""
Conversation Cache

Keeps the message history exchanged with the language model per
(user, collection) pair, so follow-up searches carry earlier context.
Entries live as long as the cache instance; an optional key limit
evicts the least recently used conversation.
"""

import logging
from collections import OrderedDict
from typing import Dict, List, Optional, Tuple

logger = logging.getLogger("taskfinder.common.conversation_cache")

ConversationKey = Tuple[str, str]  # (user_id, collection_id)
Turn = Dict[str, str]  # {"role": ..., "content": ...}


class ConversationCache:
    """
    Append-only store of role-tagged turns keyed by conversation.

    Callers read a copy with ``get`` and, once a model call succeeds,
    ``append`` the prompt and the reply together. A failed call appends
    nothing, so an entry never holds a prompt without its reply.
    """

    def __init__(self, max_keys: Optional[int] = None):
        """
        Args:
            max_keys: Maximum number of conversations kept; None for no limit
        """
        if max_keys is not None and max_keys < 1:
            raise ValueError("max_keys must be positive or None")
        self._max_keys = max_keys
        self._entries: "OrderedDict[ConversationKey, List[Turn]]" = OrderedDict()

    def get(self, key: ConversationKey) -> List[Turn]:
        """Return a copy of the turns recorded for ``key`` (empty if unknown)"""
        turns = self._entries.get(key)
        if turns is None:
            return []
        self._entries.move_to_end(key)
        return [dict(t) for t in turns]

    def append(self, key: ConversationKey, *turns: Turn) -> None:
        """Append turns to ``key``, creating the entry on first use"""
        for turn in turns:
            if "role" not in turn or "content" not in turn:
                raise ValueError(f"Turn must have 'role' and 'content': {turn!r}")

        entry = self._entries.get(key)
        if entry is None:
            entry = []
            self._entries[key] = entry
        entry.extend(dict(t) for t in turns)
        self._entries.move_to_end(key)
        self._evict()

    def clear(self, key: Optional[ConversationKey] = None) -> None:
        """Forget one conversation, or all of them"""
        if key is None:
            self._entries.clear()
        else:
            self._entries.pop(key, None)

    def _evict(self) -> None:
        if self._max_keys is None:
            return
        while len(self._entries) > self._max_keys:
            evicted, _ = self._entries.popitem(last=False)
            logger.debug("Evicted conversation %s", evicted)

    def __contains__(self, key: object) -> bool:
        return key in self._entries

    def __len__(self) -> int:
        return len(self._entries)

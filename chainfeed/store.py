"""Single-writer store holding the current immutable ``FeedState``."""

from __future__ import annotations

import asyncio
from dataclasses import replace
from typing import Callable, Iterable, List, Optional

from chainfeed.models import FeedState, HistoryEntry, merge_entries
from chainfeed.utils.logging import get_logger

logger = get_logger(__name__)

StateListener = Callable[[FeedState], None]


class MergeStore:
    """Serialize writes to one feed's state and publish snapshots.

    Every update swaps in a new ``FeedState``; readers only ever see a complete
    snapshot.
    """

    def __init__(self, name: str = "feed") -> None:
        self.name = name
        self._state = FeedState.empty()
        self._lock = asyncio.Lock()
        self._listeners: List[StateListener] = []

    def snapshot(self) -> FeedState:
        return self._state

    def subscribe(self, listener: StateListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _notify(self) -> None:
        state = self._state
        for listener in list(self._listeners):
            try:
                listener(state)
            except Exception as exc:
                logger.warning(
                    "store_listener_failed",
                    store=self.name,
                    error=str(exc),
                    error_type=type(exc).__name__,
                )

    async def begin_sync(self) -> FeedState:
        """Mark a full re-sync as in progress; the only way to raise ``is_loading``."""
        async with self._lock:
            self._state = replace(self._state, is_loading=True, error=None)
            return self._state

    async def replace_all(self, entries: Iterable[HistoryEntry]) -> FeedState:
        async with self._lock:
            self._state = replace(
                self._state, entries=merge_entries(entries), is_loading=False
            )
            state = self._state
        self._notify()
        return state

    async def merge_incremental(self, entries: Iterable[HistoryEntry]) -> FeedState:
        """Add entries not yet present.

        Merging the same batch twice is a no-op, and listeners hear nothing
        when a batch adds no new entries.
        """
        async with self._lock:
            current = self._state.entries
            known = {entry.dedup_key for entry in current}
            fresh = []
            for entry in entries:
                if entry.dedup_key in known:
                    continue
                known.add(entry.dedup_key)
                fresh.append(entry)
            if fresh:
                self._state = replace(
                    self._state, entries=merge_entries(current, fresh)
                )
            state = self._state
        if fresh:
            logger.debug(
                "store_merged", store=self.name, added=len(fresh), total=len(state.entries)
            )
            self._notify()
        return state

    async def set_error(self, message: Optional[str]) -> FeedState:
        async with self._lock:
            self._state = replace(self._state, error=message)
            state = self._state
        self._notify()
        return state

    async def clear_error(self) -> FeedState:
        return await self.set_error(None)


__all__ = ["MergeStore", "StateListener"]

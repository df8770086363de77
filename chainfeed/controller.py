"""Feed lifecycle: backfill, then live tail, with cancellation."""

from __future__ import annotations

import asyncio
from enum import Enum
from typing import Callable, Dict, List, Optional, Tuple

from chainfeed.backfill import BackfillError, BackfillScanner
from chainfeed.chain_client import ChainClient
from chainfeed.config import Settings
from chainfeed.contracts.addresses import AddressBook
from chainfeed.decoders.base import ContextFactory
from chainfeed.feeds import FeedDefinition
from chainfeed.live import BatchCallback, LiveTail, LiveTailHandle
from chainfeed.models import FeedState, HistoryEntry, is_unset_address
from chainfeed.store import MergeStore, StateListener
from chainfeed.tokens import TokenRegistry
from chainfeed.utils.logging import bind_context, get_logger

logger = get_logger(__name__)

TOTAL_FAILURE_MESSAGE = "Failed to load {feed} history: every source query failed"
BACKFILL_CRASH_MESSAGE = "Failed to load {feed} history: {error}"


class FeedPhase(str, Enum):
    IDLE = "idle"
    BACKFILLING = "backfilling"
    LIVE = "live"
    STOPPED = "stopped"


class RunToken:
    """Cancellation token for one controller run."""

    def __init__(self) -> None:
        self.active = True

    def cancel(self) -> None:
        self.active = False


class FeedController:
    """Drive one feed for one principal through its phases."""

    def __init__(
        self,
        definition: FeedDefinition,
        principal: Optional[str],
        book: AddressBook,
        scanner: BackfillScanner,
        tail: LiveTail,
        store: Optional[MergeStore] = None,
    ) -> None:
        self.definition = definition
        self.principal = principal
        self.book = book
        self.scanner = scanner
        self.tail = tail
        self.store = store or MergeStore(definition.name)
        self.phase = FeedPhase.IDLE
        self._token = RunToken()
        self._task: Optional[asyncio.Task[None]] = None
        self._live: Optional[LiveTailHandle] = None
        self._settled = asyncio.Event()

    def _idle_reason(self) -> Optional[str]:
        if self.definition.requires_principal and is_unset_address(self.principal):
            return "principal_unset"
        missing = self.definition.missing_contracts(self.book)
        if missing:
            return "missing_contracts:" + ",".join(missing)
        return None

    async def start(self) -> None:
        if self.phase is not FeedPhase.IDLE or self._task is not None:
            return
        reason = self._idle_reason()
        if reason:
            logger.info("feed_idle", feed=self.definition.name, reason=reason)
            self._settled.set()
            return

        self.phase = FeedPhase.BACKFILLING
        await self.store.begin_sync()
        self._task = asyncio.create_task(self._run(self._token))
        self._task.add_done_callback(self._on_run_done)

    def _on_run_done(self, task: "asyncio.Task[None]") -> None:
        if not task.cancelled() and task.exception() is not None:
            logger.error(
                "feed_run_failed",
                feed=self.definition.name,
                error=str(task.exception()),
                error_type=type(task.exception()).__name__,
            )
        self._settled.set()

    async def _run(self, token: RunToken) -> None:
        bind_context(feed=self.definition.name, principal=self.principal)
        from_block: Optional[int] = None
        try:
            result = await self.scanner.scan(self.definition, self.principal)
        except BackfillError as exc:
            if not token.active:
                return
            logger.warning(
                "backfill_failed", feed=self.definition.name, error=str(exc)
            )
            await self.store.replace_all(())
            await self.store.set_error(str(exc))
        except Exception as exc:
            if not token.active:
                return
            logger.error(
                "backfill_crashed",
                feed=self.definition.name,
                error=str(exc),
                error_type=type(exc).__name__,
            )
            await self.store.replace_all(())
            await self.store.set_error(
                BACKFILL_CRASH_MESSAGE.format(feed=self.definition.name, error=exc)
            )
        else:
            if not token.active:
                logger.debug("backfill_result_discarded", feed=self.definition.name)
                return
            await self.store.replace_all(result.entries)
            if result.total_failure:
                await self.store.set_error(
                    TOTAL_FAILURE_MESSAGE.format(feed=self.definition.name)
                )
            from_block = result.window.to_block

        if not token.active:
            return
        handle = await self.tail.start(
            self.definition, self.principal, self._batch_handler(token), from_block
        )
        if not token.active:
            await handle.close()
            return
        self._live = handle
        self.phase = FeedPhase.LIVE
        self._settled.set()
        logger.info(
            "feed_live",
            feed=self.definition.name,
            entries=len(self.store.snapshot().entries),
            subscriptions=len(handle),
        )

    def _batch_handler(self, token: RunToken) -> BatchCallback:
        async def on_batch(entries: List[HistoryEntry]) -> None:
            if not token.active:
                return
            await self.store.merge_incremental(entries)

        return on_batch

    async def stop(self) -> None:
        if self.phase is FeedPhase.STOPPED:
            return
        self._token.cancel()
        task, self._task = self._task, None
        if task is not None and not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        live, self._live = self._live, None
        if live is not None:
            await live.close()
        self.phase = FeedPhase.STOPPED
        self._settled.set()
        logger.info("feed_stopped", feed=self.definition.name)

    async def wait_until_live(self, timeout: Optional[float] = None) -> FeedPhase:
        """Wait until the feed is live, stopped, or left idle, and return the phase."""
        if timeout is None:
            await self._settled.wait()
        else:
            await asyncio.wait_for(self._settled.wait(), timeout=timeout)
        if self._task is not None and self._task.done() and not self._task.cancelled():
            exc = self._task.exception()
            if exc is not None:
                raise exc
        return self.phase


class FeedHandle:
    """What a consumer holds for a running feed."""

    def __init__(self, controller: FeedController) -> None:
        self._controller = controller

    @property
    def name(self) -> str:
        return self._controller.definition.name

    @property
    def principal(self) -> Optional[str]:
        return self._controller.principal

    @property
    def phase(self) -> FeedPhase:
        return self._controller.phase

    def current_state(self) -> FeedState:
        return self._controller.store.snapshot()

    def on_change(self, callback: StateListener) -> Callable[[], None]:
        return self._controller.store.subscribe(callback)

    async def wait_until_live(self, timeout: Optional[float] = None) -> FeedPhase:
        return await self._controller.wait_until_live(timeout)

    async def stop(self) -> None:
        await self._controller.stop()


class FeedService:
    """Start feeds, keeping at most one controller per feed and principal."""

    def __init__(
        self, book: AddressBook, scanner: BackfillScanner, tail: LiveTail
    ) -> None:
        self.book = book
        self.scanner = scanner
        self.tail = tail
        self._controllers: Dict[Tuple[str, str], FeedController] = {}

    @classmethod
    def from_settings(
        cls,
        chain: ChainClient,
        book: AddressBook,
        tokens: TokenRegistry,
        settings: Settings,
    ) -> "FeedService":
        contexts = ContextFactory.from_settings(chain, tokens, book, settings)
        scanner = BackfillScanner(
            chain,
            contexts,
            window_blocks=settings.backfill_window_blocks,
            query_timeout=settings.log_query_timeout_seconds,
        )
        return cls(book, scanner, LiveTail(chain, contexts))

    @staticmethod
    def _key(definition: FeedDefinition, principal: Optional[str]) -> Tuple[str, str]:
        return (definition.name, (principal or "").strip().lower())

    async def start_feed(
        self, definition: FeedDefinition, principal: Optional[str]
    ) -> FeedHandle:
        key = self._key(definition, principal)
        previous = self._controllers.pop(key, None)
        if previous is not None:
            await previous.stop()

        controller = FeedController(
            definition, principal, self.book, self.scanner, self.tail
        )
        self._controllers[key] = controller
        await controller.start()
        return FeedHandle(controller)

    @property
    def active_count(self) -> int:
        return len(self._controllers)

    async def stop_all(self) -> None:
        controllers = list(self._controllers.values())
        self._controllers.clear()
        for controller in controllers:
            await controller.stop()


__all__ = [
    "FeedController",
    "FeedHandle",
    "FeedPhase",
    "FeedService",
    "RunToken",
]

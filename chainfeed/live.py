"""Live tail: one subscription per source, decoded with the backfill decoders."""

from __future__ import annotations

import asyncio
from typing import Awaitable, Callable, List, Optional, Sequence, Tuple

from chainfeed.chain_client import ChainClient, Subscription
from chainfeed.decoders.base import ContextFactory, DecodeContext, decode_batch
from chainfeed.feeds import FeedDefinition
from chainfeed.models import HistoryEntry, RawLogRecord, SourceSpec
from chainfeed.utils.logging import get_logger

logger = get_logger(__name__)

BatchCallback = Callable[[List[HistoryEntry]], Awaitable[None]]


class LiveTailHandle:
    """Owns the subscriptions opened for one feed run."""

    def __init__(
        self, feed: str, subscriptions: Sequence[Tuple[str, Subscription]]
    ) -> None:
        self.feed = feed
        self._subscriptions = list(subscriptions)
        self.closed = False

    @property
    def source_names(self) -> List[str]:
        return [name for name, _ in self._subscriptions]

    def __len__(self) -> int:
        return len(self._subscriptions)

    async def close(self) -> List[BaseException]:
        """Close every subscription; a failing close does not stop the rest.

        Returns the errors collected along the way.
        """
        if self.closed:
            return []
        self.closed = True
        subscriptions, self._subscriptions = self._subscriptions, []
        errors: List[BaseException] = []
        for name, subscription in subscriptions:
            try:
                await subscription.close()
            except asyncio.CancelledError:
                raise
            except Exception as exc:
                errors.append(exc)
                logger.warning(
                    "live_unsubscribe_failed",
                    feed=self.feed,
                    source=name,
                    error=str(exc),
                    error_type=type(exc).__name__,
                )
        logger.debug(
            "live_tail_closed",
            feed=self.feed,
            subscriptions=len(subscriptions),
            errors=len(errors),
        )
        return errors


class LiveTail:
    """Subscribe to every source of a feed and forward decoded batches."""

    def __init__(self, chain: ChainClient, contexts: ContextFactory) -> None:
        self.chain = chain
        self.contexts = contexts

    def _make_handler(
        self,
        definition: FeedDefinition,
        source: SourceSpec,
        ctx: DecodeContext,
        on_batch: BatchCallback,
    ) -> Callable[[List[RawLogRecord]], Awaitable[None]]:
        async def handle_logs(records: List[RawLogRecord]) -> None:
            entries = await decode_batch(records, definition.decoders, ctx)
            logger.debug(
                "live_batch_decoded",
                feed=definition.name,
                source=source.name,
                records=len(records),
                entries=len(entries),
            )
            await on_batch(entries)

        return handle_logs

    async def _open(
        self,
        definition: FeedDefinition,
        source: SourceSpec,
        principal: Optional[str],
        ctx: DecodeContext,
        on_batch: BatchCallback,
        from_block: Optional[int],
    ) -> Optional[Subscription]:
        try:
            return await self.chain.subscribe_logs(
                source.address,
                source.abi,
                source.argument_filters(principal),
                self._make_handler(definition, source, ctx, on_batch),
                from_block=from_block,
            )
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            logger.warning(
                "live_subscribe_failed",
                feed=definition.name,
                source=source.name,
                error=str(exc),
                error_type=type(exc).__name__,
            )
            return None

    async def start(
        self,
        definition: FeedDefinition,
        principal: Optional[str],
        on_batch: BatchCallback,
        from_block: Optional[int] = None,
    ) -> LiveTailHandle:
        """Open one subscription per source.

        ``from_block`` lets the caller resume at the end of a backfill window;
        anything redelivered there is collapsed by the store's dedup.
        """
        ctx = self.contexts.for_principal(principal)
        sources = definition.sources
        subscriptions: List[Tuple[str, Subscription]] = []

        async def open_source(source: SourceSpec) -> None:
            subscription = await self._open(
                definition, source, principal, ctx, on_batch, from_block
            )
            if subscription is not None:
                subscriptions.append((source.name, subscription))

        try:
            await asyncio.gather(*(open_source(source) for source in sources))
        except asyncio.CancelledError:
            # Subscriptions opened before the cancel have no owner yet.
            await LiveTailHandle(definition.name, subscriptions).close()
            raise
        order = {source.name: index for index, source in enumerate(sources)}
        subscriptions.sort(key=lambda item: order[item[0]])
        logger.info(
            "live_tail_started",
            feed=definition.name,
            subscriptions=len(subscriptions),
            failed=len(sources) - len(subscriptions),
        )
        return LiveTailHandle(definition.name, subscriptions)


__all__ = ["BatchCallback", "LiveTail", "LiveTailHandle"]

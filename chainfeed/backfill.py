"""Bounded historical scan of a feed's sources."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import List, Optional, Tuple

from chainfeed.chain_client import ChainClient
from chainfeed.decoders.base import ContextFactory, decode_batch
from chainfeed.feeds import FeedDefinition
from chainfeed.models import HistoryEntry, RawLogRecord, SourceSpec, merge_entries
from chainfeed.utils.logging import get_logger

logger = get_logger(__name__)

DEFAULT_WINDOW_BLOCKS = 50_000


class BackfillError(Exception):
    """The scan could not start because the chain height is unknown."""


@dataclass(frozen=True)
class BlockWindow:
    from_block: int
    to_block: int


@dataclass(frozen=True)
class ScanResult:
    entries: Tuple[HistoryEntry, ...]
    failed_sources: Tuple[str, ...]
    window: BlockWindow
    source_count: int = 0

    @property
    def total_failure(self) -> bool:
        """True when there were sources to query and every one failed."""
        return self.source_count > 0 and len(self.failed_sources) == self.source_count


def compute_window(
    current_height: int, window_blocks: int = DEFAULT_WINDOW_BLOCKS
) -> BlockWindow:
    """Return the inclusive block range ``[max(0, height - W), height]``."""
    return BlockWindow(
        from_block=max(0, current_height - window_blocks),
        to_block=current_height,
    )


class BackfillScanner:
    """Query every source of a feed over one block window and decode the result."""

    def __init__(
        self,
        chain: ChainClient,
        contexts: ContextFactory,
        window_blocks: int = DEFAULT_WINDOW_BLOCKS,
        query_timeout: float = 20.0,
    ) -> None:
        self.chain = chain
        self.contexts = contexts
        self.window_blocks = window_blocks
        self.query_timeout = query_timeout

    async def current_window(self) -> BlockWindow:
        try:
            height = await asyncio.wait_for(
                self.chain.current_block_height(), timeout=self.query_timeout
            )
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            raise BackfillError(f"Failed to read current block height: {exc}") from exc
        return compute_window(int(height), self.window_blocks)

    async def _query_source(
        self,
        source: SourceSpec,
        principal: Optional[str],
        window: BlockWindow,
    ) -> Optional[List[RawLogRecord]]:
        try:
            return await asyncio.wait_for(
                self.chain.query_logs(
                    source.address,
                    source.abi,
                    window.from_block,
                    window.to_block,
                    source.argument_filters(principal),
                ),
                timeout=self.query_timeout,
            )
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            logger.warning(
                "backfill_source_failed",
                source=source.name,
                from_block=window.from_block,
                to_block=window.to_block,
                error=str(exc) or type(exc).__name__,
                error_type=type(exc).__name__,
            )
            return None

    async def scan(
        self,
        definition: FeedDefinition,
        principal: Optional[str],
        window: Optional[BlockWindow] = None,
    ) -> ScanResult:
        if window is None:
            window = await self.current_window()

        sources = definition.sources
        results = await asyncio.gather(
            *(self._query_source(source, principal, window) for source in sources)
        )

        records: List[RawLogRecord] = []
        failed: List[str] = []
        for source, logs in zip(sources, results):
            if logs is None:
                failed.append(source.name)
            else:
                records.extend(logs)

        ctx = self.contexts.for_principal(principal)
        decoded = await decode_batch(records, definition.decoders, ctx)
        entries = merge_entries(decoded)

        logger.info(
            "backfill_completed",
            feed=definition.name,
            from_block=window.from_block,
            to_block=window.to_block,
            records=len(records),
            entries=len(entries),
            failed_sources=len(failed),
        )
        return ScanResult(
            entries=entries,
            failed_sources=tuple(failed),
            window=window,
            source_count=len(sources),
        )


__all__ = [
    "BackfillError",
    "BackfillScanner",
    "BlockWindow",
    "ScanResult",
    "compute_window",
]

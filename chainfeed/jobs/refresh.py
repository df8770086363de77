"""Scheduled recomputation of player rankings."""

from __future__ import annotations

from typing import Callable, List, Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler

from chainfeed.controller import FeedHandle
from chainfeed.rankings import PlayerRanking, RankingAggregator
from chainfeed.utils.logging import get_logger

logger = get_logger(__name__)

RankingListener = Callable[[List[PlayerRanking]], None]


class RankingRefreshService:
    """Recompute rankings from the rankings feed on a fixed cadence."""

    JOB_ID = "refresh_rankings"

    def __init__(
        self,
        scheduler: AsyncIOScheduler,
        handle: FeedHandle,
        aggregator: RankingAggregator,
        interval_seconds: int,
    ) -> None:
        self.scheduler = scheduler
        self.handle = handle
        self.aggregator = aggregator
        self.interval_seconds = interval_seconds
        self.latest: List[PlayerRanking] = []
        self.last_error: Optional[str] = None
        self._listeners: List[RankingListener] = []

    def subscribe(self, listener: RankingListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def start(self) -> None:
        if self.scheduler.running:
            return
        self.scheduler.add_job(
            self.refresh,
            "interval",
            seconds=self.interval_seconds,
            id=self.JOB_ID,
            replace_existing=True,
        )
        self.scheduler.start()
        logger.info("ranking_scheduler_started", interval=self.interval_seconds)

    async def shutdown(self) -> None:
        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)
            logger.info("ranking_scheduler_stopped")

    async def refresh(self) -> List[PlayerRanking]:
        """Run one recomputation; failures are logged and the last result kept."""
        try:
            players = self.aggregator.unique_players(self.handle.current_state().entries)
            rankings = await self.aggregator.compute(players)
        except Exception as exc:
            self.last_error = str(exc)
            logger.error("ranking_refresh_error", error=str(exc))
            return self.latest

        self.latest = rankings
        self.last_error = None
        for listener in list(self._listeners):
            try:
                listener(rankings)
            except Exception as exc:
                logger.warning("ranking_listener_failed", error=str(exc))
        return rankings


__all__ = ["RankingRefreshService"]

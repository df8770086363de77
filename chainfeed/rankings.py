"""Player rankings derived from the rankings feed and on-chain player state."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Optional, Sequence

from chainfeed.chain_client import ChainClient
from chainfeed.contracts.abi import (
    PLAYER_STATE_FIELDS,
    PLAYER_STORAGE_ABI,
    field_names,
    function_abi,
)
from chainfeed.decoders.base import as_int, as_struct
from chainfeed.models import HistoryEntry, PlayerActivityEntry
from chainfeed.tokens import TokenRegistry, format_units
from chainfeed.utils.logging import get_logger

logger = get_logger(__name__)

PLAYER_STATE_FIELD_NAMES = field_names(PLAYER_STATE_FIELDS)
GET_PLAYER_ABI = [function_abi(PLAYER_STORAGE_ABI, "getPlayer")]


@dataclass(frozen=True)
class PlayerRanking:
    address: str
    lifetime_winnings: str
    total_rounds_played: int
    total_wins: int
    total_losses: int
    win_rate: float

    def to_dict(self) -> Dict[str, Any]:
        return {
            "address": self.address,
            "lifetime_winnings": self.lifetime_winnings,
            "total_rounds_played": self.total_rounds_played,
            "total_wins": self.total_wins,
            "total_losses": self.total_losses,
            "win_rate": self.win_rate,
        }


def _unpack_player(result: Any) -> Optional[Dict[str, Any]]:
    """Return the player state, or None when storage reports it as not found."""
    if isinstance(result, (list, tuple)) and len(result) == 2:
        state, found = result
    elif isinstance(result, dict):
        state, found = result.get("state"), result.get("found")
    else:
        raise ValueError(f"Unexpected getPlayer result: {type(result).__name__}")
    if not found:
        return None
    return as_struct(state, PLAYER_STATE_FIELD_NAMES)


class RankingAggregator:
    """Read every active player's stats and order them by lifetime winnings."""

    def __init__(
        self,
        chain: ChainClient,
        player_storage_address: str,
        tokens: TokenRegistry,
        max_players: int = 100,
        batch_size: int = 10,
        read_timeout: float = 8.0,
    ) -> None:
        self.chain = chain
        self.player_storage_address = player_storage_address
        self.tokens = tokens
        self.max_players = max_players
        self.batch_size = max(1, batch_size)
        self.read_timeout = read_timeout

    def unique_players(self, entries: Iterable[HistoryEntry]) -> List[str]:
        seen: Dict[str, str] = {}
        for entry in entries:
            if not isinstance(entry, PlayerActivityEntry) or not entry.player:
                continue
            key = entry.player.lower()
            if key not in seen:
                seen[key] = entry.player
                if len(seen) >= self.max_players:
                    break
        return list(seen.values())

    async def _read_player(self, player: str) -> Optional[PlayerRanking]:
        try:
            result = await asyncio.wait_for(
                self.chain.read_contract(
                    self.player_storage_address,
                    GET_PLAYER_ABI,
                    "getPlayer",
                    [player],
                ),
                timeout=self.read_timeout,
            )
            state = _unpack_player(result)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            logger.warning(
                "player_stats_failed",
                player=player,
                error=str(exc),
                error_type=type(exc).__name__,
            )
            return None
        if state is None:
            return None

        winnings = as_int(state.get("lifetimeWinnings"), 0) or 0
        rounds = as_int(state.get("totalRoundsPlayed"), 0) or 0
        wins = as_int(state.get("totalWins"), 0) or 0
        losses = as_int(state.get("totalLosses"), 0) or 0
        if winnings == 0 and rounds == 0:
            return None
        return PlayerRanking(
            address=player,
            lifetime_winnings=format_units(winnings, self.tokens.stablecoin.decimals),
            total_rounds_played=rounds,
            total_wins=wins,
            total_losses=losses,
            win_rate=(wins / rounds * 100) if rounds > 0 else 0.0,
        )

    async def compute(self, players: Sequence[str]) -> List[PlayerRanking]:
        rankings: List[PlayerRanking] = []
        capped = list(players)[: self.max_players]
        for start in range(0, len(capped), self.batch_size):
            batch = capped[start : start + self.batch_size]
            results = await asyncio.gather(*(self._read_player(p) for p in batch))
            rankings.extend(r for r in results if r is not None)
        rankings.sort(key=lambda r: Decimal(r.lifetime_winnings), reverse=True)
        logger.info("rankings_computed", players=len(capped), ranked=len(rankings))
        return rankings


__all__ = ["PlayerRanking", "RankingAggregator"]

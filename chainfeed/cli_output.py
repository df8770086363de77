"""CLI output formatting for terminal display.

Provides renderers for plain text, JSON, and rich terminal output of feed
snapshots and player rankings.
"""

from __future__ import annotations

import json
import sys
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence

from rich.console import Console
from rich.table import Table

from chainfeed.models import (
    FeedState,
    GameEntry,
    HistoryEntry,
    LendingEntry,
    NFTEntry,
    PlayerActivityEntry,
    TransactionEntry,
)
from chainfeed.rankings import PlayerRanking


class OutputFormat(Enum):
    """Supported output formats."""

    TEXT = "text"
    JSON = "json"
    RICH = "rich"


def format_timestamp(timestamp: Optional[int]) -> str:
    if timestamp is None:
        return "-"
    moment = datetime.fromtimestamp(timestamp, tz=timezone.utc)
    return moment.strftime("%Y-%m-%d %H:%M:%S UTC")


def format_amount(entry: HistoryEntry) -> str:
    unit = entry.display_unit or "?"
    suffix = "" if entry.unit_resolved else " (unresolved)"
    return f"{entry.primary_amount} {unit}{suffix}"


def short_address(address: Optional[str]) -> str:
    if not address:
        return "-"
    if len(address) <= 14:
        return address
    return f"{address[:6]}...{address[-4:]}"


def entry_details(entry: HistoryEntry) -> str:
    """One-line summary of the family-specific fields."""
    parts: List[str] = []
    if isinstance(entry, GameEntry):
        if entry.game_id is not None:
            parts.append(f"game #{entry.game_id}")
        if entry.dice_values:
            dice = "-".join(str(v) for v in entry.dice_values)
            parts.append(f"dice {dice} (sum {entry.dice_sum})")
        if entry.is_baozi:
            parts.append("baozi")
        if entry.start_position is not None and entry.end_position is not None:
            parts.append(f"cell {entry.start_position} -> {entry.end_position}")
        if entry.payout:
            parts.append(f"payout {entry.payout}")
        if entry.deadline:
            parts.append(f"decide by {format_timestamp(entry.deadline)}")
        if entry.pool_source:
            parts.append(f"from {entry.pool_source}")
        if entry.rounds:
            parts.append(f"{entry.rounds} rounds")
    elif isinstance(entry, TransactionEntry):
        if entry.fee:
            parts.append(f"fee {entry.fee}")
        if entry.rounds:
            parts.append(f"{entry.rounds} rounds")
        if entry.game_id is not None:
            parts.append(f"game #{entry.game_id}")
        if entry.rounds_returned:
            parts.append(f"{entry.rounds_returned} rounds returned")
        if entry.pool_contribution:
            parts.append(f"pool {entry.pool_contribution}")
        if entry.auto_claim:
            parts.append("auto-claimed")
    elif isinstance(entry, NFTEntry):
        if entry.token_id is not None:
            parts.append(f"token #{entry.token_id}")
        if entry.listing_type:
            parts.append(entry.listing_type)
        if entry.seller:
            parts.append(f"seller {short_address(entry.seller)}")
        if entry.buyer:
            parts.append(f"buyer {short_address(entry.buyer)}")
        if entry.offerer:
            parts.append(f"offerer {short_address(entry.offerer)}")
    elif isinstance(entry, LendingEntry):
        if entry.health_factor:
            parts.append(f"health {entry.health_factor}")
        if entry.remaining_debt:
            parts.append(f"remaining debt {entry.remaining_debt}")
        if entry.debt_amount:
            parts.append(f"debt {entry.debt_amount}")
        if entry.liquidator:
            parts.append(f"by {short_address(entry.liquidator)}")
    elif isinstance(entry, PlayerActivityEntry):
        parts.append(entry.player or "-")
    return ", ".join(parts)


def format_entry_plain(entry: HistoryEntry, verbose: bool = False) -> str:
    position = entry.position
    line = (
        f"[{position.block_number}:{position.log_index}] "
        f"{format_timestamp(entry.timestamp)}  {entry.action.value:<20} "
        f"{format_amount(entry)}"
    )
    details = entry_details(entry)
    if details:
        line += f"  ({details})"
    if verbose:
        line += f"\n    tx {position.transaction_hash}"
    return line


def format_state_plain(
    state: FeedState, max_entries: int = 200, verbose: bool = False
) -> str:
    lines: List[str] = []
    if state.is_loading:
        lines.append("Loading...")
    if state.error:
        lines.append(f"Error: {state.error}")
    if not state.entries:
        lines.append("No activity found.")
    for entry in state.entries[:max_entries]:
        lines.append(format_entry_plain(entry, verbose))
    if len(state.entries) > max_entries:
        lines.append(f"... and {len(state.entries) - max_entries} more entries")
    return "\n".join(lines)


def format_rankings_plain(rankings: Sequence[PlayerRanking]) -> str:
    if not rankings:
        return "No ranked players."
    lines = []
    for rank, ranking in enumerate(rankings, 1):
        lines.append(
            f"{rank:>3}. {ranking.address}  {ranking.lifetime_winnings} USDT  "
            f"{ranking.total_rounds_played} rounds  {ranking.win_rate:.1f}% wins"
        )
    return "\n".join(lines)


def state_to_dict(state: FeedState) -> Dict[str, Any]:
    return {
        "is_loading": state.is_loading,
        "error": state.error,
        "entries": [entry.to_dict() for entry in state.entries],
    }


class CLIOutput:
    """Unified output handler for CLI."""

    def __init__(
        self,
        format: OutputFormat = OutputFormat.TEXT,
        verbose: bool = False,
        stream: Any = None,
    ) -> None:
        self.format = format
        self.verbose = verbose
        self.stream = stream or sys.stdout
        self._rich_console: Optional[Console] = None
        if format == OutputFormat.RICH:
            self._rich_console = Console(file=self.stream)

    def feed(self, name: str, state: FeedState) -> None:
        """Output a feed snapshot."""
        if self.format == OutputFormat.JSON:
            payload = {"feed": name, **state_to_dict(state)}
            print(json.dumps(payload, indent=2), file=self.stream)
        elif self.format == OutputFormat.RICH and self._rich_console:
            self._rich_feed(name, state)
        else:
            print(format_state_plain(state, verbose=self.verbose), file=self.stream)

    def rankings(self, rankings: Sequence[PlayerRanking]) -> None:
        """Output a ranking list."""
        if self.format == OutputFormat.JSON:
            payload = {"rankings": [r.to_dict() for r in rankings]}
            print(json.dumps(payload, indent=2), file=self.stream)
        elif self.format == OutputFormat.RICH and self._rich_console:
            table = Table(title="Player Rankings")
            table.add_column("#", justify="right")
            table.add_column("Player", style="cyan")
            table.add_column("Lifetime Winnings", justify="right", style="green")
            table.add_column("Rounds", justify="right")
            table.add_column("Win Rate", justify="right", style="magenta")
            for rank, ranking in enumerate(rankings, 1):
                table.add_row(
                    str(rank),
                    ranking.address,
                    f"{ranking.lifetime_winnings} USDT",
                    str(ranking.total_rounds_played),
                    f"{ranking.win_rate:.1f}%",
                )
            self._rich_console.print(table)
        else:
            print(format_rankings_plain(rankings), file=self.stream)

    def _rich_feed(self, name: str, state: FeedState) -> None:
        assert self._rich_console is not None
        if state.error:
            self._rich_console.print(f"[red]{state.error}[/red]")
        table = Table(title=f"{name} activity ({len(state.entries)} entries)")
        table.add_column("Block", justify="right", style="dim")
        table.add_column("Time")
        table.add_column("Action", style="cyan")
        table.add_column("Amount", justify="right", style="green")
        table.add_column("Details")
        for entry in state.entries:
            table.add_row(
                f"{entry.position.block_number}:{entry.position.log_index}",
                format_timestamp(entry.timestamp),
                entry.action.value,
                format_amount(entry),
                entry_details(entry),
            )
        self._rich_console.print(table)

    def status(self, message: str) -> None:
        """Output a status message."""
        if self.format == OutputFormat.JSON:
            return  # Suppress status in JSON mode

        if self.format == OutputFormat.RICH and self._rich_console:
            self._rich_console.print(f"[dim]{message}[/dim]")
        else:
            print(message, file=sys.stderr)

    def warning(self, message: str) -> None:
        if self.format == OutputFormat.JSON:
            print(json.dumps({"warning": message}), file=sys.stderr)
            return
        print(f"Warning: {message}", file=sys.stderr)

    def error(self, message: str) -> None:
        if self.format == OutputFormat.JSON:
            print(json.dumps({"error": message}), file=sys.stderr)
            return
        print(f"Error: {message}", file=sys.stderr)


__all__ = [
    "CLIOutput",
    "OutputFormat",
    "format_entry_plain",
    "format_rankings_plain",
    "format_state_plain",
    "state_to_dict",
]

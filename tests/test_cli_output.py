"""Tests for CLI output formatting."""

import io
import json

from chainfeed.cli_output import (
    CLIOutput,
    OutputFormat,
    format_entry_plain,
    format_rankings_plain,
    format_state_plain,
)
from chainfeed.models import (
    ActionKind,
    FeedState,
    GameEntry,
    LedgerPosition,
    NFTEntry,
    TransactionEntry,
)
from chainfeed.rankings import PlayerRanking
from tests.fakes import ALICE, BOB


def deposit(block: int = 10) -> TransactionEntry:
    return TransactionEntry(
        position=LedgerPosition(block, f"0x{block:x}", 1),
        action=ActionKind.DEPOSIT,
        primary_amount="50",
        display_unit="USDT",
        timestamp=1_700_000_000,
        fee="0.5",
    )


def ranking(address: str, winnings: str) -> PlayerRanking:
    return PlayerRanking(
        address=address,
        lifetime_winnings=winnings,
        total_rounds_played=8,
        total_wins=2,
        total_losses=6,
        win_rate=25.0,
    )


class TestPlainFormatting:
    """Tests for the plain-text helpers."""

    def test_entry_line(self):
        """Block position, time, action, amount and details on one line."""
        line = format_entry_plain(deposit())

        assert line.startswith("[10:1] 2023-11-14 22:13:20 UTC")
        assert "Deposit" in line
        assert "50 USDT" in line
        assert "(fee 0.5)" in line

    def test_missing_timestamp_and_unresolved_unit(self):
        """Entries without time or known unit are still rendered."""
        entry = NFTEntry(
            position=LedgerPosition(3, "0x3", 0),
            action=ActionKind.NFT_PURCHASED,
            primary_amount="2",
            unit_resolved=False,
            token_id=9,
            seller=BOB,
        )

        line = format_entry_plain(entry)

        assert " - " in line
        assert "2 ? (unresolved)" in line
        assert "token #9" in line
        assert "seller 0xb2b2...b2b2" in line

    def test_game_details(self):
        """Dice rolls and positions are summarised."""
        entry = GameEntry(
            position=LedgerPosition(4, "0x4", 0),
            action=ActionKind.PLAY_ROUND,
            primary_amount="0",
            display_unit="USDT",
            game_id=7,
            dice_values=(1, 1, 1, 1, 1),
            dice_sum=5,
            is_baozi=True,
            start_position=0,
            end_position=5,
        )

        line = format_entry_plain(entry)

        assert "game #7" in line
        assert "dice 1-1-1-1-1 (sum 5)" in line
        assert "baozi" in line
        assert "cell 0 -> 5" in line

    def test_state_messages(self):
        """Loading, error and empty states are visible."""
        text = format_state_plain(FeedState(is_loading=True, error="rpc down"))

        assert "Loading..." in text
        assert "Error: rpc down" in text
        assert "No activity found." in text

    def test_state_truncates_long_lists(self):
        """Only the newest entries are printed."""
        state = FeedState(entries=tuple(deposit(b) for b in range(5, 0, -1)))

        text = format_state_plain(state, max_entries=2)

        assert text.count("Deposit") == 2
        assert "... and 3 more entries" in text

    def test_rankings(self):
        """Rankings are numbered in order."""
        text = format_rankings_plain([ranking(BOB, "12.5"), ranking(ALICE, "3")])

        lines = text.splitlines()
        assert lines[0].strip().startswith("1.")
        assert BOB in lines[0]
        assert "12.5 USDT" in lines[0]
        assert "25.0% wins" in lines[1]
        assert format_rankings_plain([]) == "No ranked players."


class TestCLIOutput:
    """Tests for CLIOutput class."""

    def test_text_feed(self):
        """Test text output of a feed snapshot."""
        stream = io.StringIO()
        output = CLIOutput(format=OutputFormat.TEXT, stream=stream)

        output.feed("transactions", FeedState(entries=(deposit(),)))

        assert "50 USDT" in stream.getvalue()

    def test_verbose_text_feed_shows_tx_hash(self):
        """Verbose mode adds the transaction hash under each entry."""
        stream = io.StringIO()
        output = CLIOutput(format=OutputFormat.TEXT, verbose=True, stream=stream)

        output.feed("transactions", FeedState(entries=(deposit(),)))

        assert "tx 0xa" in stream.getvalue()

    def test_json_feed(self):
        """Test JSON output format."""
        stream = io.StringIO()
        output = CLIOutput(format=OutputFormat.JSON, stream=stream)

        output.feed("transactions", FeedState(entries=(deposit(),), error="partial"))

        data = json.loads(stream.getvalue())
        assert data["feed"] == "transactions"
        assert data["error"] == "partial"
        assert data["is_loading"] is False
        (entry,) = data["entries"]
        assert entry["action"] == "Deposit"
        assert entry["family"] == "TransactionEntry"
        assert entry["position"]["block_number"] == 10
        assert "rounds" not in entry

    def test_json_rankings(self):
        """Test JSON output of rankings."""
        stream = io.StringIO()
        output = CLIOutput(format=OutputFormat.JSON, stream=stream)

        output.rankings([ranking(ALICE, "1")])

        data = json.loads(stream.getvalue())
        assert data["rankings"][0]["address"] == ALICE
        assert data["rankings"][0]["win_rate"] == 25.0

    def test_rich_feed(self):
        """Test rich output renders a table."""
        stream = io.StringIO()
        output = CLIOutput(format=OutputFormat.RICH, stream=stream)

        output.feed("transactions", FeedState(entries=(deposit(),)))

        content = stream.getvalue()
        assert "transactions activity" in content
        assert "Deposit" in content

    def test_json_status_suppressed(self, capsys):
        """Test that status messages are suppressed in JSON mode."""
        output = CLIOutput(format=OutputFormat.JSON, stream=io.StringIO())

        output.status("Loading...")

        assert capsys.readouterr().err == ""

    def test_error_goes_to_stderr(self, capsys):
        """Test error output."""
        output = CLIOutput(format=OutputFormat.TEXT, stream=io.StringIO())

        output.error("boom")

        assert "Error: boom" in capsys.readouterr().err

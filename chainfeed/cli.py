"""CLI interface for chainfeed.

Print an account's on-chain activity feed or the player rankings.

Usage:
    python -m chainfeed.cli feed game 0xabc...
    python -m chainfeed.cli feed nft 0xabc... --follow --output rich
    python -m chainfeed.cli rankings --watch
"""

from __future__ import annotations

import argparse
import asyncio
import sys
from typing import List, Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler

from chainfeed.chain_client import Web3ChainClient
from chainfeed.cli_output import CLIOutput, OutputFormat
from chainfeed.config import Settings, load_settings
from chainfeed.contracts.addresses import AddressBook, load_address_book
from chainfeed.controller import FeedHandle, FeedPhase, FeedService
from chainfeed.feeds import FEED_BUILDERS, build_feed
from chainfeed.jobs.refresh import RankingRefreshService
from chainfeed.models import FeedState
from chainfeed.rankings import PlayerRanking, RankingAggregator
from chainfeed.tokens import TokenRegistry
from chainfeed.utils.logging import configure_logging, get_logger

logger = get_logger(__name__)


def build_parser() -> argparse.ArgumentParser:
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument(
        "-o",
        "--output",
        choices=[f.value for f in OutputFormat],
        default="text",
        help="Output format (default: text)",
    )
    common.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Show debug logging",
    )

    parser = argparse.ArgumentParser(
        prog="chainfeed",
        description="Reconstruct on-chain activity feeds from contract events",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python -m chainfeed.cli feed game 0xabc...
  python -m chainfeed.cli feed lending 0xabc... --follow
  python -m chainfeed.cli rankings --output json
        """,
    )

    commands = parser.add_subparsers(dest="command", required=True)

    feed = commands.add_parser(
        "feed", parents=[common], help="Show one feed for an address"
    )
    feed.add_argument("name", choices=sorted(FEED_BUILDERS), help="Feed to load")
    feed.add_argument("principal", help="Account address the feed is filtered for")
    feed.add_argument(
        "-f",
        "--follow",
        action="store_true",
        help="Keep printing the feed as new events arrive",
    )

    rankings = commands.add_parser(
        "rankings", parents=[common], help="Show player rankings"
    )
    rankings.add_argument(
        "-w",
        "--watch",
        action="store_true",
        help="Recompute rankings on the configured interval",
    )
    return parser


async def _wait_forever() -> None:
    await asyncio.Event().wait()


async def run_feed(
    service: FeedService,
    book: AddressBook,
    name: str,
    principal: str,
    follow: bool,
    output: CLIOutput,
) -> int:
    definition = build_feed(name, book)
    missing = definition.missing_contracts(book)
    if missing:
        output.error(f"Feed '{name}' needs contract addresses for: {', '.join(missing)}")
        return 1

    output.status(f"Loading {name} feed for {principal}...")
    handle = await service.start_feed(definition, principal)
    phase = await handle.wait_until_live()
    if phase is FeedPhase.IDLE:
        output.error("Feed did not start; check the principal address")
        return 1

    output.feed(name, handle.current_state())
    if not follow:
        return 0

    def on_change(state: FeedState) -> None:
        output.feed(name, state)

    handle.on_change(on_change)
    output.status("Following new events, press Ctrl+C to stop")
    await _wait_forever()
    return 0


async def run_rankings(
    service: FeedService,
    book: AddressBook,
    aggregator: RankingAggregator,
    settings: Settings,
    watch: bool,
    output: CLIOutput,
) -> int:
    definition = build_feed("rankings", book)
    missing = definition.missing_contracts(book)
    if missing:
        output.error(f"Rankings need contract addresses for: {', '.join(missing)}")
        return 1

    output.status("Collecting active players...")
    handle: FeedHandle = await service.start_feed(definition, None)
    await handle.wait_until_live()
    state = handle.current_state()
    if state.error:
        output.warning(state.error)

    scheduler = AsyncIOScheduler()
    refresh = RankingRefreshService(
        scheduler, handle, aggregator, settings.rankings_refresh_seconds
    )
    output.rankings(await refresh.refresh())
    if not watch:
        return 0

    def on_rankings(rankings: List[PlayerRanking]) -> None:
        output.rankings(rankings)

    refresh.subscribe(on_rankings)
    refresh.start()
    try:
        await _wait_forever()
    finally:
        await refresh.shutdown()
    return 0


async def main(argv: Optional[List[str]] = None) -> int:
    """CLI entrypoint."""
    args = build_parser().parse_args(argv)
    output = CLIOutput(format=OutputFormat(args.output), verbose=args.verbose)

    try:
        settings = load_settings()
    except Exception as exc:
        output.error(f"Failed to load settings: {exc}")
        return 1

    log_level = "DEBUG" if args.verbose else settings.log_level
    configure_logging(log_level, settings.log_format)

    try:
        book = load_address_book(settings.addresses_json)
    except (FileNotFoundError, ValueError) as exc:
        output.error(str(exc))
        return 1

    chain = Web3ChainClient(
        settings.rpc_url,
        poll_interval=settings.poll_interval_seconds,
        request_timeout=settings.log_query_timeout_seconds,
    )
    tokens = TokenRegistry.from_address_book(book)
    service = FeedService.from_settings(chain, book, tokens, settings)

    try:
        if args.command == "feed":
            return await run_feed(
                service, book, args.name, args.principal, args.follow, output
            )
        aggregator = RankingAggregator(
            chain,
            book.get("PlayerStorage") or "",
            tokens,
            max_players=settings.max_ranked_players,
            batch_size=settings.ranking_batch_size,
            read_timeout=settings.aux_read_timeout_seconds,
        )
        return await run_rankings(
            service, book, aggregator, settings, args.watch, output
        )
    finally:
        await service.stop_all()
        await chain.aclose()


def cli_main() -> None:
    """Synchronous wrapper for CLI entry."""
    try:
        code = asyncio.run(main())
    except KeyboardInterrupt:
        code = 0
    sys.exit(code)


if __name__ == "__main__":
    cli_main()

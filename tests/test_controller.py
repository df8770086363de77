import asyncio

import pytest

from chainfeed.controller import (
    BACKFILL_CRASH_MESSAGE,
    TOTAL_FAILURE_MESSAGE,
    FeedController,
    FeedPhase,
    FeedService,
)
from chainfeed.feeds import build_feed
from chainfeed.models import ZERO_ADDRESS
from tests.fakes import ALICE, BOB, CONTRACTS, make_book, make_log

DICE = CONTRACTS["DiceGame"]
LOGGER = CONTRACTS["GameActivityLogger"]


def deposit(block, log_index=0, player=ALICE, tx_hash=None):
    return make_log(
        "Deposited",
        {"player": player, "amount": 1_000_000, "fee": 0},
        block=block,
        log_index=log_index,
        address=DICE,
        tx_hash=tx_hash,
    )


def controller_for(name, principal, book, scanner, tail):
    return FeedController(build_feed(name, book), principal, book, scanner, tail)


@pytest.mark.asyncio
async def test_unset_principal_leaves_feed_idle(chain, book, scanner, tail) -> None:
    controller = controller_for("transactions", None, book, scanner, tail)

    await controller.start()

    assert await controller.wait_until_live(timeout=1) is FeedPhase.IDLE
    assert chain.query_calls == []
    assert chain.subscriptions == []
    assert controller.store.snapshot().is_loading is False


@pytest.mark.asyncio
async def test_missing_contract_leaves_feed_idle(chain, scanner, tail) -> None:
    book = make_book(DiceGame=ZERO_ADDRESS)
    controller = controller_for("transactions", ALICE, book, scanner, tail)

    await controller.start()

    assert await controller.wait_until_live(timeout=1) is FeedPhase.IDLE
    assert chain.query_calls == []


@pytest.mark.asyncio
async def test_backfill_then_live(chain, book, scanner, tail) -> None:
    chain.add_logs(deposit(10), deposit(20))
    controller = controller_for("transactions", ALICE, book, scanner, tail)

    await controller.start()
    phase = await controller.wait_until_live(timeout=2)

    state = controller.store.snapshot()
    assert phase is FeedPhase.LIVE
    assert state.is_loading is False
    assert state.error is None
    assert [e.position.block_number for e in state.entries] == [20, 10]
    # The tail resumes at the backfill head; the overlap is collapsed by dedup.
    assert {s.from_block for s in chain.subscriptions} == {1_000}


@pytest.mark.asyncio
async def test_live_batches_merge_without_duplicates(chain, book, scanner, tail) -> None:
    chain.add_logs(deposit(1_000, tx_hash="0xAB"))
    controller = controller_for("transactions", ALICE, book, scanner, tail)
    await controller.start()
    await controller.wait_until_live(timeout=2)

    await chain.subscription_for("Deposited").emit(
        [deposit(1_000, tx_hash="0xab"), deposit(1_001, log_index=3)]
    )

    entries = controller.store.snapshot().entries
    assert [e.sort_key for e in entries] == [(1_001, 3), (1_000, 0)]


@pytest.mark.asyncio
async def test_stop_during_backfill_discards_results(chain, book, scanner, tail) -> None:
    chain.add_logs(deposit(10))
    chain.query_gate = asyncio.Event()
    controller = controller_for("transactions", ALICE, book, scanner, tail)

    await controller.start()
    await asyncio.sleep(0.01)
    assert controller.phase is FeedPhase.BACKFILLING
    before = controller.store.snapshot()

    await controller.stop()
    chain.query_gate.set()
    await asyncio.sleep(0.01)

    assert controller.phase is FeedPhase.STOPPED
    assert controller.store.snapshot() is before
    assert chain.subscriptions == []


@pytest.mark.asyncio
async def test_batches_after_stop_are_ignored(chain, book, scanner, tail) -> None:
    controller = controller_for("transactions", ALICE, book, scanner, tail)
    await controller.start()
    await controller.wait_until_live(timeout=2)
    subscription = chain.subscription_for("Deposited")

    await controller.stop()
    await subscription.emit([deposit(1_005)])

    assert controller.store.snapshot().entries == ()
    assert all(s.closed for s in chain.subscriptions)


@pytest.mark.asyncio
async def test_total_failure_sets_error_and_still_goes_live(chain, book, scanner, tail) -> None:
    chain.fail_source(LOGGER, "ActivityLogged")
    controller = controller_for("game", ALICE, book, scanner, tail)

    await controller.start()
    phase = await controller.wait_until_live(timeout=2)

    state = controller.store.snapshot()
    assert phase is FeedPhase.LIVE
    assert state.entries == ()
    assert state.error == TOTAL_FAILURE_MESSAGE.format(feed="game")


@pytest.mark.asyncio
async def test_height_failure_reports_error_and_tails_from_latest(
    chain, book, scanner, tail
) -> None:
    chain.height_error = ConnectionError("rpc unreachable")
    controller = controller_for("game", ALICE, book, scanner, tail)

    await controller.start()
    phase = await controller.wait_until_live(timeout=2)

    state = controller.store.snapshot()
    assert phase is FeedPhase.LIVE
    assert state.is_loading is False
    assert "rpc unreachable" in state.error
    assert [s.from_block for s in chain.subscriptions] == [None]


@pytest.mark.asyncio
async def test_unexpected_scan_error_clears_loading_and_goes_live(
    chain, book, scanner, tail
) -> None:
    async def broken_scan(definition, principal):
        raise RuntimeError("decoder table corrupt")

    scanner.scan = broken_scan
    controller = controller_for("transactions", ALICE, book, scanner, tail)

    await controller.start()
    phase = await controller.wait_until_live(timeout=2)

    state = controller.store.snapshot()
    assert phase is FeedPhase.LIVE
    assert state.is_loading is False
    assert state.entries == ()
    assert state.error == BACKFILL_CRASH_MESSAGE.format(
        feed="transactions", error="decoder table corrupt"
    )
    assert {s.from_block for s in chain.subscriptions} == {None}


@pytest.mark.asyncio
async def test_partial_failure_is_not_an_error(chain, book, scanner, tail) -> None:
    chain.fail_source(DICE, "Withdrawn")
    chain.add_logs(deposit(10))
    controller = controller_for("transactions", ALICE, book, scanner, tail)

    await controller.start()
    await controller.wait_until_live(timeout=2)

    state = controller.store.snapshot()
    assert state.error is None
    assert len(state.entries) == 1


@pytest.mark.asyncio
async def test_service_restart_replaces_previous_controller(chain, book, scanner, tail) -> None:
    service = FeedService(book, scanner, tail)
    definition = build_feed("transactions", book)

    first = await service.start_feed(definition, ALICE)
    await first.wait_until_live(timeout=2)
    second = await service.start_feed(definition, ALICE.upper().replace("0X", "0x"))
    await second.wait_until_live(timeout=2)

    assert first.phase is FeedPhase.STOPPED
    assert second.phase is FeedPhase.LIVE
    assert service.active_count == 1
    assert sum(not s.closed for s in chain.subscriptions) == len(definition.sources)


@pytest.mark.asyncio
async def test_service_stop_all(chain, book, scanner, tail) -> None:
    service = FeedService(book, scanner, tail)
    alice = await service.start_feed(build_feed("transactions", book), ALICE)
    bob = await service.start_feed(build_feed("transactions", book), BOB)
    await asyncio.gather(alice.wait_until_live(timeout=2), bob.wait_until_live(timeout=2))
    assert service.active_count == 2

    await service.stop_all()

    assert service.active_count == 0
    assert alice.phase is bob.phase is FeedPhase.STOPPED
    assert all(s.closed for s in chain.subscriptions)


@pytest.mark.asyncio
async def test_handle_publishes_state_changes(chain, book, scanner, tail) -> None:
    chain.add_logs(deposit(10))
    service = FeedService(book, scanner, tail)
    seen = []

    handle = await service.start_feed(build_feed("transactions", book), ALICE)
    handle.on_change(lambda state: seen.append(len(state.entries)))
    await handle.wait_until_live(timeout=2)
    await chain.subscription_for("Deposited").emit([deposit(1_001)])

    assert handle.name == "transactions"
    assert seen[-1] == 2
    assert len(handle.current_state().entries) == 2
    await service.stop_all()


@pytest.mark.asyncio
async def test_stop_while_subscribing_closes_opened_subscriptions(
    chain, book, scanner, tail
) -> None:
    definition = build_feed("transactions", book)
    for source in definition.sources:
        if source.event_name != "Deposited":
            chain.subscribe_gates[source.event_name] = asyncio.Event()
    controller = FeedController(definition, ALICE, book, scanner, tail)

    await controller.start()
    for _ in range(100):
        if chain.subscriptions:
            break
        await asyncio.sleep(0.01)
    await controller.stop()

    assert controller.phase is FeedPhase.STOPPED
    assert len(chain.subscriptions) == 1
    assert all(s.closed for s in chain.subscriptions)

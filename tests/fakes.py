"""In-memory chain client and fixtures data used across the test suite."""

from __future__ import annotations

import asyncio
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Set, Tuple

from chainfeed.contracts.addresses import AddressBook
from chainfeed.models import LedgerPosition, RawLogRecord


def addr(n: int) -> str:
    return f"0x{n:040x}"


ALICE = "0x" + "a1" * 20
BOB = "0x" + "b2" * 20
CAROL = "0x" + "c3" * 20

USDT = addr(0xA1)
PLATFORM = addr(0xA2)
UNKNOWN_TOKEN = addr(0xDEAD)

CONTRACTS = {
    "GameActivityLogger": addr(0x101),
    "DiceGame": addr(0x102),
    "NFTMarketplace": addr(0x103),
    "AuctionHouse": addr(0x104),
    "OfferSystem": addr(0x105),
    "LendingPool": addr(0x106),
    "PlayerStorage": addr(0x107),
    "MockUSDT": USDT,
    "MockPlatformToken": PLATFORM,
}

BLOCK_TIME_BASE = 1_700_000_000


def make_book(**overrides: str) -> AddressBook:
    contracts = dict(CONTRACTS)
    contracts.update(overrides)
    return AddressBook(chain_id=31337, network="test", contracts=contracts)


def make_log(
    event_name: str,
    args: Mapping[str, Any],
    block: int = 100,
    log_index: int = 0,
    tx_hash: Optional[str] = None,
    address: str = addr(0x101),
) -> RawLogRecord:
    return RawLogRecord(
        address=address,
        event_name=event_name,
        args=dict(args),
        position=LedgerPosition(
            block_number=block,
            transaction_hash=tx_hash or f"0x{block:032x}{log_index:032x}",
            log_index=log_index,
        ),
    )


class FakeSubscription:
    def __init__(
        self,
        address: str,
        event_name: str,
        argument_filters: Optional[Dict[str, Any]],
        on_logs: Callable[[List[RawLogRecord]], Any],
        from_block: Optional[int],
        fail_close: bool = False,
    ) -> None:
        self.address = address
        self.event_name = event_name
        self.argument_filters = argument_filters
        self.on_logs = on_logs
        self.from_block = from_block
        self.fail_close = fail_close
        self.closed = False

    async def emit(self, records: List[RawLogRecord]) -> None:
        await self.on_logs(records)

    async def close(self) -> None:
        self.closed = True
        if self.fail_close:
            raise ConnectionError("close failed")


class FakeChainClient:
    """Serve logs, block times and contract reads from memory."""

    def __init__(self, height: int = 1_000) -> None:
        self.height = height
        self.height_error: Optional[Exception] = None
        self.logs: List[RawLogRecord] = []
        self.failing_sources: Set[Tuple[str, str]] = set()
        self.query_calls: List[Dict[str, Any]] = []
        self.query_gate: Optional[asyncio.Event] = None
        self.block_error = False
        self.block_calls: List[Any] = []
        self.reads: Dict[Tuple[str, Tuple[Any, ...]], Any] = {}
        self.read_calls: List[Tuple[str, str, Tuple[Any, ...]]] = []
        self.failing_subscriptions: Set[Tuple[str, str]] = set()
        self.failing_closes: Set[Tuple[str, str]] = set()
        self.subscriptions: List[FakeSubscription] = []
        # Events whose subscribe call blocks until the gate is set
        self.subscribe_gates: Dict[str, asyncio.Event] = {}

    def add_logs(self, *records: RawLogRecord) -> None:
        self.logs.extend(records)

    def fail_source(self, address: str, event_name: str) -> None:
        self.failing_sources.add((address.lower(), event_name))

    def subscription_for(self, event_name: str) -> FakeSubscription:
        for subscription in self.subscriptions:
            if subscription.event_name == event_name:
                return subscription
        raise KeyError(event_name)

    @staticmethod
    def _matches(record: RawLogRecord, filters: Optional[Dict[str, Any]]) -> bool:
        for key, expected in (filters or {}).items():
            actual = record.args.get(key)
            if isinstance(expected, str) and isinstance(actual, str):
                if expected.lower() != actual.lower():
                    return False
            elif actual != expected:
                return False
        return True

    async def query_logs(
        self,
        address: str,
        event_abi: Mapping[str, Any],
        from_block: int,
        to_block: int,
        argument_filters: Optional[Dict[str, Any]] = None,
    ) -> List[RawLogRecord]:
        event_name = event_abi["name"]
        self.query_calls.append(
            {
                "address": address,
                "event": event_name,
                "from_block": from_block,
                "to_block": to_block,
                "filters": argument_filters,
            }
        )
        if self.query_gate is not None:
            await self.query_gate.wait()
        if (address.lower(), event_name) in self.failing_sources:
            raise ConnectionError(f"query for {event_name} failed")
        return [
            record
            for record in self.logs
            if record.address.lower() == address.lower()
            and record.event_name == event_name
            and from_block <= record.position.block_number <= to_block
            and self._matches(record, argument_filters)
        ]

    async def subscribe_logs(
        self,
        address: str,
        event_abi: Mapping[str, Any],
        argument_filters: Optional[Dict[str, Any]],
        on_logs: Callable[[List[RawLogRecord]], Any],
        from_block: Optional[int] = None,
    ) -> FakeSubscription:
        key = (address.lower(), event_abi["name"])
        gate = self.subscribe_gates.get(event_abi["name"])
        if gate is not None:
            await gate.wait()
        if key in self.failing_subscriptions:
            raise ConnectionError("subscribe failed")
        subscription = FakeSubscription(
            address,
            event_abi["name"],
            argument_filters,
            on_logs,
            from_block,
            fail_close=key in self.failing_closes,
        )
        self.subscriptions.append(subscription)
        return subscription

    async def get_block_timestamp(self, block: Any) -> int:
        self.block_calls.append(block)
        if self.block_error:
            raise TimeoutError("block lookup failed")
        return BLOCK_TIME_BASE + int(block)

    async def read_contract(
        self,
        address: str,
        abi: Sequence[Mapping[str, Any]],
        function_name: str,
        args: Sequence[Any] = (),
    ) -> Any:
        call = (function_name, tuple(args))
        self.read_calls.append((address, function_name, tuple(args)))
        result = self.reads.get(call)
        if isinstance(result, Exception):
            raise result
        if result is None:
            raise LookupError(f"no result for {function_name}{tuple(args)}")
        return result

    async def current_block_height(self) -> int:
        if self.height_error is not None:
            raise self.height_error
        return self.height

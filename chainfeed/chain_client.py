"""Chain access: the narrow read interface feeds depend on, plus a web3 adapter."""

from __future__ import annotations

import asyncio
from typing import (
    Any,
    Awaitable,
    Callable,
    Dict,
    List,
    Mapping,
    Optional,
    Protocol,
    Sequence,
    Union,
)

from web3 import AsyncHTTPProvider, AsyncWeb3, Web3

from chainfeed.models import LedgerPosition, RawLogRecord
from chainfeed.utils.logging import get_logger

logger = get_logger(__name__)

LogsCallback = Callable[[List[RawLogRecord]], Awaitable[None]]
BlockId = Union[str, int]


class Subscription(Protocol):
    async def close(self) -> None: ...


class ChainClient(Protocol):
    """Operations the feed core consumes from a node."""

    async def query_logs(
        self,
        address: str,
        event_abi: Mapping[str, Any],
        from_block: int,
        to_block: int,
        argument_filters: Optional[Dict[str, Any]] = None,
    ) -> List[RawLogRecord]: ...

    async def subscribe_logs(
        self,
        address: str,
        event_abi: Mapping[str, Any],
        argument_filters: Optional[Dict[str, Any]],
        on_logs: LogsCallback,
        from_block: Optional[int] = None,
    ) -> Subscription: ...

    async def get_block_timestamp(self, block: BlockId) -> int: ...

    async def read_contract(
        self,
        address: str,
        abi: Sequence[Mapping[str, Any]],
        function_name: str,
        args: Sequence[Any] = (),
    ) -> Any: ...

    async def current_block_height(self) -> int: ...


def _to_hex(value: Any) -> str:
    if isinstance(value, str):
        return value if value.startswith("0x") else f"0x{value}"
    return Web3.to_hex(value)


def _checksum_filters(filters: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    if not filters:
        return None
    normalized: Dict[str, Any] = {}
    for key, value in filters.items():
        if isinstance(value, str) and Web3.is_address(value):
            normalized[key] = Web3.to_checksum_address(value)
        else:
            normalized[key] = value
    return normalized


def _checksum_args(args: Sequence[Any]) -> List[Any]:
    return [
        Web3.to_checksum_address(value)
        if isinstance(value, str) and Web3.is_address(value)
        else value
        for value in args
    ]


def event_data_to_record(log: Mapping[str, Any]) -> RawLogRecord:
    """Convert web3 ``EventData`` into the feed's raw log record."""
    block_hash = log.get("blockHash")
    return RawLogRecord(
        address=str(log.get("address") or ""),
        event_name=str(log.get("event") or ""),
        args=dict(log.get("args") or {}),
        position=LedgerPosition(
            block_number=int(log.get("blockNumber") or 0),
            transaction_hash=_to_hex(log.get("transactionHash") or b""),
            log_index=int(log.get("logIndex") or 0),
        ),
        block_hash=_to_hex(block_hash) if block_hash else None,
    )


class PollingSubscription:
    """Deliver new logs for one event by polling ``[next_block, head]``."""

    def __init__(
        self,
        client: "Web3ChainClient",
        address: str,
        event_abi: Mapping[str, Any],
        argument_filters: Optional[Dict[str, Any]],
        on_logs: LogsCallback,
        start_block: int,
        interval: float,
    ) -> None:
        self.client = client
        self.address = address
        self.event_abi = event_abi
        self.argument_filters = argument_filters
        self.on_logs = on_logs
        self.next_block = start_block
        self.interval = interval
        self._task: Optional[asyncio.Task[None]] = None

    def start(self) -> None:
        if self._task is None:
            self._task = asyncio.create_task(self._run())

    async def _run(self) -> None:
        event_name = self.event_abi.get("name")
        while True:
            await asyncio.sleep(self.interval)
            try:
                head = await self.client.current_block_height()
                if head < self.next_block:
                    continue
                logs = await self.client.query_logs(
                    self.address,
                    self.event_abi,
                    self.next_block,
                    head,
                    self.argument_filters,
                )
                self.next_block = head + 1
                if logs:
                    await self.on_logs(logs)
            except asyncio.CancelledError:
                raise
            except Exception as exc:
                logger.warning(
                    "subscription_poll_failed",
                    address=self.address,
                    event_name=event_name,
                    next_block=self.next_block,
                    error=str(exc),
                    error_type=type(exc).__name__,
                )

    async def close(self) -> None:
        if not self._task:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None


class Web3ChainClient:
    """``ChainClient`` backed by ``AsyncWeb3`` over HTTP."""

    def __init__(
        self,
        rpc_url: str,
        poll_interval: float = 4.0,
        request_timeout: float = 30.0,
    ) -> None:
        self.rpc_url = rpc_url
        self.poll_interval = poll_interval
        self.w3 = AsyncWeb3(
            AsyncHTTPProvider(rpc_url, request_kwargs={"timeout": request_timeout})
        )

    def _contract(self, address: str, abi: Sequence[Mapping[str, Any]]) -> Any:
        return self.w3.eth.contract(
            address=Web3.to_checksum_address(address),
            abi=list(abi),
        )

    async def query_logs(
        self,
        address: str,
        event_abi: Mapping[str, Any],
        from_block: int,
        to_block: int,
        argument_filters: Optional[Dict[str, Any]] = None,
    ) -> List[RawLogRecord]:
        contract = self._contract(address, [event_abi])
        event = getattr(contract.events, str(event_abi["name"]))
        logs = await event.get_logs(
            argument_filters=_checksum_filters(argument_filters),
            from_block=from_block,
            to_block=to_block,
        )
        return [event_data_to_record(log) for log in logs]

    async def subscribe_logs(
        self,
        address: str,
        event_abi: Mapping[str, Any],
        argument_filters: Optional[Dict[str, Any]],
        on_logs: LogsCallback,
        from_block: Optional[int] = None,
    ) -> PollingSubscription:
        if from_block is None:
            from_block = await self.current_block_height() + 1
        subscription = PollingSubscription(
            client=self,
            address=address,
            event_abi=event_abi,
            argument_filters=argument_filters,
            on_logs=on_logs,
            start_block=from_block,
            interval=self.poll_interval,
        )
        subscription.start()
        logger.debug(
            "subscription_opened",
            address=address,
            event_name=event_abi.get("name"),
            from_block=from_block,
        )
        return subscription

    async def get_block_timestamp(self, block: BlockId) -> int:
        data = await self.w3.eth.get_block(block)
        return int(data["timestamp"])

    async def read_contract(
        self,
        address: str,
        abi: Sequence[Mapping[str, Any]],
        function_name: str,
        args: Sequence[Any] = (),
    ) -> Any:
        contract = self._contract(address, abi)
        function = getattr(contract.functions, function_name)
        return await function(*_checksum_args(args)).call()

    async def current_block_height(self) -> int:
        return int(await self.w3.eth.block_number)

    async def aclose(self) -> None:
        provider = self.w3.provider
        disconnect = getattr(provider, "disconnect", None)
        if disconnect is not None:
            await disconnect()


__all__ = [
    "ChainClient",
    "LogsCallback",
    "PollingSubscription",
    "Subscription",
    "Web3ChainClient",
    "event_data_to_record",
]

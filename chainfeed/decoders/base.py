"""Decoder framework shared by backfill and live decoding."""

from __future__ import annotations

import asyncio
import time
from typing import (
    Any,
    Awaitable,
    Callable,
    Dict,
    Iterable,
    List,
    Mapping,
    Optional,
    Sequence,
)

from chainfeed.chain_client import ChainClient
from chainfeed.config import Settings, TimestampFallback
from chainfeed.contracts.addresses import AddressBook
from chainfeed.models import HistoryEntry, RawLogRecord, same_address
from chainfeed.tokens import TokenRegistry
from chainfeed.utils.logging import get_logger

logger = get_logger(__name__)

MAX_CACHED_BLOCKS = 1024


class DependentReadError(Exception):
    """A dependent contract read needed to finish decoding failed."""


DecoderFn = Callable[[RawLogRecord, "DecodeContext"], Awaitable[Optional[HistoryEntry]]]


class DecoderRegistry:
    """Map event names to the coroutine that decodes them."""

    def __init__(self, name: str) -> None:
        self.name = name
        self._decoders: Dict[str, DecoderFn] = {}

    def register(self, event_name: str) -> Callable[[DecoderFn], DecoderFn]:
        def decorator(func: DecoderFn) -> DecoderFn:
            if event_name in self._decoders:
                raise ValueError(
                    f"Decoder for {event_name!r} already registered in {self.name}"
                )
            self._decoders[event_name] = func
            return func

        return decorator

    def get(self, event_name: str) -> Optional[DecoderFn]:
        return self._decoders.get(event_name)

    def __contains__(self, event_name: object) -> bool:
        return event_name in self._decoders

    async def decode(
        self, record: RawLogRecord, ctx: "DecodeContext"
    ) -> Optional[HistoryEntry]:
        decoder = self._decoders.get(record.event_name)
        if decoder is None:
            logger.debug(
                "decoder_missing", registry=self.name, event_name=record.event_name
            )
            return None
        return await decoder(record, ctx)


class DecodeContext:
    """Collaborators a decoder may use: the principal, token metadata and the
    two lookups it is allowed to make (block timestamp and one dependent read).
    """

    def __init__(
        self,
        chain: ChainClient,
        tokens: TokenRegistry,
        addresses: AddressBook,
        principal: Optional[str] = None,
        aux_timeout: float = 8.0,
        block_timeout: float = 5.0,
        timestamp_fallback: TimestampFallback = TimestampFallback.ABSENT,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.chain = chain
        self.tokens = tokens
        self.addresses = addresses
        self.principal = principal
        self.aux_timeout = aux_timeout
        self.block_timeout = block_timeout
        self.timestamp_fallback = timestamp_fallback
        self.clock = clock
        self._block_times: Dict[Any, int] = {}

    @property
    def record_timeout(self) -> float:
        """Upper bound for decoding one record, lookups included."""
        return self.aux_timeout + self.block_timeout + 1.0

    def owns(self, address: Optional[str]) -> bool:
        return same_address(self.principal, address)

    def involves(self, *addresses: Optional[str]) -> bool:
        return any(self.owns(address) for address in addresses)

    async def block_timestamp(
        self, record: RawLogRecord, onchain_fallback: Optional[int] = None
    ) -> Optional[int]:
        """Return the record's block time.

        When the lookup fails, ``onchain_fallback`` (a time the contract itself
        emitted) is preferred; after that the configured policy decides
        between no timestamp and local wall-clock time.
        """
        block_id: Any = record.block_hash or record.position.block_number
        cached = self._block_times.get(block_id)
        if cached is not None:
            return cached
        try:
            value = await asyncio.wait_for(
                self.chain.get_block_timestamp(block_id),
                timeout=self.block_timeout,
            )
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            if onchain_fallback:
                return onchain_fallback
            if self.timestamp_fallback is TimestampFallback.WALL_CLOCK:
                logger.warning(
                    "block_timestamp_wall_clock_fallback",
                    block=str(block_id),
                    error=str(exc),
                )
                return int(self.clock())
            logger.debug(
                "block_timestamp_unavailable", block=str(block_id), error=str(exc)
            )
            return None
        timestamp = int(value)
        if len(self._block_times) >= MAX_CACHED_BLOCKS:
            self._block_times.clear()
        self._block_times[block_id] = timestamp
        return timestamp

    async def read_contract(
        self,
        address: str,
        abi: Sequence[Mapping[str, Any]],
        function_name: str,
        args: Sequence[Any] = (),
    ) -> Any:
        try:
            return await asyncio.wait_for(
                self.chain.read_contract(address, abi, function_name, args),
                timeout=self.aux_timeout,
            )
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            raise DependentReadError(
                f"{function_name}({', '.join(str(a) for a in args)}) on {address} failed: "
                f"{type(exc).__name__}: {exc}"
            ) from exc


class ContextFactory:
    """Build a ``DecodeContext`` per principal from shared collaborators."""

    def __init__(
        self,
        chain: ChainClient,
        tokens: TokenRegistry,
        addresses: AddressBook,
        aux_timeout: float = 8.0,
        block_timeout: float = 5.0,
        timestamp_fallback: TimestampFallback = TimestampFallback.ABSENT,
    ) -> None:
        self.chain = chain
        self.tokens = tokens
        self.addresses = addresses
        self.aux_timeout = aux_timeout
        self.block_timeout = block_timeout
        self.timestamp_fallback = timestamp_fallback

    @classmethod
    def from_settings(
        cls,
        chain: ChainClient,
        tokens: TokenRegistry,
        addresses: AddressBook,
        settings: Settings,
    ) -> "ContextFactory":
        return cls(
            chain=chain,
            tokens=tokens,
            addresses=addresses,
            aux_timeout=settings.aux_read_timeout_seconds,
            block_timeout=settings.block_lookup_timeout_seconds,
            timestamp_fallback=settings.timestamp_fallback,
        )

    def for_principal(self, principal: Optional[str]) -> DecodeContext:
        return DecodeContext(
            chain=self.chain,
            tokens=self.tokens,
            addresses=self.addresses,
            principal=principal,
            aux_timeout=self.aux_timeout,
            block_timeout=self.block_timeout,
            timestamp_fallback=self.timestamp_fallback,
        )


async def _decode_one(
    record: RawLogRecord, registry: DecoderRegistry, ctx: DecodeContext
) -> Optional[HistoryEntry]:
    try:
        return await asyncio.wait_for(
            registry.decode(record, ctx), timeout=ctx.record_timeout
        )
    except asyncio.CancelledError:
        raise
    except Exception as exc:
        logger.warning(
            "decode_failed",
            registry=registry.name,
            event_name=record.event_name,
            tx_hash=record.position.transaction_hash,
            log_index=record.position.log_index,
            error=str(exc),
            error_type=type(exc).__name__,
        )
        return None


async def decode_batch(
    records: Iterable[RawLogRecord],
    registry: DecoderRegistry,
    ctx: DecodeContext,
) -> List[HistoryEntry]:
    """Decode records concurrently, dropping any record that fails."""
    pending = list(records)
    if not pending:
        return []
    results = await asyncio.gather(
        *(_decode_one(record, registry, ctx) for record in pending)
    )
    return [entry for entry in results if entry is not None]


def as_int(value: Any, default: Optional[int] = None) -> Optional[int]:
    if value is None:
        return default
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        stripped = value.strip()
        try:
            return int(stripped, 16) if stripped.lower().startswith("0x") else int(stripped)
        except ValueError:
            return default
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def as_struct(value: Any, fields: Sequence[str]) -> Dict[str, Any]:
    """Normalise an ABI tuple (mapping or positional sequence) to a dict."""
    if value is None:
        return {}
    if isinstance(value, Mapping):
        return dict(value)
    if isinstance(value, (list, tuple)):
        return {name: item for name, item in zip(fields, value)}
    return {name: getattr(value, name) for name in fields if hasattr(value, name)}


__all__ = [
    "ContextFactory",
    "DecodeContext",
    "DecoderFn",
    "DecoderRegistry",
    "DependentReadError",
    "as_int",
    "as_struct",
    "decode_batch",
]

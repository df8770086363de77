"""Canonical data model shared by every feed."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any, Dict, Iterable, Mapping, Optional, Tuple

ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"


def is_unset_address(address: Optional[str]) -> bool:
    """Return True for a missing, empty or all-zero address."""
    if not address:
        return True
    return address.strip().lower() == ZERO_ADDRESS


def same_address(left: Optional[str], right: Optional[str]) -> bool:
    """Case-insensitive address equality; missing values never match."""
    if not left or not right:
        return False
    return left.strip().lower() == right.strip().lower()


class ActionKind(str, Enum):
    """Closed set of actions a history entry can describe."""

    DEPOSIT = "Deposit"
    WITHDRAW = "Withdraw"
    BUY_SESSION = "BuySession"
    PLAY_ROUND = "PlayRound"
    PENDING_REWARD = "PendingReward"
    REWARD_CLAIMED = "RewardClaimed"
    REWARD_FORFEITED = "RewardForfeited"
    LEOPARD_BONUS = "LeopardBonus"
    PENALTY_REFUND = "PenaltyRefund"
    CLAIM_REFUND = "ClaimRefund"
    POOL_CONTRIBUTION = "PoolContribution"
    NFT_LISTED = "NFTListed"
    NFT_PURCHASED = "NFTPurchased"
    LISTING_CANCELLED = "ListingCancelled"
    AUCTION_BID = "AuctionBid"
    BID_REFUNDED = "BidRefunded"
    AUCTION_SETTLED = "AuctionSettled"
    OFFER_CREATED = "OfferCreated"
    OFFER_ACCEPTED = "OfferAccepted"
    OFFER_CANCELLED = "OfferCancelled"
    OFFER_EXPIRED = "OfferExpired"
    COLLATERAL_DEPOSITED = "CollateralDeposited"
    COLLATERAL_WITHDRAWN = "CollateralWithdrawn"
    BORROWED = "Borrowed"
    REPAID = "Repaid"
    LIQUIDATED = "Liquidated"
    PLAYER_ACTIVE = "PlayerActive"
    UNKNOWN = "Unknown"


@dataclass(frozen=True)
class LedgerPosition:
    """Ordered identity of one on-chain event."""

    block_number: int
    transaction_hash: str
    log_index: int

    @property
    def dedup_key(self) -> Tuple[str, int]:
        return (self.transaction_hash.lower(), self.log_index)

    @property
    def sort_key(self) -> Tuple[int, int]:
        return (self.block_number, self.log_index)


@dataclass(frozen=True)
class SourceSpec:
    """One contract event a feed watches.

    ``principal_argument`` names the indexed event argument holding the user
    address. When it is ``None`` the event is fetched unfiltered and the
    decoder performs the ownership check itself.
    """

    address: str
    event_name: str
    abi: Mapping[str, Any] = field(compare=False, hash=False, repr=False)
    principal_argument: Optional[str] = None
    label: Optional[str] = None

    @property
    def name(self) -> str:
        return f"{self.label or self.address}:{self.event_name}"

    def argument_filters(self, principal: Optional[str]) -> Optional[Dict[str, str]]:
        if self.principal_argument and principal:
            return {self.principal_argument: principal}
        return None


@dataclass(frozen=True)
class RawLogRecord:
    """An undecoded observation as delivered by the chain client."""

    address: str
    event_name: str
    args: Mapping[str, Any]
    position: LedgerPosition
    block_hash: Optional[str] = None


@dataclass(frozen=True)
class HistoryEntry:
    """Fields common to every action kind."""

    position: LedgerPosition
    action: ActionKind
    primary_amount: str = "0"
    display_unit: Optional[str] = None
    unit_resolved: bool = True
    timestamp: Optional[int] = None

    @property
    def dedup_key(self) -> Tuple[str, int]:
        return self.position.dedup_key

    @property
    def sort_key(self) -> Tuple[int, int]:
        return self.position.sort_key

    def to_dict(self) -> Dict[str, Any]:
        payload = asdict(self)
        payload["action"] = self.action.value
        payload["family"] = type(self).__name__
        return {key: value for key, value in payload.items() if value is not None}


@dataclass(frozen=True)
class GameEntry(HistoryEntry):
    game_id: Optional[int] = None
    rounds: Optional[int] = None
    dice_values: Optional[Tuple[int, ...]] = None
    dice_sum: Optional[int] = None
    is_baozi: Optional[bool] = None
    is_clockwise: Optional[bool] = None
    start_position: Optional[int] = None
    end_position: Optional[int] = None
    payout: Optional[str] = None
    deadline: Optional[int] = None
    pool_source: Optional[str] = None


@dataclass(frozen=True)
class TransactionEntry(HistoryEntry):
    fee: Optional[str] = None
    rounds: Optional[int] = None
    cost: Optional[str] = None
    game_id: Optional[int] = None
    end_position: Optional[int] = None
    refund_amount: Optional[str] = None
    pool_contribution: Optional[str] = None
    rounds_returned: Optional[int] = None
    auto_claim: Optional[bool] = None


@dataclass(frozen=True)
class NFTEntry(HistoryEntry):
    token_id: Optional[int] = None
    listing_id: Optional[int] = None
    offer_id: Optional[int] = None
    price: Optional[str] = None
    payment_token: Optional[str] = None
    seller: Optional[str] = None
    buyer: Optional[str] = None
    offerer: Optional[str] = None
    listing_type: Optional[str] = None


@dataclass(frozen=True)
class LendingEntry(HistoryEntry):
    token: Optional[str] = None
    amount_wei: Optional[int] = None
    health_factor: Optional[str] = None
    remaining_debt: Optional[str] = None
    liquidator: Optional[str] = None
    debt_amount: Optional[str] = None
    collateral_amount: Optional[str] = None


@dataclass(frozen=True)
class PlayerActivityEntry(HistoryEntry):
    player: Optional[str] = None


@dataclass(frozen=True)
class FeedState:
    """Immutable snapshot of a feed, replaced wholesale on every update."""

    entries: Tuple[HistoryEntry, ...] = ()
    is_loading: bool = False
    error: Optional[str] = None

    @classmethod
    def empty(cls) -> "FeedState":
        return cls()


def merge_entries(*batches: Iterable[HistoryEntry]) -> Tuple[HistoryEntry, ...]:
    """Deduplicate by ledger identity (last seen wins) and sort newest first."""
    merged: Dict[Tuple[str, int], HistoryEntry] = {}
    for batch in batches:
        for entry in batch:
            merged[entry.dedup_key] = entry
    return tuple(sorted(merged.values(), key=lambda e: e.sort_key, reverse=True))


__all__ = [
    "ZERO_ADDRESS",
    "ActionKind",
    "FeedState",
    "GameEntry",
    "HistoryEntry",
    "LedgerPosition",
    "LendingEntry",
    "NFTEntry",
    "PlayerActivityEntry",
    "RawLogRecord",
    "SourceSpec",
    "TransactionEntry",
    "is_unset_address",
    "merge_entries",
    "same_address",
]

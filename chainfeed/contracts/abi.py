"""ABI fragments for the events and views the feeds consume.

Only the entries the decoders need are declared; full contract ABIs are not
required to build a log filter or decode a log.
"""

from __future__ import annotations

from typing import Any, Dict, List, Sequence, Tuple

AbiEntry = Dict[str, Any]


def _arg(name: str, type_: str, indexed: bool = False) -> AbiEntry:
    return {"indexed": indexed, "internalType": type_, "name": name, "type": type_}


def _event(name: str, inputs: Sequence[AbiEntry]) -> AbiEntry:
    return {"anonymous": False, "inputs": list(inputs), "name": name, "type": "event"}


def _component(name: str, type_: str) -> AbiEntry:
    return {"internalType": type_, "name": name, "type": type_}


def _tuple(
    name: str, struct: str, components: Sequence[Tuple[str, str]], **extra: Any
) -> AbiEntry:
    entry: AbiEntry = {
        "components": [_component(n, t) for n, t in components],
        "internalType": f"struct {struct}",
        "name": name,
        "type": "tuple",
    }
    entry.update(extra)
    return entry


ACTIVITY_PAYLOAD_FIELDS: Tuple[Tuple[str, str], ...] = (
    ("gameId", "uint256"),
    ("amount", "uint256"),
    ("rounds", "uint64"),
    ("diceValues", "uint8[5]"),
    ("diceSum", "uint8"),
    ("isBaozi", "bool"),
    ("isClockwise", "bool"),
    ("startPosition", "uint8"),
    ("endPosition", "uint8"),
    ("payout", "uint256"),
    ("timestamp", "uint64"),
)

ACTIVITY_LOGGER_ABI: List[AbiEntry] = [
    _event(
        "ActivityLogged",
        [
            _arg("player", "address", indexed=True),
            _arg("action", "uint8"),
            _tuple(
                "payload",
                "GameActivityLogger.ActivityPayload",
                ACTIVITY_PAYLOAD_FIELDS,
                indexed=False,
            ),
        ],
    ),
]

DICE_GAME_ABI: List[AbiEntry] = [
    _event(
        "Deposited",
        [
            _arg("player", "address", indexed=True),
            _arg("amount", "uint256"),
            _arg("fee", "uint256"),
        ],
    ),
    _event(
        "Withdrawn",
        [
            _arg("player", "address", indexed=True),
            _arg("amount", "uint256"),
            _arg("fee", "uint256"),
        ],
    ),
    _event(
        "RoundsPurchased",
        [
            _arg("player", "address", indexed=True),
            _arg("rounds", "uint256"),
            _arg("cost", "uint256"),
        ],
    ),
    _event(
        "PendingRewardClaimed",
        [
            _arg("player", "address", indexed=True),
            _arg("gameId", "uint256", indexed=True),
            _arg("payout", "uint256"),
            _arg("endPosition", "uint8"),
            _arg("autoClaim", "bool"),
        ],
    ),
    _event(
        "PendingRewardForfeited",
        [
            _arg("player", "address", indexed=True),
            _arg("gameId", "uint256", indexed=True),
            _arg("forfeitedAmount", "uint256"),
            _arg("endPosition", "uint8"),
        ],
    ),
    _event(
        "ClaimRefundApplied",
        [
            _arg("player", "address", indexed=True),
            _arg("gameId", "uint256", indexed=True),
            _arg("roundsReturned", "uint64"),
            _arg("refundAmount", "uint256"),
            _arg("poolContribution", "uint256"),
        ],
    ),
]

LISTING_FIELDS: Tuple[Tuple[str, str], ...] = (
    ("listingId", "uint256"),
    ("seller", "address"),
    ("tokenId", "uint256"),
    ("price", "uint256"),
    ("paymentToken", "address"),
    ("listingType", "uint8"),
    ("active", "bool"),
)

NFT_MARKETPLACE_ABI: List[AbiEntry] = [
    _event(
        "ListingCreated",
        [
            _arg("listingId", "uint256", indexed=True),
            _arg("seller", "address", indexed=True),
            _arg("tokenId", "uint256", indexed=True),
            _arg("price", "uint256"),
            _arg("paymentToken", "address"),
            _arg("listingType", "uint8"),
        ],
    ),
    _event(
        "NFTPurchased",
        [
            _arg("listingId", "uint256", indexed=True),
            _arg("buyer", "address", indexed=True),
            _arg("seller", "address", indexed=True),
            _arg("tokenId", "uint256"),
            _arg("price", "uint256"),
            _arg("paymentToken", "address"),
        ],
    ),
    _event(
        "ListingCancelled",
        [
            _arg("listingId", "uint256", indexed=True),
            _arg("seller", "address", indexed=True),
            _arg("tokenId", "uint256"),
        ],
    ),
    {
        "inputs": [_component("listingId", "uint256")],
        "name": "getListing",
        "outputs": [_tuple("", "NFTMarketplace.Listing", LISTING_FIELDS)],
        "stateMutability": "view",
        "type": "function",
    },
]

AUCTION_HOUSE_ABI: List[AbiEntry] = [
    _event(
        "BidPlaced",
        [
            _arg("listingId", "uint256", indexed=True),
            _arg("bidder", "address", indexed=True),
            _arg("amount", "uint256"),
        ],
    ),
    _event(
        "BidRefunded",
        [
            _arg("listingId", "uint256", indexed=True),
            _arg("bidder", "address", indexed=True),
            _arg("amount", "uint256"),
        ],
    ),
    _event(
        "AuctionSettled",
        [
            _arg("listingId", "uint256", indexed=True),
            _arg("winner", "address", indexed=True),
            _arg("finalPrice", "uint256"),
        ],
    ),
]

OFFER_SYSTEM_ABI: List[AbiEntry] = [
    _event(
        "OfferCreated",
        [
            _arg("offerId", "uint256", indexed=True),
            _arg("offerer", "address", indexed=True),
            _arg("tokenId", "uint256", indexed=True),
            _arg("amount", "uint256"),
            _arg("paymentToken", "address"),
            _arg("expiresAt", "uint64"),
        ],
    ),
    _event(
        "OfferAccepted",
        [
            _arg("offerId", "uint256", indexed=True),
            _arg("offerer", "address", indexed=True),
            _arg("nftOwner", "address", indexed=True),
            _arg("tokenId", "uint256"),
            _arg("amount", "uint256"),
            _arg("paymentToken", "address"),
        ],
    ),
    _event(
        "OfferCancelled",
        [
            _arg("offerId", "uint256", indexed=True),
            _arg("offerer", "address", indexed=True),
            _arg("tokenId", "uint256", indexed=True),
            _arg("refundAmount", "uint256"),
            _arg("paymentToken", "address"),
        ],
    ),
    _event(
        "OfferExpired",
        [
            _arg("offerId", "uint256", indexed=True),
            _arg("offerer", "address", indexed=True),
            _arg("tokenId", "uint256", indexed=True),
            _arg("refundAmount", "uint256"),
            _arg("paymentToken", "address"),
        ],
    ),
]

LENDING_POOL_ABI: List[AbiEntry] = [
    _event(
        "CollateralDeposited",
        [
            _arg("user", "address", indexed=True),
            _arg("token", "address", indexed=True),
            _arg("amount", "uint256"),
        ],
    ),
    _event(
        "CollateralWithdrawn",
        [
            _arg("user", "address", indexed=True),
            _arg("token", "address", indexed=True),
            _arg("amount", "uint256"),
        ],
    ),
    _event(
        "Borrowed",
        [
            _arg("user", "address", indexed=True),
            _arg("amount", "uint256"),
            _arg("healthFactor", "uint256"),
        ],
    ),
    _event(
        "Repaid",
        [
            _arg("user", "address", indexed=True),
            _arg("amount", "uint256"),
            _arg("remainingDebt", "uint256"),
        ],
    ),
    # The liquidated account is not indexed, so it cannot be filtered at query time.
    _event(
        "Liquidated",
        [
            _arg("liquidator", "address", indexed=True),
            _arg("user", "address"),
            _arg("collateralToken", "address", indexed=True),
            _arg("debtAmount", "uint256"),
            _arg("collateralAmount", "uint256"),
        ],
    ),
]

PLAYER_STATE_FIELDS: Tuple[Tuple[str, str], ...] = (
    ("depositedBalance", "uint128"),
    ("winningsBalance", "uint128"),
    ("totalDeposited", "uint128"),
    ("totalWithdrawn", "uint128"),
    ("lifetimeWinnings", "uint128"),
    ("pendingPayout", "uint128"),
    ("pendingGameId", "uint256"),
    ("roundsRemaining", "uint64"),
    ("totalRoundsPlayed", "uint64"),
    ("lastDepositTime", "uint64"),
    ("lastPlayTimestamp", "uint64"),
    ("totalWins", "uint64"),
    ("totalLosses", "uint64"),
    ("firstPlayTimestamp", "uint64"),
    ("decisionDeadline", "uint64"),
    ("currentPosition", "uint8"),
    ("pendingStartCell", "uint8"),
    ("pendingEndCell", "uint8"),
    ("hasActiveSession", "bool"),
    ("pendingRewardActive", "bool"),
    ("lastDirectionClockwise", "bool"),
    ("lastDiceValues", "uint8[5]"),
)

PLAYER_STORAGE_ABI: List[AbiEntry] = [
    {
        "inputs": [_component("player", "address")],
        "name": "getPlayer",
        "outputs": [
            _tuple("state", "PlayerStorage.PlayerState", PLAYER_STATE_FIELDS),
            _component("found", "bool"),
        ],
        "stateMutability": "view",
        "type": "function",
    },
]


def _find(abi: Sequence[AbiEntry], name: str, kind: str) -> AbiEntry:
    for entry in abi:
        if entry.get("type") == kind and entry.get("name") == name:
            return entry
    raise KeyError(f"No {kind} named {name!r} in ABI")


def event_abi(abi: Sequence[AbiEntry], name: str) -> AbiEntry:
    """Return the event entry called ``name``."""
    return _find(abi, name, "event")


def function_abi(abi: Sequence[AbiEntry], name: str) -> AbiEntry:
    """Return the function entry called ``name``."""
    return _find(abi, name, "function")


def field_names(fields: Sequence[Tuple[str, str]]) -> Tuple[str, ...]:
    return tuple(name for name, _ in fields)


__all__ = [
    "ACTIVITY_LOGGER_ABI",
    "ACTIVITY_PAYLOAD_FIELDS",
    "AUCTION_HOUSE_ABI",
    "DICE_GAME_ABI",
    "LENDING_POOL_ABI",
    "LISTING_FIELDS",
    "NFT_MARKETPLACE_ABI",
    "OFFER_SYSTEM_ABI",
    "PLAYER_STATE_FIELDS",
    "PLAYER_STORAGE_ABI",
    "event_abi",
    "field_names",
    "function_abi",
]

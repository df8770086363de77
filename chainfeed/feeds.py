"""Declarative feed definitions: which sources, which decoders, what is required."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Sequence, Tuple

from chainfeed.contracts.abi import (
    ACTIVITY_LOGGER_ABI,
    AUCTION_HOUSE_ABI,
    DICE_GAME_ABI,
    LENDING_POOL_ABI,
    NFT_MARKETPLACE_ABI,
    OFFER_SYSTEM_ABI,
    AbiEntry,
    event_abi,
)
from chainfeed.contracts.addresses import AddressBook
from chainfeed.decoders import game, lending, nft, rankings, transactions
from chainfeed.decoders.base import DecoderRegistry
from chainfeed.models import SourceSpec


@dataclass(frozen=True)
class FeedDefinition:
    """Everything needed to run one feed against an address book."""

    name: str
    sources: Tuple[SourceSpec, ...]
    decoders: DecoderRegistry
    required_contracts: Tuple[str, ...]
    requires_principal: bool = True

    def missing_contracts(self, book: AddressBook) -> List[str]:
        return book.missing(list(self.required_contracts))


FeedBuilder = Callable[[AddressBook], FeedDefinition]


def _sources(
    book: AddressBook,
    contract: str,
    abi: Sequence[AbiEntry],
    events: Sequence[str],
    principal_argument: Optional[str] = None,
) -> List[SourceSpec]:
    address = book.get(contract)
    if address is None:
        return []
    return [
        SourceSpec(
            address=address,
            event_name=name,
            abi=event_abi(abi, name),
            principal_argument=principal_argument,
            label=contract,
        )
        for name in events
    ]


def build_game_feed(book: AddressBook) -> FeedDefinition:
    return FeedDefinition(
        name="game",
        sources=tuple(
            _sources(
                book,
                "GameActivityLogger",
                ACTIVITY_LOGGER_ABI,
                ["ActivityLogged"],
                "player",
            )
        ),
        decoders=game.registry,
        required_contracts=("GameActivityLogger",),
    )


def build_transactions_feed(book: AddressBook) -> FeedDefinition:
    sources: List[SourceSpec] = []
    # The extension contract emits the same events and is optional.
    for contract in ("DiceGame", "DiceGameExt"):
        sources.extend(
            _sources(book, contract, DICE_GAME_ABI, transactions.EVENT_NAMES, "player")
        )
    return FeedDefinition(
        name="transactions",
        sources=tuple(sources),
        decoders=transactions.registry,
        required_contracts=("DiceGame",),
    )


def build_nft_feed(book: AddressBook) -> FeedDefinition:
    sources = (
        _sources(
            book,
            "NFTMarketplace",
            NFT_MARKETPLACE_ABI,
            ["ListingCreated", "NFTPurchased", "ListingCancelled"],
        )
        + _sources(
            book,
            "AuctionHouse",
            AUCTION_HOUSE_ABI,
            ["BidPlaced", "BidRefunded", "AuctionSettled"],
        )
        + _sources(
            book,
            "OfferSystem",
            OFFER_SYSTEM_ABI,
            ["OfferCreated", "OfferAccepted", "OfferCancelled", "OfferExpired"],
        )
    )
    return FeedDefinition(
        name="nft",
        sources=tuple(sources),
        decoders=nft.registry,
        required_contracts=("NFTMarketplace", "AuctionHouse", "OfferSystem"),
    )


def build_lending_feed(book: AddressBook) -> FeedDefinition:
    sources = _sources(
        book,
        "LendingPool",
        LENDING_POOL_ABI,
        ["CollateralDeposited", "CollateralWithdrawn", "Borrowed", "Repaid"],
        "user",
    ) + _sources(book, "LendingPool", LENDING_POOL_ABI, ["Liquidated"])
    return FeedDefinition(
        name="lending",
        sources=tuple(sources),
        decoders=lending.registry,
        required_contracts=("LendingPool",),
    )


def build_rankings_feed(book: AddressBook) -> FeedDefinition:
    return FeedDefinition(
        name="rankings",
        sources=tuple(
            _sources(book, "GameActivityLogger", ACTIVITY_LOGGER_ABI, ["ActivityLogged"])
        ),
        decoders=rankings.registry,
        required_contracts=("GameActivityLogger", "PlayerStorage"),
        requires_principal=False,
    )


FEED_BUILDERS: Dict[str, FeedBuilder] = {
    "game": build_game_feed,
    "transactions": build_transactions_feed,
    "nft": build_nft_feed,
    "lending": build_lending_feed,
    "rankings": build_rankings_feed,
}


def build_feed(name: str, book: AddressBook) -> FeedDefinition:
    """Return the definition for ``name``; raises ``KeyError`` when unknown."""
    try:
        builder = FEED_BUILDERS[name]
    except KeyError:
        raise KeyError(
            f"Unknown feed {name!r}; expected one of {', '.join(sorted(FEED_BUILDERS))}"
        ) from None
    return builder(book)


__all__ = ["FEED_BUILDERS", "FeedDefinition", "build_feed"]

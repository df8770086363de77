"""Decoders for marketplace, auction house and offer system events.

These sources are fetched unfiltered, so every decoder checks that the
principal took part as seller, buyer (bidder, winner) or offerer.
"""

from __future__ import annotations

from typing import Any, Dict, Optional

from chainfeed.contracts.abi import (
    LISTING_FIELDS,
    NFT_MARKETPLACE_ABI,
    field_names,
    function_abi,
)
from chainfeed.decoders.base import (
    DecodeContext,
    DecoderRegistry,
    DependentReadError,
    as_int,
    as_struct,
)
from chainfeed.models import ActionKind, NFTEntry, RawLogRecord

registry = DecoderRegistry("nft")

LISTING_FIELD_NAMES = field_names(LISTING_FIELDS)
GET_LISTING_ABI = [function_abi(NFT_MARKETPLACE_ABI, "getListing")]

LISTING_TYPES: Dict[int, str] = {0: "Fixed Price", 1: "Auction"}


def listing_type_label(value: Any) -> Optional[str]:
    index = as_int(value)
    if index is None:
        return None
    return LISTING_TYPES.get(index, "Auction")


async def _build(
    record: RawLogRecord,
    ctx: DecodeContext,
    kind: ActionKind,
    amount: Any,
    payment_token: Optional[str],
    with_price: bool = False,
    **fields: Any,
) -> Optional[NFTEntry]:
    if not ctx.involves(fields.get("seller"), fields.get("buyer"), fields.get("offerer")):
        return None
    unit = ctx.tokens.resolve(payment_token)
    raw = as_int(amount, 0)
    formatted = ctx.tokens.format(raw, payment_token)
    if with_price:
        fields["price"] = formatted
    return NFTEntry(
        position=record.position,
        action=kind,
        primary_amount=formatted,
        display_unit=unit.symbol,
        unit_resolved=unit.resolved,
        timestamp=await ctx.block_timestamp(record),
        payment_token=payment_token,
        **{name: value for name, value in fields.items() if value is not None},
    )


async def fetch_listing(ctx: DecodeContext, listing_id: Any) -> Dict[str, Any]:
    """Read ``getListing(listingId)`` from the marketplace."""
    marketplace = ctx.addresses.get("NFTMarketplace")
    if marketplace is None:
        raise DependentReadError("NFTMarketplace address is not configured")
    listing_index = as_int(listing_id)
    if listing_index is None:
        raise DependentReadError("Auction event is missing its listingId")
    result = await ctx.read_contract(
        marketplace, GET_LISTING_ABI, "getListing", [listing_index]
    )
    listing = as_struct(result, LISTING_FIELD_NAMES)
    if not listing:
        raise DependentReadError(f"getListing({listing_index}) returned no data")
    return listing


@registry.register("ListingCreated")
async def decode_listing_created(
    record: RawLogRecord, ctx: DecodeContext
) -> Optional[NFTEntry]:
    args = record.args
    return await _build(
        record,
        ctx,
        ActionKind.NFT_LISTED,
        args.get("price"),
        args.get("paymentToken"),
        with_price=True,
        token_id=as_int(args.get("tokenId")),
        listing_id=as_int(args.get("listingId")),
        seller=args.get("seller"),
        listing_type=listing_type_label(args.get("listingType")),
    )


@registry.register("NFTPurchased")
async def decode_nft_purchased(
    record: RawLogRecord, ctx: DecodeContext
) -> Optional[NFTEntry]:
    args = record.args
    return await _build(
        record,
        ctx,
        ActionKind.NFT_PURCHASED,
        args.get("price"),
        args.get("paymentToken"),
        with_price=True,
        token_id=as_int(args.get("tokenId")),
        listing_id=as_int(args.get("listingId")),
        seller=args.get("seller"),
        buyer=args.get("buyer"),
    )


@registry.register("ListingCancelled")
async def decode_listing_cancelled(
    record: RawLogRecord, ctx: DecodeContext
) -> Optional[NFTEntry]:
    args = record.args
    return await _build(
        record,
        ctx,
        ActionKind.LISTING_CANCELLED,
        0,
        None,
        token_id=as_int(args.get("tokenId")),
        listing_id=as_int(args.get("listingId")),
        seller=args.get("seller"),
    )


@registry.register("BidPlaced")
async def decode_bid_placed(
    record: RawLogRecord, ctx: DecodeContext
) -> Optional[NFTEntry]:
    args = record.args
    if not ctx.owns(args.get("bidder")):
        return None
    listing = await fetch_listing(ctx, args.get("listingId"))
    return await _build(
        record,
        ctx,
        ActionKind.AUCTION_BID,
        args.get("amount"),
        listing.get("paymentToken"),
        token_id=as_int(listing.get("tokenId")),
        listing_id=as_int(args.get("listingId")),
        buyer=args.get("bidder"),
    )


@registry.register("BidRefunded")
async def decode_bid_refunded(
    record: RawLogRecord, ctx: DecodeContext
) -> Optional[NFTEntry]:
    args = record.args
    if not ctx.owns(args.get("bidder")):
        return None
    listing = await fetch_listing(ctx, args.get("listingId"))
    return await _build(
        record,
        ctx,
        ActionKind.BID_REFUNDED,
        args.get("amount"),
        listing.get("paymentToken"),
        token_id=as_int(listing.get("tokenId")),
        listing_id=as_int(args.get("listingId")),
        buyer=args.get("bidder"),
    )


@registry.register("AuctionSettled")
async def decode_auction_settled(
    record: RawLogRecord, ctx: DecodeContext
) -> Optional[NFTEntry]:
    args = record.args
    # The seller is only known after the listing read, so it cannot be
    # pre-filtered like the bidder events.
    listing = await fetch_listing(ctx, args.get("listingId"))
    return await _build(
        record,
        ctx,
        ActionKind.AUCTION_SETTLED,
        args.get("finalPrice"),
        listing.get("paymentToken"),
        token_id=as_int(listing.get("tokenId")),
        listing_id=as_int(args.get("listingId")),
        seller=listing.get("seller"),
        buyer=args.get("winner"),
    )


async def _decode_offer(
    record: RawLogRecord, ctx: DecodeContext, kind: ActionKind, amount_field: str
) -> Optional[NFTEntry]:
    args = record.args
    return await _build(
        record,
        ctx,
        kind,
        args.get(amount_field),
        args.get("paymentToken"),
        token_id=as_int(args.get("tokenId")),
        offer_id=as_int(args.get("offerId")),
        offerer=args.get("offerer"),
        seller=args.get("nftOwner"),
    )


@registry.register("OfferCreated")
async def decode_offer_created(
    record: RawLogRecord, ctx: DecodeContext
) -> Optional[NFTEntry]:
    return await _decode_offer(record, ctx, ActionKind.OFFER_CREATED, "amount")


@registry.register("OfferAccepted")
async def decode_offer_accepted(
    record: RawLogRecord, ctx: DecodeContext
) -> Optional[NFTEntry]:
    return await _decode_offer(record, ctx, ActionKind.OFFER_ACCEPTED, "amount")


@registry.register("OfferCancelled")
async def decode_offer_cancelled(
    record: RawLogRecord, ctx: DecodeContext
) -> Optional[NFTEntry]:
    return await _decode_offer(record, ctx, ActionKind.OFFER_CANCELLED, "refundAmount")


@registry.register("OfferExpired")
async def decode_offer_expired(
    record: RawLogRecord, ctx: DecodeContext
) -> Optional[NFTEntry]:
    return await _decode_offer(record, ctx, ActionKind.OFFER_EXPIRED, "refundAmount")


__all__ = ["LISTING_TYPES", "fetch_listing", "listing_type_label", "registry"]

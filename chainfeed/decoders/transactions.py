"""Decoders for the dice game's balance and reward events."""

from __future__ import annotations

from typing import Any, Optional

from chainfeed.decoders.base import DecodeContext, DecoderRegistry, as_int
from chainfeed.models import ActionKind, RawLogRecord, TransactionEntry
from chainfeed.tokens import format_units

registry = DecoderRegistry("transactions")

EVENT_NAMES = (
    "Deposited",
    "Withdrawn",
    "RoundsPurchased",
    "PendingRewardClaimed",
    "PendingRewardForfeited",
    "ClaimRefundApplied",
)


def _usdt(ctx: DecodeContext, value: Any) -> Optional[str]:
    raw = as_int(value)
    if raw is None:
        return None
    return format_units(raw, ctx.tokens.stablecoin.decimals)


async def _entry(
    record: RawLogRecord,
    ctx: DecodeContext,
    kind: ActionKind,
    amount: Any,
    **fields: Any,
) -> TransactionEntry:
    unit = ctx.tokens.stablecoin
    return TransactionEntry(
        position=record.position,
        action=kind,
        primary_amount=_usdt(ctx, amount) or "0",
        display_unit=unit.symbol,
        unit_resolved=unit.resolved,
        timestamp=await ctx.block_timestamp(record),
        **{name: value for name, value in fields.items() if value is not None},
    )


def _is_mine(record: RawLogRecord, ctx: DecodeContext) -> bool:
    return ctx.owns(record.args.get("player"))


@registry.register("Deposited")
async def decode_deposited(
    record: RawLogRecord, ctx: DecodeContext
) -> Optional[TransactionEntry]:
    if not _is_mine(record, ctx):
        return None
    args = record.args
    return await _entry(
        record,
        ctx,
        ActionKind.DEPOSIT,
        args.get("amount"),
        fee=_usdt(ctx, args.get("fee")),
    )


@registry.register("Withdrawn")
async def decode_withdrawn(
    record: RawLogRecord, ctx: DecodeContext
) -> Optional[TransactionEntry]:
    if not _is_mine(record, ctx):
        return None
    args = record.args
    return await _entry(
        record,
        ctx,
        ActionKind.WITHDRAW,
        args.get("amount"),
        fee=_usdt(ctx, args.get("fee")),
    )


@registry.register("RoundsPurchased")
async def decode_rounds_purchased(
    record: RawLogRecord, ctx: DecodeContext
) -> Optional[TransactionEntry]:
    if not _is_mine(record, ctx):
        return None
    args = record.args
    return await _entry(
        record,
        ctx,
        ActionKind.BUY_SESSION,
        args.get("cost"),
        rounds=as_int(args.get("rounds")),
        cost=_usdt(ctx, args.get("cost")),
    )


@registry.register("PendingRewardClaimed")
async def decode_reward_claimed(
    record: RawLogRecord, ctx: DecodeContext
) -> Optional[TransactionEntry]:
    if not _is_mine(record, ctx):
        return None
    args = record.args
    auto_claim = args.get("autoClaim")
    return await _entry(
        record,
        ctx,
        ActionKind.REWARD_CLAIMED,
        args.get("payout"),
        game_id=as_int(args.get("gameId")),
        end_position=as_int(args.get("endPosition")),
        auto_claim=None if auto_claim is None else bool(auto_claim),
    )


@registry.register("PendingRewardForfeited")
async def decode_reward_forfeited(
    record: RawLogRecord, ctx: DecodeContext
) -> Optional[TransactionEntry]:
    if not _is_mine(record, ctx):
        return None
    args = record.args
    return await _entry(
        record,
        ctx,
        ActionKind.REWARD_FORFEITED,
        args.get("forfeitedAmount"),
        game_id=as_int(args.get("gameId")),
        end_position=as_int(args.get("endPosition")),
    )


@registry.register("ClaimRefundApplied")
async def decode_claim_refund(
    record: RawLogRecord, ctx: DecodeContext
) -> Optional[TransactionEntry]:
    if not _is_mine(record, ctx):
        return None
    args = record.args
    return await _entry(
        record,
        ctx,
        ActionKind.CLAIM_REFUND,
        args.get("refundAmount"),
        refund_amount=_usdt(ctx, args.get("refundAmount")),
        pool_contribution=_usdt(ctx, args.get("poolContribution")),
        game_id=as_int(args.get("gameId")),
        rounds_returned=as_int(args.get("roundsReturned")),
    )


__all__ = ["EVENT_NAMES", "registry"]

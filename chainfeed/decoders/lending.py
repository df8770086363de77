"""Decoders for lending pool events."""

from __future__ import annotations

from typing import Any, Optional

from chainfeed.decoders.base import DecodeContext, DecoderRegistry, as_int
from chainfeed.models import ActionKind, LendingEntry, RawLogRecord
from chainfeed.tokens import PLATFORM_DECIMALS, TokenInfo, format_units

registry = DecoderRegistry("lending")

# Health factor is a fixed-point ratio with 18 decimals.
HEALTH_FACTOR_DECIMALS = 18


async def _entry(
    record: RawLogRecord,
    ctx: DecodeContext,
    kind: ActionKind,
    unit: TokenInfo,
    amount: Any,
    **fields: Any,
) -> LendingEntry:
    amount_wei = as_int(amount, 0)
    return LendingEntry(
        position=record.position,
        action=kind,
        primary_amount=format_units(amount_wei, unit.decimals),
        display_unit=unit.symbol,
        unit_resolved=unit.resolved,
        timestamp=await ctx.block_timestamp(record),
        token=unit.address,
        amount_wei=amount_wei,
        **{name: value for name, value in fields.items() if value is not None},
    )


async def _collateral(
    record: RawLogRecord, ctx: DecodeContext, kind: ActionKind
) -> Optional[LendingEntry]:
    args = record.args
    if ctx.principal and not ctx.owns(args.get("user")):
        return None
    unit = ctx.tokens.resolve(args.get("token"))
    return await _entry(record, ctx, kind, unit, args.get("amount"))


@registry.register("CollateralDeposited")
async def decode_collateral_deposited(
    record: RawLogRecord, ctx: DecodeContext
) -> Optional[LendingEntry]:
    return await _collateral(record, ctx, ActionKind.COLLATERAL_DEPOSITED)


@registry.register("CollateralWithdrawn")
async def decode_collateral_withdrawn(
    record: RawLogRecord, ctx: DecodeContext
) -> Optional[LendingEntry]:
    return await _collateral(record, ctx, ActionKind.COLLATERAL_WITHDRAWN)


@registry.register("Borrowed")
async def decode_borrowed(
    record: RawLogRecord, ctx: DecodeContext
) -> Optional[LendingEntry]:
    args = record.args
    if ctx.principal and not ctx.owns(args.get("user")):
        return None
    health = as_int(args.get("healthFactor"))
    return await _entry(
        record,
        ctx,
        ActionKind.BORROWED,
        ctx.tokens.platform_token,
        args.get("amount"),
        health_factor=(
            None if health is None else format_units(health, HEALTH_FACTOR_DECIMALS)
        ),
    )


@registry.register("Repaid")
async def decode_repaid(
    record: RawLogRecord, ctx: DecodeContext
) -> Optional[LendingEntry]:
    args = record.args
    if ctx.principal and not ctx.owns(args.get("user")):
        return None
    remaining = as_int(args.get("remainingDebt"))
    return await _entry(
        record,
        ctx,
        ActionKind.REPAID,
        ctx.tokens.platform_token,
        args.get("amount"),
        remaining_debt=(
            None if remaining is None else format_units(remaining, PLATFORM_DECIMALS)
        ),
    )


@registry.register("Liquidated")
async def decode_liquidated(
    record: RawLogRecord, ctx: DecodeContext
) -> Optional[LendingEntry]:
    args = record.args
    # ``user`` is not indexed, so Liquidated logs always arrive unfiltered.
    if not ctx.owns(args.get("user")):
        return None
    unit = ctx.tokens.resolve(args.get("collateralToken"))
    collateral = as_int(args.get("collateralAmount"), 0)
    return await _entry(
        record,
        ctx,
        ActionKind.LIQUIDATED,
        unit,
        collateral,
        liquidator=args.get("liquidator"),
        debt_amount=format_units(as_int(args.get("debtAmount"), 0), PLATFORM_DECIMALS),
        collateral_amount=format_units(collateral, unit.decimals),
    )


__all__ = ["HEALTH_FACTOR_DECIMALS", "registry"]

"""Decoders for the game activity logger."""

from __future__ import annotations

from typing import Any, Dict, FrozenSet, Optional, Tuple

from chainfeed.contracts.abi import ACTIVITY_PAYLOAD_FIELDS, field_names
from chainfeed.decoders.base import DecodeContext, DecoderRegistry, as_int, as_struct
from chainfeed.models import ActionKind, GameEntry, RawLogRecord
from chainfeed.tokens import format_units

registry = DecoderRegistry("game")

PAYLOAD_FIELDS = field_names(ACTIVITY_PAYLOAD_FIELDS)

ACTION_KINDS: Dict[int, ActionKind] = {
    0: ActionKind.DEPOSIT,
    1: ActionKind.WITHDRAW,
    2: ActionKind.BUY_SESSION,
    3: ActionKind.PLAY_ROUND,
    4: ActionKind.PENDING_REWARD,
    5: ActionKind.REWARD_CLAIMED,
    6: ActionKind.REWARD_FORFEITED,
    7: ActionKind.LEOPARD_BONUS,
    8: ActionKind.PENALTY_REFUND,
    9: ActionKind.CLAIM_REFUND,
    10: ActionKind.POOL_CONTRIBUTION,
}

# Pool contributions reuse the payload's endPosition slot as the source code.
POOL_CONTRIBUTION_SOURCES: Dict[int, str] = {
    0: "Deposit Fee",
    1: "Withdraw Fee",
    2: "Buy Rounds",
    3: "Other",
}

_ROUND_FIELDS = frozenset(
    {
        "game_id",
        "rounds",
        "dice_values",
        "dice_sum",
        "is_baozi",
        "is_clockwise",
        "start_position",
        "end_position",
        "payout",
    }
)
_REWARD_FIELDS = frozenset({"game_id", "end_position", "payout"})

LEGAL_FIELDS: Dict[ActionKind, FrozenSet[str]] = {
    ActionKind.DEPOSIT: frozenset(),
    ActionKind.WITHDRAW: frozenset(),
    ActionKind.BUY_SESSION: frozenset({"rounds"}),
    ActionKind.PLAY_ROUND: _ROUND_FIELDS,
    ActionKind.PENDING_REWARD: frozenset(
        {"game_id", "start_position", "end_position", "payout", "deadline"}
    ),
    ActionKind.REWARD_CLAIMED: _REWARD_FIELDS,
    ActionKind.REWARD_FORFEITED: _REWARD_FIELDS,
    ActionKind.LEOPARD_BONUS: _REWARD_FIELDS,
    ActionKind.PENALTY_REFUND: frozenset({"game_id", "rounds"}),
    ActionKind.CLAIM_REFUND: frozenset({"game_id", "rounds"}),
    ActionKind.POOL_CONTRIBUTION: frozenset({"pool_source"}),
    ActionKind.UNKNOWN: frozenset({"game_id"}),
}


def _optional_bool(value: Any) -> Optional[bool]:
    return None if value is None else bool(value)


def _candidate_fields(
    payload: Dict[str, Any], kind: ActionKind
) -> Tuple[Dict[str, Any], Optional[int]]:
    dice_raw = payload.get("diceValues")
    payout = as_int(payload.get("payout"))
    end_position = as_int(payload.get("endPosition"))
    fields: Dict[str, Any] = {
        "game_id": as_int(payload.get("gameId")),
        "rounds": as_int(payload.get("rounds")),
        "dice_values": (
            tuple(int(v) for v in dice_raw)
            if isinstance(dice_raw, (list, tuple))
            else None
        ),
        "dice_sum": as_int(payload.get("diceSum")),
        "is_baozi": _optional_bool(payload.get("isBaozi")),
        "is_clockwise": _optional_bool(payload.get("isClockwise")),
        "start_position": as_int(payload.get("startPosition")),
        "end_position": end_position,
        "payout": None,
        "deadline": None,
        "pool_source": None,
    }
    if kind is ActionKind.PENDING_REWARD:
        fields["deadline"] = as_int(payload.get("timestamp"))
    if kind is ActionKind.POOL_CONTRIBUTION and end_position is not None:
        fields["pool_source"] = POOL_CONTRIBUTION_SOURCES.get(end_position, "Unknown")
    return fields, payout


@registry.register("ActivityLogged")
async def decode_activity(
    record: RawLogRecord, ctx: DecodeContext
) -> Optional[GameEntry]:
    args = record.args
    if ctx.principal and not ctx.owns(args.get("player")):
        return None
    action_index = as_int(args.get("action"))
    if action_index is None:
        return None

    kind = ACTION_KINDS.get(action_index, ActionKind.UNKNOWN)
    payload = as_struct(args.get("payload"), PAYLOAD_FIELDS)
    unit = ctx.tokens.stablecoin
    candidates, payout = _candidate_fields(payload, kind)
    if payout is not None:
        candidates["payout"] = format_units(payout, unit.decimals)

    legal = LEGAL_FIELDS[kind]
    kind_fields = {
        name: value
        for name, value in candidates.items()
        if name in legal and value is not None
    }

    # The payload's own timestamp is the decision deadline for pending rewards,
    # not the time of the event.
    payload_time = (
        None if kind is ActionKind.PENDING_REWARD else as_int(payload.get("timestamp"))
    )
    timestamp = await ctx.block_timestamp(record, onchain_fallback=payload_time)

    return GameEntry(
        position=record.position,
        action=kind,
        primary_amount=format_units(as_int(payload.get("amount"), 0), unit.decimals),
        display_unit=unit.symbol,
        unit_resolved=unit.resolved,
        timestamp=timestamp,
        **kind_fields,
    )


__all__ = ["ACTION_KINDS", "POOL_CONTRIBUTION_SOURCES", "registry"]

"""Decoder that turns every activity log into a player-activity marker."""

from __future__ import annotations

from typing import Optional

from chainfeed.decoders.base import DecodeContext, DecoderRegistry
from chainfeed.models import ActionKind, PlayerActivityEntry, RawLogRecord

registry = DecoderRegistry("rankings")


@registry.register("ActivityLogged")
async def decode_player_active(
    record: RawLogRecord, ctx: DecodeContext
) -> Optional[PlayerActivityEntry]:
    player = record.args.get("player")
    if not player:
        return None
    # Only the player matters here; skip the block lookup entirely.
    return PlayerActivityEntry(
        position=record.position,
        action=ActionKind.PLAYER_ACTIVE,
        player=str(player),
    )


__all__ = ["registry"]

"""Event decoders, one registry per feed family."""

from chainfeed.decoders.base import (
    ContextFactory,
    DecodeContext,
    DecoderRegistry,
    DependentReadError,
    decode_batch,
)

__all__ = [
    "ContextFactory",
    "DecodeContext",
    "DecoderRegistry",
    "DependentReadError",
    "decode_batch",
]

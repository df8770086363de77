"""Token registry and exact decimal rendering of on-chain amounts."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Optional

from chainfeed.models import is_unset_address, same_address

if TYPE_CHECKING:  # pragma: no cover
    from chainfeed.contracts.addresses import AddressBook

STABLECOIN_SYMBOL = "USDT"
STABLECOIN_DECIMALS = 6
PLATFORM_SYMBOL = "PLATFORM"
PLATFORM_DECIMALS = 18
# Precision assumed for any token the registry does not know.
DEFAULT_DECIMALS = 18


@dataclass(frozen=True)
class TokenInfo:
    """Display metadata for one token address."""

    address: Optional[str]
    symbol: Optional[str]
    decimals: int
    resolved: bool


def format_units(value: int, decimals: int) -> str:
    """Render an integer base-unit amount as a decimal string.

    Uses integer arithmetic only, so large uint256 values never lose
    precision. Trailing fractional zeros are dropped.
    """
    value = int(value)
    if decimals <= 0:
        return str(value)
    sign = "-" if value < 0 else ""
    whole, fraction = divmod(abs(value), 10**decimals)
    fraction_text = str(fraction).rjust(decimals, "0").rstrip("0")
    if fraction_text:
        return f"{sign}{whole}.{fraction_text}"
    return f"{sign}{whole}"


class TokenRegistry:
    """Resolve token addresses to symbol and precision.

    Only the platform's stablecoin and native platform token are known;
    anything else falls back to ``DEFAULT_DECIMALS`` and is reported as
    unresolved instead of receiving a guessed symbol.
    """

    def __init__(
        self,
        stablecoin: Optional[str] = None,
        platform_token: Optional[str] = None,
    ) -> None:
        self.stablecoin = TokenInfo(
            address=None if is_unset_address(stablecoin) else stablecoin,
            symbol=STABLECOIN_SYMBOL,
            decimals=STABLECOIN_DECIMALS,
            resolved=True,
        )
        self.platform_token = TokenInfo(
            address=None if is_unset_address(platform_token) else platform_token,
            symbol=PLATFORM_SYMBOL,
            decimals=PLATFORM_DECIMALS,
            resolved=True,
        )

    @classmethod
    def from_address_book(cls, book: "AddressBook") -> "TokenRegistry":
        return cls(
            stablecoin=book.get("MockUSDT"),
            platform_token=book.get("MockPlatformToken"),
        )

    def resolve(self, address: Optional[str]) -> TokenInfo:
        for known in (self.stablecoin, self.platform_token):
            if known.address and same_address(known.address, address):
                return known
        return TokenInfo(
            address=address,
            symbol=None,
            decimals=DEFAULT_DECIMALS,
            resolved=False,
        )

    def format(self, value: int, address: Optional[str]) -> str:
        return format_units(value, self.resolve(address).decimals)


__all__ = [
    "DEFAULT_DECIMALS",
    "PLATFORM_DECIMALS",
    "STABLECOIN_DECIMALS",
    "TokenInfo",
    "TokenRegistry",
    "format_units",
]

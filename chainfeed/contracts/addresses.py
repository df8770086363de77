"""Helpers for resolving deployed contract addresses."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Mapping, Optional

from chainfeed.models import is_unset_address

HARDHAT_CHAIN_ID = 31337

# Alternate spellings found in older deployment files.
CONTRACT_ALIASES: Dict[str, str] = {
    "lendingPool": "LendingPool",
    "gameActivityLogger": "GameActivityLogger",
    "playerStorage": "PlayerStorage",
}


@dataclass(frozen=True)
class AddressBook:
    """Deployed addresses for one network."""

    chain_id: int
    network: str
    contracts: Mapping[str, str] = field(default_factory=dict)

    def get(self, name: str) -> Optional[str]:
        """Return the address for ``name`` or None when unset or zero."""
        address = self.contracts.get(name)
        if is_unset_address(address):
            return None
        return address

    def missing(self, names: List[str]) -> List[str]:
        return [name for name in names if self.get(name) is None]


def load_address_book(path: Optional[Path] = None) -> AddressBook:
    """Load deployed addresses from JSON or fall back to an empty local book."""
    if path is None:
        return AddressBook(chain_id=HARDHAT_CHAIN_ID, network="hardhat")

    if not path.exists():
        raise FileNotFoundError(f"Address configuration not found: {path}")

    with path.open("r", encoding="utf-8") as handle:
        data = json.load(handle)

    raw_contracts = data.get("contracts") or {}
    if not isinstance(raw_contracts, dict):
        raise ValueError(f"'contracts' must be an object in {path}")

    contracts: Dict[str, str] = {}
    for key, address in raw_contracts.items():
        if not isinstance(address, str):
            continue
        name = CONTRACT_ALIASES.get(key, key)
        # Canonical spelling wins over an alias
        if name in contracts and key != name:
            continue
        contracts[name] = address.strip()

    return AddressBook(
        chain_id=int(data.get("chainId", HARDHAT_CHAIN_ID)),
        network=str(data.get("network", "unknown")),
        contracts=contracts,
    )


__all__ = ["AddressBook", "load_address_book"]

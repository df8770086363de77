"""Contract addresses and ABI fragments for the watched deployments."""

from chainfeed.contracts.addresses import AddressBook, load_address_book

__all__ = ["AddressBook", "load_address_book"]

import io
import logging

import pytest
import structlog

from chainfeed.backfill import BackfillScanner
from chainfeed.contracts.addresses import AddressBook
from chainfeed.decoders.base import ContextFactory, DecodeContext
from chainfeed.live import LiveTail
from chainfeed.tokens import TokenRegistry
from chainfeed.utils.logging import configure_logging
from tests.fakes import ALICE, PLATFORM, USDT, FakeChainClient, make_book


@pytest.fixture
def log_output():
    """Configure the real logging pipeline into a buffer for one test."""
    stream = io.StringIO()
    configure_logging("DEBUG", stream=stream)
    yield stream
    structlog.contextvars.clear_contextvars()
    structlog.reset_defaults()
    logging.getLogger().handlers.clear()
    logging.getLogger().setLevel(logging.WARNING)


@pytest.fixture
def chain() -> FakeChainClient:
    return FakeChainClient(height=1_000)


@pytest.fixture
def book() -> AddressBook:
    return make_book()


@pytest.fixture
def tokens() -> TokenRegistry:
    return TokenRegistry(stablecoin=USDT, platform_token=PLATFORM)


@pytest.fixture
def contexts(chain, tokens, book) -> ContextFactory:
    return ContextFactory(chain, tokens, book, aux_timeout=0.5, block_timeout=0.5)


@pytest.fixture
def ctx(contexts) -> DecodeContext:
    return contexts.for_principal(ALICE)


@pytest.fixture
def scanner(chain, contexts) -> BackfillScanner:
    return BackfillScanner(chain, contexts, window_blocks=50_000, query_timeout=1.0)


@pytest.fixture
def tail(chain, contexts) -> LiveTail:
    return LiveTail(chain, contexts)

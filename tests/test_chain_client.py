import asyncio
import json

import pytest

from chainfeed.chain_client import PollingSubscription, Web3ChainClient, event_data_to_record
from chainfeed.contracts.abi import DICE_GAME_ABI, event_abi
from tests.fakes import ALICE, make_log


def test_event_data_converted_to_raw_record() -> None:
    record = event_data_to_record(
        {
            "address": "0x0000000000000000000000000000000000000102",
            "event": "Deposited",
            "args": {"player": ALICE, "amount": 5, "fee": 0},
            "blockNumber": 42,
            "transactionHash": bytes.fromhex("ab" * 32),
            "logIndex": 3,
            "blockHash": bytes.fromhex("cd" * 32),
        }
    )

    assert record.event_name == "Deposited"
    assert record.args["amount"] == 5
    assert record.position.block_number == 42
    assert record.position.log_index == 3
    assert record.position.transaction_hash == "0x" + "ab" * 32
    assert record.block_hash == "0x" + "cd" * 32


@pytest.mark.asyncio
async def test_subscription_close_is_idempotent() -> None:
    client = Web3ChainClient("http://127.0.0.1:1", poll_interval=60)

    subscription = await client.subscribe_logs(
        "0x0000000000000000000000000000000000000102",
        event_abi(DICE_GAME_ABI, "Deposited"),
        {"player": ALICE},
        on_logs=lambda logs: None,
        from_block=10,
    )

    assert subscription.next_block == 10
    await subscription.close()
    await subscription.close()


class FlakyHeadClient:
    """Fails the first height lookup, then serves one log."""

    def __init__(self) -> None:
        self.height_calls = 0

    async def current_block_height(self) -> int:
        self.height_calls += 1
        if self.height_calls == 1:
            raise ConnectionError("rpc hiccup")
        return 12

    async def query_logs(self, address, event_abi, from_block, to_block, argument_filters=None):
        return [make_log("Deposited", {"player": ALICE, "amount": 5, "fee": 0}, block=from_block)]


@pytest.mark.asyncio
async def test_polling_survives_a_failed_poll(log_output) -> None:
    delivered = asyncio.Event()
    batches = []

    async def on_logs(logs) -> None:
        batches.append(logs)
        delivered.set()

    subscription = PollingSubscription(
        client=FlakyHeadClient(),
        address="0x0000000000000000000000000000000000000102",
        event_abi=event_abi(DICE_GAME_ABI, "Deposited"),
        argument_filters=None,
        on_logs=on_logs,
        start_block=10,
        interval=0,
    )
    subscription.start()
    try:
        await asyncio.wait_for(delivered.wait(), timeout=1)
    finally:
        await subscription.close()

    assert batches[0][0].position.block_number == 10
    assert subscription.next_block == 13
    failure = json.loads(log_output.getvalue().splitlines()[0])
    assert failure["event"] == "subscription_poll_failed"
    assert failure["event_name"] == "Deposited"

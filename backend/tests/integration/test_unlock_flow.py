"""End-to-end unlock flow over the YAML block store."""

import asyncio
import json
from decimal import Decimal

import httpx

from blockunlocker.config import UnlockerConfig
from blockunlocker.engine import BlockUnlocker
from blockunlocker.guard import HaltGuard
from blockunlocker.models import BlockData
from blockunlocker.services.node import ChainBlock, NodeClient, NodeConfig
from blockunlocker.storage import YamlBackend


class StaticChain:
    def __init__(self, height: int, blocks: dict[str, ChainBlock]):
        self.height = height
        self.blocks = blocks

    async def get_chain_height(self) -> int:
        return self.height

    async def get_block_by_hash(self, block_hash: str) -> ChainBlock | None:
        return self.blocks.get(block_hash.lower())


def test_candidate_flows_from_pending_to_matured_balance(tmp_path) -> None:
    backend = YamlBackend(tmp_path / "blocks.yaml")
    backend.add_candidate(
        BlockData(round_height=100, nonce="aa", hash="HASH1", height=100, total_shares=100),
        {"alice": 60, "bob": 40},
    )
    backend.add_candidate(
        BlockData(round_height=101, nonce="bb", hash="hash2", height=101, total_shares=10),
        {"carol": 10},
    )
    chain = StaticChain(
        height=105,
        blocks={"hash1": ChainBlock(height=100, hash="hash1", reward=1000, tx_count=2)},
    )
    config = UnlockerConfig(depth=50, pool_fee=Decimal("1"), pool_fee_address="pool")
    guard = HaltGuard(state_path=tmp_path / "unlocker_state.yaml")
    unlocker = BlockUnlocker(config, chain, backend, guard)

    asyncio.run(unlocker.run_tick())

    balances = backend.get_balances()
    assert balances["alice"].immature == 594
    assert balances["bob"].immature == 396
    assert balances["pool"].immature == 10
    assert backend.counts() == {"candidates": 0, "immature": 1, "matured": 0, "orphans": 1}

    # Not deep enough yet: nothing moves.
    asyncio.run(unlocker.run_tick())
    assert backend.counts()["matured"] == 0

    chain.height = 150
    asyncio.run(unlocker.run_tick())

    balances = backend.get_balances()
    assert balances["alice"].immature == 0
    assert balances["alice"].balance == 594
    assert balances["bob"].balance == 396
    assert balances["pool"].balance == 10
    assert backend.counts() == {"candidates": 0, "immature": 0, "matured": 1, "orphans": 1}
    matured = backend.load().matured[0]
    assert matured.block.hash == "hash1"
    assert matured.block.reward == 1000
    assert not guard.halted


def test_reorg_after_immature_reverses_credits(tmp_path) -> None:
    backend = YamlBackend(tmp_path / "blocks.yaml")
    backend.add_candidate(
        BlockData(round_height=200, nonce="cc", hash="hash3", height=200, total_shares=2),
        {"alice": 1, "bob": 1},
    )
    chain = StaticChain(height=210, blocks={"hash3": ChainBlock(height=200, hash="hash3", reward=500)})
    config = UnlockerConfig(depth=5, pool_fee=Decimal("0"))
    unlocker = BlockUnlocker(config, chain, backend, HaltGuard())

    asyncio.run(unlocker.unlock_pending_blocks())
    assert backend.get_balances()["alice"].immature == 250

    chain.blocks = {"hash3": ChainBlock(height=200, hash="competing")}
    asyncio.run(unlocker.unlock_and_credit_miners())

    balances = backend.get_balances()
    assert balances["alice"].immature == 0
    assert balances["alice"].balance == 0
    assert backend.counts() == {"candidates": 0, "immature": 0, "matured": 0, "orphans": 1}


def test_node_internal_error_keeps_candidate_pending(tmp_path) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        payload = json.loads(request.content)
        if payload["method"] == "get_info":
            return httpx.Response(200, json={"id": payload["id"], "result": {"height": 1000}})
        return httpx.Response(
            200,
            json={"id": payload["id"], "error": {"code": -32603, "message": "Internal error"}},
        )

    backend = YamlBackend(tmp_path / "blocks.yaml")
    backend.add_candidate(
        BlockData(round_height=900, nonce="n", hash="h900", height=900, total_shares=1),
        {"alice": 1},
    )
    guard = HaltGuard(state_path=tmp_path / "unlocker_state.yaml")
    node_config = NodeConfig(url="http://node.test/json_rpc", max_retries=1)

    async def run():
        async with NodeClient(node_config, transport=httpx.MockTransport(handler)) as node:
            unlocker = BlockUnlocker(UnlockerConfig(depth=10), node, backend, guard)
            return await unlocker.unlock_pending_blocks()

    assert asyncio.run(run()) is None
    assert guard.halted
    assert guard.status().error_type == "NodeAPIError"
    assert backend.counts() == {"candidates": 1, "immature": 0, "matured": 0, "orphans": 0}
    assert backend.get_round_shares(900, "n") == {"alice": 1}

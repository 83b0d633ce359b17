"""Settlement engine: unlocks block candidates and credits miners.

Each scheduler tick runs two sweeps:

1. ``unlock_pending_blocks`` confirms freshly submitted candidates against
   the node, records orphans and writes matured candidates with their
   payouts to the immature store.
2. ``unlock_and_credit_miners`` re-confirms immature blocks that are at
   least ``depth`` blocks deep, records newly discovered orphans and moves
   the rest, with recomputed payouts, to the matured store.

Both sweeps are fail-fast: the first collaborator error aborts the rest of
the sweep and is reported to the halt guard.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import TypeVar

import logfire

from blockunlocker.config import Settings, UnlockerConfig
from blockunlocker.confirmer import confirm_candidates
from blockunlocker.exceptions import (
    ChainQueryError,
    CollaboratorTimeout,
    ShareLedgerError,
    StorageError,
    UnlockerError,
)
from blockunlocker.guard import HaltGuard
from blockunlocker.models import BlockData, BlockType, RewardSplit, SweepSummary
from blockunlocker.rewards import format_amount, split_rewards
from blockunlocker.services.node import ChainBlock, ChainClient, NodeClient
from blockunlocker.storage import UnlockerBackend, YamlBackend

logger = logging.getLogger(__name__)

T = TypeVar("T")


class BlockUnlocker:
    def __init__(
        self,
        config: UnlockerConfig,
        node: ChainClient,
        backend: UnlockerBackend,
        guard: HaltGuard | None = None,
    ):
        self.config = config
        self.node = node
        self.backend = backend
        self.guard = guard or HaltGuard(max_transient_failures=config.max_transient_failures)

    # ------------------------------------------------------------------
    # Collaborator calls with deadlines
    # ------------------------------------------------------------------

    async def _node_call(self, call: Awaitable[T], what: str) -> T:
        try:
            return await asyncio.wait_for(call, timeout=self.config.call_timeout_seconds)
        except asyncio.TimeoutError as e:
            error: UnlockerError = CollaboratorTimeout(
                f"Node did not answer within {self.config.call_timeout_seconds}s"
            )
            logger.error(f"Failed to {what}: {error}")
            raise error from e
        except UnlockerError as e:
            logger.error(f"Failed to {what}: {e}")
            raise
        except Exception as e:
            logger.error(f"Failed to {what}: {e}")
            raise ChainQueryError(f"Unexpected node error: {e}") from e

    async def _store_call(self, what: str, fn: Callable[..., T], *args: object) -> T:
        try:
            return await asyncio.wait_for(
                asyncio.to_thread(fn, *args),
                timeout=self.config.call_timeout_seconds,
            )
        except asyncio.TimeoutError as e:
            error: UnlockerError = CollaboratorTimeout(
                f"Backend did not answer within {self.config.call_timeout_seconds}s"
            )
            logger.error(f"Failed to {what}: {error}")
            raise error from e
        except UnlockerError as e:
            logger.error(f"Failed to {what}: {e}")
            raise
        except Exception as e:
            logger.error(f"Failed to {what}: {e}")
            raise StorageError(f"Unexpected backend error: {e}") from e

    async def _get_chain_height(self) -> int:
        return await self._node_call(
            self.node.get_chain_height(), "get current blockchain height from node"
        )

    async def _get_block_by_hash(self, block_hash: str) -> ChainBlock | None:
        return await self._node_call(
            self.node.get_block_by_hash(block_hash), f"retrieve block {block_hash} from node"
        )

    # ------------------------------------------------------------------
    # Rewards
    # ------------------------------------------------------------------

    async def calculate_rewards(self, block: BlockData) -> RewardSplit:
        """Fetch the round's shares and split the block's reward among them."""
        if block.total_shares <= 0:
            raise ShareLedgerError(f"Round {block.round_key} has no recorded shares")

        shares = await self._store_call(
            f"get shares for round {block.round_key}",
            self.backend.get_round_shares,
            block.round_height,
            block.nonce,
        )
        if sum(shares.values()) > block.total_shares:
            raise ShareLedgerError(
                f"Round {block.round_key} shares exceed total_shares {block.total_shares}"
            )

        logger.debug(
            f"round {block.round_key}: shares {shares}, totalShares {block.total_shares}"
        )
        return split_rewards(
            block_reward=block.reward,
            extra_reward=block.extra_reward,
            shares=shares,
            total_shares=block.total_shares,
            fee_percent=self.config.pool_fee,
            fee_address=self.config.pool_fee_address or None,
        )

    # ------------------------------------------------------------------
    # Sweeps
    # ------------------------------------------------------------------

    def _suspended(self) -> bool:
        if self.guard.halted:
            logger.warning(
                f"Unlocking suspended due to last critical error: {self.guard.status().reason}"
            )
            return True
        return False

    async def _run_sweep(
        self,
        phase: BlockType,
        sweep: Callable[[], Awaitable[SweepSummary]],
    ) -> SweepSummary | None:
        if self._suspended():
            return None
        with logfire.span("unlocker.sweep {phase}", phase=phase):
            try:
                return await sweep()
            except UnlockerError as e:
                self.guard.record_failure(e, f"{phase} sweep")
                return None

    async def unlock_pending_blocks(self) -> SweepSummary | None:
        """Confirm pending candidates and write them as immature or orphaned."""
        return await self._run_sweep("candidates", self._unlock_pending_blocks)

    async def unlock_and_credit_miners(self) -> SweepSummary | None:
        """Re-confirm deep enough immature blocks and credit their payouts."""
        return await self._run_sweep("immature", self._unlock_and_credit_miners)

    async def run_tick(self) -> None:
        """Run both sweeps in order."""
        if self._suspended():
            return
        pending = await self.unlock_pending_blocks()
        matured = await self.unlock_and_credit_miners()
        if pending is not None and matured is not None:
            self.guard.record_success()

    async def _unlock_pending_blocks(self) -> SweepSummary:
        summary = SweepSummary(phase="candidates")
        current_height = await self._get_chain_height()

        candidates = await self._store_call(
            "get block candidates from backend",
            self.backend.get_pending_candidates,
            current_height,
        )
        if not candidates:
            logger.info("No block candidates to unlock")
            return summary

        result = await confirm_candidates(candidates, self._get_block_by_hash, "candidates")
        summary.blocks = result.blocks
        summary.orphans = result.orphans
        logger.info(f"Immature {result.blocks} blocks, {result.orphans} orphans")

        if result.orphaned_blocks:
            await self._store_call(
                "insert orphaned blocks into backend",
                self.backend.write_pending_orphans,
                result.orphaned_blocks,
            )
            logger.info(f"Inserted {result.orphans} orphaned blocks to backend")

        for block in result.matured_blocks:
            split = await self._credit(block, self.backend.write_immature_block)
            _accumulate(summary, split)
            _log_block("IMMATURE", block, split)

        _log_session("IMMATURE", summary)
        return summary

    async def _unlock_and_credit_miners(self) -> SweepSummary:
        summary = SweepSummary(phase="immature")
        current_height = await self._get_chain_height()

        immature = await self._store_call(
            "get immature blocks from backend",
            self.backend.get_immature_blocks,
            current_height - self.config.depth,
        )
        if not immature:
            logger.info("No immature blocks to credit miners")
            return summary

        result = await confirm_candidates(immature, self._get_block_by_hash, "immature")
        summary.blocks = result.blocks
        summary.orphans = result.orphans
        logger.info(f"Unlocked {result.blocks} blocks, {result.orphans} orphans")

        for block in result.orphaned_blocks:
            await self._store_call(
                f"insert orphaned block {block.round_key} into backend",
                self.backend.write_orphan,
                block,
            )
        if result.orphaned_blocks:
            logger.info(f"Inserted {result.orphans} orphaned blocks to backend")

        for block in result.matured_blocks:
            split = await self._credit(block, self.backend.write_matured_block)
            _accumulate(summary, split)
            _log_block("MATURED", block, split)

        _log_session("MATURE", summary)
        return summary

    async def _credit(
        self,
        block: BlockData,
        write: Callable[[BlockData, dict[str, int]], None],
    ) -> RewardSplit:
        try:
            split = await self.calculate_rewards(block)
        except UnlockerError as e:
            logger.error(f"Failed to calculate rewards for round {block.round_key}: {e}")
            raise
        await self._store_call(
            f"credit rewards for round {block.round_key}",
            write,
            block,
            split.payouts,
        )
        return split


def _accumulate(summary: SweepSummary, split: RewardSplit) -> None:
    summary.total_revenue += split.revenue
    summary.total_miners_profit += split.miners_profit
    summary.total_pool_profit += split.pool_profit


def _log_block(label: str, block: BlockData, split: RewardSplit) -> None:
    entries = [
        f"{label} {block.round_key}: revenue {format_amount(split.revenue)}, "
        f"minersProfit {format_amount(split.miners_profit)}, "
        f"poolProfit {format_amount(split.pool_profit)}"
    ]
    for login in sorted(split.payouts):
        entries.append(f"\tREWARD {block.round_key}: {login}: {split.payouts[login]}")
    logger.info("\n".join(entries))


def _log_session(label: str, summary: SweepSummary) -> None:
    logger.info(
        f"{label} SESSION: totalRevenue {format_amount(summary.total_revenue)}, "
        f"totalMinersProfit {format_amount(summary.total_miners_profit)}, "
        f"totalPoolProfit {format_amount(summary.total_pool_profit)}"
    )


async def run_unlocker(
    settings: Settings,
    guard: HaltGuard,
    backend: UnlockerBackend | None = None,
    node: ChainClient | None = None,
) -> None:
    """Run one unlocker tick against the configured node and block store."""
    guard.refresh()
    backend = backend or YamlBackend(settings.store_path)

    if node is not None:
        await _run_tick(settings, BlockUnlocker(settings.unlocker, node, backend, guard))
        return

    async with NodeClient(settings.node) as client:
        await _run_tick(settings, BlockUnlocker(settings.unlocker, client, backend, guard))


async def _run_tick(settings: Settings, unlocker: BlockUnlocker) -> None:
    try:
        await asyncio.wait_for(
            unlocker.run_tick(),
            timeout=settings.unlocker.tick_timeout_seconds,
        )
    except asyncio.TimeoutError:
        unlocker.guard.record_failure(
            CollaboratorTimeout(
                f"Tick exceeded {settings.unlocker.tick_timeout_seconds}s and was cancelled"
            ),
            "unlocker tick",
        )

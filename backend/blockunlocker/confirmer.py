"""Candidate confirmation against the chain node."""

import logging
from collections.abc import Awaitable, Callable

from .models import BlockData, BlockType, UnlockResult
from .services.node.models import ChainBlock

logger = logging.getLogger(__name__)

BlockLookup = Callable[[str], Awaitable[ChainBlock | None]]


def match_candidate(block: ChainBlock | None, candidate: BlockData) -> bool:
    """Check whether the node's block is the one the pool submitted."""
    if block is None or block.orphan_status:
        return False
    return len(candidate.hash) > 0 and candidate.hash.casefold() == block.hash.casefold()


def handle_block(block: ChainBlock, candidate: BlockData) -> None:
    """Copy authoritative chain data into a matured candidate."""
    candidate.height = block.height
    candidate.orphan = False
    candidate.hash = block.hash
    candidate.reward = block.reward


async def confirm_candidates(
    candidates: list[BlockData],
    get_block: BlockLookup,
    block_type: BlockType,
) -> UnlockResult:
    """Classify each candidate as matured or orphaned, in input order.

    Any lookup error propagates and the partial result is discarded, so the
    whole batch is retried on the next sweep.
    """
    result = UnlockResult()

    for candidate in candidates:
        try:
            block = await get_block(candidate.hash)
        except Exception as exc:
            logger.error(f"Error while retrieving {block_type} block {candidate.hash} from node: {exc}")
            raise

        if match_candidate(block, candidate):
            handle_block(block, candidate)
            result.blocks += 1
            result.matured_blocks.append(candidate)
            logger.info(
                f"Mature block {candidate.height} with {block.tx_count} tx, hash: {candidate.hash}"
            )
            continue

        candidate.orphan = True
        result.orphans += 1
        result.orphaned_blocks.append(candidate)
        logger.info(f"Orphaned block {candidate.round_key}")

    return result

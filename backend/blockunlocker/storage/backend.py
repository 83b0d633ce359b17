"""Persistence contract consumed by the unlocker."""

from typing import Protocol

from blockunlocker.models import BlockData, Payouts


class UnlockerBackend(Protocol):
    """Block store operations used while unlocking and crediting blocks.

    Implementations raise StorageError (or ShareLedgerError for share
    lookups) on failure.
    """

    def get_pending_candidates(self, max_height: int) -> list[BlockData]: ...

    def get_immature_blocks(self, max_height: int) -> list[BlockData]: ...

    def get_round_shares(self, round_height: int, nonce: str) -> dict[str, int]: ...

    def write_pending_orphans(self, blocks: list[BlockData]) -> None: ...

    def write_orphan(self, block: BlockData) -> None: ...

    def write_immature_block(self, block: BlockData, rewards: Payouts) -> None: ...

    def write_matured_block(self, block: BlockData, rewards: Payouts) -> None: ...

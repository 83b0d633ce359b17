"""YAML-file block store.

Keeps pending candidates, round share ledgers, the immature/matured/orphan
block sets and participant balances in a single data/blocks.yaml document.
Every write loads the document, applies one operation and saves it
atomically.
"""

import logging
import threading
from collections.abc import Callable
from datetime import datetime, timezone
from pathlib import Path
from typing import TypeVar

import yaml
from pydantic import BaseModel, Field, ValidationError

from blockunlocker.exceptions import ShareLedgerError, StorageError
from blockunlocker.models import BlockData, Payouts
from blockunlocker.storage.state import atomic_write_yaml

logger = logging.getLogger(__name__)

T = TypeVar("T")


# ============================================================================
# Pydantic Models
# ============================================================================


class CreditedBlock(BaseModel):
    """A block together with the payouts computed for it."""

    block: BlockData
    rewards: Payouts = Field(default_factory=dict)
    credited_at: datetime | None = None


class MinerBalance(BaseModel):
    immature: int = 0
    balance: int = 0


class BlockStore(BaseModel):
    """Complete store document - matches data/blocks.yaml schema."""

    last_updated: datetime | None = None
    candidates: list[BlockData] = Field(default_factory=list)
    immature: list[CreditedBlock] = Field(default_factory=list)
    matured: list[CreditedBlock] = Field(default_factory=list)
    orphans: list[BlockData] = Field(default_factory=list)
    shares: dict[str, dict[str, int]] = Field(default_factory=dict)
    balances: dict[str, MinerBalance] = Field(default_factory=dict)


def round_key(round_height: int, nonce: str) -> str:
    return f"{round_height}:{nonce}"


# ============================================================================
# Backend
# ============================================================================


class YamlBackend:
    """UnlockerBackend implementation on top of an atomic YAML document."""

    def __init__(self, path: Path):
        self.path = path
        self._lock = threading.Lock()

    def load(self) -> BlockStore:
        if not self.path.exists():
            logger.info(f"Block store not found: {self.path}. Returning empty store.")
            return BlockStore()

        try:
            with open(self.path, "r", encoding="utf-8") as f:
                raw_data = yaml.safe_load(f)
        except (OSError, yaml.YAMLError) as e:
            raise StorageError(f"Failed to read block store {self.path}: {e}") from e

        if not raw_data:
            return BlockStore()

        try:
            return BlockStore(**raw_data)
        except ValidationError as e:
            raise StorageError(f"Corrupted block store {self.path}: {e}") from e

    def save(self, store: BlockStore) -> None:
        store.last_updated = datetime.now(timezone.utc)
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            atomic_write_yaml(self.path, store.model_dump(mode="json"))
        except (OSError, yaml.YAMLError) as e:
            raise StorageError(f"Failed to write block store {self.path}: {e}") from e

    def _update(self, operation: Callable[[BlockStore], T]) -> T:
        with self._lock:
            store = self.load()
            result = operation(store)
            self.save(store)
            return result

    # ------------------------------------------------------------------
    # Submission side
    # ------------------------------------------------------------------

    def add_candidate(self, block: BlockData, shares: dict[str, int] | None = None) -> None:
        """Record a newly submitted candidate and, optionally, its round shares."""

        def apply(store: BlockStore) -> None:
            store.candidates = [c for c in store.candidates if c.round_key != block.round_key]
            store.candidates.append(block)
            if shares is not None:
                store.shares[block.round_key] = dict(shares)

        self._update(apply)
        logger.info(f"Added block candidate {block.round_key} at height {block.height}")

    def add_round_shares(self, round_height: int, nonce: str, shares: dict[str, int]) -> None:
        """Accumulate share counts into a round's ledger."""

        def apply(store: BlockStore) -> None:
            ledger = store.shares.setdefault(round_key(round_height, nonce), {})
            for login, n in shares.items():
                ledger[login] = ledger.get(login, 0) + n

        self._update(apply)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_pending_candidates(self, max_height: int) -> list[BlockData]:
        return [c for c in self.load().candidates if c.height <= max_height]

    def get_immature_blocks(self, max_height: int) -> list[BlockData]:
        return [e.block for e in self.load().immature if e.block.height <= max_height]

    def get_round_shares(self, round_height: int, nonce: str) -> dict[str, int]:
        key = round_key(round_height, nonce)
        shares = self.load().shares.get(key)
        if shares is None:
            raise ShareLedgerError(f"No shares recorded for round {key}")
        if any(n < 0 for n in shares.values()):
            raise ShareLedgerError(f"Negative share count in round {key}")
        return dict(shares)

    def get_balances(self) -> dict[str, MinerBalance]:
        return self.load().balances

    def counts(self) -> dict[str, int]:
        store = self.load()
        return {
            "candidates": len(store.candidates),
            "immature": len(store.immature),
            "matured": len(store.matured),
            "orphans": len(store.orphans),
        }

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def write_pending_orphans(self, blocks: list[BlockData]) -> None:
        if not blocks:
            return
        keys = {b.round_key for b in blocks}

        def apply(store: BlockStore) -> None:
            store.candidates = [c for c in store.candidates if c.round_key not in keys]
            store.orphans = [o for o in store.orphans if o.round_key not in keys]
            store.orphans.extend(blocks)
            for key in keys:
                store.shares.pop(key, None)

        self._update(apply)

    def write_orphan(self, block: BlockData) -> None:
        def apply(store: BlockStore) -> None:
            entry = _pop_credited(store.immature, block.round_key)
            if entry is not None:
                _credit(store, entry.rewards, "immature", -1)
            store.orphans = [o for o in store.orphans if o.round_key != block.round_key]
            store.orphans.append(block)
            store.shares.pop(block.round_key, None)

        self._update(apply)

    def write_immature_block(self, block: BlockData, rewards: Payouts) -> None:
        def apply(store: BlockStore) -> None:
            store.candidates = [c for c in store.candidates if c.round_key != block.round_key]
            previous = _pop_credited(store.immature, block.round_key)
            if previous is not None:
                _credit(store, previous.rewards, "immature", -1)
            store.immature.append(
                CreditedBlock(block=block, rewards=dict(rewards), credited_at=datetime.now(timezone.utc))
            )
            _credit(store, rewards, "immature", 1)

        self._update(apply)

    def write_matured_block(self, block: BlockData, rewards: Payouts) -> None:
        def apply(store: BlockStore) -> None:
            if any(e.block.round_key == block.round_key for e in store.matured):
                logger.warning(f"Block {block.round_key} already matured, not crediting again")
                return
            entry = _pop_credited(store.immature, block.round_key)
            if entry is not None:
                _credit(store, entry.rewards, "immature", -1)
            store.matured.append(
                CreditedBlock(block=block, rewards=dict(rewards), credited_at=datetime.now(timezone.utc))
            )
            _credit(store, rewards, "balance", 1)
            store.shares.pop(block.round_key, None)

        self._update(apply)


def _pop_credited(entries: list[CreditedBlock], key: str) -> CreditedBlock | None:
    for i, entry in enumerate(entries):
        if entry.block.round_key == key:
            return entries.pop(i)
    return None


def _credit(store: BlockStore, rewards: Payouts, field: str, sign: int) -> None:
    for login, amount in rewards.items():
        balance = store.balances.setdefault(login, MinerBalance())
        setattr(balance, field, getattr(balance, field) + sign * amount)

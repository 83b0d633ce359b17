"""Block and settlement data models."""

from __future__ import annotations

from fractions import Fraction
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

BlockType = Literal["candidates", "immature"]

Payouts = dict[str, int]


class BlockData(BaseModel):
    """A block the pool submitted, tracked from candidate to a terminal store."""

    round_height: int
    nonce: str
    hash: str
    height: int
    total_shares: int = 0
    extra_reward: int | None = None
    reward: int = 0
    orphan: bool = False

    @property
    def round_key(self) -> str:
        return f"{self.round_height}:{self.nonce}"


class UnlockResult(BaseModel):
    """Classification of one confirmation batch."""

    matured_blocks: list[BlockData] = Field(default_factory=list)
    orphaned_blocks: list[BlockData] = Field(default_factory=list)
    blocks: int = 0
    orphans: int = 0


class RewardSplit(BaseModel):
    """Exact revenue breakdown and integer payouts for one matured block."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    revenue: Fraction
    miners_profit: Fraction
    pool_profit: Fraction
    payouts: Payouts = Field(default_factory=dict)


class SweepSummary(BaseModel):
    """Outcome of one sweep, returned for callers and the CLI."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    phase: BlockType
    blocks: int = 0
    orphans: int = 0
    total_revenue: Fraction = Fraction(0)
    total_miners_profit: Fraction = Fraction(0)
    total_pool_profit: Fraction = Fraction(0)

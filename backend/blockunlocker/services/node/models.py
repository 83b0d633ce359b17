from __future__ import annotations

from typing import Any

from pydantic import BaseModel


class ChainInfo(BaseModel):
    height: int
    topoheight: int = 0
    difficulty: int = 0
    status: str = ""

    @classmethod
    def from_api(cls, data: dict[str, Any]) -> ChainInfo:
        return cls(
            height=data["height"],
            topoheight=data.get("topoheight", 0),
            difficulty=data.get("difficulty", 0),
            status=data.get("status", ""),
        )


class ChainBlock(BaseModel):
    height: int
    hash: str
    reward: int = 0
    tx_count: int = 0
    orphan_status: bool = False

    @classmethod
    def from_api(cls, data: dict[str, Any]) -> ChainBlock:
        return cls(
            height=data["height"],
            hash=data["hash"],
            reward=data.get("reward", 0),
            tx_count=data.get("txcount", 0),
            orphan_status=data.get("orphan_status", False),
        )

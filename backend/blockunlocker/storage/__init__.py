"""Storage layer for the block unlocker - file-based persistence.

This package provides:
- The persistence contract the unlocker consumes (UnlockerBackend)
- A YAML block store (candidates, share ledgers, immature/matured/orphan blocks, balances)
- Halt guard state (load/save data/unlocker_state.yaml)

All documents are Pydantic models written with atomic temp-file renames.
"""

from .backend import UnlockerBackend
from .files import (
    BlockStore,
    CreditedBlock,
    MinerBalance,
    YamlBackend,
)
from .state import (
    UnlockerState,
    UnlockerStatus,
    atomic_write_yaml,
    load_status,
    save_status,
)

__all__ = [
    # Contract
    "UnlockerBackend",
    # Block store
    "BlockStore",
    "CreditedBlock",
    "MinerBalance",
    "YamlBackend",
    # Unlocker state
    "UnlockerState",
    "UnlockerStatus",
    "atomic_write_yaml",
    "load_status",
    "save_status",
]

"""Tests for the YAML block store."""

import pytest

from blockunlocker.exceptions import ShareLedgerError, StorageError
from blockunlocker.models import BlockData
from blockunlocker.storage import YamlBackend


def _block(height: int = 100, nonce: str = "aa", **kwargs) -> BlockData:
    return BlockData(round_height=height, nonce=nonce, hash=f"h{height}", height=height, **kwargs)


def test_missing_file_is_an_empty_store(tmp_path) -> None:
    backend = YamlBackend(tmp_path / "blocks.yaml")

    assert backend.get_pending_candidates(10**9) == []
    assert backend.counts() == {"candidates": 0, "immature": 0, "matured": 0, "orphans": 0}


def test_pending_candidates_filtered_by_height(tmp_path) -> None:
    backend = YamlBackend(tmp_path / "blocks.yaml")
    backend.add_candidate(_block(100, "aa"))
    backend.add_candidate(_block(120, "bb"))

    assert [b.nonce for b in backend.get_pending_candidates(110)] == ["aa"]
    assert len(backend.get_pending_candidates(120)) == 2


def test_round_shares_accumulate(tmp_path) -> None:
    backend = YamlBackend(tmp_path / "blocks.yaml")
    backend.add_round_shares(100, "aa", {"alice": 3})
    backend.add_round_shares(100, "aa", {"alice": 2, "bob": 1})

    assert backend.get_round_shares(100, "aa") == {"alice": 5, "bob": 1}


def test_missing_or_negative_shares_raise(tmp_path) -> None:
    backend = YamlBackend(tmp_path / "blocks.yaml")
    backend.add_round_shares(100, "bad", {"alice": -1})

    with pytest.raises(ShareLedgerError):
        backend.get_round_shares(100, "missing")
    with pytest.raises(ShareLedgerError):
        backend.get_round_shares(100, "bad")


def test_immature_then_matured_moves_credits(tmp_path) -> None:
    backend = YamlBackend(tmp_path / "blocks.yaml")
    block = _block(total_shares=3)
    backend.add_candidate(block, {"alice": 1, "bob": 2})

    backend.write_immature_block(block, {"alice": 10, "bob": 20})
    backend.write_immature_block(block, {"alice": 10, "bob": 20})

    balances = backend.get_balances()
    assert balances["alice"].immature == 10
    assert balances["bob"].immature == 20
    assert backend.counts()["immature"] == 1
    assert [b.round_key for b in backend.get_immature_blocks(100)] == ["100:aa"]

    backend.write_matured_block(block, {"alice": 11, "bob": 19})
    backend.write_matured_block(block, {"alice": 11, "bob": 19})

    balances = backend.get_balances()
    assert balances["alice"].immature == 0
    assert balances["alice"].balance == 11
    assert balances["bob"].balance == 19
    assert backend.counts() == {"candidates": 0, "immature": 0, "matured": 1, "orphans": 0}
    with pytest.raises(ShareLedgerError):
        backend.get_round_shares(100, "aa")


def test_orphans_remove_candidates_and_credits(tmp_path) -> None:
    backend = YamlBackend(tmp_path / "blocks.yaml")
    pending = _block(100, "aa")
    immature = _block(90, "bb")
    backend.add_candidate(pending, {"alice": 1})
    backend.add_candidate(immature, {"bob": 1})
    backend.write_immature_block(immature, {"bob": 50})

    backend.write_pending_orphans([pending])
    backend.write_orphan(immature)

    assert backend.get_balances()["bob"].immature == 0
    assert backend.counts() == {"candidates": 0, "immature": 0, "matured": 0, "orphans": 2}


def test_corrupted_store_raises_storage_error(tmp_path) -> None:
    path = tmp_path / "blocks.yaml"
    path.write_text("candidates: [unclosed\n")

    with pytest.raises(StorageError):
        YamlBackend(path).load()

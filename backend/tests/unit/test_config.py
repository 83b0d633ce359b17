"""Tests for settings loading and validation."""

from decimal import Decimal

import pytest
from pydantic import ValidationError

from blockunlocker.config import Settings, UnlockerConfig


def test_yaml_sections_override_defaults(tmp_path) -> None:
    (tmp_path / "config.yaml").write_text(
        "unlocker:\n"
        "  depth: 120\n"
        "  pool_fee: 0.5\n"
        "  pool_fee_address: ' dero1pool '\n"
        "node:\n"
        "  url: http://10.0.0.2:20206/json_rpc\n"
    )
    settings = Settings(data_dir=tmp_path)

    settings.load_yaml_config()

    assert settings.unlocker.depth == 120
    assert settings.unlocker.pool_fee == Decimal("0.5")
    assert settings.unlocker.pool_fee_address == "dero1pool"
    assert settings.unlocker.interval_seconds == 60
    assert settings.node.url == "http://10.0.0.2:20206/json_rpc"
    assert settings.store_path == tmp_path.resolve() / "blocks.yaml"


def test_missing_yaml_keeps_defaults(tmp_path) -> None:
    settings = Settings(data_dir=tmp_path)

    settings.load_yaml_config()

    assert settings.unlocker == UnlockerConfig()


def test_float_pool_fee_is_read_as_decimal_text() -> None:
    assert UnlockerConfig(pool_fee=1.1).pool_fee == Decimal("1.1")


def test_pool_fee_must_be_a_percentage() -> None:
    with pytest.raises(ValidationError):
        UnlockerConfig(pool_fee=Decimal("100.5"))
    with pytest.raises(ValidationError):
        UnlockerConfig(pool_fee=-1)


def test_depth_must_be_positive() -> None:
    with pytest.raises(ValidationError):
        UnlockerConfig(depth=0)

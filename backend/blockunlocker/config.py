"""Configuration management using Pydantic Settings."""

import logging
from decimal import Decimal
from functools import lru_cache
from pathlib import Path

import yaml
from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from blockunlocker.services.node.config import NodeConfig

logger = logging.getLogger(__name__)


class UnlockerConfig(BaseModel):
    """Block unlocking and reward settlement parameters."""

    enabled: bool = True
    interval_seconds: int = Field(default=60, ge=1)
    depth: int = Field(default=60, ge=1)  # blocks before an immature block may mature
    pool_fee: Decimal = Field(default=Decimal("1"), ge=0, le=100)  # percent
    pool_fee_address: str = ""

    # Deadlines and failure containment
    call_timeout_seconds: float = Field(default=30.0, gt=0)
    tick_timeout_seconds: float = Field(default=600.0, gt=0)
    max_transient_failures: int = Field(default=3, ge=1)

    @field_validator("pool_fee", mode="before")
    @classmethod
    def parse_pool_fee(cls, v: object) -> object:
        """Read floats through their decimal text so 1.1 means exactly 1.1%."""
        if isinstance(v, float):
            return Decimal(str(v))
        return v

    @field_validator("pool_fee_address")
    @classmethod
    def strip_fee_address(cls, v: str) -> str:
        return v.strip()


class Settings(BaseSettings):
    """Main configuration class."""

    # Paths
    data_dir: Path = Path("data")

    # API Keys
    logfire_token: str = ""

    # Nested configuration sections
    unlocker: UnlockerConfig = Field(default_factory=UnlockerConfig)
    node: NodeConfig = Field(default_factory=NodeConfig)

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        case_sensitive=False,
        extra="ignore",
    )

    @field_validator("data_dir", mode="after")
    @classmethod
    def resolve_data_dir(cls, v: Path) -> Path:
        """Resolve data directory to absolute path."""
        return v.resolve()

    @property
    def store_path(self) -> Path:
        return self.data_dir / "blocks.yaml"

    @property
    def state_path(self) -> Path:
        return self.data_dir / "unlocker_state.yaml"

    def load_yaml_config(self) -> None:
        """Load and merge YAML configuration."""
        config_path = self.data_dir / "config.yaml"

        if not config_path.exists():
            logger.warning(
                f"Config file not found: {config_path}. "
                "Using defaults. Run 'python -m blockunlocker init' to create it."
            )
            return

        try:
            with open(config_path, "r", encoding="utf-8") as f:
                yaml_config = yaml.safe_load(f)

            if not yaml_config:
                logger.warning(f"Empty config file: {config_path}")
                return

            for section_name in ["unlocker", "node"]:
                if section_name in yaml_config:
                    section = getattr(self, section_name)
                    yaml_section = yaml_config[section_name]

                    section_dict = section.model_dump()
                    section_dict.update(yaml_section)

                    new_section = section.__class__(**section_dict)
                    setattr(self, section_name, new_section)

            logger.info(f"Loaded configuration from {config_path}")

        except yaml.YAMLError as e:
            logger.error(f"Failed to parse YAML config: {e}")
            raise
        except Exception as e:
            logger.error(f"Failed to load config: {e}")
            raise


@lru_cache()
def get_settings() -> Settings:
    """Get singleton Settings instance."""
    settings = Settings()
    settings.load_yaml_config()
    return settings

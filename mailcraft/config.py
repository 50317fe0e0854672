"""Configuration management using Pydantic Settings."""

import logging
from functools import lru_cache
from pathlib import Path

import yaml
from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from mailcraft.pipeline.handoffs import DEFAULT_MAX_HANDOFF_SIZE_BYTES
from mailcraft.pipeline.mappers import DEFAULT_QUALITY_THRESHOLD
from mailcraft.pipeline.retry import (
    DEFAULT_BACKOFF_CEILING_MS,
    DEFAULT_MAX_RETRIES,
    DEFAULT_RETRY_DELAY_MS,
    RetryPolicy,
)

logger = logging.getLogger(__name__)


class RetryConfig(BaseModel):
    """Retry limits applied to every specialist call."""

    max_retries: int = Field(default=DEFAULT_MAX_RETRIES, ge=0)
    retry_delay_ms: int = Field(default=DEFAULT_RETRY_DELAY_MS, gt=0)
    backoff_ceiling_ms: int = Field(default=DEFAULT_BACKOFF_CEILING_MS, gt=0)


class PipelineConfig(BaseModel):
    """Orchestrator parameters."""

    stage_timeout_seconds: float = Field(default=30.0, gt=0)
    quality_score_threshold: float = Field(default=DEFAULT_QUALITY_THRESHOLD, ge=0, le=100)
    max_handoff_size_bytes: int = Field(default=DEFAULT_MAX_HANDOFF_SIZE_BYTES, gt=0)


class SpecialistsConfig(BaseModel):
    """Import path ("package.module:attribute") for each stage's specialist."""

    content: str = ""
    design: str = ""
    quality: str = ""
    delivery: str = ""


class Settings(BaseSettings):
    """Main configuration class."""

    # Paths
    data_dir: Path = Path("data")

    # API Keys
    logfire_token: str = ""

    # Nested configuration sections
    retry: RetryConfig = Field(default_factory=RetryConfig)
    pipeline: PipelineConfig = Field(default_factory=PipelineConfig)
    specialists: SpecialistsConfig = Field(default_factory=SpecialistsConfig)

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

    def to_retry_policy(self) -> RetryPolicy:
        return RetryPolicy(**self.retry.model_dump())

    def load_yaml_config(self) -> None:
        """Load and merge YAML configuration."""
        config_path = self.data_dir / "config.yaml"

        if not config_path.exists():
            logger.warning(
                f"Config file not found: {config_path}. "
                "Using defaults. Run 'python -m mailcraft init' to create it."
            )
            return

        try:
            with open(config_path, "r", encoding="utf-8") as f:
                yaml_config = yaml.safe_load(f)
        except yaml.YAMLError as e:
            logger.error(f"Failed to parse YAML config: {e}")
            raise

        if not yaml_config:
            logger.warning(f"Empty config file: {config_path}")
            return

        for section_name in ["retry", "pipeline", "specialists"]:
            if section_name in yaml_config:
                section = getattr(self, section_name)
                yaml_section = yaml_config[section_name] or {}

                section_dict = section.model_dump()
                section_dict.update(yaml_section)

                new_section = section.__class__(**section_dict)
                setattr(self, section_name, new_section)

        logger.info(f"Loaded configuration from {config_path}")


@lru_cache()
def get_settings() -> Settings:
    """Get singleton Settings instance."""
    settings = Settings()
    settings.load_yaml_config()
    return settings

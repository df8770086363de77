"""Application configuration management."""

from __future__ import annotations

from enum import Enum
from functools import lru_cache
from pathlib import Path
from typing import Any, Literal

from pydantic import Field, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class TimestampFallback(str, Enum):
    """What an entry's timestamp becomes when the block lookup fails."""

    ABSENT = "absent"
    WALL_CLOCK = "wall_clock"


class Settings(BaseSettings):
    """Runtime configuration loaded from environment or `.env`."""

    model_config = SettingsConfigDict(
        env_file=(".env",),
        env_file_encoding="utf-8",
        extra="ignore",
    )

    rpc_url: str = Field(default="http://127.0.0.1:8545", alias="RPC_URL")
    addresses_json: Path = Field(
        default=Path("addresses.json"),
        alias="ADDRESSES_JSON",
    )

    backfill_window_blocks: int = Field(
        default=50_000,
        alias="BACKFILL_WINDOW_BLOCKS",
        ge=1,
    )
    log_query_timeout_seconds: float = Field(
        default=20.0,
        alias="LOG_QUERY_TIMEOUT_SECONDS",
        gt=0,
    )
    aux_read_timeout_seconds: float = Field(
        default=8.0,
        alias="AUX_READ_TIMEOUT_SECONDS",
        gt=0,
    )
    block_lookup_timeout_seconds: float = Field(
        default=5.0,
        alias="BLOCK_LOOKUP_TIMEOUT_SECONDS",
        gt=0,
    )
    poll_interval_seconds: float = Field(
        default=4.0,
        alias="POLL_INTERVAL_SECONDS",
        gt=0,
        le=300,
    )
    timestamp_fallback: TimestampFallback = Field(
        default=TimestampFallback.ABSENT,
        alias="TIMESTAMP_FALLBACK",
    )

    rankings_refresh_seconds: int = Field(
        default=60,
        alias="RANKINGS_REFRESH_SECONDS",
        ge=5,
        le=3600,
    )
    max_ranked_players: int = Field(
        default=100,
        alias="MAX_RANKED_PLAYERS",
        ge=1,
        le=1000,
    )
    ranking_batch_size: int = Field(
        default=10,
        alias="RANKING_BATCH_SIZE",
        ge=1,
        le=100,
    )

    log_level: str = Field(default="INFO", alias="LOG_LEVEL")
    log_format: Literal["json", "console"] = Field(default="json", alias="LOG_FORMAT")

    @field_validator("timestamp_fallback", mode="before")
    @classmethod
    def _parse_fallback(cls, value: Any) -> Any:
        if isinstance(value, str):
            return value.strip().lower().replace("-", "_")
        return value


@lru_cache(maxsize=1)
def load_settings() -> Settings:
    """Return cached Settings instance, raising a helpful message on failure."""
    try:
        return Settings()
    except (
        ValidationError
    ) as exc:  # pragma: no cover - configuration failure visible on boot
        raise RuntimeError(f"Invalid configuration: {exc}") from exc


__all__ = ["Settings", "TimestampFallback", "load_settings"]

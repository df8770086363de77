import pytest
from pydantic import ValidationError

from chainfeed.config import Settings, TimestampFallback


def test_defaults(monkeypatch) -> None:
    monkeypatch.delenv("TIMESTAMP_FALLBACK", raising=False)
    settings = Settings(_env_file=None)

    assert settings.backfill_window_blocks == 50_000
    assert settings.timestamp_fallback is TimestampFallback.ABSENT
    assert settings.rankings_refresh_seconds == 60


def test_reads_environment(monkeypatch) -> None:
    monkeypatch.setenv("RPC_URL", "https://rpc.example")
    monkeypatch.setenv("BACKFILL_WINDOW_BLOCKS", "1000")
    monkeypatch.setenv("TIMESTAMP_FALLBACK", "Wall-Clock")

    settings = Settings(_env_file=None)

    assert settings.rpc_url == "https://rpc.example"
    assert settings.backfill_window_blocks == 1000
    assert settings.timestamp_fallback is TimestampFallback.WALL_CLOCK


def test_rejects_invalid_window(monkeypatch) -> None:
    monkeypatch.setenv("BACKFILL_WINDOW_BLOCKS", "0")

    with pytest.raises(ValidationError):
        Settings(_env_file=None)


def test_log_format(monkeypatch) -> None:
    monkeypatch.setenv("LOG_FORMAT", "console")
    assert Settings(_env_file=None).log_format == "console"

    monkeypatch.setenv("LOG_FORMAT", "xml")
    with pytest.raises(ValidationError):
        Settings(_env_file=None)

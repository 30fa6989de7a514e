"""
Tests for YAML configuration loading.

Covers:
- Loading the shipped config/ directory
- Missing, empty and malformed files
- Environment overrides
"""

from __future__ import annotations

import shutil
from pathlib import Path

import pytest

from carewatch.config import (
    ConfigLoadError,
    ConfigLoader,
    GatewayProvider,
    LogLevel,
    load_config,
)

CONFIG_DIR = Path(__file__).resolve().parents[3] / "config"


@pytest.fixture
def config_dir(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    for name in ("REDIS_URL", "DATABASE_URL", "LOG_LEVEL", "CAREWATCH_FROM_EMAIL", "CONFIG_PATH"):
        monkeypatch.delenv(name, raising=False)
    target = tmp_path / "config"
    shutil.copytree(CONFIG_DIR, target)
    return target


class TestLoadShippedConfig:
    def test_defaults(self, config_dir: Path) -> None:
        config = ConfigLoader(config_dir).load()

        assert config.detection.normal_ranges["heart_rate"].min == 60
        assert config.detection.normal_ranges["heart_rate"].max == 100
        assert config.detection.escalation.after_minutes == 30
        assert config.notifications.delivery.max_attempts == 3
        assert config.notifications.delivery.timeout_seconds == 30
        assert config.notifications.gateways["push"].provider == GatewayProvider.LOG
        assert config.notifications.gateways["sms"].provider == GatewayProvider.HTTP
        assert config.service.storage.redis.metric_retention == 10000
        assert config.redis.url == "redis://localhost:6379"
        assert config.log_level == LogLevel.INFO

    def test_unconfigured_channel_falls_back_to_log_gateway(self, config_dir: Path) -> None:
        config = ConfigLoader(config_dir).load()
        assert config.notifications.get_gateway("pager").provider == GatewayProvider.LOG


class TestErrors:
    def test_missing_directory(self, tmp_path: Path) -> None:
        with pytest.raises(ConfigLoadError) as excinfo:
            ConfigLoader(tmp_path / "absent")
        assert excinfo.value.file_path == tmp_path / "absent"

    def test_missing_file(self, config_dir: Path) -> None:
        (config_dir / "service.yaml").unlink()

        with pytest.raises(ConfigLoadError, match="not found"):
            ConfigLoader(config_dir).load()

    def test_empty_file(self, config_dir: Path) -> None:
        (config_dir / "detection.yaml").write_text("", encoding="utf-8")

        with pytest.raises(ConfigLoadError, match="empty"):
            ConfigLoader(config_dir).load()

    def test_invalid_yaml(self, config_dir: Path) -> None:
        (config_dir / "notifications.yaml").write_text("delivery: [unclosed", encoding="utf-8")

        with pytest.raises(ConfigLoadError) as excinfo:
            ConfigLoader(config_dir).load()
        assert excinfo.value.cause is not None

    def test_http_gateway_requires_endpoint(self, config_dir: Path) -> None:
        (config_dir / "notifications.yaml").write_text(
            "gateways:\n  sms:\n    provider: http\n", encoding="utf-8"
        )

        with pytest.raises(ConfigLoadError, match="notifications"):
            ConfigLoader(config_dir).load()

    def test_range_missing_bound(self, config_dir: Path) -> None:
        (config_dir / "detection.yaml").write_text(
            "normal_ranges:\n  heart_rate:\n    min: 60\n", encoding="utf-8"
        )

        with pytest.raises(ConfigLoadError, match="Missing required field"):
            ConfigLoader(config_dir).load()


class TestEnvironmentOverrides:
    def test_connection_urls_and_sender(
        self, config_dir: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setenv("REDIS_URL", "redis://cache:6380")
        monkeypatch.setenv("DATABASE_URL", "postgresql://u:p@db:5432/cw")
        monkeypatch.setenv("CAREWATCH_FROM_EMAIL", "alerts@care.example")

        config = ConfigLoader(config_dir).load()

        assert config.redis.url == "redis://cache:6380"
        assert config.postgres.url == "postgresql://u:p@db:5432/cw"
        assert config.notifications.delivery.from_email == "alerts@care.example"

    @pytest.mark.parametrize(
        ("value", "expected"),
        [("debug", LogLevel.DEBUG), ("WARNING", LogLevel.WARNING), ("verbose", LogLevel.INFO)],
    )
    def test_log_level(
        self,
        config_dir: Path,
        monkeypatch: pytest.MonkeyPatch,
        value: str,
        expected: LogLevel,
    ) -> None:
        monkeypatch.setenv("LOG_LEVEL", value)
        assert ConfigLoader(config_dir).load().log_level == expected

    def test_load_config_reads_config_path(
        self, config_dir: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setenv("CONFIG_PATH", str(config_dir))
        assert load_config().detection.escalation.consolidation_window_minutes == 15

"""
Unit tests for configuration — environment loading and validation.
"""

from __future__ import annotations

from datetime import timedelta

import pytest
from pydantic import ValidationError

from cert_tracker.config import AppSettings, DatabaseSettings, SchedulerSettings, UploadSettings


class TestDatabaseSettings:
    def test_dsn_wins(self) -> None:
        settings = DatabaseSettings(dsn="postgresql://a:b@db/x", host="ignored")
        assert settings.get_dsn() == "postgresql://a:b@db/x"

    def test_dsn_built_from_components(self) -> None:
        settings = DatabaseSettings(host="db", port=5433, name="certs", username="app", password="s3cret")
        assert settings.get_dsn() == "postgresql://app:s3cret@db:5433/certs"

    def test_missing_components_listed(self) -> None:
        with pytest.raises(ValidationError, match="DATABASE__PASSWORD"):
            DatabaseSettings(host="db", name="certs", username="app")


class TestSchedulerSettings:
    def test_default_is_hourly(self) -> None:
        assert SchedulerSettings().cron == "0 * * * *"

    def test_rejects_wrong_field_count(self) -> None:
        with pytest.raises(ValidationError, match="exactly 5 fields"):
            SchedulerSettings(cron="0 * * *")


class TestAppSettings:
    def test_nested_environment_variables(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """
        GIVEN nested settings in the environment
        WHEN AppSettings is loaded
        THEN the "__" delimiter maps them onto the sub-settings.
        """
        monkeypatch.setenv("DATABASE__DSN", "postgresql://u:p@localhost/certs")
        monkeypatch.setenv("SCHEDULER__CRON", "*/5 * * * *")
        monkeypatch.setenv("UPLOAD__MAX_BYTES", "1024")
        monkeypatch.setenv("MONITORING__REPEAT_AFTER_HOURS", "6")
        monkeypatch.setenv("LOG_LEVEL", "DEBUG")

        settings = AppSettings()

        assert settings.scheduler.cron == "*/5 * * * *"
        assert settings.upload.max_bytes == 1024
        assert settings.monitoring.repeat_after == timedelta(hours=6)
        assert settings.monitoring.history_limit == 100
        assert settings.log_level == "DEBUG"
        assert settings.run_on_startup is False

    def test_upload_limit_must_be_positive(self) -> None:
        with pytest.raises(ValidationError):
            UploadSettings(max_bytes=0)

    def test_default_upload_limit(self) -> None:
        assert UploadSettings().max_bytes == 5 * 1024 * 1024

"""Tests for configuration loading and validation."""

import datetime as dt

import pytest

from src.config import (
    AppConfig,
    SchedulingConfig,
    StoreConfig,
    _safe_float,
    _safe_int,
    _validate_config,
)
from src.utils import garage_timezone


class TestConfigValidation:
    def test_default_config_passes_validation(self):
        config = AppConfig()
        _validate_config(config)  # should not raise

    def test_zero_default_duration_rejected(self):
        config = AppConfig(scheduling=SchedulingConfig(default_service_minutes=0))
        with pytest.raises(ValueError, match="DEFAULT_SERVICE_MINUTES"):
            _validate_config(config)

    @pytest.mark.parametrize("step", [0, -15, 7, 45])
    def test_step_must_divide_an_hour(self, step):
        config = AppConfig(scheduling=SchedulingConfig(slot_step_minutes=step))
        with pytest.raises(ValueError, match="SLOT_STEP_MINUTES"):
            _validate_config(config)

    @pytest.mark.parametrize("step", [5, 10, 15, 20, 30, 60])
    def test_valid_steps_accepted(self, step):
        _validate_config(AppConfig(scheduling=SchedulingConfig(slot_step_minutes=step)))

    def test_non_positive_lock_timeout_rejected(self):
        config = AppConfig(scheduling=SchedulingConfig(lock_timeout_sec=0))
        with pytest.raises(ValueError, match="LOCK_TIMEOUT_SECONDS"):
            _validate_config(config)

    @pytest.mark.parametrize("zone", ["Mars/Olympus_Mons", "../etc"])
    def test_unknown_timezone_rejected(self, zone):
        config = AppConfig(scheduling=SchedulingConfig(timezone=zone))
        with pytest.raises(ValueError, match="GARAGE_TIMEZONE"):
            _validate_config(config)

    def test_utc_needs_no_tz_database(self):
        assert garage_timezone("utc") is dt.timezone.utc

    def test_empty_booking_prefix_rejected(self):
        config = AppConfig(store=StoreConfig(booking_id_prefix="  "))
        with pytest.raises(ValueError, match="BOOKING_ID_PREFIX"):
            _validate_config(config)

    def test_identical_prefixes_rejected(self):
        config = AppConfig(store=StoreConfig(booking_id_prefix="X-", task_id_prefix="X-"))
        with pytest.raises(ValueError, match="must differ"):
            _validate_config(config)


class TestEnvParsing:
    def test_safe_int_reads_env(self, monkeypatch):
        monkeypatch.setenv("GARAGE_TEST_INT", "15")
        assert _safe_int("GARAGE_TEST_INT", "30") == 15

    def test_safe_int_uses_default(self, monkeypatch):
        monkeypatch.delenv("GARAGE_TEST_INT", raising=False)
        assert _safe_int("GARAGE_TEST_INT", "30") == 30

    def test_safe_int_names_variable_on_error(self, monkeypatch):
        monkeypatch.setenv("GARAGE_TEST_INT", "half-hour")
        with pytest.raises(ValueError, match="GARAGE_TEST_INT"):
            _safe_int("GARAGE_TEST_INT", "30")

    def test_safe_float_names_variable_on_error(self, monkeypatch):
        monkeypatch.setenv("GARAGE_TEST_FLOAT", "soon")
        with pytest.raises(ValueError, match="GARAGE_TEST_FLOAT"):
            _safe_float("GARAGE_TEST_FLOAT", "5.0")

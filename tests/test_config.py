"""Tests for settings loading and the process entry point."""

from unittest.mock import MagicMock

import pytest
from pydantic import ValidationError

from doris_webhook import main
from doris_webhook.config import Settings, mask_password


@pytest.fixture
def doris_env(monkeypatch):
    monkeypatch.setenv("DORIS_BE_HTTP", "10.0.0.5:8040")
    monkeypatch.setenv("DORIS_PASSWORD", "hunter22")


class TestSettings:

    def test_reads_environment(self, doris_env, monkeypatch):
        monkeypatch.setenv("DORIS_DATABASE", "analytics")
        monkeypatch.setenv("CORS_ALLOWED_ORIGIN", "https://a.example.com, https://b.example.com")
        monkeypatch.setenv("CORS_ALLOW_CREDENTIALS", "true")

        settings = Settings(_env_file=None)

        assert settings.doris_be_http == "http://10.0.0.5:8040"
        assert settings.doris_database == "analytics"
        assert settings.doris_user == "devops"
        assert settings.cors_allowed_origin == ["https://a.example.com", "https://b.example.com"]
        assert settings.cors_allow_credentials is True

    def test_empty_variables_fall_back_to_defaults(self, doris_env, monkeypatch):
        """Variables rendered as empty strings behave as if unset."""
        for name in ("DEBUG", "CORS_MAX_AGE", "CORS_ALLOW_CREDENTIALS", "DORIS_DATABASE", "CORS_ALLOWED_ORIGIN"):
            monkeypatch.setenv(name, "")

        settings = Settings(_env_file=None)

        assert settings.debug is False
        assert settings.cors_max_age == 3600
        assert settings.cors_allow_credentials is False
        assert settings.doris_database == "video"
        assert settings.cors_allowed_origin == ["*"]
        assert settings.credentials().database == "video"

    def test_empty_required_variables_are_errors(self, monkeypatch):
        monkeypatch.setenv("DORIS_BE_HTTP", "")
        monkeypatch.setenv("DORIS_PASSWORD", "")

        with pytest.raises(ValidationError):
            Settings(_env_file=None)

    def test_keeps_explicit_scheme(self):
        settings = Settings(_env_file=None, doris_be_http="https://be.example.com/", doris_password="pw")

        assert settings.doris_be_http == "https://be.example.com"

    def test_missing_password_is_an_error(self, monkeypatch):
        monkeypatch.setenv("DORIS_BE_HTTP", "be:8040")
        monkeypatch.delenv("DORIS_PASSWORD", raising=False)

        with pytest.raises(ValidationError):
            Settings(_env_file=None)

    def test_empty_password_is_an_error(self):
        with pytest.raises(ValidationError):
            Settings(_env_file=None, doris_be_http="be:8040", doris_password="")

    def test_missing_be_address_is_an_error(self, monkeypatch):
        monkeypatch.delenv("DORIS_BE_HTTP", raising=False)

        with pytest.raises(ValidationError):
            Settings(_env_file=None, doris_password="pw")

    @pytest.mark.parametrize(
        "raw, level",
        [("debug", "DEBUG"), ("WARN", "WARNING"), ("error", "ERROR"), ("verbose", "INFO")],
    )
    def test_log_level_normalization(self, raw, level):
        settings = Settings(_env_file=None, doris_be_http="be", doris_password="pw", log_level=raw)

        assert settings.log_level == level

    def test_credentials_do_not_show_password(self):
        settings = Settings(_env_file=None, doris_be_http="be", doris_password="hunter22")

        credentials = settings.credentials()

        assert credentials.table == "video_metrics"
        assert "hunter22" not in repr(credentials)


@pytest.mark.parametrize(
    "password, masked",
    [("hunter22", "hu****22"), ("abcde", "ab****de"), ("abcd", "****"), ("", "****")],
)
def test_mask_password(password, masked):
    assert mask_password(password) == masked


# =============================================================================
# Entry Point Tests
# =============================================================================

class _FakeServer:
    """Stands in for uvicorn.Server; ``outcome`` decides what run() did."""

    outcome = "clean"

    def __init__(self, config):
        self.config = config
        self.started = False

    def run(self):
        if self.outcome == "bind_failed":
            return
        self.started = True
        if self.outcome == "dropped":
            self.config.app.state.requests.dropped = 2


class TestRun:

    @pytest.fixture(autouse=True)
    def _no_logging_setup(self, monkeypatch):
        monkeypatch.setattr(main, "configure_logging", MagicMock())

    def _run(self, monkeypatch, settings, outcome):
        monkeypatch.setattr(main, "get_settings", lambda: settings)
        monkeypatch.setattr(_FakeServer, "outcome", outcome)
        monkeypatch.setattr(main.uvicorn, "Server", _FakeServer)
        main.run()

    def test_clean_shutdown_returns_normally(self, monkeypatch, settings):
        self._run(monkeypatch, settings, "clean")

    def test_dropped_requests_exit_1(self, monkeypatch, settings):
        with pytest.raises(SystemExit) as exc_info:
            self._run(monkeypatch, settings, "dropped")

        assert exc_info.value.code == 1

    def test_listener_failure_exits_1(self, monkeypatch, settings):
        with pytest.raises(SystemExit) as exc_info:
            self._run(monkeypatch, settings, "bind_failed")

        assert exc_info.value.code == 1

    def test_missing_configuration_exits_1(self, monkeypatch):
        monkeypatch.delenv("DORIS_BE_HTTP", raising=False)
        monkeypatch.delenv("DORIS_PASSWORD", raising=False)
        monkeypatch.setattr(main, "get_settings", lambda: Settings(_env_file=None))

        with pytest.raises(SystemExit) as exc_info:
            main.run()

        assert exc_info.value.code == 1

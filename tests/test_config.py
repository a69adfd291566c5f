"""Tests for environment-driven settings."""

from __future__ import annotations

from portal_calendar import config


def test_defaults(monkeypatch) -> None:
    for name in (config.API_BASE_URL_ENV, config.API_TOKEN_ENV,
                 config.ENVIRONMENT_ENV, config.HTTP_TIMEOUT_ENV):
        monkeypatch.delenv(name, raising=False)
    assert config.api_base_url() == "http://localhost:5000/api"
    assert config.api_token() == ""
    assert config.http_timeout() == 10.0
    assert config.is_production() is False


def test_overrides(monkeypatch) -> None:
    monkeypatch.setenv(config.API_BASE_URL_ENV, "https://portal.example.com/api")
    monkeypatch.setenv(config.ENVIRONMENT_ENV, " Production ")
    monkeypatch.setenv(config.HTTP_TIMEOUT_ENV, "2.5")
    assert config.api_base_url() == "https://portal.example.com/api"
    assert config.is_production() is True
    assert config.http_timeout() == 2.5


def test_bad_timeout_falls_back(monkeypatch) -> None:
    monkeypatch.setenv(config.HTTP_TIMEOUT_ENV, "soon")
    assert config.http_timeout() == config.DEFAULT_HTTP_TIMEOUT

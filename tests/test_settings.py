"""Tests for settings validation and env prefixes."""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from scout.config.settings import (
    GatewaySettings,
    LoggingSettings,
    OrchestratorSettings,
    ResultSettings,
    RouterSettings,
    ToolSettings,
    XAISettings,
)


class TestXAISettings:
    def test_api_key_required(self, monkeypatch) -> None:
        monkeypatch.delenv("XAI_API_KEY", raising=False)
        with pytest.raises(ValidationError):
            XAISettings()

    def test_env_prefix(self, monkeypatch) -> None:
        monkeypatch.setenv("XAI_API_KEY", "k")
        monkeypatch.setenv("XAI_FAST_MODEL", "grok-mini")
        s = XAISettings()
        assert s.api_key == "k"
        assert s.fast_model == "grok-mini"
        assert s.reasoning_model == "grok-4-1-fast-reasoning"
        assert s.base_url == "https://api.x.ai/v1"


class TestRouterSettings:
    def test_defaults(self) -> None:
        s = RouterSettings()
        assert s.classifier == "keyword"
        assert s.default_tier == "reasoning"

    def test_unknown_classifier_rejected(self) -> None:
        with pytest.raises(ValidationError, match="ROUTER_CLASSIFIER must be one of"):
            RouterSettings(classifier="oracle")

    def test_unknown_tier_rejected(self) -> None:
        with pytest.raises(ValidationError, match="ROUTER_DEFAULT_TIER must be one of"):
            RouterSettings(default_tier="turbo")

    def test_preferences_are_exclusive(self) -> None:
        with pytest.raises(ValidationError, match="mutually exclusive"):
            RouterSettings(prefer_speed=True, prefer_quality=True)


class TestResultSettings:
    def test_env_prefix(self, monkeypatch) -> None:
        monkeypatch.delenv("RESULTS_IDLE_SECONDS", raising=False)
        assert ResultSettings().idle_seconds == 3600.0
        monkeypatch.setenv("RESULTS_IDLE_SECONDS", "120")
        assert ResultSettings().idle_seconds == 120.0

    def test_idle_seconds_must_be_positive(self) -> None:
        with pytest.raises(ValidationError):
            ResultSettings(idle_seconds=0)


class TestOrchestratorSettings:
    def test_defaults(self) -> None:
        s = OrchestratorSettings()
        assert s.max_steps == 10
        assert s.default_max_tokens == 4096
        assert s.default_temperature == 0.7

    def test_max_steps_must_be_positive(self) -> None:
        with pytest.raises(ValidationError):
            OrchestratorSettings(max_steps=0)


class TestToolSettings:
    def test_permission_list(self) -> None:
        s = ToolSettings(default_permissions=" read, write ,")
        assert s.permission_list == ["read", "write"]

    def test_unknown_permission_rejected(self) -> None:
        with pytest.raises(ValidationError, match="unknown levels"):
            ToolSettings(default_permissions="read,superuser")


class TestGatewaySettings:
    def test_origin_list(self, monkeypatch) -> None:
        monkeypatch.setenv("GATEWAY_CORS_ORIGINS", "https://a.example, https://b.example")
        assert GatewaySettings().origin_list == ["https://a.example", "https://b.example"]


class TestLoggingSettings:
    def test_level_normalized(self) -> None:
        assert LoggingSettings(level="debug").level == "DEBUG"

    def test_unknown_level_rejected(self) -> None:
        with pytest.raises(ValidationError, match="LOG_LEVEL must be one of"):
            LoggingSettings(level="chatty")

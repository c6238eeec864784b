from __future__ import annotations

from typing import Self

from dotenv import load_dotenv
from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# Load .env once at module import; every BaseSettings group below reads the same env
load_dotenv()

_PERMISSION_LEVELS = ("read", "write", "execute", "admin")


class XAISettings(BaseSettings):
    """xAI (Grok) API settings via OpenAI-compatible endpoint. Env vars prefixed with XAI_."""

    model_config = SettingsConfigDict(env_prefix="XAI_")

    api_key: str  # required: startup fails without it
    base_url: str = "https://api.x.ai/v1"
    fast_model: str = "grok-4-1-fast-non-reasoning"
    reasoning_model: str = "grok-4-1-fast-reasoning"
    max_retries: int = Field(3, ge=0, le=10)


class RouterSettings(BaseSettings):
    """Model tier routing settings. Env vars prefixed with ROUTER_."""

    model_config = SettingsConfigDict(env_prefix="ROUTER_")

    classifier: str = "keyword"
    default_tier: str = "reasoning"  # tier used when classification fails
    prefer_speed: bool = False
    prefer_quality: bool = False

    @field_validator("classifier")
    @classmethod
    def _validate_classifier(cls, v: str) -> str:
        allowed = {"keyword", "model"}
        if v not in allowed:
            raise ValueError(f"ROUTER_CLASSIFIER must be one of {allowed} (got '{v}')")
        return v

    @field_validator("default_tier")
    @classmethod
    def _validate_default_tier(cls, v: str) -> str:
        allowed = {"fast", "reasoning"}
        if v not in allowed:
            raise ValueError(f"ROUTER_DEFAULT_TIER must be one of {allowed} (got '{v}')")
        return v

    @model_validator(mode="after")
    def _validate(self) -> Self:
        if self.prefer_speed and self.prefer_quality:
            raise ValueError("prefer_speed and prefer_quality are mutually exclusive")
        return self


class OrchestratorSettings(BaseSettings):
    """Tool-calling loop settings. Env vars prefixed with ORCHESTRATOR_."""

    model_config = SettingsConfigDict(env_prefix="ORCHESTRATOR_")

    max_steps: int = Field(10, ge=1, le=50)
    default_max_tokens: int = Field(4096, gt=0)
    default_temperature: float = Field(0.7, ge=0.0, le=1.0)
    base_prompt: str = "You are Scout, an expert real estate wholesaling AI assistant."


class ToolSettings(BaseSettings):
    """Tool exposure settings. Env vars prefixed with TOOLS_."""

    model_config = SettingsConfigDict(env_prefix="TOOLS_")

    default_permissions: str = "read,write,execute"  # comma-separated
    rate_window_seconds: float = Field(60.0, gt=0)

    @field_validator("default_permissions")
    @classmethod
    def _validate_default_permissions(cls, v: str) -> str:
        levels = [p.strip() for p in v.split(",") if p.strip()]
        unknown = [p for p in levels if p not in _PERMISSION_LEVELS]
        if unknown:
            raise ValueError(
                f"TOOLS_DEFAULT_PERMISSIONS has unknown levels {unknown}; "
                f"allowed: {_PERMISSION_LEVELS}"
            )
        return ",".join(levels)

    @property
    def permission_list(self) -> list[str]:
        return [p for p in self.default_permissions.split(",") if p]


class ResultSettings(BaseSettings):
    """Per-session result store settings. Env vars prefixed with RESULTS_."""

    model_config = SettingsConfigDict(env_prefix="RESULTS_")

    idle_seconds: float = Field(3600.0, gt=0)  # unsubscribed stores idle this long are evicted


class GatewaySettings(BaseSettings):
    """Gateway server settings. Env vars prefixed with GATEWAY_."""

    model_config = SettingsConfigDict(env_prefix="GATEWAY_")

    host: str = "0.0.0.0"
    port: int = 19789
    cors_origins: str = "*"  # comma-separated

    @property
    def origin_list(self) -> list[str]:
        return [o.strip() for o in self.cors_origins.split(",") if o.strip()]


class LoggingSettings(BaseSettings):
    """Log output settings. Env vars prefixed with LOG_."""

    model_config = SettingsConfigDict(env_prefix="LOG_")

    json_output: bool = False
    level: str = "INFO"

    @field_validator("level")
    @classmethod
    def _validate_level(cls, v: str) -> str:
        v = v.upper()
        allowed = {"DEBUG", "INFO", "WARNING", "ERROR"}
        if v not in allowed:
            raise ValueError(f"LOG_LEVEL must be one of {allowed} (got '{v}')")
        return v


class Settings(BaseSettings):
    """Root settings composing all sub-configurations."""

    model_config = SettingsConfigDict(extra="ignore")

    xai: XAISettings = Field(default_factory=XAISettings)
    router: RouterSettings = Field(default_factory=RouterSettings)
    orchestrator: OrchestratorSettings = Field(default_factory=OrchestratorSettings)
    tools: ToolSettings = Field(default_factory=ToolSettings)
    results: ResultSettings = Field(default_factory=ResultSettings)
    gateway: GatewaySettings = Field(default_factory=GatewaySettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)


def get_settings() -> Settings:
    """Load and validate settings. Raises ValidationError on missing required fields."""
    return Settings()

"""
Configuration management for kubeassist.

Implements multi-level configuration loading with precedence:
1. Environment variables (highest priority)
2. Project config (./.kubeassist/config.yaml)
3. User config (~/.kubeassist/config.yaml)
4. System config (/etc/kubeassist/config.yaml)
"""

import os
from pathlib import Path
from typing import Optional, Tuple

from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict, YamlConfigSettingsSource, PydanticBaseSettingsSource


DEFAULT_MODEL = "gpt-4.1"
DEFAULT_MAX_CONTEXT_LINES = 500

REASONING_EFFORTS = ("", "low", "medium", "high", "xhigh")

# Checked in order when no explicit GitHub token is configured.
GITHUB_TOKEN_ENV_VARS = ("COPILOT_GITHUB_TOKEN", "GH_TOKEN", "GITHUB_TOKEN")


def _from_env(name: Optional[str]) -> str:
    if not name:
        return ""
    return os.environ.get(name, "")


class AzureProviderOptions(BaseModel):
    """Azure specific options for a BYOK provider."""

    api_version: str = Field(default="", description="Azure OpenAI API version")


class ProviderConfig(BaseModel):
    """Bring-your-own-key provider overriding the runtime's built-in provider."""

    type: str = Field(default="openai", description="Provider type (openai, azure, anthropic)")
    base_url: str = Field(default="", description="Provider endpoint. Empty disables the override")
    api_key: Optional[str] = Field(default=None, description="Provider API key")
    api_key_env: Optional[str] = Field(default=None, description="Environment variable holding the API key")
    bearer_token: Optional[str] = Field(default=None, description="Provider bearer token")
    bearer_token_env: Optional[str] = Field(
        default=None, description="Environment variable holding the bearer token"
    )
    wire_api: str = Field(default="", description="Wire protocol override (completions, responses)")
    azure: Optional[AzureProviderOptions] = Field(default=None, description="Azure specific options")

    def resolve_api_key(self) -> str:
        """Resolve the API key: explicit value, then the named environment variable."""
        if self.api_key:
            return self.api_key
        return _from_env(self.api_key_env)

    def resolve_bearer_token(self) -> str:
        """Resolve the bearer token: explicit value, then the named environment variable."""
        if self.bearer_token:
            return self.bearer_token
        return _from_env(self.bearer_token_env)


class Config(BaseSettings):
    """Complete configuration schema for kubeassist with flat structure."""

    model_config = SettingsConfigDict(
        # Load from .env files in order of precedence (lowest to highest)
        env_file=[
            ".env.defaults",  # Project defaults
            ".env",  # Project-specific
            str(Path.home() / ".kubeassist" / ".env"),  # User-specific
        ],
        # Load from YAML files in order of precedence (lowest to highest)
        yaml_file=[
            "/etc/kubeassist/config.yaml",  # System-wide
            str(Path.home() / ".kubeassist" / "config.yaml"),  # User-specific
            str(Path.cwd() / ".kubeassist" / "config.yaml"),  # Project-specific
        ],
        env_prefix="KUBEASSIST_",
        env_nested_delimiter="__",
        case_sensitive=False,
        # Ignore extra fields (like GH_TOKEN that aren't part of config schema)
        extra="ignore",
        env_file_encoding="utf-8",
    )

    # =================================================================
    # AI Configuration (flat)
    # =================================================================

    ai_enabled: bool = Field(default=False, description="Enable AI features")
    ai_model: str = Field(default=DEFAULT_MODEL, description="Model used for new sessions")
    ai_streaming: bool = Field(default=True, description="Stream response deltas")
    ai_max_context_lines: int = Field(
        default=DEFAULT_MAX_CONTEXT_LINES, description="Upper bound for log lines fetched per tool call"
    )
    ai_auto_diagnose: bool = Field(
        default=False, description="Send a diagnostic prompt when a resource chat opens"
    )
    ai_reasoning_effort: str = Field(
        default="", description="Reasoning effort hint (low, medium, high, xhigh)"
    )
    ai_active_skill: str = Field(default="", description="Skill active at startup (empty = all tools)")
    ai_github_token: Optional[str] = Field(default=None, description="Explicit GitHub token")
    ai_provider: Optional[ProviderConfig] = Field(default=None, description="BYOK provider override")
    ai_skills_directory: Optional[str] = Field(
        default=None, description="Directory containing user-defined skill YAML files"
    )

    # =================================================================
    # Kubernetes Configuration (flat)
    # =================================================================

    kubernetes_context: Optional[str] = Field(default=None, description="Kubernetes context to use")
    kubernetes_namespace: str = Field(default="default", description="Default Kubernetes namespace")
    kubectl_timeout_seconds: int = Field(default=30, ge=1, description="Timeout for kubectl calls")

    @field_validator("ai_model", mode="before")
    @classmethod
    def _default_model(cls, value):
        return value or DEFAULT_MODEL

    @field_validator("ai_max_context_lines", mode="before")
    @classmethod
    def _default_max_context_lines(cls, value):
        try:
            value = int(value)
        except (TypeError, ValueError):
            return DEFAULT_MAX_CONTEXT_LINES
        return value if value > 0 else DEFAULT_MAX_CONTEXT_LINES

    @field_validator("ai_reasoning_effort", mode="before")
    @classmethod
    def _normalize_reasoning_effort(cls, value):
        value = (value or "").strip().lower()
        return value if value in REASONING_EFFORTS else ""

    @field_validator("ai_active_skill", mode="before")
    @classmethod
    def _strip_skill(cls, value):
        return (value or "").strip()

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> Tuple[PydanticBaseSettingsSource, ...]:
        """Customize settings sources to include YAML support."""
        yaml_settings = YamlConfigSettingsSource(settings_cls)
        return (
            init_settings,
            env_settings,
            dotenv_settings,
            yaml_settings,
            file_secret_settings,
        )

    def is_ai_enabled(self) -> bool:
        """Return True if AI features are enabled."""
        return self.ai_enabled

    def has_byok_provider(self) -> bool:
        """Return True when a BYOK provider with an endpoint is configured."""
        return self.ai_provider is not None and bool(self.ai_provider.base_url)

    def resolve_github_token(self) -> str:
        """Resolve the GitHub token used to authenticate the agent runtime.

        Precedence: explicit ``ai_github_token``, then the first set of
        COPILOT_GITHUB_TOKEN, GH_TOKEN, GITHUB_TOKEN. An empty string means
        the runtime falls back to the logged-in CLI user.
        """
        if self.ai_github_token:
            return self.ai_github_token
        for name in GITHUB_TOKEN_ENV_VARS:
            token = _from_env(name)
            if token:
                return token
        return ""


def load_config() -> Config:
    """
    Load configuration from all sources with proper precedence.

    Precedence (highest to lowest):
    1. Environment variables (KUBEASSIST_*)
    2. Project config (./.kubeassist/config.yaml)
    3. User config (~/.kubeassist/config.yaml)
    4. System config (/etc/kubeassist/config.yaml)
    5. User .env (~/.kubeassist/.env)
    6. Project .env (./.env)
    7. Project defaults (./.env.defaults)
    8. Default values

    Returns:
        Config: The loaded and validated configuration

    Examples:
        Enable AI and pick a model:
        # export KUBEASSIST_AI_ENABLED=true
        # export KUBEASSIST_AI_MODEL=claude-sonnet-4
        >>> config = load_config()
        >>> print(config.ai_model)
        'claude-sonnet-4'

        BYOK provider via YAML (~/.kubeassist/config.yaml):
        ai_provider:
          type: azure
          base_url: https://my-resource.openai.azure.com
          api_key_env: AZURE_OPENAI_API_KEY
          azure:
            api_version: "2024-10-21"
    """
    return Config()

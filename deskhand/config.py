"""Settings via pydantic-settings with DESKHAND_ env prefix.

Credentials use validation_alias to read the same unprefixed
ANTHROPIC_* env vars the Anthropic tooling uses, so one .env file
works for both.
"""

from typing import Literal

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="DESKHAND_", env_file=".env")

    # Credentials (unprefixed aliases)
    anthropic_api_key: str = Field("", validation_alias="ANTHROPIC_API_KEY")
    # auth_token (Bearer) takes precedence over api_key (x-api-key)
    anthropic_auth_token: str = Field("", validation_alias="ANTHROPIC_AUTH_TOKEN")

    # LLM
    model: str = "claude-opus-4-20250514"
    max_tokens: int = 2000
    thinking_budget: int = 1024  # 0 disables extended thinking
    system_prompt: str = ""
    computer_use_beta: str = "computer-use-2025-01-24"

    # Agent loop
    max_iterations: int = Field(10, ge=1)
    attach_screenshot: bool = False  # default vision mode for /chat

    # Direct API settings
    api_base_url: str = "https://api.anthropic.com"
    api_timeout_connect: int = 10  # seconds
    api_timeout_read: int = 120  # seconds

    # Display geometry advertised to the model
    display_max_width: int = 1920
    display_max_height: int = 1080
    display_fallback_width: int = 1280
    display_fallback_height: int = 800

    # Automation
    automation_backend: Literal["auto", "powershell", "xdotool", "fake"] = "auto"

    # Shell tool policy
    shell_policy: Literal["unrestricted", "allowlist", "disabled"] = "unrestricted"
    shell_allowlist: list[str] = Field(default_factory=list)

    # Runtime
    host: str = "127.0.0.1"
    port: int = 8765
    log_level: str = "info"

    @model_validator(mode="after")
    def _validate_thinking(self) -> "Settings":
        if self.thinking_budget:
            if self.thinking_budget < 1024:
                raise ValueError("thinking_budget must be >= 1024 (API minimum) or 0 to disable")
            if self.thinking_budget >= self.max_tokens:
                raise ValueError(
                    f"thinking_budget ({self.thinking_budget}) must be < "
                    f"max_tokens ({self.max_tokens}). Increase max_tokens."
                )
        return self

    @property
    def has_credentials(self) -> bool:
        return bool(self.anthropic_api_key or self.anthropic_auth_token)

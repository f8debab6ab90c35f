"""Configuration model for the test execution engine."""

from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Any, Optional

from dotenv import load_dotenv
from pydantic import BaseModel, Field, ValidationError, field_validator

from shortest.errors import ConfigError

CONFIG_FILENAME = "shortest.config.json"
ENV_FILES = (".env", ".env.local")

# Environment variables consulted when the config file leaves a value unset.
API_KEY_ENV = "ANTHROPIC_API_KEY"
TOTP_SECRET_ENVS = ("SHORTEST_TOTP_SECRET", "GITHUB_TOTP_SECRET")


def resolve_env_reference(value: Any) -> Any:
    """Resolve ``env:NAME`` strings from the process environment."""
    if isinstance(value, str) and value.startswith("env:"):
        env_var = value[4:]
        resolved = os.environ.get(env_var)
        if resolved is None:
            raise ValueError(f"Environment variable '{env_var}' not set")
        return resolved
    return value


class ShortestConfig(BaseModel):
    # Target
    base_url: str = "http://localhost:3000"
    test_pattern: str = "**/*.test.*"

    # Browser
    headless: bool = False
    action_timeout_ms: int = 10000
    viewport_width: int = 1280
    viewport_height: int = 720

    # Run behavior
    cache_enabled: bool = True
    debug_ai: bool = False
    confidence: str = "100"
    # Optional override of the level -> attempt-count table, e.g. {"80": 10}
    confidence_attempts: dict[str, int] = Field(default_factory=dict)

    # AI settings
    ai_model: str = "claude-sonnet-4-20250514"
    ai_max_tokens: int = 1024
    max_iterations_per_step: int = 15
    verify_replay_with_ai: bool = False

    # Credentials
    anthropic_api_key: Optional[str] = None
    totp_secret: Optional[str] = None

    # Local working state (cache, debug logs, reports)
    state_dir: str = ".shortest"

    @field_validator("anthropic_api_key", "totp_secret", mode="before")
    @classmethod
    def resolve_env_secret(cls, v: Any) -> Any:
        return resolve_env_reference(v)

    @field_validator("max_iterations_per_step")
    @classmethod
    def positive_iterations(cls, v: int) -> int:
        if v < 1:
            raise ValueError("max_iterations_per_step must be at least 1")
        return v

    @property
    def state_path(self) -> Path:
        return Path(self.state_dir)

    @classmethod
    def load(
        cls, path: str | Path | None = None, root: str | Path = "."
    ) -> "ShortestConfig":
        """Load config from JSON plus environment files.

        A missing default config file is not an error (all fields have
        defaults); an explicitly named missing file is.
        """
        root = Path(root)
        for env_name in ENV_FILES:
            env_file = root / env_name
            if env_file.exists():
                load_dotenv(env_file, override=False)

        data: dict[str, Any] = {}
        config_path = Path(path) if path else root / CONFIG_FILENAME
        if config_path.exists():
            try:
                with open(config_path) as f:
                    data = json.load(f)
            except json.JSONDecodeError as e:
                raise ConfigError(f"Config file {config_path} is not valid JSON: {e}") from e
        elif path:
            raise ConfigError(f"Config file not found: {config_path}")

        if not data.get("anthropic_api_key") and os.environ.get(API_KEY_ENV):
            data["anthropic_api_key"] = os.environ[API_KEY_ENV]
        if not data.get("totp_secret"):
            for env_var in TOTP_SECRET_ENVS:
                if os.environ.get(env_var):
                    data["totp_secret"] = os.environ[env_var]
                    break

        try:
            return cls(**data)
        except ValidationError as e:
            raise ConfigError(f"Invalid configuration in {config_path}: {e}") from e

    def with_overrides(self, **overrides: Any) -> "ShortestConfig":
        """Return a copy with every non-None override applied (CLI flags)."""
        updates = {k: v for k, v in overrides.items() if v is not None}
        return self.model_copy(update=updates)

    def save(self, path: str | Path) -> None:
        """Save config to a JSON file. Secrets are never written."""
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        data = self.model_dump(exclude={"anthropic_api_key", "totp_secret"})
        with open(path, "w") as f:
            json.dump(data, f, indent=2)

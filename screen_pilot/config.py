"""Configuration management for Screen Pilot."""

from pathlib import Path
from typing import Literal

import yaml
from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from screen_pilot.exceptions import ConfigurationError


# Paths
DEFAULT_CONFIG_PATH = Path("~/.screen-pilot/config.yaml").expanduser()
LOCAL_CONFIG_FILENAME = "config.yaml"

MEGABYTE = 1024 * 1024


class AgentConfig(BaseModel):
    """Step loop configuration."""

    max_steps: int = Field(default=300, ge=1)
    lookback: int = Field(default=7, ge=1)
    first_chunk_policy: Literal["user_only", "full"] = "user_only"
    tool_error_policy: Literal["inject", "raise"] = "inject"
    alternate_models: bool = True
    # directory of markdown files replacing the packaged prompts by name
    prompts_dir: str | None = None


class CompletionConfig(BaseModel):
    """Completion tool verification configuration."""

    max_attempts_before_force: int = Field(default=3, ge=0)
    max_history_items: int = Field(default=95, ge=1)


class TransportConfig(BaseModel):
    """Message transport guard configuration."""

    image_cache_size: int = Field(default=7, ge=1)
    max_images: int = Field(default=95, ge=0)
    # gemini rejects payloads above 20MB
    max_payload_bytes: int = 18 * MEGABYTE
    url_image_estimate_bytes: int = 1 * MEGABYTE
    download_timeout: float = 30.0


class RetryConfig(BaseModel):
    """Backoff executor defaults."""

    max_attempts: int = Field(default=3, ge=1)
    initial_delay: float = Field(default=0.5, ge=0.0)


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: str = "INFO"
    format: str = "console"


class Config(BaseSettings):
    """Main configuration for Screen Pilot."""

    agent: AgentConfig = Field(default_factory=AgentConfig)
    completion: CompletionConfig = Field(default_factory=CompletionConfig)
    transport: TransportConfig = Field(default_factory=TransportConfig)
    retry: RetryConfig = Field(default_factory=RetryConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    model_config = SettingsConfigDict(
        env_prefix="PILOT_",
        env_file=".env",
        env_nested_delimiter="__",
    )

    @classmethod
    def resolve_default_config_path(cls) -> Path:
        """Resolve default config path with local-first precedence."""
        local_path = Path.cwd() / LOCAL_CONFIG_FILENAME
        if local_path.exists():
            return local_path
        return DEFAULT_CONFIG_PATH

    @classmethod
    def from_yaml(cls, path: Path | str | None = None) -> "Config":
        """Load configuration from YAML file."""
        config_path = Path(path).expanduser() if path else cls.resolve_default_config_path()

        if not config_path.exists():
            return cls()

        try:
            with open(config_path) as f:
                data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Invalid YAML in {config_path}: {e}") from e

        if not isinstance(data, dict):
            raise ConfigurationError(f"Config file {config_path} must contain a mapping")
        return cls(**data)

    @classmethod
    def load(cls) -> "Config":
        """Load configuration from the resolved YAML path; env vars fill fields YAML leaves unset."""
        return cls.from_yaml()

    def save(self, path: Path | str | None = None) -> None:
        """Save configuration to YAML file."""
        config_path = Path(path) if path else DEFAULT_CONFIG_PATH
        config_path.parent.mkdir(parents=True, exist_ok=True)

        data = self.model_dump(exclude_none=True)

        with open(config_path, "w") as f:
            yaml.dump(data, f, default_flow_style=False, sort_keys=False)


# Global config instance
_config: Config | None = None


def get_config() -> Config:
    """Get the global configuration instance."""
    global _config
    if _config is None:
        _config = Config.load()
    return _config


def set_config(config: Config) -> None:
    """Set the global configuration instance."""
    global _config
    _config = config

"""Configuration management for Numidium."""

from pathlib import Path
from typing import Literal

import yaml
from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


# Paths
DEFAULT_CONFIG_PATH = Path("~/.numidium/config.yaml").expanduser()
DEFAULT_DB_PATH = Path("~/.numidium/sessions.db").expanduser()
LOCAL_CONFIG_FILENAME = "numidium.yaml"

RouterStage = Literal["pattern", "classification", "llm_guided"]


class ModelConfig(BaseModel):
    """Primary model and backend connection."""

    provider: str = "ollama"
    model: str = "qwen2.5-coder:7b"
    host: str = "http://localhost:11434"
    temperature: float = 0.7
    timeout: float = 120.0
    retries: int = 3


class ContextConfig(BaseModel):
    """Context window configuration."""

    max_tokens: int = 8192
    compaction_threshold: float = 0.8
    keep_recent: int = 4
    chars_per_token: float = 3.5


class RouterConfig(BaseModel):
    """Intent router configuration."""

    stages: list[RouterStage] = ["pattern", "classification", "llm_guided"]
    execution_threshold: float = 0.7
    classification_model: str = ""
    context_messages: int = 6
    llm_guided_temperature: float = 0.2


class ShellToolConfig(BaseModel):
    """Shell tool configuration."""

    timeout: int = 30
    max_timeout: int = 300
    blocked: list[str] = [
        "mkfs",
        "rm -rf /$",
        r"rm -rf /\*$",
    ]
    allowed_commands: list[str] = []


class ToolsConfig(BaseModel):
    """Tools configuration."""

    enabled: list[str] = [
        "write_file",
        "read_file",
        "run_shell_command",
        "list_directory",
        "analyze_project",
        "generate_code",
    ]
    shell: ShellToolConfig = Field(default_factory=ShellToolConfig)


class PermissionsConfig(BaseModel):
    """Confirmation defaults."""

    auto_approve_safe: bool = False


class SessionConfig(BaseModel):
    """Session configuration."""

    path: str = str(DEFAULT_DB_PATH)
    auto_save: bool = False


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: str = "WARNING"
    format: str = "console"


class Config(BaseSettings):
    """Main configuration for Numidium."""

    model: ModelConfig = Field(default_factory=ModelConfig)
    context: ContextConfig = Field(default_factory=ContextConfig)
    router: RouterConfig = Field(default_factory=RouterConfig)
    tools: ToolsConfig = Field(default_factory=ToolsConfig)
    permissions: PermissionsConfig = Field(default_factory=PermissionsConfig)
    session: SessionConfig = Field(default_factory=SessionConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    model_config = SettingsConfigDict(
        env_prefix="NUMIDIUM_",
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

        with open(config_path) as f:
            data = yaml.safe_load(f) or {}

        return cls(**data)

    @classmethod
    def load(cls) -> "Config":
        """Load configuration from the resolved YAML file.

        Environment variables fill any section the YAML file leaves out.
        """
        return cls.from_yaml()

    def save(self, path: Path | str | None = None) -> None:
        """Save configuration to YAML file."""
        config_path = Path(path).expanduser() if path else DEFAULT_CONFIG_PATH
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

"""Configuration loading and validation."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path

import yaml

AI_PROVIDERS = ("ollama", "anthropic")


@dataclass
class StorageConfig:
    sqlite_path: str = "replyvet.db"


@dataclass
class AIConfig:
    provider: str = "ollama"
    model: str = "mistral-nemo"
    pass2_model: str = ""
    ollama_base_url: str = "http://localhost:11434"
    ollama_api_key: str = ""
    timeout_seconds: float = 30.0
    transport_retries: int = 1

    def to_provider_dict(self) -> dict:
        """Return a dict suitable for passing to get_provider()."""
        return {
            "ollama_base_url": self.ollama_base_url,
            "ollama_api_key": self.ollama_api_key,
            "timeout": self.timeout_seconds,
            "max_retries": self.transport_retries,
        }

    def model_spec(self, pass_number: int = 1) -> str:
        """Return the 'provider:model' spec for the given classification pass."""
        if pass_number == 2 and self.pass2_model:
            # Ollama tags contain a colon too ("qwen2.5:7b"); only a known
            # provider prefix makes this a full spec
            prefix = self.pass2_model.split(":", 1)[0]
            if prefix in AI_PROVIDERS:
                return self.pass2_model
            return f"{self.provider}:{self.pass2_model}"
        return f"{self.provider}:{self.model}"


@dataclass
class VerdictThresholds:
    # Auto-reply needs both passes above these
    auto_reply_pass1: float = 93
    auto_reply_pass2: float = 80
    # Weaker agreement goes to human review
    review_pass1: float = 75
    review_pass2: float = 60


@dataclass
class SchedulerConfig:
    interval_seconds: int = 600
    jitter_seconds: int = 120
    base_delay_seconds: int = 300
    max_retry_attempts: int = 3
    lookback_hours: int = 24
    batch_limit: int = 100


@dataclass
class AutoReplyConfig:
    record_no_action: bool = True
    snippet_chars: int = 1000
    dry_run: bool = False


@dataclass
class GmailConfig:
    credentials_file: str = "credentials.json"
    token_file: str = "token.json"


@dataclass
class LoggingConfig:
    level: str = "INFO"
    format: str = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


@dataclass
class Config:
    storage: StorageConfig = field(default_factory=StorageConfig)
    ai: AIConfig = field(default_factory=AIConfig)
    verdict: VerdictThresholds = field(default_factory=VerdictThresholds)
    scheduler: SchedulerConfig = field(default_factory=SchedulerConfig)
    auto_reply: AutoReplyConfig = field(default_factory=AutoReplyConfig)
    gmail: GmailConfig = field(default_factory=GmailConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)


def _dict_to_config(data: dict) -> Config:
    """Convert a raw dict to a Config dataclass, handling nested structures."""
    from dacite import Config as DaciteConfig, from_dict

    # YAML gives ints for thresholds and seconds; let them land in float fields
    return from_dict(data_class=Config, data=data, config=DaciteConfig(cast=[float]))


def _find_config_file() -> Path | None:
    """Search for config file in standard locations."""
    # 1. Environment variable
    env_path = os.environ.get("REPLYVET_CONFIG")
    if env_path:
        p = Path(env_path)
        if p.exists():
            return p

    # 2. Current directory
    local = Path("config.yaml")
    if local.exists():
        return local

    # 3. XDG config dir
    xdg = Path.home() / ".config" / "replyvet" / "config.yaml"
    if xdg.exists():
        return xdg

    return None


def _load_dotenv() -> None:
    """Load .env file from current directory if it exists."""
    env_path = Path(".env")
    if not env_path.exists():
        return
    for line in env_path.read_text().splitlines():
        line = line.strip()
        if not line or line.startswith("#"):
            continue
        if "=" not in line:
            continue
        key, _, value = line.partition("=")
        key = key.strip()
        value = value.strip()
        # Don't overwrite already-set env vars
        if key not in os.environ:
            os.environ[key] = value


def _apply_env_overrides(config: Config) -> Config:
    """Override config values from environment variables.

    Supports:
        ollama_host       -> config.ai.ollama_base_url
        ollama_api_key    -> config.ai.ollama_api_key
        model_name        -> config.ai.model
        pass2_model_name  -> config.ai.pass2_model
    """
    if os.environ.get("ollama_host"):
        config.ai.ollama_base_url = os.environ["ollama_host"]
    if os.environ.get("ollama_api_key"):
        config.ai.ollama_api_key = os.environ["ollama_api_key"]
    if os.environ.get("model_name"):
        config.ai.model = os.environ["model_name"]
    if os.environ.get("pass2_model_name"):
        config.ai.pass2_model = os.environ["pass2_model_name"]
    return config


def load_config(path: str | Path | None = None) -> Config:
    """Load configuration from YAML file, merging with defaults.

    Also loads .env file and applies environment variable overrides.
    """
    _load_dotenv()

    if path is not None:
        config_path = Path(path)
        if not config_path.exists():
            raise FileNotFoundError(f"Config file not found: {config_path}")
    else:
        config_path = _find_config_file()

    if config_path is None:
        config = Config()
    else:
        with open(config_path) as f:
            raw = yaml.safe_load(f) or {}
        config = _dict_to_config(raw)

    return _apply_env_overrides(config)


def configure_logging(config: Config) -> None:
    """Set up root logging from the logging section."""
    level = getattr(logging, config.logging.level.upper(), logging.INFO)
    logging.basicConfig(level=level, format=config.logging.format)
    # Provider HTTP chatter drowns out the scheduler at INFO
    logging.getLogger("httpx").setLevel(max(level, logging.WARNING))

"""
Configuration loader for ASKAI.
Merges built-in defaults with the user's <home>/config.yaml and env overrides.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field


# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

class ProvidersConfig(BaseModel):
    timeout_seconds: float = 60.0
    litellm_model: str = "gemini/gemini-2.0-flash"
    daemon_preload: list[str] = Field(default_factory=lambda: ["gemini"])


class PrewarmPair(BaseModel):
    prompt: str
    command: str


class CacheConfig(BaseModel):
    enabled: bool = True
    file: str = "cache.json"
    ttl_seconds: int = Field(default=3600, gt=0)
    max_entries: int = Field(default=1000, gt=0)
    prewarm: list[PrewarmPair] = Field(default_factory=list)


class HistoryConfig(BaseModel):
    enabled: bool = True
    file: str = "history.json"
    max_entries: int = Field(default=100, gt=0)
    context_size: int = Field(default=3, ge=0)


class DaemonConfig(BaseModel):
    enabled: bool = True
    socket: str = "daemon.sock"
    pid_file: str = "daemon.pid"
    log_file: str = "daemon.log"
    max_workers: int = Field(default=8, gt=0)
    client_timeout: float = 30.0
    read_timeout: float = Field(default=5.0, gt=0)
    startup_timeout: float = 10.0


class BatchConfig(BaseModel):
    max_parallel: int = Field(default=4, gt=0)
    max_depth: int = Field(default=3, ge=0)
    exclude_dirs: list[str] = Field(default_factory=list)


class ExecutionConfig(BaseModel):
    shell: str = "/bin/bash"
    timeout_seconds: float = 300.0


class AskAIConfig(BaseModel):
    home: Path = Field(default_factory=lambda: default_home())
    default_provider: str = "gemini"
    providers: ProvidersConfig = Field(default_factory=ProvidersConfig)
    cache: CacheConfig = Field(default_factory=CacheConfig)
    history: HistoryConfig = Field(default_factory=HistoryConfig)
    daemon: DaemonConfig = Field(default_factory=DaemonConfig)
    batch: BatchConfig = Field(default_factory=BatchConfig)
    execution: ExecutionConfig = Field(default_factory=ExecutionConfig)
    blocked_patterns: list[str] = Field(default_factory=list)

    def resolve(self, name: str) -> Path:
        """Resolve a state file name against the ASKAI home directory."""
        path = Path(name).expanduser()
        return path if path.is_absolute() else self.home / path

    @property
    def cache_path(self) -> Path:
        return self.resolve(self.cache.file)

    @property
    def history_path(self) -> Path:
        return self.resolve(self.history.file)

    @property
    def socket_path(self) -> Path:
        return self.resolve(self.daemon.socket)

    @property
    def pid_path(self) -> Path:
        return self.resolve(self.daemon.pid_file)

    @property
    def daemon_log_path(self) -> Path:
        return self.resolve(self.daemon.log_file)


# ---------------------------------------------------------------------------
# Loader
# ---------------------------------------------------------------------------

_DEFAULT_CONFIG_PATH = Path(__file__).parent / "config.yaml"


class ConfigError(ValueError):
    pass


def default_home() -> Path:
    return Path(os.environ.get("ASKAI_HOME") or Path.home() / ".askai").expanduser()


def _deep_merge(base: dict, override: dict) -> dict:
    """Recursively merge override into base."""
    merged = base.copy()
    for key, value in override.items():
        if key in merged and isinstance(merged[key], dict) and isinstance(value, dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def _read_yaml(path: Path) -> dict[str, Any]:
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {path}: {e}") from e
    if not isinstance(data, dict):
        raise ConfigError(f"Config file {path} must contain a mapping")
    return data


def load_config(home: Path | None = None) -> AskAIConfig:
    """
    Load config by merging:
      1. Built-in defaults (askai/config.yaml)
      2. User overrides (<home>/config.yaml)
      3. Environment variable overrides
    """
    home = (home or default_home()).expanduser()

    # 1. Built-in defaults
    base = _read_yaml(_DEFAULT_CONFIG_PATH)

    # 2. User overrides
    user_config = home / "config.yaml"
    if user_config.exists():
        base = _deep_merge(base, _read_yaml(user_config))

    # 3. Env overrides
    if os.environ.get("ASKAI_PROVIDER"):
        base["default_provider"] = os.environ["ASKAI_PROVIDER"]
    if os.environ.get("ASKAI_NO_DAEMON"):
        base = _deep_merge(base, {"daemon": {"enabled": False}})

    base["home"] = home
    try:
        return AskAIConfig(**base)
    except ValueError as e:
        raise ConfigError(f"Invalid configuration: {e}") from e


def validate_api_keys() -> dict[str, bool]:
    """Check which API keys are available for the litellm provider."""
    return {
        "ANTHROPIC_API_KEY": bool(os.environ.get("ANTHROPIC_API_KEY")),
        "OPENAI_API_KEY":    bool(os.environ.get("OPENAI_API_KEY")),
        "GOOGLE_API_KEY":    bool(os.environ.get("GOOGLE_API_KEY")),
        "GEMINI_API_KEY":    bool(os.environ.get("GEMINI_API_KEY")),
    }

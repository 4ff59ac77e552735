"""
Remote Text Configuration — Load and validate remote_text.yaml at startup.

Usage:
    from remote_text.engine.config import load_config, get_config
"""

from __future__ import annotations

from pathlib import Path
from typing import Dict, Optional

import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator

from remote_text.engine.errors import ConfigError

CONFIG_FILENAME = "remote_text.yaml"


# ---------------------------------------------------------------------------
# Pydantic models for remote_text.yaml
# ---------------------------------------------------------------------------

class StorageConfig(BaseModel):
    files_dir: str = "files"
    previews_dir: str = "previews"


class IdentityConfig(BaseModel):
    committer_name: str = "Remote Text"
    committer_email: str = "blinky@remote-text.com"
    anonymous_author: str = "anonymous"


class RepositoryConfig(BaseModel):
    default_branch: str = "main"
    reject_stale_parent: bool = False

    @field_validator("default_branch")
    @classmethod
    def validate_branch(cls, v: str) -> str:
        if not v or v.startswith("/") or ".." in v or " " in v:
            raise ValueError(f"invalid default_branch '{v}'")
        return v


class PreviewsConfig(BaseModel):
    compile_timeout_seconds: float = 60.0
    pdflatex_command: str = "pdflatex"
    pandoc_command: str = "pandoc"


class APIConfig(BaseModel):
    max_body_bytes: int = Field(default=16 * 1024, gt=0)
    prefix: str = "/api/v2"


class LogRetentionConfig(BaseModel):
    execution_days: int = 90
    performance_days: int = 30


class LogAsyncQueueConfig(BaseModel):
    flush_interval_ms: int = 100
    flush_batch_size: int = 50
    max_queue_size: int = 10000


class LoggingConfig(BaseModel):
    level: str = "WARNING"
    directory: str = ".remote_text/logs"
    compress_after_days: int = 7
    retention: LogRetentionConfig = LogRetentionConfig()
    async_queue: LogAsyncQueueConfig = LogAsyncQueueConfig()

    @field_validator("level")
    @classmethod
    def validate_level(cls, v: str) -> str:
        level = v.upper()
        if level not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            raise ValueError(f"unknown log level '{v}'")
        return level

    def retention_days(self) -> Dict[str, int]:
        return {
            "execution": self.retention.execution_days,
            "performance": self.retention.performance_days,
        }


class ServiceConfig(BaseModel):
    """Root model for remote_text.yaml."""
    name: str = "Remote Text"
    version: str = "0.3.0"
    environment: str = "dev"

    storage: StorageConfig = StorageConfig()
    identity: IdentityConfig = IdentityConfig()
    repository: RepositoryConfig = RepositoryConfig()
    previews: PreviewsConfig = PreviewsConfig()
    api: APIConfig = APIConfig()
    logging: LoggingConfig = LoggingConfig()

    @field_validator("environment")
    @classmethod
    def validate_environment(cls, v: str) -> str:
        if v not in ("dev", "staging", "prod"):
            raise ValueError(f"environment must be dev/staging/prod, got '{v}'")
        return v

    def files_root(self, base: Optional[Path] = None) -> Path:
        """Repository root, resolved against base when relative."""
        return _resolve(self.storage.files_dir, base)

    def previews_root(self, base: Optional[Path] = None) -> Path:
        """Compiled-artifact cache root, resolved against base when relative."""
        return _resolve(self.storage.previews_dir, base)

    def log_root(self, base: Optional[Path] = None) -> Path:
        return _resolve(self.logging.directory, base)


def _resolve(raw: str, base: Optional[Path]) -> Path:
    path = Path(raw).expanduser()
    if path.is_absolute() or base is None:
        return path
    return base / path


# ---------------------------------------------------------------------------
# Config Loading Functions
# ---------------------------------------------------------------------------

_config: Optional[ServiceConfig] = None


def _find_project_root() -> Path:
    """Find the project root by looking for remote_text.yaml."""
    current = Path.cwd()
    for parent in [current, *current.parents]:
        if (parent / CONFIG_FILENAME).exists():
            return parent
    return current


def get_project_root() -> Path:
    return _find_project_root()


def load_config(config_path: Optional[str] = None) -> ServiceConfig:
    """
    Load and validate remote_text.yaml.

    Args:
        config_path: Explicit path to the config file. If None, auto-discovers.

    Returns:
        Validated ServiceConfig instance. Defaults if the file is absent.

    Raises:
        ConfigError: file exists but is not valid YAML or fails validation.
    """
    global _config

    if config_path is None:
        config_path = str(_find_project_root() / CONFIG_FILENAME)

    path = Path(config_path)
    if not path.exists():
        _config = ServiceConfig()
        return _config

    try:
        with open(path, "r", encoding="utf-8") as f:
            raw = yaml.safe_load(f) or {}
    except (OSError, yaml.YAMLError) as e:
        raise ConfigError(f"Cannot read {path}: {e}", path=str(path)) from e

    if not isinstance(raw, dict):
        raise ConfigError(f"{path} must contain a mapping at the top level", path=str(path))

    # Top-level "service:" block carries name/version/environment
    service = raw.pop("service", {}) or {}
    for key in ("name", "version", "environment"):
        if key in service and key not in raw:
            raw[key] = service[key]

    try:
        _config = ServiceConfig(**raw)
    except ValidationError as e:
        raise ConfigError(f"Invalid configuration in {path}: {e}", path=str(path)) from e
    return _config


def get_config() -> ServiceConfig:
    """Get the currently loaded config, loading if necessary."""
    global _config
    if _config is None:
        _config = load_config()
    return _config


def reset_config() -> None:
    """Forget the loaded config (tests, CLI --config switching)."""
    global _config
    _config = None


def default_config_yaml() -> str:
    """Render the defaults as YAML, used by `remote-text init`."""
    data = ServiceConfig().model_dump()
    service = {k: data.pop(k) for k in ("name", "version", "environment")}
    return yaml.safe_dump({"service": service, **data}, sort_keys=False)

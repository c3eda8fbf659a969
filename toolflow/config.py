from __future__ import annotations

import os
from typing import Literal, Optional

import yaml
from pydantic import BaseModel

from .constants import (
    DEFAULT_BACKOFF_BASE,
    DEFAULT_CACHE_DIR,
    DEFAULT_CONFIG_FILE,
    DEFAULT_SQLITE_PATH,
)

CacheBackendName = Literal["memory", "file", "sqlite", "redis"]


class RedisConfig(BaseModel):
    """Configuration for the Redis cache tier."""

    host: str = "localhost"
    port: int = 6379
    db: int = 0
    password: Optional[str] = None


class CacheConfig(BaseModel):
    """Persistent cache tier settings."""

    backend: CacheBackendName = "file"
    directory: str = DEFAULT_CACHE_DIR
    sqlite_path: str = DEFAULT_SQLITE_PATH
    redis: RedisConfig = RedisConfig()


class RetryConfig(BaseModel):
    """Backoff applied between step retries: ``backoff_base ** attempt`` seconds."""

    backoff_base: float = DEFAULT_BACKOFF_BASE


class ToolflowConfig(BaseModel):
    """Top-level configuration model."""

    cache: CacheConfig = CacheConfig()
    retry: RetryConfig = RetryConfig()
    log_level: str = "INFO"


def load_config(path: Optional[str] = None) -> ToolflowConfig:
    """Load configuration from YAML file.

    Args:
        path: Optional path to config file. Falls back to TOOLFLOW_CONFIG env
            variable or 'toolflow.yaml' in the current directory.
    """

    config_path = path or os.getenv("TOOLFLOW_CONFIG", DEFAULT_CONFIG_FILE)
    if os.path.exists(config_path):
        with open(config_path) as f:
            data = yaml.safe_load(f) or {}
        config = ToolflowConfig(**data)
    else:
        config = ToolflowConfig()

    env_backend = os.getenv("TOOLFLOW_CACHE_BACKEND")
    if env_backend:
        config.cache = CacheConfig.model_validate(
            {**config.cache.model_dump(), "backend": env_backend.lower()}
        )
    env_dir = os.getenv("TOOLFLOW_CACHE_DIR")
    if env_dir:
        config.cache.directory = env_dir
    env_level = os.getenv("TOOLFLOW_LOG_LEVEL")
    if env_level:
        config.log_level = env_level.upper()
    return config

"""Shared defaults for toolflow."""

DEFAULT_CONFIG_FILE = "toolflow.yaml"
DEFAULT_CACHE_DIR = ".toolflow/cache"
DEFAULT_SQLITE_PATH = ".toolflow/cache.db"
DEFAULT_BACKOFF_BASE = 2.0
MAX_STEP_RETRIES = 10
REDIS_KEY_PREFIX = "toolflow:cache"

"""
Runtime configuration for context persistence, backups, session capture and retrieval.

Values come from environment variables with development-friendly defaults.
"""

import os
from dataclasses import dataclass
from pathlib import Path
from typing import List

# Storage root; contexts, backups and sessions live in subdirectories
DATA_DIR = os.getenv("DATA_DIR", "./.context-keeper")

DEBUG = os.getenv("DEBUG", "false").lower() == "true"

# Seed example records on first run (development convenience)
SEED_EXAMPLES = os.getenv("SEED_EXAMPLES", "true").lower() == "true"

# Backup scheduling
BACKUP_ENABLED = os.getenv("BACKUP_ENABLED", "true").lower() == "true"
BACKUP_FREQUENCY_MS = int(os.getenv("BACKUP_FREQUENCY_MS", str(60 * 60 * 1000)))  # hourly
BACKUP_RETENTION_DAYS = float(os.getenv("BACKUP_RETENTION_DAYS", "30"))
BACKUP_INITIAL_DELAY_MS = int(os.getenv("BACKUP_INITIAL_DELAY_MS", "10000"))

# Session capture
CAPTURE_ENABLED = os.getenv("CAPTURE_ENABLED", "true").lower() == "true"
CAPTURE_AUTO = os.getenv("CAPTURE_AUTO", "true").lower() == "true"
CAPTURE_INTERVAL_MS = int(os.getenv("CAPTURE_INTERVAL_MS", str(5 * 60 * 1000)))
CAPTURE_INITIAL_DELAY_MS = int(os.getenv("CAPTURE_INITIAL_DELAY_MS", "30000"))
CAPTURE_MIN_CONTENT_LENGTH = int(os.getenv("CAPTURE_MIN_CONTENT_LENGTH", "100"))
CAPTURE_MAX_SESSIONS = int(os.getenv("CAPTURE_MAX_SESSIONS", "10"))
CAPTURE_IDLE_MS = int(os.getenv("CAPTURE_IDLE_MS", str(60 * 1000)))
CAPTURE_MAX_AGE_MS = int(os.getenv("CAPTURE_MAX_AGE_MS", str(30 * 60 * 1000)))

# Embeddings and similarity retrieval
EMBED_PROVIDER = os.getenv("EMBED_PROVIDER", "none")  # none|hash|sentence_transformers|openai
EMBED_MODEL_NAME = os.getenv("EMBED_MODEL_NAME", "all-MiniLM-L6-v2")
EMBED_DIMENSION = int(os.getenv("EMBED_DIMENSION", "1536"))
OPENAI_EMBED_MODEL = os.getenv("OPENAI_EMBED_MODEL", "text-embedding-ada-002")
MIN_RELEVANCE_SCORE = float(os.getenv("MIN_RELEVANCE_SCORE", "0.6"))
MAX_RELATED_CONTEXTS = int(os.getenv("MAX_RELATED_CONTEXTS", "5"))

VALID_EMBED_PROVIDERS = ["none", "hash", "sentence_transformers", "openai"]

# Version string
VERSION = "1.0.0"

# Embedded in every backup; restore refuses any other value
BACKUP_FORMAT_VERSION = "1.0.0"


def _env_bool(name: str, default: bool) -> bool:
    return os.getenv(name, str(default).lower()).lower() == "true"


@dataclass
class Settings:
    """Snapshot of the environment-derived configuration."""
    data_dir: Path
    seed_examples: bool
    backup_enabled: bool
    backup_frequency_ms: int
    backup_retention_days: float
    backup_initial_delay_ms: int
    capture_enabled: bool
    capture_auto: bool
    capture_interval_ms: int
    capture_initial_delay_ms: int
    capture_min_content_length: int
    capture_max_sessions: int
    capture_idle_ms: int
    capture_max_age_ms: int
    embed_provider: str
    embed_model_name: str
    embed_dimension: int
    openai_api_key: str
    openai_embed_model: str
    min_relevance_score: float
    max_related_contexts: int

    @property
    def contexts_dir(self) -> Path:
        return self.data_dir / "contexts"

    @property
    def backups_dir(self) -> Path:
        return self.data_dir / "backups"

    @property
    def sessions_dir(self) -> Path:
        return self.data_dir / "sessions"


def load_settings() -> Settings:
    """Build Settings from the current environment.

    Read at call time rather than import time so tests and scripts can
    adjust the environment first.
    """
    return Settings(
        data_dir=Path(os.getenv("DATA_DIR", DATA_DIR)),
        seed_examples=_env_bool("SEED_EXAMPLES", SEED_EXAMPLES),
        backup_enabled=_env_bool("BACKUP_ENABLED", BACKUP_ENABLED),
        backup_frequency_ms=int(os.getenv("BACKUP_FREQUENCY_MS", BACKUP_FREQUENCY_MS)),
        backup_retention_days=float(os.getenv("BACKUP_RETENTION_DAYS", BACKUP_RETENTION_DAYS)),
        backup_initial_delay_ms=int(os.getenv("BACKUP_INITIAL_DELAY_MS", BACKUP_INITIAL_DELAY_MS)),
        capture_enabled=_env_bool("CAPTURE_ENABLED", CAPTURE_ENABLED),
        capture_auto=_env_bool("CAPTURE_AUTO", CAPTURE_AUTO),
        capture_interval_ms=int(os.getenv("CAPTURE_INTERVAL_MS", CAPTURE_INTERVAL_MS)),
        capture_initial_delay_ms=int(os.getenv("CAPTURE_INITIAL_DELAY_MS", CAPTURE_INITIAL_DELAY_MS)),
        capture_min_content_length=int(os.getenv("CAPTURE_MIN_CONTENT_LENGTH", CAPTURE_MIN_CONTENT_LENGTH)),
        capture_max_sessions=int(os.getenv("CAPTURE_MAX_SESSIONS", CAPTURE_MAX_SESSIONS)),
        capture_idle_ms=int(os.getenv("CAPTURE_IDLE_MS", CAPTURE_IDLE_MS)),
        capture_max_age_ms=int(os.getenv("CAPTURE_MAX_AGE_MS", CAPTURE_MAX_AGE_MS)),
        embed_provider=os.getenv("EMBED_PROVIDER", EMBED_PROVIDER),
        embed_model_name=os.getenv("EMBED_MODEL_NAME", EMBED_MODEL_NAME),
        embed_dimension=int(os.getenv("EMBED_DIMENSION", EMBED_DIMENSION)),
        openai_api_key=os.getenv("OPENAI_API_KEY", ""),
        openai_embed_model=os.getenv("OPENAI_EMBED_MODEL", OPENAI_EMBED_MODEL),
        min_relevance_score=float(os.getenv("MIN_RELEVANCE_SCORE", MIN_RELEVANCE_SCORE)),
        max_related_contexts=int(os.getenv("MAX_RELATED_CONTEXTS", MAX_RELATED_CONTEXTS)),
    )


def debug_enabled():
    """Check if debug mode is enabled."""
    return os.getenv("DEBUG", "false").lower() == "true"


def ensure_data_directories(settings: Settings):
    """Ensure the storage directories exist."""
    for path in (settings.contexts_dir, settings.backups_dir, settings.sessions_dir):
        path.mkdir(parents=True, exist_ok=True)


def validate_settings(settings: Settings) -> List[str]:
    """Validate configuration and return any issues."""
    issues = []

    if settings.embed_provider not in VALID_EMBED_PROVIDERS:
        issues.append(f"Invalid EMBED_PROVIDER: {settings.embed_provider}")

    if settings.embed_provider == "openai" and not settings.openai_api_key:
        issues.append("EMBED_PROVIDER=openai requires OPENAI_API_KEY")

    if settings.backup_frequency_ms < 1000:
        issues.append("BACKUP_FREQUENCY_MS must be >= 1000")

    if settings.backup_retention_days <= 0:
        issues.append("BACKUP_RETENTION_DAYS must be > 0")

    if settings.capture_interval_ms < 1000:
        issues.append("CAPTURE_INTERVAL_MS must be >= 1000")

    if settings.capture_max_sessions < 1:
        issues.append("CAPTURE_MAX_SESSIONS must be >= 1")

    if settings.capture_min_content_length < 0:
        issues.append("CAPTURE_MIN_CONTENT_LENGTH must be >= 0")

    if not 0.0 <= settings.min_relevance_score <= 1.0:
        issues.append("MIN_RELEVANCE_SCORE must be between 0 and 1")

    if settings.max_related_contexts < 1:
        issues.append("MAX_RELATED_CONTEXTS must be >= 1")

    return issues

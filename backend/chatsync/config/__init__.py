"""Centralised configuration helper.

Every module reads its configuration from the single :class:`Settings`
object returned by :func:`get_settings` instead of calling ``os.getenv``
directly.  Values are read from the process environment after the project
``.env`` file (``.env.test`` when ``NODE_ENV=test``) has been loaded with
*python-dotenv*.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from dotenv import load_dotenv

# ``backend/chatsync/config/__init__.py`` -> repository root is three levels up.
_REPO_ROOT = Path(__file__).resolve().parents[3]


def _truthy(value: str | None) -> bool:  # noqa: D401 – small helper
    """Return *True* when *value* looks like an affirmative string."""

    if value is None:
        return False
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    return _truthy(raw)


@dataclass
class Settings:  # noqa: D401 – simple data container
    """Lightweight settings container populated from environment variables."""

    # Runtime flags -----------------------------------------------------
    testing: bool
    environment: Any

    # Database ---------------------------------------------------------
    database_url: str
    store_timeout_seconds: float

    # Logging ----------------------------------------------------------
    log_level: str

    # Alignment policy -------------------------------------------------
    # Both knobs trade unnecessary full rewrites against applying a wrong
    # diff, so they are tunable per deployment.
    alignment_min_match_ratio: float
    alignment_require_role_match: bool

    # Limits -----------------------------------------------------------
    max_messages_per_conversation: int
    max_conversations_per_owner: int

    # HTTP -------------------------------------------------------------
    allowed_cors_origins: str

    @property
    def resolved_database_url(self) -> str:
        """Return the configured URL or the default for the current mode."""

        if self.database_url:
            return self.database_url
        if self.testing:
            return "sqlite:///:memory:"
        return "sqlite:///./chatsync.db"

    # Helper for tests to override values at runtime -------------------
    def override(self, **kwargs: Any) -> None:  # pragma: no cover – test util
        for key, value in kwargs.items():
            if not hasattr(self, key):
                raise AttributeError(f"Settings has no attribute '{key}'")
            setattr(self, key, value)


def _load_settings() -> Settings:  # noqa: D401 – helper
    """Populate :class:`Settings` from environment variables."""

    node_env = os.getenv("NODE_ENV", "development")

    if node_env == "test":
        env_path = _REPO_ROOT / ".env.test"
        if not env_path.exists():
            env_path = _REPO_ROOT / ".env"
    else:
        env_path = _REPO_ROOT / ".env"

    if env_path.exists():
        # Explicit TESTING from the test-runner wins over the file.
        current_testing = os.getenv("TESTING")
        load_dotenv(env_path, override=True)
        if current_testing:
            os.environ["TESTING"] = current_testing

    testing = _truthy(os.getenv("TESTING"))

    return Settings(
        testing=testing,
        environment=os.getenv("ENVIRONMENT"),
        database_url=os.getenv("DATABASE_URL", ""),
        store_timeout_seconds=float(os.getenv("STORE_TIMEOUT_SECONDS", "30")),
        log_level=os.getenv("LOG_LEVEL", "INFO"),
        alignment_min_match_ratio=float(os.getenv("ALIGNMENT_MIN_MATCH_RATIO", "0.3")),
        alignment_require_role_match=_env_bool("ALIGNMENT_REQUIRE_ROLE_MATCH", True),
        max_messages_per_conversation=int(os.getenv("MAX_MESSAGES_PER_CONVERSATION", "1000")),
        max_conversations_per_owner=int(os.getenv("MAX_CONVERSATIONS_PER_OWNER", "100")),
        allowed_cors_origins=os.getenv("ALLOWED_CORS_ORIGINS", ""),
    )


def _validate(settings: Settings) -> None:  # noqa: D401 – helper
    """Abort startup on configuration that can never work."""

    problems = []

    if not 0.0 <= settings.alignment_min_match_ratio <= 1.0:
        problems.append("ALIGNMENT_MIN_MATCH_RATIO must be between 0 and 1")
    if settings.store_timeout_seconds <= 0:
        problems.append("STORE_TIMEOUT_SECONDS must be positive")
    if settings.max_messages_per_conversation < 1:
        problems.append("MAX_MESSAGES_PER_CONVERSATION must be at least 1")
    if settings.max_conversations_per_owner < 1:
        problems.append("MAX_CONVERSATIONS_PER_OWNER must be at least 1")

    if problems:
        raise RuntimeError("Invalid configuration: " + "; ".join(problems))


def get_settings() -> Settings:  # noqa: D401 – public accessor
    """Return :class:`Settings` instance loaded from environment."""

    settings = _load_settings()
    _validate(settings)
    return settings


__all__ = [
    "Settings",
    "get_settings",
]

"""Runtime settings for the summarization pipeline."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path

from chat_digest.exceptions import ConfigurationError

ENV_PREFIX = "CHAT_DIGEST_"

DEFAULT_ENDPOINT = os.environ.get(
    "CHAT_DIGEST_ENDPOINT", "http://localhost:3000/generate"
)
DEFAULT_DB_PATH = Path.home() / ".chat_digest" / "history.sqlite"


class ReleasePolicy(str, Enum):
    """When the single-flight guard is released after a run."""

    ALWAYS = "always"  # success, failure or cancellation
    ON_SUCCESS = "on_success"  # failures keep the guard until reset()


def _env(name: str, default: str | None = None) -> str | None:
    return os.environ.get(ENV_PREFIX + name, default)


def _env_float(name: str, default: float | None) -> float | None:
    raw = _env(name)
    if raw is None or raw == "":
        return default
    if raw.lower() == "none":
        return None
    try:
        return float(raw)
    except ValueError as e:
        raise ConfigurationError(f"{ENV_PREFIX}{name} must be a number, got {raw!r}") from e


def _env_int(name: str, default: int) -> int:
    raw = _env(name)
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except ValueError as e:
        raise ConfigurationError(f"{ENV_PREFIX}{name} must be an integer, got {raw!r}") from e


@dataclass
class SummarizerSettings:
    """Tunables for selection, collection, the remote call and retry.

    Args:
        endpoint_url: Full URL of the remote summarization endpoint.
        request_timeout: Per-request httpx timeout in seconds.
        resource_timeout: Overall deadline for one exchange in seconds.
        retry_budget: Number of re-sends after a retryable failure.
        retry_delay: Seconds to wait before each re-send.
        group_member_threshold: Groups are selected only below this size.
        history_window: Most recent messages fetched per conversation.
        lookback_days: Trailing window for messages of interest.
        branch_timeout: Per-conversation lookup timeout; None waits forever.
        release_policy: When the single-flight guard is released.
        prompt_language: Language the summary is requested in.
        db_path: SQLite file backing the summary history.
    """

    endpoint_url: str = DEFAULT_ENDPOINT
    request_timeout: float = 120.0
    resource_timeout: float = 300.0
    retry_budget: int = 3
    retry_delay: float = 2.0
    group_member_threshold: int = 50
    history_window: int = 50
    lookback_days: int = 7
    branch_timeout: float | None = 10.0
    release_policy: ReleasePolicy = ReleasePolicy.ALWAYS
    prompt_language: str = "English"
    db_path: Path = field(default_factory=lambda: DEFAULT_DB_PATH)

    def __post_init__(self):
        if self.retry_budget < 0:
            raise ConfigurationError("retry_budget must be >= 0")
        if self.retry_delay < 0:
            raise ConfigurationError("retry_delay must be >= 0")
        if self.group_member_threshold < 1:
            raise ConfigurationError("group_member_threshold must be >= 1")
        if self.history_window < 1:
            raise ConfigurationError("history_window must be >= 1")
        if self.lookback_days < 1:
            raise ConfigurationError("lookback_days must be >= 1")
        if self.branch_timeout is not None and self.branch_timeout <= 0:
            raise ConfigurationError("branch_timeout must be positive or None")
        if not isinstance(self.release_policy, ReleasePolicy):
            try:
                self.release_policy = ReleasePolicy(self.release_policy)
            except ValueError as e:
                raise ConfigurationError(
                    f"Unknown release policy: {self.release_policy!r}"
                ) from e
        self.db_path = Path(self.db_path)

    @classmethod
    def from_env(cls) -> "SummarizerSettings":
        """Build settings from ``CHAT_DIGEST_*`` environment variables."""
        return cls(
            endpoint_url=_env("ENDPOINT", DEFAULT_ENDPOINT),
            request_timeout=_env_float("REQUEST_TIMEOUT", 120.0),
            resource_timeout=_env_float("RESOURCE_TIMEOUT", 300.0),
            retry_budget=_env_int("RETRY_BUDGET", 3),
            retry_delay=_env_float("RETRY_DELAY", 2.0),
            group_member_threshold=_env_int("GROUP_MEMBER_THRESHOLD", 50),
            history_window=_env_int("HISTORY_WINDOW", 50),
            lookback_days=_env_int("LOOKBACK_DAYS", 7),
            branch_timeout=_env_float("BRANCH_TIMEOUT", 10.0),
            release_policy=_env("RELEASE_POLICY", ReleasePolicy.ALWAYS.value),
            prompt_language=_env("PROMPT_LANGUAGE", "English"),
            db_path=Path(_env("DB_PATH", str(DEFAULT_DB_PATH))),
        )

"""Runtime configuration for batch runs and the GitHub collaborator."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from urllib.parse import urlparse

from throttle_requests.batch.scheduler import DEFAULT_LIMIT
from throttle_requests.github.contributors import (
    DEFAULT_API_BASE_URL,
    DEFAULT_PER_PAGE,
    MAX_PER_PAGE,
)
from throttle_requests.http.fetcher import DEFAULT_MAX_RETRIES, DEFAULT_TIMEOUT_SECONDS

DEFAULT_OWNER = "DefinitelyTyped"
DEFAULT_REPO = "DefinitelyTyped"


@dataclass(slots=True)
class BatchSettings:
    """Concurrency settings shared by every batch."""

    limit: int = DEFAULT_LIMIT
    unit_timeout_seconds: float | None = None


@dataclass(slots=True)
class GithubSettings:
    """GitHub REST API settings."""

    api_base_url: str = DEFAULT_API_BASE_URL
    token: str | None = None
    per_page: int = DEFAULT_PER_PAGE
    request_timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS
    max_retries: int = DEFAULT_MAX_RETRIES
    default_owner: str = DEFAULT_OWNER
    default_repo: str = DEFAULT_REPO

    def auth_headers(self) -> dict[str, str]:
        if not self.token:
            return {}
        return {"Authorization": f"Bearer {self.token}"}


@dataclass(slots=True)
class Settings:
    """Application settings grouped by concern."""

    batch: BatchSettings = field(default_factory=BatchSettings)
    github: GithubSettings = field(default_factory=GithubSettings)

    @classmethod
    def from_env(cls) -> Settings:
        """Load settings from the environment, falling back to defaults."""

        return cls(
            batch=BatchSettings(
                limit=_env_int("THROTTLE_REQUESTS_LIMIT", DEFAULT_LIMIT),
                unit_timeout_seconds=_env_optional_float(
                    "THROTTLE_REQUESTS_UNIT_TIMEOUT_SECONDS",
                ),
            ),
            github=GithubSettings(
                api_base_url=os.getenv(
                    "THROTTLE_REQUESTS_GITHUB_API_URL",
                    DEFAULT_API_BASE_URL,
                ).strip(),
                token=os.getenv("GITHUB_TOKEN", "").strip() or None,
                per_page=_env_int("THROTTLE_REQUESTS_GITHUB_PER_PAGE", DEFAULT_PER_PAGE),
                request_timeout_seconds=_env_float(
                    "THROTTLE_REQUESTS_GITHUB_TIMEOUT_SECONDS",
                    DEFAULT_TIMEOUT_SECONDS,
                ),
                max_retries=_env_int("THROTTLE_REQUESTS_GITHUB_MAX_RETRIES", DEFAULT_MAX_RETRIES),
                default_owner=os.getenv("THROTTLE_REQUESTS_GITHUB_OWNER", DEFAULT_OWNER),
                default_repo=os.getenv("THROTTLE_REQUESTS_GITHUB_REPO", DEFAULT_REPO),
            ),
        )

    def validate(self) -> None:
        """Raise ``ValueError`` naming the first invalid setting."""

        if self.batch.limit <= 0:
            raise ValueError("THROTTLE_REQUESTS_LIMIT must be > 0.")
        if self.batch.unit_timeout_seconds is not None and self.batch.unit_timeout_seconds <= 0:
            raise ValueError("THROTTLE_REQUESTS_UNIT_TIMEOUT_SECONDS must be > 0.")
        parsed = urlparse(self.github.api_base_url)
        if parsed.scheme not in {"http", "https"} or not parsed.netloc:
            raise ValueError(
                "Invalid THROTTLE_REQUESTS_GITHUB_API_URL: "
                f"{self.github.api_base_url!r}. Expected an absolute http(s) URL.",
            )
        if not 1 <= self.github.per_page <= MAX_PER_PAGE:
            raise ValueError(
                f"THROTTLE_REQUESTS_GITHUB_PER_PAGE must be between 1 and {MAX_PER_PAGE}.",
            )
        if self.github.request_timeout_seconds <= 0:
            raise ValueError("THROTTLE_REQUESTS_GITHUB_TIMEOUT_SECONDS must be > 0.")
        if self.github.max_retries < 0:
            raise ValueError("THROTTLE_REQUESTS_GITHUB_MAX_RETRIES must be >= 0.")


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    try:
        return int(value.strip())
    except ValueError as error:
        raise ValueError(f"Invalid integer value for {name}: {value!r}") from error


def _env_float(name: str, default: float) -> float:
    value = _env_optional_float(name)
    return default if value is None else value


def _env_optional_float(name: str) -> float | None:
    value = os.getenv(name)
    if value is None or not value.strip():
        return None
    try:
        return float(value.strip())
    except ValueError as error:
        raise ValueError(f"Invalid number value for {name}: {value!r}") from error

"""GitHub contributors: list a repository's contributors and fetch each profile."""

from __future__ import annotations

from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass
from typing import Any
from urllib.parse import quote

from throttle_requests.http.fetcher import AsyncHttpFetcher, FetchError

DEFAULT_API_BASE_URL = "https://api.github.com"
DEFAULT_PER_PAGE = 100
MAX_PER_PAGE = 100


def contributors_url(
    owner: str,
    repo: str,
    *,
    api_base_url: str = DEFAULT_API_BASE_URL,
    per_page: int = DEFAULT_PER_PAGE,
) -> str:
    """Build the contributors endpoint URL for ``owner/repo``."""

    if not owner.strip() or not repo.strip():
        raise ValueError("Both owner and repo are required.")
    if not 1 <= per_page <= MAX_PER_PAGE:
        raise ValueError(f"per_page must be between 1 and {MAX_PER_PAGE}, got {per_page}")
    base = api_base_url.rstrip("/")
    return (
        f"{base}/repos/{quote(owner.strip(), safe='')}/{quote(repo.strip(), safe='')}"
        f"/contributors?per_page={per_page}"
    )


@dataclass(frozen=True, slots=True)
class Contributor:
    """Public profile fields shown for one contributor."""

    login: str
    blog: str = ""
    name: str | None = None
    html_url: str | None = None

    @classmethod
    def from_payload(cls, payload: Any, *, url: str = "") -> Contributor:
        if not isinstance(payload, dict) or not isinstance(payload.get("login"), str):
            raise FetchError(
                message=f"Unexpected user payload from {url or '<unknown>'}",
                url=url,
                code="decode",
            )
        return cls(
            login=payload["login"],
            blog=payload.get("blog") or "",
            name=payload.get("name"),
            html_url=payload.get("html_url"),
        )

    def display_line(self) -> str:
        return f"{self.login} - {self.blog}"


class GithubContributorsClient:
    """Thin GitHub REST client built on :class:`AsyncHttpFetcher`."""

    def __init__(
        self,
        fetcher: AsyncHttpFetcher,
        *,
        api_base_url: str = DEFAULT_API_BASE_URL,
        per_page: int = DEFAULT_PER_PAGE,
    ) -> None:
        self._fetcher = fetcher
        self._api_base_url = api_base_url
        self._per_page = per_page

    def contributors_url(self, owner: str, repo: str) -> str:
        return contributors_url(
            owner,
            repo,
            api_base_url=self._api_base_url,
            per_page=self._per_page,
        )

    async def list_contributor_urls(self, owner: str, repo: str) -> list[str]:
        """Return the profile API URL of every contributor on the first page."""

        url = self.contributors_url(owner, repo)
        payload = await self._fetcher.fetch_json(url)
        if not isinstance(payload, list):
            raise FetchError(
                message=f"Expected a list of contributors from {url}",
                url=url,
                code="decode",
            )
        # Anonymous contributors carry no profile url.
        return [
            entry["url"]
            for entry in payload
            if isinstance(entry, dict) and isinstance(entry.get("url"), str)
        ]

    async def fetch_contributor(self, url: str) -> Contributor:
        payload = await self._fetcher.fetch_json(url)
        return Contributor.from_payload(payload, url=url)

    def profile_operations(
        self,
        urls: Iterable[str],
    ) -> list[Callable[[], Awaitable[Contributor]]]:
        """One zero-argument operation per profile URL, in the given order."""

        return [self._profile_operation(url) for url in urls]

    def _profile_operation(self, url: str) -> Callable[[], Awaitable[Contributor]]:
        async def _operation() -> Contributor:
            return await self.fetch_contributor(url)

        return _operation

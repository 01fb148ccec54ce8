from __future__ import annotations

import allure
import httpx
import pytest

from throttle_requests.batch.progress import ProgressAggregator
from throttle_requests.batch.runner import run_batch
from throttle_requests.github.contributors import (
    Contributor,
    GithubContributorsClient,
    contributors_url,
)
from throttle_requests.http.fetcher import AsyncHttpFetcher, FetchError

pytestmark = [
    allure.epic("Collaborators"),
    allure.feature("GitHub Contributors"),
]

API = "https://api.example.com"


def _github_handler(request: httpx.Request) -> httpx.Response:
    path = request.url.path
    if path == "/repos/acme/widgets/contributors":
        return httpx.Response(
            200,
            json=[
                {"login": "alice", "url": f"{API}/users/alice"},
                {"login": "bob", "url": f"{API}/users/bob"},
                {"type": "Anonymous", "email": "anon@example.com"},
                {"login": "ghost", "url": f"{API}/users/ghost"},
            ],
        )
    if path == "/users/alice":
        return httpx.Response(200, json={"login": "alice", "blog": "https://alice.dev"})
    if path == "/users/bob":
        return httpx.Response(200, json={"login": "bob", "blog": None, "name": "Bob"})
    return httpx.Response(404, json={"message": "Not Found"})


def _client(handler=_github_handler) -> GithubContributorsClient:
    fetcher = AsyncHttpFetcher(transport=httpx.MockTransport(handler))
    return GithubContributorsClient(fetcher, api_base_url=API)


def test_contributors_url_defaults() -> None:
    assert contributors_url("DefinitelyTyped", "DefinitelyTyped") == (
        "https://api.github.com/repos/DefinitelyTyped/DefinitelyTyped/contributors?per_page=100"
    )


def test_contributors_url_quotes_and_strips() -> None:
    url = contributors_url(" a b ", "c/d", api_base_url="https://ghe.local/api/v3/", per_page=5)
    assert url == "https://ghe.local/api/v3/repos/a%20b/c%2Fd/contributors?per_page=5"


@pytest.mark.parametrize(
    ("owner", "repo", "per_page", "match"),
    [
        ("", "repo", 100, "owner and repo"),
        ("own", " ", 100, "owner and repo"),
        ("o", "r", 0, "per_page"),
        ("o", "r", 101, "per_page"),
    ],
)
def test_contributors_url_rejects_bad_input(
    owner: str,
    repo: str,
    per_page: int,
    match: str,
) -> None:
    with pytest.raises(ValueError, match=match):
        contributors_url(owner, repo, per_page=per_page)


def test_contributor_from_payload_and_display_line() -> None:
    contributor = Contributor.from_payload(
        {"login": "alice", "blog": "https://alice.dev", "html_url": "https://github.com/alice"},
    )
    assert contributor.display_line() == "alice - https://alice.dev"
    assert contributor.html_url == "https://github.com/alice"
    assert Contributor.from_payload({"login": "bob", "blog": None}).display_line() == "bob - "


def test_contributor_from_payload_rejects_non_user() -> None:
    with pytest.raises(FetchError) as excinfo:
        Contributor.from_payload(["not", "a", "user"], url=f"{API}/users/x")
    assert excinfo.value.code == "decode"


@pytest.mark.asyncio
async def test_list_contributor_urls_skips_anonymous_entries() -> None:
    client = _client()

    urls = await client.list_contributor_urls("acme", "widgets")

    assert urls == [f"{API}/users/alice", f"{API}/users/bob", f"{API}/users/ghost"]


@pytest.mark.asyncio
async def test_list_contributor_urls_rejects_non_list_payload() -> None:
    client = _client(lambda request: httpx.Response(200, json={"message": "Moved"}))

    with pytest.raises(FetchError, match="Expected a list"):
        await client.list_contributor_urls("acme", "widgets")


@pytest.mark.asyncio
async def test_profile_batch_collects_values_and_errors() -> None:
    client = _client()
    urls = await client.list_contributor_urls("acme", "widgets")
    aggregator: ProgressAggregator[Contributor] = ProgressAggregator()

    final = await run_batch(client.profile_operations(urls), aggregator, limit=2)

    assert sorted(c.login for c in final.values) == ["alice", "bob"]
    assert len(final.errors) == 1
    error = final.errors[0]
    assert isinstance(error, FetchError)
    assert error.status_code == 404
    assert final.percentage_loaded == 100

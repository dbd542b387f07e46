"""
Shared test fixtures for octoterm tests.

GitHub is faked with an httpx.MockTransport behind a real GitHubGateway, so
request shapes and error mapping are exercised by every test.
"""

import json
from collections.abc import AsyncGenerator
from typing import Any, Callable, Dict, List, Optional, Tuple

import httpx
import pytest
import pytest_asyncio

from octoterm.config import GitHubConfig
from octoterm.gateway import GitHubGateway

API = "https://api.github.com"
GRAPHQL = f"{API}/graphql"


def make_thread(
    thread_id: str,
    subject_type: str = "Issue",
    title: str = "Something happened",
    url: Optional[str] = None,
    updated_at: str = "2024-05-01T12:00:00Z",
    repo: str = "octo/hello",
    latest_comment_url: Optional[str] = None,
) -> Dict[str, Any]:
    """Notification thread JSON as returned by GET /notifications."""
    owner, name = repo.split("/")
    return {
        "id": thread_id,
        "unread": True,
        "updated_at": updated_at,
        "url": f"{API}/notifications/threads/{thread_id}",
        "subject": {
            "type": subject_type,
            "title": title,
            "url": url,
            "latest_comment_url": latest_comment_url,
        },
        "repository": {"name": name, "full_name": repo, "owner": {"login": owner}},
    }


class FakeGitHub:
    """Routes requests to canned responses and records what was asked."""

    def __init__(self):
        self.requests: List[httpx.Request] = []
        self.routes: Dict[Tuple[str, str], Tuple[int, Any, Dict[str, str]]] = {}
        self.pages: Dict[int, Tuple[int, Any]] = {}
        self.last_page = 1
        self.graphql_handler: Optional[Callable[[str, Dict[str, Any]], Dict[str, Any]]] = None

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self)

    def add(self, method: str, url: str, status: int = 200, body: Any = None, headers=None) -> None:
        self.routes[(method, url)] = (status, body, headers or {})

    def set_inbox(self, *pages: List[Dict[str, Any]]) -> None:
        """One list of threads per page."""
        self.pages = {index: (200, items) for index, items in enumerate(pages, start=1)}
        self.last_page = max(len(pages), 1)

    def fail_page(self, page: int, status: int = 500, message: str = "Server Error") -> None:
        self.pages[page] = (status, {"message": message})

    def garble_page(self, page: int, content: bytes = b"<html>Unicorn!</html>") -> None:
        """Answer 200 with a body that is not JSON."""
        self.pages[page] = (200, content)

    def calls(self, method: Optional[str] = None) -> List[httpx.Request]:
        return [r for r in self.requests if method is None or r.method == method]

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        url = str(request.url.copy_with(query=None))

        if request.method == "GET" and url == f"{API}/notifications":
            page = int(request.url.params.get("page", "1"))
            status, body = self.pages.get(page, (200, []))
            headers = {}
            if page < self.last_page:
                headers["Link"] = (
                    f'<{API}/notifications?page={page + 1}&per_page=50>; rel="next", '
                    f'<{API}/notifications?page={self.last_page}&per_page=50>; rel="last"'
                )
            return _response(status, body, headers)

        if request.method == "POST" and url == GRAPHQL and self.graphql_handler is not None:
            payload = json.loads(request.content)
            return httpx.Response(200, json=self.graphql_handler(payload["query"], payload["variables"]))

        route = self.routes.get((request.method, url))
        if route is None:
            return httpx.Response(404, json={"message": "Not Found"})
        status, body, headers = route
        return _response(status, body, headers)


def _response(status: int, body: Any, headers: Dict[str, str]) -> httpx.Response:
    """JSON-encode the body; bytes are sent as-is and None means no body."""
    if body is None:
        return httpx.Response(status, headers=headers)
    if isinstance(body, bytes):
        return httpx.Response(status, content=body, headers=headers)
    return httpx.Response(status, json=body, headers=headers)


@pytest.fixture
def github_config() -> GitHubConfig:
    return GitHubConfig(
        token="test-token",
        api_url=API,
        graphql_url=GRAPHQL,
        timeout_seconds=5.0,
    )


@pytest.fixture
def fake_github() -> FakeGitHub:
    return FakeGitHub()


@pytest_asyncio.fixture
async def gateway(github_config, fake_github) -> AsyncGenerator[GitHubGateway, None]:
    gw = GitHubGateway(github_config, transport=fake_github.transport())
    yield gw
    await gw.close()

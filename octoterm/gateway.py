"""Authenticated GitHub REST/GraphQL client used by the refresh pipeline."""

import logging
from typing import Any, Dict, List, Optional, Tuple

import httpx

from .config import GitHubConfig
from .errors import AuthenticationError, FetchError, RateLimitError

logger = logging.getLogger(__name__)

API_VERSION = "2022-11-28"


class GitHubGateway:
    """
    Thin async wrapper around one ``httpx.AsyncClient``.

    The gateway is constructed once and passed to every pipeline stage. It
    owns authentication, the per-call timeout and the mapping of HTTP and
    GraphQL failures onto the pipeline's error types.
    """

    def __init__(self, config: GitHubConfig, transport: Optional[httpx.AsyncBaseTransport] = None):
        """
        Initialize the gateway.

        Args:
            config: GitHub configuration.
            transport: Optional httpx transport, used by tests to fake GitHub.
        """
        self.config = config
        self.client = httpx.AsyncClient(
            base_url=config.api_url,
            headers={
                "Authorization": f"Bearer {config.token}",
                "Accept": "application/vnd.github+json",
                "X-GitHub-Api-Version": API_VERSION,
                "User-Agent": "octoterm",
            },
            timeout=config.timeout_seconds,
            transport=transport,
        )

    async def close(self) -> None:
        await self.client.aclose()

    async def __aenter__(self) -> "GitHubGateway":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    async def _request(self, method: str, url: str, **kwargs) -> httpx.Response:
        try:
            response = await self.client.request(method, url, **kwargs)
        except httpx.HTTPError as e:
            logger.error(f"{method} {url} failed: {e}")
            raise FetchError(f"{method} {url} failed: {e}") from e
        _raise_for_status(method, url, response)
        return response

    async def list_notifications(self, page: int = 1) -> Tuple[List[Dict[str, Any]], int]:
        """
        Fetch one page of notification threads for the authenticated user.

        Args:
            page: 1-based page number.

        Returns:
            The page's items and the total number of pages.
        """
        response = await self._request(
            "GET",
            "/notifications",
            params={"page": page, "per_page": self.config.per_page},
        )
        items = _decode("GET", "/notifications", response)
        if not isinstance(items, list):
            raise FetchError(f"unexpected notifications payload on page {page}")
        return items, _last_page(response, page)

    async def get_json(self, url: str) -> Dict[str, Any]:
        """GET an absolute API URL (detail or comment) and decode the JSON body."""
        response = await self._request("GET", url)
        return _decode("GET", url, response)

    async def graphql(self, query: str, variables: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        """
        Run a GraphQL query.

        Returns:
            The ``data`` member of the response, which may be None.

        Raises:
            RateLimitError: If GitHub reports the query as rate limited.
            FetchError: For any other GraphQL error.
        """
        response = await self._request(
            "POST",
            self.config.graphql_url,
            json={"query": query, "variables": variables},
        )
        body = _decode("POST", self.config.graphql_url, response)
        if not isinstance(body, dict):
            raise FetchError(f"unexpected GraphQL payload from {self.config.graphql_url}", response.status_code)
        errors = body.get("errors")
        if errors:
            messages = "; ".join(str(err.get("message", err)) for err in errors)
            if any(err.get("type") == "RATE_LIMITED" for err in errors) or _mentions_rate_limit(messages):
                raise RateLimitError(f"GraphQL rate limit exceeded: {messages}")
            logger.error(f"GraphQL errors: {messages}")
            raise FetchError(f"GraphQL query failed: {messages}", response.status_code)
        return body.get("data")

    async def mark_thread_read(self, thread_id: str) -> None:
        """Mark a notification thread as read. GitHub answers 205 Reset Content."""
        await self._request("PATCH", f"/notifications/threads/{thread_id}")
        logger.debug(f"Marked thread {thread_id} as read")


def _mentions_rate_limit(message: str) -> bool:
    return "rate limit" in message.lower()


def _raise_for_status(method: str, url: str, response: httpx.Response) -> None:
    """Translate a non-2xx response into the matching pipeline error."""
    if response.is_success:
        return
    status = response.status_code
    message = _error_message(response)
    if status == 401:
        raise AuthenticationError(f"GitHub rejected the token: {message}")
    if status in (403, 429) and (
        response.headers.get("x-ratelimit-remaining") == "0" or _mentions_rate_limit(message)
    ):
        reset = response.headers.get("x-ratelimit-reset")
        suffix = f" (resets at {reset})" if reset else ""
        raise RateLimitError(f"GitHub rate limit exceeded{suffix}: {message}")
    logger.error(f"{method} {url} returned {status}: {message}")
    raise FetchError(f"{method} {url} returned {status}: {message}", status)


def _decode(method: str, url: str, response: httpx.Response) -> Any:
    """Decode a successful response's JSON body."""
    try:
        return response.json()
    except ValueError as e:
        logger.error(f"{method} {url} returned a body that is not JSON: {e}")
        raise FetchError(f"{method} {url} returned invalid JSON: {e}", response.status_code) from e


def _error_message(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text[:200]
    if isinstance(body, dict) and body.get("message"):
        return str(body["message"])
    return response.text[:200]


def _last_page(response: httpx.Response, current: int) -> int:
    """Read the page count from the ``Link: rel="last"`` header."""
    last = response.links.get("last")
    if not last or not last.get("url"):
        # The last page carries only "prev"/"first" links.
        return current
    page = httpx.URL(last["url"]).params.get("page")
    try:
        return max(int(page), current)
    except (TypeError, ValueError):
        return current

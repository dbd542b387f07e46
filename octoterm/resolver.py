"""Resolves notification stubs into typed targets via secondary lookups."""

import logging
import re
from enum import Enum
from typing import Any, Dict, List, Optional

from .errors import AuthenticationError, FetchError, RateLimitError, ResolveError
from .gateway import GitHubGateway
from .models import (
    NO_DESCRIPTION,
    DiscussionMeta,
    DiscussionState,
    IssueMeta,
    IssueState,
    NotificationStub,
    NotificationTarget,
    PullRequestMeta,
    PullRequestState,
    ReleaseMeta,
    parse_timestamp,
)

logger = logging.getLogger(__name__)

DISCUSSION_SEARCH_QUERY = """
query DiscussionSearch($search: String!) {
  search(query: $search, type: DISCUSSION, first: 10) {
    edges {
      node {
        ... on Discussion {
          number
          title
          url
          answer { id }
        }
      }
    }
  }
}
"""

_TRAILING_NUMBER = re.compile(r"/(\d+)/?$")


class SubjectType(Enum):
    """Subject type tags reported by the notifications endpoint."""
    ISSUE = "Issue"
    PULL_REQUEST = "PullRequest"
    RELEASE = "Release"
    DISCUSSION = "Discussion"
    CHECK_SUITE = "CheckSuite"
    UNKNOWN = "Unknown"


_TAGS = {member.value: member for member in SubjectType if member is not SubjectType.UNKNOWN}


def classify(subject_type: str) -> SubjectType:
    """Map a subject type string to a SubjectType. Case-sensitive; never raises."""
    return _TAGS.get(subject_type, SubjectType.UNKNOWN)


def _number_from_url(url: Optional[str]) -> int:
    match = _TRAILING_NUMBER.search(url or "")
    return int(match.group(1)) if match else 0


def _login(user: Optional[Dict[str, Any]]) -> str:
    return (user or {}).get("login", "")


def issue_state(detail: Dict[str, Any]) -> IssueState:
    """Open unless closed_at is set or the state says closed."""
    if detail.get("closed_at") is None and detail.get("state", "open") != "closed":
        return IssueState.OPEN
    if detail.get("state_reason") == "not_planned":
        return IssueState.CLOSED_NOT_PLANNED
    return IssueState.CLOSED_COMPLETED


def pull_request_state(detail: Dict[str, Any]) -> PullRequestState:
    """Merged takes precedence over closed, closed over open."""
    if detail.get("merged_at"):
        return PullRequestState.MERGED
    if detail.get("closed_at"):
        return PullRequestState.CLOSED
    return PullRequestState.OPEN


class TargetResolver:
    """Hydrates one stub at a time; dispatch is by classified subject type."""

    def __init__(self, gateway: GitHubGateway):
        self.gateway = gateway

    async def resolve(self, stub: NotificationStub) -> NotificationTarget:
        """
        Resolve a stub into its NotificationTarget.

        Unknown subject types and missing detail URLs produce an Unknown
        target without any network call. Discussions that cannot be matched
        unambiguously also produce Unknown.

        Raises:
            ResolveError: If a detail fetch for an issue, pull request or
                release fails.
            AuthenticationError, RateLimitError: Passed through unchanged.
        """
        subject_type = classify(stub.subject.type)

        if subject_type is SubjectType.CHECK_SUITE:
            return NotificationTarget.ci_build()
        if subject_type is SubjectType.DISCUSSION:
            return await self._resolve_discussion(stub)
        if subject_type is SubjectType.UNKNOWN:
            logger.debug(f"Notification {stub.id} has unhandled subject type {stub.subject.type!r}")
            return NotificationTarget.unknown()
        if not stub.subject.url:
            return NotificationTarget.unknown()

        detail = await self._fetch_detail(stub)
        if subject_type is SubjectType.ISSUE:
            return NotificationTarget.issue(self._issue_meta(stub, detail))
        if subject_type is SubjectType.PULL_REQUEST:
            return NotificationTarget.pull_request(self._pull_request_meta(stub, detail))
        return NotificationTarget.release(self._release_meta(stub, detail))

    async def _fetch_detail(self, stub: NotificationStub) -> Dict[str, Any]:
        try:
            detail = await self.gateway.get_json(stub.subject.url)
        except (AuthenticationError, RateLimitError):
            raise
        except FetchError as e:
            raise ResolveError(stub.id, str(e), e.status_code) from e
        if not isinstance(detail, dict):
            raise ResolveError(stub.id, f"unexpected detail payload from {stub.subject.url}")
        return detail

    def _issue_meta(self, stub: NotificationStub, detail: Dict[str, Any]) -> IssueMeta:
        return IssueMeta(
            repo=stub.repository,
            title=detail.get("title") or stub.subject.title,
            number=detail.get("number") or _number_from_url(stub.subject.url),
            author=_login(detail.get("user")),
            state=issue_state(detail),
            body=detail.get("body") or NO_DESCRIPTION,
            created_at=parse_timestamp(detail.get("created_at")),
            html_url=detail.get("html_url"),
        )

    def _pull_request_meta(self, stub: NotificationStub, detail: Dict[str, Any]) -> PullRequestMeta:
        return PullRequestMeta(
            repo=stub.repository,
            title=detail.get("title") or stub.subject.title,
            number=detail.get("number") or _number_from_url(stub.subject.url),
            author=_login(detail.get("user")),
            state=pull_request_state(detail),
            body=detail.get("body") or NO_DESCRIPTION,
            created_at=parse_timestamp(detail.get("created_at")),
            html_url=detail.get("html_url"),
        )

    def _release_meta(self, stub: NotificationStub, detail: Dict[str, Any]) -> ReleaseMeta:
        tag_name = detail.get("tag_name", "")
        return ReleaseMeta(
            repo=stub.repository,
            title=detail.get("name") or tag_name or stub.subject.title,
            tag_name=tag_name,
            author=_login(detail.get("author")),
            body=detail.get("body") or NO_DESCRIPTION,
            created_at=parse_timestamp(detail.get("published_at") or detail.get("created_at")),
            html_url=detail.get("html_url"),
        )

    async def _resolve_discussion(self, stub: NotificationStub) -> NotificationTarget:
        # Discussions have no REST detail URL; search for the title instead.
        title = stub.subject.title.replace('"', '\\"')
        search = f'repo:{stub.repository.full_name} in:title "{title}"'
        try:
            data = await self.gateway.graphql(DISCUSSION_SEARCH_QUERY, {"search": search})
        except (AuthenticationError, RateLimitError):
            raise
        except FetchError as e:
            raise ResolveError(stub.id, str(e), e.status_code) from e

        edges: List[Dict[str, Any]] = ((data or {}).get("search") or {}).get("edges") or []
        matches = [
            node for node in (edge.get("node") for edge in edges if edge)
            if node and node.get("title") == stub.subject.title
        ]
        if len(matches) != 1:
            logger.debug(
                f"Discussion search for notification {stub.id} matched {len(matches)} "
                f"of {len(edges)} result(s); falling back to Unknown"
            )
            return NotificationTarget.unknown()

        node = matches[0]
        return NotificationTarget.discussion(DiscussionMeta(
            repo=stub.repository,
            title=node["title"],
            number=node.get("number", 0),
            state=DiscussionState.ANSWERED if node.get("answer") else DiscussionState.UNANSWERED,
            html_url=node.get("url"),
        ))

"""Lazily loaded detail views: issue/PR timelines and discussion threads."""

import logging
from typing import Any, Dict, List, Optional

from .gateway import GitHubGateway
from .models import (
    Discussion,
    DiscussionAnswer,
    DiscussionMeta,
    DiscussionReply,
    EventKind,
    Issue,
    IssueMeta,
    PullRequest,
    PullRequestMeta,
    TimelineEvent,
    parse_timestamp,
)

logger = logging.getLogger(__name__)

# Fragments shared by issue and pull request timelines.
_COMMON_FRAGMENTS = """
          __typename
          ... on IssueComment { author { login } body createdAt }
          ... on ClosedEvent {
            actor { login } createdAt
            closer {
              __typename
              ... on Commit { abbreviatedOid }
              ... on PullRequest { number }
            }
          }
          ... on ReopenedEvent { actor { login } createdAt }
          ... on LabeledEvent { actor { login } createdAt label { name } }
          ... on UnlabeledEvent { actor { login } createdAt label { name } }
          ... on AssignedEvent { actor { login } createdAt assignee { ... on Actor { login } } }
          ... on UnassignedEvent { actor { login } createdAt assignee { ... on Actor { login } } }
          ... on MilestonedEvent { actor { login } createdAt milestoneTitle }
          ... on LockedEvent { actor { login } createdAt lockReason }
          ... on UnlockedEvent { actor { login } createdAt }
          ... on PinnedEvent { actor { login } createdAt }
          ... on UnpinnedEvent { actor { login } createdAt }
          ... on RenamedTitleEvent { actor { login } createdAt previousTitle currentTitle }
          ... on ReferencedEvent {
            actor { login } createdAt isCrossRepository
            commit { messageHeadline }
            commitRepository { name owner { login } }
          }
          ... on CrossReferencedEvent {
            actor { login } createdAt isCrossRepository
            source {
              __typename
              ... on Issue { number title repository { name owner { login } } }
              ... on PullRequest { number title repository { name owner { login } } }
            }
          }
          ... on ConnectedEvent {
            actor { login } createdAt
            source {
              __typename
              ... on Issue { number title }
              ... on PullRequest { number title }
            }
          }
          ... on MarkedAsDuplicateEvent {
            actor { login } createdAt
            canonical {
              __typename
              ... on Issue { number title }
              ... on PullRequest { number title }
            }
          }
          ... on UnmarkedAsDuplicateEvent { actor { login } createdAt }
"""

_PULL_REQUEST_FRAGMENTS = """
          ... on MergedEvent { actor { login } createdAt mergeRefName }
          ... on PullRequestCommit {
            commit {
              messageHeadline abbreviatedOid committedDate
              committer { name user { login } }
            }
          }
          ... on PullRequestReview { author { login } createdAt state body }
          ... on ReviewRequestedEvent {
            actor { login } createdAt
            requestedReviewer {
              __typename
              ... on User { login }
              ... on Mannequin { login }
              ... on Team { name }
            }
          }
          ... on ReadyForReviewEvent { actor { login } createdAt }
          ... on ConvertToDraftEvent { actor { login } createdAt }
          ... on HeadRefDeletedEvent { actor { login } createdAt headRefName }
          ... on HeadRefForcePushedEvent {
            actor { login } createdAt
            beforeCommit { abbreviatedOid }
            afterCommit { abbreviatedOid }
          }
"""

ISSUE_TIMELINE_QUERY = """
query IssueTimeline($owner: String!, $repo: String!, $number: Int!) {
  repository(owner: $owner, name: $repo) {
    issue(number: $number) {
      timelineItems(first: 100) {
        nodes {
%s
        }
      }
    }
  }
}
""" % _COMMON_FRAGMENTS

PULL_REQUEST_TIMELINE_QUERY = """
query PullRequestTimeline($owner: String!, $repo: String!, $number: Int!) {
  repository(owner: $owner, name: $repo) {
    pullRequest(number: $number) {
      timelineItems(first: 100) {
        nodes {
%s%s
        }
      }
    }
  }
}
""" % (_COMMON_FRAGMENTS, _PULL_REQUEST_FRAGMENTS)

DISCUSSION_QUERY = """
query Discussion($owner: String!, $repo: String!, $number: Int!) {
  repository(owner: $owner, name: $repo) {
    discussion(number: $number) {
      author { login }
      body
      createdAt
      upvoteCount
      comments(first: 50) {
        nodes {
          author { login }
          body
          createdAt
          isAnswer
          upvoteCount
          replies(first: 50) {
            nodes { author { login } body createdAt }
          }
        }
      }
    }
  }
}
"""


def _login(node: Optional[Dict[str, Any]], key: str = "actor") -> str:
    return ((node or {}).get(key) or {}).get("login", "")


def _issue_or_pr(source: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    if not source:
        return None
    return {
        "type": source.get("__typename", ""),
        "number": source.get("number"),
        "title": source.get("title", ""),
    }


def _repository(repo: Optional[Dict[str, Any]]) -> Optional[str]:
    if not repo:
        return None
    return f"{_login(repo, 'owner')}/{repo.get('name', '')}"


def _closed(node):
    closer = node.get("closer") or {}
    if closer.get("__typename") == "Commit":
        return {"closer": closer.get("abbreviatedOid")}
    if closer.get("__typename") == "PullRequest":
        return {"closer": closer.get("number")}
    return {"closer": None}


def _cross_referenced(node):
    source = node.get("source") or {}
    data = {"source": _issue_or_pr(source), "cross_repository": None}
    if node.get("isCrossRepository"):
        data["cross_repository"] = _repository(source.get("repository"))
    return data


def _referenced(node):
    return {
        "commit_message": (node.get("commit") or {}).get("messageHeadline", ""),
        "cross_repository": _repository(node.get("commitRepository")) if node.get("isCrossRepository") else None,
    }


def _review_requested(node):
    reviewer = node.get("requestedReviewer") or {}
    return {"reviewer": reviewer.get("login") or reviewer.get("name", "")}


def _force_pushed(node):
    return {
        "before": (node.get("beforeCommit") or {}).get("abbreviatedOid", ""),
        "after": (node.get("afterCommit") or {}).get("abbreviatedOid", ""),
    }


# __typename -> (kind, actor key, data builder)
_EVENTS: Dict[str, tuple] = {
    "IssueComment": (EventKind.COMMENTED, "author", lambda n: {"body": n.get("body", "")}),
    "ClosedEvent": (EventKind.CLOSED, "actor", _closed),
    "ReopenedEvent": (EventKind.REOPENED, "actor", None),
    "LabeledEvent": (EventKind.LABELED, "actor", lambda n: {"label": (n.get("label") or {}).get("name", "")}),
    "UnlabeledEvent": (EventKind.UNLABELED, "actor", lambda n: {"label": (n.get("label") or {}).get("name", "")}),
    "AssignedEvent": (EventKind.ASSIGNED, "actor", lambda n: {"assignee": _login(n, "assignee")}),
    "UnassignedEvent": (EventKind.UNASSIGNED, "actor", lambda n: {"assignee": _login(n, "assignee")}),
    "MilestonedEvent": (EventKind.MILESTONED, "actor", lambda n: {"title": n.get("milestoneTitle", "")}),
    "LockedEvent": (EventKind.LOCKED, "actor", lambda n: {"reason": n.get("lockReason")}),
    "UnlockedEvent": (EventKind.UNLOCKED, "actor", None),
    "PinnedEvent": (EventKind.PINNED, "actor", None),
    "UnpinnedEvent": (EventKind.UNPINNED, "actor", None),
    "RenamedTitleEvent": (
        EventKind.RENAMED, "actor",
        lambda n: {"from": n.get("previousTitle", ""), "to": n.get("currentTitle", "")},
    ),
    "ReferencedEvent": (EventKind.REFERENCED, "actor", _referenced),
    "CrossReferencedEvent": (EventKind.CROSS_REFERENCED, "actor", _cross_referenced),
    "ConnectedEvent": (EventKind.CONNECTED, "actor", lambda n: {"source": _issue_or_pr(n.get("source"))}),
    "MarkedAsDuplicateEvent": (
        EventKind.MARKED_AS_DUPLICATE, "actor", lambda n: {"original": _issue_or_pr(n.get("canonical"))},
    ),
    "UnmarkedAsDuplicateEvent": (EventKind.UNMARKED_AS_DUPLICATE, "actor", None),
    "SubscribedEvent": (EventKind.SUBSCRIBED, None, None),
    "MentionedEvent": (EventKind.MENTIONED, None, None),
    "MergedEvent": (EventKind.MERGED, "actor", lambda n: {"base_branch": n.get("mergeRefName", "")}),
    "PullRequestReview": (
        EventKind.REVIEWED, "author",
        lambda n: {"state": n.get("state", ""), "body": n.get("body") or None},
    ),
    "ReviewRequestedEvent": (EventKind.REVIEW_REQUESTED, "actor", _review_requested),
    "ReadyForReviewEvent": (EventKind.READY_FOR_REVIEW, "actor", None),
    "ConvertToDraftEvent": (EventKind.CONVERTED_TO_DRAFT, "actor", None),
    "HeadRefDeletedEvent": (EventKind.HEAD_REF_DELETED, "actor", lambda n: {"branch": n.get("headRefName", "")}),
    "HeadRefForcePushedEvent": (EventKind.HEAD_REF_FORCE_PUSHED, "actor", _force_pushed),
}


def parse_timeline_node(node: Dict[str, Any]) -> TimelineEvent:
    """Convert one GraphQL timeline node into a TimelineEvent."""
    typename = node.get("__typename", "")

    if typename == "PullRequestCommit":
        commit = node.get("commit") or {}
        committer = commit.get("committer") or {}
        author = (committer.get("user") or {}).get("login") or committer.get("name") or ""
        return TimelineEvent(
            kind=EventKind.COMMITTED,
            actor=author,
            created_at=parse_timestamp(commit.get("committedDate")),
            data={
                "message_headline": commit.get("messageHeadline", ""),
                "abbreviated_oid": commit.get("abbreviatedOid", ""),
            },
        )

    entry = _EVENTS.get(typename)
    if entry is None:
        return TimelineEvent(kind=EventKind.UNKNOWN, data={"type": typename})

    kind, actor_key, build = entry
    return TimelineEvent(
        kind=kind,
        actor=_login(node, actor_key) if actor_key else "",
        created_at=parse_timestamp(node.get("createdAt")),
        data=build(node) if build else {},
    )


async def _fetch_timeline(
    gateway: GitHubGateway,
    query: str,
    item_key: str,
    owner: str,
    repo: str,
    number: int,
) -> List[TimelineEvent]:
    data = await gateway.graphql(query, {"owner": owner, "repo": repo, "number": number})
    item = ((data or {}).get("repository") or {}).get(item_key)
    if not item:
        logger.warning(f"No {item_key} #{number} found in {owner}/{repo}")
        return []
    nodes = (item.get("timelineItems") or {}).get("nodes") or []
    return [parse_timeline_node(node) for node in nodes if node]


async def fetch_issue(gateway: GitHubGateway, meta: IssueMeta) -> Issue:
    """Load an issue's timeline."""
    events = await _fetch_timeline(
        gateway, ISSUE_TIMELINE_QUERY, "issue", meta.repo.owner, meta.repo.name, meta.number,
    )
    return Issue(meta=meta, events=events)


async def fetch_pull_request(gateway: GitHubGateway, meta: PullRequestMeta) -> PullRequest:
    """Load a pull request's timeline."""
    events = await _fetch_timeline(
        gateway, PULL_REQUEST_TIMELINE_QUERY, "pullRequest", meta.repo.owner, meta.repo.name, meta.number,
    )
    return PullRequest(meta=meta, events=events)


def _nodes(container: Optional[Dict[str, Any]]) -> List[Dict[str, Any]]:
    return [node for node in ((container or {}).get("nodes") or []) if node]


async def fetch_discussion(gateway: GitHubGateway, meta: DiscussionMeta) -> Optional[Discussion]:
    """
    Load a discussion with its suggested answers and their replies.

    Returns:
        The discussion, or None if the repository or discussion is gone.
    """
    data = await gateway.graphql(
        DISCUSSION_QUERY, {"owner": meta.repo.owner, "repo": meta.repo.name, "number": meta.number},
    )
    disc = ((data or {}).get("repository") or {}).get("discussion")
    if not disc:
        return None

    answers = [
        DiscussionAnswer(
            author=_login(comment, "author"),
            body=comment.get("body", ""),
            is_answer=bool(comment.get("isAnswer")),
            upvotes=comment.get("upvoteCount", 0),
            created_at=parse_timestamp(comment.get("createdAt")),
            replies=[
                DiscussionReply(
                    author=_login(reply, "author"),
                    body=reply.get("body", ""),
                    created_at=parse_timestamp(reply.get("createdAt")),
                )
                for reply in _nodes(comment.get("replies"))
            ],
        )
        for comment in _nodes(disc.get("comments"))
    ]
    return Discussion(
        meta=meta,
        author=_login(disc, "author"),
        body=disc.get("body", ""),
        upvotes=disc.get("upvoteCount", 0),
        created_at=parse_timestamp(disc.get("createdAt")),
        answers=answers,
    )

"""Data models for GitHub notifications and their targets."""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Union

NO_DESCRIPTION = "No description provided."


def parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    """Parse an ISO8601 timestamp from the GitHub API into an aware UTC datetime."""
    if not value:
        return None
    parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


@dataclass(frozen=True)
class RepoMeta:
    """Repository a notification belongs to."""
    owner: str
    name: str

    @property
    def full_name(self) -> str:
        return f"{self.owner}/{self.name}"

    @classmethod
    def from_api(cls, payload: Dict[str, Any]) -> "RepoMeta":
        owner = (payload.get("owner") or {}).get("login", "")
        name = payload.get("name", "")
        if not owner and "/" in payload.get("full_name", ""):
            owner, name = payload["full_name"].split("/", 1)
        return cls(owner=owner, name=name)


@dataclass(frozen=True)
class NotificationSubject:
    """The thing a notification is about, as reported by the list endpoint."""
    type: str
    title: str
    url: Optional[str] = None                 # API detail URL
    latest_comment_url: Optional[str] = None


@dataclass(frozen=True)
class NotificationStub:
    """Raw notification thread from GET /notifications, before hydration."""
    id: str
    unread: bool
    subject: NotificationSubject
    repository: RepoMeta
    updated_at: datetime
    url: str = ""  # thread API URL

    @classmethod
    def from_api(cls, payload: Dict[str, Any]) -> "NotificationStub":
        subject = payload.get("subject") or {}
        return cls(
            id=str(payload["id"]),
            unread=bool(payload.get("unread", True)),
            subject=NotificationSubject(
                type=subject.get("type", ""),
                title=subject.get("title", ""),
                url=subject.get("url"),
                latest_comment_url=subject.get("latest_comment_url"),
            ),
            repository=RepoMeta.from_api(payload.get("repository") or {}),
            updated_at=parse_timestamp(payload.get("updated_at"))
            or datetime.fromtimestamp(0, tz=timezone.utc),
            url=payload.get("url", ""),
        )


class IssueState(Enum):
    OPEN = "open"
    CLOSED_COMPLETED = "completed"       # done, fixed, resolved
    CLOSED_NOT_PLANNED = "not_planned"   # won't fix, duplicate, stale

    @property
    def is_open(self) -> bool:
        return self is IssueState.OPEN

    def __str__(self) -> str:
        return "Open" if self.is_open else "Closed"


class PullRequestState(Enum):
    OPEN = "open"
    CLOSED = "closed"
    MERGED = "merged"

    def __str__(self) -> str:
        return self.value.capitalize()


class DiscussionState(Enum):
    ANSWERED = "answered"
    UNANSWERED = "unanswered"


@dataclass(frozen=True)
class IssueMeta:
    repo: RepoMeta = field(compare=False)
    title: str
    number: int
    author: str
    state: IssueState
    body: str = NO_DESCRIPTION
    created_at: Optional[datetime] = None
    html_url: Optional[str] = None


@dataclass(frozen=True)
class PullRequestMeta:
    repo: RepoMeta = field(compare=False)
    title: str
    number: int
    author: str
    state: PullRequestState
    body: str = NO_DESCRIPTION
    created_at: Optional[datetime] = None
    html_url: Optional[str] = None


@dataclass(frozen=True)
class ReleaseMeta:
    repo: RepoMeta = field(compare=False)
    title: str
    tag_name: str
    author: str
    body: str = NO_DESCRIPTION
    created_at: Optional[datetime] = None
    html_url: Optional[str] = None


@dataclass(frozen=True)
class DiscussionMeta:
    repo: RepoMeta = field(compare=False)
    title: str
    number: int
    state: DiscussionState
    html_url: Optional[str] = None


TargetMeta = Union[IssueMeta, PullRequestMeta, ReleaseMeta, DiscussionMeta]


class TargetKind(Enum):
    ISSUE = "Issue"
    PULL_REQUEST = "PullRequest"
    RELEASE = "Release"
    DISCUSSION = "Discussion"
    CI_BUILD = "CiBuild"
    UNKNOWN = "Unknown"


_META_TYPES = {
    TargetKind.ISSUE: IssueMeta,
    TargetKind.PULL_REQUEST: PullRequestMeta,
    TargetKind.RELEASE: ReleaseMeta,
    TargetKind.DISCUSSION: DiscussionMeta,
}


@dataclass(frozen=True)
class NotificationTarget:
    """
    Hydrated subject of a notification.

    Exactly one kind per notification. ``meta`` holds the kind's metadata and
    is None for CI builds and unknown targets.
    """
    kind: TargetKind
    meta: Optional[TargetMeta] = None

    def __post_init__(self):
        expected = _META_TYPES.get(self.kind)
        if expected is None:
            if self.meta is not None:
                raise TypeError(f"{self.kind.value} target carries no metadata")
        elif not isinstance(self.meta, expected):
            raise TypeError(f"{self.kind.value} target needs {expected.__name__}")

    @classmethod
    def issue(cls, meta: IssueMeta) -> "NotificationTarget":
        return cls(TargetKind.ISSUE, meta)

    @classmethod
    def pull_request(cls, meta: PullRequestMeta) -> "NotificationTarget":
        return cls(TargetKind.PULL_REQUEST, meta)

    @classmethod
    def release(cls, meta: ReleaseMeta) -> "NotificationTarget":
        return cls(TargetKind.RELEASE, meta)

    @classmethod
    def discussion(cls, meta: DiscussionMeta) -> "NotificationTarget":
        return cls(TargetKind.DISCUSSION, meta)

    @classmethod
    def ci_build(cls) -> "NotificationTarget":
        return cls(TargetKind.CI_BUILD)

    @classmethod
    def unknown(cls) -> "NotificationTarget":
        return cls(TargetKind.UNKNOWN)

    @property
    def number(self) -> Optional[int]:
        return getattr(self.meta, "number", None)

    @property
    def state(self):
        return getattr(self.meta, "state", None)

    @property
    def icon(self) -> str:
        if self.kind is TargetKind.ISSUE:
            return "" if self.meta.state.is_open else ""
        if self.kind is TargetKind.PULL_REQUEST:
            return {
                PullRequestState.OPEN: "",
                PullRequestState.MERGED: "",
                PullRequestState.CLOSED: "",
            }[self.meta.state]
        if self.kind is TargetKind.RELEASE:
            return ""
        if self.kind is TargetKind.DISCUSSION:
            return ""
        return ""


class Notification:
    """
    A hydrated notification.

    Identity is the thread id alone: two notifications with the same id are
    equal even if their targets were hydrated differently.
    """

    __slots__ = ("stub", "target")

    def __init__(self, stub: NotificationStub, target: NotificationTarget):
        self.stub = stub
        self.target = target

    @property
    def id(self) -> str:
        return self.stub.id

    @property
    def updated_at(self) -> datetime:
        return self.stub.updated_at

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Notification):
            return NotImplemented
        return self.stub.id == other.stub.id

    def __hash__(self) -> int:
        return hash(self.stub.id)

    def __repr__(self) -> str:
        return f"Notification(id={self.stub.id!r}, kind={self.target.kind.value})"

    def summary_line(self) -> str:
        """One-line rendering: ``repo#number: icon title``."""
        number = self.target.number
        number_part = f"#{number}" if number is not None else ""
        icon = self.target.icon
        icon_part = f"{icon} " if icon else ""
        return f"{self.stub.repository.name}{number_part}: {icon_part}{self.stub.subject.title}"


class EventKind(Enum):
    """Timeline event types understood by the detail views."""
    COMMENTED = "commented"
    CLOSED = "closed"
    REOPENED = "reopened"
    LABELED = "labeled"
    UNLABELED = "unlabeled"
    ASSIGNED = "assigned"
    UNASSIGNED = "unassigned"
    MILESTONED = "milestoned"
    LOCKED = "locked"
    UNLOCKED = "unlocked"
    PINNED = "pinned"
    UNPINNED = "unpinned"
    RENAMED = "renamed"
    REFERENCED = "referenced"
    CROSS_REFERENCED = "cross-referenced"
    CONNECTED = "connected"
    MARKED_AS_DUPLICATE = "marked-as-duplicate"
    UNMARKED_AS_DUPLICATE = "unmarked-as-duplicate"
    SUBSCRIBED = "subscribed"
    MENTIONED = "mentioned"
    MERGED = "merged"
    COMMITTED = "committed"
    REVIEWED = "reviewed"
    REVIEW_REQUESTED = "review-requested"
    READY_FOR_REVIEW = "ready-for-review"
    CONVERTED_TO_DRAFT = "converted-to-draft"
    HEAD_REF_DELETED = "head-ref-deleted"
    HEAD_REF_FORCE_PUSHED = "head-ref-force-pushed"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class TimelineEvent:
    """One entry in an issue or pull request timeline."""
    kind: EventKind
    actor: str = ""
    created_at: Optional[datetime] = None
    data: Dict[str, Any] = field(default_factory=dict, hash=False)


@dataclass
class Issue:
    meta: IssueMeta
    events: List[TimelineEvent] = field(default_factory=list)


@dataclass
class PullRequest:
    meta: PullRequestMeta
    events: List[TimelineEvent] = field(default_factory=list)


@dataclass
class DiscussionReply:
    author: str
    body: str
    created_at: Optional[datetime] = None


@dataclass
class DiscussionAnswer:
    """A top-level discussion comment, i.e. a suggested answer."""
    author: str
    body: str
    is_answer: bool = False
    upvotes: int = 0
    created_at: Optional[datetime] = None
    replies: List[DiscussionReply] = field(default_factory=list)


@dataclass
class Discussion:
    meta: DiscussionMeta
    author: str
    body: str
    upvotes: int = 0
    created_at: Optional[datetime] = None
    answers: List[DiscussionAnswer] = field(default_factory=list)

"""Background worker that runs pipeline requests one at a time."""

import asyncio
import logging
import queue
import threading
from dataclasses import dataclass
from typing import Optional, Union

import httpx

from .cache import NotificationCache
from .config import AppConfig
from .coordinator import MutationCoordinator
from .gateway import GitHubGateway
from .models import Discussion, Issue, PullRequest

logger = logging.getLogger(__name__)


# Requests (UI -> worker)

@dataclass(frozen=True)
class Refresh:
    pass


@dataclass(frozen=True)
class MarkAsRead:
    notification_id: str


@dataclass(frozen=True)
class ResolveOpenUrl:
    notification_id: str


@dataclass(frozen=True)
class OpenIssue:
    notification_id: str


@dataclass(frozen=True)
class OpenPullRequest:
    notification_id: str


@dataclass(frozen=True)
class OpenDiscussion:
    notification_id: str


Request = Union[Refresh, MarkAsRead, ResolveOpenUrl, OpenIssue, OpenPullRequest, OpenDiscussion]


# Responses (worker -> UI)

@dataclass(frozen=True)
class NotificationsReplaced:
    count: int


@dataclass(frozen=True)
class NotificationRemoved:
    notification_id: str


@dataclass(frozen=True)
class OpenUrlResolved:
    notification_id: str
    url: str


@dataclass(frozen=True)
class IssueLoaded:
    issue: Issue


@dataclass(frozen=True)
class PullRequestLoaded:
    pull_request: PullRequest


@dataclass(frozen=True)
class DiscussionLoaded:
    discussion: Optional[Discussion]


@dataclass(frozen=True)
class OperationFailed:
    request: Request
    error: BaseException


Response = Union[
    NotificationsReplaced, NotificationRemoved, OpenUrlResolved,
    IssueLoaded, PullRequestLoaded, DiscussionLoaded, OperationFailed,
]

_STOP = object()


class PipelineWorker:
    """
    Owns a daemon thread with its own event loop and GitHub gateway.

    The UI submits requests without blocking and polls ``responses``. Requests
    are handled strictly one after another in submission order, so a
    mark-as-read can never interleave with a refresh's cache replace.
    """

    def __init__(
        self,
        config: AppConfig,
        cache: Optional[NotificationCache] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.config = config
        self.cache = cache if cache is not None else NotificationCache()
        self.responses: "queue.Queue[Response]" = queue.Queue()
        self.busy = threading.Event()
        self._transport = transport
        self._requests: "queue.Queue" = queue.Queue()
        self._outstanding = 0
        self._outstanding_lock = threading.Lock()
        self._thread = threading.Thread(target=self._run, name="octoterm-worker", daemon=True)

    def start(self) -> "PipelineWorker":
        self._thread.start()
        return self

    def submit(self, request: Request) -> None:
        """Queue a request for the worker. Never blocks."""
        with self._outstanding_lock:
            self._outstanding += 1
            self.busy.set()
        self._requests.put(request)

    def stop(self, timeout: Optional[float] = None) -> None:
        """Finish queued requests, then shut the worker down."""
        self._requests.put(_STOP)
        if self._thread.is_alive():
            self._thread.join(timeout)

    def __enter__(self) -> "PipelineWorker":
        return self.start()

    def __exit__(self, *exc_info) -> None:
        self.stop()

    @property
    def in_progress(self) -> bool:
        """True while any submitted request has not been answered yet."""
        return self.busy.is_set()

    def _run(self) -> None:
        loop = asyncio.new_event_loop()
        asyncio.set_event_loop(loop)
        try:
            loop.run_until_complete(self._serve())
            loop.run_until_complete(loop.shutdown_default_executor())
        finally:
            loop.close()
            logger.debug("Worker event loop closed")

    async def _serve(self) -> None:
        gateway = GitHubGateway(self.config.github, transport=self._transport)
        coordinator = MutationCoordinator(gateway, self.cache, self.config.pipeline)
        loop = asyncio.get_running_loop()
        try:
            while True:
                request = await loop.run_in_executor(None, self._requests.get)
                if request is _STOP:
                    break
                try:
                    response = await self._handle(coordinator, request)
                except Exception as e:
                    logger.error(f"{type(request).__name__} failed: {e}")
                    response = OperationFailed(request=request, error=e)
                self.responses.put(response)
                with self._outstanding_lock:
                    self._outstanding -= 1
                    if not self._outstanding:
                        self.busy.clear()
        finally:
            await gateway.close()

    async def _handle(self, coordinator: MutationCoordinator, request: Request) -> Response:
        if isinstance(request, Refresh):
            notifications = await coordinator.refresh()
            return NotificationsReplaced(count=len(notifications))
        if isinstance(request, MarkAsRead):
            await coordinator.mark_as_read(request.notification_id)
            return NotificationRemoved(notification_id=request.notification_id)
        if isinstance(request, ResolveOpenUrl):
            url = await coordinator.resolve_open_url(request.notification_id)
            return OpenUrlResolved(notification_id=request.notification_id, url=url)
        if isinstance(request, OpenIssue):
            return IssueLoaded(await coordinator.open_issue(request.notification_id))
        if isinstance(request, OpenPullRequest):
            return PullRequestLoaded(await coordinator.open_pull_request(request.notification_id))
        if isinstance(request, OpenDiscussion):
            return DiscussionLoaded(await coordinator.open_discussion(request.notification_id))
        raise TypeError(f"unsupported request: {request!r}")

"""Applies refreshes and user actions to the cache, gated on GitHub's answer."""

import logging
from typing import List, Optional

from .cache import NotificationCache
from .config import PipelineConfig
from .errors import NoBrowsableUrlError, NotificationNotFoundError
from .fetcher import fetch_all_stubs
from .gateway import GitHubGateway
from .hydrator import Hydrator
from .models import Discussion, Issue, Notification, PullRequest, TargetKind
from .resolver import SubjectType, TargetResolver, classify
from .timeline import fetch_discussion, fetch_issue, fetch_pull_request

logger = logging.getLogger(__name__)


class MutationCoordinator:
    """
    Runs the refresh pipeline and user mutations against one gateway and cache.

    Every cache write happens only after the remote call it depends on has
    succeeded; on failure the cache is left exactly as it was.
    """

    def __init__(
        self,
        gateway: GitHubGateway,
        cache: NotificationCache,
        config: Optional[PipelineConfig] = None,
    ):
        config = config or PipelineConfig()
        self.gateway = gateway
        self.cache = cache
        self.hydrator = Hydrator(
            TargetResolver(gateway),
            max_concurrent_requests=config.max_concurrent_requests,
            policy=config.hydration_policy,
            sort_mode=config.sort_mode,
        )

    async def refresh(self) -> List[Notification]:
        """
        Fetch, hydrate and sort the whole inbox, then replace the cache.

        Raises:
            FetchError, HydrationError, AuthenticationError, RateLimitError:
                The cache keeps its previous contents.
        """
        logger.info("Refreshing notifications...")
        stubs = await fetch_all_stubs(self.gateway)
        notifications = await self.hydrator.hydrate(stubs)
        self.cache.replace(notifications)
        logger.info(f"Inbox now holds {len(notifications)} notification(s)")
        return notifications

    async def mark_as_read(self, notification_id: str) -> None:
        """
        Mark a thread as read on GitHub, then drop it from the cache.

        Raises:
            FetchError: If GitHub refused; the notification stays cached.
        """
        await self.gateway.mark_thread_read(notification_id)
        self.cache.remove(notification_id)
        logger.info(f"Marked notification {notification_id} as read")

    def _cached(self, notification_id: str) -> Notification:
        notification = self.cache.find(notification_id)
        if notification is None:
            raise NotificationNotFoundError(f"notification {notification_id} is no longer in the inbox")
        return notification

    async def resolve_open_url(self, notification_id: str) -> str:
        """
        Return the browser URL for a cached notification.

        Releases open their release page, issues their latest comment (or the
        issue itself), pull requests the pull request page. Pull requests do
        not jump to the latest comment or changed files.

        Raises:
            NoBrowsableUrlError: For other subject types or a missing URL.
        """
        stub = self._cached(notification_id).stub
        subject_type = classify(stub.subject.type)
        if not stub.subject.url or subject_type not in (
            SubjectType.RELEASE, SubjectType.ISSUE, SubjectType.PULL_REQUEST,
        ):
            raise NoBrowsableUrlError(
                f"{stub.subject.type or 'This'} notification {stub.id} has no browsable URL ({stub.url})"
            )

        detail_url = stub.subject.url
        if subject_type is SubjectType.ISSUE and stub.subject.latest_comment_url:
            detail_url = stub.subject.latest_comment_url

        detail = await self.gateway.get_json(detail_url)
        html_url = detail.get("html_url") if isinstance(detail, dict) else None
        if not html_url:
            raise NoBrowsableUrlError(f"GitHub returned no html_url for {detail_url}")
        return html_url

    async def open_issue(self, notification_id: str) -> Issue:
        target = self._cached(notification_id).target
        if target.kind is not TargetKind.ISSUE:
            raise ValueError(f"notification {notification_id} is not an issue")
        return await fetch_issue(self.gateway, target.meta)

    async def open_pull_request(self, notification_id: str) -> PullRequest:
        target = self._cached(notification_id).target
        if target.kind is not TargetKind.PULL_REQUEST:
            raise ValueError(f"notification {notification_id} is not a pull request")
        return await fetch_pull_request(self.gateway, target.meta)

    async def open_discussion(self, notification_id: str) -> Optional[Discussion]:
        target = self._cached(notification_id).target
        if target.kind is not TargetKind.DISCUSSION:
            raise ValueError(f"notification {notification_id} is not a discussion")
        return await fetch_discussion(self.gateway, target.meta)

"""Concurrent hydration of notification stubs."""

import asyncio
import logging
from datetime import datetime
from typing import List, Tuple

from .config import HydrationPolicy, SortMode
from .errors import (
    AuthenticationError,
    HydrationError,
    OctotermError,
    RateLimitError,
    TaskAggregationError,
)
from .models import (
    DiscussionState,
    IssueState,
    Notification,
    NotificationStub,
    NotificationTarget,
    PullRequestState,
    TargetKind,
)
from .resolver import TargetResolver

logger = logging.getLogger(__name__)


def relevance_rank(target: NotificationTarget) -> int:
    """
    Rank a target by how little attention it needs.

    Higher ranks can be marked as read quicker (releases, merged pull
    requests); lower ranks need a look (open pull requests, CI failures).
    """
    kind, state = target.kind, target.state
    if kind is TargetKind.RELEASE:
        return 100
    if kind is TargetKind.PULL_REQUEST:
        return {PullRequestState.MERGED: 90, PullRequestState.CLOSED: 80, PullRequestState.OPEN: 40}[state]
    if kind is TargetKind.DISCUSSION:
        return 85 if state is DiscussionState.ANSWERED else 60
    if kind is TargetKind.ISSUE:
        return {IssueState.CLOSED_NOT_PLANNED: 70, IssueState.CLOSED_COMPLETED: 65, IssueState.OPEN: 50}[state]
    if kind is TargetKind.CI_BUILD:
        return 30
    return 0


def sort_notifications(notifications: List[Notification], mode: SortMode = SortMode.RECENCY) -> List[Notification]:
    """
    Order hydrated notifications, most recently updated first.

    The sort is stable: notifications with equal keys keep their relative
    input order. In relevance mode, notifications that can be dismissed
    quickest come first, oldest first inside each rank.
    """
    if mode is SortMode.RELEVANCE:
        ordered = sorted(notifications, key=lambda n: n.updated_at)
        ordered.sort(key=lambda n: relevance_rank(n.target), reverse=True)
        return ordered
    return sorted(notifications, key=lambda n: n.updated_at, reverse=True)


class Hydrator:
    """Fans out one resolution task per stub, bounded by a semaphore, then joins."""

    def __init__(
        self,
        resolver: TargetResolver,
        max_concurrent_requests: int = 10,
        policy: HydrationPolicy = HydrationPolicy.STRICT,
        sort_mode: SortMode = SortMode.RECENCY,
    ):
        if max_concurrent_requests < 1:
            raise ValueError("max_concurrent_requests must be at least 1")
        self.resolver = resolver
        self.max_concurrent_requests = max_concurrent_requests
        self.policy = policy
        self.sort_mode = sort_mode

    async def hydrate(self, stubs: List[NotificationStub]) -> List[Notification]:
        """
        Resolve every stub concurrently and return sorted notifications.

        Raises:
            HydrationError: In strict mode, if any stub failed to resolve.
            TaskAggregationError: If a task crashed or was cancelled.
            AuthenticationError, RateLimitError: Always abort the batch.
        """
        semaphore = asyncio.Semaphore(self.max_concurrent_requests)

        async def resolve_one(stub: NotificationStub) -> NotificationTarget:
            async with semaphore:
                return await self.resolver.resolve(stub)

        started = datetime.now()
        results = await asyncio.gather(
            *(resolve_one(stub) for stub in stubs),
            return_exceptions=True,
        )

        notifications: List[Notification] = []
        failures: List[Tuple[str, BaseException]] = []
        crashed = False
        for stub, result in zip(stubs, results):
            if isinstance(result, NotificationTarget):
                notifications.append(Notification(stub, result))
                continue
            if isinstance(result, (AuthenticationError, RateLimitError)):
                raise result
            if not isinstance(result, OctotermError):
                crashed = True
                logger.error(f"Hydration task for notification {stub.id} crashed: {result!r}")
            else:
                logger.warning(f"Could not hydrate notification {stub.id}: {result}")
            failures.append((stub.id, result))
            if self.policy is HydrationPolicy.DEGRADE and not crashed:
                notifications.append(Notification(stub, NotificationTarget.unknown()))

        if crashed:
            raise TaskAggregationError(failures)
        if failures and self.policy is HydrationPolicy.STRICT:
            raise HydrationError(failures)

        elapsed = (datetime.now() - started).total_seconds()
        logger.info(
            f"Hydrated {len(notifications)} notification(s) in {elapsed:.2f}s "
            f"({len(failures)} degraded to Unknown)"
        )
        return sort_notifications(notifications, self.sort_mode)


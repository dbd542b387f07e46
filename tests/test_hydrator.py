"""Tests for concurrent hydration, failure policy and ordering."""

import asyncio
from datetime import datetime, timedelta, timezone

import pytest

from conftest import make_thread
from octoterm.config import HydrationPolicy, SortMode
from octoterm.errors import (
    HydrationError,
    RateLimitError,
    ResolveError,
    TaskAggregationError,
)
from octoterm.hydrator import Hydrator, relevance_rank, sort_notifications
from octoterm.models import (
    IssueMeta,
    IssueState,
    Notification,
    NotificationStub,
    NotificationTarget,
    PullRequestMeta,
    PullRequestState,
    RepoMeta,
    TargetKind,
)

REPO = RepoMeta("octo", "hello")
BASE = datetime(2024, 5, 1, tzinfo=timezone.utc)


def stub(thread_id: str, minutes: int = 0) -> NotificationStub:
    updated = (BASE + timedelta(minutes=minutes)).strftime("%Y-%m-%dT%H:%M:%SZ")
    return NotificationStub.from_api(make_thread(thread_id, updated_at=updated))


def issue(state: IssueState = IssueState.OPEN) -> NotificationTarget:
    return NotificationTarget.issue(IssueMeta(REPO, "Issue", 1, "alice", state))


def pull_request(state: PullRequestState) -> NotificationTarget:
    return NotificationTarget.pull_request(PullRequestMeta(REPO, "PR", 2, "bob", state))


class FakeResolver:
    """Returns or raises a canned outcome per stub id and tracks concurrency."""

    def __init__(self, outcomes=None, delay: float = 0.0):
        self.outcomes = outcomes or {}
        self.delay = delay
        self.active = 0
        self.peak = 0

    async def resolve(self, stub: NotificationStub) -> NotificationTarget:
        self.active += 1
        self.peak = max(self.peak, self.active)
        try:
            await asyncio.sleep(self.delay)
            outcome = self.outcomes.get(stub.id, NotificationTarget.ci_build())
            if isinstance(outcome, BaseException):
                raise outcome
            return outcome
        finally:
            self.active -= 1


class TestSortNotifications:

    def test_most_recent_first(self):
        notifications = [Notification(stub(str(i), minutes=m), issue()) for i, m in enumerate([5, 30, 10])]

        ordered = sort_notifications(notifications)

        assert [n.id for n in ordered] == ["1", "2", "0"]
        for earlier, later in zip(ordered, ordered[1:]):
            assert earlier.updated_at >= later.updated_at

    def test_ties_keep_input_order(self):
        notifications = [Notification(stub(i, minutes=0), issue()) for i in ["a", "b", "c"]]

        assert [n.id for n in sort_notifications(notifications)] == ["a", "b", "c"]

    def test_relevance_mode(self):
        notifications = [
            Notification(stub("open-pr", minutes=50), pull_request(PullRequestState.OPEN)),
            Notification(stub("merged-new", minutes=40), pull_request(PullRequestState.MERGED)),
            Notification(stub("merged-old", minutes=10), pull_request(PullRequestState.MERGED)),
            Notification(stub("unknown", minutes=60), NotificationTarget.unknown()),
        ]

        ordered = sort_notifications(notifications, SortMode.RELEVANCE)

        assert [n.id for n in ordered] == ["merged-old", "merged-new", "open-pr", "unknown"]


class TestRelevanceRank:

    def test_release_outranks_everything(self):
        assert relevance_rank(pull_request(PullRequestState.MERGED)) < 100

    @pytest.mark.parametrize("target, rank", [
        (NotificationTarget.ci_build(), 30),
        (NotificationTarget.unknown(), 0),
    ])
    def test_targets_without_state(self, target, rank):
        assert relevance_rank(target) == rank

    def test_issue_states(self):
        assert relevance_rank(issue(IssueState.CLOSED_NOT_PLANNED)) > relevance_rank(issue(IssueState.OPEN))


class TestHydrate:

    async def test_every_stub_is_hydrated_and_sorted(self):
        stubs = [stub("1", minutes=1), stub("2", minutes=3), stub("3", minutes=2)]
        hydrator = Hydrator(FakeResolver({"1": issue()}))

        notifications = await hydrator.hydrate(stubs)

        assert [n.id for n in notifications] == ["2", "3", "1"]
        assert notifications[2].target.kind is TargetKind.ISSUE
        assert notifications[0].target.kind is TargetKind.CI_BUILD

    async def test_empty_input(self):
        assert await Hydrator(FakeResolver()).hydrate([]) == []

    async def test_concurrency_is_capped(self):
        resolver = FakeResolver(delay=0.01)
        hydrator = Hydrator(resolver, max_concurrent_requests=3)

        notifications = await hydrator.hydrate([stub(str(i)) for i in range(12)])

        assert len(notifications) == 12
        assert resolver.peak == 3

    async def test_strict_failure_aggregates_all_failures(self):
        resolver = FakeResolver({
            "2": ResolveError("2", "boom", 500),
            "4": ResolveError("4", "boom", 502),
        })
        hydrator = Hydrator(resolver, policy=HydrationPolicy.STRICT)

        with pytest.raises(HydrationError) as excinfo:
            await hydrator.hydrate([stub(str(i)) for i in range(5)])

        assert not isinstance(excinfo.value, TaskAggregationError)
        assert [stub_id for stub_id, _ in excinfo.value.failures] == ["2", "4"]

    async def test_degrade_keeps_failed_stubs_as_unknown(self):
        resolver = FakeResolver({"1": issue(), "2": ResolveError("2", "boom", 500)})
        hydrator = Hydrator(resolver, policy=HydrationPolicy.DEGRADE)

        notifications = await hydrator.hydrate([stub("1", minutes=1), stub("2", minutes=2)])

        by_id = {n.id: n for n in notifications}
        assert set(by_id) == {"1", "2"}
        assert by_id["2"].target.kind is TargetKind.UNKNOWN
        assert by_id["1"].target.kind is TargetKind.ISSUE

    async def test_crashed_task_is_aggregation_error(self):
        resolver = FakeResolver({"2": KeyError("boom")})
        hydrator = Hydrator(resolver, policy=HydrationPolicy.DEGRADE)

        with pytest.raises(TaskAggregationError) as excinfo:
            await hydrator.hydrate([stub("1"), stub("2")])

        assert excinfo.value.failures[0][0] == "2"

    async def test_rate_limit_aborts_even_when_degrading(self):
        resolver = FakeResolver({"1": RateLimitError("API rate limit exceeded")})
        hydrator = Hydrator(resolver, policy=HydrationPolicy.DEGRADE)

        with pytest.raises(RateLimitError):
            await hydrator.hydrate([stub("1"), stub("2")])

    def test_rejects_zero_concurrency(self):
        with pytest.raises(ValueError):
            Hydrator(FakeResolver(), max_concurrent_requests=0)

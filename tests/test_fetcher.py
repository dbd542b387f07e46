"""Tests for fetching every page of the inbox."""

from datetime import datetime, timezone

import pytest

from conftest import make_thread
from octoterm.errors import FetchError, RateLimitError
from octoterm.fetcher import fetch_all_stubs


class TestFetchAllStubs:

    async def test_single_page(self, gateway, fake_github):
        fake_github.set_inbox([make_thread("1"), make_thread("2")])

        stubs = await fetch_all_stubs(gateway)

        assert [s.id for s in stubs] == ["1", "2"]
        assert len(fake_github.calls("GET")) == 1

    async def test_stub_fields(self, gateway, fake_github):
        fake_github.set_inbox([
            make_thread("9", "PullRequest", "Add feature", url="https://api.github.com/repos/octo/hello/pulls/9",
                        updated_at="2024-05-02T08:30:00Z", repo="octo/hello"),
        ])

        (stub,) = await fetch_all_stubs(gateway)

        assert stub.unread is True
        assert stub.subject.type == "PullRequest"
        assert stub.subject.title == "Add feature"
        assert stub.subject.url.endswith("/pulls/9")
        assert stub.repository.owner == "octo"
        assert stub.repository.name == "hello"
        assert stub.updated_at == datetime(2024, 5, 2, 8, 30, tzinfo=timezone.utc)

    async def test_fetches_every_page(self, gateway, fake_github):
        fake_github.set_inbox(
            [make_thread("1"), make_thread("2")],
            [make_thread("3")],
            [make_thread("4")],
        )

        stubs = await fetch_all_stubs(gateway)

        assert sorted(s.id for s in stubs) == ["1", "2", "3", "4"]
        pages = sorted(int(r.url.params["page"]) for r in fake_github.calls("GET"))
        assert pages == [1, 2, 3]

    async def test_first_page_failure(self, gateway, fake_github):
        fake_github.set_inbox([make_thread("1")])
        fake_github.fail_page(1)

        with pytest.raises(FetchError):
            await fetch_all_stubs(gateway)

    async def test_later_page_failure_fails_whole_fetch(self, gateway, fake_github):
        fake_github.set_inbox([make_thread("1")], [make_thread("2")], [make_thread("3")])
        fake_github.fail_page(2)

        with pytest.raises(FetchError):
            await fetch_all_stubs(gateway)

    async def test_rate_limit_on_later_page_keeps_its_type(self, gateway, fake_github):
        fake_github.set_inbox([make_thread("1")], [make_thread("2")])
        fake_github.fail_page(2, status=403, message="API rate limit exceeded")

        with pytest.raises(RateLimitError):
            await fetch_all_stubs(gateway)

    async def test_non_json_later_page_is_fetch_error(self, gateway, fake_github):
        fake_github.set_inbox([make_thread("1")], [make_thread("2")])
        fake_github.garble_page(2)

        with pytest.raises(FetchError):
            await fetch_all_stubs(gateway)

    async def test_empty_inbox(self, gateway, fake_github):
        fake_github.set_inbox([])

        assert await fetch_all_stubs(gateway) == []

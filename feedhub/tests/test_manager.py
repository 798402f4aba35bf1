"""
Tests for the feed manager: refresh passes, isolation, reentrancy and events.
"""

import asyncio
import json
import sqlite3
from unittest.mock import MagicMock

import pytest

from feedhub.config import Settings
from feedhub.database import Article, Source
from feedhub.fetcher import FeedFetcher
from feedhub.manager import FeedManager, RefreshStatus
from feedhub.notification_service import Notifier


def add_source(db, name: str, **kwargs) -> Source:
    return db.add_source(Source(title=name, feed_url=f"https://{name}.example.com/feed", **kwargs))


def item(name: str, n: int, day: int = 1) -> dict:
    return {
        "link": f"https://{name}.example.com/{n}",
        "guid": f"{name}-{n}",
        "title": f"{name} {n}",
        "pub_date": f"Mon, {day:02d} Jan 2024 00:00:00 GMT",
    }


class TestRefreshAll:

    @pytest.mark.asyncio
    async def test_batch_isolation(self, manager, test_db, transport, rss, feed_response):
        alpha = add_source(test_db, "alpha")
        beta = add_source(test_db, "beta")
        broken = add_source(test_db, "broken")
        transport.add(alpha.feed_url, feed_response(body=rss(items=[item("alpha", 1)])))
        transport.add(beta.feed_url, feed_response(body=rss(items=[item("beta", 1), item("beta", 2)])))
        transport.add(broken.feed_url, feed_response(status=500))

        report = await manager.refresh_all()

        assert report.new_count == 3
        statuses = {o.source_id: o.status for o in report.outcomes}
        assert statuses == {
            alpha.id: RefreshStatus.UPDATED,
            beta.id: RefreshStatus.UPDATED,
            broken.id: RefreshStatus.FAILED,
        }

        for source_id in (alpha.id, beta.id):
            stored = test_db.fetch_source(source_id)
            assert stored.last_fetched_at is not None
            assert stored.consecutive_failures == 0
            assert stored.last_error is None

        stored_broken = test_db.fetch_source(broken.id)
        assert stored_broken.consecutive_failures == 1
        assert stored_broken.last_error == "HTTP 500"
        assert test_db.count_items(beta.id) == 2

    @pytest.mark.asyncio
    async def test_parse_failure_is_recorded_on_source(self, manager, test_db, transport, feed_response):
        source = add_source(test_db, "garbage")
        transport.add(source.feed_url, feed_response(body=b"definitely not a feed"))

        report = await manager.refresh_all()

        assert report.outcomes[0].status == RefreshStatus.FAILED
        assert test_db.fetch_source(source.id).last_error == "Parse failed"

    @pytest.mark.asyncio
    async def test_storage_failure_is_recorded_on_source(
        self, manager, test_db, transport, rss, feed_response, monkeypatch
    ):
        source = add_source(test_db, "diskfull")
        transport.add(source.feed_url, feed_response(body=rss(items=[item("diskfull", 1)])))

        def failing_save(articles, source_id):
            raise sqlite3.OperationalError("disk I/O error")

        monkeypatch.setattr(test_db, "save_items", failing_save)

        report = await manager.refresh_all()

        assert report.outcomes[0].status == RefreshStatus.FAILED
        stored = test_db.fetch_source(source.id)
        assert stored.last_fetched_at is not None
        assert stored.last_error == "Unknown error"
        assert stored.consecutive_failures == 1
        assert not manager._is_due(stored)

    @pytest.mark.asyncio
    async def test_malformed_json_item_keeps_valid_items(
        self, manager, test_db, transport, feed_response
    ):
        source = add_source(test_db, "jsonfeed")
        transport.add(source.feed_url, feed_response(
            body=json.dumps({"items": [
                {"id": "1", "url": "https://jsonfeed.example.com/1", "title": {"bad": 1}},
                {"id": "2", "url": "https://jsonfeed.example.com/2", "title": "ok"},
            ]}).encode("utf-8"),
            headers={"Content-Type": "application/feed+json"},
        ))

        report = await manager.refresh_all()

        assert report.outcomes[0].status == RefreshStatus.UPDATED
        assert test_db.count_items(source.id) == 2
        assert test_db.fetch_source(source.id).consecutive_failures == 0

    @pytest.mark.asyncio
    async def test_new_articles_newest_first(self, manager, test_db, transport, rss, feed_response):
        first = add_source(test_db, "first")
        second = add_source(test_db, "second")
        transport.add(first.feed_url, feed_response(body=rss(items=[item("first", 1, day=1), item("first", 2, day=3)])))
        transport.add(second.feed_url, feed_response(body=rss(items=[item("second", 1, day=2)])))

        report = await manager.refresh_all()

        assert [a.title for a in report.new_articles] == ["first 2", "second 1", "first 1"]
        assert sorted(report.source_names) == ["first", "second"]

    @pytest.mark.asyncio
    async def test_second_pass_finds_nothing_new(self, manager, test_db, transport, rss, feed_response):
        source = add_source(test_db, "stable")
        transport.add(source.feed_url, feed_response(body=rss(items=[item("stable", 1)])))

        await manager.refresh_all()
        report = await manager.refresh_all()

        assert report.new_count == 0
        assert test_db.count_items(source.id) == 1

    @pytest.mark.asyncio
    async def test_stores_validators_and_handles_not_modified(
        self, manager, test_db, transport, rss, feed_response
    ):
        source = add_source(test_db, "cached")
        transport.add(source.feed_url, feed_response(body=rss(items=[item("cached", 1)]), headers={
            "Content-Type": "application/rss+xml",
            "ETag": '"v1"',
        }))
        await manager.refresh_all()
        assert test_db.fetch_source(source.id).etag == '"v1"'

        transport.add(source.feed_url, feed_response(status=304, headers={}))
        report = await manager.refresh_all()

        assert report.outcomes[0].status == RefreshStatus.NOT_MODIFIED
        assert transport.requests[-1][1]["If-None-Match"] == '"v1"'
        stored = test_db.fetch_source(source.id)
        assert stored.etag == '"v1"'
        assert stored.consecutive_failures == 0

    @pytest.mark.asyncio
    async def test_disabled_sources_are_skipped(self, manager, test_db, transport):
        add_source(test_db, "off", is_enabled=False)

        report = await manager.refresh_all()

        assert report.outcomes == []
        assert transport.requests == []

    @pytest.mark.asyncio
    async def test_only_due_respects_backoff(self, manager, test_db, transport, feed_response):
        source = add_source(test_db, "flaky")
        transport.add(source.feed_url, feed_response(status=500))

        await manager.refresh_all()
        report = await manager.refresh_all(only_due=True)

        assert report.outcomes == []
        assert len(transport.requests) == 1

    @pytest.mark.asyncio
    async def test_concurrent_pass_is_a_noop(self, test_db, transport_factory, rss, feed_response):
        transport = transport_factory(delay=0.05)
        manager = FeedManager(test_db, FeedFetcher(session_factory=transport.session_factory))
        source = add_source(test_db, "slow")
        transport.add(source.feed_url, feed_response(body=rss(items=[item("slow", 1)])))

        first, second = await asyncio.gather(manager.refresh_all(), manager.refresh_all())

        assert first is not None
        assert second is None
        assert len(transport.requests) == 1
        assert manager.is_refreshing is False
        assert manager.last_refresh_at is not None

    @pytest.mark.asyncio
    async def test_emits_change_event_even_without_new_articles(self, manager, events):
        listener = MagicMock()
        events.subscribe(listener)

        await manager.refresh_all()

        listener.assert_called_once_with("refresh")


class TestRefreshSingle:

    @pytest.mark.asyncio
    async def test_refreshes_one_source(self, manager, test_db, transport, rss, feed_response):
        target = add_source(test_db, "target")
        other = add_source(test_db, "other")
        transport.add(target.feed_url, feed_response(body=rss(items=[item("target", 1)])))

        report = await manager.refresh(target.id)

        assert report.new_count == 1
        assert report.source_names == ["target"]
        assert [url for url, _ in transport.requests] == [target.feed_url]
        assert test_db.fetch_source(other.id).last_fetched_at is None

    @pytest.mark.asyncio
    async def test_unknown_source(self, manager):
        assert await manager.refresh("missing") is None

    @pytest.mark.asyncio
    async def test_same_source_concurrently_is_a_noop(self, test_db, transport_factory, rss, feed_response):
        transport = transport_factory(delay=0.05)
        manager = FeedManager(test_db, FeedFetcher(session_factory=transport.session_factory))
        source = add_source(test_db, "busy")
        transport.add(source.feed_url, feed_response(body=rss(items=[item("busy", 1)])))

        first, second = await asyncio.gather(manager.refresh(source.id), manager.refresh(source.id))

        assert first is not None
        assert second is None
        assert len(transport.requests) == 1
        assert not manager.is_source_refreshing(source.id)

    @pytest.mark.asyncio
    async def test_different_sources_concurrently(self, manager, test_db, transport, rss, feed_response):
        one = add_source(test_db, "one")
        two = add_source(test_db, "two")
        transport.add(one.feed_url, feed_response(body=rss(items=[item("one", 1)])))
        transport.add(two.feed_url, feed_response(body=rss(items=[item("two", 1)])))

        first, second = await asyncio.gather(manager.refresh(one.id), manager.refresh(two.id))

        assert first.new_count == 1
        assert second.new_count == 1

    @pytest.mark.asyncio
    async def test_network_failure_increments_counter(self, manager, test_db):
        source = add_source(test_db, "unreachable")

        await manager.refresh(source.id)
        await manager.refresh(source.id)

        stored = test_db.fetch_source(source.id)
        assert stored.consecutive_failures == 2
        assert stored.last_error == "Network error"
        assert stored.backoff_multiplier() == 4


class TestNotifications:

    def _manager(self, test_db, fetcher, enabled: bool, notifier):
        return FeedManager(
            test_db,
            fetcher,
            settings=Settings(enable_notifications=enabled),
            notifier=notifier,
        )

    @pytest.mark.asyncio
    async def test_sends_batch_when_enabled(self, test_db, fetcher, transport, rss, feed_response):
        notifier = MagicMock(spec=Notifier)
        manager = self._manager(test_db, fetcher, True, notifier)
        source = add_source(test_db, "notify")
        transport.add(source.feed_url, feed_response(body=rss(items=[item("notify", 1), item("notify", 2, day=2)])))

        await manager.refresh_all()

        notifier.send_new_articles.assert_called_once()
        articles, names = notifier.send_new_articles.call_args.args
        assert [a.title for a in articles] == ["notify 2", "notify 1"]
        assert names == ["notify"]

    @pytest.mark.asyncio
    async def test_not_sent_when_disabled(self, test_db, fetcher, transport, rss, feed_response):
        notifier = MagicMock(spec=Notifier)
        manager = self._manager(test_db, fetcher, False, notifier)
        source = add_source(test_db, "quiet")
        transport.add(source.feed_url, feed_response(body=rss(items=[item("quiet", 1)])))

        await manager.refresh_all()

        notifier.send_new_articles.assert_not_called()

    @pytest.mark.asyncio
    async def test_not_sent_for_empty_batch(self, test_db, fetcher):
        notifier = MagicMock(spec=Notifier)
        manager = self._manager(test_db, fetcher, True, notifier)

        await manager.refresh_all()

        notifier.send_new_articles.assert_not_called()

    @pytest.mark.asyncio
    async def test_notifier_failure_does_not_fail_refresh(self, test_db, fetcher, transport, rss, feed_response):
        notifier = MagicMock(spec=Notifier)
        notifier.send_new_articles.side_effect = RuntimeError("boom")
        manager = self._manager(test_db, fetcher, True, notifier)
        source = add_source(test_db, "loud")
        transport.add(source.feed_url, feed_response(body=rss(items=[item("loud", 1)])))

        report = await manager.refresh_all()

        assert report.new_count == 1


class TestMarkRead:

    def _seed(self, test_db):
        tagged = add_source(test_db, "tagged", tag="Tag")
        plain = add_source(test_db, "plain")
        saved = test_db.save_items([
            Article(source_id=tagged.id, link="https://tagged.example.com/1", title="t1"),
            Article(source_id=tagged.id, link="https://tagged.example.com/2", title="t2"),
        ], tagged.id)
        test_db.save_items([
            Article(source_id=plain.id, link="https://plain.example.com/1", title="p1"),
        ], plain.id)
        return tagged, plain, saved.new_articles

    def test_mark_as_read_emits_event(self, manager, test_db, events):
        _, _, articles = self._seed(test_db)
        listener = MagicMock()
        events.subscribe(listener)

        assert manager.mark_as_read(articles[0].id) is True
        assert test_db.fetch_article(articles[0].id).is_read is True
        listener.assert_called_once_with("mark_read")

    def test_mark_all_as_read(self, manager, test_db):
        tagged, plain, _ = self._seed(test_db)
        assert manager.mark_all_as_read(tagged.id) == 2
        assert manager.mark_all_as_read() == 1

    def test_mark_all_as_read_for_tag(self, manager, test_db):
        tagged, plain, _ = self._seed(test_db)
        assert manager.mark_all_as_read_for_tag("Tag") == 2
        assert test_db.fetch_unread_count(plain.id) == 1

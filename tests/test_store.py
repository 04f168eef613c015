"""Tests for the entity store, the pagination runner and background plumbing."""

from __future__ import annotations

import threading
from functools import partial

import pytest

from mal_cli.background import (
    BackgroundUpdate,
    CommandChannel,
    describe_worker_error,
    spawn_worker,
)
from mal_cli.errors import AuthError, NetworkError
from mal_cli.events import BackgroundNotice, EventBus, ShowError, error_bus, report_error
from mal_cli.models import apply_list_update, build_list_update
from mal_cli.store import EntityStore
from mal_cli.streaming import DEFAULT_BATCH_SIZE, StreamableRunner

# ── Entity store ─────────────────────────────────────────────────────────────


class TestEntityStore:
    def test_reads_are_snapshots(self, make_anime, make_store):
        store = make_store([make_anime(1, "Original")])

        snapshot = store.get(1)
        snapshot.title = "Mutated"
        snapshot.my_list_status.score = 9

        fresh = store.get(1)
        assert fresh.title == "Original"
        assert fresh.my_list_status.score == 0

    def test_add_does_not_overwrite(self, make_anime):
        store = EntityStore()
        assert store.add(make_anime(1, "First")) is True
        assert store.add(make_anime(1, "Second")) is False
        assert store.get(1).title == "First"

    def test_get_bulk_keeps_order_and_skips_missing(self, make_anime, make_store):
        store = make_store([make_anime(1), make_anime(2), make_anime(3)])
        assert [a.id for a in store.get_bulk([3, 99, 1])] == [3, 1]

    def test_update_applies_partial(self, make_anime, make_store):
        anime = make_anime(5, num_episodes=12)
        store = make_store([anime])
        update = build_list_update(anime, episodes_watched=4)

        assert store.update(5, partial(apply_list_update, update=update)) is True

        status = store.get(5).my_list_status
        assert status.status == "watching"
        assert status.num_episodes_watched == 4

    def test_update_unknown_id_is_noop(self):
        assert EntityStore().update(1, lambda anime: None) is False

    def test_failed_update_leaves_record(self, make_anime, make_store):
        store = make_store([make_anime(1, "Kept")])

        def _explode(anime):
            anime.title = "half-written"
            raise RuntimeError("boom")

        with pytest.raises(RuntimeError):
            store.update(1, _explode)
        assert store.get(1).title == "Kept"

    def test_update_cannot_change_id(self, make_anime, make_store):
        store = make_store([make_anime(1)])

        def _reid(anime):
            anime.id = 2

        store.update(1, _reid)
        assert 1 in store
        assert 2 not in store

    def test_concurrent_bulk_inserts_keep_first_copy(self, make_anime):
        store = EntityStore()
        barrier = threading.Barrier(8)
        inserted: list[int] = []
        lock = threading.Lock()

        def _writer(worker: int) -> None:
            batch = [make_anime(anime_id, f"worker-{worker}") for anime_id in range(100)]
            barrier.wait()
            count = store.add_bulk(batch)
            with lock:
                inserted.append(count)

        threads = [threading.Thread(target=_writer, args=(n,)) for n in range(8)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert sum(inserted) == 100
        assert len(store) == 100
        # Every record came from a single writer batch
        titles = {anime.title for anime in store.get_list()}
        assert all(title.startswith("worker-") for title in titles)


# ── Streamable runner ────────────────────────────────────────────────────────


class TestStreamableRunner:
    def test_defaults_page_until_empty(self):
        pages = {0: [1] * DEFAULT_BATCH_SIZE, DEFAULT_BATCH_SIZE: [2] * 5}
        calls: list[tuple[int, int]] = []

        def fetch(offset, limit):
            calls.append((offset, limit))
            return pages.get(offset, [])

        batches = list(StreamableRunner().run(fetch))

        assert [len(b) for b in batches] == [DEFAULT_BATCH_SIZE, 5]
        assert calls == [(0, 20), (20, 20), (40, 20)]

    def test_stop_early_ends_after_short_batch(self):
        calls: list[int] = []

        def fetch(offset, limit):
            calls.append(offset)
            return [0] * (limit if offset == 0 else 3)

        batches = list(StreamableRunner().with_batch_size(10).stop_early().run(fetch))

        assert [len(b) for b in batches] == [10, 3]
        assert calls == [0, 10]

    def test_seasonal_schedule(self):
        calls: list[tuple[int, int]] = []

        def fetch(offset, limit):
            calls.append((offset, limit))
            return [0] * limit

        runner = StreamableRunner().change_batch_size_at(100, 1).stop_at(3)
        list(runner.run(fetch))

        assert calls == [(0, 20), (20, 100), (120, 100)]

    def test_none_ends_stream(self):
        assert list(StreamableRunner().run(lambda offset, limit: None)) == []

    def test_invalid_knobs_are_ignored(self):
        runner = StreamableRunner().with_batch_size(0).change_batch_size_at(-1, 2).stop_at(-3)
        assert runner.batch_size == DEFAULT_BATCH_SIZE
        assert runner.new_batch_size is None
        assert runner.max_batches is None

    def test_stream_is_lazy(self):
        calls: list[int] = []

        def fetch(offset, limit):
            calls.append(offset)
            return [0] * limit

        stream = StreamableRunner().run(fetch)
        assert calls == []
        next(stream)
        assert calls == [0]


# ── Background plumbing ──────────────────────────────────────────────────────


class TestBackgroundUpdate:
    def test_take_moves_value_out(self):
        update = BackgroundUpdate("SearchScreen").set("ids", [1, 2])
        assert update.take("ids", list) == [1, 2]
        assert update.take("ids", list) is None

    def test_mistyped_field_is_dropped(self):
        update = BackgroundUpdate("SearchScreen").set("ids", "not-a-list")
        assert update.take("ids", list) is None
        assert not update.has("ids")

    def test_get_peeks(self):
        update = BackgroundUpdate("x").set("n", 3)
        assert update.get("n", int) == 3
        assert update.has("n")


class TestCommandChannel:
    def test_iteration_ends_on_close(self):
        channel = CommandChannel()
        channel.send("a")
        channel.send("b")
        channel.close()

        assert list(channel) == ["a", "b"]
        assert channel.send("c") is False
        assert channel.recv(timeout=0.01) is None

    def test_close_is_idempotent(self):
        channel = CommandChannel()
        channel.close()
        channel.close()
        assert channel.closed
        assert channel.try_recv() is None

    def test_has_pending_counts_unreceived_commands(self):
        channel = CommandChannel()
        assert not channel.has_pending()
        channel.send("a")
        channel.send("b")
        assert channel.has_pending()

        assert channel.recv(timeout=0.1) == "a"
        assert channel.has_pending()
        assert channel.try_recv() == "b"
        assert not channel.has_pending()

        channel.close()
        assert not channel.has_pending()


class TestWorkers:
    def test_failing_worker_posts_show_error(self):
        bus = EventBus()

        def _boom():
            raise NetworkError("offline")

        handle = spawn_worker("test", _boom, bus=bus, action="load the seasonal chart")
        assert handle.join(timeout=2)

        event = bus.recv(timeout=1)
        assert isinstance(event, ShowError)
        assert "Could not load the seasonal chart." in event.message
        assert isinstance(handle.error, NetworkError)

    def test_describe_auth_error_points_to_login(self):
        message = describe_worker_error("load your list", AuthError("expired"))
        assert "log in again" in message

    def test_notify_wraps_update(self, make_info):
        info = make_info()
        update = BackgroundUpdate("ListScreen").set("ids", [1])
        assert info.notify(update)
        event = info.bus.recv(timeout=1)
        assert isinstance(event, BackgroundNotice)
        assert event.update is update


class TestErrorBus:
    def test_unbound_error_bus_only_logs(self, caplog):
        error_bus.unbind()
        with caplog.at_level("WARNING"):
            report_error("nobody listening")
        assert "nobody listening" in caplog.text

    def test_bound_error_bus_posts_event(self):
        bus = EventBus()
        error_bus.bind(bus)
        report_error("shown")
        assert bus.recv(timeout=1) == ShowError("shown")

    def test_closed_bus_rejects_and_drain_collects(self):
        bus = EventBus()
        bus.send(1)
        bus.send(2)
        assert bus.drain(timeout=0.1) == [1, 2]
        bus.close()
        assert bus.send(3) is False
        assert bus.drain(timeout=0.01) == []

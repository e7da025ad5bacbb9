import threading
import time
from unittest.mock import Mock

from fakes import FakeFirestore, change, seed_task

from opsdash.config import collections
from opsdash.models.task_model import task_to_json
from opsdash.services.change_feed import FEED_CLOSED, CollectionFeed, FeedError, TaskChangeWatcher


def _snapshot(db, task_id):
    return db.collection(collections.BUILD_TASKS).document(task_id).get()


def _all(db):
    return list(db.collection(collections.BUILD_TASKS).stream())


class TestCollectionFeed:
    def test_publishes_sorted_view_to_every_channel(self):
        db = FakeFirestore()
        seed_task(db, "b", 2)
        seed_task(db, "a", 1)
        feed = CollectionFeed(db, collections.BUILD_TASKS, task_to_json, sort_key=lambda t: t["order"]).start()
        first, second = feed.subscribe(), feed.subscribe()

        watch = db.collection(collections.BUILD_TASKS).watches[0]
        watch.callback(_all(db), [], None)

        assert [t["id"] for t in first.get_nowait()] == ["a", "b"]
        assert [t["id"] for t in second.get_nowait()] == ["a", "b"]

    def test_late_subscriber_gets_latest_view(self):
        db = FakeFirestore()
        seed_task(db, "a", 1)
        feed = CollectionFeed(db, collections.BUILD_TASKS, task_to_json).start()
        feed._on_snapshot(_all(db), [], None)

        channel = feed.subscribe()

        assert [t["id"] for t in channel.get_nowait()] == ["a"]

    def test_unsubscribed_channel_stops_receiving(self):
        db = FakeFirestore()
        feed = CollectionFeed(db, collections.BUILD_TASKS, task_to_json).start()
        channel = feed.subscribe()
        feed.unsubscribe(channel)

        feed._on_snapshot([], [], None)

        assert channel.empty()

    def test_mapping_error_is_published(self):
        db = FakeFirestore()
        seed_task(db, "a", 1)
        broken = Mock(side_effect=KeyError("title"))
        feed = CollectionFeed(db, collections.BUILD_TASKS, broken).start()
        channel = feed.subscribe()

        feed._on_snapshot(_all(db), [], None)

        item = channel.get_nowait()
        assert isinstance(item, FeedError)
        assert "Failed to load build_tasks" in item.message

    def test_full_channel_drops_update(self):
        db = FakeFirestore()
        feed = CollectionFeed(db, collections.BUILD_TASKS, task_to_json).start()
        channel = feed.subscribe(maxsize=1)

        feed._on_snapshot([], [], None)
        feed._on_snapshot([], [], None)

        assert channel.qsize() == 1

    def test_close_detaches_listener_and_signals_channels(self):
        db = FakeFirestore()
        feed = CollectionFeed(db, collections.BUILD_TASKS, task_to_json).start()
        channel = feed.subscribe()

        feed.close()

        assert db.collection(collections.BUILD_TASKS).watches[0].active is False
        assert channel.get_nowait() is FEED_CLOSED

    def test_close_on_full_channel_does_not_block(self):
        db = FakeFirestore()
        feed = CollectionFeed(db, collections.BUILD_TASKS, task_to_json).start()
        channel = feed.subscribe(maxsize=1)
        feed._on_snapshot([], [], None)

        closer = threading.Thread(target=feed.close, daemon=True)
        closer.start()
        closer.join(timeout=2)

        assert not closer.is_alive()
        assert channel.get_nowait() is FEED_CLOSED
        assert channel.empty()


class TestTaskChangeWatcher:
    def test_initial_snapshot_only_seeds_cache(self):
        db = FakeFirestore()
        seed_task(db, "t1", 1)
        notifier = Mock()
        watcher = TaskChangeWatcher(db, notifier=notifier).start()

        watcher.handle_snapshot([], [change("ADDED", _snapshot(db, "t1"))], None)
        watcher.stop()

        notifier.assert_not_called()

    def test_modification_passes_before_and_after(self):
        db = FakeFirestore()
        seed_task(db, "t1", 1)
        notifier = Mock()
        watcher = TaskChangeWatcher(db, notifier=notifier).start()
        watcher.handle_snapshot([], [change("ADDED", _snapshot(db, "t1"))], None)

        db.collection(collections.BUILD_TASKS).document("t1").update({"status": "completed"})
        watcher.handle_snapshot([], [change("MODIFIED", _snapshot(db, "t1"))], None)
        watcher.wait_all()

        notifier.assert_called_once()
        _, task_id, before, after = notifier.call_args[0]
        assert task_id == "t1"
        assert before["status"] == "pending"
        assert after["status"] == "completed"
        watcher.stop()

    def test_modification_without_previous_version_is_skipped(self):
        db = FakeFirestore()
        seed_task(db, "t1", 1)
        notifier = Mock()
        watcher = TaskChangeWatcher(db, notifier=notifier).start()

        watcher.handle_snapshot([], [change("MODIFIED", _snapshot(db, "t1"))], None)
        watcher.stop()

        notifier.assert_not_called()

    def test_removed_task_is_forgotten(self):
        db = FakeFirestore()
        seed_task(db, "t1", 1)
        notifier = Mock()
        watcher = TaskChangeWatcher(db, notifier=notifier).start()
        snap = _snapshot(db, "t1")

        watcher.handle_snapshot([], [change("ADDED", snap)], None)
        watcher.handle_snapshot([], [change("REMOVED", snap)], None)
        watcher.handle_snapshot([], [change("MODIFIED", snap)], None)
        watcher.stop()

        notifier.assert_not_called()

    def test_notifier_failure_does_not_stop_watcher(self, caplog):
        db = FakeFirestore()
        seed_task(db, "t1", 1)
        seed_task(db, "t2", 2)
        notifier = Mock(side_effect=[RuntimeError("smtp down"), None])
        watcher = TaskChangeWatcher(db, notifier=notifier).start()
        watcher.handle_snapshot([], [change("ADDED", _snapshot(db, "t1")), change("ADDED", _snapshot(db, "t2"))], None)

        watcher.handle_snapshot([], [change("MODIFIED", _snapshot(db, "t1")), change("MODIFIED", _snapshot(db, "t2"))], None)
        watcher.stop()

        assert notifier.call_count == 2
        assert "Task update notification failed for t1" in caplog.text

    def test_slow_notifier_does_not_block_listener(self):
        db = FakeFirestore()
        seed_task(db, "t1", 1)
        seed_task(db, "t2", 2)
        release = threading.Event()
        seen = []

        def slow_notifier(db_, task_id, before, after):
            release.wait(5)
            seen.append(task_id)

        watcher = TaskChangeWatcher(db, notifier=slow_notifier).start()
        watcher.handle_snapshot([], [change("ADDED", _snapshot(db, "t1")), change("ADDED", _snapshot(db, "t2"))], None)

        started = time.monotonic()
        watcher.handle_snapshot([], [change("MODIFIED", _snapshot(db, "t1"))], None)
        watcher.handle_snapshot([], [change("MODIFIED", _snapshot(db, "t2"))], None)
        elapsed = time.monotonic() - started

        assert elapsed < 1
        assert seen == []
        release.set()
        watcher.stop()
        assert seen == ["t1", "t2"]

    def test_stop_unsubscribes(self):
        db = FakeFirestore()
        watcher = TaskChangeWatcher(db, notifier=Mock()).start()
        watcher.stop()
        assert db.collection(collections.BUILD_TASKS).watches[0].active is False

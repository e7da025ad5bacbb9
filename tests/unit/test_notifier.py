import json
import threading
from unittest.mock import Mock

import pytest

from fakes import FakeFirestore, change, seed_subscription, seed_task

from opsdash import notifier
from opsdash.config import collections


@pytest.fixture
def db(monkeypatch):
    db = FakeFirestore()
    monkeypatch.setattr(notifier, "init_firebase", lambda: True)
    monkeypatch.setattr(notifier.firestore, "client", lambda: db)
    monkeypatch.setattr(notifier, "configure_logging", lambda *a, **k: None)
    return db


class TestNotifierCli:
    def test_reconcile_prints_report(self, db, capsys):
        seed_subscription(db, "gone", "u1", "u1@example.com", record_id="orphan")

        assert notifier.main(["--reconcile", "--prune-orphans"]) == 0

        report = json.loads(capsys.readouterr().out)
        assert report["orphans_deleted"] == 1
        assert db.collection(collections.TASK_SUBSCRIPTIONS).data("orphan") is None

    def test_unconfigured_firebase_exits(self, monkeypatch):
        monkeypatch.setattr(notifier, "init_firebase", lambda: False)
        monkeypatch.setattr(notifier, "configure_logging", lambda *a, **k: None)
        with pytest.raises(SystemExit):
            notifier.main(["--reconcile"])

    def test_watch_mode_passes_worker_bound(self, db, monkeypatch):
        run = Mock()
        monkeypatch.setattr(notifier, "run_watcher", run)

        notifier.main(["--workers", "0"])

        run.assert_called_once_with(db, 1)


class TestRunWatcher:
    def test_modified_task_reaches_notification_service(self, db, monkeypatch):
        seed_task(db, "t1", 1)
        seed_subscription(db, "t1", "u1", "u1@example.com")
        calls = []
        monkeypatch.setattr(notifier.notification_service, "notify_task_update",
                            lambda db_, task_id, before, after, max_workers=None: calls.append(
                                (task_id, before["status"], after["status"], max_workers)))
        stop = threading.Event()

        def drive():
            watch = db.collection(collections.BUILD_TASKS).watches[0]
            ref = db.collection(collections.BUILD_TASKS).document("t1")
            watch.callback([], [change("ADDED", ref.get())], None)
            ref.update({"status": "completed"})
            watch.callback([], [change("MODIFIED", ref.get())], None)
            stop.set()

        stop_timer = threading.Timer(0.05, drive)
        stop_timer.start()
        notifier.run_watcher(db, workers=3, stop_event=stop)
        stop_timer.join()

        assert calls == [("t1", "pending", "completed", 3)]
        assert db.collection(collections.BUILD_TASKS).watches[0].active is False

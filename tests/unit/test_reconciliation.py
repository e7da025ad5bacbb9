import pytest

from fakes import FakeFirestore, seed_subscription, seed_task

from opsdash.config import collections
from opsdash.models.task_model import BuildTaskModel
from opsdash.services.reconciliation_service import reconcile_subscriptions


@pytest.fixture
def db():
    db = FakeFirestore()
    # t1: u1 consistent, u2 in array without record, u3 recorded but missing from array
    seed_task(db, "t1", 1, subscribers=["u1", "u2"])
    seed_subscription(db, "t1", "u1", "u1@example.com", record_id="r1")
    seed_subscription(db, "t1", "u3", "u3@example.com", record_id="r3")
    # record for a task that was deleted
    seed_subscription(db, "gone", "u1", "u1@example.com", record_id="orphan")
    return db


def _subscribers(db, task_id="t1"):
    return sorted(db.collection(collections.BUILD_TASKS).data(task_id)["subscribers"])


class TestReconcileSubscriptions:
    def test_repairs_both_directions(self, db):
        report = reconcile_subscriptions(db)

        assert report["tasks_checked"] == 1
        assert report["members_removed"] == [{"taskId": "t1", "userId": "u2"}]
        assert report["members_restored"] == [{"taskId": "t1", "userId": "u3"}]
        assert _subscribers(db) == ["u1", "u3"]

    def test_orphans_reported_but_kept_by_default(self, db):
        report = reconcile_subscriptions(db)

        assert report["orphan_records"] == [{"id": "orphan", "taskId": "gone", "userId": "u1"}]
        assert report["orphans_deleted"] == 0
        assert db.collection(collections.TASK_SUBSCRIPTIONS).data("orphan") is not None

    def test_prune_orphans(self, db):
        report = reconcile_subscriptions(db, prune_orphans=True)

        assert report["orphans_deleted"] == 1
        assert db.collection(collections.TASK_SUBSCRIPTIONS).data("orphan") is None

    def test_dry_run_writes_nothing(self, db):
        report = reconcile_subscriptions(db, prune_orphans=True, dry_run=True)

        assert report["dry_run"] is True
        assert len(report["members_removed"]) == 1
        assert _subscribers(db) == ["u1", "u2"]
        assert db.collection(collections.TASK_SUBSCRIPTIONS).data("orphan") is not None

    def test_second_pass_is_clean(self, db):
        reconcile_subscriptions(db, prune_orphans=True)
        report = reconcile_subscriptions(db, prune_orphans=True)

        assert report["members_removed"] == []
        assert report["members_restored"] == []
        assert report["orphan_records"] == []


class TestConcurrentChanges:
    @pytest.fixture
    def db(self):
        db = FakeFirestore()
        seed_task(db, "t1", 1, subscribers=["u1"])
        seed_subscription(db, "t1", "u1", "u1@example.com", record_id="r1")
        return db

    def _during_task_scan(self, db, monkeypatch, action):
        tasks = db.collection(collections.BUILD_TASKS)
        original = tasks.stream

        def stream():
            snapshots = list(original())
            action()
            return iter(snapshots)

        monkeypatch.setattr(tasks, "stream", stream)

    def test_unsubscribe_mid_pass_is_not_undone(self, db, monkeypatch):
        self._during_task_scan(db, monkeypatch, lambda: BuildTaskModel(db).unsubscribe("t1", "u1"))

        report = reconcile_subscriptions(db)

        assert report["members_restored"] == [] and report["members_removed"] == []
        assert _subscribers(db) == []
        assert db.collection(collections.TASK_SUBSCRIPTIONS).all() == {}

    def test_subscribe_mid_pass_is_kept(self, db, monkeypatch):
        self._during_task_scan(db, monkeypatch,
                               lambda: BuildTaskModel(db).subscribe("t1", "u2", "u2@example.com"))

        report = reconcile_subscriptions(db)

        assert report["members_removed"] == []
        assert _subscribers(db) == ["u1", "u2"]

    def test_task_created_mid_pass_is_not_an_orphan(self, db, monkeypatch):
        def create_task():
            seed_task(db, "t2", 2, subscribers=["u1"])
            seed_subscription(db, "t2", "u1", "u1@example.com", record_id="r2")

        self._during_task_scan(db, monkeypatch, create_task)

        report = reconcile_subscriptions(db, prune_orphans=True)

        assert report["orphan_records"] == []
        assert db.collection(collections.TASK_SUBSCRIPTIONS).data("r2") is not None

"""
Repair pass for the subscriber array <-> task_subscriptions mirror.

Both sides are normally written in one batch, but older data, deleted tasks
and manual edits can still leave them apart. For every task:

- an array member with no subscription record is removed from the array
  (there is no email to rebuild the record from)
- a subscription record whose user is missing from the array is added back
  to the array

Each task is compared against a fresh read of the task followed by a query
of its own records, so a subscribe or unsubscribe that lands while the pass
is running is never undone. Records pointing at a task that no longer exists
are orphans; they are reported and only deleted when ``prune_orphans`` is set.
"""
import logging
from typing import Any, Dict, List, Set, Tuple

from firebase_admin import firestore
from google.cloud.firestore_v1.base_query import FieldFilter

from opsdash.config import collections

logger = logging.getLogger(__name__)


def _recorded_users(db, task_id: str) -> Set[str]:
    docs = db.collection(collections.TASK_SUBSCRIPTIONS).where(
        filter=FieldFilter("taskId", "==", task_id)
    ).stream()
    return {(d.to_dict() or {}).get("userId") for d in docs} - {None}


def _compare(db, task_ref) -> Tuple[bool, List[str], List[str]]:
    """Return (exists, stale members, missing members) for one task, read now"""
    task_doc = task_ref.get()
    if not task_doc.exists:
        return False, [], []
    members = set((task_doc.to_dict() or {}).get("subscribers") or [])
    recorded = _recorded_users(db, task_ref.id)
    return True, sorted(members - recorded), sorted(recorded - members)


def reconcile_subscriptions(db, prune_orphans: bool = False, dry_run: bool = False) -> Dict[str, Any]:
    report = {
        "tasks_checked": 0,
        "members_removed": [],
        "members_restored": [],
        "orphan_records": [],
        "orphans_deleted": 0,
        "dry_run": dry_run,
    }

    tasks = db.collection(collections.BUILD_TASKS)
    task_ids = set()
    for task_doc in tasks.stream():
        report["tasks_checked"] += 1
        task_ids.add(task_doc.id)

        exists, stale, missing = _compare(db, task_doc.reference)
        if not exists:
            continue

        for uid in stale:
            report["members_removed"].append({"taskId": task_doc.id, "userId": uid})
        for uid in missing:
            report["members_restored"].append({"taskId": task_doc.id, "userId": uid})

        if dry_run:
            continue
        if stale:
            task_doc.reference.update({"subscribers": firestore.ArrayRemove(stale)})
        if missing:
            task_doc.reference.update({"subscribers": firestore.ArrayUnion(missing)})

    for doc in db.collection(collections.TASK_SUBSCRIPTIONS).stream():
        data = doc.to_dict() or {}
        task_id = data.get("taskId")
        if task_id in task_ids:
            continue
        # The task may have been created after the task scan
        if task_id and tasks.document(task_id).get().exists:
            continue
        report["orphan_records"].append({"id": doc.id, "taskId": task_id, "userId": data.get("userId")})
        if prune_orphans and not dry_run:
            doc.reference.delete()
            report["orphans_deleted"] += 1

    logger.info(
        "Subscription reconciliation: %d tasks, %d removed, %d restored, %d orphans (%d deleted)",
        report["tasks_checked"], len(report["members_removed"]), len(report["members_restored"]),
        len(report["orphan_records"]), report["orphans_deleted"],
    )
    return report

"""
Build-task board repository.

Tasks live in ``build_tasks`` with their sub-tasks embedded as a list and
their subscribers as an array of user ids. Every sub-task mutation rewrites
the whole ``subTasks`` list (last write wins). Subscriptions are mirrored in
``task_subscriptions``; both sides are written in one batch.
"""
import logging
from typing import Any, Dict, List, Tuple

from firebase_admin import firestore
from google.api_core.exceptions import NotFound
from google.cloud.firestore_v1.base_query import FieldFilter

from opsdash.config import collections
from opsdash.exceptions import DashboardError, NotFoundError, StoreError, ValidationError
from opsdash.services.reorder_service import plan_reorder
from opsdash.utils.validators import Helpers, Validators

logger = logging.getLogger(__name__)


def task_to_json(doc) -> Dict[str, Any]:
    data = doc.to_dict() or {}
    return {
        "id": doc.id,
        "title": data.get("title"),
        "description": data.get("description", ""),
        "status": data.get("status", "pending"),
        "priority": data.get("priority", "medium"),
        "assignedTo": data.get("assignedTo"),
        "createdAt": Helpers.format_timestamp(data.get("createdAt")),
        "updatedAt": Helpers.format_timestamp(data.get("updatedAt")),
        "createdBy": data.get("createdBy"),
        "subTasks": list(data.get("subTasks") or []),
        "order": data.get("order") or 0,
        "subscribers": list(data.get("subscribers") or []),
    }


def sort_tasks(tasks: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """Sort by ``order``; ties keep their incoming (creation) order"""
    return sorted(tasks, key=lambda t: t.get("order") or 0)


class BuildTaskModel:
    """Task repository for Firestore operations"""

    def __init__(self, db):
        self.db = db
        self.collection = db.collection(collections.BUILD_TASKS)
        self.subscriptions = db.collection(collections.TASK_SUBSCRIPTIONS)

    # ------------------------------------------------------------------
    # reads
    # ------------------------------------------------------------------
    def list_tasks(self) -> List[Dict[str, Any]]:
        try:
            docs = self.collection.order_by("createdAt").stream()
            tasks = [task_to_json(d) for d in docs]
        except Exception as e:
            logger.error("Error fetching build tasks: %s", e)
            raise StoreError("Failed to load build tasks") from e
        return sort_tasks(tasks)

    def get_task(self, task_id: str) -> Dict[str, Any]:
        try:
            doc = self.collection.document(task_id).get()
        except Exception as e:
            logger.error("Error fetching task %s: %s", task_id, e)
            raise StoreError("Failed to load task") from e
        if not doc.exists:
            raise NotFoundError("Task not found")
        return task_to_json(doc)

    def _max_order(self) -> int:
        top = self.collection.order_by("order", direction=firestore.Query.DESCENDING).limit(1).stream()
        for doc in top:
            order = (doc.to_dict() or {}).get("order") or 0
            return max(order, 0)
        return 0

    # ------------------------------------------------------------------
    # task lifecycle
    # ------------------------------------------------------------------
    def add_task(self, title: str, description: str, priority: str, created_by: str) -> Dict[str, Any]:
        """Create a pending task at the end of the board"""
        title = Helpers.sanitize_string(title)
        if not title:
            raise ValidationError("Task title is required")
        if not Validators.validate_priority(priority):
            raise ValidationError(f"Priority must be one of: {', '.join(Validators.TASK_PRIORITIES)}")

        try:
            now = Helpers.get_current_timestamp()
            task_doc = {
                "title": title,
                "description": Helpers.sanitize_string(description),
                "status": "pending",
                "priority": priority,
                "createdAt": now,
                "updatedAt": now,
                "createdBy": created_by,
                "subTasks": [],
                "order": self._max_order() + 1,
                "subscribers": [],
            }
            _, ref = self.collection.add(task_doc)
        except Exception as e:
            logger.error("Error adding task: %s", e)
            raise StoreError("Failed to add task") from e

        logger.info("Task %s created with order %s", ref.id, task_doc["order"])
        return {"id": ref.id, **task_doc,
                "createdAt": Helpers.format_timestamp(now),
                "updatedAt": Helpers.format_timestamp(now)}

    def delete_task(self, task_id: str) -> None:
        # task_subscriptions for this task are left in place; see
        # reconciliation_service.reconcile_subscriptions(prune_orphans=True)
        try:
            self.collection.document(task_id).delete()
        except Exception as e:
            logger.error("Error deleting task %s: %s", task_id, e)
            raise StoreError("Failed to delete task") from e

    def update_status(self, task_id: str, status: str) -> None:
        if not Validators.validate_task_status(status):
            raise ValidationError(f"Status must be one of: {', '.join(Validators.TASK_STATUSES)}")
        self._update(task_id, {"status": status}, "Failed to update task status")

    def reorder_task(self, task_id: str, new_order: int) -> None:
        """Set exactly one task's order key. Shifting other tasks is the caller's job."""
        if not Validators.validate_order(new_order):
            raise ValidationError("Order must be an integer")
        self._update(task_id, {"order": new_order}, "Failed to reorder task")

    def move_task(self, dragged_id: str, target_id: str) -> List[Tuple[str, int]]:
        """Drop ``dragged_id`` onto ``target_id``'s position.

        The shift plan is computed from the current board and committed as a
        single batch, so a failure leaves every order unchanged.
        """
        plan = plan_reorder(self.list_tasks(), dragged_id, target_id)
        if not plan:
            return plan

        try:
            batch = self.db.batch()
            now = Helpers.get_current_timestamp()
            for task_id, order in plan:
                batch.update(self.collection.document(task_id), {"order": order, "updatedAt": now})
            batch.commit()
        except Exception as e:
            logger.error("Error reordering tasks (%s -> %s): %s", dragged_id, target_id, e)
            raise StoreError("Failed to reorder tasks") from e

        logger.info("Moved task %s onto %s (%d writes)", dragged_id, target_id, len(plan))
        return plan

    # ------------------------------------------------------------------
    # sub-tasks
    # ------------------------------------------------------------------
    def add_sub_task(self, task_id: str, title: str) -> Dict[str, Any]:
        title = Helpers.sanitize_string(title)
        if not title:
            raise ValidationError("Sub-task title is required")

        task = self.get_task(task_id)
        now_iso = Helpers.now_iso()
        sub_task = {
            "id": Helpers.generate_id(),
            "title": title,
            "completed": False,
            "createdAt": now_iso,
            "updatedAt": now_iso,
        }
        self._write_sub_tasks(task_id, task["subTasks"] + [sub_task], "Failed to add subtask")
        return sub_task

    def toggle_sub_task(self, task_id: str, sub_task_id: str) -> Dict[str, Any]:
        task = self.get_task(task_id)
        toggled = None
        updated = []
        for st in task["subTasks"]:
            if st.get("id") == sub_task_id:
                toggled = {**st, "completed": not st.get("completed", False), "updatedAt": Helpers.now_iso()}
                updated.append(toggled)
            else:
                updated.append(st)
        if toggled is None:
            raise NotFoundError("Sub-task not found")

        self._write_sub_tasks(task_id, updated, "Failed to update subtask")
        return toggled

    def delete_sub_task(self, task_id: str, sub_task_id: str) -> None:
        task = self.get_task(task_id)
        remaining = [st for st in task["subTasks"] if st.get("id") != sub_task_id]
        if len(remaining) == len(task["subTasks"]):
            raise NotFoundError("Sub-task not found")
        self._write_sub_tasks(task_id, remaining, "Failed to delete subtask")

    def _write_sub_tasks(self, task_id: str, sub_tasks: List[Dict[str, Any]], failure: str) -> None:
        self._update(task_id, {"subTasks": sub_tasks}, failure)

    # ------------------------------------------------------------------
    # subscriptions
    # ------------------------------------------------------------------
    def subscribe(self, task_id: str, user_id: str, email: str) -> str:
        """Add ``user_id`` to the task's subscribers and record the subscription.

        Both writes go through one batch. Subscribing twice is a no-op.
        """
        if not user_id or not email:
            raise ValidationError("user_id and email are required")

        try:
            task_ref = self.collection.document(task_id)
            if not task_ref.get().exists:
                raise NotFoundError("Task not found")

            existing = self._subscription_docs(task_id, user_id)
            if existing:
                batch = self.db.batch()
                batch.update(task_ref, {"subscribers": firestore.ArrayUnion([user_id])})
                batch.commit()
                return existing[0].id

            sub_ref = self.subscriptions.document()
            batch = self.db.batch()
            batch.update(task_ref, {"subscribers": firestore.ArrayUnion([user_id])})
            batch.set(sub_ref, {
                "taskId": task_id,
                "userId": user_id,
                "email": email,
                "createdAt": Helpers.get_current_timestamp(),
            })
            batch.commit()
        except DashboardError:
            raise
        except Exception as e:
            logger.error("Error subscribing %s to task %s: %s", user_id, task_id, e)
            raise StoreError("Failed to subscribe to task") from e

        logger.info("User %s subscribed to task %s", user_id, task_id)
        return sub_ref.id

    def unsubscribe(self, task_id: str, user_id: str) -> int:
        """Remove ``user_id`` from the task and delete its subscription records.

        Returns the number of subscription records deleted.
        """
        try:
            task_ref = self.collection.document(task_id)
            matches = self._subscription_docs(task_id, user_id)
            batch = self.db.batch()
            if task_ref.get().exists:
                batch.update(task_ref, {"subscribers": firestore.ArrayRemove([user_id])})
            for doc in matches:
                batch.delete(doc.reference)
            batch.commit()
        except Exception as e:
            logger.error("Error unsubscribing %s from task %s: %s", user_id, task_id, e)
            raise StoreError("Failed to unsubscribe from task") from e

        logger.info("User %s unsubscribed from task %s (%d records)", user_id, task_id, len(matches))
        return len(matches)

    def list_subscriptions(self, task_id: str) -> List[Dict[str, Any]]:
        try:
            docs = self.subscriptions.where(filter=FieldFilter("taskId", "==", task_id)).stream()
            return [{"id": d.id, **(d.to_dict() or {})} for d in docs]
        except Exception as e:
            logger.error("Error loading subscriptions for %s: %s", task_id, e)
            raise StoreError("Failed to load subscriptions") from e

    def _subscription_docs(self, task_id: str, user_id: str) -> list:
        query = (
            self.subscriptions
            .where(filter=FieldFilter("taskId", "==", task_id))
            .where(filter=FieldFilter("userId", "==", user_id))
        )
        return list(query.stream())

    # ------------------------------------------------------------------
    def _update(self, task_id: str, fields: Dict[str, Any], failure: str) -> None:
        try:
            self.collection.document(task_id).update({**fields, "updatedAt": Helpers.get_current_timestamp()})
        except NotFound as e:
            raise NotFoundError("Task not found") from e
        except Exception as e:
            logger.error("%s (%s): %s", failure, task_id, e)
            raise StoreError(failure) from e

"""
Task-update emails for subscribers.

A task update is "meaningful" when its status, its number of sub-tasks or
its serialized sub-task list changed. Meaningful updates fan out one email
per subscription through a bounded thread pool. Failed deliveries are logged
and kept as dead letters; nothing is retried.
"""
import html
import json
import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

from firebase_admin import firestore
from google.cloud.firestore_v1.base_query import FieldFilter

from opsdash.config import collections
from opsdash.config.settings import Settings
from opsdash.email_utils import send_email
from opsdash.utils.validators import Helpers

logger = logging.getLogger(__name__)


@dataclass
class FanOutResult:
    task_id: str
    sent: int = 0
    dead_letters: List[Dict[str, Any]] = field(default_factory=list)

    @property
    def failed(self) -> int:
        return len(self.dead_letters)


def _serialize(sub_tasks) -> str:
    return json.dumps(sub_tasks or [], sort_keys=True, default=str)


def is_meaningful_change(before: Dict[str, Any], after: Dict[str, Any]) -> bool:
    before_subs = before.get("subTasks") or []
    after_subs = after.get("subTasks") or []
    return (
        before.get("status") != after.get("status")
        or len(before_subs) != len(after_subs)
        or _serialize(before_subs) != _serialize(after_subs)
    )


def build_task_update_email(task: Dict[str, Any]) -> Dict[str, str]:
    """Render the subject, HTML and plain-text bodies for one task"""
    title = task.get("title") or "Task"
    status = task.get("status") or ""
    description = task.get("description") or ""
    sub_tasks = task.get("subTasks") or []

    parts = [
        "<h2>Task Update Notification</h2>",
        f"<p><strong>Task:</strong> {html.escape(title)}</p>",
        f"<p><strong>Status:</strong> {html.escape(status)}</p>",
        f"<p><strong>Description:</strong> {html.escape(description)}</p>",
    ]
    text_lines = [f"Task: {title}", f"Status: {status}", f"Description: {description}"]

    if sub_tasks:
        items = []
        text_lines.append("Subtasks:")
        for st in sub_tasks:
            state = "✅ Completed" if st.get("completed") else "⏳ Pending"
            items.append(f"<li>{html.escape(st.get('title') or '')} - {state}</li>")
            text_lines.append(f"  - {st.get('title') or ''} - {state}")
        parts.append("<h3>Subtasks:</h3><ul>" + "".join(items) + "</ul>")

    footer = ("You are receiving this email because you subscribed to updates for this task. "
              "To unsubscribe, click the bell icon on the task in the application.")
    parts.append(f"<p><small>{footer}</small></p>")
    text_lines.append("")
    text_lines.append(footer)

    return {
        "subject": f"Task Update: {title}",
        "html": "\n".join(parts),
        "text": "\n".join(text_lines),
    }


def load_subscriptions(db, task_id: str) -> List[Dict[str, Any]]:
    docs = db.collection(collections.TASK_SUBSCRIPTIONS).where(
        filter=FieldFilter("taskId", "==", task_id)
    ).stream()
    return [{"id": d.id, **(d.to_dict() or {})} for d in docs]


def _deliver(sender: Callable[..., bool], subscription: Dict[str, Any], message: Dict[str, str]) -> Optional[str]:
    """Send one email; return None on success or the failure reason"""
    email = subscription.get("email")
    if not email:
        return "subscription has no email"
    try:
        ok = sender(email, message["subject"], message["html"], message["text"])
    except Exception as e:
        logger.exception("Error sending task update to %s", email)
        return str(e) or type(e).__name__
    return None if ok else "email delivery failed"


def fan_out(task_id: str, subscriptions: List[Dict[str, Any]], message: Dict[str, str],
            sender: Callable[..., bool] = send_email, max_workers: Optional[int] = None) -> FanOutResult:
    """Deliver ``message`` to every subscription with at most ``max_workers`` in flight"""
    result = FanOutResult(task_id=task_id)
    if not subscriptions:
        return result

    workers = max(1, min(max_workers or Settings.NOTIFY_MAX_WORKERS, len(subscriptions)))
    with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="notify") as pool:
        outcomes = list(pool.map(lambda sub: (sub, _deliver(sender, sub, message)), subscriptions))

    for sub, error in outcomes:
        if error is None:
            result.sent += 1
            continue
        logger.error("Task update for %s not delivered to %s: %s", task_id, sub.get("email"), error)
        result.dead_letters.append({
            "taskId": task_id,
            "userId": sub.get("userId"),
            "email": sub.get("email"),
            "subject": message["subject"],
            "error": error,
            "failedAt": Helpers.now_iso(),
        })
    return result


def record_dead_letters(db, dead_letters: List[Dict[str, Any]]) -> None:
    """Persist failed deliveries for operator inspection"""
    dead_collection = db.collection(collections.NOTIFICATION_DEAD_LETTERS)
    for letter in dead_letters:
        try:
            dead_collection.add(letter)
        except Exception as e:
            logger.error("Could not record dead letter for %s: %s", letter.get("email"), e)


def list_dead_letters(db, limit: int = 100) -> List[Dict[str, Any]]:
    """Newest failures first"""
    docs = (
        db.collection(collections.NOTIFICATION_DEAD_LETTERS)
        .order_by("failedAt", direction=firestore.Query.DESCENDING)
        .limit(limit)
        .stream()
    )
    return [{"id": d.id, **(d.to_dict() or {})} for d in docs]


def notify_task_update(db, task_id: str, before: Dict[str, Any], after: Dict[str, Any],
                       sender: Callable[..., bool] = send_email,
                       max_workers: Optional[int] = None) -> Optional[FanOutResult]:
    """Email every subscriber of ``task_id`` when the update is meaningful.

    Returns None for a no-op update.
    """
    if not is_meaningful_change(before, after):
        return None

    subscriptions = load_subscriptions(db, task_id)
    message = build_task_update_email(after)
    result = fan_out(task_id, subscriptions, message, sender=sender, max_workers=max_workers)

    if result.dead_letters:
        record_dead_letters(db, result.dead_letters)

    logger.info("Task %s update: %d sent, %d failed", task_id, result.sent, result.failed)
    return result

"""
Firestore real-time listeners.

``CollectionFeed`` owns one ``on_snapshot`` subscription and publishes the
full recomputed view of a collection to every subscribed channel
(``queue.Queue``). ``TaskChangeWatcher`` keeps the previous version of each
build task and hands every modification to the notification side effect.
Listener callbacks run on the Firestore client's own thread.
"""
import logging
import queue
import threading
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional

from opsdash.config import collections
from opsdash.services import notification_service

logger = logging.getLogger(__name__)


@dataclass
class FeedError:
    message: str


# Published to channels when the feed is closed
FEED_CLOSED = None


class CollectionFeed:
    def __init__(self, db, collection: str, to_json: Callable[[Any], Dict[str, Any]],
                 sort_key: Optional[Callable[[Dict[str, Any]], Any]] = None):
        self.db = db
        self.collection = collection
        self.to_json = to_json
        self.sort_key = sort_key
        self._channels: List[queue.Queue] = []
        self._latest: Optional[List[Dict[str, Any]]] = None
        self._lock = threading.Lock()
        self._watch = None

    def start(self) -> "CollectionFeed":
        if self._watch is None:
            self._watch = self.db.collection(self.collection).on_snapshot(self._on_snapshot)
        return self

    def subscribe(self, maxsize: int = 0) -> queue.Queue:
        """Return a new channel; it immediately receives the latest view if one exists"""
        channel = queue.Queue(maxsize=maxsize)
        with self._lock:
            self._channels.append(channel)
            if self._latest is not None:
                channel.put_nowait(self._latest)
        return channel

    def unsubscribe(self, channel: queue.Queue) -> None:
        with self._lock:
            if channel in self._channels:
                self._channels.remove(channel)

    def close(self) -> None:
        if self._watch is not None:
            self._watch.unsubscribe()
            self._watch = None
        with self._lock:
            channels, self._channels = self._channels, []
        for channel in channels:
            self._signal_closed(channel)

    @staticmethod
    def _signal_closed(channel: queue.Queue) -> None:
        """Deliver FEED_CLOSED without blocking, evicting the oldest pending view if full"""
        while True:
            try:
                channel.put_nowait(FEED_CLOSED)
                return
            except queue.Full:
                try:
                    channel.get_nowait()
                except queue.Empty:
                    pass

    def _publish(self, item) -> None:
        with self._lock:
            channels = list(self._channels)
        for channel in channels:
            try:
                channel.put_nowait(item)
            except queue.Full:
                logger.warning("Dropping %s snapshot for a slow consumer", self.collection)

    def _on_snapshot(self, col_snapshot, changes, read_time) -> None:
        try:
            view = [self.to_json(doc) for doc in col_snapshot]
            if self.sort_key is not None:
                view.sort(key=self.sort_key)
        except Exception as e:
            logger.exception("Error building %s snapshot", self.collection)
            self._publish(FeedError(f"Failed to load {self.collection}: {e}"))
            return

        with self._lock:
            self._latest = view
        self._publish(view)


class TaskChangeWatcher:
    """Runs the task-update notification for every modified build task.

    The first snapshot seeds the cache (every document arrives as ADDED), so
    only later modifications trigger emails. Delivery is at-least-once: a
    listener restart replays the current state as ADDED, not MODIFIED.

    The listener thread only queues modifications; a single worker thread
    runs the notifier so slow deliveries never hold up later snapshots.
    """

    def __init__(self, db, notifier: Callable[..., Any] = notification_service.notify_task_update):
        self.db = db
        self.notifier = notifier
        self._previous: Dict[str, Dict[str, Any]] = {}
        self._lock = threading.Lock()
        self._watch = None
        self._queue: "queue.Queue[Optional[tuple]]" = queue.Queue()
        self._worker: Optional[threading.Thread] = None

    def start(self) -> "TaskChangeWatcher":
        if self._worker is None:
            self._worker = threading.Thread(target=self._drain, name="task-notifier", daemon=True)
            self._worker.start()
        if self._watch is None:
            self._watch = self.db.collection(collections.BUILD_TASKS).on_snapshot(self.handle_snapshot)
            logger.info("Watching %s for updates", collections.BUILD_TASKS)
        return self

    def wait_all(self) -> None:
        """Block until every queued modification has been handled"""
        if self._worker is not None:
            self._queue.join()

    def stop(self) -> None:
        """Detach the listener, finish queued notifications, then stop the worker"""
        if self._watch is not None:
            self._watch.unsubscribe()
            self._watch = None
        if self._worker is not None:
            self._queue.put(None)
            self._worker.join()
            self._worker = None

    def handle_snapshot(self, col_snapshot, changes, read_time) -> None:
        for change in changes:
            doc = change.document
            kind = change.type.name
            after = doc.to_dict() or {}

            with self._lock:
                before = self._previous.get(doc.id)
                if kind == "REMOVED":
                    self._previous.pop(doc.id, None)
                else:
                    self._previous[doc.id] = after

            if kind != "MODIFIED" or before is None:
                continue

            self._queue.put((doc.id, before, after))

    def _drain(self) -> None:
        while True:
            item = self._queue.get()
            try:
                if item is None:
                    return
                task_id, before, after = item
                try:
                    self.notifier(self.db, task_id, before, after)
                except Exception:
                    logger.exception("Task update notification failed for %s", task_id)
            finally:
                self._queue.task_done()

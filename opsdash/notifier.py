"""Out-of-process task-update notifier.

Usage:
  opsdash-notifier [--workers N]
  opsdash-notifier --reconcile [--prune-orphans] [--dry-run]

The default mode attaches a listener to ``build_tasks`` and emails
subscribers on every meaningful update until interrupted. ``--reconcile``
runs one subscription repair pass and exits.
"""
import argparse
import json
import logging
import threading

from firebase_admin import firestore

from opsdash.config.settings import Settings
from opsdash.firebase_utils import init_firebase
from opsdash.middleware.error_middleware import configure_logging
from opsdash.services import notification_service
from opsdash.services.change_feed import TaskChangeWatcher
from opsdash.services.reconciliation_service import reconcile_subscriptions

logger = logging.getLogger(__name__)


def run_watcher(db, workers, stop_event=None):
    stop_event = stop_event or threading.Event()

    def notifier(db_, task_id, before, after):
        return notification_service.notify_task_update(db_, task_id, before, after, max_workers=workers)

    watcher = TaskChangeWatcher(db, notifier=notifier).start()
    try:
        while not stop_event.wait(1.0):
            pass
    except KeyboardInterrupt:
        logger.info("Interrupted, stopping watcher")
    finally:
        watcher.stop()


def main(argv=None):
    parser = argparse.ArgumentParser(description="Email task subscribers on build-task updates")
    parser.add_argument('--workers', type=int, default=Settings.NOTIFY_MAX_WORKERS,
                        help='Maximum concurrent email deliveries per update')
    parser.add_argument('--reconcile', action='store_true',
                        help='Run one subscriber/subscription repair pass and exit')
    parser.add_argument('--prune-orphans', action='store_true',
                        help='With --reconcile, delete subscriptions of deleted tasks')
    parser.add_argument('--dry-run', action='store_true',
                        help='With --reconcile, report without writing')
    args = parser.parse_args(argv)

    configure_logging()
    if not init_firebase():
        parser.error("Firebase is not configured")
    db = firestore.client()

    if args.reconcile:
        report = reconcile_subscriptions(db, prune_orphans=args.prune_orphans, dry_run=args.dry_run)
        print(json.dumps(report, indent=2))
        return 0

    run_watcher(db, max(1, args.workers))
    return 0


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())

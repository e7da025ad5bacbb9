"""Firestore collection names.

Collections are created on first write; these constants are the only place
the names are spelled out.
"""

USERS = "users"
BUILD_TASKS = "build_tasks"
BILLING_ENTRIES = "billing_entries"
TASK_SUBSCRIPTIONS = "task_subscriptions"
NOTIFICATION_DEAD_LETTERS = "notification_dead_letters"

from flask import jsonify, request

from . import notifications_bp
from opsdash.config.firebase_config import get_db
from opsdash.middleware.auth_middleware import admin_only
from opsdash.services.notification_service import list_dead_letters
from opsdash.services.reconciliation_service import reconcile_subscriptions


def _flag(name):
    return (request.args.get(name) or "").lower() == "true"


@notifications_bp.get("/dead-letters")
@admin_only
def dead_letters():
    try:
        limit = int(request.args.get("limit") or 100)
    except ValueError:
        limit = 100
    return jsonify(list_dead_letters(get_db(), limit=max(1, min(limit, 500)))), 200


@notifications_bp.post("/reconcile")
@admin_only
def reconcile():
    """Repair subscriber arrays. ``?dry_run=true`` reports only, ``?prune_orphans=true`` deletes orphans."""
    report = reconcile_subscriptions(get_db(), prune_orphans=_flag("prune_orphans"), dry_run=_flag("dry_run"))
    return jsonify(report), 200

import json
import queue

from flask import Response, g, jsonify, request, stream_with_context

from . import build_tasks_bp
from opsdash.config import collections
from opsdash.config.firebase_config import get_db
from opsdash.exceptions import ValidationError
from opsdash.middleware.auth_middleware import admin_only, firebase_required
from opsdash.models.task_model import BuildTaskModel, sort_tasks, task_to_json
from opsdash.services.change_feed import CollectionFeed, FeedError, FEED_CLOSED

# Seconds between keep-alive comments on the task feed
FEED_HEARTBEAT_SECONDS = 15


def _payload():
    return request.get_json(silent=True) or {}


def _model():
    return BuildTaskModel(get_db())


@build_tasks_bp.get("")
@firebase_required
def list_tasks():
    return jsonify(_model().list_tasks()), 200


@build_tasks_bp.get("/feed")
@firebase_required
def task_feed():
    """Server-sent events: one full, order-sorted board per change"""
    feed = CollectionFeed(get_db(), collections.BUILD_TASKS, task_to_json,
                          sort_key=lambda t: t.get("order") or 0).start()
    channel = feed.subscribe(maxsize=16)

    def events():
        try:
            while True:
                try:
                    item = channel.get(timeout=FEED_HEARTBEAT_SECONDS)
                except queue.Empty:
                    yield ": keep-alive\n\n"
                    continue
                if item is FEED_CLOSED:
                    return
                if isinstance(item, FeedError):
                    yield f"event: error\ndata: {json.dumps({'error': item.message})}\n\n"
                    continue
                yield f"data: {json.dumps(sort_tasks(item), default=str)}\n\n"
        finally:
            feed.close()

    return Response(stream_with_context(events()), mimetype="text/event-stream")


@build_tasks_bp.get("/<task_id>")
@firebase_required
def get_task(task_id):
    return jsonify(_model().get_task(task_id)), 200


@build_tasks_bp.post("")
@admin_only
def create_task():
    payload = _payload()
    created_by = g.current_user.get("email") or g.current_user.get("uid")
    task = _model().add_task(
        payload.get("title") or "",
        payload.get("description") or "",
        (payload.get("priority") or "medium").strip().lower(),
        created_by,
    )
    return jsonify(task), 201


@build_tasks_bp.delete("/<task_id>")
@admin_only
def delete_task(task_id):
    _model().delete_task(task_id)
    return jsonify({"ok": True, "id": task_id}), 200


@build_tasks_bp.patch("/<task_id>/status")
@admin_only
def update_status(task_id):
    status = (_payload().get("status") or "").strip().lower()
    _model().update_status(task_id, status)
    return jsonify({"ok": True, "id": task_id, "status": status}), 200


@build_tasks_bp.patch("/<task_id>/order")
@admin_only
def reorder_task(task_id):
    order = _payload().get("order")
    _model().reorder_task(task_id, order)
    return jsonify({"ok": True, "id": task_id, "order": order}), 200


@build_tasks_bp.post("/move")
@admin_only
def move_task():
    payload = _payload()
    dragged_id = payload.get("dragged_id")
    target_id = payload.get("target_id")
    if not dragged_id or not target_id:
        raise ValidationError("dragged_id and target_id are required")
    plan = _model().move_task(dragged_id, target_id)
    return jsonify({"ok": True, "writes": [{"id": tid, "order": order} for tid, order in plan]}), 200


@build_tasks_bp.post("/<task_id>/subtasks")
@admin_only
def add_sub_task(task_id):
    sub_task = _model().add_sub_task(task_id, _payload().get("title") or "")
    return jsonify(sub_task), 201


@build_tasks_bp.patch("/<task_id>/subtasks/<sub_task_id>/toggle")
@admin_only
def toggle_sub_task(task_id, sub_task_id):
    return jsonify(_model().toggle_sub_task(task_id, sub_task_id)), 200


@build_tasks_bp.delete("/<task_id>/subtasks/<sub_task_id>")
@admin_only
def delete_sub_task(task_id, sub_task_id):
    _model().delete_sub_task(task_id, sub_task_id)
    return jsonify({"ok": True, "id": sub_task_id}), 200


@build_tasks_bp.post("/<task_id>/subscribe")
@firebase_required
def subscribe(task_id):
    user = g.current_user
    email = user.get("email") or _payload().get("email")
    subscription_id = _model().subscribe(task_id, user["uid"], email)
    return jsonify({"ok": True, "subscription_id": subscription_id}), 201


@build_tasks_bp.delete("/<task_id>/subscribe")
@firebase_required
def unsubscribe(task_id):
    removed = _model().unsubscribe(task_id, g.current_user["uid"])
    return jsonify({"ok": True, "removed": removed}), 200


@build_tasks_bp.get("/<task_id>/subscriptions")
@admin_only
def list_subscriptions(task_id):
    return jsonify(_model().list_subscriptions(task_id)), 200

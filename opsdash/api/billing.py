from flask import jsonify, request

from . import billing_bp
from opsdash.config.firebase_config import get_db
from opsdash.middleware.auth_middleware import firebase_required
from opsdash.models.billing_model import BillingEntryModel, can_sync
from opsdash.services.erp_client import ErpClient


def _model():
    return BillingEntryModel(get_db())


@billing_bp.get("")
@firebase_required
def list_entries():
    entries = _model().list_entries()
    for entry in entries:
        entry["can_sync"] = can_sync(entry)
    return jsonify(entries), 200


@billing_bp.post("")
@firebase_required
def create_entry():
    payload = request.get_json(silent=True) or {}
    entry = _model().create_entry(
        payload.get("invoice_number") or "",
        payload.get("amount"),
        payload.get("customer_name") or "",
    )
    return jsonify(entry), 201


@billing_bp.get("/<entry_id>")
@firebase_required
def get_entry(entry_id):
    entry = _model().get_entry(entry_id)
    entry["can_sync"] = can_sync(entry)
    return jsonify(entry), 200


@billing_bp.post("/<entry_id>/sync")
@firebase_required
def sync_entry(entry_id):
    """Push the entry to the ERP. Errors leave it ``failed`` and surface as 502."""
    entry = _model().sync(entry_id, ErpClient.from_settings())
    return jsonify({"ok": True, "entry": entry}), 200

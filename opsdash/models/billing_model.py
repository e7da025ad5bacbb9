"""
Billing entries and their one-way sync to the ERP.

sync_status moves ``not_synced -> syncing -> synced | failed``. ``failed``
entries can be synced again; ``syncing`` and ``synced`` ones cannot.
"""
import logging
from typing import Any, Dict, List

from firebase_admin import firestore

from opsdash.config import collections
from opsdash.exceptions import ErpSyncError, NotFoundError, StoreError, ValidationError
from opsdash.utils.validators import Helpers, Validators

logger = logging.getLogger(__name__)

NOT_SYNCED = "not_synced"
SYNCING = "syncing"
SYNCED = "synced"
FAILED = "failed"

# Entries in these states cannot be pushed again
SYNC_LOCKED = (SYNCING, SYNCED)


def entry_to_json(doc) -> Dict[str, Any]:
    data = doc.to_dict() or {}
    return {
        "id": doc.id,
        "invoice_number": data.get("invoice_number"),
        "amount": data.get("amount"),
        "customer_name": data.get("customer_name"),
        "status": data.get("status", "pending"),
        "sync_status": data.get("sync_status", NOT_SYNCED),
        "created_at": Helpers.format_timestamp(data.get("created_at")),
        "updated_at": Helpers.format_timestamp(data.get("updated_at")),
    }


def can_sync(entry: Dict[str, Any]) -> bool:
    return entry.get("sync_status", NOT_SYNCED) not in SYNC_LOCKED


class BillingEntryModel:
    """Billing entry repository for Firestore operations"""

    def __init__(self, db):
        self.db = db
        self.collection = db.collection(collections.BILLING_ENTRIES)

    def create_entry(self, invoice_number: str, amount, customer_name: str) -> Dict[str, Any]:
        invoice_number = Helpers.sanitize_string(invoice_number)
        customer_name = Helpers.sanitize_string(customer_name)
        if not invoice_number or not customer_name:
            raise ValidationError("invoice_number and customer_name are required")
        if not Validators.validate_amount(amount):
            raise ValidationError("amount must be a non-negative number")

        now = Helpers.get_current_timestamp()
        entry = {
            "invoice_number": invoice_number,
            "amount": amount,
            "customer_name": customer_name,
            "status": "pending",
            "sync_status": NOT_SYNCED,
            "created_at": now,
            "updated_at": now,
        }
        try:
            _, ref = self.collection.add(entry)
        except Exception as e:
            logger.error("Error creating billing entry: %s", e)
            raise StoreError("Failed to create billing entry") from e

        return {"id": ref.id, **entry,
                "created_at": Helpers.format_timestamp(now),
                "updated_at": Helpers.format_timestamp(now)}

    def list_entries(self) -> List[Dict[str, Any]]:
        try:
            docs = self.collection.order_by("created_at", direction=firestore.Query.DESCENDING).stream()
            return [entry_to_json(d) for d in docs]
        except Exception as e:
            logger.error("Error fetching billing entries: %s", e)
            raise StoreError("Failed to load billing entries") from e

    def get_entry(self, entry_id: str) -> Dict[str, Any]:
        try:
            doc = self.collection.document(entry_id).get()
        except Exception as e:
            logger.error("Error fetching billing entry %s: %s", entry_id, e)
            raise StoreError("Failed to load billing entry") from e
        if not doc.exists:
            raise NotFoundError("Billing entry not found")
        return entry_to_json(doc)

    def _set_sync_state(self, entry_id: str, fields: Dict[str, Any]) -> None:
        try:
            self.collection.document(entry_id).update({**fields, "updated_at": Helpers.get_current_timestamp()})
        except Exception as e:
            logger.error("Error updating sync state of %s: %s", entry_id, e)
            raise StoreError("Failed to update billing entry") from e

    def sync(self, entry_id: str, erp_client) -> Dict[str, Any]:
        """Push one entry to the ERP.

        On success the entry ends ``synced`` with status ``processed``. On
        failure it ends ``failed`` with status untouched and the error is
        re-raised.
        """
        entry = self.get_entry(entry_id)
        if not can_sync(entry):
            raise ValidationError(f"Billing entry is already {entry['sync_status']}")

        self._set_sync_state(entry_id, {"sync_status": SYNCING})
        try:
            erp_client.push_billing_entry(entry)
            self._set_sync_state(entry_id, {"sync_status": SYNCED, "status": "processed"})
        except Exception as e:
            logger.error("Error syncing %s to ERP: %s", entry.get("invoice_number"), e)
            self._set_sync_state(entry_id, {"sync_status": FAILED})
            if isinstance(e, (ErpSyncError, StoreError)):
                raise
            raise ErpSyncError(f"Failed to sync billing entry: {e}") from e

        logger.info("Billing entry %s synced", entry_id)
        return {**entry, "sync_status": SYNCED, "status": "processed"}

from unittest.mock import Mock

from fakes import BASE_TIME

from opsdash.api import billing as billing_module
from opsdash.config import collections
from opsdash.exceptions import ErpSyncError


def _seed(db, entry_id="inv-1", sync_status="not_synced"):
    db.seed(collections.BILLING_ENTRIES, entry_id, {
        "invoice_number": "INV-001",
        "amount": 500,
        "customer_name": "Acme Builders",
        "status": "pending",
        "sync_status": sync_status,
        "created_at": BASE_TIME,
        "updated_at": BASE_TIME,
    })


class TestBillingRoutes:
    def test_list_flags_syncable_entries(self, client, fake_db, user_headers):
        _seed(fake_db, "a", "failed")
        _seed(fake_db, "b", "synced")

        entries = client.get("/api/billing", headers=user_headers).get_json()

        assert {e["id"]: e["can_sync"] for e in entries} == {"a": True, "b": False}

    def test_create(self, client, user_headers):
        response = client.post("/api/billing", json={
            "invoice_number": "INV-002", "amount": 42.5, "customer_name": "Bravo",
        }, headers=user_headers)
        assert response.status_code == 201
        assert response.get_json()["sync_status"] == "not_synced"

    def test_sync_with_stub(self, client, fake_db, user_headers, monkeypatch):
        monkeypatch.setattr(billing_module.ErpClient, "from_settings",
                            classmethod(lambda cls: cls(None)))
        _seed(fake_db)

        response = client.post("/api/billing/inv-1/sync", headers=user_headers)

        assert response.status_code == 200
        stored = fake_db.collection(collections.BILLING_ENTRIES).data("inv-1")
        assert stored["sync_status"] == "synced" and stored["status"] == "processed"

    def test_sync_failure_is_502(self, client, fake_db, user_headers, monkeypatch):
        erp = Mock()
        erp.push_billing_entry.side_effect = ErpSyncError("ERP rejected invoice INV-001 (500)")
        monkeypatch.setattr(billing_module.ErpClient, "from_settings", Mock(return_value=erp))
        _seed(fake_db)

        response = client.post("/api/billing/inv-1/sync", headers=user_headers)

        assert response.status_code == 502
        assert response.get_json()["code"] == "ERP_SYNC_ERROR"
        assert fake_db.collection(collections.BILLING_ENTRIES).data("inv-1")["sync_status"] == "failed"

    def test_synced_entry_cannot_sync_again(self, client, fake_db, user_headers):
        _seed(fake_db, sync_status="synced")
        response = client.post("/api/billing/inv-1/sync", headers=user_headers)
        assert response.status_code == 400

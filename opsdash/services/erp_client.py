"""
ERP push for billing entries.

When ``ERP_API_URL`` is not configured the client behaves like the stub the
dashboard shipped with: every push succeeds without leaving the process.
"""
import logging
from typing import Any, Dict, Optional

import requests

from opsdash.config.settings import Settings
from opsdash.exceptions import ErpSyncError

logger = logging.getLogger(__name__)


class ErpClient:
    def __init__(self, base_url: Optional[str] = None, token: Optional[str] = None,
                 timeout: Optional[float] = None, session: Optional[requests.Session] = None):
        self.base_url = base_url.rstrip("/") if base_url else None
        self.token = token
        # None means no client-side timeout
        self.timeout = timeout
        self.session = session or requests.Session()

    @classmethod
    def from_settings(cls) -> "ErpClient":
        return cls(Settings.ERP_API_URL, Settings.ERP_API_TOKEN, Settings.ERP_TIMEOUT_SECONDS)

    @property
    def is_stub(self) -> bool:
        return not self.base_url

    def push_billing_entry(self, entry: Dict[str, Any]) -> Dict[str, Any]:
        """Send one billing entry. Raises ErpSyncError on any failure."""
        payload = {
            "invoice_number": entry.get("invoice_number"),
            "amount": entry.get("amount"),
            "customer_name": entry.get("customer_name"),
            "reference": entry.get("id"),
        }

        if self.is_stub:
            logger.info("ERP stub accepted invoice %s", payload["invoice_number"])
            return {"success": True, "message": "Accepted by stub"}

        headers = {"Content-Type": "application/json"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"

        try:
            response = self.session.post(
                f"{self.base_url}/billing-entries",
                json=payload,
                headers=headers,
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            raise ErpSyncError(f"ERP request failed: {e}") from e

        if not response.ok:
            raise ErpSyncError(
                f"ERP rejected invoice {payload['invoice_number']} ({response.status_code})",
                details={"status": response.status_code, "body": response.text[:500]},
            )

        try:
            body = response.json()
        except ValueError:
            body = {}

        if not isinstance(body, dict):
            body = {}
        if body.get("success") is False:
            raise ErpSyncError(body.get("message") or "ERP reported failure", details=body)

        return {"success": True, "message": body.get("message", "Synced")}

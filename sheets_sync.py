"""
Client for the Google Apps Script web app that mirrors the ledger into a sheet.

The script needs a doPost(e) that applies one event and a doGet(e) that
returns {"customers": [...], "transactions": [...]} when called with
?action=get.
"""
import logging
from concurrent.futures import ThreadPoolExecutor, wait
from datetime import datetime, timezone

import httpx

from database import normalize_customer, normalize_transaction

logger = logging.getLogger(__name__)

ADD_CUSTOMER = "ADD_CUSTOMER"
ADD_TRANSACTION = "ADD_TRANSACTION"
DELETE_CUSTOMER = "DELETE_CUSTOMER"


def customer_event(customer):
    # Customer edits reuse ADD_CUSTOMER, the script upserts by id
    return {"action": ADD_CUSTOMER, "customer": dict(customer)}


def transaction_event(transaction):
    return {"action": ADD_TRANSACTION, "transaction": dict(transaction)}


def delete_customer_event(customer_id):
    return {"action": DELETE_CUSTOMER, "customerId": customer_id}


def read_url(url):
    # Tell the script we want to READ data
    return f"{url}&action=get" if "?" in url else f"{url}?action=get"


def utc_timestamp():
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def parse_snapshot(data):
    """
    Validates a pulled body. Returns normalised collections, or None when the
    shape is wrong or any record is missing its id.
    """
    if not isinstance(data, dict):
        return None
    customers = data.get("customers")
    transactions = data.get("transactions")
    if not isinstance(customers, list) or not isinstance(transactions, list):
        return None

    try:
        return {
            "customers": [normalize_customer(c) for c in customers],
            "transactions": [normalize_transaction(t) for t in transactions],
        }
    except ValueError as e:
        logger.warning("Malformed sheet snapshot: %s", e)
        return None


class SheetsSyncClient:
    def __init__(self, url="", timeout=15.0, transport=None):
        self.url = (url or "").strip()
        self._http = httpx.Client(timeout=timeout, follow_redirects=True, transport=transport)
        # Single worker: pushes leave in the order they were issued
        self._worker = ThreadPoolExecutor(max_workers=1, thread_name_prefix="sheets-push")
        self._pending = []

    @property
    def enabled(self):
        return bool(self.url)

    def push(self, event):
        """
        Queues one event for delivery and returns immediately.
        Fire-and-forget: one attempt, no retry, failures are only logged.
        """
        if not self.url:
            return None

        payload = dict(event)
        payload["timestamp"] = utc_timestamp()

        self._pending = [f for f in self._pending if not f.done()]
        future = self._worker.submit(self._send, self.url, payload)
        self._pending.append(future)
        return future

    def _send(self, url, payload):
        action = payload.get("action")
        try:
            response = self._http.post(url, json=payload)
        except httpx.HTTPError as e:
            logger.warning("Sheet sync error (%s): %s", action, e)
            return False

        if response.is_error:
            logger.warning("Sheet sync error (%s): HTTP %s", action, response.status_code)
            return False

        logger.debug("Pushed %s to sheet", action)
        return True

    def pull(self):
        """Fetches the full remote snapshot, or None if anything goes wrong."""
        if not self.url:
            return None

        try:
            response = self._http.get(read_url(self.url))
            response.raise_for_status()
            data = response.json()
        except httpx.HTTPError as e:
            logger.warning("Sheet fetch error: %s", e)
            return None
        except ValueError as e:
            logger.warning("Sheet fetch returned invalid JSON: %s", e)
            return None

        return parse_snapshot(data)

    def flush(self, timeout=None):
        """Waits for queued pushes to finish (used on shutdown and in tests)."""
        pending = [f for f in self._pending if not f.done()]
        if pending:
            wait(pending, timeout=timeout)

    def close(self):
        self._worker.shutdown(wait=True)
        self._http.close()

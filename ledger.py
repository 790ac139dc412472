import logging
import math
import sqlite3
import threading
import uuid
from datetime import datetime

import config
from balance import derive_aggregate_stats, find_balance_drift
from database import (
    DEFAULT_DESCRIPTIONS,
    PAYMENT,
    SALE,
    TRANSACTION_TYPES,
    LedgerDatabase,
    backup_database,
)
from insights import get_business_insights
from reconcile import merge_snapshot
from sheets_sync import SheetsSyncClient, customer_event, delete_customer_event, transaction_event

logger = logging.getLogger(__name__)


def normalize_phone(phone, country_code="+91"):
    clean_phone = (phone or "").strip()
    if clean_phone.startswith("+"):
        return clean_phone
    return country_code + clean_phone


class LedgerApp:
    """
    Owns the ledger for one running app: the local store, the sheet client and
    the business settings.

    Every change goes through the methods below. Each returns (True, record) on
    success or (False, message) with nothing changed. The local write always
    completes first; the sheet push is queued afterwards and its outcome never
    reaches the caller.
    """

    def __init__(self, db, sync=None, country_code=None, clock=None):
        self.db = db
        self.sync = sync or SheetsSyncClient(config.SHEET_URL, timeout=config.SYNC_TIMEOUT)
        self.country_code = country_code or config.DEFAULT_COUNTRY_CODE
        # Naive local wall-clock time by default; stats resolve zones per boundary
        self.clock = clock or datetime.now
        self._refresh_stop = None
        self._refresh_thread = None

        # Endpoint saved in Setup wins over the .env default
        saved_url = self.db.get_setting("sheet_url")
        if saved_url is not None:
            self.sync.url = saved_url

    @classmethod
    def from_config(cls, db_path=None, backup=True):
        db_path = db_path or config.LEDGER_DB
        if backup:
            backup_database(db_path, config.BACKUP_DIR, config.BACKUP_KEEP)

        app = cls(LedgerDatabase(db_path))
        if config.AUTO_REFRESH_SECONDS > 0:
            app.start_auto_refresh(config.AUTO_REFRESH_SECONDS)
        return app

    def _timestamp(self):
        now = self.clock()
        if now.tzinfo is None:
            now = now.astimezone()
        return now.isoformat(timespec="milliseconds")

    def _phone_taken(self, clean_phone, exclude_id=None):
        # Substring match, not equality: "98765" clashes with "+919876543210"
        return any(clean_phone in c["phone"] for c in self.db.customers if c["id"] != exclude_id)

    # --- Customers ---
    def add_customer(self, name, phone):
        name = (name or "").strip()
        clean_phone = (phone or "").strip()
        if not name or not clean_phone:
            return False, "Name and phone number are required."

        with self.db.lock:
            if self._phone_taken(clean_phone):
                logger.warning("Rejected duplicate phone %s", clean_phone)
                return False, "Phone number already exists!"

            customer = {
                "id": str(uuid.uuid4()),
                "name": name,
                "phone": normalize_phone(clean_phone, self.country_code),
                "totalSales": 0.0,
                "totalPaid": 0.0,
                "due": 0.0,
                "lastActivity": self._timestamp(),
                "isActive": True,
            }
            customers = self.db.customers
            customers.insert(0, customer)
            try:
                self.db.commit(customers=customers)
            except sqlite3.Error as e:
                logger.error("Could not save customer %s: %s", name, e)
                return False, f"Could not save customer: {e}"

            self.sync.push(customer_event(customer))

        logger.info("Added customer %s (%s)", name, customer["id"])
        return True, dict(customer)

    def update_customer(self, customer_id, name, phone):
        name = (name or "").strip()
        clean_phone = (phone or "").strip()
        if not name or not clean_phone:
            return False, "Name and phone number are required."

        with self.db.lock:
            customer = self.db.get_customer(customer_id)
            if customer is None:
                return False, "Customer not found."
            if self._phone_taken(clean_phone, exclude_id=customer_id):
                return False, "Phone number already exists!"

            customer["name"] = name
            customer["phone"] = normalize_phone(clean_phone, self.country_code)
            try:
                self.db.upsert_customer(customer)
            except sqlite3.Error as e:
                logger.error("Could not update customer %s: %s", customer_id, e)
                return False, f"Could not save customer: {e}"

            self.sync.push(customer_event(customer))

        return True, customer

    def toggle_customer_status(self, customer_id):
        with self.db.lock:
            customer = self.db.get_customer(customer_id)
            if customer is None:
                return False, "Customer not found."

            customer["isActive"] = not customer["isActive"]
            try:
                self.db.upsert_customer(customer)
            except sqlite3.Error as e:
                logger.error("Could not change status of %s: %s", customer_id, e)
                return False, f"Could not save customer: {e}"

            self.sync.push(customer_event(customer))

        return True, customer

    def delete_customer(self, customer_id):
        """Removes the customer and all of its transactions. Ask the user first."""
        with self.db.lock:
            try:
                found = self.db.delete_customer(customer_id)
            except sqlite3.Error as e:
                logger.error("Could not delete customer %s: %s", customer_id, e)
                return False, f"Could not delete customer: {e}"
            if not found:
                return False, "Customer not found."

            self.sync.push(delete_customer_event(customer_id))

        logger.info("Deleted customer %s", customer_id)
        return True, customer_id

    # --- Transactions ---
    def add_transaction(self, customer_id, tx_type, amount, description=""):
        tx_type = str(tx_type or "").strip().upper()
        if tx_type not in TRANSACTION_TYPES:
            return False, "Transaction type must be SALE or PAYMENT."
        try:
            amount = round(float(amount), 2)
        except (TypeError, ValueError):
            return False, "Amount must be a number."
        if not math.isfinite(amount) or amount <= 0:
            return False, "Amount must be greater than zero."
        description = (description or "").strip() or DEFAULT_DESCRIPTIONS[tx_type]

        with self.db.lock:
            customer = self.db.get_customer(customer_id)
            if customer is None:
                return False, "Customer not found."
            if not customer["isActive"]:
                return False, "Customer is deactivated. Activate them to add entries."

            timestamp = self._timestamp()
            tx = {
                "id": str(uuid.uuid4()),
                "customerId": customer_id,
                "type": tx_type,
                "amount": amount,
                "description": description,
                "date": timestamp,
            }

            # Totals are worked out in full before anything is written
            total_sales = round(customer["totalSales"] + (amount if tx_type == SALE else 0.0), 2)
            total_paid = round(customer["totalPaid"] + (amount if tx_type == PAYMENT else 0.0), 2)
            customer.update({
                "totalSales": total_sales,
                "totalPaid": total_paid,
                "due": round(total_sales - total_paid, 2),
                "lastActivity": timestamp,
            })

            customers = [customer if c["id"] == customer_id else c for c in self.db.customers]
            transactions = self.db.transactions
            transactions.insert(0, tx)
            try:
                self.db.commit(customers=customers, transactions=transactions)
            except sqlite3.Error as e:
                logger.error("Could not save transaction for %s: %s", customer_id, e)
                return False, f"Could not save entry: {e}"

            self.sync.push(transaction_event(tx))

        return True, dict(tx)

    # --- Reads ---
    def customers(self, include_inactive=True):
        customers = self.db.customers
        if include_inactive:
            return customers
        return [c for c in customers if c["isActive"]]

    def get_customer(self, customer_id):
        return self.db.get_customer(customer_id)

    def search_customers(self, term="", show_inactive=False):
        term = (term or "").strip()
        matches = []
        for c in self.db.customers:
            if term and term.lower() not in c["name"].lower() and term not in c["phone"]:
                continue
            if not show_inactive and not c["isActive"]:
                continue
            matches.append(c)
        return matches

    def customer_transactions(self, customer_id):
        return self.db.customer_transactions(customer_id)

    def transactions(self):
        return self.db.transactions

    def stats(self, now=None):
        with self.db.lock:
            customers = self.db.customers
            transactions = self.db.transactions
        stats = derive_aggregate_stats(transactions, now or self.clock(), customers=customers)
        stats["sheetUrl"] = self.sync.url
        return stats

    def insights(self, now=None):
        with self.db.lock:
            customers = self.db.customers
            transactions = self.db.transactions
        stats = derive_aggregate_stats(transactions, now or self.clock(), customers=customers)
        return get_business_insights(customers, transactions, stats)

    def audit_balances(self):
        with self.db.lock:
            return find_balance_drift(self.db.customers, self.db.transactions)

    # --- Settings ---
    def settings(self):
        return {
            "sheet_url": self.sync.url,
            "upi_id": self.db.get_setting("upi_id", config.DEFAULT_UPI_ID),
            "business_name": self.db.get_setting("business_name", config.DEFAULT_BUSINESS_NAME),
            "last_sync": self.db.get_setting("last_sync", "Never"),
        }

    def update_settings(self, sheet_url=None, upi_id=None, business_name=None):
        if sheet_url is not None:
            self.sync.url = sheet_url.strip()
            self.db.set_setting("sheet_url", self.sync.url)
        if upi_id is not None:
            self.db.set_setting("upi_id", upi_id.strip())
        if business_name is not None:
            self.db.set_setting("business_name", business_name.strip())
        return self.settings()

    def adopt_shared_sheet_url(self, url):
        """
        Takes the sheet URL from an onboarding link (`?url=...`) so a second
        device joins the same sheet. Returns True when a URL was saved.
        """
        url = (url or "").strip()
        if not url:
            return False
        self.update_settings(sheet_url=url)
        logger.info("Sheet URL set from shared link")
        return True

    # --- Cloud Pull ---
    def refresh(self):
        """
        Pulls the sheet and merges it into the local ledger.
        On any failure the local ledger is left exactly as it was.
        """
        if not self.sync.enabled:
            return False, "Cloud sync is not set up."

        # Network first, outside the lock; local edits can keep going meanwhile
        snapshot = self.sync.pull()
        if snapshot is None:
            return False, "Sync failed."

        with self.db.lock:
            customers, transactions = merge_snapshot(snapshot, self.db.customers, self.db.transactions)
            try:
                self.db.commit(customers=customers, transactions=transactions)
            except sqlite3.Error as e:
                logger.error("Could not save pulled data: %s", e)
                return False, "Sync failed."
            self.db.set_setting("last_sync", self.clock().strftime("%I:%M %p"))

        logger.info("Pulled %d customers and %d transactions", len(customers), len(transactions))
        return True, "Data Refreshed!"

    def start_auto_refresh(self, interval):
        if self._refresh_thread is not None:
            return

        stop = threading.Event()

        def loop():
            while not stop.wait(interval):
                ok, msg = self.refresh()
                if not ok:
                    logger.info("Auto refresh skipped: %s", msg)

        self._refresh_stop = stop
        self._refresh_thread = threading.Thread(target=loop, name="ledger-auto-refresh", daemon=True)
        self._refresh_thread.start()

    def stop_auto_refresh(self):
        if self._refresh_thread is None:
            return
        self._refresh_stop.set()
        self._refresh_thread.join()
        self._refresh_thread = None
        self._refresh_stop = None

    def close(self):
        """Stops timers, lets queued pushes finish and closes the database."""
        self.stop_auto_refresh()
        self.sync.flush()
        self.sync.close()
        self.db.close()

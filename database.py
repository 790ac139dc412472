import glob
import logging
import os
import shutil
import sqlite3
import threading
import time
from datetime import datetime

import pandas as pd

logger = logging.getLogger(__name__)

SALE = "SALE"
PAYMENT = "PAYMENT"
TRANSACTION_TYPES = (SALE, PAYMENT)

DEFAULT_DESCRIPTIONS = {
    SALE: "Sale Entry",
    PAYMENT: "Payment Received",
}

CUSTOMER_COLUMNS = ["id", "name", "phone", "totalSales", "totalPaid", "due", "lastActivity", "isActive"]
TRANSACTION_COLUMNS = ["id", "customerId", "type", "amount", "description", "date"]

SCHEMA = [
    "CREATE TABLE IF NOT EXISTS Customers (id TEXT, name TEXT, phone TEXT, totalSales REAL, "
    "totalPaid REAL, due REAL, lastActivity TEXT, isActive INTEGER)",
    "CREATE TABLE IF NOT EXISTS Transactions (id TEXT, customerId TEXT, type TEXT, amount REAL, "
    "description TEXT, date TEXT)",
    "CREATE TABLE IF NOT EXISTS Settings (key TEXT PRIMARY KEY, value TEXT)",
]


# --- Record Normalisation ---
# Rows come back from SQLite, from the Sheets web app and from old JSON exports.
# Sheets hands back numbers for phones and "TRUE"/"FALSE" for booleans.

def _is_missing(val):
    return val is None or (isinstance(val, float) and pd.isna(val))


def _to_text(val, default=""):
    if _is_missing(val):
        return default
    if isinstance(val, float) and val.is_integer():
        val = int(val)
    return str(val).strip()


def _to_money(val):
    if _is_missing(val) or val == "":
        return 0.0
    try:
        num = float(val)
    except (TypeError, ValueError):
        return 0.0
    if pd.isna(num):
        return 0.0
    return round(num, 2)


def _to_bool(val):
    # Old records have no isActive field at all: treat them as active
    if _is_missing(val):
        return True
    if isinstance(val, str):
        return val.strip().lower() not in ("false", "0", "no", "n")
    return bool(val)


def normalize_customer(record):
    if not isinstance(record, dict) or _is_missing(record.get("id")) or _to_text(record.get("id")) == "":
        raise ValueError("Customer record without id")

    total_sales = _to_money(record.get("totalSales"))
    total_paid = _to_money(record.get("totalPaid"))
    due = record.get("due")
    due = round(total_sales - total_paid, 2) if _is_missing(due) or due == "" else _to_money(due)

    return {
        "id": _to_text(record.get("id")),
        "name": _to_text(record.get("name")),
        "phone": _to_text(record.get("phone")),
        "totalSales": total_sales,
        "totalPaid": total_paid,
        "due": due,
        "lastActivity": _to_text(record.get("lastActivity")),
        "isActive": _to_bool(record.get("isActive")),
    }


def normalize_transaction(record):
    if not isinstance(record, dict) or _is_missing(record.get("id")) or _to_text(record.get("id")) == "":
        raise ValueError("Transaction record without id")

    tx_type = _to_text(record.get("type")).upper()
    description = _to_text(record.get("description"))
    if not description:
        description = DEFAULT_DESCRIPTIONS.get(tx_type, "")

    return {
        "id": _to_text(record.get("id")),
        "customerId": _to_text(record.get("customerId")),
        "type": tx_type,
        "amount": _to_money(record.get("amount")),
        "description": description,
        "date": _to_text(record.get("date")),
    }


def backup_database(db_path, backup_dir="Data_Backups", keep=30):
    """
    Copies the ledger file into a timestamped backup and prunes old copies.
    Returns the new backup path, or None when there was nothing to back up.
    """
    if not os.path.exists(backup_dir):
        os.makedirs(backup_dir)

    backup_path = None
    if os.path.exists(db_path):
        timestamp = datetime.now().strftime("%Y-%m-%d_%H-%M-%S")
        backup_path = os.path.join(backup_dir, f"backup_{timestamp}.db")
        try:
            shutil.copy(db_path, backup_path)
        except OSError as e:
            logger.error("Backup failed: %s", e)
            backup_path = None

    # Auto-Prune Old Backups (keep the newest N)
    backups = sorted(glob.glob(os.path.join(backup_dir, "*.db")), key=os.path.getmtime)
    if len(backups) > keep:
        for old_backup in backups[:-keep]:
            try:
                os.remove(old_backup)
            except OSError as e:
                logger.warning("Could not prune backup %s: %s", old_backup, e)

    return backup_path


class LedgerDatabase:
    """
    Local store of record for customers and transactions.

    Everything is held in memory in display order (newest first) and the full
    tables are rewritten on every commit, so a read right after a mutation
    always sees what is on disk.
    """

    def __init__(self, db_name="ledger.db"):
        self.db_name = db_name
        self.conn = None
        # One lock for every read-modify-commit sequence (UI, sync merge, timers)
        self.lock = threading.RLock()
        self._connect()
        self._customers = self._load("Customers", normalize_customer)
        self._transactions = self._load("Transactions", normalize_transaction)

    def _connect(self):
        try:
            # Autocommit mode: _write_tables opens and closes its own transaction
            self.conn = sqlite3.connect(self.db_name, check_same_thread=False, isolation_level=None)
            # Enable WAL Mode for performance and concurrency
            self.conn.execute("PRAGMA journal_mode=WAL;")
            self.conn.execute("PRAGMA synchronous=NORMAL;")
            for ddl in SCHEMA:
                self.conn.execute(ddl)
        except sqlite3.Error as e:
            logger.error("Database connection error (%s): %s", self.db_name, e)
            raise

    def _read_data(self, table_name):
        """Helper to read data from a specific table."""
        return pd.read_sql(f"SELECT * FROM {table_name} ORDER BY rowid", self.conn)

    def _begin(self):
        max_retries = 5
        for attempt in range(max_retries):
            try:
                # IMMEDIATE takes the write lock up front, so "locked" can only happen here
                self.conn.execute("BEGIN IMMEDIATE")
                return
            except sqlite3.OperationalError as e:
                if "locked" in str(e).lower() and attempt < max_retries - 1:
                    time.sleep(0.5)
                    continue
                logger.error("Could not start write on %s: %s", self.db_name, e)
                raise

    def _insert_rows(self, table_name, columns, records):
        placeholders = ", ".join("?" for _ in columns)
        self.conn.executemany(
            f"INSERT INTO {table_name} ({', '.join(columns)}) VALUES ({placeholders})",
            [tuple(r.get(col) for col in columns) for r in records],
        )

    def _write_tables(self, tables):
        """
        Replaces every (table_name, columns, records) given in a single
        SQLite transaction: all tables change on disk together or none do.
        """
        self._begin()
        try:
            for table_name, columns, records in tables:
                self.conn.execute(f"DELETE FROM {table_name}")
                self._insert_rows(table_name, columns, records)
            self.conn.execute("COMMIT")
        except BaseException as e:
            if self.conn.in_transaction:
                self.conn.execute("ROLLBACK")
            logger.error("Error saving %s: %s", ", ".join(t[0] for t in tables), e)
            raise

    def _load(self, table_name, normalize):
        df = self._read_data(table_name)
        if df.empty:
            return []

        records = []
        for row in df.to_dict("records"):
            try:
                records.append(normalize(row))
            except ValueError as e:
                logger.warning("Skipping bad row in %s: %s", table_name, e)
        return records

    # --- Reads ---
    @property
    def customers(self):
        with self.lock:
            return [dict(c) for c in self._customers]

    @property
    def transactions(self):
        with self.lock:
            return [dict(t) for t in self._transactions]

    def get_customer(self, customer_id):
        with self.lock:
            for c in self._customers:
                if c["id"] == customer_id:
                    return dict(c)
        return None

    def get_transaction(self, transaction_id):
        with self.lock:
            for t in self._transactions:
                if t["id"] == transaction_id:
                    return dict(t)
        return None

    def customer_transactions(self, customer_id):
        with self.lock:
            return [dict(t) for t in self._transactions if t["customerId"] == customer_id]

    # --- Writes ---
    def commit(self, customers=None, transactions=None):
        """
        Replaces one or both collections. Both tables are written in one
        transaction; memory is only swapped once it has committed.
        """
        tables = []
        if transactions is not None:
            transactions = [dict(t) for t in transactions]
            tables.append(("Transactions", TRANSACTION_COLUMNS, transactions))
        if customers is not None:
            customers = [dict(c) for c in customers]
            tables.append(("Customers", CUSTOMER_COLUMNS, customers))
        if not tables:
            return

        with self.lock:
            self._write_tables(tables)
            if transactions is not None:
                self._transactions = transactions
            if customers is not None:
                self._customers = customers

    def upsert_customer(self, customer):
        with self.lock:
            customers = self.customers
            for idx, c in enumerate(customers):
                if c["id"] == customer["id"]:
                    customers[idx] = dict(customer)
                    break
            else:
                customers.insert(0, dict(customer))
            self.commit(customers=customers)

    def delete_customer(self, customer_id):
        """
        Removes the customer and every transaction that belongs to it.
        Returns False when the id is unknown.
        """
        with self.lock:
            customers = [c for c in self._customers if c["id"] != customer_id]
            if len(customers) == len(self._customers):
                return False
            transactions = [t for t in self._transactions if t["customerId"] != customer_id]
            self.commit(customers=customers, transactions=transactions)
            return True

    # --- Settings (business profile, cloud URL, last sync) ---
    def get_setting(self, key, default=None):
        with self.lock:
            row = self.conn.execute("SELECT value FROM Settings WHERE key = ?", (key,)).fetchone()
        if row is None or row[0] is None:
            return default
        return row[0]

    def set_setting(self, key, value):
        with self.lock:
            self.conn.execute(
                "INSERT OR REPLACE INTO Settings (key, value) VALUES (?, ?)",
                (key, "" if value is None else str(value)),
            )

    def close(self):
        if self.conn is not None:
            self.conn.close()
            self.conn = None

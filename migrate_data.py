"""
One-off import of existing ledger data into the local SQLite ledger.

Sources:
  * a JSON export of the old browser app (slp_customers / slp_transactions keys)
    or a plain {"customers": [...], "transactions": [...]} file
  * the Google Sheet itself, read with a service-account key via gspread

Imported rows are merged like a cloud pull: rows with a known id replace the
local copy, everything else already in the ledger is kept.
"""
import argparse
import json

import gspread

import config
from database import LedgerDatabase, normalize_customer, normalize_transaction
from reconcile import merge_snapshot

SHEETS = ("Customers", "Transactions")


def _decode(value):
    # localStorage values are JSON strings inside the JSON dump
    if isinstance(value, str):
        return json.loads(value) if value.strip() else []
    return value or []


def read_json_export(path):
    with open(path, "r", encoding="utf-8") as f:
        data = json.load(f)

    if "slp_customers" in data or "slp_transactions" in data:
        return _decode(data.get("slp_customers")), _decode(data.get("slp_transactions"))
    return data.get("customers", []), data.get("transactions", [])


def fetch_google_sheet(sheet_url, credentials_file):
    gc = gspread.service_account(filename=credentials_file)
    sh = gc.open_by_url(sheet_url)

    rows = {}
    for sheet_name in SHEETS:
        try:
            print(f"📥 Fetching '{sheet_name}'...")
            rows[sheet_name] = sh.worksheet(sheet_name).get_all_records()
        except gspread.exceptions.WorksheetNotFound:
            print(f"⚠️ Worksheet '{sheet_name}' not found in Google Sheet.")
            rows[sheet_name] = []
    return rows["Customers"], rows["Transactions"]


def _normalize_all(records, normalize, label):
    clean = []
    for record in records:
        try:
            clean.append(normalize(record))
        except ValueError as e:
            print(f"⚠️ Skipping {label} row: {e}")
    return clean


def import_into(db, customers, transactions):
    snapshot = {
        "customers": _normalize_all(customers, normalize_customer, "customer"),
        "transactions": _normalize_all(transactions, normalize_transaction, "transaction"),
    }
    with db.lock:
        merged_customers, merged_transactions = merge_snapshot(snapshot, db.customers, db.transactions)
        db.commit(customers=merged_customers, transactions=merged_transactions)
    return len(snapshot["customers"]), len(snapshot["transactions"])


def main(argv=None):
    parser = argparse.ArgumentParser(description="Import old ledger data into the local database.")
    parser.add_argument("--db", default=config.LEDGER_DB, help="SQLite ledger file")
    parser.add_argument("--json", help="JSON export of the old app")
    parser.add_argument("--sheet-url", help="Google Sheet URL")
    parser.add_argument("--credentials", help="Service account JSON key for the sheet")
    args = parser.parse_args(argv)
    config.setup_logging()

    if args.json:
        customers, transactions = read_json_export(args.json)
    elif args.sheet_url and args.credentials:
        customers, transactions = fetch_google_sheet(args.sheet_url, args.credentials)
    else:
        parser.error("Give --json, or --sheet-url together with --credentials")

    print(f"🚀 Importing into {args.db}...")
    db = LedgerDatabase(args.db)
    try:
        n_cust, n_tx = import_into(db, customers, transactions)
    finally:
        db.close()
    print(f"✅ Imported {n_cust} customers and {n_tx} transactions.")


if __name__ == "__main__":
    main()

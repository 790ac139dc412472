"""
Pull-side reconciliation between the Sheets snapshot and the local ledger.

Remote wins for every id it knows about (whole record, no field merge).
Records the remote has never seen (push still in flight or failed) are kept
so they are not lost, and converge to the remote copy once it absorbs them.
"""
import pandas as pd


def _timestamp(value):
    ts = pd.to_datetime(value, utc=True, errors="coerce")
    if pd.isna(ts):
        # Unparseable dates sink to the bottom
        return float("-inf")
    return float(ts.value)


def merge_records(remote, local, key):
    merged = []
    seen = set()

    for record in remote:
        if record["id"] in seen:
            continue
        seen.add(record["id"])
        merged.append(dict(record))

    for record in local:
        if record["id"] in seen:
            continue
        seen.add(record["id"])
        merged.append(dict(record))

    # sort() is stable, so equal timestamps keep remote-then-local order
    merged.sort(key=lambda r: _timestamp(r.get(key)), reverse=True)
    return merged


def merge_snapshot(snapshot, customers, transactions):
    """Returns the new (customers, transactions) pair for the store."""
    merged_customers = merge_records(snapshot["customers"], customers, "lastActivity")
    merged_transactions = merge_records(snapshot["transactions"], transactions, "date")
    return merged_customers, merged_transactions

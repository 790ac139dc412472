from datetime import datetime, timedelta, timezone

import pandas as pd

from database import PAYMENT, SALE, TRANSACTION_COLUMNS


def _frame(transactions):
    df = pd.DataFrame(list(transactions), columns=TRANSACTION_COLUMNS)
    # Ensure numeric
    df["amount"] = pd.to_numeric(df["amount"], errors="coerce").fillna(0.0)
    df["date"] = pd.to_datetime(df["date"], utc=True, errors="coerce", format="ISO8601")
    return df


def _sum(frame, start=None):
    if start is not None:
        frame = frame[frame["date"] >= start]
    return round(float(frame["amount"].sum()), 2)


def _resolve_now(now=None):
    # Naive datetimes are local wall-clock time; aware ones keep their own zone
    if now is None:
        now = datetime.now()
    if now.tzinfo is None:
        return now.astimezone()
    return now


def _local_midnight(now, day=None):
    """
    Midnight of `now`'s calendar day (or of `day` in the same month).
    For naive `now` the UTC offset is looked up for the midnight itself, so a
    DST change between then and now does not shift the boundary.
    """
    midnight = now.replace(hour=0, minute=0, second=0, microsecond=0)
    if day is not None:
        midnight = midnight.replace(day=day)
    if midnight.tzinfo is None:
        return midnight.astimezone()
    return midnight


def window_starts(now=None):
    """
    Returns (start of today, now minus 7 days, first of the month) as
    timestamps. All three boundaries are inclusive.
    """
    if now is None:
        now = datetime.now()
    today = _local_midnight(now)
    month = _local_midnight(now, day=1)
    # Elapsed time, not wall-clock time
    week = _resolve_now(now).astimezone(timezone.utc) - timedelta(days=7)
    return pd.Timestamp(today), pd.Timestamp(week), pd.Timestamp(month)


def derive_customer_totals(transactions):
    """
    Totals for one customer's transactions.
    Sales (udhaar) increase the due, payments (jama) reduce it.
    """
    df = _frame(transactions)
    total_sales = _sum(df[df["type"] == SALE])
    total_paid = _sum(df[df["type"] == PAYMENT])
    return {
        "totalSales": total_sales,
        "totalPaid": total_paid,
        "due": round(total_sales - total_paid, 2),
    }


def derive_aggregate_stats(transactions, now=None, customers=None):
    """
    Business-wide summary over the full transaction log.

    Recomputed on every call; nothing here is stored. Pass `customers` to get
    a name on `monthlyBestCustomer`.
    """
    df = _frame(transactions)
    sales = df[df["type"] == SALE]
    payments = df[df["type"] == PAYMENT]
    today, week, month = window_starts(now)

    total_sales = _sum(sales)
    total_paid = _sum(payments)

    return {
        "totalSales": total_sales,
        "totalPaid": total_paid,
        "totalDue": round(total_sales - total_paid, 2),
        "dailySales": _sum(sales, today),
        "weeklySales": _sum(sales, week),
        "monthlySales": _sum(sales, month),
        "dailyPayments": _sum(payments, today),
        "weeklyPayments": _sum(payments, week),
        "monthlyPayments": _sum(payments, month),
        "monthlyBestCustomer": _best_customer(sales[sales["date"] >= month], customers),
    }


def _best_customer(month_sales, customers=None):
    if month_sales.empty:
        return None

    per_customer = month_sales.groupby("customerId")["amount"].sum()
    best_id = per_customer.idxmax()
    names = {c["id"]: c["name"] for c in (customers or [])}
    return {
        "name": names.get(best_id, "Unknown"),
        "amount": round(float(per_customer[best_id]), 2),
    }


def top_debtors(customers, limit=3):
    debtors = [c for c in customers if c.get("due", 0) > 0]
    debtors.sort(key=lambda c: c["due"], reverse=True)
    return debtors[:limit]


def find_balance_drift(customers, transactions):
    """
    Lists customers whose stored totals no longer match their transactions.
    Each entry carries both the stored and the recomputed figures.
    """
    df = _frame(transactions)
    totals = df.groupby(["customerId", "type"])["amount"].sum()

    drift = []
    for c in customers:
        sales = round(float(totals.get((c["id"], SALE), 0.0)), 2)
        paid = round(float(totals.get((c["id"], PAYMENT), 0.0)), 2)
        expected = {"totalSales": sales, "totalPaid": paid, "due": round(sales - paid, 2)}
        stored = {k: c.get(k, 0.0) for k in expected}
        if any(abs(stored[k] - expected[k]) > 0.005 for k in expected):
            drift.append({"id": c["id"], "name": c.get("name", ""), "stored": stored, "expected": expected})
    return drift


def sales_trend(transactions, days=30, now=None):
    """
    Get daily sale and payment totals for the last N days.
    """
    if now is None:
        now = datetime.now()
    df = _frame(transactions)
    cutoff = pd.Timestamp(_local_midnight(now - timedelta(days=days)))
    zone = _resolve_now(now).tzinfo

    recent = df[df["date"] >= cutoff]
    if recent.empty:
        return pd.DataFrame(columns=["day", "sales", "payments"])

    recent = recent.assign(day=recent["date"].dt.tz_convert(zone).dt.date)
    trend = recent.pivot_table(index="day", columns="type", values="amount", aggfunc="sum", fill_value=0.0)
    trend = trend.reindex(columns=[SALE, PAYMENT], fill_value=0.0).reset_index()
    trend.columns = ["day", "sales", "payments"]
    return trend.sort_values("day")

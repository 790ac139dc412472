from datetime import datetime

import pandas as pd
from fpdf import FPDF
from fpdf.enums import XPos, YPos

from database import PAYMENT, SALE, TRANSACTION_COLUMNS
from links import plain_amount

NEXT_LINE = {"new_x": XPos.LMARGIN, "new_y": YPos.NEXT}

# S#(10), Date(25), Description(70), Udhaar(28), Jama(28), Balance(29) => 190mm (A4)
COLUMNS = [("S#", 10), ("Date", 25), ("Description", 70), ("Udhaar", 28), ("Jama", 28), ("Balance", 29)]


def _safe(text):
    # Core PDF fonts are latin-1 only
    return str(text).encode("latin-1", "replace").decode("latin-1")


def _money(val):
    return f"Rs. {float(val):,.2f}"


def statement_rows(transactions):
    """
    Oldest-first rows with a running balance, as shown on the printed khata.
    """
    df = pd.DataFrame(list(transactions), columns=TRANSACTION_COLUMNS)
    if df.empty:
        return pd.DataFrame(columns=["date", "description", "sale", "paid", "balance"])

    df["amount"] = pd.to_numeric(df["amount"], errors="coerce").fillna(0.0)
    df["when"] = pd.to_datetime(df["date"], utc=True, errors="coerce", format="ISO8601")
    df = df.sort_values("when", kind="stable").reset_index(drop=True)

    df["sale"] = df["amount"].where(df["type"] == SALE, 0.0)
    df["paid"] = df["amount"].where(df["type"] == PAYMENT, 0.0)
    df["balance"] = (df["sale"] - df["paid"]).cumsum().round(2)
    df["date"] = df["date"].astype(str).str.slice(0, 10)
    return df[["date", "description", "sale", "paid", "balance"]]


def create_statement_pdf(customer, transactions, business_name):
    rows = statement_rows(transactions)

    pdf = FPDF()
    pdf.add_page()

    # --- HEADER SECTION ---
    pdf.set_font("Helvetica", "B", 18)
    pdf.cell(0, 8, _safe(business_name), align="C", **NEXT_LINE)
    pdf.set_font("Helvetica", "B", 12)
    pdf.cell(0, 8, "Customer Ledger Statement", align="C", **NEXT_LINE)
    pdf.line(10, pdf.get_y(), 200, pdf.get_y())
    pdf.ln(4)

    # --- CUSTOMER DETAILS SECTION ---
    pdf.set_font("Helvetica", "B", 10)
    pdf.cell(25, 6, "Customer:")
    pdf.set_font("Helvetica", size=10)
    pdf.cell(100, 6, _safe(customer["name"]), border="B")
    pdf.set_font("Helvetica", "B", 10)
    pdf.cell(15, 6, "Date:")
    pdf.set_font("Helvetica", size=10)
    pdf.cell(0, 6, datetime.now().strftime("%d-%m-%Y"), border="B", **NEXT_LINE)

    pdf.set_font("Helvetica", "B", 10)
    pdf.cell(25, 6, "Mobile #:")
    pdf.set_font("Helvetica", size=10)
    status = "" if customer.get("isActive", True) else "  (Deactivated)"
    pdf.cell(0, 6, _safe(customer["phone"] + status), **NEXT_LINE)
    pdf.ln(5)

    # --- TABLE HEADER ---
    pdf.set_fill_color(240, 240, 240)
    pdf.set_font("Helvetica", "B", 9)
    for idx, (title, width) in enumerate(COLUMNS):
        if idx == len(COLUMNS) - 1:
            pdf.cell(width, 8, title, border=1, align="C", fill=True, **NEXT_LINE)
        else:
            pdf.cell(width, 8, title, border=1, align="C", fill=True)

    # --- TABLE BODY ---
    pdf.set_font("Helvetica", size=9)
    for i, row in enumerate(rows.itertuples(index=False), start=1):
        pdf.cell(10, 7, str(i), border=1, align="C")
        pdf.cell(25, 7, row.date, border=1, align="C")
        pdf.cell(70, 7, _safe(row.description)[:40], border=1)
        pdf.cell(28, 7, plain_amount(row.sale) if row.sale else "", border=1, align="R")
        pdf.cell(28, 7, plain_amount(row.paid) if row.paid else "", border=1, align="R")
        pdf.cell(29, 7, plain_amount(row.balance), border=1, align="R", **NEXT_LINE)

    # --- TOTALS ---
    pdf.ln(4)
    pdf.set_font("Helvetica", "B", 10)
    pdf.cell(140, 7, "Total Udhaar (Sales):", align="R")
    pdf.cell(0, 7, _money(customer["totalSales"]), align="R", **NEXT_LINE)
    pdf.cell(140, 7, "Total Jama (Paid):", align="R")
    pdf.cell(0, 7, _money(customer["totalPaid"]), align="R", **NEXT_LINE)
    pdf.set_text_color(200, 30, 30)
    pdf.cell(140, 8, "Outstanding Due:", align="R")
    pdf.cell(0, 8, _money(customer["due"]), align="R", **NEXT_LINE)
    pdf.set_text_color(0, 0, 0)

    return bytes(pdf.output())

import atexit
import time

import pandas as pd
import plotly.express as px
import streamlit as st

import config
from balance import sales_trend, top_debtors
from database import PAYMENT, SALE
from ledger import LedgerApp
from links import format_currency, payment_qr_png, whatsapp_link
from statement import create_statement_pdf

st.set_page_config(page_title="Momai Ledger", page_icon="🐄", layout="wide")


@st.cache_resource
def get_ledger():
    # One ledger per process; every session shares it
    config.setup_logging()
    app = LedgerApp.from_config()
    atexit.register(app.close)
    return app


ledger = get_ledger()

# Onboarding link from another device: adopt its sheet URL, then drop it from the address bar
shared_url = st.query_params.get("url")
if shared_url:
    if ledger.adopt_shared_sheet_url(shared_url):
        st.toast("☁️ Cloud sync linked from shared URL")
    st.query_params.clear()

settings = ledger.settings()


def local_css():
    st.markdown("""
    <style>
        .main .block-container { padding-top: 1rem; padding-bottom: 2rem; }
        .modern-card {
            background-color: #1a1c24;
            border-radius: 12px;
            padding: 16px;
            margin-bottom: 10px;
        }
        .sub-text { color: #a9b1d6; font-size: 0.8rem; text-transform: uppercase; }
        .big-num { font-size: 1.8rem; font-weight: bold; }
    </style>
    """, unsafe_allow_html=True)


def metric_card(label, value, color):
    st.markdown(
        f"""<div class="modern-card" style="border-left: 5px solid {color};"><div class="sub-text">{label}</div>"""
        f"""<div class="big-num" style="color:{color};">{format_currency(value)}</div></div>""",
        unsafe_allow_html=True,
    )


def run_refresh():
    ok, msg = ledger.refresh()
    if ok:
        st.toast(msg, icon="✅")
    else:
        st.error(msg)


local_css()


# --- DIALOGS ---
@st.dialog("Add Customer")
def add_customer_dialog():
    with st.form("new_customer_form"):
        name = st.text_input("Customer Name (Required)")
        phone = st.text_input("Phone Number (Required)", placeholder="9876543210")
        if st.form_submit_button("Save Customer", type="primary", width="stretch"):
            ok, result = ledger.add_customer(name, phone)
            if ok:
                st.session_state.selected_customer = result["id"]
                st.toast(f"✅ Customer '{result['name']}' added!")
                st.rerun()
            else:
                st.error(result)


@st.dialog("Edit Customer")
def edit_customer_dialog(customer):
    with st.form("edit_customer_form"):
        name = st.text_input("Customer Name", value=customer["name"])
        phone = st.text_input("Phone Number", value=customer["phone"].replace(config.DEFAULT_COUNTRY_CODE, "", 1))
        if st.form_submit_button("Update", type="primary", width="stretch"):
            ok, result = ledger.update_customer(customer["id"], name, phone)
            if ok:
                st.rerun()
            else:
                st.error(result)


@st.dialog("New Entry")
def add_entry_dialog(customer, tx_type):
    label = "Udhaar (Sale)" if tx_type == SALE else "Jama (Payment)"
    st.header(f"{'🔴' if tx_type == SALE else '🟢'} {label}")
    st.caption(f"{customer['name']} | Current due: {format_currency(customer['due'])}")
    with st.form("entry_form"):
        amount = st.number_input("Amount (₹)", min_value=0.0, step=100.0)
        desc = st.text_input("Note", placeholder="Sale Entry" if tx_type == SALE else "Payment Received")
        if st.form_submit_button("Save Entry", type="primary", width="stretch"):
            ok, result = ledger.add_transaction(customer["id"], tx_type, amount, desc)
            if ok:
                st.toast("✅ Entry saved!")
                st.rerun()
            else:
                st.error(result)


@st.dialog("Delete Customer")
def delete_customer_dialog(customer):
    st.warning(f"Delete **{customer['name']}** and all of their entries? This cannot be undone.")
    if st.button("❌ Yes, Delete", type="primary", width="stretch"):
        ok, result = ledger.delete_customer(customer["id"])
        if ok:
            st.session_state.selected_customer = None
            st.rerun()
        else:
            st.error(result)


@st.dialog("Scan to Pay")
def qr_dialog(customer):
    png = payment_qr_png(settings["upi_id"], settings["business_name"], customer["due"])
    if png is None:
        st.error("Set a UPI ID in Setup first.")
        return
    st.image(png, width=300)
    st.markdown(f"### {format_currency(customer['due'])}")
    st.caption(settings["upi_id"])


# --- APP NAVIGATION Logic ---
if "page" not in st.session_state:
    st.session_state.page = "📊 Dashboard"
if "selected_customer" not in st.session_state:
    st.session_state.selected_customer = None


def update_nav():
    st.session_state.page = st.session_state.nav_radio


with st.sidebar:
    st.markdown("### 🐄 Momai Ledger")
    st.caption(settings["business_name"])
    st.markdown("---")

    options = ["📊 Dashboard", "📒 Ledger", "⚙️ Setup"]
    try:
        curr_idx = options.index(st.session_state.page)
    except ValueError:
        curr_idx = 0
    st.radio("Navigate", options, index=curr_idx, key="nav_radio", on_change=update_nav, label_visibility="collapsed")

    if settings["sheet_url"]:
        st.markdown("---")
        if st.button(f"🔄 Synced {settings['last_sync']}", width="stretch"):
            run_refresh()
            st.rerun()

menu = st.session_state.page


if menu == "📊 Dashboard":
    st.title("📊 Business Dashboard")
    stats = ledger.stats()
    customers = ledger.customers()

    c1, c2, c3 = st.columns(3)
    with c1:
        metric_card("Total Udhaar (Sales)", stats["totalSales"], "#7aa2f7")
    with c2:
        metric_card("Total Jama (Received)", stats["totalPaid"], "#9ece6a")
    with c3:
        metric_card("Total Due", stats["totalDue"], "#f7768e")

    c4, c5, c6 = st.columns(3)
    c4.metric("Today's Sales", format_currency(stats["dailySales"]))
    c5.metric("This Week", format_currency(stats["weeklySales"]))
    c6.metric("This Month", format_currency(stats["monthlySales"]))

    if stats["monthlyBestCustomer"]:
        best = stats["monthlyBestCustomer"]
        st.info(f"🏆 Best customer this month: **{best['name']}** ({format_currency(best['amount'])})")

    st.divider()
    col_bar, col_pie = st.columns(2)
    with col_bar:
        bar_df = pd.DataFrame({
            "period": ["Today", "This Week", "This Month"] * 2,
            "kind": ["Sales"] * 3 + ["Payments"] * 3,
            "amount": [
                stats["dailySales"], stats["weeklySales"], stats["monthlySales"],
                stats["dailyPayments"], stats["weeklyPayments"], stats["monthlyPayments"],
            ],
        })
        fig_bar = px.bar(bar_df, x="period", y="amount", color="kind", barmode="group", title="Sales vs Payments")
        st.plotly_chart(fig_bar, width="stretch")
    with col_pie:
        if stats["totalSales"] > 0:
            pie_df = pd.DataFrame({
                "status": ["Received", "Pending"],
                "amount": [stats["totalPaid"], max(stats["totalDue"], 0.0)],
            })
            fig_pie = px.pie(pie_df, names="status", values="amount", hole=0.5, title="Collection Status",
                             color_discrete_sequence=["#9ece6a", "#f7768e"])
            st.plotly_chart(fig_pie, width="stretch")
        else:
            st.caption("No sales recorded yet.")

    trend_df = sales_trend(ledger.transactions(), days=30)
    if not trend_df.empty:
        fig_trend = px.line(trend_df, x="day", y=["sales", "payments"], markers=True, title="Last 30 Days")
        st.plotly_chart(fig_trend, width="stretch")

    st.divider()
    col_debt, col_ai = st.columns(2)
    with col_debt:
        st.subheader("📋 Top Debtors")
        debtors = top_debtors(customers, 5)
        if debtors:
            for c in debtors:
                st.markdown(f"- **{c['name']}**: {format_currency(c['due'])}")
        else:
            st.caption("Nobody owes anything. 🎉")

    with col_ai:
        st.subheader("🤖 AI Insights")
        if st.button("Generate Insights", width="stretch"):
            with st.spinner("Analysing ledger..."):
                st.session_state.insight = ledger.insights()
        insight = st.session_state.get("insight")
        if insight:
            st.write(insight["summary"])
            for item in insight["actionItems"]:
                st.markdown(f"- {item}")

    with st.expander("🔍 Balance Check"):
        drift = ledger.audit_balances()
        if drift:
            st.warning(f"{len(drift)} customer(s) have totals that don't match their entries.")
            st.dataframe(pd.DataFrame([{"name": d["name"], "stored due": d["stored"]["due"],
                                        "expected due": d["expected"]["due"]} for d in drift]), width="stretch")
        else:
            st.success("All customer balances match their entries.")


elif menu == "📒 Ledger":
    st.title("📒 Customer Ledger")

    col_search, col_toggle, col_add = st.columns([3, 1, 1])
    search = col_search.text_input("Search", placeholder="Name or phone", label_visibility="collapsed")
    show_inactive = col_toggle.checkbox("Show inactive")
    if col_add.button("➕ Add Customer", type="primary", width="stretch"):
        add_customer_dialog()

    col_list, col_detail = st.columns([1, 2])

    with col_list:
        for c in ledger.search_customers(search, show_inactive):
            badge = "" if c["isActive"] else " 💤"
            label = f"{c['name']}{badge} · {format_currency(c['due'])}"
            if st.button(label, key=f"cust_{c['id']}", width="stretch"):
                st.session_state.selected_customer = c["id"]
                st.rerun()

    with col_detail:
        customer = None
        if st.session_state.selected_customer:
            customer = ledger.get_customer(st.session_state.selected_customer)

        if customer is None:
            st.info("Select a customer to see their khata.")
        else:
            st.header(customer["name"])
            st.caption(f"📞 {customer['phone']}" + ("" if customer["isActive"] else " · Deactivated"))

            m1, m2, m3 = st.columns(3)
            m1.metric("Udhaar", format_currency(customer["totalSales"]))
            m2.metric("Jama", format_currency(customer["totalPaid"]))
            m3.metric("Due", format_currency(customer["due"]))

            b1, b2, b3, b4 = st.columns(4)
            if customer["isActive"]:
                if b1.button("🔴 Udhaar", width="stretch"):
                    add_entry_dialog(customer, SALE)
                if b2.button("🟢 Jama", width="stretch"):
                    add_entry_dialog(customer, PAYMENT)
            if b3.button("✏️ Edit", width="stretch"):
                edit_customer_dialog(customer)
            if b4.button("💤 Deactivate" if customer["isActive"] else "✅ Activate", width="stretch"):
                ok, result = ledger.toggle_customer_status(customer["id"])
                if not ok:
                    st.error(result)
                st.rerun()

            if customer["due"] > 0:
                wa_url = whatsapp_link(customer, settings["business_name"], settings["upi_id"])
                l1, l2 = st.columns(2)
                if wa_url:
                    l1.link_button("🟢 WhatsApp Reminder", wa_url, width="stretch")
                if settings["upi_id"] and customer["isActive"]:
                    if l2.button("📱 Pay QR", width="stretch"):
                        qr_dialog(customer)

            history = ledger.customer_transactions(customer["id"])
            st.download_button(
                "📄 Download Statement (PDF)",
                data=create_statement_pdf(customer, history, settings["business_name"]),
                file_name=f"Statement_{customer['name']}.pdf",
                mime="application/pdf",
                width="stretch",
            )

            st.subheader("History")
            if history:
                hist_df = pd.DataFrame(history)
                hist_df["date"] = hist_df["date"].str.slice(0, 16).str.replace("T", " ")
                hist_df["type"] = hist_df["type"].map({SALE: "Udhaar", PAYMENT: "Jama"})
                st.dataframe(hist_df[["date", "type", "amount", "description"]], width="stretch", hide_index=True)
            else:
                st.caption("No entries yet.")

            st.divider()
            if st.button("❌ Delete Customer", width="stretch"):
                delete_customer_dialog(customer)


elif menu == "⚙️ Setup":
    st.title("⚙️ Setup")

    with st.form("settings_form"):
        st.subheader("🪪 Business Profile")
        c1, c2 = st.columns(2)
        biz_name = c1.text_input("Business Name", value=settings["business_name"])
        upi_id = c2.text_input("UPI ID for Payments", value=settings["upi_id"], placeholder="7046550870@ybl")
        c2.caption("Example: 7046550870@ybl or store@upi")

        st.subheader("☁️ Cloud Setup")
        sheet_url = st.text_input("Web App URL", value=settings["sheet_url"], placeholder="Paste Apps Script URL here")

        if st.form_submit_button("Save Settings", type="primary", width="stretch"):
            ledger.update_settings(sheet_url=sheet_url, upi_id=upi_id, business_name=biz_name)
            st.success("Settings saved!")
            time.sleep(0.5)
            st.rerun()

    st.caption(f"Last sync: {settings['last_sync']}")
    if settings["sheet_url"] and st.button("🔄 Pull from Sheet now"):
        with st.spinner("Syncing..."):
            run_refresh()

"""
Streamlit Frontend for Expense Tracker

Pages:
1. Records  - this month's total and every transaction grouped by day
2. Add      - manual entry, or scan a receipt with AI and confirm it
3. Reports  - category breakdown, spending trend and top expenses
4. Profile  - account details, display currency and theme

The UI enforces the human-in-the-loop principle for receipts:
- User sees what was extracted
- User confirms or edits
- Nothing is saved without an explicit "Save" action
"""

import asyncio
from datetime import date, timedelta
from typing import Optional

import streamlit as st

from src.auth import AuthProvider, CallerIdentity
from src.config import get_settings, validate_all_settings
from src.models import ActionFailed, Category, ImagePayload, ReportPeriod, ScanStep, TransactionRecord
from src.orchestrator import ReceiptScanFlow, TransactionService, create_app_components
from src.preferences import AppPreferences, JsonFilePreferenceStorage, Theme
from src.reports import build_report, group_by_day, report_window


st.set_page_config(
    page_title="Expense Tracker",
    page_icon="💸",
    layout="wide",
    initial_sidebar_state="expanded",
)


def run_async(coro):
    """Helper to run async functions in Streamlit."""
    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()


class StreamlitAuthProvider(AuthProvider):
    """Caller identity from Streamlit's built-in OIDC login (`st.user`)."""

    async def current_identity(self) -> Optional[CallerIdentity]:
        if not st.user.is_logged_in:
            return None
        user_id = st.user.get("sub")
        email = st.user.get("email")
        if not user_id or not email:
            return None
        return CallerIdentity(user_id=user_id, email=email, name=st.user.get("name"))


def detect_system_theme() -> Theme:
    theme_type = getattr(getattr(st.context, "theme", None), "type", None)
    return Theme.DARK if theme_type == "dark" else Theme.LIGHT


@st.cache_data(ttl=300, show_spinner=False)
def load_transactions(_service: TransactionService, user_id: str) -> list[TransactionRecord]:
    """Caller's transactions, cached per user until the next mutation. Failures raise and are not cached."""
    result = run_async(_service.list_transactions())
    result.raise_for_error()
    return result.transactions


def invalidate_records(view: str) -> None:
    load_transactions.clear()


@st.cache_resource
def get_components():
    """Get or create application components (cached)."""
    return create_app_components(
        auth_provider=StreamlitAuthProvider(),
        invalidation_hooks=[invalidate_records],
    )


def get_preferences() -> AppPreferences:
    if "preferences" not in st.session_state:
        storage = JsonFilePreferenceStorage(get_settings().app.preferences_file)
        st.session_state.preferences = AppPreferences.load(
            storage,
            system_theme=detect_system_theme,
        )
    return st.session_state.preferences


def fetch_transactions(service: TransactionService) -> list[TransactionRecord]:
    try:
        return load_transactions(service, st.user.get("sub"))
    except ActionFailed as e:
        st.error(e.message)
        return []


def main():
    """Main application entry point."""
    if not st.user.is_logged_in:
        st.title("💸 Expense Tracker")
        st.markdown("Track where your money goes. Sign in to get started.")
        if st.button("Sign in", type="primary"):
            st.login()
        st.stop()

    transaction_service, new_scan_flow, _ = get_components()
    prefs = get_preferences()

    if "scan_flow" not in st.session_state:
        st.session_state.scan_flow = new_scan_flow()

    st.sidebar.title("💸 Expense Tracker")
    settings = get_settings().app
    if settings.debug_mode:
        st.sidebar.caption(f"Environment: {settings.app_environment}")
    st.sidebar.markdown("---")

    page = st.sidebar.radio(
        "Navigate to:",
        ["📒 Records", "➕ Add", "📊 Reports", "👤 Profile"],
        index=0,
    )

    if page == "📒 Records":
        render_records_page(transaction_service, prefs)
    elif page == "➕ Add":
        render_add_page(transaction_service, st.session_state.scan_flow, prefs)
    elif page == "📊 Reports":
        render_reports_page(transaction_service, prefs)
    elif page == "👤 Profile":
        render_profile_page(prefs)


def render_records_page(service: TransactionService, prefs: AppPreferences):
    """Render this month's total and the day-grouped transaction list."""
    st.title("📒 Records")

    total = run_async(service.monthly_total())
    if total.success:
        st.metric("Spent this month", prefs.format_amount(total.total))
    else:
        st.error(total.error)

    search = st.text_input("Search", placeholder="Search by name or category")
    transactions = fetch_transactions(service)

    groups = group_by_day(transactions, search=search)
    if not groups:
        st.info("No transactions yet. Use the 'Add' page to record your first expense.")
        return

    for group in groups:
        st.markdown(
            f"#### {group.day:%A, %b} {group.day.day} · {prefs.format_amount(group.total)}"
        )
        for txn in group.transactions:
            render_transaction_row(service, txn, prefs)


def render_transaction_row(service: TransactionService, txn: TransactionRecord, prefs: AppPreferences):
    with st.expander(f"{txn.name} · {txn.category.label} · {prefs.format_amount(txn.amount)}"):
        with st.form(f"edit-{txn.id}"):
            name = st.text_input("Name", value=txn.name)
            amount = st.text_input("Amount", value=f"{txn.amount:.2f}")
            category = st.selectbox(
                "Category",
                options=list(Category),
                index=list(Category).index(txn.category),
                format_func=lambda c: c.label,
            )
            day = st.date_input("Date", value=txn.day)
            col1, col2 = st.columns(2)
            save = col1.form_submit_button("💾 Save changes", type="primary")
            remove = col2.form_submit_button("🗑️ Delete")

        if save:
            result = run_async(service.update(txn.id, name, amount, category.value, day))
            if result.success:
                st.success("Transaction updated")
                st.rerun()
            else:
                st.error(result.error)
        if remove:
            result = run_async(service.delete(txn.id))
            if result.success:
                st.rerun()
            else:
                st.error(result.error)


def render_add_page(service: TransactionService, flow: ReceiptScanFlow, prefs: AppPreferences):
    """Render manual entry and the receipt scan flow."""
    st.title("➕ Add Transaction")

    manual_tab, scan_tab = st.tabs(["✍️ Manual", "🧾 Scan receipt"])

    with manual_tab:
        with st.form("manual-entry", clear_on_submit=True):
            name = st.text_input("Name *", placeholder="e.g., Starbucks Coffee")
            amount = st.text_input(f"Amount ({prefs.currency.symbol}) *", placeholder="0.00")
            category = st.selectbox("Category *", options=list(Category), format_func=lambda c: c.label)
            day = st.date_input("Date *", value=date.today())
            submitted = st.form_submit_button("Add transaction", type="primary")

        if submitted:
            result = run_async(service.create(name, amount, category.value, day))
            if result.success:
                st.success(f"Saved {result.transaction.name} ({prefs.format_amount(result.transaction.amount)})")
            else:
                st.error(result.error)

    with scan_tab:
        render_scan_flow(flow, prefs)


def render_scan_flow(flow: ReceiptScanFlow, prefs: AppPreferences):
    """Drive ReceiptScanFlow: choose → capturing → loading → confirm | error."""
    max_mb = get_settings().app.max_upload_size_mb

    if flow.step == ScanStep.CHOOSE:
        col1, col2 = st.columns(2)
        with col1:
            if st.button("📷 Take a photo"):
                flow.begin_capture()
                st.rerun()
        with col2:
            uploaded = st.file_uploader(
                "Upload a receipt",
                type=["jpg", "jpeg", "png", "webp", "heic"],
                help=f"Images up to {max_mb}MB",
            )
            if uploaded is not None and st.button("🔍 Scan receipt", type="primary"):
                payload = ImagePayload(mime_type=uploaded.type or "", data=uploaded.getvalue())
                with st.spinner("Reading your receipt..."):
                    run_async(flow.submit(payload))
                st.rerun()

    elif flow.step == ScanStep.CAPTURING:
        photo = st.camera_input("Point the camera at the receipt")
        if st.button("Cancel"):
            flow.cancel_capture()
            st.rerun()
        if photo is not None:
            payload = ImagePayload(mime_type=photo.type or "image/jpeg", data=photo.getvalue())
            with st.spinner("Reading your receipt..."):
                run_async(flow.submit(payload))
            st.rerun()

    elif flow.step == ScanStep.ERROR:
        st.error(flow.error)
        if st.button("Try again"):
            flow.reset()
            st.rerun()

    elif flow.step == ScanStep.CONFIRM:
        fields = flow.fields
        st.success("Receipt scanned. Please review the details before saving.")
        with st.form("confirm-receipt"):
            name = st.text_input("Name *", value=fields.name)
            amount = st.text_input(f"Amount ({prefs.currency.symbol}) *", value=f"{fields.amount:.2f}")
            category = st.selectbox(
                "Category *",
                options=list(Category),
                index=list(Category).index(fields.category),
                format_func=lambda c: c.label,
            )
            day = st.date_input("Date *", value=date.fromisoformat(fields.date))
            col1, col2 = st.columns(2)
            save = col1.form_submit_button("✅ Confirm and Save", type="primary")
            discard = col2.form_submit_button("❌ Discard")

        if save:
            result = run_async(
                flow.confirm_and_save(name=name, amount=amount, category=category.value, date=day)
            )
            if result.success:
                st.success("Transaction saved")
                st.rerun()
            else:
                st.error(result.error)
        if discard:
            flow.reset()
            st.rerun()


def render_reports_page(service: TransactionService, prefs: AppPreferences):
    """Render the spending report for the chosen period."""
    st.title("📊 Reports")

    labels = {
        ReportPeriod.THIS_MONTH: "This month",
        ReportPeriod.LAST_3_MONTHS: "Last 3 months",
        ReportPeriod.THIS_YEAR: "This year",
        ReportPeriod.CUSTOM: "Custom",
    }
    period = st.radio(
        "Period",
        options=list(ReportPeriod),
        format_func=lambda p: labels[p],
        horizontal=True,
    )

    custom_start = custom_end = None
    if period == ReportPeriod.CUSTOM:
        col1, col2 = st.columns(2)
        custom_start = col1.date_input("From", value=date.today() - timedelta(days=30))
        custom_end = col2.date_input("To", value=date.today())

    try:
        start, end = report_window(period, date.today(), custom_start, custom_end)
    except ValueError as e:
        st.error(str(e))
        return

    report = build_report(
        fetch_transactions(service),
        start,
        end,
        top_limit=get_settings().app.top_expenses_limit,
    )

    col1, col2 = st.columns(2)
    col1.metric("Total spent", prefs.format_amount(report.total))
    col2.metric("Transactions", report.transaction_count)

    if not report.transaction_count:
        st.info("No transactions in this period.")
        return

    st.subheader("By category")
    st.bar_chart(
        {
            "Category": [item.label for item in report.category_breakdown],
            "Amount": [item.total for item in report.category_breakdown],
        },
        x="Category",
        y="Amount",
    )

    st.subheader("Spending trend")
    st.area_chart(
        {
            "Period": [point.label for point in report.trend],
            "Amount": [point.total for point in report.trend],
        },
        x="Period",
        y="Amount",
    )

    st.subheader("Top expenses")
    for rank, txn in enumerate(report.top_expenses, start=1):
        st.markdown(
            f"{rank}. **{txn.name}** · {txn.category.label} · "
            f"{txn.day:%b} {txn.day.day} · {prefs.format_amount(txn.amount)}"
        )


def render_profile_page(prefs: AppPreferences):
    """Render account details and display preferences."""
    st.title("👤 Profile")

    st.markdown(f"**Name:** {st.user.get('name') or '-'}")
    st.markdown(f"**Email:** {st.user.get('email')}")

    st.markdown("### Preferences")
    currencies = prefs.available_currencies()
    codes = [c.code for c in currencies]
    chosen = st.selectbox(
        "Currency",
        options=codes,
        index=codes.index(prefs.currency.code),
        format_func=lambda code: next(f"{c.symbol} {c.name} ({c.code})" for c in currencies if c.code == code),
    )
    if chosen != prefs.currency.code:
        prefs.set_currency(chosen)
        st.rerun()

    themes = list(Theme)
    theme = st.radio(
        "Theme",
        options=themes,
        index=themes.index(prefs.theme),
        format_func=lambda t: t.value.title(),
        horizontal=True,
    )
    if theme != prefs.theme:
        prefs.set_theme(theme)
        st.rerun()
    st.caption(f"Active theme: {prefs.resolved_theme.value}")

    st.markdown("### Connection Status")
    status = validate_all_settings()
    for label, key in [("Database", "database"), ("Gemini (AI)", "gemini")]:
        if status.get(key, False):
            st.success(f"✅ {label} - Configured")
        else:
            st.error(f"❌ {label} - {status.get(f'{key}_error', 'Not configured')}")

    st.markdown("---")
    if st.button("Sign out"):
        st.logout()


if __name__ == "__main__":
    main()

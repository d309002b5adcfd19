"""
Streamlit Frontend for Wealth

The pages a signed-in user works with: dashboard, account detail,
add/edit transaction with the receipt scanner, monthly insights and
settings.

DESIGN PRINCIPLES:
1. Every page goes through the action layer, never storage directly
2. Scanned receipts only pre-fill the form; nothing saves without "Save"
3. Cached page data is dropped when an action revalidates its path
4. Errors are shown in plain language
"""

import asyncio
from datetime import date, datetime, time
from decimal import Decimal
from typing import Optional
from uuid import UUID

import streamlit as st

from wealth.actions import UnauthorizedError
from wealth.agents import AIConfigurationError
from wealth.cache import register_path_cache
from wealth.categories import (
    DEFAULT_CATEGORIES,
    ReceiptNotReadableError,
    apply_parsed_receipt,
    categories_for_type,
    get_category,
)
from wealth.config import get_settings, validate_all_settings
from wealth.models.finance import (
    MONTH_NAMES,
    AccountType,
    RecurringInterval,
    TransactionType,
)
from wealth.orchestrator import create_app_components
from wealth.services.auth import ClerkIdentity
from wealth.services.storage import NotFoundError


st.set_page_config(
    page_title="Wealth",
    page_icon="💰",
    layout="wide",
    initial_sidebar_state="expanded",
)

st.markdown("""
<style>
    .stButton>button {
        width: 100%;
        margin-top: 10px;
    }
    .big-number {
        font-size: 2.2em;
        font-weight: bold;
        color: #2c3e50;
    }
</style>
""", unsafe_allow_html=True)

CURRENCY = get_settings().app.currency_symbol


def run_async(coro):
    """Helper to run async functions in Streamlit."""
    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()


@st.cache_resource
def get_components():
    """Get or create application components (cached)."""
    return create_app_components()


def money(value) -> str:
    return f"{CURRENCY}{Decimal(str(value)):,.2f}"


# --- cached loaders ---------------------------------------------------------

@st.cache_data(show_spinner=False)
def load_accounts(clerk_user_id: str):
    result = run_async(get_components().accounts.get_accounts(clerk_user_id))
    return result.data if result.success else []


@st.cache_data(show_spinner=False)
def load_transactions(clerk_user_id: str):
    return run_async(get_components().dashboard.get_dashboard_data(clerk_user_id))


@st.cache_data(show_spinner=False)
def load_account(clerk_user_id: str, account_id: str):
    return run_async(
        get_components().accounts.get_account_with_transactions(clerk_user_id, UUID(account_id))
    )


@st.cache_data(show_spinner=False)
def load_budget(clerk_user_id: str, account_id: str):
    return run_async(get_components().dashboard.get_current_budget(clerk_user_id, UUID(account_id)))


@st.cache_resource
def register_cache_invalidation() -> None:
    """Hook the loaders to revalidate_path once per server process."""
    register_path_cache("/dashboard", load_accounts.clear)
    register_path_cache("/dashboard", load_transactions.clear)
    register_path_cache("/dashboard", load_budget.clear)
    register_path_cache("/account/[id]", load_account.clear)


register_cache_invalidation()


# --- auth -------------------------------------------------------------------

def current_clerk_user_id() -> Optional[str]:
    """Sign in through Clerk (OIDC) and make sure the local user exists."""
    if not st.user.is_logged_in:
        st.title("💰 Wealth")
        st.markdown("Track accounts, spending and budgets in one place.")
        if st.button("Sign in", type="primary"):
            st.login()
        return None

    identity = ClerkIdentity(
        clerk_user_id=st.user.get("sub"),
        email=st.user.get("email"),
        name=st.user.get("name"),
        image_url=st.user.get("picture"),
    )
    if "local_user" not in st.session_state:
        try:
            st.session_state.local_user = run_async(get_components().users.ensure_user(identity))
        except UnauthorizedError as e:
            st.error(str(e))
            return None
    return identity.clerk_user_id


def main():
    """Main application entry point."""
    clerk_user_id = current_clerk_user_id()
    if not clerk_user_id:
        return

    st.sidebar.title("💰 Wealth")
    st.sidebar.caption(st.session_state.local_user.email)
    st.sidebar.markdown("---")

    # Widget state can only be set before the widget is drawn
    if "nav_target" in st.session_state:
        st.session_state.page = st.session_state.pop("nav_target")

    page = st.sidebar.radio(
        "Navigate to:",
        ["📊 Dashboard", "🏦 Account", "➕ Transaction", "💡 Insights", "⚙️ Settings"],
        key="page",
    )

    st.sidebar.markdown("---")
    if st.sidebar.button("Sign out"):
        st.session_state.clear()
        st.logout()

    if page == "📊 Dashboard":
        render_dashboard_page(clerk_user_id)
    elif page == "🏦 Account":
        render_account_page(clerk_user_id)
    elif page == "➕ Transaction":
        render_transaction_page(clerk_user_id)
    elif page == "💡 Insights":
        render_insights_page()
    elif page == "⚙️ Settings":
        render_settings_page()


# --- dashboard --------------------------------------------------------------

def render_dashboard_page(clerk_user_id: str):
    st.title("📊 Dashboard")
    components = get_components()
    accounts = load_accounts(clerk_user_id)

    default_account = next((a for a in accounts if a.is_default), None)
    if default_account:
        render_budget(clerk_user_id, str(default_account.id))

    with st.expander("➕ Create account", expanded=not accounts):
        with st.form("create_account"):
            name = st.text_input("Account name")
            account_type = st.selectbox(
                "Type",
                options=list(AccountType),
                format_func=lambda x: x.value.title(),
            )
            balance = st.number_input("Initial balance", value=0.0, step=0.01, format="%.2f")
            is_default = st.checkbox("Set as default", value=not accounts)
            if st.form_submit_button("Create account", type="primary"):
                result = run_async(components.accounts.create_account(clerk_user_id, {
                    "name": name,
                    "type": account_type,
                    "balance": str(balance),
                    "is_default": is_default,
                }))
                if result.success:
                    st.success(result.message)
                    st.rerun()
                else:
                    st.error(result.error)

    st.markdown("### Accounts")
    columns = st.columns(3)
    for index, account in enumerate(accounts):
        with columns[index % 3]:
            st.markdown(f"**{account.name}** {'⭐' if account.is_default else ''}")
            st.markdown(f"<div class='big-number'>{money(account.balance)}</div>", unsafe_allow_html=True)
            st.caption(account.type.value.title())
            if not account.is_default and st.button("Make default", key=f"default_{account.id}"):
                result = run_async(components.accounts.update_default_account(clerk_user_id, account.id))
                if not result.success:
                    st.error(result.error)
                st.rerun()
            if st.button("Open", key=f"open_{account.id}"):
                st.session_state.selected_account = str(account.id)
                st.session_state.nav_target = "🏦 Account"
                st.rerun()

    st.markdown("### Recent transactions")
    transactions = load_transactions(clerk_user_id)[:10]
    if not transactions:
        st.info("No transactions yet. Add one from the Transaction page.")
    for transaction in transactions:
        sign = "+" if transaction.type == TransactionType.INCOME else "-"
        category = get_category(transaction.category)
        st.markdown(
            f"{transaction.date:%d %b %Y} · {transaction.description or '-'} · "
            f"{category.name if category else transaction.category} · "
            f"**{sign}{money(transaction.amount)}**"
        )


def render_budget(clerk_user_id: str, account_id: str):
    current = load_budget(clerk_user_id, account_id)
    st.markdown("### Monthly budget")

    if current.budget:
        percent = current.percent_used or 0.0
        st.progress(min(percent / 100, 1.0))
        st.markdown(
            f"{money(current.current_expenses)} of {money(current.budget.amount)} spent "
            f"({percent:.1f}%)"
        )
        if percent >= 90:
            st.warning("You're close to your budget for this month.")
    else:
        st.info("No budget set.")

    with st.form("budget"):
        amount = st.number_input(
            "Budget amount",
            min_value=0.0,
            value=float(current.budget.amount) if current.budget else 0.0,
            step=1.0,
        )
        if st.form_submit_button("Save budget"):
            if amount <= 0:
                st.error("Please enter a valid amount")
            else:
                result = run_async(get_components().dashboard.update_budget(clerk_user_id, str(amount)))
                if result.success:
                    st.rerun()
                else:
                    st.error(result.error)


# --- account ----------------------------------------------------------------

def render_account_page(clerk_user_id: str):
    st.title("🏦 Account")
    components = get_components()
    accounts = load_accounts(clerk_user_id)
    if not accounts:
        st.info("Create an account on the dashboard first.")
        return

    ids = [str(a.id) for a in accounts]
    selected = st.session_state.get("selected_account")
    account_id = st.selectbox(
        "Account",
        options=ids,
        index=ids.index(selected) if selected in ids else 0,
        format_func=lambda i: next(a.name for a in accounts if str(a.id) == i),
    )
    st.session_state.selected_account = account_id

    account = load_account(clerk_user_id, account_id)
    if account is None:
        st.error("Account not found")
        return

    col1, col2 = st.columns(2)
    col1.metric("Balance", money(account.balance))
    col2.metric("Transactions", account.transaction_count)

    with st.expander("✏️ Edit account"):
        with st.form("edit_account"):
            name = st.text_input("Name", value=account.name)
            if st.form_submit_button("Save"):
                result = run_async(components.accounts.update_account(
                    clerk_user_id, account.id, {"name": name}
                ))
                (st.success if result.success else st.error)(result.message or result.error)

        if st.button("🗑️ Delete account"):
            result = run_async(components.accounts.delete_account(clerk_user_id, account.id))
            if result.success:
                st.session_state.pop("selected_account", None)
                st.rerun()
            st.error(result.error)

    st.markdown("### Transactions")
    selected_ids = []
    for transaction in account.transactions:
        sign = "+" if transaction.type == TransactionType.INCOME else "-"
        col1, col2, col3 = st.columns([1, 6, 1])
        with col1:
            if st.checkbox("", key=f"select_{transaction.id}", label_visibility="collapsed"):
                selected_ids.append(transaction.id)
        with col2:
            recurring = " 🔁" if transaction.is_recurring else ""
            st.markdown(
                f"{transaction.date:%d %b %Y} · {transaction.description or '-'} · "
                f"{transaction.category} · **{sign}{money(transaction.amount)}**{recurring}"
            )
        with col3:
            if st.button("Edit", key=f"edit_{transaction.id}"):
                st.session_state.edit_transaction = str(transaction.id)
                st.session_state.nav_target = "➕ Transaction"
                st.rerun()

    if selected_ids and st.button(f"Delete {len(selected_ids)} selected", type="primary"):
        result = run_async(components.transactions.bulk_delete_transactions(clerk_user_id, selected_ids))
        if result.success:
            st.success(f"Deleted {result.data['deleted']} transactions")
            st.rerun()
        else:
            st.error(result.error)


# --- add / edit transaction -------------------------------------------------

def _empty_form() -> dict:
    return {"type": TransactionType.EXPENSE.value, "amount": "", "description": "", "date": None, "category": ""}


def render_transaction_page(clerk_user_id: str):
    components = get_components()
    accounts = load_accounts(clerk_user_id)
    if not accounts:
        st.info("Create an account on the dashboard first.")
        return

    editing = None
    if st.session_state.get("edit_transaction"):
        try:
            editing = run_async(components.transactions.get_transaction(
                clerk_user_id, UUID(st.session_state.edit_transaction)
            ))
        except NotFoundError as e:
            st.session_state.pop("edit_transaction", None)
            st.session_state.pop("transaction_form", None)
            st.error(str(e))
            return

    st.title("✏️ Edit Transaction" if editing else "➕ Add Transaction")

    if "transaction_form" not in st.session_state:
        st.session_state.transaction_form = (
            {
                "type": editing.type.value,
                "amount": str(editing.amount),
                "description": editing.description or "",
                "date": editing.date,
                "category": editing.category,
            }
            if editing
            else _empty_form()
        )
    form = st.session_state.transaction_form

    if not editing:
        render_receipt_scanner(form)

    transaction_type = st.radio(
        "Type",
        options=[t.value for t in TransactionType],
        index=[t.value for t in TransactionType].index(form["type"]),
        format_func=str.title,
        horizontal=True,
    )
    form["type"] = transaction_type
    categories = categories_for_type(TransactionType(transaction_type), DEFAULT_CATEGORIES)
    category_ids = [c.id for c in categories]

    with st.form("transaction"):
        col1, col2 = st.columns(2)
        with col1:
            amount = st.text_input("Amount *", value=form["amount"])
            account_ids = [str(a.id) for a in accounts]
            default_account = next((str(a.id) for a in accounts if a.is_default), account_ids[0])
            account_id = st.selectbox(
                "Account *",
                options=account_ids,
                index=account_ids.index(str(editing.account_id) if editing else default_account),
                format_func=lambda i: next(a.name for a in accounts if str(a.id) == i),
            )
            category = st.selectbox(
                "Category *",
                options=category_ids,
                index=category_ids.index(form["category"]) if form["category"] in category_ids else 0,
                format_func=lambda i: get_category(i).name,
            )
        with col2:
            when = st.date_input("Date *", value=(form["date"] or datetime.utcnow()).date())
            description = st.text_input("Description", value=form["description"])
            is_recurring = st.checkbox(
                "Recurring transaction", value=editing.is_recurring if editing else False
            )
            intervals = list(RecurringInterval)
            interval = st.selectbox(
                "Recurring interval",
                options=intervals,
                index=intervals.index(editing.recurring_interval) if editing and editing.recurring_interval else 0,
                format_func=lambda x: x.value.title(),
                disabled=not is_recurring,
            )

        submitted = st.form_submit_button(
            "Update Transaction" if editing else "Create Transaction", type="primary"
        )

    if submitted:
        payload = {
            "type": transaction_type,
            "amount": amount,
            "description": description or None,
            "date": datetime.combine(when, time()) if isinstance(when, date) else when,
            "account_id": account_id,
            "category": category,
            "is_recurring": is_recurring,
            "recurring_interval": interval if is_recurring else None,
        }
        try:
            if editing:
                result = run_async(components.transactions.update_transaction(
                    clerk_user_id, editing.id, payload
                ))
            else:
                result = run_async(components.transactions.create_transaction(clerk_user_id, payload))
        except Exception as e:
            st.error(f"Failed to save: {e}")
            return

        if result.success:
            st.success(result.message)
            st.session_state.pop("transaction_form", None)
            st.session_state.pop("edit_transaction", None)
            st.session_state.selected_account = account_id
        else:
            st.error(result.error)

    if editing and st.button("Cancel edit"):
        st.session_state.pop("transaction_form", None)
        st.session_state.pop("edit_transaction", None)
        st.rerun()


def render_receipt_scanner(form: dict):
    """Scan a receipt and pre-fill empty form fields."""
    with st.expander("🧾 Scan receipt with AI"):
        settings = get_settings().app
        uploaded = st.file_uploader(
            "Receipt photo",
            type=settings.supported_formats_list,
            help="Take a clear, well-lit photo of the receipt",
        )
        if uploaded and st.button("🔍 Scan receipt"):
            if uploaded.size > settings.max_upload_size_bytes:
                st.error(f"File size should be less than {settings.max_upload_size_mb}MB")
                return
            with st.spinner("Reading your receipt..."):
                try:
                    parsed = run_async(get_components().transactions.scan_receipt(
                        uploaded.read(), uploaded.type
                    ))
                    st.session_state.transaction_form = apply_parsed_receipt(parsed, form)
                except AIConfigurationError:
                    st.error("Receipt scanning isn't configured. Add GEMINI_API_KEY to your .env file.")
                    return
                except ReceiptNotReadableError as e:
                    st.warning(str(e))
                    return
                except Exception as e:
                    st.error(f"Failed to parse receipt: {e}")
                    return
            st.success("Receipt scanned. Review the details below before saving.")
            st.rerun()


# --- insights ---------------------------------------------------------------

def render_insights_page():
    st.title("💡 Insights")
    components = get_components()
    user = st.session_state.local_user
    today = datetime.utcnow()

    col1, col2 = st.columns(2)
    with col1:
        month = st.selectbox("Month", options=MONTH_NAMES, index=today.month - 1)
    with col2:
        year = st.number_input("Year", min_value=2000, max_value=today.year, value=today.year, step=1)

    when = datetime(int(year), MONTH_NAMES.index(month) + 1, 1)
    stats = run_async(components.insights.get_monthly_stats(user.id, when))

    col1, col2, col3 = st.columns(3)
    col1.metric("Income", money(stats.total_income))
    col2.metric("Expenses", money(stats.total_expenses))
    col3.metric("Net", money(stats.net_income))

    if stats.by_category:
        st.bar_chart(stats.by_category)

    saved = run_async(components.insights.get_saved_insights(user.id, month, int(year)))

    if st.button("✨ Generate insights", type="primary"):
        with st.spinner("Analyzing your month..."):
            try:
                result = run_async(components.insights.generate_financial_insights(user.id, {
                    "month": month,
                    "year": int(year),
                    "total_income": float(stats.total_income),
                    "total_expenses": float(stats.total_expenses),
                    "categories": stats.by_category,
                }))
                saved = result.data
            except AIConfigurationError:
                st.error("AI insights aren't configured. Add GEMINI_API_KEY to your .env file.")

    if saved:
        for insight in saved.insights:
            st.markdown(f"- {insight}")
        st.caption(f"Savings rate: {saved.savings_rate:.1f}%")
    else:
        st.info("No insights for this month yet.")

    history = run_async(components.insights.get_all_user_insights(user.id))
    if history:
        with st.expander("📚 Previous months"):
            for insight in history:
                st.markdown(f"**{insight.month} {insight.year}**")
                for line in insight.insights:
                    st.markdown(f"- {line}")


# --- settings ---------------------------------------------------------------

def render_settings_page():
    st.title("⚙️ Settings")
    st.markdown("### Connection Status")

    status = validate_all_settings()

    services = [
        ("Database", "database"),
        ("Gemini (AI)", "gemini"),
        ("Clerk (Sign-in)", "clerk"),
        ("Inngest (Background jobs)", "inngest"),
        ("Email notifications", "notifications"),
    ]

    for name, key in services:
        if status.get(key, False):
            st.success(f"✅ {name} - Connected")
        else:
            error = status.get(f"{key}_error", "Not configured")
            st.error(f"❌ {name} - {error}")

    st.markdown("---")
    st.markdown("### Configuration")
    st.markdown(
        "To configure the application, create a `.env` file with your API keys. "
        "Variables are listed in DESIGN.md under Configuration."
    )


if __name__ == "__main__":
    main()

"""
Streamlit Frontend for LifeSync

The web chat widget: the same command core the Telegram bot drives, in a
browser tab.

DESIGN PRINCIPLES:
1. One chat box for every command
2. Destructive actions always show Yes / No buttons
3. Clear error messages in simple language
4. The sidebar reads local state, so it reflects an optimistic change
   immediately and reverts with it
"""

import asyncio
from decimal import Decimal
from uuid import uuid4

import streamlit as st

from lifesync.config import get_settings, validate_all_settings
from lifesync.core import CommandCore, Reply, create_app_components
from lifesync.dialogue import Flow
from lifesync.errors import PersistenceError
from lifesync.ledger import format_money
from lifesync.models.intent import OutcomeStatus
from lifesync.models.records import Tables


# Page configuration
st.set_page_config(
    page_title="LifeSync",
    page_icon="🧭",
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


@st.cache_resource
def get_core() -> CommandCore:
    """Get or create the command core (cached across reruns)."""
    try:
        core, _ = create_app_components(use_storage=True)
    except Exception as e:
        st.error(f"Failed to initialize: {e}")
        core, _ = create_app_components(use_storage=False, use_decoder=False)
    try:
        run_async(core.load())
    except PersistenceError as e:
        st.warning(f"Couldn't load your data: {e.message}")
    return core


def session_id() -> str:
    """One command-core session per browser tab."""
    if "session_id" not in st.session_state:
        st.session_state.session_id = f"web-{uuid4()}"
    return st.session_state.session_id


def remember(role: str, text: str, reply: Reply = None) -> None:
    st.session_state.transcript.append({"role": role, "text": text})
    if reply is not None:
        st.session_state.last_reply = reply


def main():
    """Main application entry point."""
    core = get_core()
    if "transcript" not in st.session_state:
        st.session_state.transcript = []
        st.session_state.last_reply = None

    st.sidebar.title("🧭 LifeSync")
    st.sidebar.markdown("---")
    page = st.sidebar.radio(
        "Navigate to:",
        ["💬 Assistant", "🏦 Accounts", "⚙️ Settings"],
        index=0,
    )
    render_accounts_sidebar(core)

    if page == "💬 Assistant":
        render_chat_page(core)
    elif page == "🏦 Accounts":
        render_accounts_page(core)
    else:
        render_settings_page()


def render_accounts_sidebar(core: CommandCore):
    symbol = get_settings().app.currency_symbol
    accounts = core.state.all(Tables.ACCOUNTS)
    st.sidebar.markdown("### Accounts")
    if not accounts:
        st.sidebar.caption("No accounts yet.")
        return
    for account in accounts:
        st.sidebar.markdown(f"**{account.name}**: {format_money(account.balance, symbol)}")
    total = sum((a.balance for a in accounts), Decimal("0"))
    st.sidebar.markdown(f"**Total:** {format_money(total, symbol)}")


def render_chat_page(core: CommandCore):
    """Render the chat widget."""
    st.title("💬 Assistant")
    st.markdown("Tell me what to do: *spent 500 on lunch*, *remind me to pay rent tomorrow*, *delete the rent reminder*.")

    sid = session_id()

    # Quick flows
    cols = st.columns(4)
    for col, (label, flow) in zip(cols, [
        ("💸 Expense", Flow.EXPENSE),
        ("💰 Income", Flow.INCOME),
        ("🔁 Transfer", Flow.TRANSFER),
        ("⏰ Reminder", Flow.REMINDER),
    ]):
        with col:
            if st.button(label):
                reply = run_async(core.start_flow(sid, flow))
                remember("assistant", reply.message, reply)
                st.rerun()

    for entry in st.session_state.transcript:
        with st.chat_message(entry["role"]):
            st.markdown(entry["text"])

    reply = st.session_state.last_reply
    if reply is not None and reply.awaiting_confirmation:
        col1, col2 = st.columns(2)
        with col1:
            if st.button("✅ Yes", type="primary"):
                result = run_async(core.confirm(sid, True))
                remember("user", "Yes")
                remember("assistant", result.message, result)
                st.rerun()
        with col2:
            if st.button("❌ No"):
                result = run_async(core.confirm(sid, False))
                remember("user", "No")
                remember("assistant", result.message, result)
                st.rerun()
    elif reply is not None and reply.options:
        for option in reply.options:
            if st.button(option, key=f"opt-{option}"):
                result = run_async(core.choose(sid, option))
                remember("user", option)
                remember("assistant", result.message, result)
                st.rerun()

    text = st.chat_input("Type a message")
    if text:
        remember("user", text)
        with st.spinner("Working on it..."):
            result = run_async(core.handle_text(sid, text))
        remember("assistant", result.message, result)
        if result.status == OutcomeStatus.FAILED:
            st.error(result.message)
        st.rerun()

    if st.session_state.transcript and st.button("🧹 Clear conversation"):
        core.end_session(sid)
        st.session_state.transcript = []
        st.session_state.last_reply = None
        st.rerun()


def render_accounts_page(core: CommandCore):
    """Render accounts and recent transactions from local state."""
    st.title("🏦 Accounts")
    symbol = get_settings().app.currency_symbol

    accounts = core.state.all(Tables.ACCOUNTS)
    if not accounts:
        st.info("No accounts yet. Ask the assistant to *add a cash account with 1000*.")
        return

    cols = st.columns(min(len(accounts), 4))
    for i, account in enumerate(accounts):
        with cols[i % len(cols)]:
            st.metric(account.name, format_money(account.balance, symbol), account.type.value)

    st.markdown("---")
    st.markdown("### Recent transactions")
    names = {a.id: a.name for a in accounts}
    txs = sorted(
        core.state.all(Tables.TRANSACTIONS),
        key=lambda t: (t.date, t.created_at),
        reverse=True,
    )[:get_settings().app.recent_lookup_limit]
    if not txs:
        st.caption("Nothing recorded yet.")
    for tx in txs:
        st.markdown(
            f"{tx.date.isoformat()} · **{tx.kind.value}** {format_money(tx.amount, symbol)} "
            f"· {tx.purpose} · {names.get(tx.account_id, '-')}"
        )


def render_settings_page():
    """Render the settings page."""
    st.title("⚙️ Settings")

    st.markdown("### Connection Status")
    status = validate_all_settings()

    services = [
        ("Google Sheets (Storage)", "google_sheets"),
        ("Gemini (Assistant)", "gemini"),
        ("Telegram (Bot)", "telegram"),
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
        "See `.env.example` for the required variables."
    )


if __name__ == "__main__":
    main()

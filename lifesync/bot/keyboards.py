"""
Inline keyboards of the Telegram front-end.

Callback data is "<prefix>:<value>" and stays under Telegram's 64 bytes:
menus use "menu:", flows "flow:", read-only intents "list:", and record
buttons carry the record id ("rem:", "wl:", "pwd:").
"""

from aiogram.types import InlineKeyboardButton, InlineKeyboardMarkup
from aiogram.utils.keyboard import InlineKeyboardBuilder

from lifesync.models.records import MediaItem, PasswordEntry, Reminder


BACK_TO_MAIN = InlineKeyboardButton(text="🔙 Back to Main Menu", callback_data="menu:main")
BACK_TO_FINANCE = InlineKeyboardButton(text="🔙 Back to Finance Menu", callback_data="menu:finance")


# ================== Menus ==================
def kb_main_menu() -> InlineKeyboardMarkup:
    kb = InlineKeyboardBuilder()
    kb.row(InlineKeyboardButton(text="🏠 Dashboard", callback_data="list:GET_FINANCE_OVERVIEW"))
    kb.row(
        InlineKeyboardButton(text="✅ Reminders", callback_data="menu:reminders"),
        InlineKeyboardButton(text="💧 Habit Tracker", callback_data="menu:habits"),
    )
    kb.row(
        InlineKeyboardButton(text="📺 Watch Later", callback_data="menu:watchlater"),
        InlineKeyboardButton(text="🔐 Passwords", callback_data="menu:passwords"),
    )
    kb.row(InlineKeyboardButton(text="💰 Finance Manager", callback_data="menu:finance"))
    return kb.as_markup()


def kb_finance_menu() -> InlineKeyboardMarkup:
    kb = InlineKeyboardBuilder()
    kb.row(
        InlineKeyboardButton(text="💸 Add Expense", callback_data="flow:expense"),
        InlineKeyboardButton(text="💰 Add Income", callback_data="flow:income"),
    )
    kb.row(InlineKeyboardButton(text="🔁 Transfer", callback_data="flow:transfer"))
    kb.row(
        InlineKeyboardButton(text="🏦 Accounts", callback_data="list:LIST_ACCOUNTS"),
        InlineKeyboardButton(text="📒 History", callback_data="list:LIST_TRANSACTIONS"),
    )
    kb.row(
        InlineKeyboardButton(text="🔁 Subscriptions", callback_data="list:LIST_SUBS"),
        InlineKeyboardButton(text="🤝 Splits", callback_data="list:VIEW_SPLITS"),
    )
    kb.row(BACK_TO_MAIN)
    return kb.as_markup()


def kb_habits_menu() -> InlineKeyboardMarkup:
    kb = InlineKeyboardBuilder()
    kb.row(InlineKeyboardButton(text="💧 +1 Glass of Water", callback_data="list:ADD_WATER"))
    kb.row(BACK_TO_MAIN)
    return kb.as_markup()


def kb_reminders(reminders: list[Reminder]) -> InlineKeyboardMarkup:
    """One Done/Snooze row per pending reminder, then Add and Back."""
    kb = InlineKeyboardBuilder()
    for r in reminders:
        title = r.title if len(r.title) <= 24 else r.title[:23] + "…"
        kb.row(
            InlineKeyboardButton(text=f"✅ {title}", callback_data=f"rem:done:{r.id}"),
            InlineKeyboardButton(text="💤 Snooze", callback_data=f"rem:snooze:{r.id}"),
        )
    kb.row(InlineKeyboardButton(text="➕ Add Reminder", callback_data="flow:reminder"))
    kb.row(BACK_TO_MAIN)
    return kb.as_markup()


def kb_watch_later(items: list[MediaItem]) -> InlineKeyboardMarkup:
    """One "Mark #n Watched" row per item, numbered like the list."""
    kb = InlineKeyboardBuilder()
    for index, item in enumerate(items, start=1):
        kb.row(InlineKeyboardButton(text=f"✔️ Mark #{index} Watched", callback_data=f"wl:done:{item.id}"))
    kb.row(InlineKeyboardButton(text="➕ Add Watch Later", callback_data="flow:watch_later"))
    kb.row(BACK_TO_MAIN)
    return kb.as_markup()


def kb_passwords(entries: list[PasswordEntry]) -> InlineKeyboardMarkup:
    """Service buttons in two columns."""
    kb = InlineKeyboardBuilder()
    for i in range(0, len(entries), 2):
        kb.row(*[
            InlineKeyboardButton(text=f"🔑 {entry.service}", callback_data=f"pwd:{entry.id}")
            for entry in entries[i:i + 2]
        ])
    kb.row(InlineKeyboardButton(text="➕ Add Password", callback_data="flow:password"))
    kb.row(BACK_TO_MAIN)
    return kb.as_markup()


# ================== Replies ==================
def kb_options(options: list[str], per_row: int = 2) -> InlineKeyboardMarkup:
    """
    Choice buttons for a dialogue step or a clarification.

    Telegram limits callback data to 64 bytes, so buttons carry the index
    of the option; the router keeps the option list of the last reply.
    """
    kb = InlineKeyboardBuilder()
    row_buf = []
    for i, option in enumerate(options):
        row_buf.append(InlineKeyboardButton(text=option, callback_data=f"opt:{i}"))
        if len(row_buf) == per_row:
            kb.row(*row_buf)
            row_buf = []
    if row_buf:
        kb.row(*row_buf)
    kb.row(InlineKeyboardButton(text="❌ Cancel", callback_data="cancel"))
    return kb.as_markup()


def kb_confirm() -> InlineKeyboardMarkup:
    kb = InlineKeyboardBuilder()
    kb.row(
        InlineKeyboardButton(text="✅ Yes", callback_data="confirm:yes"),
        InlineKeyboardButton(text="❌ No", callback_data="confirm:no"),
    )
    return kb.as_markup()


def kb_cancel() -> InlineKeyboardMarkup:
    kb = InlineKeyboardBuilder()
    kb.row(InlineKeyboardButton(text="❌ Cancel", callback_data="cancel"))
    return kb.as_markup()

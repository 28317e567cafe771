"""
Telegram router

Thin aiogram handlers over a CommandCore. Menus and record buttons are
turned into flows or structured intents; everything else is free text or a
voice note for the decoder. Only the owner chat is served.
"""

from io import BytesIO
from typing import Optional

import structlog
from aiogram import Bot, F, Router
from aiogram.filters import Command, CommandStart
from aiogram.types import CallbackQuery, Message

from lifesync.bot.keyboards import (
    kb_cancel,
    kb_confirm,
    kb_finance_menu,
    kb_habits_menu,
    kb_main_menu,
    kb_options,
    kb_passwords,
    kb_reminders,
    kb_watch_later,
)
from lifesync.bot.menu import MenuExpiry
from lifesync.core import CommandCore, Reply
from lifesync.dialogue import Flow
from lifesync.dispatch.records import (
    SECRET_MESSAGE_SECONDS,
    pending_reminders,
    saved_passwords,
    unwatched_items,
)
from lifesync.models.intent import Intent, IntentKind, OutcomeStatus


logger = structlog.get_logger("lifesync.bot")

WELCOME = "Welcome to LifeSync Bot! 🚀\n\nPlease select a module below to get started:"


def build_router(core: CommandCore, menus: MenuExpiry, owner_id: Optional[int] = None) -> Router:
    """
    Telegram handlers over a CommandCore.

    Every chat is one session (session id = chat id). Without an owner id
    every chat is allowed and its id is logged so it can be configured.
    """
    r = Router()
    last_options: dict[int, list[str]] = {}

    def is_owner(chat_id: int) -> bool:
        if owner_id is None:
            logger.warning("owner_not_configured", chat_id=chat_id)
            return True
        return chat_id == owner_id

    async def send_reply(message: Message, reply: Reply) -> None:
        chat_id = message.chat.id
        if reply.awaiting_confirmation:
            markup = kb_confirm()
        elif reply.options:
            markup = kb_options(reply.options)
        elif reply.in_dialogue:
            markup = kb_cancel()
        else:
            markup = None
        last_options[chat_id] = reply.options
        await message.answer(reply.message, reply_markup=markup)

    async def show_menu(message: Message, text: str, markup, edit: bool = False) -> None:
        if edit:
            await message.edit_text(text, reply_markup=markup)
            sent = message
        else:
            sent = await message.answer(text, reply_markup=markup)
        menus.touch(message.chat.id, sent.message_id)

    async def show_watch_later(message: Message) -> None:
        reply = await core.handle_intent(str(message.chat.id), Intent(kind=IntentKind.LIST_WATCH_LATER))
        await show_menu(message, reply.message, kb_watch_later(unwatched_items(core.state)), edit=True)

    # ================== Commands ==================
    @r.message(CommandStart())
    @r.message(Command("menu"))
    async def start(m: Message):
        if not is_owner(m.chat.id):
            await m.answer("⛔ Unauthorized. This is a private bot.")
            return
        await show_menu(m, WELCOME, kb_main_menu())

    @r.message(Command("help"))
    async def help_(m: Message):
        await m.answer("Use /menu or /start to open the interactive menu, or just tell me what to do.")

    @r.message(Command("cancel"))
    async def cancel_cmd(m: Message):
        if not is_owner(m.chat.id):
            return
        await send_reply(m, await core.cancel(str(m.chat.id)))

    # ================== Menus ==================
    @r.callback_query(F.data.startswith("menu:"))
    async def on_menu(cb: CallbackQuery):
        if not is_owner(cb.message.chat.id):
            await cb.answer()
            return
        name = cb.data.split(":", 1)[1]
        if name == "finance":
            await show_menu(cb.message, "💰 Finance Manager", kb_finance_menu(), edit=True)
        elif name == "habits":
            await show_menu(cb.message, "💧 Habit Tracker", kb_habits_menu(), edit=True)
        elif name == "reminders":
            reminders = pending_reminders(core.state, limit=10)
            text = "⏰ Pending reminders:" if reminders else "No pending reminders. 🎉"
            await show_menu(cb.message, text, kb_reminders(reminders), edit=True)
        elif name == "watchlater":
            await show_watch_later(cb.message)
        elif name == "passwords":
            entries = saved_passwords(core.state)
            text = "🔐 Select a platform to view details:" if entries else "🔐 You haven't saved any passwords yet."
            await show_menu(cb.message, text, kb_passwords(entries), edit=True)
        else:
            await show_menu(cb.message, WELCOME, kb_main_menu(), edit=True)
        await cb.answer()

    @r.callback_query(F.data.startswith("flow:"))
    async def on_flow(cb: CallbackQuery):
        if not is_owner(cb.message.chat.id):
            await cb.answer()
            return
        flow = Flow(cb.data.split(":", 1)[1])
        await send_reply(cb.message, await core.start_flow(str(cb.message.chat.id), flow))
        await cb.answer()

    @r.callback_query(F.data.startswith("list:"))
    async def on_list(cb: CallbackQuery):
        if not is_owner(cb.message.chat.id):
            await cb.answer()
            return
        kind = IntentKind(cb.data.split(":", 1)[1])
        reply = await core.handle_intent(str(cb.message.chat.id), Intent(kind=kind))
        await send_reply(cb.message, reply)
        await cb.answer()

    # ================== Reminders ==================
    @r.callback_query(F.data.startswith("rem:"))
    async def on_reminder(cb: CallbackQuery):
        if not is_owner(cb.message.chat.id):
            await cb.answer()
            return
        _, action, reminder_id = cb.data.split(":", 2)
        session_id = str(cb.message.chat.id)
        if action == "done":
            reply = await core.handle_intent(
                session_id,
                Intent(kind=IntentKind.MARK_REMINDER_DONE, fields={"reminder_id": reminder_id}),
            )
        else:
            reply = await core.start_flow(session_id, Flow.SNOOZE, reminder_id=reminder_id)
        await send_reply(cb.message, reply)
        await cb.answer()

    # ================== Watch later / passwords ==================
    @r.callback_query(F.data.startswith("wl:done:"))
    async def on_watched(cb: CallbackQuery):
        if not is_owner(cb.message.chat.id):
            await cb.answer()
            return
        item_id = cb.data.split(":", 2)[2]
        reply = await core.handle_intent(
            str(cb.message.chat.id),
            Intent(kind=IntentKind.MARK_WATCHED, fields={"item_id": item_id}),
        )
        await cb.answer(reply.message)
        await show_watch_later(cb.message)

    @r.callback_query(F.data.startswith("pwd:"))
    async def on_password(cb: CallbackQuery):
        chat_id = cb.message.chat.id
        if not is_owner(chat_id):
            await cb.answer()
            return
        password_id = cb.data.split(":", 1)[1]
        reply = await core.handle_intent(
            str(chat_id),
            Intent(kind=IntentKind.VIEW_PASSWORD, fields={"password_id": password_id}),
        )
        sent = await cb.message.answer(reply.message)
        if reply.status == OutcomeStatus.EXECUTED:
            menus.delete_later(chat_id, sent.message_id, SECRET_MESSAGE_SECONDS)
        await cb.answer()

    # ================== Dialogue / confirmation ==================
    @r.callback_query(F.data.startswith("opt:"))
    async def on_option(cb: CallbackQuery):
        chat_id = cb.message.chat.id
        if not is_owner(chat_id):
            await cb.answer()
            return
        index = int(cb.data.split(":", 1)[1])
        options = last_options.get(chat_id, [])
        if index >= len(options):
            await cb.answer("That menu has expired.")
            return
        await send_reply(cb.message, await core.choose(str(chat_id), options[index]))
        await cb.answer()

    @r.callback_query(F.data.startswith("confirm:"))
    async def on_confirm(cb: CallbackQuery):
        if not is_owner(cb.message.chat.id):
            await cb.answer()
            return
        accepted = cb.data == "confirm:yes"
        reply = await core.confirm(str(cb.message.chat.id), accepted)
        await cb.message.edit_reply_markup(reply_markup=None)
        await send_reply(cb.message, reply)
        await cb.answer()

    @r.callback_query(F.data == "cancel")
    async def on_cancel(cb: CallbackQuery):
        if not is_owner(cb.message.chat.id):
            await cb.answer()
            return
        await send_reply(cb.message, await core.cancel(str(cb.message.chat.id)))
        await cb.answer()

    # ================== Free input ==================
    @r.message(F.voice)
    async def on_voice(m: Message, bot: Bot):
        if not is_owner(m.chat.id):
            return
        buffer = BytesIO()
        await bot.download(m.voice, destination=buffer)
        reply = await core.handle_audio(str(m.chat.id), buffer.getvalue(), m.voice.mime_type or "audio/ogg")
        await send_reply(m, reply)

    @r.message(F.text)
    async def on_text(m: Message):
        if not is_owner(m.chat.id):
            await m.answer("⛔ Unauthorized. This is a private bot.")
            return
        await send_reply(m, await core.handle_text(str(m.chat.id), m.text))

    return r

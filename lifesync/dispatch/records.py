"""
Personal Record Handlers

Reminders, watch-later links, passwords and daily habits. None of these
touch the ledger; they still write through the sync engine so a store
failure rolls the local copy back.
"""

from datetime import datetime, time, timedelta
from typing import Optional

from lifesync.dialogue import MAX_SNOOZE_HOURS, parse_clock
from lifesync.dispatch.base import (
    TARGET,
    HandlerContext,
    IntentHandler,
    confirm_prompt,
    text_field,
    to_decimal,
)
from lifesync.errors import CommandValidationError, TargetNotFoundError
from lifesync.models.intent import Intent, IntentKind, MutationKind, PendingAction
from lifesync.models.records import (
    DailyHabit,
    MediaItem,
    PasswordEntry,
    Reminder,
    ReminderCategory,
    Tables,
)
from lifesync.sync import ChangeSet, LocalState


def pending_reminders(state: LocalState, limit: Optional[int] = None) -> list[Reminder]:
    """Open reminders, soonest first."""
    reminders = [r for r in state.all(Tables.REMINDERS) if not r.is_done]
    reminders.sort(key=lambda r: r.due_date)
    return reminders[:limit] if limit else reminders


def parse_due(ctx: HandlerContext, intent: Intent) -> datetime:
    """
    The due date of a reminder from `due_date`, or from `date` plus `time`.

    Naive values are read in the configured timezone; a date without a time
    is due at the end of that day.
    """
    raw = text_field(intent, "due_date")
    if raw is None:
        day = text_field(intent, "date")
        if day is None:
            raise CommandValidationError("When is it due? Please give a date.")
        clock = text_field(intent, "time")
        raw = f"{day}T{clock}" if clock else day
    try:
        due = datetime.fromisoformat(raw)
    except ValueError:
        raise CommandValidationError(f"'{raw}' is not a date I understand. Use YYYY-MM-DD HH:MM.")
    if len(raw) <= 10:
        due = datetime.combine(due.date(), time(23, 59, 59))
    if due.tzinfo is None:
        due = due.replace(tzinfo=ctx.timezone)
    return due


def _category(value: Optional[str]) -> ReminderCategory:
    if value and value.strip().upper() == ReminderCategory.WORK.value:
        return ReminderCategory.WORK
    return ReminderCategory.GENERAL


def _when(ctx: HandlerContext, due: datetime) -> str:
    return due.astimezone(ctx.timezone).strftime("%d %b %Y, %I:%M %p")


def _resolve_reminder(ctx: HandlerContext, hint: Optional[str]) -> Reminder:
    return ctx.resolver.resolve(
        pending_reminders(ctx.state, ctx.recent_limit),
        hint,
        label=lambda r: r.title,
        noun="reminder",
    )


# =============================================================================
# REMINDERS
# =============================================================================

class AddReminderHandler(IntentHandler):
    kind = IntentKind.ADD_REMINDER
    required_fields = ("title",)

    async def handle(self, ctx: HandlerContext, intent: Intent) -> str:
        reminder = Reminder(
            title=text_field(intent, "title"),
            description=text_field(intent, "description", ""),
            due_date=parse_due(ctx, intent),
            category=_category(text_field(intent, "category")),
        )
        await ctx.engine.apply(
            lambda state: ChangeSet(description="add reminder").insert(Tables.REMINDERS, reminder),
            correlation_id=ctx.correlation_id,
        )
        return f"Set reminder: {reminder.title} on {_when(ctx, reminder.due_date)}"


class ListRemindersHandler(IntentHandler):
    kind = IntentKind.LIST_REMINDERS

    async def handle(self, ctx: HandlerContext, intent: Intent) -> str:
        reminders = pending_reminders(ctx.state)
        if not reminders:
            return "No pending reminders. 🎉"
        now = ctx.now()
        lines = ["⏰ Pending reminders:"]
        for r in reminders:
            overdue = " (overdue)" if r.due_date < now else ""
            lines.append(f"• {r.title}: {_when(ctx, r.due_date)}{overdue}")
        return "\n".join(lines)


class MarkReminderDoneHandler(IntentHandler):
    """Non-destructive: a done reminder is kept, only hidden from lists."""
    kind = IntentKind.MARK_REMINDER_DONE

    async def handle(self, ctx: HandlerContext, intent: Intent) -> str:
        reminder_id = text_field(intent, "reminder_id")
        if reminder_id:
            reminder = ctx.state.get(Tables.REMINDERS, reminder_id)
            if reminder is None:
                raise TargetNotFoundError("That reminder no longer exists.")
        else:
            reminder = _resolve_reminder(ctx, intent.target_hint)
        if reminder.is_done:
            return f"{reminder.title} is already done."

        done = reminder.model_copy(update={"is_done": True})
        await ctx.engine.apply(
            lambda state: ChangeSet(description="complete reminder").upsert(Tables.REMINDERS, done),
            correlation_id=ctx.correlation_id,
        )
        return f"✅ Marked {reminder.title} as done."


class SnoozeReminderHandler(IntentHandler):
    kind = IntentKind.SNOOZE_REMINDER
    required_fields = ("hours",)

    async def handle(self, ctx: HandlerContext, intent: Intent) -> str:
        hours = to_decimal(intent.get("hours"), "number of hours")
        if hours <= 0:
            raise CommandValidationError("Snooze for a positive number of hours.")
        if hours > MAX_SNOOZE_HOURS:
            raise CommandValidationError("I can snooze a reminder for at most one year.")
        reminder_id = text_field(intent, "reminder_id")
        if reminder_id:
            reminder = ctx.state.get(Tables.REMINDERS, reminder_id)
            if reminder is None:
                raise TargetNotFoundError("That reminder no longer exists.")
        else:
            reminder = _resolve_reminder(ctx, intent.target_hint)

        snoozed = reminder.model_copy(update={
            "due_date": ctx.now() + timedelta(hours=float(hours)),
            "is_done": False,
        })
        await ctx.engine.apply(
            lambda state: ChangeSet(description="snooze reminder").upsert(Tables.REMINDERS, snoozed),
            correlation_id=ctx.correlation_id,
        )
        return f"💤 Snoozed {reminder.title} for {hours.normalize():f} hour(s)!"


class EditReminderHandler(IntentHandler):
    """
    Change a reminder's title, description, due date or category.

    Gated: the proposal lists the new values.
    """
    kind = IntentKind.EDIT_REMINDER
    required_fields = (TARGET,)
    destructive = True
    mutation_kind = MutationKind.EDIT_REMINDER

    def propose(self, ctx: HandlerContext, intent: Intent) -> PendingAction:
        reminder = _resolve_reminder(ctx, intent.target_hint)
        updates = {}
        title = text_field(intent, "title")
        if title and title != reminder.title:
            updates["title"] = title
        description = text_field(intent, "description")
        if description is not None:
            updates["description"] = description
        if intent.get("due_date") is not None or intent.get("date") is not None:
            updates["due_date"] = parse_due(ctx, intent).isoformat()
        category = text_field(intent, "category")
        if category:
            updates["category"] = _category(category).value
        if not updates:
            raise CommandValidationError(
                f"What should I change about {reminder.title}? Give a new title, date or description."
            )

        changes = []
        for key, value in updates.items():
            if key == "due_date":
                value = _when(ctx, datetime.fromisoformat(value))
            changes.append(f"{key.replace('_', ' ')} → {value}")
        return PendingAction(
            kind=self.mutation_kind,
            target_id=reminder.id,
            payload=updates,
            description=confirm_prompt(f"Update reminder {reminder.title}: " + "; ".join(changes) + "?"),
        )

    async def commit(self, ctx: HandlerContext, action: PendingAction) -> str:
        def reducer(state: LocalState) -> ChangeSet:
            reminder = state.get(Tables.REMINDERS, action.target_id)
            if reminder is None:
                raise TargetNotFoundError("That reminder no longer exists.")
            updated = Reminder.model_validate({**reminder.model_dump(), **action.payload})
            return ChangeSet(description="edit reminder").upsert(Tables.REMINDERS, updated)

        change = await ctx.engine.apply(reducer, correlation_id=ctx.correlation_id)
        _, updated = change.upserts[0]
        return f"Updated reminder: {updated.title} on {_when(ctx, updated.due_date)}"


class DeleteReminderHandler(IntentHandler):
    kind = IntentKind.DELETE_REMINDER
    required_fields = (TARGET,)
    destructive = True
    mutation_kind = MutationKind.DELETE_REMINDER

    def propose(self, ctx: HandlerContext, intent: Intent) -> PendingAction:
        reminder = _resolve_reminder(ctx, intent.target_hint)
        return PendingAction(
            kind=self.mutation_kind,
            target_id=reminder.id,
            description=confirm_prompt(
                f"Delete reminder: {reminder.title} ({_when(ctx, reminder.due_date)})?"
            ),
        )

    async def commit(self, ctx: HandlerContext, action: PendingAction) -> str:
        def reducer(state: LocalState) -> ChangeSet:
            if state.get(Tables.REMINDERS, action.target_id) is None:
                raise TargetNotFoundError("That reminder no longer exists.")
            return ChangeSet(description="delete reminder").delete(Tables.REMINDERS, action.target_id)

        reminder = ctx.state.get(Tables.REMINDERS, action.target_id)
        await ctx.engine.apply(reducer, correlation_id=ctx.correlation_id)
        return f"🗑 Deleted reminder: {reminder.title}"


# =============================================================================
# WATCH LATER AND PASSWORDS
# =============================================================================

# Seconds a message showing a password stays in the chat
SECRET_MESSAGE_SECONDS = 30


def unwatched_items(state: LocalState) -> list[MediaItem]:
    """Watch-later links not yet watched, newest first."""
    items = [m for m in state.all(Tables.MEDIA_ITEMS) if not m.is_watched]
    items.sort(key=lambda m: m.date_added, reverse=True)
    return items


def saved_passwords(state: LocalState) -> list[PasswordEntry]:
    """Saved credentials ordered by service name."""
    return sorted(state.all(Tables.PASSWORDS), key=lambda p: p.service.lower())


class AddWatchLaterHandler(IntentHandler):
    kind = IntentKind.ADD_WATCH_LATER
    required_fields = ("url",)

    async def handle(self, ctx: HandlerContext, intent: Intent) -> str:
        url = text_field(intent, "url")
        if not url.startswith("http"):
            raise CommandValidationError("That doesn't look like a link. It should start with http.")
        item = MediaItem(title=text_field(intent, "title", url), link=url, date_added=ctx.now())
        await ctx.engine.apply(
            lambda state: ChangeSet(description="save link").insert(Tables.MEDIA_ITEMS, item),
            correlation_id=ctx.correlation_id,
        )
        return f"🎬 Saved to Watch Later: {item.title}"


class ListWatchLaterHandler(IntentHandler):
    kind = IntentKind.LIST_WATCH_LATER

    async def handle(self, ctx: HandlerContext, intent: Intent) -> str:
        items = unwatched_items(ctx.state)
        if not items:
            return "📺 Your Watch Later list is empty! 🎉"
        lines = ["📺 Watch Later List:"]
        for index, item in enumerate(items, start=1):
            lines.append(f"{index}. {item.title} ({item.link})")
        return "\n".join(lines)


class MarkWatchedHandler(IntentHandler):
    """
    Mark a watch-later link as watched, by item_id (buttons) or by a title
    hint. The link is kept, only hidden from the list.
    """
    kind = IntentKind.MARK_WATCHED

    async def handle(self, ctx: HandlerContext, intent: Intent) -> str:
        item_id = text_field(intent, "item_id")
        if item_id:
            item = ctx.state.get(Tables.MEDIA_ITEMS, item_id)
            if item is None:
                raise TargetNotFoundError("That link is no longer in your Watch Later list.")
        else:
            item = ctx.resolver.resolve(
                unwatched_items(ctx.state),
                intent.target_hint or text_field(intent, "title"),
                label=lambda m: m.title,
                noun="watch later item",
            )
        if item.is_watched:
            return f"{item.title} is already marked as watched."

        watched = item.model_copy(update={"is_watched": True})
        await ctx.engine.apply(
            lambda state: ChangeSet(description="mark watched").upsert(Tables.MEDIA_ITEMS, watched),
            correlation_id=ctx.correlation_id,
        )
        return "Marked as watched! ✅"


class AddPasswordHandler(IntentHandler):
    kind = IntentKind.ADD_PASSWORD
    required_fields = ("service",)

    async def handle(self, ctx: HandlerContext, intent: Intent) -> str:
        entry = PasswordEntry(
            service=text_field(intent, "service"),
            username=text_field(intent, "username", "Unknown"),
            password=text_field(intent, "password", "Unknown"),
            notes=text_field(intent, "notes", ""),
        )
        await ctx.engine.apply(
            lambda state: ChangeSet(description="save password").insert(Tables.PASSWORDS, entry),
            correlation_id=ctx.correlation_id,
        )
        return f"🔐 Saved credentials for {entry.service}."


class ListPasswordsHandler(IntentHandler):
    """Names the saved services only; secrets are shown one at a time."""
    kind = IntentKind.LIST_PASSWORDS

    async def handle(self, ctx: HandlerContext, intent: Intent) -> str:
        entries = saved_passwords(ctx.state)
        if not entries:
            return "🔐 You haven't saved any passwords yet."
        lines = ["🔐 Select a platform to view details:"]
        lines.extend(f"🔑 {entry.service}" for entry in entries)
        return "\n".join(lines)


class ViewPasswordHandler(IntentHandler):
    kind = IntentKind.VIEW_PASSWORD

    async def handle(self, ctx: HandlerContext, intent: Intent) -> str:
        password_id = text_field(intent, "password_id")
        if password_id:
            entry = ctx.state.get(Tables.PASSWORDS, password_id)
            if entry is None:
                raise TargetNotFoundError("Could not load password details.")
        else:
            hint = intent.target_hint or text_field(intent, "service")
            if not hint:
                raise CommandValidationError("Which service do you want the password for?")
            entry = ctx.resolver.resolve(
                saved_passwords(ctx.state), hint, label=lambda p: p.service, noun="password",
            )
        return (
            f"🔐 {entry.service}\n\n"
            f"Username: {entry.username}\n"
            f"Password: {entry.password}\n\n"
            f"Notes: {entry.notes or 'None'}\n\n"
            f"⚠️ This message will automatically delete in {SECRET_MESSAGE_SECONDS} seconds for security!"
        )


# =============================================================================
# HABITS
# =============================================================================

def _habit_change(ctx: HandlerContext, description: str, **update) -> ChangeSet:
    key = ctx.today().isoformat()
    habit = ctx.state.get(Tables.DAILY_HABITS, key) or DailyHabit(id=key)
    if "add_water" in update:
        update["water_intake"] = habit.water_intake + update.pop("add_water")
    return ChangeSet(description=description).upsert(
        Tables.DAILY_HABITS, habit.model_copy(update=update)
    )


def _clock_field(intent: Intent) -> str:
    raw = text_field(intent, "time")
    if raw is None:
        raise CommandValidationError("What time? For example 7:30 am.")
    parsed = parse_clock(raw)
    if parsed is None:
        raise CommandValidationError(f"'{raw}' is not a time I understand. Try 7:30 am or 22:15.")
    return parsed.strftime("%I:%M %p")


class AddWaterHandler(IntentHandler):
    kind = IntentKind.ADD_WATER

    async def handle(self, ctx: HandlerContext, intent: Intent) -> str:
        raw = intent.get("glasses", 1)
        try:
            glasses = int(raw)
        except (TypeError, ValueError):
            raise CommandValidationError(f"'{raw}' is not a number of glasses.")
        if glasses <= 0:
            raise CommandValidationError("Add at least one glass.")

        change = await ctx.engine.apply(
            lambda state: _habit_change(ctx, "log water", add_water=glasses),
            correlation_id=ctx.correlation_id,
        )
        _, habit = change.upserts[0]
        return f"💧 Added {glasses} glass(es). Total today: {habit.water_intake}/{ctx.water_goal} glasses."


class SetWakeupHandler(IntentHandler):
    kind = IntentKind.SET_WAKEUP
    required_fields = ("time",)

    async def handle(self, ctx: HandlerContext, intent: Intent) -> str:
        clock = _clock_field(intent)
        await ctx.engine.apply(
            lambda state: _habit_change(ctx, "log wake up", wake_up_time=clock),
            correlation_id=ctx.correlation_id,
        )
        return f"🌅 Got it! Wake up time set to {clock}."


class SetSleepHandler(IntentHandler):
    kind = IntentKind.SET_SLEEP
    required_fields = ("time",)

    async def handle(self, ctx: HandlerContext, intent: Intent) -> str:
        clock = _clock_field(intent)
        await ctx.engine.apply(
            lambda state: _habit_change(ctx, "log sleep", sleep_time=clock),
            correlation_id=ctx.correlation_id,
        )
        return f"🌙 Sleep well! Logged sleep time as {clock}."


class UnknownHandler(IntentHandler):
    """Echo the decoder's own reply; otherwise ask the user to rephrase."""
    kind = IntentKind.UNKNOWN

    async def handle(self, ctx: HandlerContext, intent: Intent) -> str:
        if intent.reply_text:
            return intent.reply_text
        raise CommandValidationError(
            "I'm not sure how to handle that. Try asking me to add a transaction, "
            "reminder, or save a link."
        )


RECORD_HANDLERS = [
    AddReminderHandler(),
    ListRemindersHandler(),
    MarkReminderDoneHandler(),
    SnoozeReminderHandler(),
    EditReminderHandler(),
    DeleteReminderHandler(),
    AddWatchLaterHandler(),
    ListWatchLaterHandler(),
    MarkWatchedHandler(),
    AddPasswordHandler(),
    ListPasswordsHandler(),
    ViewPasswordHandler(),
    AddWaterHandler(),
    SetWakeupHandler(),
    SetSleepHandler(),
    UnknownHandler(),
]

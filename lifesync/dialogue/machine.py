"""
Dialogue State Machine

Collects the parameters of a multi-turn flow one message at a time.

    advance(session, text) -> Prompt    (ask for the next thing, or re-ask)
                           -> Completed (an Intent ready for the Dispatcher)

Rules:
- Input is validated against the active step. Invalid input re-prompts
  without advancing.
- The last step produces an Intent and clears the session's dialogue.
- cancel() is accepted at any step.
- Nothing here expires a dialogue. Menu timeouts are a front-end concern.
- The transfer "to" step never offers the account chosen as "from".

DESIGN DECISION: Each (flow, step) pair has its own small method, looked up
in a table. Adding a flow means adding a variant in state.py and its step
methods here; no existing step is touched.
"""

import re
from datetime import date, datetime, time
from decimal import Decimal, InvalidOperation
from typing import Callable, Literal, Optional, Union
from zoneinfo import ZoneInfo

from pydantic import BaseModel, Field

from lifesync.dialogue.state import (
    ExpenseDialogue,
    Flow,
    IncomeDialogue,
    MoneyStep,
    PasswordDialogue,
    PasswordStep,
    ReminderDialogue,
    ReminderStep,
    Session,
    SnoozeDialogue,
    SnoozeStep,
    TransferDialogue,
    TransferStep,
    WatchLaterDialogue,
    WatchLaterStep,
)
from lifesync.errors import CommandValidationError
from lifesync.ledger import format_money
from lifesync.models.intent import Intent, IntentKind
from lifesync.models.records import Account


CANCEL_WORDS = {"cancel", "/cancel", "stop", "abort"}

# Longest snooze accepted, in hours (one year)
MAX_SNOOZE_HOURS = Decimal("8760")

_TIME_RE = re.compile(r"^(\d{1,2}):(\d{2})\s*(am|pm)?$")


class Prompt(BaseModel):
    """The dialogue needs more input."""
    done: Literal[False] = False
    prompt: str
    options: list[str] = Field(default_factory=list)
    retry: bool = Field(
        default=False,
        description="True when the last input was rejected"
    )


class Completed(BaseModel):
    """The dialogue collected everything; hand the intent to the Dispatcher."""
    done: Literal[True] = True
    flow: Flow
    intent: Intent


Step = Union[Prompt, Completed]


def parse_amount(text: str) -> Optional[Decimal]:
    """Parse a positive amount like '500', '1,250.50' or '₹99'."""
    cleaned = re.sub(r"[^\d.\-]", "", text.replace(",", ""))
    if not cleaned:
        return None
    try:
        value = Decimal(cleaned)
    except InvalidOperation:
        return None
    if not value.is_finite() or value <= 0:
        return None
    return value


def parse_clock(text: str) -> Optional[time]:
    """Parse '14:30', '2:30 pm' or '12:05am'."""
    match = _TIME_RE.match(text.strip().lower())
    if not match:
        return None
    hours, minutes, meridiem = int(match.group(1)), int(match.group(2)), match.group(3)
    if meridiem == "pm" and hours < 12:
        hours += 12
    elif meridiem == "am" and hours == 12:
        hours = 0
    if hours > 23 or minutes > 59:
        return None
    return time(hours, minutes)


class DialogueMachine:
    """
    Drives the dialogue stored on a Session.

    Args:
        accounts: Returns the current accounts (local state), used for the
            account-choice steps
        timezone: IANA name used for "today" and reminder times
        clock: Returns the current aware datetime (injectable for tests)
        currency_symbol: Symbol used in prompts
    """

    def __init__(
        self,
        accounts: Callable[[], list[Account]],
        timezone: str = "Asia/Kolkata",
        clock: Optional[Callable[[], datetime]] = None,
        currency_symbol: str = "₹",
    ):
        self._accounts = accounts
        self._tz = ZoneInfo(timezone)
        self._clock = clock or (lambda: datetime.now(self._tz))
        self._symbol = currency_symbol

        self._steps = {
            (Flow.EXPENSE, MoneyStep.AWAITING_AMOUNT): self._money_amount,
            (Flow.EXPENSE, MoneyStep.AWAITING_ACCOUNT): self._money_account,
            (Flow.EXPENSE, MoneyStep.AWAITING_PURPOSE): self._money_purpose,
            (Flow.INCOME, MoneyStep.AWAITING_AMOUNT): self._money_amount,
            (Flow.INCOME, MoneyStep.AWAITING_ACCOUNT): self._money_account,
            (Flow.INCOME, MoneyStep.AWAITING_PURPOSE): self._money_purpose,
            (Flow.TRANSFER, TransferStep.AWAITING_AMOUNT): self._transfer_amount,
            (Flow.TRANSFER, TransferStep.AWAITING_FROM_ACCOUNT): self._transfer_from,
            (Flow.TRANSFER, TransferStep.AWAITING_TO_ACCOUNT): self._transfer_to,
            (Flow.REMINDER, ReminderStep.AWAITING_TITLE): self._reminder_title,
            (Flow.REMINDER, ReminderStep.AWAITING_DATE): self._reminder_date,
            (Flow.REMINDER, ReminderStep.AWAITING_TIME): self._reminder_time,
            (Flow.SNOOZE, SnoozeStep.AWAITING_HOURS): self._snooze_hours,
            (Flow.WATCH_LATER, WatchLaterStep.AWAITING_URL): self._watch_later_url,
            (Flow.PASSWORD, PasswordStep.AWAITING_SERVICE): self._password_service,
            (Flow.PASSWORD, PasswordStep.AWAITING_USERNAME): self._password_username,
            (Flow.PASSWORD, PasswordStep.AWAITING_PASSWORD): self._password_secret,
        }

    # -------------------------------------------------------------------------
    # Public contract
    # -------------------------------------------------------------------------

    def start(self, session: Session, flow: Flow, reminder_id: Optional[str] = None) -> Prompt:
        """
        Begin a flow, replacing any dialogue already in progress.

        Raises:
            CommandValidationError: The flow cannot run (e.g. no accounts)
        """
        accounts = self._accounts()
        if flow in (Flow.EXPENSE, Flow.INCOME) and not accounts:
            raise CommandValidationError("You need to create at least one account first.")
        if flow == Flow.TRANSFER and len(accounts) < 2:
            raise CommandValidationError("You need at least two accounts to make a transfer.")

        if flow == Flow.EXPENSE:
            session.dialogue = ExpenseDialogue()
            return Prompt(prompt="💸 Enter the expense amount:")
        if flow == Flow.INCOME:
            session.dialogue = IncomeDialogue()
            return Prompt(prompt="💰 Enter the income amount:")
        if flow == Flow.TRANSFER:
            session.dialogue = TransferDialogue()
            return Prompt(prompt="🔁 Enter the amount to transfer:")
        if flow == Flow.REMINDER:
            session.dialogue = ReminderDialogue()
            return Prompt(prompt="⏰ What should I remind you about?")
        if flow == Flow.SNOOZE:
            if not reminder_id:
                raise CommandValidationError("Which reminder should I snooze?")
            session.dialogue = SnoozeDialogue(reminder_id=reminder_id)
            return Prompt(
                prompt="💤 How many hours would you like to snooze this reminder for? (e.g., 2, 0.5, 24)"
            )
        if flow == Flow.WATCH_LATER:
            session.dialogue = WatchLaterDialogue()
            return Prompt(prompt="📺 Please paste the URL/Link:")
        if flow == Flow.PASSWORD:
            session.dialogue = PasswordDialogue()
            return Prompt(prompt="🔐 Which service or website is this password for?")
        raise CommandValidationError(f"Unknown flow: {flow}")

    def advance(self, session: Session, text: str) -> Step:
        """
        Feed one user message into the active dialogue.

        Raises:
            CommandValidationError: No dialogue is in progress
        """
        state = session.dialogue
        if state is None:
            raise CommandValidationError("There is nothing in progress to answer.")

        handler = self._steps[(state.flow, state.step)]
        result = handler(session, state, (text or "").strip())
        if isinstance(result, Completed):
            session.dialogue = None
        return result

    def cancel(self, session: Session) -> bool:
        """Drop the dialogue. Returns whether one was in progress."""
        had_dialogue = session.dialogue is not None
        session.dialogue = None
        return had_dialogue

    def is_cancel(self, text: str) -> bool:
        return (text or "").strip().lower() in CANCEL_WORDS

    # -------------------------------------------------------------------------
    # Account choices
    # -------------------------------------------------------------------------

    def account_options(self, exclude_id: Optional[str] = None) -> list[str]:
        """Names of the accounts a user can pick, sorted by name."""
        return sorted(
            (a.name for a in self._accounts() if a.id != exclude_id),
            key=str.lower,
        )

    def _pick_account(self, text: str, exclude_id: Optional[str] = None) -> Optional[Account]:
        wanted = text.lower()
        for account in self._accounts():
            if account.id == exclude_id:
                continue
            if account.name.lower() == wanted or account.id == text:
                return account
        return None

    def _account_prompt(self, message: str, exclude_id: Optional[str] = None, retry: bool = False) -> Prompt:
        return Prompt(
            prompt=message,
            options=self.account_options(exclude_id),
            retry=retry,
        )

    # -------------------------------------------------------------------------
    # Expense / income
    # -------------------------------------------------------------------------

    def _money_amount(self, session, state, text) -> Step:
        amount = parse_amount(text)
        if amount is None:
            return Prompt(
                prompt="Please enter a valid positive number (e.g. 250 or 99.50).",
                retry=True,
            )
        session.dialogue = state.model_copy(
            update={"amount": amount, "step": MoneyStep.AWAITING_ACCOUNT}
        )
        return self._account_prompt(
            f"Amount: {format_money(amount, self._symbol)}\n\nSelect the account:"
        )

    def _money_account(self, session, state, text) -> Step:
        account = self._pick_account(text)
        if account is None:
            return self._account_prompt("Please pick one of the listed accounts.", retry=True)
        session.dialogue = state.model_copy(
            update={"account_id": account.id, "step": MoneyStep.AWAITING_PURPOSE}
        )
        question = "What was it for?" if state.flow == Flow.EXPENSE else "Where did it come from?"
        return Prompt(prompt=f"Account: {account.name}\n\n{question}")

    def _money_purpose(self, session, state, text) -> Step:
        if not text:
            return Prompt(prompt="Please describe it in a few words.", retry=True)
        kind = IntentKind.ADD_EXPENSE if state.flow == Flow.EXPENSE else IntentKind.ADD_INCOME
        return Completed(
            flow=state.flow,
            intent=Intent(
                kind=kind,
                fields={
                    "amount": str(state.amount),
                    "account_id": state.account_id,
                    "purpose": text,
                },
            ),
        )

    # -------------------------------------------------------------------------
    # Transfer
    # -------------------------------------------------------------------------

    def _transfer_amount(self, session, state, text) -> Step:
        amount = parse_amount(text)
        if amount is None:
            return Prompt(
                prompt="Please enter a valid positive number (e.g. 250 or 99.50).",
                retry=True,
            )
        session.dialogue = state.model_copy(
            update={"amount": amount, "step": TransferStep.AWAITING_FROM_ACCOUNT}
        )
        return self._account_prompt(
            f"Transfer {format_money(amount, self._symbol)} from which account?"
        )

    def _transfer_from(self, session, state, text) -> Step:
        account = self._pick_account(text)
        if account is None:
            return self._account_prompt("Please pick one of the listed accounts.", retry=True)
        session.dialogue = state.model_copy(
            update={"from_account_id": account.id, "step": TransferStep.AWAITING_TO_ACCOUNT}
        )
        return self._account_prompt(
            f"From: {account.name}\n\nTransfer to which account?",
            exclude_id=account.id,
        )

    def _transfer_to(self, session, state, text) -> Step:
        account = self._pick_account(text, exclude_id=state.from_account_id)
        if account is None:
            return self._account_prompt(
                "Please pick one of the listed accounts.",
                exclude_id=state.from_account_id,
                retry=True,
            )
        return Completed(
            flow=state.flow,
            intent=Intent(
                kind=IntentKind.ADD_TRANSFER,
                fields={
                    "amount": str(state.amount),
                    "account_id": state.from_account_id,
                    "to_account_id": account.id,
                    "purpose": "Transfer",
                },
            ),
        )

    # -------------------------------------------------------------------------
    # Reminder
    # -------------------------------------------------------------------------

    def _reminder_title(self, session, state, text) -> Step:
        if not text:
            return Prompt(prompt="Please type what I should remind you about.", retry=True)
        session.dialogue = state.model_copy(
            update={"title": text, "step": ReminderStep.AWAITING_DATE}
        )
        return Prompt(
            prompt=(
                f"Title: {text}\n\nNow enter the due date (YYYY-MM-DD).\n"
                'Alternatively, type "today" or "none" to set it for today:'
            )
        )

    def _reminder_date(self, session, state, text) -> Step:
        lowered = text.lower()
        if lowered in ("today", "none"):
            day = self._clock().astimezone(self._tz).date()
        else:
            try:
                day = date.fromisoformat(text)
            except ValueError:
                return Prompt(
                    prompt='Invalid date format. Please use YYYY-MM-DD or type "today" or "none".',
                    retry=True,
                )
        session.dialogue = state.model_copy(
            update={"due_day": day, "step": ReminderStep.AWAITING_TIME}
        )
        return Prompt(
            prompt=(
                f"Date set to {day.isoformat()}.\n\n"
                "Now enter the time (HH:MM AM/PM) or in 24-hour format.\n"
                'Alternatively, type "none" to set it for the end of the day:'
            )
        )

    def _reminder_time(self, session, state, text) -> Step:
        if text.lower() == "none":
            at = time(23, 59, 59)
        else:
            at = parse_clock(text)
            if at is None:
                return Prompt(
                    prompt="Invalid time format. Please use HH:MM. Example: 14:30 or 2:30 PM",
                    retry=True,
                )
        due = datetime.combine(state.due_day, at, tzinfo=self._tz)
        return Completed(
            flow=state.flow,
            intent=Intent(
                kind=IntentKind.ADD_REMINDER,
                fields={"title": state.title, "due_date": due.isoformat()},
            ),
        )

    # -------------------------------------------------------------------------
    # Snooze, watch later, password
    # -------------------------------------------------------------------------

    def _snooze_hours(self, session, state, text) -> Step:
        hours = parse_amount(text)
        if hours is None or hours > MAX_SNOOZE_HOURS:
            return Prompt(
                prompt="Please enter a valid number of hours (e.g., 2 or 1.5), up to one year.",
                retry=True,
            )
        return Completed(
            flow=state.flow,
            intent=Intent(
                kind=IntentKind.SNOOZE_REMINDER,
                fields={"hours": str(hours), "reminder_id": state.reminder_id},
            ),
        )

    def _watch_later_url(self, session, state, text) -> Step:
        if not text.startswith("http"):
            return Prompt(
                prompt="Please enter a valid URL (starting with http:// or https://).",
                retry=True,
            )
        return Completed(
            flow=state.flow,
            intent=Intent(kind=IntentKind.ADD_WATCH_LATER, fields={"url": text}),
        )

    def _password_service(self, session, state, text) -> Step:
        if not text:
            return Prompt(prompt="Please enter the service name.", retry=True)
        session.dialogue = state.model_copy(
            update={"service": text, "step": PasswordStep.AWAITING_USERNAME}
        )
        return Prompt(prompt=f"Service: {text}\n\nPlease enter the Username/Email:")

    def _password_username(self, session, state, text) -> Step:
        if not text:
            return Prompt(prompt="Please enter the Username/Email.", retry=True)
        session.dialogue = state.model_copy(
            update={"username": text, "step": PasswordStep.AWAITING_PASSWORD}
        )
        return Prompt(prompt=f"Username: {text}\n\nPlease enter the Password:")

    def _password_secret(self, session, state, text) -> Step:
        if not text:
            return Prompt(prompt="Please enter the Password.", retry=True)
        return Completed(
            flow=state.flow,
            intent=Intent(
                kind=IntentKind.ADD_PASSWORD,
                fields={
                    "service": state.service,
                    "username": state.username,
                    "password": text,
                },
            ),
        )


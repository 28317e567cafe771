"""
Intent Handlers: base class and shared context

Every IntentKind has one handler object. A handler declares:

    kind             the IntentKind it serves
    required_fields  fields that must be present before anything happens
    destructive      whether it must go through the Confirmation Gate
    mutation_kind    the PendingAction kind it proposes (destructive only)

Non-destructive handlers implement handle(), which executes through the
sync engine and returns the user-facing message.

Destructive handlers implement propose(), which computes the would-be
mutation WITHOUT changing anything, and commit(), which executes an
accepted PendingAction.

Handlers raise CommandError subclasses; the Dispatcher converts them to
Outcomes. A handler must not change state before it has finished
validating.
"""

from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Callable, Optional
from uuid import UUID
from zoneinfo import ZoneInfo

from lifesync.dispatch.resolver import TargetResolver
from lifesync.errors import CommandValidationError, TargetNotFoundError
from lifesync.ledger import format_money
from lifesync.models.intent import Intent, IntentKind, MutationKind, PendingAction
from lifesync.models.records import Account, Tables
from lifesync.sync import LocalState, OptimisticSyncEngine


TARGET = "target"


@dataclass
class HandlerContext:
    """Everything a handler may use. Rebuilt per dispatch with a correlation id."""
    engine: OptimisticSyncEngine
    resolver: TargetResolver
    timezone: ZoneInfo
    clock: Callable[[], datetime]
    currency_symbol: str = "₹"
    recent_limit: int = 20
    water_goal: int = 8
    correlation_id: Optional[UUID] = None

    @property
    def state(self) -> LocalState:
        return self.engine.state

    def now(self) -> datetime:
        return self.clock().astimezone(self.timezone)

    def today(self) -> date:
        return self.now().date()

    def money(self, amount: Decimal) -> str:
        return format_money(amount, self.currency_symbol)


class IntentHandler:
    """Base class for intent handlers."""

    kind: IntentKind = IntentKind.UNKNOWN
    required_fields: tuple[str, ...] = ()
    destructive: bool = False
    mutation_kind: Optional[MutationKind] = None

    def validate(self, intent: Intent) -> None:
        """
        Check required fields are present.

        The pseudo-field "target" refers to intent.target_hint.
        """
        missing = []
        for name in self.required_fields:
            if name == TARGET:
                if not (intent.target_hint or "").strip():
                    missing.append(name)
            elif intent.get(name) is None:
                missing.append(name)
        if missing:
            raise CommandValidationError(self.missing_message(missing))

    def missing_message(self, missing: list[str]) -> str:
        labels = ["which record" if m == TARGET else m.replace("_", " ") for m in missing]
        return f"I need a bit more to do that: please tell me the {', '.join(labels)}."

    async def handle(self, ctx: HandlerContext, intent: Intent) -> str:
        raise NotImplementedError

    def propose(self, ctx: HandlerContext, intent: Intent) -> PendingAction:
        raise NotImplementedError

    async def commit(self, ctx: HandlerContext, action: PendingAction) -> str:
        raise NotImplementedError


# =============================================================================
# FIELD HELPERS
# =============================================================================

def to_decimal(value: Any, label: str = "amount") -> Decimal:
    """Coerce a decoded value to Decimal or raise a validation error."""
    if value is None:
        raise CommandValidationError(f"Please specify the {label}.")
    try:
        result = Decimal(str(value).replace(",", "").strip())
    except InvalidOperation:
        raise CommandValidationError(f"'{value}' is not a valid {label}.")
    if not result.is_finite():
        raise CommandValidationError(f"'{value}' is not a valid {label}.")
    return result


def positive_amount(intent: Intent, key: str = "amount", label: str = "amount") -> Decimal:
    amount = to_decimal(intent.get(key), label)
    if amount <= 0:
        raise CommandValidationError(f"The {label} must be greater than zero.")
    return amount


def text_field(intent: Intent, key: str, default: Optional[str] = None) -> Optional[str]:
    value = intent.get(key, default)
    if value is None:
        return None
    return str(value).strip() or default


def resolve_account(
    ctx: HandlerContext,
    intent: Intent,
    id_key: str = "account_id",
    hint_key: str = "account",
    hint: Optional[str] = None,
) -> Account:
    """
    The account a command refers to.

    An explicit id (from a dialogue) wins; otherwise the hint is matched
    against account names, falling back to the first account when no hint
    is given.
    """
    account_id = intent.get(id_key)
    if account_id:
        account = ctx.state.get(Tables.ACCOUNTS, account_id)
        if account is None:
            raise TargetNotFoundError("That account no longer exists.")
        return account

    accounts = ctx.state.all(Tables.ACCOUNTS)
    if not accounts:
        raise CommandValidationError("You need to create at least one account first.")
    return ctx.resolver.resolve(
        accounts,
        hint if hint is not None else text_field(intent, hint_key),
        label=lambda a: a.name,
        noun="account",
    )


def confirm_prompt(description: str) -> str:
    return f"{description}\n\nReply yes to confirm or no to cancel."

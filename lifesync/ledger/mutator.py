"""
Ledger Mutator

Pure functions computing the next state of accounts and friends, plus the
transaction that records it, for one mutation request.

DESIGN DECISION: Nothing in here touches storage, the clock (beyond a
default date) or shared state. apply() takes the current records and
returns new copies. That keeps every ledger rule testable with plain
values, and lets the sync engine snapshot, apply and roll back without
knowing what a mutation means.

INVARIANTS enforced (a violation raises LedgerError before anything is
computed):
- amounts are positive
- referenced accounts and friends exist
- a transfer moves money between two different accounts
- every account keeps balance == opening + inflow - outflow
- settlement drives a friend's net balance to exactly zero
"""

from dataclasses import dataclass, field
from datetime import date
from decimal import ROUND_HALF_UP, Decimal
from typing import Literal, Mapping, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

from lifesync.errors import CommandValidationError
from lifesync.models.records import (
    NAME_MAX_LENGTH,
    Account,
    AccountType,
    Friend,
    Transaction,
    TransactionKind,
)


CENT = Decimal("0.01")


class LedgerError(CommandValidationError):
    """A mutation would break a ledger invariant."""
    pass


def format_money(amount: Decimal, symbol: str = "₹") -> str:
    """Format an amount for messages: ₹500, ₹1,250.50, -₹20."""
    text = f"{abs(amount):,.2f}"
    if text.endswith(".00"):
        text = text[:-3]
    sign = "-" if amount < 0 else ""
    return f"{sign}{symbol}{text}"


# =============================================================================
# MUTATION REQUESTS
# =============================================================================

class _Mutation(BaseModel):
    model_config = ConfigDict(frozen=True)

    on: date = Field(default_factory=date.today)


class Expense(_Mutation):
    kind: Literal["EXPENSE"] = "EXPENSE"
    amount: Decimal
    account_id: str
    purpose: str


class Income(_Mutation):
    kind: Literal["INCOME"] = "INCOME"
    amount: Decimal
    account_id: str
    purpose: str


class Transfer(_Mutation):
    kind: Literal["TRANSFER"] = "TRANSFER"
    amount: Decimal
    from_account_id: str
    to_account_id: str
    purpose: str = "Transfer"


class Split(_Mutation):
    """
    Split a bill between the user and n friends.

    payer_friend_id None means the user paid from account_id.
    """
    kind: Literal["SPLIT"] = "SPLIT"
    amount: Decimal
    participant_ids: list[str]
    payer_friend_id: Optional[str] = None
    account_id: Optional[str] = None
    purpose: str = "Bill"


class Settlement(_Mutation):
    kind: Literal["SETTLEMENT"] = "SETTLEMENT"
    friend_id: str
    account_id: str


class BalanceOverwrite(_Mutation):
    kind: Literal["BALANCE_OVERWRITE"] = "BALANCE_OVERWRITE"
    account_id: str
    new_balance: Decimal


class SubscriptionCharge(_Mutation):
    kind: Literal["SUBSCRIPTION"] = "SUBSCRIPTION"
    amount: Decimal
    account_id: str
    name: str


class OpenAccount(_Mutation):
    kind: Literal["OPEN_ACCOUNT"] = "OPEN_ACCOUNT"
    name: str
    type: AccountType = AccountType.CASH
    opening_balance: Decimal = Decimal("0")


LedgerMutation = Union[
    Expense,
    Income,
    Transfer,
    Split,
    Settlement,
    BalanceOverwrite,
    SubscriptionCharge,
    OpenAccount,
]


@dataclass
class LedgerChange:
    """
    Result of applying one mutation.

    Holds only the records that changed (or were created).
    """
    accounts: list[Account] = field(default_factory=list)
    friends: list[Friend] = field(default_factory=list)
    transaction: Optional[Transaction] = None
    message: str = ""
    new_account_ids: list[str] = field(default_factory=list)


# =============================================================================
# HELPERS
# =============================================================================

def _require_positive(amount: Decimal) -> Decimal:
    if amount is None or amount <= 0:
        raise LedgerError("Amount must be greater than zero.")
    return amount


def _account(accounts: Mapping[str, Account], account_id: Optional[str]) -> Account:
    account = accounts.get(account_id) if account_id else None
    if account is None:
        raise LedgerError(f"Unknown account: {account_id}")
    return account


def _friend(friends: Mapping[str, Friend], friend_id: Optional[str]) -> Friend:
    friend = friends.get(friend_id) if friend_id else None
    if friend is None:
        raise LedgerError(f"Unknown friend: {friend_id}")
    return friend


def _credit(account: Account, amount: Decimal) -> Account:
    return account.model_copy(update={
        "balance": account.balance + amount,
        "total_inflow": account.total_inflow + amount,
    })


def _debit(account: Account, amount: Decimal) -> Account:
    return account.model_copy(update={
        "balance": account.balance - amount,
        "total_outflow": account.total_outflow + amount,
    })


def split_shares(amount: Decimal, participants: int) -> tuple[Decimal, Decimal]:
    """
    Divide a bill between the user and `participants` friends.

    Returns (share per friend, user's retained share). Shares are rounded
    to the paisa; the user's share absorbs the rounding so that
    participants * share + retained == amount exactly.
    """
    share = (amount / (participants + 1)).quantize(CENT, rounding=ROUND_HALF_UP)
    retained = amount - share * participants
    return share, retained


# =============================================================================
# APPLIERS
# =============================================================================

def _apply_flow(accounts, friends, m, symbol) -> LedgerChange:
    amount = _require_positive(m.amount)
    account = _account(accounts, m.account_id)
    is_expense = m.kind == "EXPENSE"
    updated = _debit(account, amount) if is_expense else _credit(account, amount)
    tx = Transaction(
        amount=amount,
        purpose=m.purpose,
        date=m.on,
        kind=TransactionKind.EXPENSE if is_expense else TransactionKind.INCOME,
        account_id=account.id,
    )
    return LedgerChange(
        accounts=[updated],
        transaction=tx,
        message=f"Successfully logged {m.kind} of {format_money(amount, symbol)} for {m.purpose}.",
    )


def _apply_transfer(accounts, friends, m: Transfer, symbol) -> LedgerChange:
    amount = _require_positive(m.amount)
    if m.from_account_id == m.to_account_id:
        raise LedgerError("Cannot transfer money into the same account.")
    source = _account(accounts, m.from_account_id)
    target = _account(accounts, m.to_account_id)
    tx = Transaction(
        amount=amount,
        purpose=m.purpose,
        date=m.on,
        kind=TransactionKind.TRANSFER,
        account_id=source.id,
        to_account_id=target.id,
    )
    return LedgerChange(
        accounts=[_debit(source, amount), _credit(target, amount)],
        transaction=tx,
        message=(
            f"Successfully transferred {format_money(amount, symbol)} "
            f"from {source.name} to {target.name}."
        ),
    )


def _apply_split(accounts, friends, m: Split, symbol) -> LedgerChange:
    amount = _require_positive(m.amount)
    if not m.participant_ids:
        raise LedgerError("A split needs at least one friend.")
    if len(set(m.participant_ids)) != len(m.participant_ids):
        raise LedgerError("A friend appears twice in the split.")
    participants = [_friend(friends, fid) for fid in m.participant_ids]
    n = len(participants)
    share, _ = split_shares(amount, n)

    changed_accounts = []
    if m.payer_friend_id is None:
        account = _account(accounts, m.account_id)
        changed_accounts.append(_debit(account, amount))
        changed_friends = [
            f.model_copy(update={"net_balance": f.net_balance + share})
            for f in participants
        ]
        payer_name = "Me"
        account_id = account.id
    else:
        payer = _friend(friends, m.payer_friend_id)
        changed_friends = [
            payer.model_copy(update={"net_balance": payer.net_balance - (amount - share)})
        ]
        payer_name = payer.name
        account_id = None

    tx = Transaction(
        amount=amount,
        purpose=f"Split: {m.purpose} ({n + 1} members, {format_money(share, symbol)} each)",
        date=m.on,
        kind=TransactionKind.SPLIT,
        account_id=account_id,
        participant_names=[f.name for f in participants],
        payer_name=payer_name,
        friend_id=m.payer_friend_id,
    )
    return LedgerChange(
        accounts=changed_accounts,
        friends=changed_friends,
        transaction=tx,
        message=f"Split {format_money(amount, symbol)} {n + 1} ways, paid by {payer_name}.",
    )


def _apply_settlement(accounts, friends, m: Settlement, symbol) -> LedgerChange:
    friend = _friend(friends, m.friend_id)
    account = _account(accounts, m.account_id)
    if friend.net_balance == 0:
        raise LedgerError(f"{friend.name} is already settled up.")

    amount = abs(friend.net_balance)
    friend_pays = friend.net_balance > 0
    updated = _credit(account, amount) if friend_pays else _debit(account, amount)
    tx = Transaction(
        amount=amount,
        purpose=f"Settlement with {friend.name}",
        date=m.on,
        kind=TransactionKind.SETTLEMENT,
        account_id=account.id,
        payer_name=friend.name if friend_pays else "Me",
        friend_id=friend.id,
    )
    return LedgerChange(
        accounts=[updated],
        friends=[friend.model_copy(update={"net_balance": Decimal("0")})],
        transaction=tx,
        message=f"Settled {format_money(amount, symbol)} with {friend.name}.",
    )


def _apply_overwrite(accounts, friends, m: BalanceOverwrite, symbol) -> LedgerChange:
    account = _account(accounts, m.account_id)
    delta = m.new_balance - account.balance
    if delta == 0:
        raise LedgerError(
            f"{account.name} already has a balance of {format_money(account.balance, symbol)}."
        )

    updated = _credit(account, delta) if delta > 0 else _debit(account, -delta)
    tx = Transaction(
        amount=abs(delta),
        purpose=f"Manual Balance Adjustment for {account.name}",
        date=m.on,
        kind=TransactionKind.INCOME if delta > 0 else TransactionKind.EXPENSE,
        account_id=account.id,
        payer_name="System",
    )
    return LedgerChange(
        accounts=[updated],
        transaction=tx,
        message=f"Balance of {account.name} set to {format_money(m.new_balance, symbol)}.",
    )


def _apply_subscription(accounts, friends, m: SubscriptionCharge, symbol) -> LedgerChange:
    amount = _require_positive(m.amount)
    account = _account(accounts, m.account_id)
    tx = Transaction(
        amount=amount,
        purpose=f"Subscription: {m.name}",
        date=m.on,
        kind=TransactionKind.SUBSCRIPTION,
        account_id=account.id,
    )
    return LedgerChange(
        accounts=[_debit(account, amount)],
        transaction=tx,
        message=f"Charged {format_money(amount, symbol)} for {m.name} to {account.name}.",
    )


def _apply_open(accounts, friends, m: OpenAccount, symbol) -> LedgerChange:
    name = m.name.strip()
    if not name:
        raise LedgerError("An account needs a name.")
    if len(name) > NAME_MAX_LENGTH:
        raise LedgerError(f"Account names can be at most {NAME_MAX_LENGTH} characters.")
    if any(a.name.lower() == name.lower() for a in accounts.values()):
        raise LedgerError(f"An account named {name} already exists.")
    account = Account(
        name=name,
        type=m.type,
        balance=m.opening_balance,
        opening_balance=m.opening_balance,
    )
    return LedgerChange(
        accounts=[account],
        message=(
            f"Created {m.type.value.lower()} account {name} "
            f"with {format_money(m.opening_balance, symbol)}."
        ),
        new_account_ids=[account.id],
    )


_APPLIERS = {
    "EXPENSE": _apply_flow,
    "INCOME": _apply_flow,
    "TRANSFER": _apply_transfer,
    "SPLIT": _apply_split,
    "SETTLEMENT": _apply_settlement,
    "BALANCE_OVERWRITE": _apply_overwrite,
    "SUBSCRIPTION": _apply_subscription,
    "OPEN_ACCOUNT": _apply_open,
}


def apply(
    accounts: Mapping[str, Account],
    friends: Mapping[str, Friend],
    mutation: LedgerMutation,
    currency_symbol: str = "₹",
) -> LedgerChange:
    """
    Compute the effect of one mutation.

    Args:
        accounts: Current accounts by id (not modified)
        friends: Current friends by id (not modified)
        mutation: The requested mutation
        currency_symbol: Symbol used in generated purposes and messages

    Returns:
        The changed/created records and the recording transaction

    Raises:
        LedgerError: If the mutation would break a ledger invariant
    """
    applier = _APPLIERS.get(mutation.kind)
    if applier is None:
        raise LedgerError(f"Unsupported ledger mutation: {mutation.kind}")
    return applier(accounts, friends, mutation, currency_symbol)

"""
Finance Handlers

Accounts, transactions, friends/splits and subscriptions. Everything that
moves money goes through the Ledger Mutator via the sync engine.
"""

from decimal import Decimal
from typing import Optional

from lifesync.dispatch.base import (
    TARGET,
    HandlerContext,
    IntentHandler,
    confirm_prompt,
    positive_amount,
    resolve_account,
    text_field,
    to_decimal,
)
from lifesync.errors import CommandValidationError, TargetNotFoundError
from lifesync.ledger import (
    BalanceOverwrite,
    Expense,
    Income,
    OpenAccount,
    Settlement,
    Split,
    SubscriptionCharge,
    Transfer,
    apply as apply_ledger,
)
from lifesync.models.intent import Intent, IntentKind, MutationKind, PendingAction
from lifesync.models.records import (
    NAME_MAX_LENGTH,
    AccountType,
    Friend,
    Subscription,
    SubscriptionFrequency,
    Tables,
    Transaction,
    TransactionKind,
)
from lifesync.sync import ChangeSet, LocalState


# Months per billing cycle, for the monthly total in LIST_SUBS
_CYCLE_MONTHS = {
    SubscriptionFrequency.MONTHLY: 1,
    SubscriptionFrequency.QUARTERLY: 3,
    SubscriptionFrequency.HALF_YEARLY: 6,
    SubscriptionFrequency.YEARLY: 12,
}


def recent_transactions(state: LocalState, limit: int) -> list[Transaction]:
    """Newest first."""
    txs = state.all(Tables.TRANSACTIONS)
    txs.sort(key=lambda t: (t.date, t.created_at), reverse=True)
    return txs[:limit]


def _resolve_friend(ctx: HandlerContext, hint: Optional[str]) -> Friend:
    return ctx.resolver.resolve(
        ctx.state.all(Tables.FRIENDS),
        hint,
        label=lambda f: f.name,
        noun="friend",
    )


def _delete_reducer(table: str, record_id: str, noun: str, description: str):
    def reducer(state: LocalState) -> ChangeSet:
        if state.get(table, record_id) is None:
            raise TargetNotFoundError(f"That {noun} no longer exists.")
        return ChangeSet(description=description).delete(table, record_id)
    return reducer


# =============================================================================
# TRANSACTIONS
# =============================================================================

class AddExpenseHandler(IntentHandler):
    kind = IntentKind.ADD_EXPENSE
    required_fields = ("amount", "purpose")

    async def handle(self, ctx: HandlerContext, intent: Intent) -> str:
        amount = positive_amount(intent)
        account = resolve_account(ctx, intent)
        mutation_type = Expense if self.kind == IntentKind.ADD_EXPENSE else Income
        mutation = mutation_type(
            amount=amount,
            account_id=account.id,
            purpose=text_field(intent, "purpose"),
            on=ctx.today(),
        )
        change = await ctx.engine.apply_ledger(mutation, correlation_id=ctx.correlation_id)
        return change.message


class AddIncomeHandler(AddExpenseHandler):
    kind = IntentKind.ADD_INCOME


class AddTransferHandler(IntentHandler):
    kind = IntentKind.ADD_TRANSFER
    required_fields = ("amount",)

    def validate(self, intent: Intent) -> None:
        super().validate(intent)
        if intent.get("to_account_id") is None and intent.get("to_account") is None:
            raise CommandValidationError(
                "I need both an amount and a destination account for a transfer."
            )

    async def handle(self, ctx: HandlerContext, intent: Intent) -> str:
        amount = positive_amount(intent)
        source = resolve_account(ctx, intent)
        target = resolve_account(ctx, intent, id_key="to_account_id", hint_key="to_account")
        mutation = Transfer(
            amount=amount,
            from_account_id=source.id,
            to_account_id=target.id,
            purpose=text_field(intent, "purpose", "Transfer"),
            on=ctx.today(),
        )
        change = await ctx.engine.apply_ledger(mutation, correlation_id=ctx.correlation_id)
        return change.message


class DeleteTransactionHandler(IntentHandler):
    """
    Delete one of the recent transactions by purpose.

    Account balances are NOT reversed; the prompt says so.
    """
    kind = IntentKind.DELETE_TRANSACTION
    required_fields = (TARGET,)
    destructive = True
    mutation_kind = MutationKind.DELETE_TRANSACTION

    def propose(self, ctx: HandlerContext, intent: Intent) -> PendingAction:
        recent = recent_transactions(ctx.state, ctx.recent_limit)
        if not recent:
            raise TargetNotFoundError("You don't have any transactions yet.")
        try:
            tx = ctx.resolver.resolve(recent, intent.target_hint, lambda t: t.purpose, "transaction")
        except TargetNotFoundError:
            raise TargetNotFoundError(
                f"Couldn't find a matching transaction recently for '{intent.target_hint}'."
            )
        return PendingAction(
            kind=self.mutation_kind,
            target_id=tx.id,
            description=confirm_prompt(
                f"Delete transaction: {tx.purpose} ({ctx.money(tx.amount)}) on {tx.date.isoformat()}?\n"
                "Account balances will not be changed."
            ),
        )

    async def commit(self, ctx: HandlerContext, action: PendingAction) -> str:
        tx = ctx.state.get(Tables.TRANSACTIONS, action.target_id)
        await ctx.engine.apply(
            _delete_reducer(Tables.TRANSACTIONS, action.target_id, "transaction", "delete transaction"),
            correlation_id=ctx.correlation_id,
        )
        return f"Deleted transaction: {tx.purpose} ({ctx.money(tx.amount)})."


class ListTransactionsHandler(IntentHandler):
    kind = IntentKind.LIST_TRANSACTIONS

    async def handle(self, ctx: HandlerContext, intent: Intent) -> str:
        txs = recent_transactions(ctx.state, ctx.recent_limit)
        if not txs:
            return "No transactions yet."
        accounts = ctx.state.accounts
        lines = ["📒 Recent transactions:"]
        for tx in txs:
            account = accounts.get(tx.account_id)
            where = f" ({account.name})" if account else ""
            lines.append(
                f"{tx.date.isoformat()} · {tx.kind.value} {ctx.money(tx.amount)} · {tx.purpose}{where}"
            )
        return "\n".join(lines)


class FinanceOverviewHandler(IntentHandler):
    kind = IntentKind.GET_FINANCE_OVERVIEW

    async def handle(self, ctx: HandlerContext, intent: Intent) -> str:
        accounts = ctx.state.all(Tables.ACCOUNTS)
        month_start = ctx.today().replace(day=1)
        income = expense = Decimal("0")
        for tx in ctx.state.all(Tables.TRANSACTIONS):
            if tx.date < month_start:
                continue
            if tx.kind == TransactionKind.INCOME:
                income += tx.amount
            elif tx.kind in (TransactionKind.EXPENSE, TransactionKind.SUBSCRIPTION):
                expense += tx.amount

        friends = ctx.state.all(Tables.FRIENDS)
        owed_to_me = sum((f.net_balance for f in friends if f.net_balance > 0), Decimal("0"))
        i_owe = sum((-f.net_balance for f in friends if f.net_balance < 0), Decimal("0"))

        total = sum((a.balance for a in accounts), Decimal("0"))
        return "\n".join([
            "📊 Finance overview",
            f"Net worth: {ctx.money(total)} across {len(accounts)} account(s)",
            f"This month: +{ctx.money(income)} income, -{ctx.money(expense)} spent",
            f"Friends owe you {ctx.money(owed_to_me)}; you owe {ctx.money(i_owe)}",
        ])


# =============================================================================
# ACCOUNTS
# =============================================================================

class ListAccountsHandler(IntentHandler):
    kind = IntentKind.LIST_ACCOUNTS

    async def handle(self, ctx: HandlerContext, intent: Intent) -> str:
        accounts = ctx.state.all(Tables.ACCOUNTS)
        if not accounts:
            return "You don't have any accounts yet."
        lines = ["🏦 Accounts:"]
        lines.extend(
            f"{a.name} ({a.type.value}): {ctx.money(a.balance)}" for a in accounts
        )
        total = sum((a.balance for a in accounts), Decimal("0"))
        lines.append(f"Total: {ctx.money(total)}")
        return "\n".join(lines)


class AddAccountHandler(IntentHandler):
    kind = IntentKind.ADD_ACCOUNT
    required_fields = ("name",)

    async def handle(self, ctx: HandlerContext, intent: Intent) -> str:
        raw_type = (text_field(intent, "type") or AccountType.CASH.value).upper()
        try:
            account_type = AccountType(raw_type)
        except ValueError:
            options = ", ".join(t.value for t in AccountType)
            raise CommandValidationError(f"Account type must be one of: {options}.")
        balance = intent.get("balance")
        mutation = OpenAccount(
            name=text_field(intent, "name"),
            type=account_type,
            opening_balance=to_decimal(balance, "balance") if balance is not None else Decimal("0"),
        )
        change = await ctx.engine.apply_ledger(mutation, correlation_id=ctx.correlation_id)
        return change.message


class DeleteAccountHandler(IntentHandler):
    kind = IntentKind.DELETE_ACCOUNT
    required_fields = (TARGET,)
    destructive = True
    mutation_kind = MutationKind.DELETE_ACCOUNT

    def propose(self, ctx: HandlerContext, intent: Intent) -> PendingAction:
        account = resolve_account(ctx, intent, hint=intent.target_hint)
        return PendingAction(
            kind=self.mutation_kind,
            target_id=account.id,
            description=confirm_prompt(
                f"Delete account {account.name} (balance {ctx.money(account.balance)})? "
                "Its transactions will be kept."
            ),
        )

    async def commit(self, ctx: HandlerContext, action: PendingAction) -> str:
        account = ctx.state.get(Tables.ACCOUNTS, action.target_id)
        await ctx.engine.apply(
            _delete_reducer(Tables.ACCOUNTS, action.target_id, "account", "delete account"),
            correlation_id=ctx.correlation_id,
        )
        return f"Deleted account: {account.name}."


class ModifyBalanceHandler(IntentHandler):
    """Overwrite an account balance; the difference is logged as a transaction."""
    kind = IntentKind.MODIFY_BALANCE
    required_fields = ("balance",)
    destructive = True
    mutation_kind = MutationKind.BALANCE_OVERWRITE

    def propose(self, ctx: HandlerContext, intent: Intent) -> PendingAction:
        new_balance = to_decimal(intent.get("balance"), "balance")
        account = resolve_account(ctx, intent, hint=intent.target_hint or text_field(intent, "account"))
        # Dry run so an invalid overwrite is reported now, not after "yes"
        apply_ledger(
            ctx.state.accounts,
            ctx.state.friends,
            BalanceOverwrite(account_id=account.id, new_balance=new_balance),
            ctx.currency_symbol,
        )
        return PendingAction(
            kind=self.mutation_kind,
            target_id=account.id,
            payload={"new_balance": str(new_balance)},
            description=confirm_prompt(
                f"Change the balance of {account.name} from {ctx.money(account.balance)} "
                f"to {ctx.money(new_balance)}?"
            ),
        )

    async def commit(self, ctx: HandlerContext, action: PendingAction) -> str:
        if ctx.state.get(Tables.ACCOUNTS, action.target_id) is None:
            raise TargetNotFoundError("That account no longer exists.")
        mutation = BalanceOverwrite(
            account_id=action.target_id,
            new_balance=Decimal(action.payload["new_balance"]),
            on=ctx.today(),
        )
        change = await ctx.engine.apply_ledger(mutation, correlation_id=ctx.correlation_id)
        return change.message


# =============================================================================
# FRIENDS AND SPLITS
# =============================================================================

class AddFriendHandler(IntentHandler):
    kind = IntentKind.ADD_FRIEND
    required_fields = ("name",)

    async def handle(self, ctx: HandlerContext, intent: Intent) -> str:
        name = text_field(intent, "name")
        if len(name) > NAME_MAX_LENGTH:
            raise CommandValidationError(f"Friend names can be at most {NAME_MAX_LENGTH} characters.")

        def reducer(state: LocalState) -> ChangeSet:
            if any(f.name.lower() == name.lower() for f in state.all(Tables.FRIENDS)):
                raise CommandValidationError(f"You already have a friend named {name}.")
            return ChangeSet(description="add friend").insert(Tables.FRIENDS, Friend(name=name))

        await ctx.engine.apply(reducer, correlation_id=ctx.correlation_id)
        return f"Added friend: {name}"


class DeleteFriendHandler(IntentHandler):
    kind = IntentKind.DELETE_FRIEND
    required_fields = (TARGET,)
    destructive = True
    mutation_kind = MutationKind.DELETE_FRIEND

    @staticmethod
    def _check_settled(ctx: HandlerContext, friend: Friend) -> None:
        if friend.net_balance != 0:
            raise CommandValidationError(
                f"{friend.name} still has an open balance of {ctx.money(friend.net_balance)}. "
                "Settle up before removing them."
            )

    def propose(self, ctx: HandlerContext, intent: Intent) -> PendingAction:
        friend = _resolve_friend(ctx, intent.target_hint)
        self._check_settled(ctx, friend)
        return PendingAction(
            kind=self.mutation_kind,
            target_id=friend.id,
            description=confirm_prompt(f"Remove {friend.name} from your friends?"),
        )

    async def commit(self, ctx: HandlerContext, action: PendingAction) -> str:
        def reducer(state: LocalState) -> ChangeSet:
            friend = state.get(Tables.FRIENDS, action.target_id)
            if friend is None:
                raise TargetNotFoundError("That friend no longer exists.")
            self._check_settled(ctx, friend)
            return ChangeSet(description="delete friend").delete(Tables.FRIENDS, friend.id)

        name = ctx.state.get(Tables.FRIENDS, action.target_id)
        await ctx.engine.apply(reducer, correlation_id=ctx.correlation_id)
        return f"Removed {name.name}."


class AddSplitHandler(IntentHandler):
    """
    Split a bill.

    Fields: amount, friends (list of names) or friend (one name),
    payer (friend name; absent or "me" means the user paid), account,
    purpose.
    """
    kind = IntentKind.ADD_SPLIT
    required_fields = ("amount",)

    async def handle(self, ctx: HandlerContext, intent: Intent) -> str:
        amount = positive_amount(intent)
        names = intent.get("friends") or []
        if isinstance(names, str):
            names = [names]
        single = text_field(intent, "friend")
        if single:
            names = [*names, single]
        if not names:
            raise CommandValidationError("Who did you split it with?")

        participants = [_resolve_friend(ctx, name) for name in names]
        payer_hint = text_field(intent, "payer")
        payer = None
        account_id = None
        if payer_hint and payer_hint.lower() not in ("me", "self", "i"):
            payer = _resolve_friend(ctx, payer_hint)
        else:
            account_id = resolve_account(ctx, intent).id

        mutation = Split(
            amount=amount,
            participant_ids=[f.id for f in participants],
            payer_friend_id=payer.id if payer else None,
            account_id=account_id,
            purpose=text_field(intent, "purpose", "Bill"),
            on=ctx.today(),
        )
        change = await ctx.engine.apply_ledger(mutation, correlation_id=ctx.correlation_id)
        return change.message


class SettleFriendHandler(IntentHandler):
    kind = IntentKind.SETTLE_FRIEND
    required_fields = (TARGET,)

    async def handle(self, ctx: HandlerContext, intent: Intent) -> str:
        friend = _resolve_friend(ctx, intent.target_hint)
        account = resolve_account(ctx, intent)
        mutation = Settlement(friend_id=friend.id, account_id=account.id, on=ctx.today())
        change = await ctx.engine.apply_ledger(mutation, correlation_id=ctx.correlation_id)
        return change.message


class ViewSplitsHandler(IntentHandler):
    kind = IntentKind.VIEW_SPLITS

    async def handle(self, ctx: HandlerContext, intent: Intent) -> str:
        friends = ctx.state.all(Tables.FRIENDS)
        if not friends:
            return "You haven't added any friends yet."
        lines = ["🤝 Splits:"]
        for f in friends:
            if f.net_balance > 0:
                lines.append(f"{f.name} owes you {ctx.money(f.net_balance)}")
            elif f.net_balance < 0:
                lines.append(f"You owe {f.name} {ctx.money(-f.net_balance)}")
            else:
                lines.append(f"{f.name}: settled up")
        return "\n".join(lines)


# =============================================================================
# SUBSCRIPTIONS
# =============================================================================

def _frequency(value: Optional[str]) -> SubscriptionFrequency:
    if not value:
        return SubscriptionFrequency.MONTHLY
    normalized = value.strip().upper()
    aliases = {
        "1 MONTH": SubscriptionFrequency.MONTHLY,
        "MONTH": SubscriptionFrequency.MONTHLY,
        "QUARTERLY": SubscriptionFrequency.QUARTERLY,
        "YEAR": SubscriptionFrequency.YEARLY,
        "ANNUAL": SubscriptionFrequency.YEARLY,
        "12 MONTHS": SubscriptionFrequency.YEARLY,
    }
    if normalized in aliases:
        return aliases[normalized]
    try:
        return SubscriptionFrequency(normalized)
    except ValueError:
        options = ", ".join(f.value for f in SubscriptionFrequency)
        raise CommandValidationError(f"Frequency must be one of: {options}.")


class AddSubscriptionHandler(IntentHandler):
    """
    Add a subscription. With charge_now, the first payment is also taken
    from the account in the same change.
    """
    kind = IntentKind.ADD_SUB
    required_fields = ("name", "amount")

    async def handle(self, ctx: HandlerContext, intent: Intent) -> str:
        name = text_field(intent, "name")
        amount = positive_amount(intent)
        frequency = _frequency(text_field(intent, "frequency"))
        charge_now = str(intent.get("charge_now", False)).lower() in ("true", "yes", "1")
        account = None
        if charge_now or intent.get("account") or intent.get("account_id"):
            account = resolve_account(ctx, intent)
        today = ctx.today()

        def reducer(state: LocalState) -> ChangeSet:
            subscription = Subscription(
                name=name,
                amount=amount,
                frequency=frequency,
                account_id=account.id if account else None,
                start_date=today,
            )
            change = ChangeSet(description="add subscription")
            change.insert(Tables.SUBSCRIPTIONS, subscription)
            if charge_now:
                result = apply_ledger(
                    state.accounts,
                    state.friends,
                    SubscriptionCharge(amount=amount, account_id=account.id, name=name, on=today),
                    ctx.currency_symbol,
                )
                change.upsert(Tables.ACCOUNTS, *result.accounts)
                change.insert(Tables.TRANSACTIONS, result.transaction)
            return change

        await ctx.engine.apply(reducer, correlation_id=ctx.correlation_id)
        message = f"Added subscription: {name} ({ctx.money(amount)})"
        if charge_now:
            message += f", first payment charged to {account.name}"
        return message


class ListSubscriptionsHandler(IntentHandler):
    kind = IntentKind.LIST_SUBS

    async def handle(self, ctx: HandlerContext, intent: Intent) -> str:
        subs = [s for s in ctx.state.all(Tables.SUBSCRIPTIONS) if s.is_active]
        if not subs:
            return "No active subscriptions."
        lines = ["🔁 Subscriptions:"]
        monthly = Decimal("0")
        for s in subs:
            lines.append(f"{s.name}: {ctx.money(s.amount)} / {s.frequency.value.lower()}")
            monthly += s.amount / _CYCLE_MONTHS[s.frequency]
        lines.append(f"≈ {ctx.money(monthly.quantize(Decimal('0.01')))} per month")
        return "\n".join(lines)


class DeleteSubscriptionHandler(IntentHandler):
    kind = IntentKind.DELETE_SUB
    required_fields = (TARGET,)
    destructive = True
    mutation_kind = MutationKind.DELETE_SUBSCRIPTION

    def propose(self, ctx: HandlerContext, intent: Intent) -> PendingAction:
        sub = ctx.resolver.resolve(
            ctx.state.all(Tables.SUBSCRIPTIONS),
            intent.target_hint,
            label=lambda s: s.name,
            noun="subscription",
        )
        return PendingAction(
            kind=self.mutation_kind,
            target_id=sub.id,
            description=confirm_prompt(f"Delete subscription {sub.name} ({ctx.money(sub.amount)})?"),
        )

    async def commit(self, ctx: HandlerContext, action: PendingAction) -> str:
        sub = ctx.state.get(Tables.SUBSCRIPTIONS, action.target_id)
        await ctx.engine.apply(
            _delete_reducer(Tables.SUBSCRIPTIONS, action.target_id, "subscription", "delete subscription"),
            correlation_id=ctx.correlation_id,
        )
        return f"Deleted subscription: {sub.name}."


FINANCE_HANDLERS = [
    AddExpenseHandler(),
    AddIncomeHandler(),
    AddTransferHandler(),
    DeleteTransactionHandler(),
    ListTransactionsHandler(),
    FinanceOverviewHandler(),
    ListAccountsHandler(),
    AddAccountHandler(),
    DeleteAccountHandler(),
    ModifyBalanceHandler(),
    AddFriendHandler(),
    DeleteFriendHandler(),
    AddSplitHandler(),
    SettleFriendHandler(),
    ViewSplitsHandler(),
    AddSubscriptionHandler(),
    ListSubscriptionsHandler(),
    DeleteSubscriptionHandler(),
]

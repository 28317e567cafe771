"""
Tests for the Command Dispatcher and its handlers.

Each test wires a full core over an in-memory store and calls the
dispatcher directly with a fresh Session.
"""

import asyncio
from datetime import date, datetime
from decimal import Decimal

import pytest

from lifesync.audit import AuditLogger
from lifesync.dialogue import Session
from lifesync.dispatch import CLARIFY, FIRST, IntentHandler, TargetResolver, default_handlers
from lifesync.errors import AmbiguousTargetError, TargetNotFoundError
from lifesync.models.audit import AuditEventType
from lifesync.models.intent import Intent, IntentKind, MutationKind, OutcomeStatus
from lifesync.models.records import (
    Friend,
    MediaItem,
    PasswordEntry,
    Reminder,
    Subscription,
    SubscriptionFrequency,
    Tables,
    Transaction,
    TransactionKind,
)

from tests.conftest import IST, build_core, make_account, seed_store


def dispatch(core, kind, target_hint=None, reply_text=None, session=None, **fields):
    intent = Intent(kind=kind, fields=fields, target_hint=target_hint, reply_text=reply_text)
    return asyncio.run(core.dispatcher.dispatch(session or Session("s"), intent))


def balance(core, account):
    return core.state.get(Tables.ACCOUNTS, account.id).balance


class TestTargetResolver:
    records = ["HDFC Bank", "HDFC Credit", "Cash"]

    def resolve(self, policy, hint):
        return TargetResolver(policy).resolve(self.records, hint, label=lambda r: r, noun="account")

    def test_first_policy(self):
        """The first substring match wins; no hint means the first record."""
        assert self.resolve(FIRST, "hdfc") == "HDFC Bank"
        assert self.resolve(FIRST, None) == "HDFC Bank"
        assert self.resolve(FIRST, "CASH") == "Cash"

    def test_clarify_policy_lists_candidates(self):
        """Several matches raise with every candidate named."""
        with pytest.raises(AmbiguousTargetError) as exc:
            self.resolve(CLARIFY, "hdfc")
        assert exc.value.candidates == ["HDFC Bank", "HDFC Credit"]

    def test_clarify_policy_prefers_exact_match(self):
        """An exact name is not ambiguous."""
        records = ["Rent", "Rent deposit"]
        picked = TargetResolver(CLARIFY).resolve(records, "rent", label=lambda r: r, noun="reminder")
        assert picked == "Rent"

    def test_no_match(self):
        with pytest.raises(TargetNotFoundError) as exc:
            self.resolve(FIRST, "sbi")
        assert exc.value.message == "Couldn't find any account matching 'sbi'."

    def test_unknown_policy(self):
        with pytest.raises(ValueError):
            TargetResolver("random")


class TestDispatchBasics:
    def test_missing_field_is_clarify(self):
        """A missing required field asks for it and changes nothing."""
        cash = make_account("Cash")
        core = build_core(seed_store(accounts=[cash]))

        outcome = dispatch(core, IntentKind.ADD_EXPENSE, amount="500")

        assert outcome.status == OutcomeStatus.CLARIFY
        assert outcome.message == "I need a bit more to do that: please tell me the purpose."
        assert core.state.all(Tables.TRANSACTIONS) == []

    def test_invalid_amount_is_clarify(self):
        core = build_core(seed_store(accounts=[make_account("Cash")]))
        outcome = dispatch(core, IntentKind.ADD_EXPENSE, amount="lots", purpose="lunch")
        assert outcome.status == OutcomeStatus.CLARIFY
        assert outcome.message == "'lots' is not a valid amount."

    def test_model_validation_error_is_clarify(self):
        """A record that fails model validation inside a handler asks again."""

        class Oversized(IntentHandler):
            kind = IntentKind.ADD_FRIEND

            async def handle(self, ctx, intent):
                Friend(name="x" * 101)
                return "unreachable"

        audit = AuditLogger()
        core = build_core(seed_store(), audit_logger=audit)
        core.dispatcher.register(Oversized())

        outcome = dispatch(core, IntentKind.ADD_FRIEND, name="Alice")

        assert outcome.status == OutcomeStatus.CLARIFY
        assert outcome.message.startswith("That name doesn't look right:")
        assert core.state.all(Tables.FRIENDS) == []
        assert audit.event_types()[0] == AuditEventType.CLARIFICATION_ISSUED

    def test_store_failure_is_failed(self):
        """A rejected write is reported as Failed and rolled back."""
        cash = make_account("Cash", "1000")
        store = seed_store(accounts=[cash])
        core = build_core(store)
        store.fail_on("insert", Tables.TRANSACTIONS)

        outcome = dispatch(core, IntentKind.ADD_EXPENSE, amount="500", purpose="lunch")

        assert outcome.status == OutcomeStatus.FAILED
        assert outcome.message == "Couldn't save: expense. Nothing was changed, please try again."
        assert balance(core, cash) == Decimal("1000")

    def test_dispatch_is_audited(self):
        """A clarification logs the reason and then the dispatch."""
        audit = AuditLogger()
        core = build_core(seed_store(), audit_logger=audit)

        dispatch(core, IntentKind.ADD_EXPENSE)

        assert audit.event_types() == [
            AuditEventType.CLARIFICATION_ISSUED,
            AuditEventType.INTENT_DISPATCHED,
        ]

    def test_failed_save_is_audited_as_error(self):
        audit = AuditLogger()
        store = seed_store(accounts=[make_account("Cash", "1000")])
        core = build_core(store, audit_logger=audit)
        store.fail_on("insert", Tables.TRANSACTIONS)

        dispatch(core, IntentKind.ADD_EXPENSE, amount="500", purpose="lunch")

        assert audit.event_types() == [
            AuditEventType.MUTATION_ROLLED_BACK,
            AuditEventType.SYSTEM_ERROR,
            AuditEventType.INTENT_DISPATCHED,
        ]
        assert audit.events[1].details["intent_kind"] == "ADD_EXPENSE"

    def test_destructive_handler_needs_mutation_kind(self):
        """Registering a destructive handler without a mutation kind fails."""

        class Broken(IntentHandler):
            kind = IntentKind.DELETE_SUB
            destructive = True

        core = build_core(seed_store())
        with pytest.raises(ValueError):
            core.dispatcher.register(Broken())

    def test_one_handler_per_kind(self):
        """Every intent kind has exactly one default handler."""
        kinds = [h.kind for h in default_handlers()]
        assert sorted(kinds) == sorted(IntentKind)

        core = build_core(seed_store())
        assert core.dispatcher.handler_for(IntentKind.DELETE_REMINDER).destructive

    def test_destructive_kinds(self):
        core = build_core(seed_store())
        destructive = {k for k in IntentKind if core.dispatcher.is_destructive(k)}
        assert destructive == {
            IntentKind.DELETE_TRANSACTION,
            IntentKind.DELETE_ACCOUNT,
            IntentKind.MODIFY_BALANCE,
            IntentKind.DELETE_FRIEND,
            IntentKind.DELETE_SUB,
            IntentKind.EDIT_REMINDER,
            IntentKind.DELETE_REMINDER,
        }


class TestTransactions:
    def test_expense_uses_account_hint(self):
        """An account hint picks the matching account."""
        cash, bank = make_account("Cash", "1000"), make_account("HDFC Bank", "5000")
        core = build_core(seed_store(accounts=[cash, bank]))

        outcome = dispatch(core, IntentKind.ADD_EXPENSE, amount="200", purpose="fuel", account="hdfc")

        assert outcome.ok
        assert balance(core, bank) == Decimal("4800")
        assert balance(core, cash) == Decimal("1000")
        [tx] = core.state.all(Tables.TRANSACTIONS)
        assert tx.date == date(2026, 3, 14)

    def test_unmatched_account_hint_is_clarify(self):
        """A hint that matches no account does not fall back to the first one."""
        cash = make_account("Cash", "1000")
        core = build_core(seed_store(accounts=[cash]))

        outcome = dispatch(core, IntentKind.ADD_EXPENSE, amount="200", purpose="fuel", account="sbi")

        assert outcome.status == OutcomeStatus.CLARIFY
        assert balance(core, cash) == Decimal("1000")

    def test_ambiguous_account_under_clarify_policy(self):
        """Two matching accounts are offered back as options."""
        a, b = make_account("HDFC Bank"), make_account("HDFC Credit")
        core = build_core(seed_store(accounts=[a, b]), policy=CLARIFY)

        outcome = dispatch(core, IntentKind.ADD_EXPENSE, amount="1", purpose="x", account="hdfc")

        assert outcome.status == OutcomeStatus.CLARIFY
        assert outcome.options == ["HDFC Bank", "HDFC Credit"]

    def test_income(self):
        cash = make_account("Cash", "100")
        core = build_core(seed_store(accounts=[cash]))
        outcome = dispatch(core, IntentKind.ADD_INCOME, amount="50", purpose="refund")
        assert outcome.message == "Successfully logged INCOME of ₹50 for refund."
        assert balance(core, cash) == Decimal("150")

    def test_transfer_by_names(self):
        """Source and destination are both resolved from hints."""
        cash, bank = make_account("Cash", "1000"), make_account("HDFC Bank", "5000")
        core = build_core(seed_store(accounts=[cash, bank]))

        outcome = dispatch(core, IntentKind.ADD_TRANSFER, amount="300", account="hdfc", to_account="cash")

        assert outcome.message == "Successfully transferred ₹300 from HDFC Bank to Cash."
        assert balance(core, bank) == Decimal("4700")
        assert balance(core, cash) == Decimal("1300")

    def test_transfer_needs_destination(self):
        core = build_core(seed_store(accounts=[make_account("Cash")]))
        outcome = dispatch(core, IntentKind.ADD_TRANSFER, amount="300")
        assert outcome.status == OutcomeStatus.CLARIFY

    def test_delete_transaction_only_proposes(self):
        """Dispatch stores a PendingAction; the transaction is still there."""
        cash = make_account("Cash")
        tx = Transaction(
            amount=Decimal("1200"), purpose="Rent", date=date(2026, 3, 1),
            kind=TransactionKind.EXPENSE, account_id=cash.id,
        )
        core = build_core(seed_store(accounts=[cash], transactions=[tx]))
        session = Session("s")

        outcome = dispatch(core, IntentKind.DELETE_TRANSACTION, target_hint="rent", session=session)

        assert outcome.status == OutcomeStatus.PENDING_CONFIRMATION
        assert session.pending_action.kind == MutationKind.DELETE_TRANSACTION
        assert session.pending_action.target_id == tx.id
        assert "Account balances will not be changed." in outcome.message
        assert core.state.get(Tables.TRANSACTIONS, tx.id) is not None

    def test_delete_transaction_not_found(self):
        cash = make_account("Cash")
        tx = Transaction(
            amount=Decimal("5"), purpose="Tea", date=date(2026, 3, 1),
            kind=TransactionKind.EXPENSE, account_id=cash.id,
        )
        core = build_core(seed_store(accounts=[cash], transactions=[tx]))
        outcome = dispatch(core, IntentKind.DELETE_TRANSACTION, target_hint="rent")
        assert outcome.message == "Couldn't find a matching transaction recently for 'rent'."

    def test_list_transactions_newest_first(self):
        cash = make_account("Cash")
        older = Transaction(
            amount=Decimal("5"), purpose="Tea", date=date(2026, 3, 1),
            kind=TransactionKind.EXPENSE, account_id=cash.id,
        )
        newer = Transaction(
            amount=Decimal("900"), purpose="Groceries", date=date(2026, 3, 10),
            kind=TransactionKind.EXPENSE, account_id=cash.id,
        )
        core = build_core(seed_store(accounts=[cash], transactions=[older, newer]))

        lines = dispatch(core, IntentKind.LIST_TRANSACTIONS).message.splitlines()

        assert lines[0] == "📒 Recent transactions:"
        assert lines[1] == "2026-03-10 · EXPENSE ₹900 · Groceries (Cash)"
        assert lines[2] == "2026-03-01 · EXPENSE ₹5 · Tea (Cash)"

    def test_overview(self):
        cash = make_account("Cash", "1000")
        core = build_core(seed_store(accounts=[cash], friends=[Friend(name="Alice", net_balance=Decimal("40"))]))
        dispatch(core, IntentKind.ADD_EXPENSE, amount="100", purpose="lunch")

        message = dispatch(core, IntentKind.GET_FINANCE_OVERVIEW).message

        assert "Net worth: ₹900 across 1 account(s)" in message
        assert "This month: +₹0 income, -₹100 spent" in message
        assert "Friends owe you ₹40; you owe ₹0" in message


class TestAccounts:
    def test_add_and_list_accounts(self):
        core = build_core(seed_store())

        outcome = dispatch(core, IntentKind.ADD_ACCOUNT, name="Savings", type="bank", balance="2500")
        assert outcome.message == "Created bank account Savings with ₹2,500."

        listing = dispatch(core, IntentKind.LIST_ACCOUNTS).message
        assert listing == "🏦 Accounts:\nSavings (BANK): ₹2,500\nTotal: ₹2,500"

    def test_duplicate_account(self):
        core = build_core(seed_store(accounts=[make_account("Cash")]))
        outcome = dispatch(core, IntentKind.ADD_ACCOUNT, name="cash")
        assert outcome.status == OutcomeStatus.CLARIFY

    def test_bad_account_type(self):
        core = build_core(seed_store())
        outcome = dispatch(core, IntentKind.ADD_ACCOUNT, name="Piggy", type="jar")
        assert outcome.message == "Account type must be one of: CASH, BANK, WALLET, CREDIT."

    def test_account_name_too_long(self):
        """An overlong name is a clarification, and nothing is created."""
        store = seed_store()
        core = build_core(store)

        outcome = dispatch(core, IntentKind.ADD_ACCOUNT, name="x" * 101)

        assert outcome.status == OutcomeStatus.CLARIFY
        assert outcome.message == "Account names can be at most 100 characters."
        assert core.state.all(Tables.ACCOUNTS) == []
        assert store.dump(Tables.ACCOUNTS) == []

    def test_no_accounts(self):
        core = build_core(seed_store())
        assert dispatch(core, IntentKind.LIST_ACCOUNTS).message == "You don't have any accounts yet."

    def test_modify_balance_checks_before_proposing(self):
        """Setting the current balance again is rejected before any yes/no."""
        cash = make_account("Cash", "1000")
        core = build_core(seed_store(accounts=[cash]))
        session = Session("s")

        outcome = dispatch(core, IntentKind.MODIFY_BALANCE, target_hint="cash", balance="1000", session=session)

        assert outcome.status == OutcomeStatus.CLARIFY
        assert outcome.message == "Cash already has a balance of ₹1,000."
        assert session.pending_action is None

    def test_modify_balance_proposal(self):
        cash = make_account("Cash", "1000")
        core = build_core(seed_store(accounts=[cash]))
        session = Session("s")

        outcome = dispatch(core, IntentKind.MODIFY_BALANCE, target_hint="cash", balance="1200", session=session)

        assert outcome.status == OutcomeStatus.PENDING_CONFIRMATION
        assert outcome.message.startswith("Change the balance of Cash from ₹1,000 to ₹1,200?")
        assert session.pending_action.payload == {"new_balance": "1200"}
        assert balance(core, cash) == Decimal("1000")


class TestFriends:
    def test_split_and_settle(self):
        """A split paid by me, then settling one friend."""
        cash = make_account("Cash", "1000")
        alice, bob = Friend(name="Alice"), Friend(name="Bob")
        core = build_core(seed_store(accounts=[cash], friends=[alice, bob]))

        outcome = dispatch(core, IntentKind.ADD_SPLIT, amount="300", friends=["alice", "bob"], purpose="Dinner")
        assert outcome.message == "Split ₹300 3 ways, paid by Me."
        assert balance(core, cash) == Decimal("700")

        outcome = dispatch(core, IntentKind.SETTLE_FRIEND, target_hint="alice")
        assert outcome.message == "Settled ₹100 with Alice."
        assert balance(core, cash) == Decimal("800")

        splits = dispatch(core, IntentKind.VIEW_SPLITS).message
        assert splits == "🤝 Splits:\nAlice: settled up\nBob owes you ₹100"

    def test_split_paid_by_friend(self):
        alice = Friend(name="Alice")
        core = build_core(seed_store(accounts=[make_account("Cash")], friends=[alice]))

        dispatch(core, IntentKind.ADD_SPLIT, amount="500", friend="alice", payer="Alice")

        assert core.state.get(Tables.FRIENDS, alice.id).net_balance == Decimal("-250")
        assert "You owe Alice ₹250" in dispatch(core, IntentKind.VIEW_SPLITS).message

    def test_split_needs_friends(self):
        core = build_core(seed_store(accounts=[make_account("Cash")]))
        outcome = dispatch(core, IntentKind.ADD_SPLIT, amount="100")
        assert outcome.message == "Who did you split it with?"

    def test_add_friend_twice(self):
        core = build_core(seed_store())
        assert dispatch(core, IntentKind.ADD_FRIEND, name="Alice").message == "Added friend: Alice"
        assert dispatch(core, IntentKind.ADD_FRIEND, name="alice").status == OutcomeStatus.CLARIFY
        assert len(core.state.all(Tables.FRIENDS)) == 1

    def test_friend_name_too_long(self):
        store = seed_store()
        core = build_core(store)

        outcome = dispatch(core, IntentKind.ADD_FRIEND, name="x" * 101)

        assert outcome.status == OutcomeStatus.CLARIFY
        assert outcome.message == "Friend names can be at most 100 characters."
        assert store.dump(Tables.FRIENDS) == []

    def test_cannot_delete_friend_with_open_balance(self):
        alice = Friend(name="Alice", net_balance=Decimal("100"))
        core = build_core(seed_store(friends=[alice]))
        session = Session("s")

        outcome = dispatch(core, IntentKind.DELETE_FRIEND, target_hint="alice", session=session)

        assert outcome.message == "Alice still has an open balance of ₹100. Settle up before removing them."
        assert session.pending_action is None


class TestSubscriptions:
    def test_add_with_first_charge(self):
        """charge_now inserts the subscription and debits the account together."""
        cash = make_account("Cash", "1000")
        core = build_core(seed_store(accounts=[cash]))

        outcome = dispatch(core, IntentKind.ADD_SUB, name="Netflix", amount="199", charge_now="true")

        assert outcome.message == "Added subscription: Netflix (₹199), first payment charged to Cash"
        assert balance(core, cash) == Decimal("801")
        [tx] = core.state.all(Tables.TRANSACTIONS)
        assert tx.kind == TransactionKind.SUBSCRIPTION
        [sub] = core.state.all(Tables.SUBSCRIPTIONS)
        assert sub.account_id == cash.id

    def test_add_without_charge(self):
        cash = make_account("Cash", "1000")
        core = build_core(seed_store(accounts=[cash]))
        outcome = dispatch(core, IntentKind.ADD_SUB, name="Gym", amount="1500", frequency="quarterly")
        assert outcome.message == "Added subscription: Gym (₹1,500)"
        assert balance(core, cash) == Decimal("1000")
        [sub] = core.state.all(Tables.SUBSCRIPTIONS)
        assert sub.frequency == SubscriptionFrequency.QUARTERLY

    def test_bad_frequency(self):
        core = build_core(seed_store())
        outcome = dispatch(core, IntentKind.ADD_SUB, name="Gym", amount="1", frequency="weekly")
        assert outcome.status == OutcomeStatus.CLARIFY

    def test_list_with_monthly_total(self):
        subs = [
            Subscription(name="Netflix", amount=Decimal("199"), start_date=date(2026, 1, 1)),
            Subscription(
                name="Prime", amount=Decimal("1499"),
                frequency=SubscriptionFrequency.YEARLY, start_date=date(2026, 1, 1),
            ),
        ]
        core = build_core(seed_store(subscriptions=subs))

        lines = dispatch(core, IntentKind.LIST_SUBS).message.splitlines()

        assert lines == [
            "🔁 Subscriptions:",
            "Netflix: ₹199 / monthly",
            "Prime: ₹1,499 / yearly",
            "≈ ₹323.92 per month",
        ]


class TestReminders:
    def test_add_with_date_only(self):
        """A date without a time is due at the end of that day."""
        core = build_core(seed_store())

        outcome = dispatch(core, IntentKind.ADD_REMINDER, title="Pay rent", due_date="2026-03-20")

        assert outcome.message == "Set reminder: Pay rent on 20 Mar 2026, 11:59 PM"
        [reminder] = core.state.all(Tables.REMINDERS)
        assert reminder.due_date == datetime(2026, 3, 20, 23, 59, 59, tzinfo=IST)

    def test_add_with_date_and_time(self):
        core = build_core(seed_store())
        outcome = dispatch(core, IntentKind.ADD_REMINDER, title="Call mom", date="2026-03-15", time="18:30")
        assert outcome.message == "Set reminder: Call mom on 15 Mar 2026, 06:30 PM"

    def test_bad_due_date(self):
        core = build_core(seed_store())
        outcome = dispatch(core, IntentKind.ADD_REMINDER, title="x", due_date="someday")
        assert outcome.message == "'someday' is not a date I understand. Use YYYY-MM-DD HH:MM."

    def test_list_marks_overdue(self):
        late = Reminder(title="Renew passport", due_date=datetime(2026, 3, 1, 9, 0, tzinfo=IST))
        soon = Reminder(title="Pay Rent", due_date=datetime(2026, 3, 20, 9, 0, tzinfo=IST))
        done = Reminder(title="Old", due_date=datetime(2026, 2, 1, tzinfo=IST), is_done=True)
        core = build_core(seed_store(reminders=[soon, late, done]))

        lines = dispatch(core, IntentKind.LIST_REMINDERS).message.splitlines()

        assert lines == [
            "⏰ Pending reminders:",
            "• Renew passport: 01 Mar 2026, 09:00 AM (overdue)",
            "• Pay Rent: 20 Mar 2026, 09:00 AM",
        ]

    def test_mark_done_by_hint(self, rent_reminder):
        core = build_core(seed_store(reminders=[rent_reminder]))

        outcome = dispatch(core, IntentKind.MARK_REMINDER_DONE, target_hint="rent")

        assert outcome.message == "✅ Marked Pay Rent as done."
        assert core.state.get(Tables.REMINDERS, rent_reminder.id).is_done
        assert dispatch(core, IntentKind.LIST_REMINDERS).message == "No pending reminders. 🎉"

    def test_mark_done_by_id_is_idempotent(self, rent_reminder):
        core = build_core(seed_store(reminders=[rent_reminder]))
        dispatch(core, IntentKind.MARK_REMINDER_DONE, reminder_id=rent_reminder.id)
        outcome = dispatch(core, IntentKind.MARK_REMINDER_DONE, reminder_id=rent_reminder.id)
        assert outcome.message == "Pay Rent is already done."

    def test_snooze(self, rent_reminder):
        """Snoozing moves the due date to now plus the hours."""
        core = build_core(seed_store(reminders=[rent_reminder]))

        outcome = dispatch(core, IntentKind.SNOOZE_REMINDER, reminder_id=rent_reminder.id, hours="2")

        assert outcome.message == "💤 Snoozed Pay Rent for 2 hour(s)!"
        assert core.state.get(Tables.REMINDERS, rent_reminder.id).due_date == datetime(
            2026, 3, 14, 12, 0, tzinfo=IST
        )

    def test_snooze_is_capped_at_a_year(self, rent_reminder):
        """A huge snooze is refused instead of overflowing the due date."""
        core = build_core(seed_store(reminders=[rent_reminder]))

        outcome = dispatch(core, IntentKind.SNOOZE_REMINDER, reminder_id=rent_reminder.id, hours="99999999")

        assert outcome.status == OutcomeStatus.CLARIFY
        assert outcome.message == "I can snooze a reminder for at most one year."
        assert core.state.get(Tables.REMINDERS, rent_reminder.id).due_date == rent_reminder.due_date

    def test_edit_proposes_new_values(self, rent_reminder):
        core = build_core(seed_store(reminders=[rent_reminder]))
        session = Session("s")

        outcome = dispatch(
            core, IntentKind.EDIT_REMINDER, target_hint="rent", session=session,
            title="Pay rent and maintenance",
        )

        assert outcome.status == OutcomeStatus.PENDING_CONFIRMATION
        assert session.pending_action.payload == {"title": "Pay rent and maintenance"}
        assert core.state.get(Tables.REMINDERS, rent_reminder.id).title == "Pay Rent"

    def test_edit_without_changes(self, rent_reminder):
        core = build_core(seed_store(reminders=[rent_reminder]))
        outcome = dispatch(core, IntentKind.EDIT_REMINDER, target_hint="rent")
        assert outcome.status == OutcomeStatus.CLARIFY

    def test_delete_reminder_proposal(self, rent_reminder):
        core = build_core(seed_store(reminders=[rent_reminder]))
        outcome = dispatch(core, IntentKind.DELETE_REMINDER, target_hint="rent")
        assert outcome.message.startswith("Delete reminder: Pay Rent (20 Mar 2026, 09:00 AM)?")


class TestPersonalRecords:
    def test_watch_later(self):
        core = build_core(seed_store())
        outcome = dispatch(core, IntentKind.ADD_WATCH_LATER, url="https://youtu.be/abc", title="Talk")
        assert outcome.message == "🎬 Saved to Watch Later: Talk"
        assert len(core.state.all(Tables.MEDIA_ITEMS)) == 1

    def test_watch_later_rejects_non_links(self):
        core = build_core(seed_store())
        outcome = dispatch(core, IntentKind.ADD_WATCH_LATER, url="not a link")
        assert outcome.status == OutcomeStatus.CLARIFY

    def test_password(self):
        core = build_core(seed_store())
        outcome = dispatch(core, IntentKind.ADD_PASSWORD, service="Netflix", username="me")
        assert outcome.message == "🔐 Saved credentials for Netflix."
        [entry] = core.state.all(Tables.PASSWORDS)
        assert entry.password == "Unknown"

    def test_watch_later_list_newest_first(self):
        """Only unwatched links are listed, newest first and numbered."""
        older = MediaItem(title="Old talk", link="https://youtu.be/old", date_added=datetime(2026, 3, 1, tzinfo=IST))
        newer = MediaItem(title="New talk", link="https://youtu.be/new", date_added=datetime(2026, 3, 10, tzinfo=IST))
        seen = MediaItem(title="Seen", link="https://youtu.be/seen", is_watched=True)
        core = build_core(seed_store(media_items=[older, newer, seen]))

        listing = dispatch(core, IntentKind.LIST_WATCH_LATER).message

        assert listing == (
            "📺 Watch Later List:\n"
            "1. New talk (https://youtu.be/new)\n"
            "2. Old talk (https://youtu.be/old)"
        )

    def test_empty_watch_later_list(self):
        core = build_core(seed_store())
        assert dispatch(core, IntentKind.LIST_WATCH_LATER).message == "📺 Your Watch Later list is empty! 🎉"

    def test_mark_watched_by_id_and_by_title(self):
        talk = MediaItem(title="Keynote", link="https://youtu.be/k")
        demo = MediaItem(title="Demo day", link="https://youtu.be/d")
        store = seed_store(media_items=[talk, demo])
        core = build_core(store)

        assert dispatch(core, IntentKind.MARK_WATCHED, item_id=talk.id).message == "Marked as watched! ✅"
        assert dispatch(core, IntentKind.MARK_WATCHED, target_hint="demo").message == "Marked as watched! ✅"

        assert core.state.get(Tables.MEDIA_ITEMS, talk.id).is_watched
        assert store.get(Tables.MEDIA_ITEMS, demo.id)["is_watched"] is True
        assert len(core.state.all(Tables.MEDIA_ITEMS)) == 2
        assert dispatch(core, IntentKind.MARK_WATCHED, item_id=talk.id).message == (
            "Keynote is already marked as watched."
        )

    def test_mark_watched_unknown_item(self):
        core = build_core(seed_store())
        outcome = dispatch(core, IntentKind.MARK_WATCHED, item_id="gone")
        assert outcome.status == OutcomeStatus.CLARIFY
        assert outcome.message == "That link is no longer in your Watch Later list."

    def test_list_passwords_names_services_only(self):
        """Services are listed alphabetically; no secret appears."""
        netflix = PasswordEntry(service="Netflix", username="me", password="hunter2")
        bank = PasswordEntry(service="bank", username="acct", password="s3cret")
        core = build_core(seed_store(passwords=[netflix, bank]))

        listing = dispatch(core, IntentKind.LIST_PASSWORDS).message

        assert listing == "🔐 Select a platform to view details:\n🔑 bank\n🔑 Netflix"
        assert "hunter2" not in listing

    def test_view_password(self):
        """The details carry the auto-delete warning and change nothing."""
        netflix = PasswordEntry(service="Netflix", username="me@example.com", password="hunter2")
        store = seed_store(passwords=[netflix])
        core = build_core(store)
        writes_before = len(store.calls)

        by_id = dispatch(core, IntentKind.VIEW_PASSWORD, password_id=netflix.id)
        by_hint = dispatch(core, IntentKind.VIEW_PASSWORD, target_hint="netflix")

        assert by_id.message == (
            "🔐 Netflix\n\n"
            "Username: me@example.com\n"
            "Password: hunter2\n\n"
            "Notes: None\n\n"
            "⚠️ This message will automatically delete in 30 seconds for security!"
        )
        assert by_hint.message == by_id.message
        assert len(store.calls) == writes_before

    def test_view_password_needs_a_service(self):
        core = build_core(seed_store(passwords=[PasswordEntry(service="Netflix")]))
        outcome = dispatch(core, IntentKind.VIEW_PASSWORD)
        assert outcome.status == OutcomeStatus.CLARIFY
        assert outcome.message == "Which service do you want the password for?"

    def test_water_accumulates_per_day(self):
        core = build_core(seed_store())
        first = dispatch(core, IntentKind.ADD_WATER, glasses=2)
        second = dispatch(core, IntentKind.ADD_WATER)
        assert first.message == "💧 Added 2 glass(es). Total today: 2/8 glasses."
        assert second.message == "💧 Added 1 glass(es). Total today: 3/8 glasses."
        assert core.state.get(Tables.DAILY_HABITS, "2026-03-14").water_intake == 3

    def test_wake_and_sleep(self):
        core = build_core(seed_store())
        assert dispatch(core, IntentKind.SET_WAKEUP, time="7:30 am").message == (
            "🌅 Got it! Wake up time set to 07:30 AM."
        )
        assert dispatch(core, IntentKind.SET_SLEEP, time="23:15").message == (
            "🌙 Sleep well! Logged sleep time as 11:15 PM."
        )
        habit = core.state.get(Tables.DAILY_HABITS, "2026-03-14")
        assert habit.wake_up_time == "07:30 AM"
        assert habit.sleep_time == "11:15 PM"

    def test_unknown_echoes_reply(self):
        core = build_core(seed_store())
        outcome = dispatch(core, IntentKind.UNKNOWN, reply_text="Hi! How can I help?")
        assert outcome.ok
        assert outcome.message == "Hi! How can I help?"

    def test_unknown_without_reply(self):
        core = build_core(seed_store())
        outcome = dispatch(core, IntentKind.UNKNOWN)
        assert outcome.status == OutcomeStatus.CLARIFY
        assert outcome.message.startswith("I'm not sure how to handle that.")

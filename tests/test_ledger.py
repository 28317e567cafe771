"""
Tests for the Ledger Mutator.

Every rule is checked with plain records; nothing here touches a store.
"""

import pytest
from datetime import date
from decimal import Decimal

from lifesync.ledger import (
    BalanceOverwrite,
    Expense,
    Income,
    LedgerError,
    OpenAccount,
    Settlement,
    Split,
    SubscriptionCharge,
    Transfer,
    apply,
    format_money,
    split_shares,
)
from lifesync.models.records import AccountType, Friend, TransactionKind

from tests.conftest import make_account


def by_id(*records):
    return {r.id: r for r in records}


class TestExpenseAndIncome:
    """Single-account flows."""

    def test_expense_debits_account(self):
        """Expense lowers balance and raises outflow by the amount."""
        cash = make_account("Cash", "1000")
        change = apply(by_id(cash), {}, Expense(amount=Decimal("500"), account_id=cash.id, purpose="lunch"))

        updated = change.accounts[0]
        assert updated.balance == Decimal("500")
        assert updated.total_outflow == Decimal("500")
        assert updated.is_balanced
        assert change.transaction.kind == TransactionKind.EXPENSE
        assert change.transaction.account_id == cash.id
        assert change.message == "Successfully logged EXPENSE of ₹500 for lunch."

    def test_income_credits_account(self):
        """Income raises balance and inflow."""
        cash = make_account("Cash", "100")
        change = apply(by_id(cash), {}, Income(amount=Decimal("250.50"), account_id=cash.id, purpose="refund"))

        updated = change.accounts[0]
        assert updated.balance == Decimal("350.50")
        assert updated.total_inflow == Decimal("250.50")
        assert updated.is_balanced
        assert change.transaction.kind == TransactionKind.INCOME

    def test_inputs_are_not_modified(self):
        """apply() returns copies; the records passed in stay as they were."""
        cash = make_account("Cash", "1000")
        apply(by_id(cash), {}, Expense(amount=Decimal("1"), account_id=cash.id, purpose="x"))
        assert cash.balance == Decimal("1000")
        assert cash.total_outflow == Decimal("0")

    def test_non_positive_amount_rejected(self):
        """Zero and negative amounts raise LedgerError."""
        cash = make_account("Cash")
        for amount in ("0", "-5"):
            with pytest.raises(LedgerError):
                apply(by_id(cash), {}, Expense(amount=Decimal(amount), account_id=cash.id, purpose="x"))

    def test_unknown_account_rejected(self):
        """An account id that does not exist raises LedgerError."""
        with pytest.raises(LedgerError):
            apply({}, {}, Expense(amount=Decimal("5"), account_id="missing", purpose="x"))

    def test_transaction_date_comes_from_mutation(self):
        """The transaction is dated with the mutation's date."""
        cash = make_account("Cash")
        change = apply(
            by_id(cash), {},
            Expense(amount=Decimal("5"), account_id=cash.id, purpose="x", on=date(2026, 1, 2)),
        )
        assert change.transaction.date == date(2026, 1, 2)


class TestTransfer:
    """Money moving between two accounts."""

    def test_transfer_conserves_total(self):
        """The sum of both balances is unchanged by a transfer."""
        a = make_account("Cash", "1000")
        b = make_account("Bank", "200")
        change = apply(
            by_id(a, b), {},
            Transfer(amount=Decimal("300"), from_account_id=a.id, to_account_id=b.id),
        )
        source, target = change.accounts
        assert source.balance + target.balance == a.balance + b.balance
        assert source.balance == Decimal("700")
        assert target.balance == Decimal("500")
        assert source.total_outflow == Decimal("300")
        assert target.total_inflow == Decimal("300")
        assert source.is_balanced and target.is_balanced
        assert change.transaction.is_transfer
        assert change.transaction.to_account_id == b.id

    def test_transfer_into_same_account_rejected(self):
        """from == to raises LedgerError."""
        a = make_account("Cash")
        with pytest.raises(LedgerError):
            apply(by_id(a), {}, Transfer(amount=Decimal("1"), from_account_id=a.id, to_account_id=a.id))


class TestSplit:
    """Bills shared with friends."""

    def test_split_paid_by_me(self):
        """Each friend owes one share; my account pays the whole bill."""
        cash = make_account("Cash", "1000")
        alice, bob = Friend(name="Alice"), Friend(name="Bob")
        change = apply(
            by_id(cash), by_id(alice, bob),
            Split(amount=Decimal("300"), participant_ids=[alice.id, bob.id], account_id=cash.id, purpose="Dinner"),
        )
        assert change.accounts[0].balance == Decimal("700")
        assert change.accounts[0].total_outflow == Decimal("300")
        assert [f.net_balance for f in change.friends] == [Decimal("100.00"), Decimal("100.00")]
        assert change.transaction.payer_name == "Me"
        assert change.transaction.purpose == "Split: Dinner (3 members, ₹100 each)"
        assert change.transaction.participant_names == ["Alice", "Bob"]

    def test_split_paid_by_friend(self):
        """The paying friend's balance drops by everything but their own share."""
        bob = Friend(name="Bob")
        change = apply(
            {}, by_id(bob),
            Split(amount=Decimal("300"), participant_ids=[bob.id], payer_friend_id=bob.id),
        )
        assert change.accounts == []
        assert change.friends[0].net_balance == Decimal("-150.00")
        assert change.transaction.payer_name == "Bob"
        assert change.transaction.account_id is None

    def test_shares_add_up_to_amount(self):
        """participants * share + retained share == amount, to the paisa."""
        for amount, n in ((Decimal("100"), 2), (Decimal("10"), 6), (Decimal("999.99"), 4)):
            share, retained = split_shares(amount, n)
            assert share * n + retained == amount

    def test_split_without_friends_rejected(self):
        """An empty participant list raises LedgerError."""
        cash = make_account("Cash")
        with pytest.raises(LedgerError):
            apply(by_id(cash), {}, Split(amount=Decimal("10"), participant_ids=[], account_id=cash.id))


class TestSettlement:
    """Settling up drives a friend's balance to zero."""

    def test_friend_owes_me(self):
        """A positive balance is paid into my account."""
        cash = make_account("Cash", "100")
        alice = Friend(name="Alice", net_balance=Decimal("250"))
        change = apply(by_id(cash), by_id(alice), Settlement(friend_id=alice.id, account_id=cash.id))
        assert change.accounts[0].balance == Decimal("350")
        assert change.accounts[0].total_inflow == Decimal("250")
        assert change.friends[0].net_balance == Decimal("0")
        assert change.transaction.kind == TransactionKind.SETTLEMENT
        assert change.transaction.purpose == "Settlement with Alice"

    def test_i_owe_friend(self):
        """A negative balance is paid out of my account."""
        cash = make_account("Cash", "100")
        alice = Friend(name="Alice", net_balance=Decimal("-40"))
        change = apply(by_id(cash), by_id(alice), Settlement(friend_id=alice.id, account_id=cash.id))
        assert change.accounts[0].balance == Decimal("60")
        assert change.accounts[0].total_outflow == Decimal("40")
        assert change.friends[0].net_balance == Decimal("0")
        assert change.accounts[0].is_balanced

    def test_already_settled_rejected(self):
        """Settling a zero balance raises LedgerError."""
        cash = make_account("Cash")
        alice = Friend(name="Alice")
        with pytest.raises(LedgerError):
            apply(by_id(cash), by_id(alice), Settlement(friend_id=alice.id, account_id=cash.id))


class TestBalanceOverwrite:
    """Manual balance corrections."""

    def test_increase_is_logged_as_income(self):
        """Raising the balance records a synthetic INCOME for the delta."""
        cash = make_account("Cash", "1000")
        change = apply(by_id(cash), {}, BalanceOverwrite(account_id=cash.id, new_balance=Decimal("1200")))
        assert change.accounts[0].balance == Decimal("1200")
        assert change.accounts[0].is_balanced
        assert change.transaction.kind == TransactionKind.INCOME
        assert change.transaction.amount == Decimal("200")
        assert change.transaction.purpose == "Manual Balance Adjustment for Cash"
        assert change.transaction.payer_name == "System"

    def test_decrease_is_logged_as_expense(self):
        """Lowering the balance records a synthetic EXPENSE."""
        cash = make_account("Cash", "1000")
        change = apply(by_id(cash), {}, BalanceOverwrite(account_id=cash.id, new_balance=Decimal("-50")))
        assert change.accounts[0].balance == Decimal("-50")
        assert change.transaction.kind == TransactionKind.EXPENSE
        assert change.transaction.amount == Decimal("1050")

    def test_unchanged_balance_rejected(self):
        """Setting the current balance again raises LedgerError."""
        cash = make_account("Cash", "1000")
        with pytest.raises(LedgerError):
            apply(by_id(cash), {}, BalanceOverwrite(account_id=cash.id, new_balance=Decimal("1000")))


class TestAccountsAndSubscriptions:
    def test_open_account(self):
        """A new account starts at its opening balance with no flows."""
        change = apply({}, {}, OpenAccount(name="Wallet", type=AccountType.WALLET, opening_balance=Decimal("75")))
        account = change.accounts[0]
        assert account.balance == Decimal("75")
        assert account.total_inflow == account.total_outflow == Decimal("0")
        assert change.new_account_ids == [account.id]
        assert change.transaction is None

    def test_duplicate_account_name_rejected(self):
        """Account names are unique regardless of case."""
        cash = make_account("Cash")
        with pytest.raises(LedgerError):
            apply(by_id(cash), {}, OpenAccount(name="cash"))

    def test_subscription_charge(self):
        """A subscription charge is an outflow with its own transaction kind."""
        cash = make_account("Cash", "1000")
        change = apply(by_id(cash), {}, SubscriptionCharge(amount=Decimal("199"), account_id=cash.id, name="Netflix"))
        assert change.accounts[0].balance == Decimal("801")
        assert change.transaction.kind == TransactionKind.SUBSCRIPTION
        assert change.transaction.purpose == "Subscription: Netflix"


class TestFormatMoney:
    def test_formats(self):
        """Whole amounts drop the paise; negatives put the sign first."""
        assert format_money(Decimal("500")) == "₹500"
        assert format_money(Decimal("1250.5")) == "₹1,250.50"
        assert format_money(Decimal("-20")) == "-₹20"
        assert format_money(Decimal("3"), "$") == "$3"

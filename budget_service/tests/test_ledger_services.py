"""
Integration tests for group, expense, payment and balance services.
"""

import pytest
from datetime import datetime
from decimal import Decimal
from unittest.mock import patch
from budget_service.exceptions import ComputationError, NotFoundError, PermissionDeniedError, ValidationError
from budget_service.models.expenses import ExpensePayment, ExpenseSplit, SharedExpense, SplitType
from budget_service.models.groups import ActivityAction, GroupActivity, GroupRole
from budget_service.schemas.expense_schema import ExpenseCreate, SplitConfig
from budget_service.schemas.group_schema import GroupMemberCreate, GroupUpdate
from budget_service.schemas.payment_schema import PaymentCreate, QuickSettleRequest
from budget_service.services.balance_service import get_group_balances, get_group_stats
from budget_service.services.expense_service import create_expense, delete_expense, get_expense_for_user
from budget_service.services.group_service import (
    add_member, delete_group, get_group, get_group_members, get_group_activity, get_user_groups, update_group,
    verify_group_access
)
from budget_service.services.payment_service import record_payment, quick_settle, get_payments
from budget_service.tests.conftest import USER_X, USER_Y, USER_Z, OUTSIDER, add_equal_expense, split_of


@pytest.mark.integration
class TestGroups:
    """Test group creation, membership and settings."""

    def test_creator_is_owner(self, db_session, group):
        """Test the creator becomes owner and roles are kept."""
        members = {m.user_id: m for m in get_group_members(db_session, group.id)}

        assert members[USER_X.user_id].role == GroupRole.owner
        assert members[USER_Y.user_id].role == GroupRole.admin
        assert members[USER_Z.user_id].role == GroupRole.member
        assert [g.id for g in get_user_groups(db_session, USER_Z.user_id)] == [group.id]

    def test_member_cannot_add_members(self, db_session, group):
        """Test plain members cannot add members."""
        with pytest.raises(PermissionDeniedError, match="Insufficient permissions"):
            add_member(db_session, group.id, GroupMemberCreate(
                user_id=OUTSIDER.user_id, name=OUTSIDER.name, email=OUTSIDER.email
            ), USER_Z)

    def test_duplicate_member_rejected(self, db_session, group):
        """Test an existing member cannot be added twice."""
        with pytest.raises(ValidationError, match="already a member"):
            add_member(db_session, group.id, GroupMemberCreate(
                user_id=USER_Z.user_id, name=USER_Z.name, email=USER_Z.email
            ), USER_Y)

    def test_activity_recorded(self, db_session, group):
        """Test group creation and member additions are logged."""
        actions = [a.action.value for a in get_group_activity(db_session, group.id)]

        assert sorted(actions) == ["group_created", "member_added", "member_added"]

    def test_owner_updates_settings(self, db_session, group):
        """Test only the fields sent are changed and currency is stored upper-case."""
        updated = update_group(db_session, group.id, GroupUpdate(name="Ski trip", currency="eur"), USER_X)

        assert (updated.name, updated.currency, updated.description) == ("Ski trip", "EUR", None)
        entry = db_session.query(GroupActivity)\
            .filter(GroupActivity.action == ActivityAction.group_updated).one()
        assert '"name": "Ski trip"' in entry.details
        assert "description" not in entry.details

    def test_admin_cannot_update_settings(self, db_session, group):
        """Test admins cannot change group settings."""
        with pytest.raises(PermissionDeniedError, match="Insufficient permissions"):
            update_group(db_session, group.id, GroupUpdate(name="Hijacked"), USER_Y)

        assert get_group(db_session, group.id).name == "Road trip"

    def test_owner_deletes_group(self, db_session, group):
        """Test a deleted group disappears from lookups but keeps its activity log."""
        delete_group(db_session, group.id, USER_X)

        assert get_group(db_session, group.id) is None
        assert get_user_groups(db_session, USER_Z.user_id) == []
        with pytest.raises(NotFoundError, match="Group not found"):
            verify_group_access(db_session, group.id, USER_Z.user_id)
        assert db_session.query(GroupActivity)\
            .filter(GroupActivity.action == ActivityAction.group_deleted).count() == 1

    def test_only_owner_deletes_group(self, db_session, group):
        """Test admins cannot delete the group."""
        with pytest.raises(PermissionDeniedError, match="Only group owners can delete groups"):
            delete_group(db_session, group.id, USER_Y)

        assert get_group(db_session, group.id) is not None


@pytest.mark.integration
class TestExpenses:
    """Test expense creation, reading and deletion."""

    def test_equal_expense_splits(self, db_session, group):
        """Test equal splits and the payer's split starting paid."""
        expense = add_equal_expense(db_session, group.id, USER_X, "100.00", [USER_X, USER_Y, USER_Z])

        assert sorted(s.amount for s in expense.splits) == [Decimal("33.33")] * 3
        assert split_of(expense, USER_X).is_paid is True
        assert split_of(expense, USER_Y).is_paid is False

    def test_shares_expense_stores_configuration(self, db_session, group):
        """Test shares splits keep their share count."""
        expense = create_expense(db_session, group.id, ExpenseCreate(
            amount=Decimal("90.00"),
            description="Cabin",
            category="lodging",
            date=datetime(2026, 2, 1),
            paid_by=USER_Y.user_id,
            split_type=SplitType.shares,
            splits=[SplitConfig(user_id=USER_Y.user_id, shares=1), SplitConfig(user_id=USER_Z.user_id, shares=2)]
        ), USER_Y)

        z_split = split_of(expense, USER_Z)
        assert z_split.amount == Decimal("60.00")
        assert z_split.shares == 2

    def test_participant_must_be_member(self, db_session, group):
        """Test participants must be group members."""
        with pytest.raises(ValidationError, match="not a member"):
            add_equal_expense(db_session, group.id, USER_X, "10.00", [USER_X, OUTSIDER])

    def test_bad_percentages_rejected(self, db_session, group):
        """Test invalid percentages write nothing."""
        with pytest.raises(ValidationError, match="Percentages must add up to 100%"):
            create_expense(db_session, group.id, ExpenseCreate(
                amount=Decimal("100.00"),
                description="Groceries",
                category="food",
                date=datetime(2026, 2, 1),
                paid_by=USER_X.user_id,
                split_type=SplitType.percentage,
                splits=[
                    SplitConfig(user_id=USER_X.user_id, percentage=Decimal("60")),
                    SplitConfig(user_id=USER_Y.user_id, percentage=Decimal("30")),
                ]
            ), USER_X)

        assert db_session.query(ExpenseSplit).count() == 0

    def test_outsider_cannot_read_expense(self, db_session, group):
        """Test expense reads are limited to members."""
        expense = add_equal_expense(db_session, group.id, USER_X, "10.00", [USER_X, USER_Y])

        with pytest.raises(PermissionDeniedError):
            get_expense_for_user(db_session, expense.id, OUTSIDER.user_id)
        with pytest.raises(NotFoundError):
            get_expense_for_user(db_session, "missing", USER_X.user_id)

    def test_payer_deletes_expense_with_payments(self, db_session, group):
        """Test splits and payments go with the expense and balances no longer count it."""
        expense = add_equal_expense(db_session, group.id, USER_Z, "40.00", [USER_Y, USER_Z])
        expense_id = expense.id
        record_payment(db_session, PaymentCreate(
            split_id=split_of(expense, USER_Y).id, amount=Decimal("5.00")
        ), USER_Y)

        delete_expense(db_session, expense_id, USER_Z)

        assert db_session.query(SharedExpense).count() == 0
        assert db_session.query(ExpenseSplit).count() == 0
        assert db_session.query(ExpensePayment).count() == 0
        nets = {b.user_id: b.net_balance for b in get_group_balances(db_session, group.id, USER_X).balances}
        assert set(nets.values()) == {Decimal("0")}
        entry = db_session.query(GroupActivity)\
            .filter(GroupActivity.action == ActivityAction.expense_deleted).one()
        assert entry.user_id == USER_Z.user_id
        assert '"payments_removed": 1' in entry.details

    def test_admin_deletes_other_members_expense(self, db_session, group):
        """Test admins may delete an expense someone else paid."""
        expense = add_equal_expense(db_session, group.id, USER_X, "30.00", [USER_X, USER_Z])

        delete_expense(db_session, expense.id, USER_Y)

        assert db_session.query(SharedExpense).count() == 0

    def test_member_cannot_delete_others_expense(self, db_session, group):
        """Test plain members may only delete expenses they paid."""
        expense = add_equal_expense(db_session, group.id, USER_X, "30.00", [USER_X, USER_Z])

        with pytest.raises(PermissionDeniedError, match="Only the payer or a group admin"):
            delete_expense(db_session, expense.id, USER_Z)

        assert db_session.query(ExpenseSplit).count() == 2

    def test_delete_unknown_expense(self, db_session, group):
        """Test deleting a missing expense is a not-found error."""
        with pytest.raises(NotFoundError, match="Expense not found"):
            delete_expense(db_session, "missing", USER_X)


@pytest.mark.integration
class TestPayments:
    """Test manual payments and quick settle."""

    def test_partial_then_full_payment(self, db_session, group):
        """Test a split flips to paid once fully covered."""
        expense = add_equal_expense(db_session, group.id, USER_X, "60.00", [USER_X, USER_Y])
        y_split_id = split_of(expense, USER_Y).id

        record_payment(db_session, PaymentCreate(split_id=y_split_id, amount=Decimal("10.00")), USER_Y)
        split = db_session.get(ExpenseSplit, y_split_id)
        assert split.is_paid is False

        record_payment(db_session, PaymentCreate(split_id=y_split_id, amount=Decimal("20.00")), USER_Y)
        db_session.refresh(split)
        assert split.is_paid is True

    def test_overpayment_rejected(self, db_session, group):
        """Test payments above the remaining amount are rejected."""
        expense = add_equal_expense(db_session, group.id, USER_X, "60.00", [USER_X, USER_Y])

        with pytest.raises(ValidationError, match="exceeds remaining balance of 30"):
            record_payment(db_session, PaymentCreate(
                split_id=split_of(expense, USER_Y).id, amount=Decimal("30.01")
            ), USER_Y)

    def test_unknown_split(self, db_session, group):
        """Test paying an unknown split is a not-found error."""
        with pytest.raises(NotFoundError, match="Split not found"):
            record_payment(db_session, PaymentCreate(split_id="nope", amount=Decimal("1.00")), USER_Y)

    def test_quick_settle_caps_at_remaining(self, db_session, group):
        """Test quick settle pays at most what remains."""
        expense = add_equal_expense(db_session, group.id, USER_X, "60.00", [USER_X, USER_Y])
        y_split_id = split_of(expense, USER_Y).id

        response = quick_settle(db_session, group.id, QuickSettleRequest(split_id=y_split_id, amount=Decimal("50.00")), USER_Y)

        assert response.success is True
        assert response.payment.amount == Decimal("30.00")
        assert response.payment.is_paid is True
        with pytest.raises(ValidationError, match="Split is already fully paid"):
            quick_settle(db_session, group.id, QuickSettleRequest(split_id=y_split_id, amount=Decimal("1.00")), USER_Y)

    def test_payment_listing(self, db_session, group):
        """Test payment listing carries expense context."""
        expense = add_equal_expense(db_session, group.id, USER_X, "60.00", [USER_X, USER_Y], description="Tickets")
        record_payment(db_session, PaymentCreate(
            split_id=split_of(expense, USER_Y).id, amount=Decimal("5.00")
        ), USER_Y)

        payments = get_payments(db_session, USER_X, group_id=group.id)
        assert len(payments) == 1
        assert payments[0].expense_description == "Tickets"
        assert payments[0].split_user_id == USER_Y.user_id
        assert get_payments(db_session, OUTSIDER) == []


@pytest.mark.integration
class TestBalances:
    """Test balances and stats read from storage."""

    def test_three_member_scenario(self, db_session, group):
        """Test the three member scenario balances to zero."""
        add_equal_expense(db_session, group.id, USER_X, "90.00", [USER_X, USER_Y, USER_Z])
        add_equal_expense(db_session, group.id, USER_Y, "30.00", [USER_Y, USER_Z])

        response = get_group_balances(db_session, group.id, USER_Y)
        nets = {b.user_id: b.net_balance for b in response.balances}

        assert nets == {
            USER_X.user_id: Decimal("60.00"),
            USER_Y.user_id: Decimal("-15.00"),
            USER_Z.user_id: Decimal("-45.00"),
        }
        assert sum(nets.values()) == Decimal("0")
        assert response.user_balance.user_id == USER_Y.user_id
        assert response.summary.total_expenses == Decimal("120.00")
        assert response.summary.total_owed == Decimal("60.00")
        assert response.summary.total_owing == Decimal("60.00")
        assert len(response.settlements) == 2

    def test_payment_reduces_debtor_balance(self, db_session, group):
        """Test a payment lowers what the debtor owes."""
        expense = add_equal_expense(db_session, group.id, USER_X, "60.00", [USER_X, USER_Y])
        record_payment(db_session, PaymentCreate(
            split_id=split_of(expense, USER_Y).id, amount=Decimal("10.00")
        ), USER_Y)

        response = get_group_balances(db_session, group.id, USER_X)
        balances = {b.user_id: b for b in response.balances}

        assert balances[USER_Y.user_id].total_owed == Decimal("20.00")
        assert balances[USER_X.user_id].total_owing == Decimal("30.00")
        assert response.summary.total_paid == Decimal("10.00")

    def test_computation_failure_is_wrapped(self, db_session, group):
        """Test calculation errors surface as ComputationError."""
        with patch("budget_service.services.balance_service.calculate_balances", side_effect=ArithmeticError("boom")):
            with pytest.raises(ComputationError, match="Failed to calculate balances"):
                get_group_balances(db_session, group.id, USER_X)

    def test_outsider_refused(self, db_session, group):
        """Test non-members cannot read balances."""
        with pytest.raises(PermissionDeniedError):
            get_group_balances(db_session, group.id, OUTSIDER)

    def test_stats(self, db_session, group):
        """Test group totals and category breakdown."""
        add_equal_expense(db_session, group.id, USER_X, "90.00", [USER_X, USER_Y, USER_Z], category="food")
        add_equal_expense(db_session, group.id, USER_Y, "30.00", [USER_Y, USER_Z], category="fuel")

        stats = get_group_stats(db_session, group.id, USER_Z)

        assert stats.total_expenses == Decimal("120.00")
        assert stats.total_transactions == 2
        assert stats.avg_expense_amount == Decimal("60.00")
        assert stats.category_breakdown == {"food": Decimal("90.00"), "fuel": Decimal("30.00")}
        assert stats.member_contributions[USER_Z.user_id].owes == Decimal("45.00")
        assert stats.active_members == 3

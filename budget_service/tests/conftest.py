"""
Pytest configuration and fixtures for budget_service tests.
"""
import os

# Settings are read when budget_service.db.database is imported
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["SECRET_KEY"] = "test-secret-key-for-budget-service-suite"
os.environ["RABBITMQ_ENABLED"] = "false"

import pytest
from datetime import datetime
from decimal import Decimal
from typing import Callable, Dict, List, Optional
from fastapi.testclient import TestClient

from budget_service.db.database import Base, engine, SessionLocal, get_db
from budget_service.main import app
from budget_service.models.groups import GroupRole
from budget_service.schemas.expense_schema import ExpenseCreate, SplitConfig
from budget_service.schemas.group_schema import GroupCreate, GroupMemberCreate
from budget_service.services.auth.jwt_handler import CurrentUser, create_access_token
from budget_service.services.expense_service import create_expense
from budget_service.services.group_service import create_group, add_member

USER_X = CurrentUser(user_id="user-x", name="Xavier", email="x@example.com")
USER_Y = CurrentUser(user_id="user-y", name="Yasmin", email="y@example.com")
USER_Z = CurrentUser(user_id="user-z", name="Zoe", email="z@example.com")
OUTSIDER = CurrentUser(user_id="user-o", name="Olive", email="o@example.com")


@pytest.fixture
def db_session():
    """Fresh in-memory database per test."""
    Base.metadata.create_all(bind=engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def client(db_session):
    """TestClient whose requests share the test's session."""
    def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def auth_header() -> Callable[[CurrentUser], Dict[str, str]]:
    """Build the access-token header for a user."""
    def _header(user: CurrentUser) -> Dict[str, str]:
        return {"access-token": create_access_token(user.user_id, user.name, user.email)}
    return _header


@pytest.fixture
def group(db_session):
    """Group owned by X with Y as admin and Z as member."""
    group = create_group(db_session, GroupCreate(name="Road trip"), USER_X)
    add_member(db_session, group.id, GroupMemberCreate(
        user_id=USER_Y.user_id, name=USER_Y.name, email=USER_Y.email, role=GroupRole.admin
    ), USER_X)
    add_member(db_session, group.id, GroupMemberCreate(
        user_id=USER_Z.user_id, name=USER_Z.name, email=USER_Z.email
    ), USER_X)
    return group


def add_equal_expense(
    db,
    group_id: str,
    payer: CurrentUser,
    amount: str,
    participants: List[CurrentUser],
    description: str = "Shared cost",
    category: str = "general",
    actor: Optional[CurrentUser] = None
):
    """Create an equal-split expense through the service layer."""
    return create_expense(db, group_id, ExpenseCreate(
        amount=Decimal(amount),
        description=description,
        category=category,
        date=datetime(2026, 1, 10, 12, 0),
        paid_by=payer.user_id,
        split_type="equal",
        splits=[SplitConfig(user_id=p.user_id) for p in participants]
    ), actor or payer)


def split_of(expense, user: CurrentUser):
    return next(split for split in expense.splits if split.user_id == user.user_id)


def verify_suggestions_settle_balances(balances: Dict[str, Decimal], suggestions: List[Dict]) -> None:
    """
    Helper to verify suggested transfers settle every balance.

    Paying reduces what the debtor owes (their net rises); receiving reduces
    what the creditor is owed (their net falls).
    Final balance = initial_balance + paid_out - received
    """
    final = dict(balances)

    for suggestion in suggestions:
        final[suggestion["from"]] = final.get(suggestion["from"], Decimal("0")) + suggestion["amount"]
        final[suggestion["to"]] = final.get(suggestion["to"], Decimal("0")) - suggestion["amount"]

    for user, balance in final.items():
        assert abs(balance) <= Decimal("0.01"), \
            f"User {user} not settled: initial={balances.get(user)}, final={balance}"

import enum
import uuid
from sqlalchemy.sql import func
from sqlalchemy import Column, String, DateTime, DECIMAL, Text, Boolean, Enum, ForeignKey, Integer
from sqlalchemy.orm import relationship
from budget_service.db.database import Base


class SplitType(str, enum.Enum):
    equal = "equal"
    percentage = "percentage"
    custom = "custom"
    shares = "shares"


class PaymentMethod(str, enum.Enum):
    cash = "cash"
    venmo = "venmo"
    paypal = "paypal"
    bank_transfer = "bank_transfer"
    zelle = "zelle"
    other = "other"
    # Recorded by the system rather than chosen by a user
    settlement = "settlement"
    bulk_settlement = "bulk_settlement"
    quick_settle = "quick_settle"


class SharedExpense(Base):
    __tablename__ = "shared_expenses"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()), unique=True, nullable=False)
    group_id = Column(String, ForeignKey("groups.id", ondelete="CASCADE"), nullable=False, index=True)
    amount = Column(DECIMAL(10, 2), nullable=False)
    description = Column(String(200), nullable=False)
    category = Column(String(100), nullable=False)
    date = Column(DateTime(timezone=True), nullable=False)
    paid_by = Column(String, nullable=False, index=True)  # Reference to identity provider
    split_type = Column(Enum(SplitType), nullable=False)
    split_data = Column(Text, nullable=True)  # Raw split configuration (JSON)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False, index=True)

    splits = relationship("ExpenseSplit", back_populates="expense", cascade="all, delete-orphan")


class ExpenseSplit(Base):
    __tablename__ = "expense_splits"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()), unique=True, nullable=False)
    expense_id = Column(String, ForeignKey("shared_expenses.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(String, nullable=False, index=True)
    amount = Column(DECIMAL(10, 2), nullable=False)
    percentage = Column(DECIMAL(5, 2), nullable=True)
    shares = Column(Integer, nullable=True)
    is_paid = Column(Boolean, nullable=False, default=False)

    expense = relationship("SharedExpense", back_populates="splits")
    payments = relationship("ExpensePayment", back_populates="split", cascade="all, delete-orphan")


class ExpensePayment(Base):
    __tablename__ = "expense_payments"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()), unique=True, nullable=False)
    split_id = Column(String, ForeignKey("expense_splits.id", ondelete="CASCADE"), nullable=False, index=True)
    paid_by = Column(String, nullable=False, index=True)
    amount = Column(DECIMAL(10, 2), nullable=False)
    method = Column(Enum(PaymentMethod), nullable=True)
    notes = Column(Text, nullable=True)
    date = Column(DateTime(timezone=True), server_default=func.now(), nullable=False, index=True)

    split = relationship("ExpenseSplit", back_populates="payments")

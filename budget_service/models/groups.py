import enum
import uuid
from sqlalchemy.sql import func
from sqlalchemy import Column, String, DateTime, Enum, ForeignKey, Boolean, Text
from budget_service.db.database import Base


class GroupRole(str, enum.Enum):
    owner = "owner"
    admin = "admin"
    member = "member"


class ActivityAction(str, enum.Enum):
    group_created = "group_created"
    group_updated = "group_updated"
    group_deleted = "group_deleted"
    member_added = "member_added"
    expense_added = "expense_added"
    expense_deleted = "expense_deleted"
    payment_made = "payment_made"
    settlement_made = "settlement_made"
    bulk_settlement_made = "bulk_settlement_made"


class Group(Base):
    __tablename__ = "groups"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()), unique=True, nullable=False)
    name = Column(String(50), nullable=False, index=True)
    description = Column(Text, nullable=True)
    currency = Column(String(3), nullable=False, default="USD")
    created_by = Column(String, nullable=False)  # Reference to identity provider (no FK constraint)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False, index=True)
    updated_at = Column(DateTime(timezone=True), nullable=True, onupdate=func.now())


class GroupMember(Base):
    __tablename__ = "group_members"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()), unique=True, nullable=False)
    group_id = Column(String, ForeignKey("groups.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(String, nullable=False, index=True)  # Reference to identity provider
    name = Column(String(100), nullable=False)
    email = Column(String(255), nullable=False)
    role = Column(Enum(GroupRole), nullable=False, default=GroupRole.member)
    is_active = Column(Boolean, nullable=False, default=True)
    joined_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)


class GroupActivity(Base):
    __tablename__ = "group_activities"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()), unique=True, nullable=False)
    group_id = Column(String, ForeignKey("groups.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(String, nullable=False, index=True)
    action = Column(Enum(ActivityAction), nullable=False)
    details = Column(Text, nullable=True)  # JSON document
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False, index=True)

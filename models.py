import uuid
import datetime as dt
from decimal import Decimal
from typing import Optional

from sqlalchemy import (
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy.types import TypeDecorator

from database import Base


ROLE_OWNER = "owner"
ROLE_MEMBER = "member"
DEFAULT_CATEGORY_COLOR = "#007AFF"


class Money(TypeDecorator):
    """Exact decimal amount stored as its canonical string."""

    impl = String(40)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        if isinstance(value, float):
            raise TypeError("Money amounts must not be floats")
        return str(Decimal(value))

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        return Decimal(value)


class TimestampMixin:
    created_at: Mapped[dt.datetime] = mapped_column(
        DateTime, default=dt.datetime.utcnow, nullable=False
    )
    last_modified_at: Mapped[Optional[dt.datetime]] = mapped_column(DateTime)


class User(Base, TimestampMixin):
    __tablename__ = "users"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    name: Mapped[Optional[str]] = mapped_column(String(100))
    email: Mapped[str] = mapped_column(String(100), nullable=False)

    memberships: Mapped[list["UserGroup"]] = relationship(
        "UserGroup", back_populates="user"
    )

    __table_args__ = (UniqueConstraint("email", name="uq_users_email"),)


class Group(Base, TimestampMixin):
    __tablename__ = "groups"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="USD")

    categories: Mapped[list["Category"]] = relationship(
        "Category",
        back_populates="group",
        cascade="all, delete-orphan",
    )
    entries: Mapped[list["Entry"]] = relationship(
        "Entry",
        back_populates="group",
        cascade="all, delete-orphan",
    )
    memberships: Mapped[list["UserGroup"]] = relationship(
        "UserGroup",
        back_populates="group",
        cascade="all, delete-orphan",
    )


class Category(Base, TimestampMixin):
    __tablename__ = "categories"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    color: Mapped[str] = mapped_column(
        String(9), nullable=False, default=DEFAULT_CATEGORY_COLOR
    )
    group_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("groups.id", ondelete="CASCADE"), nullable=False
    )

    group: Mapped["Group"] = relationship("Group", back_populates="categories")
    entries: Mapped[list["Entry"]] = relationship(
        "Entry", back_populates="category"
    )

    __table_args__ = (Index("ix_categories_group_name", "group_id", "name"),)


class Entry(Base, TimestampMixin):
    __tablename__ = "entries"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    description: Mapped[Optional[str]] = mapped_column(Text)
    date: Mapped[dt.date] = mapped_column(Date, nullable=False)
    group_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("groups.id", ondelete="CASCADE"), nullable=False
    )
    category_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        ForeignKey("categories.id", ondelete="SET NULL")
    )

    group: Mapped["Group"] = relationship("Group", back_populates="entries")
    category: Mapped[Optional["Category"]] = relationship(
        "Category", back_populates="entries"
    )
    items: Mapped[list["Item"]] = relationship(
        "Item",
        back_populates="entry",
        cascade="all, delete-orphan",
    )

    __table_args__ = (
        Index("ix_entries_group_date", "group_id", "date"),
        Index("ix_entries_category_date", "category_id", "date"),
    )


class Item(Base, TimestampMixin):
    __tablename__ = "items"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    description: Mapped[Optional[str]] = mapped_column(Text)
    amount: Mapped[Decimal] = mapped_column(Money, nullable=False)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    entry_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("entries.id", ondelete="CASCADE"), nullable=False
    )

    entry: Mapped["Entry"] = relationship("Entry", back_populates="items")

    __table_args__ = (Index("ix_items_entry_created", "entry_id", "created_at"),)

    @property
    def line_total(self) -> Decimal:
        return self.amount * self.quantity


class UserGroup(Base):
    __tablename__ = "user_groups"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("users.id"), nullable=False
    )
    group_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("groups.id", ondelete="CASCADE"), nullable=False
    )
    role: Mapped[str] = mapped_column(String(20), nullable=False, default=ROLE_MEMBER)
    joined_at: Mapped[dt.datetime] = mapped_column(
        DateTime, default=dt.datetime.utcnow, nullable=False
    )

    user: Mapped["User"] = relationship("User", back_populates="memberships")
    group: Mapped["Group"] = relationship("Group", back_populates="memberships")

    __table_args__ = (
        Index("ix_user_groups_user", "user_id"),
        Index("ix_user_groups_group", "group_id"),
    )

    @property
    def is_owner(self) -> bool:
        return self.role == ROLE_OWNER

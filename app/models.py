from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import List, Optional

from sqlalchemy import (
    Boolean,
    Column,
    Date,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Table,
    Text,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.database import Base

# ---------------------------------------------------------------------------
# Association table: Seller <-> Type (many-to-many)
# ---------------------------------------------------------------------------
seller_types = Table(
    "seller_types",
    Base.metadata,
    Column("seller_id", Integer, ForeignKey("sellers.id", ondelete="CASCADE"), primary_key=True),
    Column("type_id", Integer, ForeignKey("types.id", ondelete="CASCADE"), primary_key=True),
)


# ---------------------------------------------------------------------------
# Type
# ---------------------------------------------------------------------------
class Type(Base):
    __tablename__ = "types"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    position: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), onupdate=func.now(), nullable=True
    )

    # Relationships — lazy="noload": services pick what to load per call
    sellers: Mapped[List["Seller"]] = relationship(
        "Seller", secondary=seller_types, back_populates="types", lazy="noload"
    )


# ---------------------------------------------------------------------------
# Seller
# ---------------------------------------------------------------------------
class Seller(Base):
    __tablename__ = "sellers"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(200), nullable=False, index=True)
    email: Mapped[Optional[str]] = mapped_column(String(255), unique=True, nullable=True)
    bio: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    rating: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    commission: Mapped[Optional[Decimal]] = mapped_column(Numeric(5, 2), nullable=True)
    verified: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    joined_on: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), onupdate=func.now(), nullable=True
    )

    types: Mapped[List["Type"]] = relationship(
        "Type", secondary=seller_types, back_populates="sellers", lazy="noload"
    )
    # Customer lists can be long; only returned when asked for explicitly.
    customers: Mapped[List["Customer"]] = relationship(
        "Customer",
        back_populates="seller",
        lazy="noload",
        info={"autopopulate": False},
    )


# ---------------------------------------------------------------------------
# Customer
# ---------------------------------------------------------------------------
class Customer(Base):
    __tablename__ = "customers"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    first_name: Mapped[str] = mapped_column(String(100), nullable=False)
    last_name: Mapped[Optional[str]] = mapped_column(String(100), nullable=True, index=True)
    email: Mapped[Optional[str]] = mapped_column(String(255), unique=True, nullable=True)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    age: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    balance: Mapped[Optional[Decimal]] = mapped_column(Numeric(12, 2), nullable=True)
    is_vip: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    birthday: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), onupdate=func.now(), nullable=True
    )

    # Foreign keys (nullable: relations are cleared before a row is removed)
    seller_id: Mapped[Optional[int]] = mapped_column(
        Integer, ForeignKey("sellers.id", ondelete="SET NULL"), nullable=True, index=True
    )
    preferred_type_id: Mapped[Optional[int]] = mapped_column(
        Integer, ForeignKey("types.id", ondelete="SET NULL"), nullable=True
    )

    seller: Mapped[Optional["Seller"]] = relationship(
        "Seller", back_populates="customers", lazy="noload"
    )
    # One-way: Type does not know which customers prefer it.
    preferred_type: Mapped[Optional["Type"]] = relationship("Type", lazy="noload")

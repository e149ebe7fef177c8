# apps/backend/linguista/models.py
from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import (
    String,
    TIMESTAMP,
    BigInteger,
    Integer,
    func,
    Index,
)
from sqlalchemy.orm import Mapped, mapped_column

from database import Base


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Customer(Base):
    """
    One row per authenticated user: email plus the linked Stripe customer.

    user_id is the primary key, so the store itself guarantees at most one
    stripe_customer_id per user. The id is filled once and then reused.
    """
    __tablename__ = "customers"

    user_id: Mapped[str] = mapped_column(String, primary_key=True)

    email: Mapped[Optional[str]] = mapped_column(String, nullable=True, index=True)
    stripe_customer_id: Mapped[Optional[str]] = mapped_column(String, nullable=True, unique=True)

    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True),
        default=utcnow,
        server_default=func.now(),
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True),
        default=utcnow,
        server_default=func.now(),
        onupdate=utcnow,
        nullable=False,
    )


class Subscriber(Base):
    """
    Portal access record written by the Stripe webhook.

    A missing row, or a row without stripe_customer_id, simply means
    "no active subscription".
    """
    __tablename__ = "subscribers"

    user_id: Mapped[str] = mapped_column(String, primary_key=True)

    stripe_customer_id: Mapped[Optional[str]] = mapped_column(String, nullable=True, index=True)
    stripe_subscription_id: Mapped[Optional[str]] = mapped_column(String, nullable=True, unique=True)
    price_id: Mapped[Optional[str]] = mapped_column(String, nullable=True)  # e.g. price_XXXXX
    status: Mapped[Optional[str]] = mapped_column(
        String,
        nullable=True,
        doc="Stripe subscription status: active / trialing / canceled / incomplete / ...",
    )
    tier: Mapped[Optional[str]] = mapped_column(String, nullable=True)

    updated_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True),
        default=utcnow,
        server_default=func.now(),
        onupdate=utcnow,
        nullable=False,
    )


class VerificationAttempt(Base):
    """
    One issued one-time code for a (user, channel, contact).

    Redeemable while verified_at is NULL and expires_at is in the future.
    verified_at goes from NULL to a timestamp exactly once and never back.
    """
    __tablename__ = "verification_attempts"

    id: Mapped[int] = mapped_column(
        BigInteger().with_variant(Integer, "sqlite"),
        primary_key=True,
        autoincrement=True,
    )

    user_id: Mapped[str] = mapped_column(String, nullable=False)
    verification_type: Mapped[str] = mapped_column(String(16), nullable=False)  # "phone"
    contact_info: Mapped[str] = mapped_column(String, nullable=False)
    verification_code: Mapped[str] = mapped_column(String(6), nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True),
        default=utcnow,
        server_default=func.now(),
        nullable=False,
    )
    expires_at: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=True), nullable=False)
    verified_at: Mapped[Optional[datetime]] = mapped_column(TIMESTAMP(timezone=True), nullable=True)


Index(
    "ix_verification_attempts_lookup",
    VerificationAttempt.user_id,
    VerificationAttempt.verification_type,
    VerificationAttempt.contact_info,
)
Index("ix_subscribers_customer_status", Subscriber.stripe_customer_id, Subscriber.status)

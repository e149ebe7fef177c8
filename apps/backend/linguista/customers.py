# apps/backend/linguista/customers.py
from __future__ import annotations

import logging
from typing import Optional

from sqlalchemy import select, update
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from .models import Customer, Subscriber, utcnow

logger = logging.getLogger(__name__)


def _insert_for(db: Session):
    """INSERT construct with ON CONFLICT support for the bound dialect."""
    name = db.get_bind().dialect.name
    if name == "postgresql":
        return postgresql.insert
    if name == "sqlite":
        return sqlite.insert
    raise RuntimeError(f"Unsupported database dialect for upsert: {name}")


# === Customer linkage (user_id -> stripe_customer_id) ========================
def get_stripe_customer_id(db: Session, user_id: str) -> Optional[str]:
    return db.execute(
        select(Customer.stripe_customer_id).where(Customer.user_id == user_id)
    ).scalar_one_or_none()


def link_stripe_customer(
    db: Session,
    user_id: str,
    email: Optional[str],
    stripe_customer_id: str,
) -> Optional[str]:
    """
    Fill the user's stripe_customer_id if it is still empty and return
    whatever id the store holds afterwards.

    A concurrent request that linked first wins: the conditional
    ON CONFLICT ... WHERE leaves its id in place and the re-read returns it.
    """
    now = utcnow()
    insert = _insert_for(db)
    stmt = insert(Customer).values(
        user_id=user_id,
        email=email,
        stripe_customer_id=stripe_customer_id,
        created_at=now,
        updated_at=now,
    )
    stmt = stmt.on_conflict_do_update(
        index_elements=[Customer.user_id],
        set_={
            "stripe_customer_id": stmt.excluded.stripe_customer_id,
            "updated_at": stmt.excluded.updated_at,
        },
        where=Customer.__table__.c.stripe_customer_id.is_(None),
    )

    try:
        db.execute(stmt)
        db.commit()
    except IntegrityError:
        # stripe_customer_id is unique; someone else already holds this id
        db.rollback()
        logger.warning("Conflict linking %s to user %s, re-reading", stripe_customer_id, user_id)

    return get_stripe_customer_id(db, user_id)


# === Subscribers (portal access, written by the webhook) =====================
def get_subscriber_customer_id(db: Session, user_id: str) -> Optional[str]:
    return db.execute(
        select(Subscriber.stripe_customer_id).where(Subscriber.user_id == user_id)
    ).scalar_one_or_none()


def upsert_subscriber(
    db: Session,
    user_id: str,
    *,
    stripe_customer_id: str,
    stripe_subscription_id: str,
    price_id: Optional[str],
    status: Optional[str],
    tier: Optional[str],
) -> None:
    found = db.get(Subscriber, user_id)
    if found:
        found.stripe_customer_id = stripe_customer_id
        found.stripe_subscription_id = stripe_subscription_id
        found.price_id = price_id
        found.status = status
        found.tier = tier
    else:
        db.add(
            Subscriber(
                user_id=user_id,
                stripe_customer_id=stripe_customer_id,
                stripe_subscription_id=stripe_subscription_id,
                price_id=price_id,
                status=status,
                tier=tier,
            )
        )
    db.commit()


def update_subscription_status(
    db: Session,
    stripe_subscription_id: str,
    *,
    status: Optional[str],
    price_id: Optional[str],
    tier: Optional[str],
) -> int:
    """Returns the number of subscriber rows touched (0 if unknown subscription)."""
    result = db.execute(
        update(Subscriber)
        .where(Subscriber.stripe_subscription_id == stripe_subscription_id)
        .values(status=status, price_id=price_id, tier=tier, updated_at=utcnow())
    )
    db.commit()
    return result.rowcount

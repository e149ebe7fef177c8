# apps/backend/linguista/verification.py
"""
One-time codes proving control of a contact channel.

A VerificationAttempt is Pending until it is either redeemed (verified_at set,
terminal) or its expires_at passes. Older attempts are never invalidated when
a newer one is issued; each stays redeemable by its own exact code until it
expires.

Channels live in CHANNELS. Adding one means adding an entry there, the issue
and redeem algorithms do not change.
"""
from __future__ import annotations

import os
import secrets
import logging
from dataclasses import dataclass
from datetime import timedelta
from typing import Callable, Dict, Optional, Tuple

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from auth import Principal

from . import sms_twilio
from .errors import InvalidArgument, InvalidOrExpiredCode, StoreError, UnsupportedChannel
from .models import VerificationAttempt, utcnow

logger = logging.getLogger(__name__)

CODE_TTL_MINUTES = int(os.getenv("VERIFICATION_CODE_TTL_MINUTES", "5"))


@dataclass(frozen=True)
class Channel:
    name: str
    sent_message: str
    verified_message: str
    # (contact, code, ttl_minutes) -> (ok, detail)
    deliver: Callable[[str, str, int], Tuple[bool, str]]


def _deliver_sms(contact: str, code: str, ttl_minutes: int) -> Tuple[bool, str]:
    return sms_twilio.send_sms(contact, sms_twilio.compose_code_message(code, ttl_minutes))


CHANNELS: Dict[str, Channel] = {
    "phone": Channel(
        name="phone",
        sent_message="Verification code sent",
        verified_message="Phone number verified successfully",
        deliver=_deliver_sms,
    ),
}


def get_channel(channel_type: Optional[str]) -> Channel:
    channel = CHANNELS.get(channel_type or "")
    if channel is None:
        raise UnsupportedChannel()
    return channel


def _required(value: Optional[str], field: str) -> str:
    value = (value or "").strip()
    if not value:
        raise InvalidArgument(f"{field} is required")
    return value


def generate_code() -> str:
    """6 digits, 100000-999999."""
    return str(100000 + secrets.randbelow(900000))


# === Issue ====================================================================
def issue_code(
    db: Session,
    user: Principal,
    channel_type: Optional[str],
    contact: Optional[str],
) -> Tuple[VerificationAttempt, Channel]:
    channel = get_channel(channel_type)
    contact = _required(contact, "phoneNumber")

    now = utcnow()
    attempt = VerificationAttempt(
        user_id=user.id,
        verification_type=channel.name,
        contact_info=contact,
        verification_code=generate_code(),
        created_at=now,
        expires_at=now + timedelta(minutes=CODE_TTL_MINUTES),
    )
    try:
        db.add(attempt)
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        logger.exception("Failed to store verification attempt for user %s", user.id)
        raise StoreError()

    ok, detail = channel.deliver(contact, attempt.verification_code, CODE_TTL_MINUTES)
    if ok:
        logger.info("Sent %s code to %s (%s)", channel.name, sms_twilio.mask_phone(contact), detail)
    else:
        # the attempt is stored either way; the user can ask for a new code
        logger.warning(
            "Could not deliver %s code to %s: %s",
            channel.name, sms_twilio.mask_phone(contact), detail,
        )
    return attempt, channel


# === Redeem ===================================================================
def find_redeemable(
    db: Session,
    user_id: str,
    channel: str,
    contact: str,
    code: str,
) -> Optional[VerificationAttempt]:
    """Newest unverified, unexpired attempt matching the exact tuple."""
    now = utcnow()
    return db.execute(
        select(VerificationAttempt)
        .where(
            VerificationAttempt.user_id == user_id,
            VerificationAttempt.verification_type == channel,
            VerificationAttempt.contact_info == contact,
            VerificationAttempt.verification_code == code,
            VerificationAttempt.verified_at.is_(None),
            VerificationAttempt.expires_at > now,
        )
        .order_by(VerificationAttempt.created_at.desc(), VerificationAttempt.id.desc())
        .limit(1)
    ).scalar_one_or_none()


def mark_verified(db: Session, attempt_id: int) -> bool:
    """
    Compare-and-set verified_at from NULL to now.

    False means another redemption got there first.
    """
    result = db.execute(
        update(VerificationAttempt)
        .where(
            VerificationAttempt.id == attempt_id,
            VerificationAttempt.verified_at.is_(None),
        )
        .values(verified_at=utcnow())
        .execution_options(synchronize_session=False)
    )
    db.commit()
    return result.rowcount == 1


def redeem_code(
    db: Session,
    user: Principal,
    channel_type: Optional[str],
    contact: Optional[str],
    code: Optional[str],
) -> Channel:
    channel = get_channel(channel_type)
    contact = _required(contact, "phoneNumber")
    code = _required(code, "code")

    try:
        attempt = find_redeemable(db, user.id, channel.name, contact, code)
        if attempt is None:
            raise InvalidOrExpiredCode()
        if not mark_verified(db, attempt.id):
            raise InvalidOrExpiredCode()
    except SQLAlchemyError:
        db.rollback()
        logger.exception("Verification store error for user %s", user.id)
        raise StoreError()

    logger.info("User %s verified %s %s", user.id, channel.name, sms_twilio.mask_phone(contact))
    return channel

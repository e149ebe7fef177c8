# apps/backend/linguista/routes_verification.py
from __future__ import annotations

import os
from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from auth import Principal, get_current_user
from database import get_db

from .bodies import json_body
from .cors import json_response, preflight
from .verification import issue_code, redeem_code

router = APIRouter(prefix="/api/verification", tags=["verification"])

# development only: echo the issued code back so it can be tested without SMS
APP_ENV = os.getenv("APP_ENV", "production").lower()


class SendCodeIn(BaseModel):
    type: Optional[str] = None
    phone_number: Optional[str] = Field(default=None, alias="phoneNumber")


class VerifyCodeIn(BaseModel):
    type: Optional[str] = None
    phone_number: Optional[str] = Field(default=None, alias="phoneNumber")
    code: Optional[str] = None


@router.options("/send-code")
@router.options("/verify-code")
def verification_preflight():
    return preflight()


@router.post("/send-code")
def send_code(
    body: SendCodeIn = Depends(json_body(SendCodeIn)),
    user: Principal = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    attempt, channel = issue_code(db, user, body.type, body.phone_number)

    out = {"success": True, "message": channel.sent_message}
    if APP_ENV == "development":
        out["code"] = attempt.verification_code
    return json_response(out)


@router.post("/verify-code")
def verify_code(
    body: VerifyCodeIn = Depends(json_body(VerifyCodeIn)),
    user: Principal = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    channel = redeem_code(db, user, body.type, body.phone_number, body.code)
    return json_response({"success": True, "message": channel.verified_message})

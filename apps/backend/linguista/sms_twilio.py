# apps/backend/linguista/sms_twilio.py
from __future__ import annotations

import os
import time
import json
from typing import Optional, Tuple

import requests

TWILIO_ACCOUNT_SID = os.getenv("TWILIO_ACCOUNT_SID")
TWILIO_AUTH_TOKEN  = os.getenv("TWILIO_AUTH_TOKEN")
TWILIO_FROM        = os.getenv("TWILIO_FROM")          # e.g. +12565550123
SMS_SENDER_NAME    = os.getenv("SMS_SENDER_NAME", "Linguista")

SEND_URL = "https://api.twilio.com/2010-04-01/Accounts/{sid}/Messages.json"


def mask_phone(phone: str) -> str:
    """Keep the last 4 digits only, for logs."""
    digits = "".join(ch for ch in (phone or "") if ch.isdigit())
    return "***" + digits[-4:] if len(digits) > 4 else "****"


def compose_code_message(code: str, ttl_minutes: int) -> str:
    return f"Your {SMS_SENDER_NAME} verification code is {code}. It expires in {ttl_minutes} minutes."


def send_sms(
    to: str,
    body: str,
    *,
    sender: Optional[str] = None,
    max_retries: int = 3,
    timeout_sec: int = 20,
) -> Tuple[bool, str]:
    """
    Returns (ok, message):
      - ok=True: message carries the Twilio message SID
      - ok=False: message describes the failure (status code and body)
    """
    if not TWILIO_ACCOUNT_SID or not TWILIO_AUTH_TOKEN:
        return False, "Missing TWILIO_ACCOUNT_SID / TWILIO_AUTH_TOKEN"
    from_number = sender or TWILIO_FROM
    if not from_number:
        return False, "Missing TWILIO_FROM"
    if not to:
        return False, "Missing recipient"

    url = SEND_URL.format(sid=TWILIO_ACCOUNT_SID)
    data = {"To": to, "From": from_number, "Body": body}

    # retry 429/5xx with exponential backoff
    attempt = 0
    while True:
        attempt += 1
        try:
            r = requests.post(
                url,
                data=data,
                auth=(TWILIO_ACCOUNT_SID, TWILIO_AUTH_TOKEN),
                timeout=timeout_sec,
            )
        except requests.RequestException as e:
            if attempt <= max_retries:
                time.sleep(min(2 ** attempt, 10))
                continue
            return False, f"network error: {e}"

        if r.status_code in (200, 201):
            try:
                sid = r.json().get("sid") or ""
            except ValueError:
                sid = ""
            return True, f"accepted{(' sid=' + sid) if sid else ''}"

        if r.status_code in (429, 500, 502, 503, 504) and attempt < max_retries:
            ra = r.headers.get("Retry-After")
            delay = int(ra) if ra and ra.isdigit() else min(2 ** attempt, 10)
            time.sleep(delay)
            continue

        try:
            body_str = json.dumps(r.json(), ensure_ascii=False)
        except ValueError:
            body_str = r.text
        return False, f"{r.status_code}: {body_str}"

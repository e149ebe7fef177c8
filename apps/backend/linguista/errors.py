# apps/backend/linguista/errors.py
"""
Error taxonomy shared by the billing and verification routers.

Handlers raise these; linguista.main turns every one of them into
``{"error": message}`` with the matching status and the CORS headers.
Messages are safe to show to the caller. Nothing else crosses the boundary.
"""
from __future__ import annotations


class LinguistaError(Exception):
    status_code: int = 500
    default_message: str = "Internal server error"

    def __init__(self, message: str | None = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class Unauthenticated(LinguistaError):
    status_code = 401
    default_message = "Unauthorized"


class InvalidArgument(LinguistaError):
    status_code = 400
    default_message = "Invalid request"


class NotSubscribed(LinguistaError):
    status_code = 404
    default_message = "Stripe customer not found for this user. Please subscribe to a plan first."


class InvalidOrExpiredCode(LinguistaError):
    # wrong, expired and already-used codes all share this one message
    status_code = 400
    default_message = "Invalid or expired verification code"


class UnsupportedChannel(LinguistaError):
    status_code = 400
    default_message = "Invalid verification type"


class ProviderError(LinguistaError):
    status_code = 500
    default_message = "Billing provider error"


class StoreError(LinguistaError):
    status_code = 500
    default_message = "Database error"

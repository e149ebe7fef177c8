"""
linguista package

Account entitlement backend: Stripe customer linkage, checkout and portal
sessions, and one-time verification codes for secondary contact channels.

Run with:
    uvicorn linguista.main:app

Do NOT put runtime logic here.
"""

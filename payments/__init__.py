"""Deposit payment processing with Stripe."""

from .stripe import create_deposit_payment_intent, handle_webhook

__all__ = ["create_deposit_payment_intent", "handle_webhook"]

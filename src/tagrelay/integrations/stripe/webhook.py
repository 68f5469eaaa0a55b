import json

import stripe

from tagrelay.core.config import settings
from tagrelay.core.errors import SignatureError


def construct_event(payload: bytes, signature: str | None) -> dict:
    """
    Verify the Stripe-Signature header over the raw body, then decode it.
    Any failure raises SignatureError.
    """
    if not signature:
        raise SignatureError("Missing Stripe-Signature header")

    secret = settings.stripe_webhook_secret
    secret_value = secret.get_secret_value() if secret else ""
    if not secret_value:
        raise SignatureError("Webhook secret is not configured")

    try:
        body = payload.decode("utf-8")
    except UnicodeDecodeError as e:
        raise SignatureError("Payload is not valid UTF-8") from e

    try:
        stripe.WebhookSignature.verify_header(
            body,
            signature,
            secret_value,
            tolerance=settings.stripe_signature_tolerance_sec,
        )
    except stripe.SignatureVerificationError as e:
        raise SignatureError(str(e) or "Signature verification failed") from e

    try:
        event = json.loads(body)
    except ValueError as e:
        raise SignatureError(f"Invalid payload: {e}") from e

    if not isinstance(event, dict):
        raise SignatureError("Invalid payload: expected a JSON object")

    return event

import json
import logging
from typing import Any, Dict

import stripe

from storefront.domain.exceptions import ValidationError, WebhookSignatureError

logger = logging.getLogger(__name__)

DEFAULT_TOLERANCE = stripe.Webhook.DEFAULT_TOLERANCE


def verify_event(payload: bytes, signature_header: str, secret: str,
                 tolerance: int = DEFAULT_TOLERANCE) -> Dict[str, Any]:
    """Checks the `Stripe-Signature` header and returns the parsed event.

    Any `v1` entry may match; secrets rotate with both signatures present.
    """
    if not secret:
        raise WebhookSignatureError("Webhook secret not configured")

    try:
        stripe.Webhook.construct_event(payload, signature_header or "", secret, tolerance=tolerance)
    except stripe.SignatureVerificationError as e:
        logger.warning(f"Webhook signature rejected: {e}")
        raise WebhookSignatureError("Invalid webhook signature")
    except ValueError:
        raise ValidationError("Webhook payload is not valid JSON")

    # handlers work on plain dicts
    return json.loads(payload)

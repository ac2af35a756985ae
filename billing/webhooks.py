"""Stripe webhook verification and event normalisation."""

from __future__ import annotations

import json
import logging
from typing import Optional, Union

import stripe
from fastapi import HTTPException

from .exceptions import SignatureVerificationError
from .records import Event

logger = logging.getLogger(__name__)

DEFAULT_TOLERANCE_SECONDS = 300


def verify_and_parse(
    payload: Union[bytes, str],
    signature_header: Optional[str],
    signing_secret: str,
    *,
    tolerance: int = DEFAULT_TOLERANCE_SECONDS,
) -> Event:
    """Verify a signed Stripe payload and reduce it to an ``Event``.

    Only ``type``, ``data``, ``id`` and ``created`` are kept from the envelope.
    """

    if not signature_header:
        raise SignatureVerificationError("Missing Stripe signature header.")

    try:
        body = payload.decode("utf-8") if isinstance(payload, bytes) else payload
    except UnicodeDecodeError as exc:
        logger.warning("Stripe webhook body is not valid UTF-8")
        raise SignatureVerificationError("Invalid payload") from exc

    try:
        stripe.WebhookSignature.verify_header(body, signature_header, signing_secret, tolerance)
    except stripe.SignatureVerificationError as exc:
        logger.warning("Invalid Stripe signature: %s", exc)
        raise SignatureVerificationError("Invalid signature") from exc

    try:
        envelope = json.loads(body)
        return Event(
            type=envelope["type"],
            data=envelope["data"],
            id=envelope["id"],
            created=envelope["created"],
        )
    except (ValueError, KeyError, TypeError) as exc:
        logger.error("Failed to parse Stripe webhook: %s", exc)
        raise SignatureVerificationError("Invalid payload") from exc


def parse_event(payload: bytes, signature_header: Optional[str], signing_secret: str) -> Event:
    """Like ``verify_and_parse`` but answers bad payloads with an HTTP 400."""

    try:
        return verify_and_parse(payload, signature_header, signing_secret)
    except SignatureVerificationError as exc:
        raise HTTPException(status_code=400, detail=exc.message) from exc

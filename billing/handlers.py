"""Applies normalised Stripe events to local subscription records.

This is the consumer side of the webhook flow: the provider itself only ever
writes ``incomplete``, every later status comes through here.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Mapping, Optional, Tuple

from core.datetime_utils import from_unix_timestamp

from .interfaces import SubscriptionStore
from .records import Event, SubscriptionRecord, SubscriptionStatus

logger = logging.getLogger(__name__)

S = SubscriptionStatus

ALLOWED_TRANSITIONS: Dict[SubscriptionStatus, frozenset] = {
    S.INCOMPLETE: frozenset({S.ACTIVE, S.TRIALING, S.PAST_DUE, S.INCOMPLETE_EXPIRED, S.CANCELED}),
    S.TRIALING: frozenset({S.ACTIVE, S.PAST_DUE, S.UNPAID, S.PAUSED, S.CANCELED}),
    S.ACTIVE: frozenset({S.PAST_DUE, S.UNPAID, S.PAUSED, S.CANCELED}),
    S.PAST_DUE: frozenset({S.ACTIVE, S.UNPAID, S.CANCELED}),
    S.UNPAID: frozenset({S.ACTIVE, S.CANCELED}),
    S.PAUSED: frozenset({S.ACTIVE, S.CANCELED}),
    S.INCOMPLETE_EXPIRED: frozenset(),
    S.CANCELED: frozenset(),
}


def can_transition(current: SubscriptionStatus, target: SubscriptionStatus) -> bool:
    return current == target or target in ALLOWED_TRANSITIONS[current]


def _coerce_status(value: Any) -> Optional[SubscriptionStatus]:
    try:
        return SubscriptionStatus(value)
    except ValueError:
        return None


def _invoice_subscription(invoice: Mapping[str, Any]) -> Tuple[Optional[str], Optional[Mapping[str, Any]]]:
    """Subscription id and metadata of an invoice, across API versions."""

    details = invoice.get("subscription_details") or {}
    subscription_id = invoice.get("subscription")
    if not subscription_id:
        # 2025-03-31 and later nest the reference under ``parent``.
        details = (invoice.get("parent") or {}).get("subscription_details") or details
        subscription_id = details.get("subscription")
    if isinstance(subscription_id, Mapping):
        subscription_id = subscription_id.get("id")
    return subscription_id, details.get("metadata")


class SubscriptionEventHandler:
    """Maps webhook events onto ``SubscriptionStore`` writes."""

    def __init__(self, store: SubscriptionStore):
        self.store = store

    def handle(self, event: Event) -> Optional[SubscriptionRecord]:
        payload: Mapping[str, Any] = event.data.get("object") or {}

        if event.type == "checkout.session.completed":
            return self._handle_checkout_completed(payload)
        if event.type in {"customer.subscription.created", "customer.subscription.updated"}:
            return self._handle_subscription_changed(payload)
        if event.type == "customer.subscription.deleted":
            record = self._find_for_subscription(payload.get("id"), payload.get("metadata"))
            return self._transition(record, S.CANCELED)
        if event.type in {"invoice.payment_succeeded", "invoice.paid"}:
            record = self._find_for_subscription(*_invoice_subscription(payload))
            return self._transition(record, S.ACTIVE)
        if event.type == "invoice.payment_failed":
            record = self._find_for_subscription(*_invoice_subscription(payload))
            return self._transition(record, S.PAST_DUE)

        logger.debug("Unhandled Stripe webhook event type: %s", event.type)
        return None

    def _find_for_subscription(
        self,
        subscription_id: Optional[str],
        metadata: Optional[Mapping[str, Any]] = None,
    ) -> Optional[SubscriptionRecord]:
        if not subscription_id:
            return None
        record = self.store.get_by_provider_subscription(subscription_id)
        if record is not None:
            return record

        # Subscription and invoice events can arrive before checkout.session.completed.
        user_id = (metadata or {}).get("user_id")
        if user_id:
            record = self.store.get_by_user(user_id)
        if record is None:
            logger.info("Stripe event for unknown subscription %s", subscription_id)
            return None
        if record.provider_subscription_id:
            logger.warning(
                "User %s is linked to subscription %s, ignoring event for %s",
                record.user_id,
                record.provider_subscription_id,
                subscription_id,
            )
            return None

        record.provider_subscription_id = subscription_id
        logger.info("Linked subscription %s to user %s from event metadata", subscription_id, record.user_id)
        return self.store.update(record)

    def _handle_checkout_completed(self, payload: Mapping[str, Any]) -> Optional[SubscriptionRecord]:
        session_id = payload.get("id")
        subscription_id = payload.get("subscription")
        if not session_id or not subscription_id:
            logger.info("Checkout completed without subscription reference")
            return None

        record = self.store.get_by_session(session_id)
        if record is None:
            logger.warning("Checkout session %s has no local subscription record", session_id)
            return None

        record.provider_subscription_id = subscription_id
        return self.store.update(record)

    def _handle_subscription_changed(self, payload: Mapping[str, Any]) -> Optional[SubscriptionRecord]:
        record = self._find_for_subscription(payload.get("id"), payload.get("metadata"))
        if record is None:
            return None

        period_end = from_unix_timestamp(payload.get("current_period_end"))
        if period_end is not None:
            record.end_date = period_end
        trial_end = from_unix_timestamp(payload.get("trial_end"))
        if trial_end is not None:
            record.trial_ends_at = trial_end

        status = _coerce_status(payload.get("status"))
        if status is not None:
            self._apply_status(record, status)
        return self.store.update(record)

    def _apply_status(self, record: SubscriptionRecord, target: SubscriptionStatus) -> bool:
        if not can_transition(record.status, target):
            logger.warning(
                "Ignoring subscription %s transition %s -> %s",
                record.provider_subscription_id,
                record.status.value,
                target.value,
            )
            return False
        record.status = target
        return True

    def _transition(
        self,
        record: Optional[SubscriptionRecord],
        target: SubscriptionStatus,
    ) -> Optional[SubscriptionRecord]:
        if record is None:
            return None
        if not self._apply_status(record, target):
            return record
        return self.store.update(record)

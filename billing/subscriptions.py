"""Plan changes and cancellations for existing subscriptions."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Mapping, Optional

from .checkout import resolve_tier
from .exceptions import StateConflictError
from .interfaces import PrincipalAccessor, SubscriptionStore
from .records import SubscriptionRecord, SubscriptionStatus
from .results import OperationResult
from .stripe_client import StripeGateway
from .tiers import TierDefinition

logger = logging.getLogger(__name__)

CLOSED_STATUSES = frozenset({SubscriptionStatus.CANCELED, SubscriptionStatus.INCOMPLETE_EXPIRED})


@dataclass
class ChangeSubscriptionRequest:
    tier_id: Optional[str] = None
    tier_name: Optional[str] = None


class SubscriptionLifecycleManager:
    """Swaps and cancels plans on Stripe for the current user.

    Status is never written here; it follows webhook events. Callers must
    serialise mutations for a given user (e.g. a row lock) to avoid lost updates.
    """

    def __init__(
        self,
        gateway: StripeGateway,
        tiers: Mapping[str, TierDefinition],
        *,
        principals: PrincipalAccessor,
        store: SubscriptionStore,
        on_error: Optional[Callable[[OperationResult], None]] = None,
    ):
        self.gateway = gateway
        self.tiers = tiers
        self.principals = principals
        self.store = store
        self.on_error = on_error

    def _current_record(self) -> Optional[SubscriptionRecord]:
        principal = self.principals.current()
        if principal is None:
            return None
        return self.store.get_by_user(principal.id)

    def _remote_subscription_id(self, record: SubscriptionRecord) -> str:
        if record.provider_subscription_id:
            return record.provider_subscription_id
        if record.payment_session_id:
            session = self.gateway.retrieve_checkout_session(record.payment_session_id)
            subscription = session.get("subscription")
            if isinstance(subscription, Mapping):
                subscription = subscription.get("id")
            if subscription:
                return subscription
        raise StateConflictError(
            "Subscription has not been confirmed by the payment provider yet.",
            details={"payment_session_id": record.payment_session_id},
        )

    def _fail(self, exc: Exception, action: str) -> OperationResult:
        logger.exception("Failed to %s", action)
        result = OperationResult.failure(exc)
        if self.on_error is not None:
            self.on_error(result)
        return result

    def change_subscription(self, request: ChangeSubscriptionRequest) -> OperationResult:
        try:
            record = self._current_record()
            if record is None:
                raise StateConflictError("No subscription exists for the current user.")

            tier = resolve_tier(self.tiers, tier_id=request.tier_id, tier_name=request.tier_name)
            subscription_id = self._remote_subscription_id(record)
            subscription = self.gateway.retrieve_subscription(subscription_id)
            items = (subscription.get("items") or {}).get("data") or []
            item_id = items[0].get("id") if items else None
            if not item_id:
                raise StateConflictError(
                    f"Stripe subscription {subscription_id} has no items to swap.",
                    details={"subscription_id": subscription_id},
                )

            self.gateway.update_subscription(
                subscription_id,
                {
                    "items": [{"id": item_id, "price": tier.id}],
                    "proration_behavior": "create_prorations",
                },
            )

            record.plan_id = tier.id
            record.name = tier.name
            record.provider_subscription_id = subscription_id
            self.store.update(record)
        except Exception as exc:
            return self._fail(exc, "change subscription")

        logger.info("Moved subscription %s to tier %s", subscription_id, tier.id)
        return OperationResult.success()

    def cancel_subscription(self, subscription_id: Optional[str] = None) -> OperationResult:
        """Cancel the current user's subscription on Stripe.

        Nothing to cancel (no record, already closed, or a checkout that never
        produced a Stripe subscription) is a success. An explicit
        ``subscription_id`` must match the user's own subscription.
        """

        try:
            record = self._current_record()
            if record is None or record.status in CLOSED_STATUSES:
                logger.debug("No active subscription to cancel")
                return OperationResult.success()

            try:
                remote_id = self._remote_subscription_id(record)
            except StateConflictError:
                if subscription_id:
                    raise
                logger.debug("Checkout for user %s never produced a subscription", record.user_id)
                return OperationResult.success()

            if subscription_id and subscription_id != remote_id:
                raise StateConflictError(
                    "Subscription does not belong to the current user.",
                    details={"subscription_id": subscription_id},
                )

            self.gateway.cancel_subscription(remote_id)
        except Exception as exc:
            return self._fail(exc, "cancel subscription")

        logger.info("Requested cancellation of subscription %s", remote_id)
        return OperationResult.success()

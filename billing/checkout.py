"""Checkout session orchestration for one-off charges and subscriptions."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Dict, List, Mapping, Optional, Sequence, Union

from core.datetime_utils import SystemClock, add_billing_interval, to_unix_timestamp

from .exceptions import TierNotFoundError
from .interfaces import Clock, PrincipalAccessor, RequestContext, SubscriptionStore
from .records import CheckoutSession, SubscriptionRecord, SubscriptionStatus
from .stripe_client import StripeGateway
from .tiers import TierDefinition, find_tier

logger = logging.getLogger(__name__)

# Stripe Checkout sessions stay open for up to 48 hours after creation. A trial
# must outlast that window so a late payer still receives at least one day.
CHECKOUT_SESSION_WINDOW = timedelta(hours=48)
TRIAL_SAFETY_MARGIN = timedelta(seconds=10)
SESSION_ID_PLACEHOLDER = "{CHECKOUT_SESSION_ID}"

LineItem = Union[str, Mapping[str, Any]]


@dataclass
class ChargeRequest:
    items: Optional[Sequence[LineItem]] = None
    metadata: Dict[str, Any] = field(default_factory=dict)
    success_url: Optional[str] = None
    cancel_url: Optional[str] = None
    extra: Dict[str, Any] = field(default_factory=dict)


@dataclass
class SubscribeRequest:
    tier_id: Optional[str] = None
    tier_name: Optional[str] = None
    trial_days: Optional[int] = None
    metadata: Dict[str, Any] = field(default_factory=dict)
    success_url: Optional[str] = None
    cancel_url: Optional[str] = None


def compute_trial_end(
    now: datetime,
    trial_days: Optional[int],
    *,
    window: timedelta = CHECKOUT_SESSION_WINDOW,
    margin: timedelta = TRIAL_SAFETY_MARGIN,
) -> Optional[datetime]:
    """Return the trial end to send to Stripe, or None when there is no trial.

    Trials longer than the checkout window are granted one extra day; shorter
    ones are stretched to the window plus the margin.
    """

    if not trial_days:
        return None

    minimum = window + margin
    if timedelta(days=trial_days) > minimum:
        return now + timedelta(days=trial_days + 1)
    return now + minimum


def resolve_tier(
    tiers: Mapping[str, TierDefinition],
    *,
    tier_id: Optional[str] = None,
    tier_name: Optional[str] = None,
) -> TierDefinition:
    if not tier_id and not tier_name:
        raise ValueError("Either tier_id or tier_name must be provided.")

    tier = find_tier(tiers, tier_id=tier_id, name=tier_name)
    if tier is None:
        raise TierNotFoundError(
            f"No billing tier matches {tier_id or tier_name!r}",
            details={"tier_id": tier_id, "tier_name": tier_name},
        )
    return tier


def _normalize_line_items(items: Sequence[LineItem]) -> List[Dict[str, Any]]:
    normalized: List[Dict[str, Any]] = []
    for item in items:
        if isinstance(item, str):
            normalized.append({"price": item, "quantity": 1})
        else:
            line = dict(item)
            line.setdefault("quantity", 1)
            normalized.append(line)
    return normalized


class CheckoutOrchestrator:
    def __init__(
        self,
        gateway: StripeGateway,
        tiers: Mapping[str, TierDefinition],
        *,
        request: RequestContext,
        principals: PrincipalAccessor,
        store: SubscriptionStore,
        success_url: str = "/billing/success",
        cancel_url: str = "/billing/cancel",
        clock: Optional[Clock] = None,
    ):
        self.gateway = gateway
        self.tiers = tiers
        self.request = request
        self.principals = principals
        self.store = store
        self.success_url = success_url
        self.cancel_url = cancel_url
        self.clock = clock or SystemClock()

    def _absolute(self, path: str) -> str:
        if path.startswith(("http://", "https://")):
            return path
        return f"{self.request.base_url()}{path}"

    def default_success_url(self) -> str:
        url = self._absolute(self.success_url)
        separator = "&" if "?" in url else "?"
        return f"{url}{separator}session_id={SESSION_ID_PLACEHOLDER}"

    def default_cancel_url(self) -> str:
        return self._absolute(self.cancel_url)

    def charge(self, request: ChargeRequest) -> CheckoutSession:
        """Open a one-time payment Checkout session."""

        metadata = dict(request.metadata)
        carried_items = metadata.pop("items", None)
        items = request.items if request.items else carried_items
        if not items:
            raise ValueError("A checkout session needs at least one line item.")

        params: Dict[str, Any] = {
            "payment_method_types": ["card"],
            "mode": "payment",
            "line_items": _normalize_line_items(items),
            "success_url": request.success_url or self.default_success_url(),
            "cancel_url": request.cancel_url or self.default_cancel_url(),
            "metadata": {key: str(value) for key, value in metadata.items()},
        }
        params.update(request.extra)

        session = self.gateway.create_checkout_session(params)
        logger.info("Created Stripe checkout session %s (mode=%s)", session["id"], params["mode"])
        return CheckoutSession.from_stripe(session)

    def subscribe(self, request: SubscribeRequest) -> CheckoutSession:
        """Open a subscription Checkout session and record it for the current user."""

        tier = resolve_tier(self.tiers, tier_id=request.tier_id, tier_name=request.tier_name)
        if not tier.billing_period.is_recurring:
            raise ValueError(f"Tier {tier.name!r} is a one-time price and cannot be subscribed to.")

        principal = self.principals.current()
        now = self.clock.now()
        trial_days = request.trial_days if request.trial_days is not None else tier.trial_days
        trial_end = compute_trial_end(now, trial_days)

        metadata = {**request.metadata, "tier_id": tier.id}
        extra: Dict[str, Any] = {"mode": "subscription"}
        if principal is not None:
            metadata["user_id"] = str(principal.id)
            extra["client_reference_id"] = str(principal.id)
            if principal.email:
                extra["customer_email"] = principal.email

        subscription_data: Dict[str, Any] = {
            "metadata": {key: str(value) for key, value in metadata.items() if key != "items"}
        }
        if trial_end is not None:
            subscription_data["trial_end"] = to_unix_timestamp(trial_end)
        extra["subscription_data"] = subscription_data

        session = self.charge(
            ChargeRequest(
                items=[{"price": tier.id, "quantity": 1}],
                metadata=metadata,
                success_url=request.success_url,
                cancel_url=request.cancel_url,
                extra=extra,
            )
        )

        if principal is not None and self.store.get_by_user(principal.id) is None:
            record = self.store.create(
                SubscriptionRecord(
                    user_id=str(principal.id),
                    name=tier.name,
                    plan_id=tier.id,
                    payment_session_id=session.id,
                    status=SubscriptionStatus.INCOMPLETE,
                    start_date=now,
                    end_date=add_billing_interval(now, tier.billing_period.interval),
                    trial_ends_at=trial_end,
                )
            )
            logger.info(
                "Recorded incomplete subscription for user %s on tier %s (session %s)",
                record.user_id,
                tier.id,
                session.id,
            )

        return session

"""Records exchanged between the billing components and their callers."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Mapping, Optional


class SubscriptionStatus(str, Enum):
    """Stripe subscription statuses mirrored on the local record."""

    INCOMPLETE = "incomplete"
    INCOMPLETE_EXPIRED = "incomplete_expired"
    TRIALING = "trialing"
    ACTIVE = "active"
    PAST_DUE = "past_due"
    UNPAID = "unpaid"
    CANCELED = "canceled"
    PAUSED = "paused"


@dataclass
class SubscriptionRecord:
    user_id: str
    name: str
    plan_id: str
    payment_session_id: Optional[str] = None
    provider_subscription_id: Optional[str] = None
    status: SubscriptionStatus = SubscriptionStatus.INCOMPLETE
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    trial_ends_at: Optional[datetime] = None
    id: Optional[int] = None


@dataclass(frozen=True)
class CheckoutSession:
    id: str
    url: Optional[str] = None
    status: Optional[str] = None
    payment_status: Optional[str] = None
    mode: Optional[str] = None
    subscription_id: Optional[str] = None
    metadata: Dict[str, str] = field(default_factory=dict)

    @property
    def is_paid(self) -> bool:
        return self.payment_status == "paid"

    @classmethod
    def from_stripe(cls, payload: Mapping[str, Any]) -> "CheckoutSession":
        subscription = payload.get("subscription")
        if isinstance(subscription, Mapping):
            subscription = subscription.get("id")
        return cls(
            id=payload["id"],
            url=payload.get("url"),
            status=payload.get("status"),
            payment_status=payload.get("payment_status"),
            mode=payload.get("mode"),
            subscription_id=subscription,
            metadata=dict(payload.get("metadata") or {}),
        )


@dataclass(frozen=True)
class Event:
    """Provider-agnostic webhook event."""

    type: str
    data: Dict[str, Any]
    id: str
    created: int

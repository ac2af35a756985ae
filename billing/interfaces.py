"""Collaborators the billing provider consumes but does not own."""

from __future__ import annotations

from datetime import datetime
from typing import Optional, Protocol, Union

from .records import SubscriptionRecord

PrincipalId = Union[int, str]


class RequestContext(Protocol):
    """Read access to the inbound request."""

    def base_url(self) -> str:
        """Scheme, host and root path without a trailing slash."""

    def query_param(self, name: str) -> Optional[str]:
        ...


class Principal(Protocol):
    id: PrincipalId
    email: Optional[str]


class PrincipalAccessor(Protocol):
    """Resolves the authenticated user for the current request."""

    def current(self) -> Optional[Principal]:
        ...


class SubscriptionStore(Protocol):
    """Persistence for local subscription rows."""

    def get_by_user(self, user_id: PrincipalId) -> Optional[SubscriptionRecord]:
        ...

    def get_by_session(self, payment_session_id: str) -> Optional[SubscriptionRecord]:
        ...

    def get_by_provider_subscription(self, provider_subscription_id: str) -> Optional[SubscriptionRecord]:
        ...

    def create(self, record: SubscriptionRecord) -> SubscriptionRecord:
        ...

    def update(self, record: SubscriptionRecord) -> SubscriptionRecord:
        ...


class Clock(Protocol):
    def now(self) -> datetime:
        ...

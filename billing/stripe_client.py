"""Stripe integration helpers for tier billing."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional, TypeVar

import stripe

from .exceptions import ConfigurationError, RemoteAPIError
from .settings import BillingSettings

logger = logging.getLogger(__name__)

T = TypeVar("T")


def _to_plain(value: Any) -> Any:
    # Recent SDKs return StripeObject, which is not a dict.
    if isinstance(value, stripe.StripeObject):
        return value.to_dict()
    return value


@dataclass(frozen=True)
class StripeClientConfig:
    """Explicit client settings handed to every component that talks to Stripe."""

    api_key: str
    api_version: Optional[str] = None
    client_id: Optional[str] = None
    max_network_retries: int = 3

    def __post_init__(self) -> None:
        if not self.api_key:
            raise ConfigurationError("A Stripe secret key is required for billing.")

    @classmethod
    def from_settings(cls, settings: BillingSettings) -> "StripeClientConfig":
        return cls(
            api_key=settings.api_key,
            api_version=settings.api_version,
            client_id=settings.client_id,
            max_network_retries=settings.max_network_retries,
        )

    def build_client(self) -> stripe.StripeClient:
        kwargs: Dict[str, Any] = {"max_network_retries": self.max_network_retries}
        if self.api_version:
            kwargs["stripe_version"] = self.api_version
        if self.client_id:
            kwargs["client_id"] = self.client_id
        return stripe.StripeClient(self.api_key, **kwargs)


class StripeGateway:
    """Thin wrapper around ``stripe.StripeClient``.

    Every call translates ``stripe.StripeError`` into ``RemoteAPIError`` so the
    rest of the package never handles SDK exceptions directly.
    """

    def __init__(self, config: StripeClientConfig, client: Optional[stripe.StripeClient] = None):
        self.config = config
        self._client = client or config.build_client()

    def _call(self, operation: str, func: Callable[..., T], *args: Any, **kwargs: Any) -> T:
        try:
            return _to_plain(func(*args, **kwargs))
        except stripe.StripeError as exc:
            logger.warning("Stripe %s failed: %s", operation, exc)
            raise RemoteAPIError(
                f"Stripe {operation} failed: {exc.user_message or exc}",
                details={
                    "operation": operation,
                    "code": exc.code,
                    "http_status": exc.http_status,
                },
            ) from exc

    def create_product(self, name: str) -> Any:
        return self._call("product creation", self._client.products.create, params={"name": name})

    def create_price(self, params: Dict[str, Any]) -> Any:
        return self._call("price creation", self._client.prices.create, params=params)

    def create_checkout_session(self, params: Dict[str, Any]) -> Any:
        return self._call("checkout session creation", self._client.checkout.sessions.create, params=params)

    def retrieve_checkout_session(self, session_id: str) -> Any:
        return self._call("checkout session lookup", self._client.checkout.sessions.retrieve, session_id)

    def retrieve_subscription(self, subscription_id: str) -> Any:
        return self._call("subscription lookup", self._client.subscriptions.retrieve, subscription_id)

    def update_subscription(self, subscription_id: str, params: Dict[str, Any]) -> Any:
        return self._call(
            "subscription update",
            self._client.subscriptions.update,
            subscription_id,
            params=params,
        )

    def cancel_subscription(self, subscription_id: str) -> Any:
        return self._call("subscription cancellation", self._client.subscriptions.cancel, subscription_id)

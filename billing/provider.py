"""Public billing facade and its Stripe implementation."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Any, Iterable, List, Optional, Tuple

from .catalog import CatalogCache, CatalogStorage, CatalogSynchronizer
from .checkout import ChargeRequest, CheckoutOrchestrator, SubscribeRequest
from .interfaces import Clock, PrincipalAccessor, RequestContext, SubscriptionStore
from .records import CheckoutSession
from .results import ErrorDetail, OperationResult
from .settings import BillingSettings
from .stripe_client import StripeClientConfig, StripeGateway
from .subscriptions import ChangeSubscriptionRequest, SubscriptionLifecycleManager
from .tiers import BillingPeriod, TierDefinition, distinct_periods

logger = logging.getLogger(__name__)


class BillingProvider(ABC):
    """Capabilities every payment processor integration offers."""

    @abstractmethod
    def charge(self, request: ChargeRequest) -> CheckoutSession:
        ...

    @abstractmethod
    def subscribe(self, request: SubscribeRequest) -> CheckoutSession:
        ...

    @abstractmethod
    def change_subscription(self, request: ChangeSubscriptionRequest) -> OperationResult:
        ...

    @abstractmethod
    def cancel_subscription(self, subscription_id: Optional[str] = None) -> OperationResult:
        ...

    @abstractmethod
    def session(self, session_id: str) -> CheckoutSession:
        ...

    @abstractmethod
    def callback(self) -> CheckoutSession:
        ...

    @abstractmethod
    def tiers(self) -> List[TierDefinition]:
        ...

    @abstractmethod
    def tier(self, tier_id: str) -> Optional[TierDefinition]:
        ...

    @abstractmethod
    def provider_name(self) -> str:
        ...

    @abstractmethod
    def errors(self) -> Tuple[ErrorDetail, ...]:
        ...

    def periods(self) -> List[BillingPeriod]:
        """Distinct billing periods across all tiers, in order of first occurrence."""

        return distinct_periods(self.tiers())


class StripeProvider(BillingProvider):
    def __init__(
        self,
        gateway: StripeGateway,
        catalog: CatalogCache,
        *,
        request: RequestContext,
        principals: PrincipalAccessor,
        store: SubscriptionStore,
        success_url: str = "/billing/success",
        cancel_url: str = "/billing/cancel",
        clock: Optional[Clock] = None,
    ):
        self.gateway = gateway
        self.catalog = catalog
        self.request = request
        self._errors: List[ErrorDetail] = []
        self.checkout = CheckoutOrchestrator(
            gateway,
            catalog.tiers,
            request=request,
            principals=principals,
            store=store,
            success_url=success_url,
            cancel_url=cancel_url,
            clock=clock,
        )
        self.lifecycle = SubscriptionLifecycleManager(
            gateway,
            catalog.tiers,
            principals=principals,
            store=store,
            on_error=self._record_error,
        )

    @classmethod
    def from_settings(
        cls,
        settings: BillingSettings,
        *,
        storage: CatalogStorage,
        request: RequestContext,
        principals: PrincipalAccessor,
        store: SubscriptionStore,
        tiers: Optional[Iterable[Any]] = None,
        gateway: Optional[StripeGateway] = None,
        clock: Optional[Clock] = None,
    ) -> "StripeProvider":
        """Build a provider, provisioning the Stripe catalogue on first use.

        Catalogue failures propagate: a provider without tiers is unusable.
        """

        gateway = gateway or StripeGateway(StripeClientConfig.from_settings(settings))
        synchronizer = CatalogSynchronizer(gateway, storage, app_name=settings.app_name, clock=clock)
        catalog = synchronizer.ensure_catalog(
            tiers if tiers is not None else settings.tiers,
            settings.currency,
        )
        logger.info("Stripe billing provider ready with %d tiers (product %s)", len(catalog.tiers), catalog.product)
        return cls(
            gateway,
            catalog,
            request=request,
            principals=principals,
            store=store,
            success_url=settings.success_url,
            cancel_url=settings.cancel_url,
            clock=clock,
        )

    def _record_error(self, result: OperationResult) -> None:
        if result.error is not None:
            self._errors.append(result.error)

    def charge(self, request: ChargeRequest) -> CheckoutSession:
        return self.checkout.charge(request)

    def subscribe(self, request: SubscribeRequest) -> CheckoutSession:
        return self.checkout.subscribe(request)

    def change_subscription(self, request: ChangeSubscriptionRequest) -> OperationResult:
        return self.lifecycle.change_subscription(request)

    def cancel_subscription(self, subscription_id: Optional[str] = None) -> OperationResult:
        return self.lifecycle.cancel_subscription(subscription_id)

    def session(self, session_id: str) -> CheckoutSession:
        return CheckoutSession.from_stripe(self.gateway.retrieve_checkout_session(session_id))

    def callback(self) -> CheckoutSession:
        session_id = self.request.query_param("session_id")
        if not session_id:
            raise ValueError("The request carries no session_id.")
        return self.session(session_id)

    def tiers(self) -> List[TierDefinition]:
        return list(self.catalog.tiers.values())

    def tier(self, tier_id: str) -> Optional[TierDefinition]:
        return self.catalog.tiers.get(tier_id)

    def provider_name(self) -> str:
        return "stripe"

    def errors(self) -> Tuple[ErrorDetail, ...]:
        return tuple(self._errors)

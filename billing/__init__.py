"""Declarative subscription tiers and checkout flows on top of Stripe."""

from .catalog import CatalogCache, CatalogSynchronizer
from .checkout import ChargeRequest, CheckoutOrchestrator, SubscribeRequest, compute_trial_end
from .exceptions import (
    BillingError,
    ConfigurationError,
    RemoteAPIError,
    SignatureVerificationError,
    StateConflictError,
    TierNotFoundError,
)
from .handlers import SubscriptionEventHandler
from .provider import BillingProvider, StripeProvider
from .records import CheckoutSession, Event, SubscriptionRecord, SubscriptionStatus
from .results import ErrorDetail, OperationResult
from .settings import BillingSettings
from .storage import AzureBlobCatalogStorage, LocalCatalogStorage
from .stripe_client import StripeClientConfig, StripeGateway
from .subscriptions import ChangeSubscriptionRequest, SubscriptionLifecycleManager
from .tiers import BillingPeriod, TierConfig, TierDefinition
from .webhooks import parse_event, verify_and_parse

__all__ = [
    "AzureBlobCatalogStorage",
    "BillingError",
    "BillingPeriod",
    "BillingProvider",
    "BillingSettings",
    "CatalogCache",
    "CatalogSynchronizer",
    "ChangeSubscriptionRequest",
    "ChargeRequest",
    "CheckoutOrchestrator",
    "CheckoutSession",
    "ConfigurationError",
    "ErrorDetail",
    "Event",
    "LocalCatalogStorage",
    "OperationResult",
    "RemoteAPIError",
    "SignatureVerificationError",
    "StateConflictError",
    "StripeClientConfig",
    "StripeGateway",
    "StripeProvider",
    "SubscribeRequest",
    "SubscriptionEventHandler",
    "SubscriptionLifecycleManager",
    "SubscriptionRecord",
    "SubscriptionStatus",
    "TierConfig",
    "TierDefinition",
    "TierNotFoundError",
    "compute_trial_end",
    "parse_event",
    "verify_and_parse",
]

"""Billing service entry point.

Run with ``uvicorn app:create_app --factory``.
"""

import logging
from typing import Callable, Optional

from fastapi import FastAPI, Request

from billing import (
    BillingSettings,
    CatalogSynchronizer,
    LocalCatalogStorage,
    StripeClientConfig,
    StripeGateway,
    StripeProvider,
    SubscriptionEventHandler,
)
from billing.catalog import CatalogStorage
from billing.interfaces import Principal, SubscriptionStore
from billing.routes import RequestPrincipalAccessor, StarletteRequestContext, build_billing_router

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)

logger = logging.getLogger(__name__)


def _default_store() -> SubscriptionStore:
    from db import SessionLocal, create_tables
    from models import SqlAlchemySubscriptionStore

    create_tables()
    return SqlAlchemySubscriptionStore(SessionLocal)


def create_app(
    settings: Optional[BillingSettings] = None,
    *,
    storage: Optional[CatalogStorage] = None,
    store: Optional[SubscriptionStore] = None,
    gateway: Optional[StripeGateway] = None,
    principal_resolver: Optional[Callable[[Request], Optional[Principal]]] = None,
) -> FastAPI:
    settings = settings or BillingSettings.from_env()
    storage = storage or LocalCatalogStorage(settings.cache_path)
    store = store or _default_store()
    gateway = gateway or StripeGateway(StripeClientConfig.from_settings(settings))

    # Provisioning runs once per process; deployments with several workers
    # must hold an external lock around the first start.
    catalog = CatalogSynchronizer(gateway, storage, app_name=settings.app_name).ensure_catalog(
        settings.tiers,
        settings.currency,
    )
    logger.info("Billing catalog loaded: product %s, %d tiers", catalog.product, len(catalog.tiers))

    def get_provider(request: Request) -> StripeProvider:
        return StripeProvider(
            gateway,
            catalog,
            request=StarletteRequestContext(request),
            principals=RequestPrincipalAccessor(request, principal_resolver),
            store=store,
            success_url=settings.success_url,
            cancel_url=settings.cancel_url,
        )

    app = FastAPI(title="Billing")
    app.state.get_provider = get_provider
    app.include_router(
        build_billing_router(
            get_provider,
            settings.webhook_secret,
            SubscriptionEventHandler(store).handle,
        )
    )
    return app

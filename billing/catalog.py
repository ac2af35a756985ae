"""Remote catalogue provisioning and the local JSON cache that guards it."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Protocol

from core.datetime_utils import SystemClock, to_unix_timestamp

from .exceptions import ConfigurationError
from .interfaces import Clock
from .stripe_client import StripeGateway
from .tiers import TierDefinition, parse_tier_configs, tier_drafts

logger = logging.getLogger(__name__)


class CatalogStorage(Protocol):
    def exists(self) -> bool:
        ...

    def read(self) -> str:
        ...

    def write(self, content: str) -> None:
        ...


@dataclass(frozen=True)
class CatalogCache:
    product: str
    tiers: Dict[str, TierDefinition] = field(default_factory=dict)

    def to_json(self) -> str:
        return json.dumps(
            {
                "product": self.product,
                "tiers": {price_id: tier.to_dict() for price_id, tier in self.tiers.items()},
            }
        )

    @classmethod
    def from_json(cls, content: str) -> "CatalogCache":
        try:
            payload = json.loads(content)
            return cls(
                product=payload["product"],
                tiers={
                    price_id: TierDefinition.from_dict(raw)
                    for price_id, raw in payload.get("tiers", {}).items()
                },
            )
        except (ValueError, KeyError, TypeError) as exc:
            raise ConfigurationError(f"Billing catalog cache is unreadable: {exc}") from exc


class CatalogSynchronizer:
    """Ensures one Stripe product and its prices exist for the configured tiers.

    The cache is trusted as-is once written: tiers added to the config later
    are not provisioned until the cache artifact is removed. Two processes
    starting cold at the same time will both provision a catalogue, so callers
    must hold an external lock around the first ``ensure_catalog`` call.
    """

    def __init__(
        self,
        gateway: StripeGateway,
        storage: CatalogStorage,
        *,
        app_name: str = "",
        clock: Optional[Clock] = None,
    ):
        self.gateway = gateway
        self.storage = storage
        self.app_name = app_name
        self.clock = clock or SystemClock()

    def ensure_catalog(self, tier_configs: Iterable[Any], default_currency: str) -> CatalogCache:
        if self.storage.exists():
            logger.debug("Billing catalog cache found; skipping provisioning")
            return CatalogCache.from_json(self.storage.read())

        configs = parse_tier_configs(tier_configs)
        drafts: List[TierDefinition] = [
            draft for config in configs for draft in tier_drafts(config, default_currency)
        ]

        product_name = " ".join(
            part for part in ("Billing", self.app_name, str(to_unix_timestamp(self.clock.now()))) if part
        )
        product = self.gateway.create_product(product_name)
        product_id = product["id"]
        logger.info("Created Stripe product %s (%s)", product_id, product_name)

        tiers: Dict[str, TierDefinition] = {}
        for draft in drafts:
            params: Dict[str, Any] = {
                "currency": draft.currency,
                "product": product_id,
                "nickname": draft.name,
                "unit_amount": draft.unit_amount,
            }
            if draft.billing_period.is_recurring:
                params["recurring"] = {"interval": draft.billing_period.interval}

            price = self.gateway.create_price(params)
            tier = draft.with_id(price["id"])
            tiers[tier.id] = tier
            logger.info(
                "Created Stripe price %s for tier %s (%s)",
                tier.id,
                tier.name,
                tier.billing_period.value,
            )

        catalog = CatalogCache(product=product_id, tiers=tiers)
        self.storage.write(catalog.to_json())
        return catalog

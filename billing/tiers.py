"""Declarative tier configuration and the canonical tier record."""

from __future__ import annotations

from dataclasses import asdict, dataclass, replace
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, Iterable, Iterator, List, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from core.numeric_utils import to_minor_units

from .exceptions import ConfigurationError


class BillingPeriod(str, Enum):
    NONE = "none"
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    YEARLY = "yearly"

    @property
    def interval(self) -> Optional[str]:
        """Stripe ``recurring.interval`` for this period, None for one-time prices."""

        return _PERIOD_INTERVALS[self]

    @property
    def is_recurring(self) -> bool:
        return self is not BillingPeriod.NONE


_PERIOD_INTERVALS = {
    BillingPeriod.NONE: None,
    BillingPeriod.DAILY: "day",
    BillingPeriod.WEEKLY: "week",
    BillingPeriod.MONTHLY: "month",
    BillingPeriod.YEARLY: "year",
}

RECURRING_PERIODS = (
    BillingPeriod.DAILY,
    BillingPeriod.WEEKLY,
    BillingPeriod.MONTHLY,
    BillingPeriod.YEARLY,
)


class TierConfig(BaseModel):
    """Raw tier entry as written in the application's billing config.

    Either ``price`` (one-time) or any of the period-scoped prices may be set.
    When ``price`` is set the period-scoped prices are ignored.
    """

    model_config = ConfigDict(populate_by_name=True, extra="ignore", frozen=True)

    name: str = Field(min_length=1)
    currency: Optional[str] = None
    price: Optional[Decimal] = Field(default=None, ge=0)
    price_daily: Optional[Decimal] = Field(default=None, ge=0, alias="price.daily")
    price_weekly: Optional[Decimal] = Field(default=None, ge=0, alias="price.weekly")
    price_monthly: Optional[Decimal] = Field(default=None, ge=0, alias="price.monthly")
    price_yearly: Optional[Decimal] = Field(default=None, ge=0, alias="price.yearly")
    trial_days: Optional[int] = Field(default=None, ge=0, alias="trialDays")

    def period_price(self, period: BillingPeriod) -> Optional[Decimal]:
        return getattr(self, f"price_{period.value}")


@dataclass(frozen=True)
class TierDefinition:
    name: str
    currency: str
    billing_period: BillingPeriod
    unit_amount: int
    trial_days: Optional[int] = None
    id: Optional[str] = None

    def with_id(self, price_id: str) -> "TierDefinition":
        if self.id is not None:
            raise ValueError(f"Tier {self.name!r} already has remote id {self.id!r}")
        return replace(self, id=price_id)

    def to_dict(self) -> Dict[str, Any]:
        payload = asdict(self)
        payload["billing_period"] = self.billing_period.value
        return payload

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "TierDefinition":
        return cls(
            id=payload.get("id"),
            name=payload["name"],
            currency=payload["currency"],
            billing_period=BillingPeriod(payload.get("billing_period", BillingPeriod.NONE.value)),
            unit_amount=int(payload["unit_amount"]),
            trial_days=payload.get("trial_days"),
        )


def parse_tier_configs(raw_tiers: Iterable[Any]) -> List[TierConfig]:
    """Validate raw tier mappings, raising ConfigurationError on bad entries."""

    parsed: List[TierConfig] = []
    for index, raw in enumerate(raw_tiers):
        if isinstance(raw, TierConfig):
            parsed.append(raw)
            continue
        try:
            parsed.append(TierConfig.model_validate(raw))
        except ValidationError as exc:
            raise ConfigurationError(
                f"Invalid billing tier at position {index}",
                details={"errors": exc.errors(include_url=False)},
            ) from exc
    return parsed


def tier_drafts(config: TierConfig, default_currency: str) -> Iterator[TierDefinition]:
    """Yield one unsynced TierDefinition per populated price on ``config``."""

    currency = (config.currency or default_currency).lower()

    # A zero flat price counts as unset, so period prices still apply.
    if config.price:
        yield TierDefinition(
            name=config.name,
            currency=currency,
            billing_period=BillingPeriod.NONE,
            unit_amount=to_minor_units(config.price),
            trial_days=config.trial_days,
        )
        return

    emitted = False
    for period in RECURRING_PERIODS:
        amount = config.period_price(period)
        if not amount:
            continue
        emitted = True
        yield TierDefinition(
            name=config.name,
            currency=currency,
            billing_period=period,
            unit_amount=to_minor_units(amount),
            trial_days=config.trial_days,
        )

    if not emitted:
        raise ConfigurationError(
            f"Billing tier {config.name!r} has no price configured",
            details={"tier": config.name},
        )


def distinct_periods(tiers: Iterable[TierDefinition]) -> List[BillingPeriod]:
    """Billing periods present in ``tiers``, each once, in order of first occurrence."""

    seen: List[BillingPeriod] = []
    for tier in tiers:
        if tier.billing_period not in seen:
            seen.append(tier.billing_period)
    return seen


def find_tier(
    tiers: Mapping[str, TierDefinition],
    *,
    tier_id: Optional[str] = None,
    name: Optional[str] = None,
) -> Optional[TierDefinition]:
    """Look a tier up by remote id, falling back to the first tier with ``name``."""

    if tier_id:
        return tiers.get(tier_id)
    if name:
        for tier in tiers.values():
            if tier.name == name:
                return tier
    return None

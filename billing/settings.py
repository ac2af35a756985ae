"""Environment-driven billing configuration."""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional

from dotenv import load_dotenv

from .exceptions import ConfigurationError

DEFAULT_CACHE_PATH = os.path.join("storage", "billing", "stripe.json")


def _get_required_env(env: Mapping[str, str], name: str) -> str:
    value = env.get(name)
    if not value:
        raise ConfigurationError(
            f"Environment variable {name} is required for billing.",
            details={"variable": name},
        )
    return value


def _load_tiers_file(path: Optional[str]) -> List[Dict[str, Any]]:
    if not path:
        return []
    try:
        with open(path, "r", encoding="utf-8") as handle:
            payload = json.load(handle)
    except (OSError, ValueError) as exc:
        raise ConfigurationError(f"Unable to read billing tiers from {path}: {exc}") from exc

    if isinstance(payload, dict):
        payload = payload.get("tiers", [])
    if not isinstance(payload, list):
        raise ConfigurationError(f"Billing tiers file {path} must contain a list of tiers.")
    return payload


@dataclass(frozen=True)
class BillingSettings:
    api_key: str
    publishable_key: str
    webhook_secret: str
    api_version: Optional[str] = None
    client_id: Optional[str] = None
    max_network_retries: int = 3
    app_name: str = ""
    currency: str = "usd"
    tiers: List[Dict[str, Any]] = field(default_factory=list)
    cache_path: str = DEFAULT_CACHE_PATH
    success_url: str = "/billing/success"
    cancel_url: str = "/billing/cancel"

    def __post_init__(self) -> None:
        for name, value in (
            ("api_key", self.api_key),
            ("publishable_key", self.publishable_key),
            ("webhook_secret", self.webhook_secret),
        ):
            if not value:
                raise ConfigurationError(f"Billing setting {name} is required.", details={"setting": name})

    @classmethod
    def from_env(cls, env: Optional[Mapping[str, str]] = None) -> "BillingSettings":
        """Build settings from the process environment (after loading ``.env``)."""

        if env is None:
            load_dotenv()
            env = os.environ

        try:
            retries = int(env.get("STRIPE_MAX_NETWORK_RETRIES", "3"))
        except ValueError as exc:
            raise ConfigurationError("STRIPE_MAX_NETWORK_RETRIES must be an integer.") from exc

        return cls(
            api_key=_get_required_env(env, "STRIPE_SECRET_KEY"),
            publishable_key=_get_required_env(env, "STRIPE_PUBLISHABLE_KEY"),
            webhook_secret=_get_required_env(env, "STRIPE_WEBHOOK_SECRET"),
            api_version=env.get("STRIPE_API_VERSION") or None,
            client_id=env.get("STRIPE_CLIENT_ID") or None,
            max_network_retries=retries,
            app_name=env.get("BILLING_APP_NAME", env.get("APP_NAME", "")),
            currency=env.get("BILLING_CURRENCY", "usd").lower(),
            tiers=_load_tiers_file(env.get("BILLING_TIERS_FILE")),
            cache_path=env.get("BILLING_CACHE_PATH", DEFAULT_CACHE_PATH),
            success_url=env.get("BILLING_SUCCESS_URL", "/billing/success"),
            cancel_url=env.get("BILLING_CANCEL_URL", "/billing/cancel"),
        )

import json

import pytest

from billing.exceptions import ConfigurationError
from billing.settings import DEFAULT_CACHE_PATH, BillingSettings

BASE_ENV = {
    "STRIPE_SECRET_KEY": "sk_test_123",
    "STRIPE_PUBLISHABLE_KEY": "pk_test_123",
    "STRIPE_WEBHOOK_SECRET": "whsec_123",
}


def test_from_env_defaults():
    settings = BillingSettings.from_env(BASE_ENV)

    assert settings.api_key == "sk_test_123"
    assert settings.api_version is None
    assert settings.max_network_retries == 3
    assert settings.currency == "usd"
    assert settings.tiers == []
    assert settings.cache_path == DEFAULT_CACHE_PATH


@pytest.mark.parametrize("missing", sorted(BASE_ENV))
def test_missing_secret(missing):
    env = {key: value for key, value in BASE_ENV.items() if key != missing}

    with pytest.raises(ConfigurationError) as excinfo:
        BillingSettings.from_env(env)

    assert excinfo.value.details == {"variable": missing}


def test_tiers_file_and_overrides(tmp_path):
    tiers_file = tmp_path / "tiers.json"
    tiers_file.write_text(json.dumps({"tiers": [{"name": "Pro", "price.monthly": 20}]}))
    env = dict(
        BASE_ENV,
        BILLING_TIERS_FILE=str(tiers_file),
        BILLING_CURRENCY="EUR",
        APP_NAME="Acme",
        STRIPE_MAX_NETWORK_RETRIES="5",
        STRIPE_API_VERSION="2024-06-20",
    )

    settings = BillingSettings.from_env(env)

    assert settings.tiers == [{"name": "Pro", "price.monthly": 20}]
    assert settings.currency == "eur"
    assert settings.app_name == "Acme"
    assert settings.max_network_retries == 5
    assert settings.api_version == "2024-06-20"


def test_bad_tiers_file(tmp_path):
    tiers_file = tmp_path / "tiers.json"
    tiers_file.write_text(json.dumps({"tiers": {"name": "Pro"}}))

    with pytest.raises(ConfigurationError):
        BillingSettings.from_env(dict(BASE_ENV, BILLING_TIERS_FILE=str(tiers_file)))


def test_bad_retry_count():
    with pytest.raises(ConfigurationError):
        BillingSettings.from_env(dict(BASE_ENV, STRIPE_MAX_NETWORK_RETRIES="many"))


def test_direct_construction_validates_secrets():
    with pytest.raises(ConfigurationError):
        BillingSettings(api_key="sk_test_123", publishable_key="", webhook_secret="whsec_123")

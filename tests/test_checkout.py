from datetime import timedelta

import pytest

from billing.checkout import (
    ChargeRequest,
    CheckoutOrchestrator,
    SubscribeRequest,
    compute_trial_end,
)
from billing.exceptions import TierNotFoundError
from billing.records import SubscriptionRecord, SubscriptionStatus
from tests.conftest import NOW, FakePrincipalAccessor


@pytest.fixture
def orchestrator(gateway, tiers, request_context, principals, store, clock):
    return CheckoutOrchestrator(
        gateway,
        tiers,
        request=request_context,
        principals=principals,
        store=store,
        clock=clock,
    )


def _sent_params(gateway):
    return gateway.create_checkout_session.call_args.args[0]


class TestComputeTrialEnd:
    def test_no_trial(self):
        assert compute_trial_end(NOW, None) is None
        assert compute_trial_end(NOW, 0) is None

    def test_short_trial_is_stretched_to_checkout_window(self):
        assert compute_trial_end(NOW, 1) == NOW + timedelta(hours=48, seconds=10)
        assert compute_trial_end(NOW, 2) == NOW + timedelta(hours=48, seconds=10)

    def test_long_trial_gets_an_extra_day(self):
        assert compute_trial_end(NOW, 3) == NOW + timedelta(days=4)
        assert compute_trial_end(NOW, 60) == NOW + timedelta(days=61)


class TestCharge:
    def test_default_urls_and_card_payment(self, orchestrator, gateway):
        session = orchestrator.charge(ChargeRequest(items=["price_setup"]))

        params = _sent_params(gateway)
        assert params["payment_method_types"] == ["card"]
        assert params["mode"] == "payment"
        assert params["line_items"] == [{"price": "price_setup", "quantity": 1}]
        assert params["success_url"] == "https://app.example.com/billing/success?session_id={CHECKOUT_SESSION_ID}"
        assert params["cancel_url"] == "https://app.example.com/billing/cancel"
        assert session.id == "cs_test_1"
        assert not session.is_paid

    def test_items_in_metadata_are_used_and_stripped(self, orchestrator, gateway):
        orchestrator.charge(ChargeRequest(metadata={"items": ["price_setup"], "order": 42}))

        params = _sent_params(gateway)
        assert params["line_items"] == [{"price": "price_setup", "quantity": 1}]
        assert params["metadata"] == {"order": "42"}

    def test_explicit_items_take_precedence(self, orchestrator, gateway):
        orchestrator.charge(
            ChargeRequest(
                items=[{"price": "price_explicit", "quantity": 2}],
                metadata={"items": ["price_metadata"]},
            )
        )

        params = _sent_params(gateway)
        assert params["line_items"] == [{"price": "price_explicit", "quantity": 2}]
        assert "items" not in params["metadata"]

    def test_caller_urls_are_kept(self, orchestrator, gateway):
        orchestrator.charge(
            ChargeRequest(items=["price_setup"], success_url="https://x.test/ok", cancel_url="https://x.test/no")
        )

        params = _sent_params(gateway)
        assert params["success_url"] == "https://x.test/ok"
        assert params["cancel_url"] == "https://x.test/no"

    def test_missing_items(self, orchestrator, gateway):
        with pytest.raises(ValueError):
            orchestrator.charge(ChargeRequest())

        gateway.create_checkout_session.assert_not_called()


class TestSubscribe:
    def test_opens_subscription_session_and_records_it(self, orchestrator, gateway, store):
        session = orchestrator.subscribe(SubscribeRequest(tier_id="price_pro_monthly"))

        params = _sent_params(gateway)
        assert params["mode"] == "subscription"
        assert params["line_items"] == [{"price": "price_pro_monthly", "quantity": 1}]
        assert params["client_reference_id"] == "7"
        assert params["customer_email"] == "ada@example.com"
        assert params["metadata"] == {"tier_id": "price_pro_monthly", "user_id": "7"}
        assert params["subscription_data"] == {"metadata": {"tier_id": "price_pro_monthly", "user_id": "7"}}

        record = store.get_by_user(7)
        assert record.status is SubscriptionStatus.INCOMPLETE
        assert record.payment_session_id == session.id
        assert record.plan_id == "price_pro_monthly"
        assert record.name == "Pro"
        assert record.start_date == NOW
        assert record.end_date == NOW.replace(month=2, day=29)
        assert record.trial_ends_at is None

    def test_tier_trial_is_sent_to_stripe(self, orchestrator, gateway, store):
        orchestrator.subscribe(SubscribeRequest(tier_name="Basic"))

        trial_end = NOW + timedelta(days=15)
        assert _sent_params(gateway)["subscription_data"]["trial_end"] == int(trial_end.timestamp())
        assert store.get_by_user(7).trial_ends_at == trial_end

    def test_request_trial_overrides_tier_trial(self, orchestrator, gateway):
        orchestrator.subscribe(SubscribeRequest(tier_id="price_basic_monthly", trial_days=1))

        expected = NOW + timedelta(hours=48, seconds=10)
        assert _sent_params(gateway)["subscription_data"]["trial_end"] == int(expected.timestamp())

    def test_name_resolves_to_first_matching_tier(self, orchestrator, gateway):
        orchestrator.subscribe(SubscribeRequest(tier_name="Basic", trial_days=0))

        assert _sent_params(gateway)["line_items"][0]["price"] == "price_basic_monthly"

    def test_existing_record_is_left_alone(self, orchestrator, store):
        existing = store.create(
            SubscriptionRecord(user_id="7", name="Basic", plan_id="price_basic_monthly", payment_session_id="cs_old")
        )

        orchestrator.subscribe(SubscribeRequest(tier_id="price_pro_monthly"))

        assert store.get_by_user(7) == existing
        assert len(store.rows) == 1

    def test_anonymous_subscribe_records_nothing(self, gateway, tiers, request_context, store, clock):
        orchestrator = CheckoutOrchestrator(
            gateway,
            tiers,
            request=request_context,
            principals=FakePrincipalAccessor(None),
            store=store,
            clock=clock,
        )

        orchestrator.subscribe(SubscribeRequest(tier_id="price_pro_monthly"))

        params = _sent_params(gateway)
        assert "client_reference_id" not in params
        assert store.rows == {}

    def test_unknown_tier(self, orchestrator, gateway, store):
        with pytest.raises(TierNotFoundError):
            orchestrator.subscribe(SubscribeRequest(tier_id="price_missing"))

        gateway.create_checkout_session.assert_not_called()
        assert store.rows == {}

    def test_tier_reference_is_required(self, orchestrator):
        with pytest.raises(ValueError):
            orchestrator.subscribe(SubscribeRequest())

    def test_one_time_tier_cannot_be_subscribed(self, orchestrator, gateway):
        with pytest.raises(ValueError):
            orchestrator.subscribe(SubscribeRequest(tier_id="price_setup"))

        gateway.create_checkout_session.assert_not_called()

import json
import time

import pytest
from fastapi import HTTPException

from billing.exceptions import SignatureVerificationError
from billing.webhooks import parse_event, verify_and_parse
from tests.conftest import WEBHOOK_SECRET, sign_payload

ENVELOPE = {
    "id": "evt_1",
    "object": "event",
    "api_version": "2024-06-20",
    "created": 1704067200,
    "livemode": False,
    "pending_webhooks": 1,
    "type": "customer.subscription.updated",
    "data": {"object": {"id": "sub_1", "status": "active"}},
}


def test_valid_signature_yields_normalised_event():
    payload = json.dumps(ENVELOPE)

    event = verify_and_parse(payload.encode("utf-8"), sign_payload(payload), WEBHOOK_SECRET)

    assert event.type == "customer.subscription.updated"
    assert event.id == "evt_1"
    assert event.created == 1704067200
    assert event.data == {"object": {"id": "sub_1", "status": "active"}}
    assert set(vars(event)) == {"type", "data", "id", "created"}


def test_tampered_payload_is_rejected():
    payload = json.dumps(ENVELOPE)
    header = sign_payload(payload)
    tampered = payload.replace("active", "canceled")

    with pytest.raises(SignatureVerificationError) as excinfo:
        verify_and_parse(tampered, header, WEBHOOK_SECRET)

    assert excinfo.value.message == "Invalid signature"


def test_wrong_secret_is_rejected():
    payload = json.dumps(ENVELOPE)

    with pytest.raises(SignatureVerificationError):
        verify_and_parse(payload, sign_payload(payload, secret="whsec_other"), WEBHOOK_SECRET)


def test_stale_timestamp_is_rejected():
    payload = json.dumps(ENVELOPE)
    header = sign_payload(payload, timestamp=int(time.time()) - 3600)

    with pytest.raises(SignatureVerificationError):
        verify_and_parse(payload, header, WEBHOOK_SECRET)


def test_missing_header_is_rejected():
    with pytest.raises(SignatureVerificationError):
        verify_and_parse(json.dumps(ENVELOPE), None, WEBHOOK_SECRET)


def test_signed_garbage_is_rejected():
    payload = "not json"

    with pytest.raises(SignatureVerificationError) as excinfo:
        verify_and_parse(payload, sign_payload(payload), WEBHOOK_SECRET)

    assert excinfo.value.message == "Invalid payload"


def test_body_that_is_not_utf8_is_rejected():
    payload = b'{"id": "evt_1", "\xff": 1}'
    header = sign_payload(payload.decode("latin-1"))

    with pytest.raises(SignatureVerificationError) as excinfo:
        verify_and_parse(payload, header, WEBHOOK_SECRET)

    assert excinfo.value.message == "Invalid payload"

    with pytest.raises(HTTPException) as excinfo:
        parse_event(payload, header, WEBHOOK_SECRET)

    assert excinfo.value.status_code == 400


def test_parse_event_answers_bad_signature_with_400():
    payload = json.dumps(ENVELOPE)

    with pytest.raises(HTTPException) as excinfo:
        parse_event(payload.encode("utf-8"), "t=1,v1=deadbeef", WEBHOOK_SECRET)

    assert excinfo.value.status_code == 400
    assert excinfo.value.detail == "Invalid signature"

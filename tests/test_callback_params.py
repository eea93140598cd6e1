import json

import pytest

from checkout_bff.callback_params import LEGACY_KEY, PRESERVATION_KEY, CallbackParameterExtractor
from checkout_bff.session_backup import FALLBACK_KEY


@pytest.fixture
def extractor(store, session_area, local_area):
    return CallbackParameterExtractor(store, session_area=session_area, legacy_area=local_area)


def test_complete_paypal_return_url(extractor):
    params = extractor.extract({"token": "ABC123", "success": "true", "plan_id": "p1", "user_id": "u1"})

    assert params.order_id == "ABC123"
    assert params.plan_id == "p1"
    assert params.user_id == "u1"
    assert params.is_valid_payment_callback
    assert params.has_session_independent_data
    assert not params.fallback_used


def test_backfills_plan_and_user_from_fallback_data(extractor, local_area):
    local_area.set_item(FALLBACK_KEY, json.dumps({"planId": "p2", "userId": "u2", "timestamp": 1}))

    params = extractor.extract({"token": "ABC123", "success": "true"})

    assert (params.plan_id, params.user_id) == ("p2", "u2")
    assert params.has_session_independent_data
    assert params.fallback_used


@pytest.mark.parametrize("query, field, expected", [
    ({"paypal_payment_id": "PAY-1"}, "payment_id", "PAY-1"),
    ({"capture_id": "CAP-1"}, "payment_id", "CAP-1"),
    ({"paymentId": "PAY-2", "payment_id": "PAY-3"}, "payment_id", "PAY-2"),
    ({"PAYERID": "PAYER-1"}, "payer_id", "PAYER-1"),
    ({"paypal_order_id": "O-1"}, "order_id", "O-1"),
    ({"order_id": "O-2", "token": "O-3"}, "order_id", "O-3"),
    ({"planId": "plan-x"}, "plan_id", "plan-x"),
    ({"userId": "user-x"}, "user_id", "user-x"),
])
def test_alternate_parameter_spellings(extractor, query, field, expected):
    assert getattr(extractor.extract(query), field) == expected


def test_empty_url_values_are_ignored(extractor):
    params = extractor.extract({"token": "", "order_id": "O-9"})
    assert params.order_id == "O-9"


def test_payment_context_beats_fallback_data(extractor, local_area):
    local_area.set_item(
        "paypal_payment_context",
        json.dumps({"userId": "ctx-user", "planId": "ctx-plan", "timestamp": 1}),
    )
    local_area.set_item(FALLBACK_KEY, json.dumps({"planId": "fb-plan", "userId": "fb-user", "timestamp": 1}))

    params = extractor.extract({"token": "T"})

    assert (params.plan_id, params.user_id) == ("ctx-plan", "ctx-user")


def test_preservation_record_survives_to_the_next_pass(extractor, session_area):
    extractor.extract({"token": "ORDER-7", "plan_id": "p7", "user_id": "u7"})
    assert json.loads(session_area.get_item(PRESERVATION_KEY)) == {
        "planId": "p7", "userId": "u7", "orderId": "ORDER-7",
    }

    # Second pass after a hiccup: the URL lost plan and user
    params = extractor.extract({"token": "ORDER-7", "success": "true"})
    assert (params.plan_id, params.user_id) == ("p7", "u7")


def test_legacy_record_is_last_resort_and_removed_once_superseded(extractor, local_area):
    local_area.set_item(LEGACY_KEY, json.dumps({"planId": "legacy-plan", "userId": "legacy-user", "amount": 9.99}))

    params = extractor.extract({"token": "T"})
    assert params.plan_id == "legacy-plan"
    assert local_area.get_item(LEGACY_KEY) is not None

    extractor.clear_preservation()
    params = extractor.extract({"token": "T", "plan_id": "p", "user_id": "u"})
    assert params.plan_id == "p"
    assert local_area.get_item(LEGACY_KEY) is None


def test_validity_flags(extractor):
    # No success indicator
    params = extractor.extract({"token": "T", "plan_id": "p"})
    assert not params.is_valid_payment_callback
    assert not params.has_session_independent_data

    # Payer id counts as a success indicator; payment id satisfies the session-independent check
    params = extractor.extract({"paymentId": "PAY", "PayerID": "X", "user_id": "u"})
    assert params.is_valid_payment_callback
    assert not params.has_session_independent_data  # no order id

    params = extractor.extract({"token": "T", "paymentId": "PAY", "user_id": "u"})
    assert params.has_session_independent_data


def test_cancelled_return(extractor):
    params = extractor.extract({"token": "T", "success": "false", "plan_id": "p"})
    assert params.is_cancelled
    assert params.is_valid_payment_callback
    assert not params.has_session_independent_data


def test_extract_without_persist_leaves_storage_untouched(extractor, local_area, session_area):
    local_area.set_item(LEGACY_KEY, json.dumps({"planId": "legacy-plan", "userId": "legacy-user"}))

    params = extractor.extract({"token": "ABC123", "plan_id": "p1", "user_id": "u1"}, persist=False)

    assert params.plan_id == "p1"
    assert session_area.get_item(PRESERVATION_KEY) is None
    assert local_area.get_item(LEGACY_KEY) is not None

import pytest

from backend.app.billing import ReconciliationAction, classify


@pytest.mark.parametrize(
    ("event_name", "expected"),
    [
        ("subscription_created", ReconciliationAction.CREATE_OR_ACTIVATE),
        ("subscription_updated", ReconciliationAction.UPDATE_STATUS),
        ("subscription_cancelled", ReconciliationAction.END_SUBSCRIPTION),
        ("subscription_expired", ReconciliationAction.END_SUBSCRIPTION),
        ("subscription_payment_success", ReconciliationAction.RENEW_PERIOD),
        ("subscription_payment_failed", ReconciliationAction.MARK_PAST_DUE),
    ],
)
def test_known_events_map_to_actions(event_name, expected):
    assert classify(event_name) == expected


@pytest.mark.parametrize(
    "event_name",
    ["order_created", "subscription_paused", "SUBSCRIPTION_CREATED", "", "subscription_created "],
)
def test_other_event_names_are_ignored(event_name):
    assert classify(event_name) == ReconciliationAction.IGNORE

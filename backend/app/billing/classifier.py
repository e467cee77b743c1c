"""Maps provider event names onto reconciliation actions."""
from __future__ import annotations

from typing import Dict

from .models import ReconciliationAction

EVENT_ACTIONS: Dict[str, ReconciliationAction] = {
    "subscription_created": ReconciliationAction.CREATE_OR_ACTIVATE,
    "subscription_updated": ReconciliationAction.UPDATE_STATUS,
    "subscription_cancelled": ReconciliationAction.END_SUBSCRIPTION,
    "subscription_expired": ReconciliationAction.END_SUBSCRIPTION,
    "subscription_payment_success": ReconciliationAction.RENEW_PERIOD,
    "subscription_payment_failed": ReconciliationAction.MARK_PAST_DUE,
}


def classify(event_name: str) -> ReconciliationAction:
    """Return the action for ``event_name``; unrecognized names are ignored."""

    return EVENT_ACTIONS.get(event_name, ReconciliationAction.IGNORE)


__all__ = ["EVENT_ACTIONS", "classify"]

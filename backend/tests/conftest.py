from __future__ import annotations

import json
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Dict, Iterable, List, Optional, Tuple

import pytest

from backend.app.billing import (
    BillingAccount,
    BillingAuditEvent,
    BillingService,
    BillingUpdate,
    HmacWebhookVerifier,
    PersistenceFailed,
)
from backend.app.billing.service import BillingEventLogger, BillingRepository
from backend.app.billing.verification import compute_signature

WEBHOOK_SECRET = "whsec_test_secret"
NOW = datetime(2024, 5, 2, 8, 30, tzinfo=timezone.utc)


class InMemoryBillingRepository(BillingRepository):
    def __init__(self, accounts: Iterable[BillingAccount] = ()) -> None:
        self.accounts: Dict[str, BillingAccount] = {account.user_id: account for account in accounts}
        self.updates: List[Tuple[str, BillingUpdate]] = []
        self.transactions = 0
        self.rollbacks = 0
        self.fail_updates = False

    @contextmanager
    def transaction(self):
        snapshot = dict(self.accounts)
        self.transactions += 1
        try:
            yield self
        except Exception:
            self.accounts = snapshot
            self.rollbacks += 1
            raise

    def get_account_by_customer_id(self, customer_id: str) -> Optional[BillingAccount]:
        return next((a for a in self.accounts.values() if a.customer_id == customer_id), None)

    def get_account_by_subscription_id(self, subscription_id: str) -> Optional[BillingAccount]:
        return next((a for a in self.accounts.values() if a.subscription_id == subscription_id), None)

    def update_billing(self, user_id: str, update: BillingUpdate) -> BillingAccount:
        if self.fail_updates:
            raise PersistenceFailed("connection reset by peer")
        updated = update.apply_to(self.accounts[user_id])
        self.accounts[user_id] = updated
        self.updates.append((user_id, update))
        return updated


class FakeEventLogger(BillingEventLogger):
    def __init__(self) -> None:
        self.events: List[BillingAuditEvent] = []

    def log(self, event: BillingAuditEvent) -> None:
        self.events.append(event)


class MutableClock:
    def __init__(self, now: datetime = NOW) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now


def build_payload(
    event_name: str,
    *,
    subscription_id: int = 9001,
    customer_id: int = 777,
    product_id: int = 12345,
    variant_id: int = 12345,
    status: str = "active",
    created_at: str = "2024-05-01T12:00:00Z",
    renews_at: Optional[str] = "2024-06-01T12:00:00Z",
    ends_at: Optional[str] = None,
    nested_meta: bool = False,
) -> bytes:
    body: Dict[str, object] = {
        "data": {
            "type": "subscriptions",
            "id": str(subscription_id),
            "attributes": {
                "id": subscription_id,
                "customer_id": customer_id,
                "product_id": product_id,
                "variant_id": variant_id,
                "status": status,
                "created_at": created_at,
                "renews_at": renews_at,
                "ends_at": ends_at,
                "user_email": "owner@example.com",
            },
        }
    }
    if nested_meta:
        body["meta"] = {"event_name": event_name, "test_mode": True}
    else:
        body["event_name"] = event_name
    return json.dumps(body).encode("utf-8")


def sign(raw_payload: bytes, secret: str = WEBHOOK_SECRET) -> str:
    return compute_signature(raw_payload, secret)


def free_account(**overrides) -> BillingAccount:
    values = {
        "user_id": "user-1",
        "email": "owner@example.com",
        "customer_id": "777",
        "updated_utc": datetime(2024, 1, 1, tzinfo=timezone.utc),
    }
    values.update(overrides)
    return BillingAccount(**values)


@pytest.fixture
def clock() -> MutableClock:
    return MutableClock()


@pytest.fixture
def repository() -> InMemoryBillingRepository:
    return InMemoryBillingRepository([free_account()])


@pytest.fixture
def event_logger() -> FakeEventLogger:
    return FakeEventLogger()


@pytest.fixture
def billing_service(repository, event_logger, clock) -> BillingService:
    return BillingService(
        repository=repository,
        verifier=HmacWebhookVerifier(WEBHOOK_SECRET),
        event_logger=event_logger,
        clock=clock,
    )

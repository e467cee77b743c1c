"""Core service reconciling billing state with payment provider webhooks."""
from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, ContextManager, Dict, Mapping, Optional, Protocol

from pydantic import ValidationError

from .classifier import classify
from .exceptions import AccountNotFound, DeserializationFailed, PersistenceFailed, VerificationFailed
from .models import (
    BillingAccount,
    BillingAuditEvent,
    BillingAuditEventType,
    BillingUpdate,
    PlanStatus,
    ReconciliationAction,
    SubscriptionAttributes,
    WebhookEvent,
    WebhookOutcome,
)
from .plans import DEFAULT_CATALOG, PlanCatalog, get_plan_definition
from .verification import WebhookVerifier

logger = logging.getLogger(__name__)


class BillingRepository(Protocol):
    """Persistence operations required by the billing service."""

    def transaction(self) -> ContextManager["BillingRepository"]:
        """Return a repository whose reads and writes commit or roll back together."""

    def get_account_by_customer_id(self, customer_id: str) -> Optional[BillingAccount]:
        ...

    def get_account_by_subscription_id(self, subscription_id: str) -> Optional[BillingAccount]:
        ...

    def update_billing(self, user_id: str, update: BillingUpdate) -> BillingAccount:
        """Apply the non-empty fields of ``update``; raise :class:`PersistenceFailed` on error."""


class BillingEventLogger(Protocol):
    """Captures structured billing audit events."""

    def log(self, event: BillingAuditEvent) -> None:
        ...


def _event_name_from_body(body: Mapping[str, object]) -> Optional[str]:
    name = body.get("event_name")
    if not name:
        meta = body.get("meta")
        if isinstance(meta, dict):
            name = meta.get("event_name")
    return str(name) if name else None


def parse_webhook_body(raw_payload: bytes) -> Dict[str, object]:
    """Decode the raw body into a JSON object or raise :class:`DeserializationFailed`."""

    try:
        body = json.loads(raw_payload)
    except (UnicodeDecodeError, ValueError) as exc:
        raise DeserializationFailed("Webhook body is not valid JSON") from exc
    if not isinstance(body, dict):
        raise DeserializationFailed("Webhook body must be a JSON object")
    return body


def parse_webhook_event(body: Mapping[str, object]) -> WebhookEvent:
    try:
        return WebhookEvent.model_validate(body)
    except ValidationError as exc:
        raise DeserializationFailed(f"Webhook payload does not match schema: {exc.error_count()} error(s)") from exc


_AUDIT_TYPES: Dict[ReconciliationAction, BillingAuditEventType] = {
    ReconciliationAction.CREATE_OR_ACTIVATE: BillingAuditEventType.SUBSCRIPTION_ACTIVATED,
    ReconciliationAction.UPDATE_STATUS: BillingAuditEventType.SUBSCRIPTION_UPDATED,
    ReconciliationAction.END_SUBSCRIPTION: BillingAuditEventType.SUBSCRIPTION_CANCELLED,
    ReconciliationAction.RENEW_PERIOD: BillingAuditEventType.PAYMENT_SUCCEEDED,
    ReconciliationAction.MARK_PAST_DUE: BillingAuditEventType.PAYMENT_FAILED,
}


@dataclass(slots=True)
class BillingService:
    """Verifies, classifies, and applies payment provider webhooks."""

    repository: BillingRepository
    verifier: WebhookVerifier
    event_logger: BillingEventLogger
    plan_catalog: PlanCatalog = field(default=DEFAULT_CATALOG)
    clock: Callable[[], datetime] = field(default=lambda: datetime.now(timezone.utc))

    def _now(self) -> datetime:
        return self.clock()

    def handle_webhook(self, raw_payload: bytes, signature: Optional[str]) -> WebhookOutcome:
        if not self.verifier.verify(raw_payload, signature):
            logger.warning(
                "Rejected webhook with invalid signature",
                extra={"payload_bytes": len(raw_payload), "has_signature": bool(signature)},
            )
            raise VerificationFailed()

        body = parse_webhook_body(raw_payload)
        event_name = _event_name_from_body(body)
        if not event_name:
            raise DeserializationFailed("Webhook payload is missing event_name")

        action = classify(event_name)
        if action == ReconciliationAction.IGNORE:
            logger.info("Received unknown webhook event: %s", event_name)
            return WebhookOutcome(event_name=event_name, action=action, ignored=True)

        event = parse_webhook_event(body)
        attributes = event.attributes
        logger.info(
            "Processing webhook %s for customer %s subscription %s",
            event_name,
            attributes.customer_ref,
            attributes.subscription_id,
        )
        account = self.reconcile(action, attributes, event_name=event_name)
        return WebhookOutcome(event_name=event_name, action=action, account=account)

    def reconcile(
        self,
        action: ReconciliationAction,
        attributes: SubscriptionAttributes,
        *,
        event_name: Optional[str] = None,
    ) -> Optional[BillingAccount]:
        if action == ReconciliationAction.IGNORE:
            return None

        context = {
            "event_name": event_name or action.value,
            "customer_id": attributes.customer_ref,
            "subscription_id": attributes.subscription_id,
        }
        try:
            with self.repository.transaction() as repository:
                account = self._lookup_account(repository, action, attributes)
                update = self._build_update(action, attributes)
                persisted = repository.update_billing(account.user_id, update)
        except AccountNotFound:
            logger.warning("Billing account not found for webhook", extra=context)
            raise
        except PersistenceFailed:
            logger.exception("Failed to persist billing update", extra=context)
            raise

        self._log_audit(action, persisted, event_name=context["event_name"], attributes=attributes)
        logger.info(
            "Reconciled %s for user %s: plan=%s status=%s",
            context["event_name"],
            persisted.user_id,
            persisted.plan_type.value,
            persisted.plan_status.value if persisted.plan_status else None,
        )
        return persisted

    def _lookup_account(
        self,
        repository: BillingRepository,
        action: ReconciliationAction,
        attributes: SubscriptionAttributes,
    ) -> BillingAccount:
        if action == ReconciliationAction.CREATE_OR_ACTIVATE:
            account = repository.get_account_by_customer_id(attributes.customer_ref)
            if account is None:
                raise AccountNotFound(customer_id=attributes.customer_ref)
            return account

        account = repository.get_account_by_subscription_id(attributes.subscription_id)
        if account is None:
            raise AccountNotFound(subscription_id=attributes.subscription_id)
        return account

    def _build_update(
        self,
        action: ReconciliationAction,
        attributes: SubscriptionAttributes,
    ) -> BillingUpdate:
        now = self._now()
        if action == ReconciliationAction.CREATE_OR_ACTIVATE:
            return BillingUpdate(
                customer_id=attributes.customer_ref,
                subscription_id=attributes.subscription_id,
                plan_type=self.plan_catalog.resolve(attributes.product_id, attributes.variant_id),
                plan_status=PlanStatus.ACTIVE,
                current_period_start=attributes.created_at,
                current_period_end=attributes.renews_at,
                updated_utc=now,
            )
        if action == ReconciliationAction.UPDATE_STATUS:
            status = PlanStatus.CANCELLED if attributes.status == "cancelled" else PlanStatus.ACTIVE
            return BillingUpdate(
                plan_type=self.plan_catalog.resolve(attributes.product_id, attributes.variant_id),
                plan_status=status,
                current_period_start=attributes.created_at,
                current_period_end=attributes.renews_at,
                updated_utc=now,
            )
        if action == ReconciliationAction.END_SUBSCRIPTION:
            return BillingUpdate(plan_status=PlanStatus.CANCELLED, updated_utc=now)
        if action == ReconciliationAction.RENEW_PERIOD:
            return BillingUpdate(
                plan_status=PlanStatus.ACTIVE,
                current_period_end=attributes.renews_at,
                updated_utc=now,
            )
        if action == ReconciliationAction.MARK_PAST_DUE:
            return BillingUpdate(plan_status=PlanStatus.PAST_DUE, updated_utc=now)
        raise ValueError(f"No billing update defined for action {action.value}")

    def _log_audit(
        self,
        action: ReconciliationAction,
        account: BillingAccount,
        *,
        event_name: str,
        attributes: SubscriptionAttributes,
    ) -> None:
        event_type = _AUDIT_TYPES[action]
        if action == ReconciliationAction.UPDATE_STATUS and account.plan_status == PlanStatus.CANCELLED:
            event_type = BillingAuditEventType.SUBSCRIPTION_CANCELLED

        self.event_logger.log(
            BillingAuditEvent(
                event_type=event_type,
                user_id=account.user_id,
                customer_id=account.customer_id,
                subscription_id=account.subscription_id,
                plan_type=account.plan_type,
                plan_status=account.plan_status,
                metadata={
                    "event_name": event_name,
                    "plan_name": get_plan_definition(account.plan_type).display_name,
                    "product_id": str(attributes.product_id),
                    "variant_id": str(attributes.variant_id),
                },
                occurred_at=account.updated_utc,
            )
        )


__all__ = [
    "BillingEventLogger",
    "BillingRepository",
    "BillingService",
    "parse_webhook_body",
    "parse_webhook_event",
]

"""Billing domain package reconciling subscriptions from provider webhooks."""

from .classifier import classify
from .exceptions import (
    AccountNotFound,
    DeserializationFailed,
    PersistenceFailed,
    VerificationFailed,
    WebhookError,
)
from .models import (
    BillingAccount,
    BillingAuditEvent,
    BillingAuditEventType,
    BillingUpdate,
    PlanStatus,
    PlanType,
    ReconciliationAction,
    SubscriptionAttributes,
    WebhookEvent,
    WebhookOutcome,
)
from .plans import PlanCatalog, resolve_plan
from .service import BillingEventLogger, BillingRepository, BillingService
from .verification import HmacWebhookVerifier, WebhookVerifier, verify_signature

__all__ = [
    "AccountNotFound",
    "BillingAccount",
    "BillingAuditEvent",
    "BillingAuditEventType",
    "BillingEventLogger",
    "BillingRepository",
    "BillingService",
    "BillingUpdate",
    "DeserializationFailed",
    "HmacWebhookVerifier",
    "PersistenceFailed",
    "PlanCatalog",
    "PlanStatus",
    "PlanType",
    "ReconciliationAction",
    "SubscriptionAttributes",
    "VerificationFailed",
    "WebhookError",
    "WebhookEvent",
    "WebhookOutcome",
    "WebhookVerifier",
    "classify",
    "resolve_plan",
    "verify_signature",
]

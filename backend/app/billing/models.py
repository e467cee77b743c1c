"""Domain models for billing reconciliation."""
from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Dict, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


class PlanType(str, Enum):
    """Internal plan tiers a customer can be entitled to."""

    FREE = "free"
    TESTIMONIALHUB_PRO = "testimonialhub_pro"
    STATUSLOOPS_PRO = "statusloops_pro"
    SHOTLOOPS_PRO = "shotloops_pro"
    TRUSTLOOPS_BUNDLE = "trustloops_bundle"


class PlanStatus(str, Enum):
    """Lifecycle status of a billing account."""

    ACTIVE = "active"
    PAST_DUE = "past_due"
    CANCELLED = "cancelled"


class ReconciliationAction(str, Enum):
    """State transition applied for a classified webhook event."""

    CREATE_OR_ACTIVATE = "create_or_activate"
    UPDATE_STATUS = "update_status"
    END_SUBSCRIPTION = "end_subscription"
    RENEW_PERIOD = "renew_period"
    MARK_PAST_DUE = "mark_past_due"
    IGNORE = "ignore"


def _as_utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class BillingAccount(BaseModel):
    """Billing state of one user, synchronized from the payment provider."""

    user_id: str
    email: Optional[str] = None
    customer_id: Optional[str] = None
    subscription_id: Optional[str] = None
    plan_type: PlanType = PlanType.FREE
    plan_status: Optional[PlanStatus] = None
    current_period_start: Optional[datetime] = None
    current_period_end: Optional[datetime] = None
    updated_utc: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    @model_validator(mode="after")
    def _status_requires_subscription(self) -> "BillingAccount":
        if self.plan_status in {PlanStatus.ACTIVE, PlanStatus.PAST_DUE} and not self.subscription_id:
            raise ValueError(
                f"plan_status {self.plan_status.value!r} requires a subscription_id"
            )
        return self


class BillingUpdate(BaseModel):
    """Patch of mutable billing fields; ``None`` leaves a column untouched."""

    customer_id: Optional[str] = None
    subscription_id: Optional[str] = None
    plan_type: Optional[PlanType] = None
    plan_status: Optional[PlanStatus] = None
    current_period_start: Optional[datetime] = None
    current_period_end: Optional[datetime] = None
    updated_utc: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    def apply_to(self, account: BillingAccount) -> BillingAccount:
        """Return ``account`` with the non-empty fields of this update applied."""

        changes = self.model_dump(exclude_none=True)
        return account.model_copy(update=changes)


class SubscriptionAttributes(BaseModel):
    """Subscription attributes carried in a LemonSqueezy webhook."""

    id: int
    customer_id: int
    product_id: int
    variant_id: int
    status: str = ""
    created_at: datetime
    renews_at: Optional[datetime] = None
    ends_at: Optional[datetime] = None

    model_config = ConfigDict(extra="ignore", frozen=True)

    @field_validator("created_at", "renews_at", "ends_at")
    @classmethod
    def _normalize_timestamp(cls, value: Optional[datetime]) -> Optional[datetime]:
        return _as_utc(value)

    @property
    def subscription_id(self) -> str:
        return str(self.id)

    @property
    def customer_ref(self) -> str:
        return str(self.customer_id)


class WebhookData(BaseModel):
    type: str = ""
    id: str = ""
    attributes: SubscriptionAttributes

    model_config = ConfigDict(extra="ignore", frozen=True)


class WebhookEvent(BaseModel):
    """Inbound, untrusted notification from the payment provider."""

    event_name: str
    data: WebhookData

    model_config = ConfigDict(extra="ignore", frozen=True)

    @model_validator(mode="before")
    @classmethod
    def _event_name_from_meta(cls, value: object) -> object:
        # LemonSqueezy nests the event name under ``meta`` in its native format.
        if isinstance(value, dict) and "event_name" not in value:
            meta = value.get("meta")
            if isinstance(meta, dict) and meta.get("event_name"):
                return {**value, "event_name": meta["event_name"]}
        return value

    @property
    def attributes(self) -> SubscriptionAttributes:
        return self.data.attributes


class WebhookOutcome(BaseModel):
    """Result of processing one webhook delivery."""

    event_name: str
    action: ReconciliationAction
    ignored: bool = False
    account: Optional[BillingAccount] = None

    model_config = ConfigDict(frozen=True)


class BillingAuditEventType(str, Enum):
    """Audit event categories emitted after a reconciliation."""

    SUBSCRIPTION_ACTIVATED = "subscription_activated"
    SUBSCRIPTION_UPDATED = "subscription_updated"
    SUBSCRIPTION_CANCELLED = "subscription_cancelled"
    PAYMENT_SUCCEEDED = "payment_succeeded"
    PAYMENT_FAILED = "payment_failed"


class BillingAuditEvent(BaseModel):
    """Structured audit record used for manual reconciliation."""

    event_type: BillingAuditEventType
    user_id: str
    customer_id: Optional[str] = None
    subscription_id: Optional[str] = None
    plan_type: Optional[PlanType] = None
    plan_status: Optional[PlanStatus] = None
    metadata: Dict[str, str] = Field(default_factory=dict)
    occurred_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    model_config = ConfigDict(populate_by_name=True, frozen=True)

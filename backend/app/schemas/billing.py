"""API schemas for billing endpoints."""
from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from ..billing import PlanStatus, PlanType, ReconciliationAction, WebhookOutcome


class WebhookAckResponse(BaseModel):
    ok: bool = True
    event_name: str = Field(alias="eventName")
    action: ReconciliationAction
    ignored: bool = False
    user_id: Optional[str] = Field(default=None, alias="userId")
    plan_type: Optional[PlanType] = Field(default=None, alias="planType")
    plan_status: Optional[PlanStatus] = Field(default=None, alias="planStatus")
    current_period_end: Optional[datetime] = Field(default=None, alias="currentPeriodEnd")

    model_config = ConfigDict(populate_by_name=True)

    @classmethod
    def from_outcome(cls, outcome: WebhookOutcome) -> "WebhookAckResponse":
        account = outcome.account
        return cls(
            event_name=outcome.event_name,
            action=outcome.action,
            ignored=outcome.ignored,
            user_id=account.user_id if account else None,
            plan_type=account.plan_type if account else None,
            plan_status=account.plan_status if account else None,
            current_period_end=account.current_period_end if account else None,
        )

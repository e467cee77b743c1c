"""Application wiring for the billing service."""
from __future__ import annotations

import logging
from functools import lru_cache

from ..billing import (
    BillingAuditEvent,
    BillingEventLogger,
    BillingService,
    HmacWebhookVerifier,
)
from ..billing.config import BillingConfig, load_billing_config
from ..billing.repository import PostgresBillingRepository


logger = logging.getLogger("billing")


class LoggingBillingEventLogger(BillingEventLogger):
    """Event logger forwarding billing audit events to the application log."""

    def log(self, event: BillingAuditEvent) -> None:
        logger.info(
            "Billing event %s user=%s customer=%s subscription=%s plan=%s status=%s metadata=%s",
            event.event_type.value,
            event.user_id,
            event.customer_id,
            event.subscription_id,
            event.plan_type.value if event.plan_type else None,
            event.plan_status.value if event.plan_status else None,
            event.metadata,
        )


@lru_cache(maxsize=1)
def get_billing_config() -> BillingConfig:
    return load_billing_config()


@lru_cache(maxsize=1)
def get_billing_service() -> BillingService:
    config = get_billing_config()
    service = BillingService(
        repository=PostgresBillingRepository(),
        verifier=HmacWebhookVerifier(config.webhook_secret),
        event_logger=LoggingBillingEventLogger(),
        plan_catalog=config.plan_catalog,
    )
    return service


__all__ = ["get_billing_config", "get_billing_service", "LoggingBillingEventLogger"]

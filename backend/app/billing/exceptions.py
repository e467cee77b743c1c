"""Errors raised while ingesting billing webhooks."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional

from fastapi import HTTPException, status


@dataclass
class WebhookError(Exception):
    """Represents a webhook processing failure surfaced to the provider."""

    code: str
    message: str
    status_code: int = status.HTTP_400_BAD_REQUEST
    detail: Optional[Mapping[str, Any]] = None

    def __post_init__(self) -> None:
        base_detail: Dict[str, Any] = {"error": self.code, "message": self.message}
        if self.detail:
            base_detail.update(self.detail)
        object.__setattr__(self, "_payload", base_detail)
        super().__init__(self.message)

    @property
    def payload(self) -> Mapping[str, Any]:
        """Serialized representation suitable for JSON responses."""

        return self._payload

    def to_http_exception(self) -> HTTPException:
        """Convert the domain error into a FastAPI HTTPException."""

        return HTTPException(status_code=self.status_code, detail=dict(self.payload))


class VerificationFailed(WebhookError):
    """The webhook signature is missing or does not match the payload."""

    def __init__(self, message: str = "Invalid webhook signature") -> None:
        super().__init__(
            code="verification_failed",
            message=message,
            status_code=status.HTTP_401_UNAUTHORIZED,
        )


class DeserializationFailed(WebhookError):
    """The webhook body is not a well-formed provider payload."""

    def __init__(self, message: str = "Malformed webhook payload") -> None:
        super().__init__(
            code="deserialization_failed",
            message=message,
            status_code=status.HTTP_400_BAD_REQUEST,
        )


class AccountNotFound(WebhookError):
    """No billing account matches the customer or subscription identifier."""

    def __init__(
        self,
        *,
        customer_id: Optional[str] = None,
        subscription_id: Optional[str] = None,
    ) -> None:
        if customer_id is not None:
            message = f"No account for customer {customer_id}"
        else:
            message = f"No account for subscription {subscription_id}"
        super().__init__(
            code="account_not_found",
            message=message,
            status_code=status.HTTP_404_NOT_FOUND,
            detail={"customer_id": customer_id, "subscription_id": subscription_id},
        )
        self.customer_id = customer_id
        self.subscription_id = subscription_id


class PersistenceFailed(WebhookError):
    """The billing store rejected a read or write."""

    def __init__(self, message: str = "Billing store unavailable") -> None:
        super().__init__(
            code="persistence_failed",
            message=message,
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        )


__all__ = [
    "AccountNotFound",
    "DeserializationFailed",
    "PersistenceFailed",
    "VerificationFailed",
    "WebhookError",
]

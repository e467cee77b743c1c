"""API routes receiving payment provider webhooks."""
from __future__ import annotations

import logging

from fastapi import APIRouter, HTTPException, Request, status
from fastapi.concurrency import run_in_threadpool

from ..billing import WebhookError
from ..schemas.billing import WebhookAckResponse
from ..services.billing import get_billing_config, get_billing_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/webhooks", tags=["billing"])


@router.post(
    "/lemonsqueezy",
    response_model=WebhookAckResponse,
    response_model_by_alias=True,
)
async def receive_lemonsqueezy_webhook(request: Request) -> WebhookAckResponse:
    raw_payload = await request.body()
    signature = request.headers.get(get_billing_config().signature_header)
    service = get_billing_service()
    try:
        outcome = await run_in_threadpool(service.handle_webhook, raw_payload, signature)
    except WebhookError as exc:
        raise exc.to_http_exception() from exc
    except Exception as exc:
        logger.exception("Unhandled error processing LemonSqueezy webhook")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail={"error": "internal_error", "message": "Webhook processing failed"},
        ) from exc

    return WebhookAckResponse.from_outcome(outcome)

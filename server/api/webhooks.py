"""
Webhook Endpoint - lifecycle events posted by the automation sidecar.
"""

import hashlib
import hmac
import json
from typing import Optional

from fastapi import APIRouter, Header, Request
from pydantic import ValidationError

from server.core.config import Settings
from server.core.monitoring import log_event, log_exception
from server.dependencies import ContextDep
from server.schemas.webhooks import ProviderWebhook
from server.whatsapp.events import parse_provider_event

router = APIRouter(prefix="/webhooks", tags=["Webhooks"])


@router.post("/provider")
async def receive_provider_event(
    request: Request,
    context: ContextDep,
    x_provider_signature: Optional[str] = Header(None, alias="X-Provider-Signature"),
):
    """
    Receives lifecycle events for every account.
    Verifies signature and hands the event to the account's client.
    Always returns 200 OK.
    """
    try:
        raw_body = await request.body()

        if not _verify_signature(context.settings, raw_body, x_provider_signature):
            log_event("webhook_signature_invalid", level="warning")
            return {"status": "ok"}

        try:
            webhook = ProviderWebhook.model_validate(json.loads(raw_body))
            event = parse_provider_event(webhook.event)
        except json.JSONDecodeError as e:
            log_event("webhook_json_invalid", level="error", error=str(e))
            return {"status": "ok"}
        except (ValidationError, ValueError) as e:
            log_event("webhook_payload_invalid", level="warning", error=str(e))
            return {"status": "ok"}

        account_id = webhook.account_id
        if account_id not in context.registry:
            log_event(
                "webhook_no_session",
                level="warning",
                account_id=account_id,
                event_type=event.type,
            )
            return {"status": "ok"}

        session = context.registry.get(account_id)
        await session.client.emit(event)

        return {"status": "ok"}

    except Exception as e:
        log_exception("webhook_unhandled_error", e, endpoint="POST /webhooks/provider")
        return {"status": "ok"}


def _verify_signature(settings: Settings, body: bytes, signature: Optional[str]) -> bool:
    """
    Verify webhook authenticity using HMAC-SHA256.
    """
    if settings.ENV == "development" and not settings.PROVIDER_WEBHOOK_SECRET:
        return True

    if not signature or not signature.startswith("sha256="):
        return False

    expected_signature = signature[7:]
    secret = settings.PROVIDER_WEBHOOK_SECRET
    if not secret:
        log_event("webhook_secret_missing", level="error")
        return False

    computed = hmac.new(
        key=secret.encode("utf-8"), msg=body, digestmod=hashlib.sha256
    ).hexdigest()

    return hmac.compare_digest(computed, expected_signature)

import json

from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy.orm import Session

from stockledger.core.api_docs import error_responses
from stockledger.core.deps import get_db
from stockledger.core.errors import ValidationError
from stockledger.core.security import assert_webhook_signature, normalize_shop_domain
from stockledger.schemas.webhook import WebhookOut
from stockledger.services.inventory_platform import InventoryPlatform, get_platform
from stockledger.services.webhook_adapters import dispatch, normalize_topic

router = APIRouter(prefix="/webhooks", tags=["webhooks"])


def _parse_body(raw_body: bytes) -> dict:
    try:
        payload = json.loads(raw_body.decode("utf-8") or "null")
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise HTTPException(status_code=400, detail="Webhook body is not valid JSON") from exc
    if not isinstance(payload, dict):
        raise HTTPException(status_code=400, detail="Webhook body must be a JSON object")
    return payload


@router.post(
    "",
    response_model=WebhookOut,
    summary="Receive a platform webhook delivery",
    responses=error_responses(400, 401, 500, path="/webhooks"),
)
async def receive_webhook(
    request: Request,
    db: Session = Depends(get_db),
    platform: InventoryPlatform = Depends(get_platform),
):
    raw_body = await request.body()
    assert_webhook_signature(raw_body, request.headers.get("X-Shopify-Hmac-Sha256"))

    topic = normalize_topic(request.headers.get("X-Shopify-Topic"))
    if not topic:
        raise HTTPException(status_code=400, detail="Unsupported webhook topic")

    tenant_id = normalize_shop_domain(request.headers.get("X-Shopify-Shop-Domain"))
    if not tenant_id:
        raise HTTPException(status_code=400, detail="X-Shopify-Shop-Domain header is required")

    payload = _parse_body(raw_body)
    try:
        report = dispatch(db, platform, topic=topic, tenant_id=tenant_id, payload=payload)
    except ValidationError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc

    return WebhookOut(ok=True, topic=topic, **report.counts())

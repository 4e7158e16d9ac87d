import base64
import hashlib
import hmac
import re

from fastapi import Header, HTTPException

from stockledger.core.config import settings

_SHOP_DOMAIN_RE = re.compile(r"^[a-z0-9][a-z0-9\-]*(\.[a-z0-9][a-z0-9\-]*)+$")


def normalize_shop_domain(value: str | None) -> str | None:
    if value is None:
        return None
    cleaned = value.strip().lower()
    if cleaned.startswith("https://"):
        cleaned = cleaned[len("https://"):]
    cleaned = cleaned.rstrip("/")
    if not cleaned or not _SHOP_DOMAIN_RE.match(cleaned):
        return None
    return cleaned


def build_webhook_signature(payload_bytes: bytes, *, secret: str | None = None) -> str:
    digest = hmac.new(
        (secret or settings.webhook_secret).encode("utf-8"),
        payload_bytes,
        hashlib.sha256,
    ).digest()
    return base64.b64encode(digest).decode("utf-8")


def assert_webhook_signature(payload_bytes: bytes, signature_header: str | None) -> None:
    if not signature_header or not signature_header.strip():
        raise HTTPException(status_code=401, detail="Missing webhook signature")

    expected = build_webhook_signature(payload_bytes)
    if not hmac.compare_digest(signature_header.strip(), expected):
        raise HTTPException(status_code=401, detail="Invalid webhook signature")


def get_current_tenant(
    x_shop_domain: str | None = Header(default=None, alias="X-Shop-Domain"),
    x_app_token: str | None = Header(default=None, alias="X-App-Token"),
) -> str:
    if not x_app_token or not x_app_token.strip():
        raise HTTPException(status_code=401, detail="Missing app token")
    if not hmac.compare_digest(x_app_token.strip(), settings.app_api_token):
        raise HTTPException(status_code=401, detail="Invalid app token")

    tenant_id = normalize_shop_domain(x_shop_domain)
    if not tenant_id:
        raise HTTPException(status_code=400, detail="X-Shop-Domain header is required")
    return tenant_id

import json
from typing import Dict, List, Union
from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    app_name: str = "Stock Ledger Backend"
    env: str = "dev"

    # DATABASE
    database_url: str
    db_pool_size: int = Field(default=10, ge=1, le=100)
    db_max_overflow: int = Field(default=20, ge=0, le=200)
    db_pool_timeout_seconds: int = Field(default=30, ge=1, le=300)
    db_pool_recycle_seconds: int = Field(default=1800, ge=30, le=86_400)

    # AUTH
    webhook_secret: str = "dev-webhook-secret"
    app_api_token: str = "dev-app-token"

    # COMMERCE PLATFORM
    inventory_platform_default: str = "stub"
    shopify_api_version: str = "2025-10"
    shopify_access_tokens: Dict[str, str] = Field(default_factory=dict)
    platform_request_timeout_seconds: int = Field(default=15, ge=1, le=120)

    # RECONCILIATION
    reconciliation_lookback_minutes: int = Field(default=30, ge=0, le=1440)
    reconciliation_lookahead_minutes: int = Field(default=5, ge=0, le=1440)
    provisional_duplicate_seconds: int = Field(default=5, ge=0, le=3600)
    pending_order_lookback_minutes: int = Field(default=5, ge=0, le=1440)
    pending_order_lookahead_minutes: int = Field(default=2, ge=0, le=1440)

    # CORS
    cors_origins: List[str] = Field(default_factory=lambda: ["http://localhost:3000"])
    cors_origin_regex: str | None = None

    @field_validator("cors_origins", mode="before")
    @classmethod
    def assemble_cors_origins(cls, v: Union[str, List[str]]) -> List[str]:
        if v is None:
            return []
        if isinstance(v, str):
            if not v.strip():
                return []
            if v.startswith("["):
                parsed = json.loads(v)
                if not isinstance(parsed, list):
                    raise ValueError("CORS_ORIGINS JSON value must be a list")
                return [str(i).strip() for i in parsed if str(i).strip()]
            return [i.strip() for i in v.split(",") if i.strip()]
        if isinstance(v, list):
            return [str(i).strip() for i in v if str(i).strip()]
        raise ValueError(v)

    @field_validator("shopify_access_tokens", mode="before")
    @classmethod
    def assemble_access_tokens(cls, v: Union[str, Dict[str, str], None]) -> Dict[str, str]:
        # Accepts a JSON object or "shop-a.myshopify.com=token,shop-b.myshopify.com=token".
        if v is None:
            return {}
        if isinstance(v, str):
            if not v.strip():
                return {}
            if v.strip().startswith("{"):
                parsed = json.loads(v)
                if not isinstance(parsed, dict):
                    raise ValueError("SHOPIFY_ACCESS_TOKENS JSON value must be an object")
                v = parsed
            else:
                pairs = [item.split("=", 1) for item in v.split(",") if item.strip()]
                if any(len(pair) != 2 for pair in pairs):
                    raise ValueError("SHOPIFY_ACCESS_TOKENS entries must look like shop=token")
                v = {shop: token for shop, token in pairs}
        if isinstance(v, dict):
            return {
                str(shop).strip().lower(): str(token).strip()
                for shop, token in v.items()
                if str(shop).strip() and str(token).strip()
            }
        raise ValueError(v)

    @field_validator("inventory_platform_default", mode="before")
    @classmethod
    def normalize_platform_name(cls, value: str | None) -> str:
        cleaned = str(value or "").strip().lower()
        return cleaned or "stub"

    @model_validator(mode="after")
    def validate_production_safety(self) -> "Settings":
        env_value = self.env.lower().strip()
        if env_value not in {"prod", "production"}:
            return self

        weak_secrets = {
            "",
            "change_me",
            "dev-webhook-secret",
            "dev-app-token",
        }
        if self.webhook_secret.strip() in weak_secrets or len(self.webhook_secret.strip()) < 32:
            raise ValueError("WEBHOOK_SECRET must be a strong random value in production")
        if self.app_api_token.strip() in weak_secrets or len(self.app_api_token.strip()) < 32:
            raise ValueError("APP_API_TOKEN must be a strong random value in production")

        if "*" in self.cors_origins:
            raise ValueError("CORS_ORIGINS cannot contain '*' in production")
        if self.cors_origin_regex:
            raise ValueError("CORS_ORIGIN_REGEX cannot be set in production")

        if self.inventory_platform_default == "stub":
            raise ValueError("INVENTORY_PLATFORM_DEFAULT cannot be 'stub' in production")

        return self

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
        enable_decoding=False,
    )


settings = Settings()

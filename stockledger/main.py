from fastapi import FastAPI, HTTPException
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from stockledger.core.config import settings
from stockledger.core.observability import (
    http_exception_handler,
    request_logging_middleware,
    setup_observability,
    unhandled_exception_handler,
    validation_exception_handler,
)
from stockledger.db.session import engine
from stockledger.routers import adjustments, ledger, purchases, webhooks

app = FastAPI(
    title=settings.app_name,
    version="0.1.0",
    description=(
        "Inventory change ledger for a commerce platform.\n\n"
        "Every stock movement (fulfillments, refunds, receiving, losses, counts, transfers) "
        "is recorded once, attributed to its cause, and reconciled across webhook and "
        "in-app signals.\n\n"
        "Direct-action endpoints expect `X-Shop-Domain` and `X-App-Token` headers; "
        "`POST /webhooks` is authenticated by the platform's HMAC signature."
    ),
    swagger_ui_parameters={
        "displayRequestDuration": True,
        "defaultModelsExpandDepth": 1,
    },
    openapi_tags=[
        {"name": "health", "description": "Service status and quick links."},
        {"name": "webhooks", "description": "Platform webhook deliveries (orders, refunds, inventory levels)."},
        {"name": "ledger", "description": "Change history and direct ledger logging."},
        {"name": "inventory", "description": "Stock adjustments applied through the platform."},
        {"name": "purchases", "description": "Purchase receiving and idempotent cancellation."},
    ],
)

setup_observability()
app.middleware("http")(request_logging_middleware)
app.add_exception_handler(RequestValidationError, validation_exception_handler)
app.add_exception_handler(HTTPException, http_exception_handler)
app.add_exception_handler(Exception, unhandled_exception_handler)

cors_origins = settings.cors_origins or ["http://localhost:3000"]
allow_all_origins = "*" in cors_origins
env_value = settings.env.lower().strip()
allow_origin_regex = settings.cors_origin_regex

if (
    not allow_origin_regex
    and env_value in {"dev", "development", "staging", "stage"}
):
    allow_origin_regex = r"^https?://(localhost|127\.0\.0\.1)(:\d+)?$"

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"] if allow_all_origins else cors_origins,
    allow_origin_regex=allow_origin_regex,
    allow_credentials=not allow_all_origins,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(webhooks.router)
app.include_router(ledger.router)
app.include_router(adjustments.router)
app.include_router(purchases.router)


@app.get("/", tags=["health"])
def root():
    return {
        "app": settings.app_name,
        "docs": "/docs",
        "health": "/health",
        "ready": "/ready",
    }


@app.get("/health", tags=["health"])
def health():
    return {"ok": True}


@app.get("/ready", tags=["health"])
def ready():
    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
    except SQLAlchemyError:
        return {"ok": False}
    return {"ok": True}

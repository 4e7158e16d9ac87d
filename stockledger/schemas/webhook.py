from pydantic import BaseModel


class WebhookOut(BaseModel):
    ok: bool = True
    topic: str
    written: int = 0
    deduplicated: int = 0
    upgraded: int = 0
    failed: int = 0
    skipped: int = 0
    pending: int = 0

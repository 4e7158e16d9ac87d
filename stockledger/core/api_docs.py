from stockledger.core.observability import ERROR_CODES
from stockledger.schemas.common import ErrorOut

_EXAMPLE_MESSAGES: dict[int, str] = {
    400: "location_id is required",
    401: "Invalid app token",
    404: "Purchase not found",
    409: "Conflict",
    422: "Validation failed",
    500: "Internal server error",
}

_VALIDATION_DETAILS = [
    {"field": "lines.0.quantity", "message": "Input should be a valid integer", "type": "int_parsing"},
]


def error_responses(*status_codes: int, path: str = "/ledger") -> dict[int, dict]:
    """OpenAPI ``responses`` entries rendering the standard error envelope for ``path``."""
    responses: dict[int, dict] = {}
    for status_code in status_codes:
        message = _EXAMPLE_MESSAGES.get(status_code, "HTTP error")
        responses[status_code] = {
            "model": ErrorOut,
            "description": message,
            "content": {
                "application/json": {
                    "example": {
                        "error": {
                            "code": ERROR_CODES.get(status_code, "http_error"),
                            "message": message,
                            "request_id": "8d8f2b00-6c79-4a45-8ff4-b0a5f2bc4bc2",
                            "path": path,
                            "details": _VALIDATION_DETAILS if status_code == 422 else None,
                        }
                    }
                }
            },
        }
    return responses

from typing import Any


def success_response(message: str | None = None, **data: Any) -> dict:
    body: dict[str, Any] = {"success": True}
    if message is not None:
        body["message"] = message
    body.update(data)
    return body


def error_response(message: str, **extra: Any) -> dict:
    return {"error": message, **extra}

"""JSON response helpers for the HTTP handlers."""

from __future__ import annotations

import json
import logging
import uuid
from datetime import datetime, timezone
from typing import Any, Optional

from werkzeug.wrappers import Response

logger = logging.getLogger(__name__)

_HTML_ESCAPES = {
    "<": "\\u003c",
    ">": "\\u003e",
    "&": "\\u0026",
    "\u2028": "\\u2028",
    "\u2029": "\\u2029",
}


def _default(value: Any) -> Any:
    to_dict = getattr(value, "to_dict", None)
    if callable(to_dict):
        return to_dict()
    if isinstance(value, uuid.UUID):
        return str(value)
    if isinstance(value, datetime):
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        text = value.astimezone(timezone.utc).isoformat()
        return text[:-6] + "Z" if text.endswith("+00:00") else text
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


def _encode(payload: Any) -> bytes:
    text = json.dumps(payload, default=_default, separators=(",", ":"), ensure_ascii=False)
    for char, escaped in _HTML_ESCAPES.items():
        text = text.replace(char, escaped)
    return text.encode("utf-8")


def json_response(code: int, payload: Any) -> Response:
    """Serialise ``payload`` as JSON with the given status code."""
    try:
        body = _encode(payload)
    except (TypeError, ValueError) as exc:
        logger.error("Error marshalling JSON: %s", exc)
        return Response(b"", status=500, content_type="application/json")
    return Response(body, status=code, content_type="application/json")


def error_response(code: int, msg: str, err: Optional[BaseException]) -> Response:
    """Log the error and return ``{"error": msg}`` with the given status code."""
    if err is not None:
        logger.error("%s", err)
    if code > 499:
        logger.error("Responding with 5XX error: %s", msg)
    return json_response(code, {"error": msg})
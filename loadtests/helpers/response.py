"""Response error extraction for load test observability.

Parses SurplusLine API error responses into human-readable messages.
Handles two response shapes:

- Pydantic validation (422): {"detail": [{"loc": [...], "msg": "...", "type": "..."}]}
- Fulfillment outcomes (402/404/409/410/422): {"detail": {"outcome": "...", "message": "..."}}
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from requests import Response


def extract_error_detail(response: Response) -> str:
    """Extract a human-readable error message from an API error response.

    Returns a compact string suitable for Locust failure messages and log lines.
    Gracefully handles unparseable bodies and missing fields.
    """
    try:
        body = response.json()
    except ValueError:
        # Not JSON: return raw text, truncated
        text = getattr(response, "text", "") or ""
        return text[:300] or "(empty response body)"

    detail = body.get("detail") if isinstance(body, dict) else None

    # Pydantic validation errors: {"detail": [{"loc": [...], "msg": "..."}]}
    if isinstance(detail, list):
        parts = []
        for err in detail:
            loc = ".".join(str(p) for p in err.get("loc", []))
            msg = err.get("msg", str(err))
            parts.append(f"{loc}: {msg}" if loc else msg)
        return " | ".join(parts)

    # Fulfillment outcomes: {"detail": {"outcome": "...", "message": "..."}}
    if isinstance(detail, dict):
        if "outcome" in detail:
            return f"{detail['outcome']}: {detail.get('message', '')}"
        return " | ".join(f"{k}: {v}" for k, v in detail.items())

    if detail is not None:
        return str(detail)[:300]

    # Unknown shape: stringify and truncate
    return str(body)[:300]

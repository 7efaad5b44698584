"""Response error extraction for load test observability.

Parses Tradehub API error responses into human-readable messages.
Handles three response shapes:

- Pydantic validation (422): {"detail": [{"loc": [...], "msg": "...", "type": "..."}]}
- Domain errors (400/404/409/429): {"detail": "msg"} or {"detail": {"field": ["msg"]}}
- Gateway errors (502): {"detail": "msg", "provider": "pesapal"}
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from requests import Response


def extract_error_detail(response: Response) -> str:
    """Extract a compact error message for Locust failure messages and log lines."""
    try:
        body = response.json()
    except ValueError:
        text = getattr(response, "text", "") or ""
        return text[:300] or "(empty response body)"

    detail = body.get("detail") if isinstance(body, dict) else None
    if isinstance(detail, list):
        parts = []
        for err in detail:
            loc = ".".join(str(p) for p in err.get("loc", []))
            msg = err.get("msg", str(err))
            parts.append(f"{loc}: {msg}" if loc else msg)
        return " | ".join(parts)

    if isinstance(detail, dict):
        return " | ".join(
            f"{field}: {'; '.join(msgs) if isinstance(msgs, list) else msgs}" for field, msgs in detail.items()
        )

    if detail is not None:
        provider = body.get("provider")
        return f"[{provider}] {detail}" if provider else str(detail)

    return str(body)[:300]

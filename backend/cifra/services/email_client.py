# Overview: Transactional email adapter (Resend HTTP API).

from __future__ import annotations

from dataclasses import dataclass

import httpx
from flask import current_app


@dataclass(frozen=True)
class EmailResult:
    success: bool
    message_id: str | None = None
    error: str | None = None


def send_email(
    to_address: str,
    subject: str,
    html_body: str,
    *,
    client: httpx.Client | None = None,
) -> EmailResult:
    """
    Send one HTML email. Never raises: delivery problems come back as
    EmailResult(success=False, error=...) for the caller to record.
    """
    cfg = current_app.config
    api_key = cfg.get("RESEND_API_KEY")
    if not api_key:
        return EmailResult(success=False, error="Email provider not configured")

    payload = {
        "from": cfg.get("MAIL_FROM"),
        "to": [to_address],
        "subject": subject,
        "html": html_body,
    }

    http = client or httpx.Client(
        base_url=cfg["RESEND_API_BASE"],
        timeout=cfg.get("HTTP_TIMEOUT_SECONDS", 10.0),
    )
    try:
        response = http.post(
            "/emails",
            json=payload,
            headers={"Authorization": f"Bearer {api_key}"},
        )
    except httpx.HTTPError as exc:
        return EmailResult(success=False, error=f"Email request failed: {exc}")
    finally:
        if client is None:
            http.close()

    if response.status_code >= 400:
        try:
            detail = response.json().get("message")
        except ValueError:
            detail = None
        return EmailResult(success=False, error=detail or f"Email provider returned HTTP {response.status_code}")

    try:
        message_id = response.json().get("id")
    except ValueError:
        message_id = None
    return EmailResult(success=True, message_id=message_id)

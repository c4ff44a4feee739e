"""Transactional e-mail dispatch via the Resend REST API.

Calls the API directly with requests (no SDK). Without RESEND_API_KEY the
message is only logged and reported as sent, which keeps local runs and
staging free of real mail.
"""
import logging
import os
import time
from typing import Any, Dict, Optional

import requests

logger = logging.getLogger(__name__)

RESEND_BASE = "https://api.resend.com"
DEFAULT_FROM = "SynCRM <noreply@syncrm.app>"


def _api_key() -> str:
    return os.environ.get("RESEND_API_KEY", "")


def _sender() -> str:
    return os.environ.get("REMINDER_FROM_EMAIL", DEFAULT_FROM)


def send_email(
    to: str,
    subject: str,
    html: str,
    text: Optional[str] = None,
) -> Dict[str, Any]:
    """Send one e-mail.

    Args:
        to: Recipient address.
        subject: Subject line.
        html: HTML body.
        text: Optional plain-text alternative.

    Returns:
        {"success": True, "message_id": str} on acceptance, otherwise
        {"success": False, "error": str}. Never raises.
    """
    api_key = _api_key()
    if not api_key:
        message_id = f"placeholder-{int(time.time() * 1000)}"
        logger.info(
            "RESEND_API_KEY not set; not sending e-mail to=%s subject=%r (message_id=%s)",
            to, subject, message_id,
        )
        return {"success": True, "message_id": message_id}

    payload: Dict[str, Any] = {
        "from": _sender(),
        "to": [to],
        "subject": subject,
        "html": html,
    }
    if text:
        payload["text"] = text

    try:
        resp = requests.post(
            f"{RESEND_BASE}/emails",
            json=payload,
            headers={"Authorization": f"Bearer {api_key}"},
            timeout=float(os.environ.get("EMAIL_TIMEOUT_SECONDS", "10")),
        )
        resp.raise_for_status()
        message_id = resp.json().get("id")
        if not message_id:
            return {"success": False, "error": "Resend response did not include a message id"}
        return {"success": True, "message_id": message_id}
    except requests.exceptions.ConnectionError:
        logger.warning("Resend not reachable, e-mail to %s not sent", to)
        return {"success": False, "error": "email provider unavailable"}
    except Exception as exc:
        return {"success": False, "error": str(exc)}

import logging
from typing import Any

from app.core.metrics import metrics
from app.services.security import mask_email, mask_sensitive


logger = logging.getLogger("audit")

SECRET_KEYS = {
    "token",
    "access_token",
    "refresh_token",
    "session_token",
    "csrf_token",
    "password",
    "current_password",
    "new_password",
}


def audit_log(event: str, user_id: str | None, ip: str | None, **details: Any) -> None:
    safe_details = {}
    for key, value in details.items():
        if key in SECRET_KEYS and isinstance(value, str):
            safe_details[key] = mask_sensitive(value)
        elif key == "email" and isinstance(value, str):
            safe_details[key] = mask_email(value)
        else:
            safe_details[key] = value
    payload = {
        "event": event,
        "user_id": user_id,
        "ip": ip,
        "details": safe_details,
    }
    metrics.record_auth(event)
    logger.info("audit", extra={"event": payload})

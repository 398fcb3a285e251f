from __future__ import annotations

import re
from typing import Any


_EMAIL_RE = re.compile(r"\b[A-Za-z0-9._%+\-]+@[A-Za-z0-9.\-]+\.[A-Za-z]{2,}\b")
_PHONE_RE = re.compile(r"(?<!\d)(?:\+?\d{1,3}[-.\s]?)?(?:\d{2,4}[-.\s]?\d{3,4}[-.\s]?\d{4})(?!\d)")

_BEARER_RE = re.compile(r"(?i)\bBearer\s+[A-Za-z0-9\-._~+/]+=*")
_JWT_RE = re.compile(r"\b[A-Za-z0-9\-_]{20,}\.[A-Za-z0-9\-_]{20,}\.[A-Za-z0-9\-_]{20,}\b")
_APIKEY_PARAM_RE = re.compile(r"(?i)\b(apikey|api_key|service_role_key)\s*[=:]\s*\S+")

_MAX_TEXT = 1200
_MAX_KEY = 128


def mask_pii_text(text: str) -> str:
    if not text:
        return text
    out = _EMAIL_RE.sub("[REDACTED_EMAIL]", text)
    out = _PHONE_RE.sub("[REDACTED_PHONE]", out)
    return out


def redact_secrets_text(text: str) -> str:
    if not text:
        return text
    out = _BEARER_RE.sub("Bearer [REDACTED_TOKEN]", text)
    out = _JWT_RE.sub("[REDACTED_JWT]", out)
    out = _APIKEY_PARAM_RE.sub(lambda m: f"{m.group(1)}=[REDACTED_KEY]", out)
    return out


def sanitize_for_log(value: Any) -> Any:
    """Recursively redact secrets/PII and bound sizes before a value is persisted."""
    if value is None:
        return None
    if isinstance(value, str):
        return redact_secrets_text(mask_pii_text(value))[:_MAX_TEXT]
    if isinstance(value, (list, tuple)):
        return [sanitize_for_log(v) for v in value]
    if isinstance(value, dict):
        return {str(k)[:_MAX_KEY]: sanitize_for_log(v) for k, v in value.items()}
    if isinstance(value, (int, float, bool)):
        return value
    return str(value)[:_MAX_TEXT]

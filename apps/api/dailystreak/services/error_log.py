from __future__ import annotations

import logging
import traceback
from typing import Any

from dailystreak.core.config import settings
from dailystreak.services.privacy import redact_secrets_text, sanitize_for_log
from dailystreak.services.supabase_rest import SupabaseRest

logger = logging.getLogger(__name__)

SYSTEM_ERRORS_TABLE = "system_errors"
_MAX_STACK = 8000


def _stack_text(err: BaseException | None) -> str | None:
    if err is None:
        return None
    lines = traceback.format_exception(type(err), err, err.__traceback__)
    return redact_secrets_text("".join(lines)[:_MAX_STACK])


async def log_system_error(
    *,
    route: str,
    message: str,
    user_id: str | None = None,
    err: BaseException | None = None,
    meta: dict[str, Any] | None = None,
) -> None:
    """Record a failure in the ``system_errors`` audit table.

    Used by the HTTP error handlers and by quiet streak refreshes. Writing the
    row is best effort: a failed write is logged at debug level and dropped.
    """
    row: dict[str, Any] = {
        "route": sanitize_for_log(route),
        "message": sanitize_for_log(message),
        "stack": _stack_text(err),
        "user_id": user_id,
        "meta": sanitize_for_log(meta or {}),
    }
    try:
        # Service-role key: callers cannot read or write this table themselves.
        sb = SupabaseRest(str(settings.supabase_url), settings.supabase_service_role_key)
        await sb.insert_one(
            SYSTEM_ERRORS_TABLE,
            bearer_token=settings.supabase_service_role_key,
            row=row,
        )
    except Exception:
        logger.debug("system_errors write failed for route %s", route, exc_info=True)

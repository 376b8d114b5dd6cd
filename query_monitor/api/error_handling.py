"""
Centralized API error handling helpers.

Coordinator failures never reach this layer: they are folded into the
dashboard view as a status and an error line. Anything that does arrive here
is a bug and becomes a uniform 500 payload.
"""

from __future__ import annotations

import logging
import traceback
from typing import Any

from fastapi import HTTPException, status

from query_monitor.config import settings

logger = logging.getLogger(__name__)


def _maybe_debug(exc: BaseException) -> str | None:
    if settings.APP_DEBUG:
        return str(exc)
    return None


def http_exception(operation: str, exc: BaseException) -> HTTPException:
    """
    Convert an exception into a consistent HTTPException payload.
    """
    logger.error(
        "API error during '%s': %s\n%s",
        operation,
        exc,
        traceback.format_exc(),
    )

    detail: dict[str, Any] = {
        "code": "INTERNAL_ERROR",
        "message": f"{operation} failed.",
        "operation": operation,
    }
    dbg = _maybe_debug(exc)
    if dbg:
        detail["debug"] = dbg
    return HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail=detail,
    )

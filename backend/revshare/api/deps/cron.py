# revshare/api/deps/cron.py
from __future__ import annotations

import hmac
import logging
from typing import Optional

from fastapi import Header, HTTPException, status

from revshare.core.config import settings

logger = logging.getLogger(__name__)


def _bearer_token(authorization: Optional[str]) -> Optional[str]:
    if not authorization:
        return None
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


async def verify_cron_secret(
    authorization: Optional[str] = Header(default=None),
    x_cron_secret: Optional[str] = Header(default=None),
) -> None:
    """
    Guard for the settlement trigger. Accepts `Authorization: Bearer <secret>`
    or `X-Cron-Secret: <secret>`. With no secret configured the check is only
    skipped in development.
    """
    expected = settings.CRON_SECRET
    if not expected:
        if settings.is_development:
            return
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail={"error": "CRON_NOT_CONFIGURED", "message": "CRON_SECRET is not configured"},
        )

    provided = _bearer_token(authorization) or x_cron_secret
    if not provided or not hmac.compare_digest(provided.encode(), expected.encode()):
        logger.warning("Rejected settlement trigger with missing or invalid cron secret")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail={"error": "UNAUTHORIZED", "message": "Invalid cron secret"},
        )

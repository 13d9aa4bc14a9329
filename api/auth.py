from __future__ import annotations

import logging
import secrets
from typing import Annotated, Optional

from fastapi import Depends, Header, HTTPException

from ingestion.settings import get_settings

logger = logging.getLogger(__name__)

_UNAUTHORIZED = "Invalid or missing authentication token"


def get_cron_secret() -> Optional[str]:
    secret = get_settings().cron_secret
    return secret.get_secret_value() if secret is not None else None


def require_cron_secret(
    secret: Annotated[Optional[str], Depends(get_cron_secret)],
    authorization: Annotated[Optional[str], Header()] = None,
) -> None:
    """Bearer 토큰이 CRON_SECRET과 일치하지 않으면 401로 거절한다."""
    if not secret:
        logger.error("auth.cron_secret_missing")
        raise HTTPException(status_code=401, detail=_UNAUTHORIZED, headers={"WWW-Authenticate": "Bearer"})
    if not authorization:
        logger.warning("auth.header_missing")
        raise HTTPException(status_code=401, detail=_UNAUTHORIZED, headers={"WWW-Authenticate": "Bearer"})

    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not secrets.compare_digest(token.strip().encode(), secret.encode()):
        logger.warning("auth.invalid_token")
        raise HTTPException(status_code=401, detail=_UNAUTHORIZED, headers={"WWW-Authenticate": "Bearer"})

"""
Authentication and request identity.

- Programmatic/frontend access: API_KEY. Include: Authorization: Bearer <API_KEY>
- Every dashboard request names the seller marketplace it reads:
  X-User-Id / X-Country / X-Region headers (or user_id / country / region query params).

In development with no API_KEY set, auth is skipped for local dev.
"""

import logging
from dataclasses import dataclass
from fastapi import Depends, Header, HTTPException, Query
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials

from seller_dashboard.config import get_settings

logger = logging.getLogger(__name__)

_bearer_scheme = HTTPBearer(auto_error=False)


async def require_api_key(
    credentials: HTTPAuthorizationCredentials = Depends(_bearer_scheme),
) -> str:
    """Return the matched API key, or "dev-no-auth" when auth is disabled locally."""
    settings = get_settings()
    api_key = settings.api_key

    # Dev convenience: skip auth when no key is configured
    if not api_key:
        if settings.is_production:
            raise HTTPException(
                status_code=500,
                detail="Server misconfiguration: API_KEY must be set in production.",
            )
        return "dev-no-auth"

    if not credentials:
        raise HTTPException(
            status_code=401,
            detail="Missing authorization. Include header: Authorization: Bearer <token>",
        )

    if credentials.credentials != api_key:
        raise HTTPException(status_code=401, detail="Invalid API key.")
    return credentials.credentials


@dataclass(frozen=True)
class RequestContext:
    user_id: str
    country: str
    region: str


async def get_request_context(
    x_user_id: str | None = Header(None, alias="X-User-Id"),
    x_country: str | None = Header(None, alias="X-Country"),
    x_region: str | None = Header(None, alias="X-Region"),
    user_id: str | None = Query(None),
    country: str | None = Query(None),
    region: str | None = Query(None),
) -> RequestContext:
    """Resolve the (user, country, region) key; headers win over query params."""
    uid = (x_user_id or user_id or "").strip()
    ctry = (x_country or country or "").strip()
    reg = (x_region or region or "").strip()
    if not uid or not ctry or not reg:
        raise HTTPException(status_code=400, detail="User ID, country, and region are required")
    return RequestContext(user_id=uid, country=ctry, region=reg)

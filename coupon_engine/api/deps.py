"""
Authentication & Authorization Dependencies

Provides:
- Access token validation (tokens are issued by the storefront auth service)
- Current user extraction, mandatory or optional
- Admin role check against the user_roles collection
"""

from __future__ import annotations
from typing import Dict, Optional, Any
from fastapi import Depends, HTTPException, status

from coupon_engine.core.security import decode_access_token, oauth2_scheme, optional_oauth2_scheme
from coupon_engine.core.database import db
from coupon_engine.utils.mongo import maybe_oid

UNAUTH = HTTPException(
    status_code=status.HTTP_401_UNAUTHORIZED,
    detail="Unauthorized",
    headers={"WWW-Authenticate": "Bearer"},
)
FORBID = HTTPException(
    status_code=status.HTTP_403_FORBIDDEN,
    detail="Forbidden: insufficient permissions",
)

REQUIRED_CLAIMS = ["user_id", "user_role_id", "cart_id"]


async def is_revoked(jti: str) -> bool:
    if not jti:
        return True
    return await db["token_revocations"].find_one({"jti": jti}, projection={"_id": 1}) is not None


async def _user_from_token(token: str) -> Dict[str, Any]:
    payload = decode_access_token(token)

    if not payload or payload.get("type") != "access":
        raise UNAUTH

    # Check revocation (logout / forced logout / security)
    if await is_revoked(payload.get("jti", "")):
        raise UNAUTH

    if not all(k in payload for k in REQUIRED_CLAIMS):
        raise UNAUTH

    return {k: payload[k] for k in REQUIRED_CLAIMS}


# ---------------------------------------------------------------------------
# Authentication
# ---------------------------------------------------------------------------

async def get_current_user(token: str = Depends(oauth2_scheme)) -> Dict:
    """
    Dependency: Extract and validate the currently authenticated user
    from a Bearer access token.

    Validates:
        - Token must be decodable
        - Must be an "access" type token
        - Must not be revoked
        - Must include user_id, user_role_id, cart_id

    Returns:
        Dict containing {user_id, user_role_id, cart_id}

    Raises:
        HTTPException(401) if token invalid or revoked
    """
    return await _user_from_token(token)


async def get_optional_user(token: Optional[str] = Depends(optional_oauth2_scheme)) -> Optional[Dict]:
    """
    Like get_current_user, but guests (no Authorization header) get None.
    A token that is present but invalid is still rejected.
    """
    if not token:
        return None
    return await _user_from_token(token)


# ---------------------------------------------------------------------------
# Authorization
# ---------------------------------------------------------------------------

def require_role(role: str):
    """
    Dependency factory: allow only users whose user_roles document has
    the given role name.

    Usage:
        @router.post("/", dependencies=[Depends(require_admin)])
    """

    async def _dep(current: Dict = Depends(get_current_user)) -> Dict:
        role_doc = await db["user_roles"].find_one({"_id": maybe_oid(current["user_role_id"])})
        if not role_doc or role_doc.get("role") != role:
            raise FORBID
        return current

    return _dep


require_admin = require_role("admin")

from typing import Any, Dict, Optional

from fastapi.security import OAuth2PasswordBearer
from jose import jwt, JWTError

from coupon_engine.core.config import settings

# Tokens are issued by the storefront auth service; this service only reads them.
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/v1/auth/login")
optional_oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/v1/auth/login", auto_error=False)


def decode_access_token(token: str) -> Optional[Dict[str, Any]]:
    try:
        return jwt.decode(token, settings.JWT_ACCESS_TOKEN_SECRET, algorithms=[settings.JWT_ALGORITHM])
    except JWTError:
        return None

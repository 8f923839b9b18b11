# shared/auth_middleware.py
import logging
import os
from typing import Optional

import jwt
from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from pydantic import BaseModel

from shared.exceptions import Unauthorized
from shared.redis_client import get_redis, is_token_revoked

logger = logging.getLogger(__name__)

# JWT Configuration
JWT_SECRET_KEY = os.getenv("JWT_SECRET_KEY", "dev-secret-key-change-in-production")
JWT_ALGORITHM = "HS256"

# auto_error is off so a missing header is reported as 401 by our own handler
security = HTTPBearer(auto_error=False)


class TokenData(BaseModel):
    user_id: str
    email: Optional[str] = None
    token: Optional[str] = None
    exp: Optional[int] = None


def verify_token(token: str) -> TokenData:
    """Verify signature and expiry of an access token and return its claims"""
    try:
        payload = jwt.decode(token, JWT_SECRET_KEY, algorithms=[JWT_ALGORITHM])
    except jwt.ExpiredSignatureError:
        raise Unauthorized("Token has expired")
    except jwt.InvalidTokenError:
        raise Unauthorized("Invalid token")

    if payload.get("type", "access") != "access":
        raise Unauthorized("Invalid token type")

    user_id = payload.get("sub")
    if user_id is None:
        raise Unauthorized("Invalid token: missing user ID")

    return TokenData(user_id=user_id, email=payload.get("email"), token=token, exp=payload.get("exp"))


async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    redis_client=Depends(get_redis),
) -> TokenData:
    """FastAPI dependency to get current user from a bearer token"""
    if credentials is None:
        raise Unauthorized("Missing authorization token")

    token_data = verify_token(credentials.credentials)

    if await is_token_revoked(redis_client, credentials.credentials):
        logger.info(f"🔒 AUTH: Rejected revoked token for user {token_data.user_id}")
        raise Unauthorized("Token has been revoked")

    return token_data

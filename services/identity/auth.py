# services/identity/auth.py
from datetime import datetime, timedelta, timezone
from typing import Any

import jwt
import redis.asyncio as redis
from passlib.context import CryptContext

from shared.auth_middleware import JWT_ALGORITHM, JWT_SECRET_KEY, TokenData
from shared.config import JWT_EXPIRE_MINUTES
from shared.redis_client import revoke_token

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(password: str, password_hash: str) -> bool:
    return pwd_context.verify(password, password_hash)


class AuthService:
    def __init__(self, redis_client: redis.Redis):
        self.redis = redis_client

    @staticmethod
    def create_access_token(data: dict[str, Any]) -> str:
        """Create JWT access token; `data` must carry the user id as `sub`"""
        to_encode = data.copy()
        now = datetime.now(timezone.utc)
        to_encode.update(
            {"iat": now, "exp": now + timedelta(minutes=JWT_EXPIRE_MINUTES), "type": "access"}
        )
        return jwt.encode(to_encode, JWT_SECRET_KEY, algorithm=JWT_ALGORITHM)

    async def revoke(self, token_data: TokenData) -> None:
        """Revoke an access token for the rest of its lifetime"""
        remaining = JWT_EXPIRE_MINUTES * 60
        if token_data.exp:
            remaining = int(token_data.exp - datetime.now(timezone.utc).timestamp())
        await revoke_token(self.redis, token_data.token, remaining)

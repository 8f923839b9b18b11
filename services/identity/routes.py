# services/identity/routes.py
import logging
from datetime import timedelta
from uuid import UUID, uuid4

import asyncpg
from fastapi import APIRouter, Depends, status

from shared.ai_usage_logger import AIUsageLogger, window_start
from shared.auth_middleware import TokenData, get_current_user
from shared.config import JWT_EXPIRE_MINUTES, MAX_GENERATIONS_PER_HOUR
from shared.database import Database, get_db
from shared.exceptions import NotFound, ValidationFailed
from shared.llm_client import verify_openai_api_key
from shared.redis_client import get_redis

from services.identity.auth import AuthService, hash_password, verify_password
from services.identity.models import (
    ApiKeyStatus,
    ApiKeyUpdateRequest,
    AuthResponse,
    AuthUser,
    GenerationAllowance,
    MessageResponse,
    PreferencesUpdateRequest,
    PreferencesUpdateResponse,
    Profile,
    ProfileDeletionResponse,
    Session,
    SignInRequest,
    SignUpRequest,
)

logger = logging.getLogger(__name__)

auth_router = APIRouter()
profile_router = APIRouter()

PROFILE_COLUMNS = "user_id, preferences, status, status_changed_at, created_at, updated_at"
GENERATION_WINDOW = timedelta(hours=1)


async def get_api_key_verifier():
    """Dependency returning the coroutine used to check a personal API key"""
    return verify_openai_api_key


def _session_for(user: dict) -> Session:
    token = AuthService.create_access_token({"sub": str(user["id"]), "email": user["email"]})
    return Session(access_token=token, expires_in=JWT_EXPIRE_MINUTES * 60)


# Auth Routes
@auth_router.post("/signup", response_model=AuthResponse, status_code=status.HTTP_201_CREATED)
async def signup(request: SignUpRequest, db: Database = Depends(get_db)):
    """Create an account with an empty profile and sign it in"""
    email = request.email.lower()

    existing = await db.fetch_one("SELECT id FROM users WHERE email = $1", email)
    if existing:
        raise ValidationFailed("User already registered")

    user_id = uuid4()
    try:
        async with db.transaction() as conn:
            user = await conn.fetchrow(
                """
                INSERT INTO users (id, email, password_hash)
                VALUES ($1, $2, $3)
                RETURNING id, email, created_at
                """,
                user_id,
                email,
                hash_password(request.password),
            )
            await conn.execute(
                "INSERT INTO profiles (user_id, preferences, status) VALUES ($1, $2, 'active')",
                user_id,
                [],
            )
    except asyncpg.UniqueViolationError:
        # Lost a race with a concurrent signup for the same email
        raise ValidationFailed("User already registered")

    user = dict(user)
    logger.info(f"✅ AUTH: Registered user {user_id}")
    return AuthResponse(user=AuthUser(**user), session=_session_for(user))


@auth_router.post("/signin", response_model=AuthResponse)
async def signin(request: SignInRequest, db: Database = Depends(get_db)):
    user = await db.fetch_one(
        "SELECT id, email, password_hash, created_at FROM users WHERE email = $1",
        request.email.lower(),
    )
    if not user or not verify_password(request.password, user["password_hash"]):
        logger.info(f"🔒 AUTH: Failed sign-in for {request.email}")
        raise ValidationFailed("Invalid login credentials")

    logger.info(f"✅ AUTH: User {user['id']} signed in")
    return AuthResponse(
        user=AuthUser(id=user["id"], email=user["email"], created_at=user["created_at"]),
        session=_session_for(user),
    )


@auth_router.post("/signout", response_model=MessageResponse)
async def signout(
    current_user: TokenData = Depends(get_current_user),
    redis_client=Depends(get_redis),
):
    """Revoke the presented access token"""
    await AuthService(redis_client).revoke(current_user)
    logger.info(f"👋 AUTH: User {current_user.user_id} signed out")
    return MessageResponse(message="Signed out")


# Profile Routes
async def _fetch_profile(db: Database, user_id: UUID):
    return await db.fetch_one(f"SELECT {PROFILE_COLUMNS} FROM profiles WHERE user_id = $1", user_id)


@profile_router.get("/me", response_model=Profile)
async def get_my_profile(
    current_user: TokenData = Depends(get_current_user), db: Database = Depends(get_db)
):
    """Get the caller's profile, creating an empty one on first access"""
    user_id = UUID(current_user.user_id)
    profile = await _fetch_profile(db, user_id)

    if not profile:
        logger.info(f"🆕 PROFILE: Creating profile for user {user_id}")
        await db.execute(
            """
            INSERT INTO profiles (user_id, preferences, status)
            VALUES ($1, $2, 'active')
            ON CONFLICT (user_id) DO NOTHING
            """,
            user_id,
            [],
        )
        profile = await _fetch_profile(db, user_id)

    return Profile(**profile)


@profile_router.put("/me", response_model=PreferencesUpdateResponse)
async def update_my_preferences(
    request: PreferencesUpdateRequest,
    current_user: TokenData = Depends(get_current_user),
    db: Database = Depends(get_db),
):
    """Replace the stored preference set"""
    row = await db.fetch_one(
        """
        INSERT INTO profiles (user_id, preferences, status)
        VALUES ($1, $2, 'active')
        ON CONFLICT (user_id) DO UPDATE SET
            preferences = EXCLUDED.preferences,
            updated_at = CURRENT_TIMESTAMP
        RETURNING user_id, preferences, status, updated_at
        """,
        UUID(current_user.user_id),
        request.preferences,
    )
    logger.info(
        f"🥗 PROFILE: User {current_user.user_id} saved {len(request.preferences)} preferences"
    )
    return PreferencesUpdateResponse(**row)


@profile_router.delete("/me", response_model=ProfileDeletionResponse)
async def schedule_profile_deletion(
    current_user: TokenData = Depends(get_current_user), db: Database = Depends(get_db)
):
    """Mark the profile for deletion; removal itself happens outside this service"""
    row = await db.fetch_one(
        """
        UPDATE profiles SET
            status = 'pending_deletion',
            status_changed_at = CURRENT_TIMESTAMP,
            updated_at = CURRENT_TIMESTAMP
        WHERE user_id = $1
        RETURNING status, status_changed_at
        """,
        UUID(current_user.user_id),
    )
    if not row:
        raise NotFound("Profile not found")

    logger.info(f"🗑️ PROFILE: User {current_user.user_id} scheduled profile deletion")
    return ProfileDeletionResponse(status=row["status"], deletion_scheduled_at=row["status_changed_at"])


@profile_router.get("/api-key", response_model=ApiKeyStatus)
async def get_api_key_status(
    current_user: TokenData = Depends(get_current_user), db: Database = Depends(get_db)
):
    row = await db.fetch_one(
        "SELECT provider, created_at, updated_at FROM user_api_keys WHERE user_id = $1",
        UUID(current_user.user_id),
    )
    if not row:
        return ApiKeyStatus(has_key=False)
    return ApiKeyStatus(has_key=True, **row)


@profile_router.put("/api-key", response_model=ApiKeyStatus)
async def set_api_key(
    request: ApiKeyUpdateRequest,
    current_user: TokenData = Depends(get_current_user),
    db: Database = Depends(get_db),
    verify_key=Depends(get_api_key_verifier),
):
    """Store a personal provider key after checking it against the provider"""
    if not await verify_key(request.api_key):
        raise ValidationFailed("Invalid API key")

    row = await db.fetch_one(
        """
        INSERT INTO user_api_keys (user_id, provider, api_key)
        VALUES ($1, $2, $3)
        ON CONFLICT (user_id) DO UPDATE SET
            provider = EXCLUDED.provider,
            api_key = EXCLUDED.api_key,
            updated_at = CURRENT_TIMESTAMP
        RETURNING provider, created_at, updated_at
        """,
        UUID(current_user.user_id),
        request.provider,
        request.api_key,
    )
    logger.info(f"🔑 PROFILE: User {current_user.user_id} stored a {request.provider} API key")
    return ApiKeyStatus(has_key=True, **row)


@profile_router.delete("/api-key", response_model=MessageResponse)
async def delete_api_key(
    current_user: TokenData = Depends(get_current_user), db: Database = Depends(get_db)
):
    row = await db.fetch_one(
        "DELETE FROM user_api_keys WHERE user_id = $1 RETURNING user_id",
        UUID(current_user.user_id),
    )
    if not row:
        raise NotFound("API key not found")
    return MessageResponse(message="API key deleted")


@profile_router.get("/api-usage", response_model=GenerationAllowance)
async def get_generation_allowance(
    current_user: TokenData = Depends(get_current_user), db: Database = Depends(get_db)
):
    """Where the caller stands against the hourly generation limit"""
    usage_logger = AIUsageLogger(db)
    since = window_start(GENERATION_WINDOW)

    try:
        current_usage = await usage_logger.count_usage_since(current_user.user_id, since)
        oldest = await usage_logger.oldest_usage_since(current_user.user_id, since)
    except Exception as e:
        logger.error(f"❌ PROFILE: Error reading generation usage: {e}")
        current_usage, oldest = 0, None

    key_row = await db.fetch_one(
        "SELECT 1 AS has_key FROM user_api_keys WHERE user_id = $1", UUID(current_user.user_id)
    )

    return GenerationAllowance(
        limit=MAX_GENERATIONS_PER_HOUR,
        current_usage=current_usage,
        remaining_usage=max(0, MAX_GENERATIONS_PER_HOUR - current_usage),
        reset_time=oldest + GENERATION_WINDOW if oldest else None,
        has_personal_key=key_row is not None,
    )

# services/recipes/routes.py
import logging
from datetime import datetime
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status

from shared.ai_usage_logger import AIUsageLogger
from shared.auth_middleware import TokenData, get_current_user
from shared.database import Database, get_db
from shared.json_utils import normalize_recipe_content
from shared.llm_client import LLMClient, get_llm_client

from services.recipes import recipe_service
from services.recipes.generation_service import GeneratedRecipe, RecipeGenerationService, StoredRecipe
from services.recipes.models import (
    VALUE_TO_RATING,
    AiGenerationInfo,
    AiUsageResponse,
    RatingDeleteResponse,
    RatingRequest,
    RatingResponse,
    RecipeDetail,
    RecipeGenerateRequest,
    RecipeGenerationResponse,
    RecipeRegenerateRequest,
    RecipeRegenerationResponse,
    RecipesListResponse,
    SaveResponse,
    SortOption,
    UsagePeriod,
    VisibilityUpdateRequest,
    VisibilityUpdateResponse,
)
from services.recipes.usage_analytics import DEFAULT_PERIOD, aggregate_usage, resolve_period

logger = logging.getLogger(__name__)

recipe_router = APIRouter()
usage_router = APIRouter()


async def get_generation_service(
    db: Database = Depends(get_db), llm_client: LLMClient = Depends(get_llm_client)
) -> RecipeGenerationService:
    return RecipeGenerationService(db, llm_client)


def _generation_payload(stored: StoredRecipe, generated: GeneratedRecipe) -> dict:
    return {
        "id": stored.id,
        "title": stored.title,
        "initial_user_query": stored.query,
        "is_visible": stored.is_visible,
        "created_at": stored.created_at,
        "user_preferences_applied": stored.preferences_applied,
        "ai_generation": AiGenerationInfo(
            model=generated.model,
            input_tokens=generated.input_tokens,
            output_tokens=generated.output_tokens,
            cost=generated.cost,
        ),
        **stored.content,
    }


def _rating_response(recipe_id: UUID, row: Optional[dict]) -> RatingResponse:
    if not row:
        return RatingResponse(recipe_id=recipe_id)

    rating = VALUE_TO_RATING[row["rating"]]
    return RatingResponse(
        recipe_id=row["recipe_id"],
        rating=rating,
        can_regenerate=rating == "down",
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


@recipe_router.post(
    "/generate", response_model=RecipeGenerationResponse, status_code=status.HTTP_201_CREATED
)
async def generate_recipe(
    request: RecipeGenerateRequest,
    current_user: TokenData = Depends(get_current_user),
    db: Database = Depends(get_db),
    generator: RecipeGenerationService = Depends(get_generation_service),
):
    """Generate a new recipe from a free-text request and the user's preferences"""
    logger.info(f"🍳 RECIPE: Starting generation for user {current_user.user_id}")

    preferences = await recipe_service.get_profile_preferences(db, current_user.user_id)
    stored, generated = await generator.run(
        user_id=current_user.user_id,
        query=request.query,
        preferences=preferences,
        model=request.model,
    )

    return RecipeGenerationResponse(**_generation_payload(stored, generated))


@recipe_router.get("", response_model=RecipesListResponse)
async def list_recipes(
    current_user: TokenData = Depends(get_current_user),
    db: Database = Depends(get_db),
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    visible_only: bool = Query(False),
    sort: SortOption = Query(recipe_service.DEFAULT_SORT),
):
    """List the user's recipes, newest first by default"""
    rows, total = await recipe_service.list_recipes(
        db, current_user.user_id, page, limit, visible_only=visible_only, sort=sort
    )
    recipes = await recipe_service.get_recipe_details(db, current_user.user_id, rows)

    return RecipesListResponse(
        recipes=recipes, pagination=recipe_service.build_pagination(page, limit, total)
    )


@recipe_router.get("/{recipe_id}", response_model=RecipeDetail)
async def get_recipe(
    recipe_id: UUID,
    current_user: TokenData = Depends(get_current_user),
    db: Database = Depends(get_db),
):
    row = await recipe_service.get_owned_recipe(db, recipe_id, current_user.user_id)
    details = await recipe_service.get_recipe_details(db, current_user.user_id, [row])
    return details[0]


@recipe_router.put("/{recipe_id}/visibility", response_model=VisibilityUpdateResponse)
async def update_visibility(
    recipe_id: UUID,
    request: VisibilityUpdateRequest,
    current_user: TokenData = Depends(get_current_user),
    db: Database = Depends(get_db),
):
    row = await recipe_service.update_visibility(
        db, recipe_id, current_user.user_id, request.is_visible
    )
    logger.info(f"👁️ RECIPE: Recipe {recipe_id} visibility set to {request.is_visible}")
    return VisibilityUpdateResponse(**row)


@recipe_router.post(
    "/{recipe_id}/regenerate",
    response_model=RecipeRegenerationResponse,
    status_code=status.HTTP_201_CREATED,
)
async def regenerate_recipe(
    recipe_id: UUID,
    request: Optional[RecipeRegenerateRequest] = None,
    current_user: TokenData = Depends(get_current_user),
    db: Database = Depends(get_db),
    generator: RecipeGenerationService = Depends(get_generation_service),
):
    """Create a new variation of an existing recipe; the original is kept"""
    request = request or RecipeRegenerateRequest()
    original = await recipe_service.get_owned_recipe(db, recipe_id, current_user.user_id)
    preferences = await recipe_service.get_profile_preferences(db, current_user.user_id)

    logger.info(f"🔄 RECIPE: Regenerating recipe {recipe_id} for user {current_user.user_id}")
    previous = {"title": original["title"], **normalize_recipe_content(original["content"])}

    stored, generated = await generator.run(
        user_id=current_user.user_id,
        query=original["query"],
        preferences=preferences,
        model=request.model,
        previous_recipe=previous,
        regenerated_from=original["id"],
    )

    return RecipeRegenerationResponse(
        **_generation_payload(stored, generated), regenerated_from_recipe_id=original["id"]
    )


@recipe_router.get("/{recipe_id}/rating", response_model=RatingResponse)
async def get_rating(
    recipe_id: UUID,
    current_user: TokenData = Depends(get_current_user),
    db: Database = Depends(get_db),
):
    await recipe_service.get_owned_recipe(db, recipe_id, current_user.user_id)
    row = await recipe_service.get_rating(db, recipe_id, current_user.user_id)
    return _rating_response(recipe_id, row)


async def _upsert_rating(recipe_id: UUID, request: RatingRequest, user_id: str, db: Database):
    await recipe_service.get_owned_recipe(db, recipe_id, user_id)
    row = await recipe_service.upsert_rating(db, recipe_id, user_id, request.value)
    logger.info(f"⭐ RECIPE: User {user_id} rated recipe {recipe_id} {request.rating}")
    return _rating_response(recipe_id, row)


@recipe_router.post(
    "/{recipe_id}/rating", response_model=RatingResponse, status_code=status.HTTP_201_CREATED
)
async def create_rating(
    recipe_id: UUID,
    request: RatingRequest,
    current_user: TokenData = Depends(get_current_user),
    db: Database = Depends(get_db),
):
    return await _upsert_rating(recipe_id, request, current_user.user_id, db)


@recipe_router.put("/{recipe_id}/rating", response_model=RatingResponse)
async def update_rating(
    recipe_id: UUID,
    request: RatingRequest,
    current_user: TokenData = Depends(get_current_user),
    db: Database = Depends(get_db),
):
    return await _upsert_rating(recipe_id, request, current_user.user_id, db)


@recipe_router.delete("/{recipe_id}/rating", response_model=RatingDeleteResponse)
async def delete_rating(
    recipe_id: UUID,
    current_user: TokenData = Depends(get_current_user),
    db: Database = Depends(get_db),
):
    await recipe_service.get_owned_recipe(db, recipe_id, current_user.user_id)
    await recipe_service.delete_rating(db, recipe_id, current_user.user_id)
    return RatingDeleteResponse(recipe_id=recipe_id)


@recipe_router.post("/{recipe_id}/save", response_model=SaveResponse)
async def save_recipe(
    recipe_id: UUID,
    current_user: TokenData = Depends(get_current_user),
    db: Database = Depends(get_db),
):
    await recipe_service.get_owned_recipe(db, recipe_id, current_user.user_id)
    await recipe_service.save_recipe(db, recipe_id, current_user.user_id)
    return SaveResponse(recipe_id=recipe_id, is_saved=True)


@recipe_router.delete("/{recipe_id}/save", response_model=SaveResponse)
async def unsave_recipe(
    recipe_id: UUID,
    current_user: TokenData = Depends(get_current_user),
    db: Database = Depends(get_db),
):
    await recipe_service.get_owned_recipe(db, recipe_id, current_user.user_id)
    await recipe_service.unsave_recipe(db, recipe_id, current_user.user_id)
    return SaveResponse(recipe_id=recipe_id, is_saved=False)


@usage_router.get("/usage", response_model=AiUsageResponse)
async def get_ai_usage(
    current_user: TokenData = Depends(get_current_user),
    db: Database = Depends(get_db),
    period: UsagePeriod = Query(DEFAULT_PERIOD),
    start_date: Optional[datetime] = Query(None),
    end_date: Optional[datetime] = Query(None),
):
    """Usage totals, per-model and per-day breakdown for the requested period"""
    start, end = resolve_period(period, start_date, end_date)
    rows = await AIUsageLogger(db).fetch_usage(current_user.user_id, start, end)

    logger.info(
        f"📊 USAGE: {len(rows)} usage rows for user {current_user.user_id} ({period})"
    )
    return AiUsageResponse(period=period, start_date=start, end_date=end, **aggregate_usage(rows))

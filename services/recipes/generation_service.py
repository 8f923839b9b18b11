# services/recipes/generation_service.py
"""
Recipe generation pipeline: rate limit, prompt, completion, parse, cost,
persist and usage logging.
"""

import logging
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Any, Optional
from uuid import UUID, uuid4

from shared.ai_usage_logger import AIUsageLogger, window_start
from shared.config import MAX_GENERATIONS_PER_HOUR
from shared.database import Database
from shared.exceptions import GenerationFailed, InternalError, RateLimitExceeded
from shared.json_utils import normalize_recipe_content, parse_llm_json, safe_json_dumps
from shared.llm_client import LLMClient, LLMError
from shared.llm_pricing import calculate_llm_cost

from services.recipes.prompts import SYSTEM_PROMPT, build_recipe_prompt, build_regeneration_prompt

logger = logging.getLogger(__name__)

RATE_LIMIT_WINDOW = timedelta(hours=1)
GENERATION_TEMPERATURE = 0.7
GENERATION_MAX_TOKENS = 2000
DEFAULT_TITLE = "Generated Recipe"


@dataclass
class GeneratedRecipe:
    title: str
    content: dict[str, list[str]]
    model: str
    input_tokens: int
    output_tokens: int
    cost: Optional[float]


@dataclass
class StoredRecipe:
    id: UUID
    title: str
    query: str
    content: dict[str, list[str]]
    is_visible: bool
    created_at: Any
    preferences_applied: list[str] = field(default_factory=list)
    regenerated_from_recipe_id: Optional[UUID] = None


class RecipeGenerationService:
    def __init__(
        self,
        db: Database,
        llm_client: LLMClient,
        max_generations_per_hour: int = MAX_GENERATIONS_PER_HOUR,
    ):
        self.db = db
        self.llm_client = llm_client
        self.usage_logger = AIUsageLogger(db)
        self.max_generations_per_hour = max_generations_per_hour

    async def check_rate_limit(self, user_id: str) -> None:
        """
        Raise RateLimitExceeded when the user already has the maximum number of
        usage rows in the last hour. Count failures let the request through.
        """
        try:
            count = await self.usage_logger.count_usage_since(
                user_id, window_start(RATE_LIMIT_WINDOW)
            )
        except Exception as e:
            logger.error(f"❌ RECIPE_RATE_LIMIT: Error checking rate limit: {e}")
            return

        if count >= self.max_generations_per_hour:
            logger.warning(
                f"⚠️ RECIPE_RATE_LIMIT: User {user_id} exceeded rate limit: "
                f"{count}/{self.max_generations_per_hour}"
            )
            raise RateLimitExceeded()

        logger.info(
            f"✅ RECIPE_RATE_LIMIT: User {user_id} within limit: {count}/{self.max_generations_per_hour}"
        )

    async def get_user_api_key(self, user_id: str) -> Optional[str]:
        row = await self.db.fetch_one(
            "SELECT api_key FROM user_api_keys WHERE user_id = $1", UUID(str(user_id))
        )
        return row["api_key"] if row else None

    async def generate(
        self,
        query: str,
        preferences: list[str],
        model: str,
        api_key: Optional[str] = None,
        previous_recipe: Optional[dict] = None,
    ) -> GeneratedRecipe:
        """Call the model and turn its answer into recipe content and usage figures"""
        if previous_recipe is None:
            prompt = build_recipe_prompt(query, preferences)
        else:
            prompt = build_regeneration_prompt(query, preferences, previous_recipe)

        try:
            completion, metadata = await self.llm_client.generate_completion(
                model_id=model,
                system_prompt=SYSTEM_PROMPT,
                user_prompt=prompt,
                temperature=GENERATION_TEMPERATURE,
                max_tokens=GENERATION_MAX_TOKENS,
                api_key=api_key,
            )
        except LLMError as e:
            logger.error(f"❌ RECIPE: LLM generation failed: {e}")
            raise GenerationFailed(details=str(e))

        try:
            parsed = parse_llm_json(completion)
        except ValueError as e:
            logger.error(f"❌ RECIPE: Could not parse model output as JSON: {e}")
            raise GenerationFailed(details="Model returned invalid JSON")

        input_tokens = metadata.get("prompt_tokens", 0)
        output_tokens = metadata.get("completion_tokens", 0)

        return GeneratedRecipe(
            title=str(parsed.get("title") or DEFAULT_TITLE),
            content=normalize_recipe_content(parsed),
            model=model,
            input_tokens=input_tokens,
            output_tokens=output_tokens,
            cost=calculate_llm_cost(model, input_tokens, output_tokens),
        )

    async def save_recipe(
        self,
        user_id: str,
        query: str,
        generated: GeneratedRecipe,
        preferences: list[str],
        regenerated_from: Optional[UUID] = None,
    ) -> StoredRecipe:
        recipe_id = uuid4()
        try:
            row = await self.db.fetch_one(
                """
                INSERT INTO recipes (
                    id, user_id, title, query, content, preferences_applied,
                    is_visible, regenerated_from_recipe_id
                ) VALUES ($1, $2, $3, $4, $5::jsonb, $6, TRUE, $7)
                RETURNING id, is_visible, created_at
                """,
                recipe_id,
                UUID(str(user_id)),
                generated.title,
                query,
                safe_json_dumps(generated.content),
                preferences,
                regenerated_from,
            )
        except Exception as e:
            logger.error(f"❌ RECIPE: Failed to save recipe for user {user_id}: {e}")
            raise InternalError("Failed to save recipe")

        if row is None:
            raise InternalError("Failed to save recipe")

        logger.info(f"💾 RECIPE: Saved recipe {recipe_id} for user {user_id}")
        return StoredRecipe(
            id=row["id"],
            title=generated.title,
            query=query,
            content=generated.content,
            is_visible=row["is_visible"],
            created_at=row["created_at"],
            preferences_applied=list(preferences),
            regenerated_from_recipe_id=regenerated_from,
        )

    async def record_usage(self, user_id: str, generated: GeneratedRecipe, recipe_id: UUID) -> None:
        """Write the usage row; a failure here is logged and does not fail the request"""
        try:
            await self.usage_logger.log_text_usage(
                user_id=user_id,
                model_id=generated.model,
                input_tokens=generated.input_tokens,
                output_tokens=generated.output_tokens,
                cost=generated.cost,
                recipe_id=recipe_id,
            )
        except Exception as e:
            logger.error(f"❌ RECIPE: Failed to log AI usage for recipe {recipe_id}: {e}")

    async def run(
        self,
        user_id: str,
        query: str,
        preferences: list[str],
        model: str,
        previous_recipe: Optional[dict] = None,
        regenerated_from: Optional[UUID] = None,
    ) -> tuple[StoredRecipe, GeneratedRecipe]:
        """Full pipeline for one generation request"""
        await self.check_rate_limit(user_id)

        api_key = await self.get_user_api_key(user_id)
        if api_key:
            logger.info(f"🔑 RECIPE: Using personal API key for user {user_id}")

        generated = await self.generate(
            query, preferences, model, api_key=api_key, previous_recipe=previous_recipe
        )
        logger.info(f"🤖 RECIPE: Generated recipe: {generated.title} (using {generated.model})")

        stored = await self.save_recipe(
            user_id, query, generated, preferences, regenerated_from=regenerated_from
        )
        await self.record_usage(user_id, generated, stored.id)
        return stored, generated

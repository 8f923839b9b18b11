# services/recipes/models.py
from datetime import datetime
from typing import Literal, Optional
from uuid import UUID

from pydantic import BaseModel, Field, field_validator

from shared.llm_pricing import DEFAULT_MODEL, SUPPORTED_MODELS

RatingValue = Literal["up", "down"]
SortOption = Literal[
    "created_at.asc",
    "created_at.desc",
    "title.asc",
    "title.desc",
    "created_at_asc",
    "created_at_desc",
    "title_asc",
    "title_desc",
]
UsagePeriod = Literal["day", "week", "month", "year", "custom"]

RATING_TO_VALUE = {"up": 1, "down": -1}
VALUE_TO_RATING = {1: "up", -1: "down"}


# Request Models
class RecipeGenerateRequest(BaseModel):
    query: str = Field(..., min_length=1, max_length=1000)
    model: str = Field(DEFAULT_MODEL)

    model_config = {"protected_namespaces": ()}

    @field_validator("query", mode="before")
    @classmethod
    def strip_query(cls, v):
        return v.strip() if isinstance(v, str) else v

    @field_validator("model")
    @classmethod
    def validate_model(cls, v):
        if v not in SUPPORTED_MODELS:
            raise ValueError(f"Invalid AI model specified. Supported: {', '.join(SUPPORTED_MODELS)}")
        return v


class RecipeRegenerateRequest(BaseModel):
    model: str = Field(DEFAULT_MODEL)

    model_config = {"protected_namespaces": ()}

    @field_validator("model")
    @classmethod
    def validate_model(cls, v):
        if v not in SUPPORTED_MODELS:
            raise ValueError(f"Invalid AI model specified. Supported: {', '.join(SUPPORTED_MODELS)}")
        return v


class VisibilityUpdateRequest(BaseModel):
    is_visible: bool


class RatingRequest(BaseModel):
    rating: RatingValue

    @property
    def value(self) -> int:
        return RATING_TO_VALUE[self.rating]


# Response Models
class AiGenerationInfo(BaseModel):
    model: str
    input_tokens: int
    output_tokens: int
    cost: Optional[float] = None

    model_config = {"protected_namespaces": ()}


class RecipeContent(BaseModel):
    ingredients: list[str] = []
    shopping_list: list[str] = []
    instructions: list[str] = []


class RecipeGenerationResponse(RecipeContent):
    id: UUID
    title: str
    initial_user_query: str
    is_visible: bool
    created_at: datetime
    user_preferences_applied: list[str] = []
    ai_generation: AiGenerationInfo


class RecipeRegenerationResponse(RecipeGenerationResponse):
    regenerated_from_recipe_id: UUID


class RecipeDetail(RecipeContent):
    id: UUID
    title: str
    initial_user_query: str
    is_visible: bool
    created_at: datetime
    updated_at: Optional[datetime] = None
    regenerated_from_recipe_id: Optional[UUID] = None
    user_rating: Optional[RatingValue] = None
    is_saved: bool = False

    class Config:
        from_attributes = True


class Pagination(BaseModel):
    page: int
    limit: int
    total: int
    total_pages: int
    has_next: bool
    has_previous: bool


class RecipesListResponse(BaseModel):
    recipes: list[RecipeDetail]
    pagination: Pagination


class VisibilityUpdateResponse(BaseModel):
    id: UUID
    is_visible: bool
    updated_at: datetime


class RatingResponse(BaseModel):
    recipe_id: UUID
    rating: Optional[RatingValue] = None
    can_regenerate: bool = False
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class RatingDeleteResponse(BaseModel):
    recipe_id: UUID
    message: str = "Rating deleted"


class SaveResponse(BaseModel):
    recipe_id: UUID
    is_saved: bool


class ModelUsage(BaseModel):
    generations: int
    cost: float


class DailyUsage(BaseModel):
    date: str
    generations: int
    cost: float


class AiUsageResponse(BaseModel):
    period: UsagePeriod
    start_date: datetime
    end_date: datetime
    total_generations: int
    total_input_tokens: int
    total_output_tokens: int
    total_cost: float
    models_used: dict[str, ModelUsage]
    daily_breakdown: list[DailyUsage]

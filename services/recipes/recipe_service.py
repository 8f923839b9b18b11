# services/recipes/recipe_service.py
"""Recipe, rating and saved-recipe queries used by the recipe routes."""

import asyncio
import logging
import math
from typing import Any, Optional
from uuid import UUID

from shared.database import Database
from shared.exceptions import NotFound
from shared.json_utils import normalize_recipe_content

from services.recipes.models import VALUE_TO_RATING, Pagination, RecipeDetail

logger = logging.getLogger(__name__)

RECIPE_COLUMNS = """id, user_id, title, query, content, is_visible,
                    regenerated_from_recipe_id, created_at, updated_at"""

# Whitelisted ORDER BY clauses; both dotted and underscore spellings are accepted
SORT_CLAUSES = {
    "created_at.asc": "created_at ASC",
    "created_at.desc": "created_at DESC",
    "title.asc": "title ASC",
    "title.desc": "title DESC",
    "created_at_asc": "created_at ASC",
    "created_at_desc": "created_at DESC",
    "title_asc": "title ASC",
    "title_desc": "title DESC",
}
DEFAULT_SORT = "created_at_desc"


def build_recipe_detail(
    row: dict[str, Any], rating_value: Optional[int] = None, is_saved: bool = False
) -> RecipeDetail:
    content = normalize_recipe_content(row.get("content"))
    return RecipeDetail(
        id=row["id"],
        title=row["title"],
        initial_user_query=row["query"],
        is_visible=row["is_visible"],
        created_at=row["created_at"],
        updated_at=row.get("updated_at"),
        regenerated_from_recipe_id=row.get("regenerated_from_recipe_id"),
        user_rating=VALUE_TO_RATING.get(rating_value),
        is_saved=is_saved,
        **content,
    )


def build_pagination(page: int, limit: int, total: int) -> Pagination:
    total_pages = math.ceil(total / limit) if total else 0
    return Pagination(
        page=page,
        limit=limit,
        total=total,
        total_pages=total_pages,
        has_next=page < total_pages,
        has_previous=page > 1,
    )


async def get_owned_recipe(db: Database, recipe_id: UUID, user_id: str) -> dict[str, Any]:
    """Fetch a recipe the user owns; other users' recipes look the same as missing ones"""
    row = await db.fetch_one(
        f"SELECT {RECIPE_COLUMNS} FROM recipes WHERE id = $1 AND user_id = $2",
        recipe_id,
        UUID(str(user_id)),
    )
    if not row:
        raise NotFound("Recipe not found")
    return row


async def get_profile_preferences(db: Database, user_id: str) -> list[str]:
    row = await db.fetch_one(
        "SELECT preferences FROM profiles WHERE user_id = $1", UUID(str(user_id))
    )
    if not row:
        raise NotFound("Profile not found")
    return list(row["preferences"] or [])


async def list_recipes(
    db: Database,
    user_id: str,
    page: int,
    limit: int,
    visible_only: bool = False,
    sort: str = DEFAULT_SORT,
) -> tuple[list[dict[str, Any]], int]:
    """Return one page of the user's recipes and the total matching count"""
    where = "WHERE user_id = $1"
    params: list[Any] = [UUID(str(user_id))]

    if visible_only:
        where += " AND is_visible = TRUE"

    order_by = SORT_CLAUSES.get(sort, SORT_CLAUSES[DEFAULT_SORT])

    query = f"""
        SELECT {RECIPE_COLUMNS}
        FROM recipes
        {where}
        ORDER BY {order_by}
        LIMIT $2 OFFSET $3
    """
    rows = await db.fetch_all(query, *params, limit, (page - 1) * limit)

    count_result = await db.fetch_one(f"SELECT COUNT(*) AS total FROM recipes {where}", *params)
    total = int(count_result["total"]) if count_result else 0

    return rows, total


async def get_ratings_for(db: Database, user_id: str, recipe_ids: list[UUID]) -> dict[UUID, int]:
    if not recipe_ids:
        return {}
    rows = await db.fetch_all(
        "SELECT recipe_id, rating FROM ratings WHERE user_id = $1 AND recipe_id = ANY($2::uuid[])",
        UUID(str(user_id)),
        recipe_ids,
    )
    return {row["recipe_id"]: row["rating"] for row in rows}


async def get_saved_for(db: Database, user_id: str, recipe_ids: list[UUID]) -> set[UUID]:
    if not recipe_ids:
        return set()
    rows = await db.fetch_all(
        "SELECT recipe_id FROM saved_recipes WHERE user_id = $1 AND recipe_id = ANY($2::uuid[])",
        UUID(str(user_id)),
        recipe_ids,
    )
    return {row["recipe_id"] for row in rows}


async def get_recipe_details(
    db: Database, user_id: str, rows: list[dict[str, Any]]
) -> list[RecipeDetail]:
    """Attach rating and saved state to a page of recipes; both lookups run concurrently"""
    recipe_ids = [row["id"] for row in rows]
    ratings, saved = await asyncio.gather(
        get_ratings_for(db, user_id, recipe_ids),
        get_saved_for(db, user_id, recipe_ids),
    )
    return [build_recipe_detail(row, ratings.get(row["id"]), row["id"] in saved) for row in rows]


async def update_visibility(
    db: Database, recipe_id: UUID, user_id: str, is_visible: bool
) -> dict[str, Any]:
    row = await db.fetch_one(
        """
        UPDATE recipes SET is_visible = $3, updated_at = CURRENT_TIMESTAMP
        WHERE id = $1 AND user_id = $2
        RETURNING id, is_visible, updated_at
        """,
        recipe_id,
        UUID(str(user_id)),
        is_visible,
    )
    if not row:
        raise NotFound("Recipe not found")
    return row


async def get_rating(db: Database, recipe_id: UUID, user_id: str) -> Optional[dict[str, Any]]:
    return await db.fetch_one(
        """
        SELECT recipe_id, rating, created_at, updated_at
        FROM ratings WHERE recipe_id = $1 AND user_id = $2
        """,
        recipe_id,
        UUID(str(user_id)),
    )


async def upsert_rating(db: Database, recipe_id: UUID, user_id: str, value: int) -> dict[str, Any]:
    """Create or overwrite the single rating row for (recipe, user)"""
    return await db.fetch_one(
        """
        INSERT INTO ratings (recipe_id, user_id, rating)
        VALUES ($1, $2, $3)
        ON CONFLICT (recipe_id, user_id) DO UPDATE SET
            rating = EXCLUDED.rating,
            updated_at = CURRENT_TIMESTAMP
        RETURNING recipe_id, rating, created_at, updated_at
        """,
        recipe_id,
        UUID(str(user_id)),
        value,
    )


async def delete_rating(db: Database, recipe_id: UUID, user_id: str) -> None:
    row = await db.fetch_one(
        "DELETE FROM ratings WHERE recipe_id = $1 AND user_id = $2 RETURNING recipe_id",
        recipe_id,
        UUID(str(user_id)),
    )
    if not row:
        raise NotFound("Rating not found")


async def save_recipe(db: Database, recipe_id: UUID, user_id: str) -> None:
    await db.execute(
        """
        INSERT INTO saved_recipes (user_id, recipe_id)
        VALUES ($1, $2)
        ON CONFLICT (user_id, recipe_id) DO NOTHING
        """,
        UUID(str(user_id)),
        recipe_id,
    )


async def unsave_recipe(db: Database, recipe_id: UUID, user_id: str) -> None:
    await db.execute(
        "DELETE FROM saved_recipes WHERE user_id = $1 AND recipe_id = $2",
        UUID(str(user_id)),
        recipe_id,
    )

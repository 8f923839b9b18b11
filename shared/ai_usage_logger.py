# shared/ai_usage_logger.py
"""
AI usage records for recipe-ai.

The `ai_usage` table is append-only: one row per completed generation. It
feeds both the hourly generation limit and the usage analytics.
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Optional
from uuid import UUID, uuid4

from shared.database import Database

logger = logging.getLogger(__name__)


class AIUsageLogger:
    """Writes and reads `ai_usage` rows for a single database handle"""

    def __init__(self, db: Database):
        self.db = db

    async def log_text_usage(
        self,
        user_id: str,
        model_id: str,
        input_tokens: int,
        output_tokens: int,
        cost: Optional[float],
        recipe_id: Optional[UUID] = None,
    ) -> UUID:
        """
        Log one LLM completion.

        Args:
            user_id: User who made the request
            model_id: Model the completion ran on
            input_tokens: Prompt tokens
            output_tokens: Completion tokens
            cost: Cost at time of generation (never recalculated), None if unpriced
            recipe_id: Recipe produced by the completion

        Returns:
            UUID of the created row
        """
        usage_id = uuid4()

        await self.db.execute(
            """
            INSERT INTO ai_usage (id, user_id, recipe_id, model, input_tokens, output_tokens, cost)
            VALUES ($1, $2, $3, $4, $5, $6, $7)
            """,
            usage_id,
            UUID(str(user_id)),
            recipe_id,
            model_id,
            input_tokens,
            output_tokens,
            cost,
        )

        cost_label = f"${cost:.4f}" if cost is not None else "unpriced"
        logger.info(
            f"✅ Logged text usage: {model_id} - {input_tokens + output_tokens} tokens - {cost_label}"
        )
        return usage_id

    async def count_usage_since(self, user_id: str, since: datetime) -> int:
        row = await self.db.fetch_one(
            """
            SELECT COUNT(*) AS usage_count
            FROM ai_usage
            WHERE user_id = $1 AND created_at >= $2
            """,
            UUID(str(user_id)),
            since,
        )
        return int(row["usage_count"]) if row else 0

    async def oldest_usage_since(self, user_id: str, since: datetime) -> Optional[datetime]:
        row = await self.db.fetch_one(
            """
            SELECT MIN(created_at) AS oldest
            FROM ai_usage
            WHERE user_id = $1 AND created_at >= $2
            """,
            UUID(str(user_id)),
            since,
        )
        return row["oldest"] if row else None

    async def fetch_usage(
        self, user_id: str, start: datetime, end: datetime
    ) -> list[dict[str, Any]]:
        """All usage rows for a user with start <= created_at <= end"""
        return await self.db.fetch_all(
            """
            SELECT model, input_tokens, output_tokens, cost, created_at
            FROM ai_usage
            WHERE user_id = $1 AND created_at >= $2 AND created_at <= $3
            ORDER BY created_at ASC
            """,
            UUID(str(user_id)),
            start,
            end,
        )


def window_start(window: timedelta, now: Optional[datetime] = None) -> datetime:
    return (now or datetime.now(timezone.utc)) - window

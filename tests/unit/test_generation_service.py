import uuid
from datetime import datetime, timezone

import pytest

from services.recipes.generation_service import DEFAULT_TITLE, RecipeGenerationService
from shared.exceptions import GenerationFailed, InternalError, RateLimitExceeded
from shared.llm_client import LLMError
from tests.conftest import RECIPE_JSON, FakeLLMClient, dispatch


@pytest.fixture
def saved_row():
    return {"id": uuid.uuid4(), "is_visible": True, "created_at": datetime.now(timezone.utc)}


@pytest.fixture
def service(fake_db, fake_llm):
    return RecipeGenerationService(fake_db, fake_llm, max_generations_per_hour=10)


def _with_usage_count(fake_db, count, saved_row=None):
    fake_db.fetch_one.side_effect = dispatch(
        {
            "COUNT(*) AS usage_count": {"usage_count": count},
            "FROM user_api_keys": None,
            "INSERT INTO recipes": saved_row,
        }
    )


@pytest.mark.parametrize("count", [0, 9])
async def test_rate_limit_allows_below_limit(service, fake_db, test_user, count):
    _with_usage_count(fake_db, count)

    await service.check_rate_limit(test_user["id"])


@pytest.mark.parametrize("count", [10, 11])
async def test_rate_limit_blocks_at_limit(service, fake_db, test_user, count):
    _with_usage_count(fake_db, count)

    with pytest.raises(RateLimitExceeded):
        await service.check_rate_limit(test_user["id"])


async def test_rate_limit_counts_only_the_last_hour(service, fake_db, test_user):
    _with_usage_count(fake_db, 0)

    await service.check_rate_limit(test_user["id"])

    query, _, since = fake_db.fetch_one.call_args.args
    assert "created_at >= $2" in query
    elapsed = datetime.now(timezone.utc) - since
    assert 3590 <= elapsed.total_seconds() <= 3610


async def test_rate_limit_fails_open_when_count_fails(service, fake_db, test_user):
    fake_db.fetch_one.side_effect = ConnectionError("database unavailable")

    await service.check_rate_limit(test_user["id"])


async def test_rate_limit_recovers_after_window(service, fake_db, test_user):
    _with_usage_count(fake_db, 10)
    with pytest.raises(RateLimitExceeded):
        await service.check_rate_limit(test_user["id"])

    # An hour later the earlier rows fall outside the window
    _with_usage_count(fake_db, 0)
    await service.check_rate_limit(test_user["id"])


async def test_generate_parses_fenced_json_and_prices_it(service, fake_llm):
    generated = await service.generate("szybka kolacja z kurczakiem", ["vegetarian"], "gpt-4o-mini")

    assert generated.title == "Szybka kolacja z kurczakiem"
    assert generated.content["ingredients"]
    assert generated.content["shopping_list"]
    assert generated.content["instructions"]
    assert generated.input_tokens == 500
    assert generated.output_tokens == 800
    assert generated.cost == 0.0006

    call = fake_llm.calls[0]
    assert call["temperature"] == 0.7
    assert call["max_tokens"] == 2000
    assert "- vegetarian" in call["user_prompt"]


async def test_generate_defaults_missing_fields():
    llm = FakeLLMClient(completion='{"ingredients": ["woda"]}')
    service = RecipeGenerationService(None, llm)

    generated = await service.generate("herbata", [], "gpt-4")

    assert generated.title == DEFAULT_TITLE
    assert generated.content == {"ingredients": ["woda"], "shopping_list": [], "instructions": []}


async def test_generate_wraps_invalid_json():
    service = RecipeGenerationService(None, FakeLLMClient(completion="Sorry, I cannot help."))

    with pytest.raises(GenerationFailed):
        await service.generate("herbata", [], "gpt-4")


async def test_generate_wraps_llm_errors(fake_llm):
    fake_llm.error = LLMError("OpenAI API error 500", provider="openai", status_code=500)
    service = RecipeGenerationService(None, fake_llm)

    with pytest.raises(GenerationFailed) as exc_info:
        await service.generate("herbata", [], "gpt-4")

    assert exc_info.value.message == "Recipe generation failed"
    assert len(fake_llm.calls) == 1


async def test_generate_uses_personal_api_key(service, fake_llm):
    await service.generate("herbata", [], "gpt-4", api_key="sk-personal-key-123456789")

    assert fake_llm.calls[0]["api_key"] == "sk-personal-key-123456789"


async def test_run_persists_recipe_and_logs_usage_once(service, fake_db, test_user, saved_row):
    _with_usage_count(fake_db, 0, saved_row)

    stored, generated = await service.run(test_user["id"], "zupa", ["vegan"], "gpt-4o-mini")

    assert stored.id == saved_row["id"]
    assert stored.preferences_applied == ["vegan"]
    usage_inserts = [q for q in fake_db.queries("execute") if "INSERT INTO ai_usage" in q]
    assert len(usage_inserts) == 1
    usage_args = fake_db.execute.call_args.args
    assert usage_args[3] == saved_row["id"]
    assert usage_args[4:] == ("gpt-4o-mini", 500, 800, generated.cost)


async def test_run_survives_usage_log_failure(service, fake_db, test_user, saved_row):
    _with_usage_count(fake_db, 0, saved_row)
    fake_db.execute.side_effect = RuntimeError("insert failed")

    stored, _ = await service.run(test_user["id"], "zupa", [], "gpt-4o-mini")

    assert stored.id == saved_row["id"]


async def test_run_reports_recipe_save_failure(service, fake_db, test_user):
    async def _fail_on_insert(query, *args):
        if "INSERT INTO recipes" in query:
            raise RuntimeError("disk full")
        if "usage_count" in query:
            return {"usage_count": 0}
        return None

    fake_db.fetch_one.side_effect = _fail_on_insert

    with pytest.raises(InternalError):
        await service.run(test_user["id"], "zupa", [], "gpt-4o-mini")

    assert not fake_db.execute.called


async def test_run_stops_before_calling_model_when_limited(service, fake_db, fake_llm, test_user):
    _with_usage_count(fake_db, 10)

    with pytest.raises(RateLimitExceeded):
        await service.run(test_user["id"], "zupa", [], "gpt-4o-mini")

    assert fake_llm.calls == []

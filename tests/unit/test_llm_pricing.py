import pytest

from shared.llm_pricing import DEFAULT_MODEL, calculate_llm_cost, is_supported_model


def test_default_model_is_priced():
    assert DEFAULT_MODEL == "gpt-4o-mini"
    assert is_supported_model(DEFAULT_MODEL)


def test_cost_uses_per_thousand_rates():
    # 1000 * 0.03/1K + 500 * 0.06/1K
    assert calculate_llm_cost("gpt-4", 1000, 500) == 0.06


def test_cost_is_rounded_to_four_decimals():
    # 0.5 * 0.00015 + 0.8 * 0.0006 = 0.000555
    assert calculate_llm_cost("gpt-4o-mini", 500, 800) == 0.0006


def test_zero_tokens_cost_nothing():
    assert calculate_llm_cost("gpt-4o", 0, 0) == 0.0


def test_unknown_model_has_no_cost():
    assert calculate_llm_cost("gpt-unknown", 100, 100) is None
    assert not is_supported_model("gpt-unknown")


def test_negative_tokens_rejected():
    with pytest.raises(ValueError):
        calculate_llm_cost("gpt-4o", -1, 10)

# services/recipes/prompts.py
"""Prompt construction for recipe generation and regeneration."""

import json
from dataclasses import dataclass, field
from typing import Optional

SYSTEM_PROMPT = (
    "You are a professional chef and nutritionist. Generate healthy, practical recipes "
    "based on user requests. IMPORTANT: Always generate recipes in Polish language. "
    "Always respond with valid JSON only, no additional text. CRITICAL: If the user has "
    "allergies, NEVER include those ingredients - this is a matter of health and safety. "
    "Double-check all ingredients against the allergy list before finalizing the recipe."
)

# Checked in this order; the first group with a matching keyword wins
ALLERGY_KEYWORDS = (
    # Polish
    "gluten", "laktoza", "orzech", "orzeszk", "orzeszek", "orzeszków", "skorupiak", "jaja",
    "jajeczn", "jajk", "soja", "sojow", "soją", "soi", "ryby", "rybn", "rybami", "rybach",
    "sezam", "laktoz", "arachidowe", "włoskie", "laskowe", "brazylijskie", "nerkowca",
    "pistacjowe", "migdałowe", "pekan",
    # English
    "lactose", "nut", "shellfish", "shell", "egg", "soy", "fish", "sesame", "peanut",
    "walnut", "hazelnut", "cashew", "pistachio", "almond", "pecan",
)

DIET_KEYWORDS = (
    "wegetariań", "wegań", "keto", "paleo", "bezglutenow", "low-carb", "high-protein",
    "mediterranean", "niskowęglowodanow", "wysokobiałkow", "śródziemnomorsk",
    "vegetarian", "vegan", "gluten-free",
)

CUISINE_KEYWORDS = (
    "polsk", "włosk", "azjatyck", "meksykańsk", "francusk", "indyjsk", "tajsk", "greck",
    "japońsk", "bliskowschodni",
    "polish", "italian", "asian", "mexican", "french", "indian", "thai", "greek",
    "japanese", "middle-eastern",
)

JSON_FORMAT = """Please provide the recipe in the following JSON format:
{
  "title": "Nazwa Przepisu",
  "ingredients": ["składnik 1 z ilością", "składnik 2 z ilością", ...],
  "shopping_list": ["produkt 1 z ilością", "produkt 2 z ilością", ...],
  "instructions": ["krok 1", "krok 2", ...]
}"""

BASE_REQUIREMENTS = [
    "Generate the recipe entirely in Polish language",
    "Make the recipe practical and easy to follow",
    "Provide clear, step-by-step instructions",
    "Include a shopping list with quantities",
    "Ensure ingredients are commonly available",
    "Make the recipe healthy and balanced",
]


@dataclass
class CategorizedPreferences:
    allergies: list[str] = field(default_factory=list)
    diet: list[str] = field(default_factory=list)
    cuisine: list[str] = field(default_factory=list)

    def is_empty(self) -> bool:
        return not (self.allergies or self.diet or self.cuisine)


def _matches(preference: str, keywords: tuple[str, ...]) -> bool:
    lowered = preference.lower()
    return any(keyword in lowered for keyword in keywords)


def categorize_preferences(preferences: Optional[list[str]]) -> CategorizedPreferences:
    """Split preference tags into allergy, diet and cuisine groups; unknown tags count as diet"""
    categorized = CategorizedPreferences()
    for preference in preferences or []:
        if _matches(preference, ALLERGY_KEYWORDS):
            categorized.allergies.append(preference)
        elif _matches(preference, DIET_KEYWORDS):
            categorized.diet.append(preference)
        elif _matches(preference, CUISINE_KEYWORDS):
            categorized.cuisine.append(preference)
        else:
            categorized.diet.append(preference)
    return categorized


def _bullets(items: list[str], suffix: str = "") -> str:
    return "\n".join(f"- {item}{suffix}" for item in items)


def _preferences_block(categorized: CategorizedPreferences) -> str:
    block = ""
    if categorized.diet:
        block += f"\n\nDietary Preferences:\n{_bullets(categorized.diet)}"
    if categorized.cuisine:
        block += f"\n\nCuisine Preferences:\n{_bullets(categorized.cuisine)}"
    if categorized.allergies:
        block += (
            "\n\n⚠️ CRITICAL - ALLERGIES TO AVOID (NEVER include these ingredients):\n"
            f"{_bullets(categorized.allergies, ' (ABSOLUTELY FORBIDDEN)')}"
        )
    return block


def _allergy_warning(allergies: list[str]) -> str:
    return (
        "⚠️ CRITICAL ALLERGY WARNING: The user has severe allergies to the ingredients listed above.\n"
        "NEVER include any of these ingredients in the recipe, shopping list, or instructions.\n"
        "Check every ingredient for variations, derivatives, or related products of:\n"
        f"{_bullets(allergies)}\n\n"
    )


def _requirements(categorized: CategorizedPreferences, extra: Optional[list[str]] = None) -> str:
    requirements = list(BASE_REQUIREMENTS)
    if extra:
        requirements[1:1] = extra
    if not categorized.is_empty():
        requirements.insert(2, "Consider user dietary preferences and cuisine choices")
    if categorized.allergies:
        requirements.append(
            f"Before finalizing, verify that NONE of these ingredients appear anywhere: "
            f"{', '.join(categorized.allergies)}"
        )
    return "Requirements:\n" + _bullets(requirements)


def build_recipe_prompt(query: str, preferences: Optional[list[str]] = None) -> str:
    """Build the user message for a new recipe"""
    categorized = categorize_preferences(preferences)
    warning = _allergy_warning(categorized.allergies) if categorized.allergies else ""

    return (
        "Generate a detailed recipe based on the following request:\n\n"
        f"User Request: {query}{_preferences_block(categorized)}\n\n"
        "IMPORTANT: Always generate the recipe in Polish language.\n\n"
        f"{warning}"
        f"{JSON_FORMAT}\n\n"
        f"{_requirements(categorized)}"
    )


def build_regeneration_prompt(
    query: str, preferences: Optional[list[str]], previous_recipe: dict
) -> str:
    """Build the user message asking for a variation of an earlier recipe"""
    categorized = categorize_preferences(preferences)
    warning = _allergy_warning(categorized.allergies) if categorized.allergies else ""
    previous = json.dumps(previous_recipe, ensure_ascii=False)

    return (
        "Regenerate the recipe based on the original request and user preferences:\n\n"
        f"Original Request: {query}{_preferences_block(categorized)}\n\n"
        f"Previous Recipe: {previous}\n\n"
        "IMPORTANT: Always generate the recipe in Polish language.\n\n"
        f"{warning}"
        "Create a new variation of the previous recipe. "
        f"{JSON_FORMAT}\n\n"
        f"{_requirements(categorized, ['Create a different variation while maintaining the same concept'])}"
    )

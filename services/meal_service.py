from typing import Any, Dict, List, Optional

from infrastructure.ai.gemini_provider import AIServiceError
from services import tool_history

MEALS = ("breakfast", "lunch", "dinner", "snack")

_DISH = {
    "type": "OBJECT",
    "properties": {
        "name": {"type": "STRING"},
        "ingredients": {"type": "ARRAY", "items": {"type": "STRING"}},
        "recipe": {"type": "STRING"},
    },
    "required": ["name", "ingredients"],
}

MEAL_PLAN_SCHEMA = {
    "type": "OBJECT",
    "properties": {
        **{
            meal: {
                "type": "OBJECT",
                "properties": {"baby": _DISH, "mother": _DISH},
                "required": ["baby", "mother"],
            }
            for meal in MEALS
        },
        "shopping_list": {"type": "ARRAY", "items": {"type": "STRING"}},
    },
    "required": [*MEALS, "shopping_list"],
}

RECIPE_SCHEMA = {
    "type": "OBJECT",
    "properties": {
        "dish_name": {"type": "STRING"},
        "description": {"type": "STRING"},
        "prep_time": {"type": "STRING"},
        "cook_time": {"type": "STRING"},
        "total_time": {"type": "STRING"},
        "servings": {"type": "STRING"},
        "difficulty": {"type": "STRING"},
        "ingredients": {
            "type": "ARRAY",
            "items": {
                "type": "OBJECT",
                "properties": {"item": {"type": "STRING"}, "notes": {"type": "STRING"}},
                "required": ["item"],
            },
        },
        "instructions": {
            "type": "ARRAY",
            "items": {
                "type": "OBJECT",
                "properties": {
                    "step": {"type": "NUMBER"},
                    "title": {"type": "STRING"},
                    "instruction": {"type": "STRING"},
                    "tip": {"type": "STRING"},
                },
                "required": ["step", "instruction"],
            },
        },
        "expert_tips": {"type": "ARRAY", "items": {"type": "STRING"}},
        "variations": {"type": "ARRAY", "items": {"type": "STRING"}},
        "nutritional_info": {"type": "STRING"},
        "storage_tips": {"type": "STRING"},
        "shopping_list": {"type": "ARRAY", "items": {"type": "STRING"}},
    },
    "required": ["dish_name", "description", "ingredients", "instructions", "shopping_list"],
}


def build_meal_plan_prompt(child: Dict[str, Any], dietary_preferences: List[str], language: str,
                           mother_age: Optional[int] = None, additional_instructions: Optional[str] = None) -> str:
    mother = f" and mother (age {mother_age})" if mother_age else ""
    extra = f" Additional instructions: {additional_instructions}." if additional_instructions else ""
    dietary = ", ".join(dietary_preferences) or "None"
    return (
        f"1-day meal plan for {child['name']} ({child.get('age_months', '?')} months old){mother}. "
        f"Dietary: {dietary}.{extra} Include baby & mother meals for breakfast/lunch/dinner/snack "
        f"with ingredients and shopping_list. Language: {language}."
    )


def validate_meal_plan(data: Any) -> Dict[str, Any]:
    if not isinstance(data, dict) or any(not isinstance(data.get(m), dict) for m in MEALS):
        raise AIServiceError("Failed to generate the meal plan. Please try again.")
    plan = {}
    for meal in MEALS:
        plan[meal] = {}
        for who in ("baby", "mother"):
            dish = data[meal].get(who) or {}
            plan[meal][who] = {
                "name": str(dish.get("name", "")),
                "ingredients": [str(i) for i in dish.get("ingredients") or []],
                "recipe": str(dish.get("recipe") or ""),
            }
    plan["shopping_list"] = [str(i) for i in data.get("shopping_list") or []]
    return plan


def generate_meal_plan(user_id: str, child: Dict[str, Any], dietary_preferences: List[str], language: str,
                       mother_age: Optional[int] = None, additional_instructions: Optional[str] = None) -> Dict[str, Any]:
    prompt = build_meal_plan_prompt(child, dietary_preferences, language, mother_age, additional_instructions)
    result = tool_history.run_tool("meal", user_id, prompt, MEAL_PLAN_SCHEMA)
    plan = validate_meal_plan(result.data)
    request = {
        "child": child, "dietary_preferences": list(dietary_preferences),
        "mother_age": mother_age, "additional_instructions": additional_instructions,
    }
    tool_history.save_run("meal", user_id, request, plan, label=child.get("name"), language=language)
    return plan


def generate_single_recipe(user_id: str, dish_name: str, language: str) -> Dict[str, Any]:
    dish_name = (dish_name or "").strip()
    if not dish_name:
        raise ValueError("Please enter a dish name.")
    prompt = (
        f'Create a comprehensive, detailed recipe for "{dish_name}" that is family-friendly and suitable '
        f"for parents with children. Write in {language}. Include an introduction, exact measurements, "
        f"step-by-step instructions, expert tips, variations, nutritional info, storage tips and a shopping list."
    )
    result = tool_history.run_tool("recipe", user_id, prompt, RECIPE_SCHEMA)
    recipe = result.data
    if not isinstance(recipe, dict) or not recipe.get("ingredients") or not recipe.get("instructions"):
        raise AIServiceError("Failed to generate the recipe. Please try again.")
    tool_history.save_run("recipe", user_id, {"dish_name": dish_name}, recipe, label=dish_name, language=language)
    return recipe

from typing import Any, Dict, Optional

from infrastructure.ai.gemini_provider import AIServiceError
from services import tool_history

PLAN_SCHEMA = {
    "type": "OBJECT",
    "properties": {
        "daily_plan": {
            "type": "ARRAY",
            "description": "A list of timed activities for the day.",
            "items": {
                "type": "OBJECT",
                "properties": {
                    "time": {"type": "STRING", "description": "Time of day (e.g., 8:00 AM)"},
                    "activity": {"type": "STRING"},
                    "details": {"type": "STRING"},
                },
                "required": ["time", "activity", "details"],
            },
        },
        "parenting_tip": {"type": "STRING", "description": "A single, helpful parenting tip."},
    },
    "required": ["daily_plan", "parenting_tip"],
}


def build_prompt(parent_name: str, child: Dict[str, Any], focus_areas: str, language: str,
                 start_time: Optional[str] = None, end_time: Optional[str] = None) -> str:
    time_range = f" Time: between {start_time} and {end_time}." if start_time and end_time else ""
    return (
        f"Daily parenting plan for {child['name']} ({child.get('age', '?')} years). "
        f"Parent: {parent_name}. Focus: {focus_areas}.{time_range} "
        f"Language: {language}. Need structured plan with parenting tip."
    )


def validate_plan(data: Any) -> Dict[str, Any]:
    if not isinstance(data, dict) or not isinstance(data.get("daily_plan"), list):
        raise AIServiceError("Failed to generate the parenting plan. Please try again.")
    items = [
        {"time": str(i.get("time", "")), "activity": str(i.get("activity", "")), "details": str(i.get("details", ""))}
        for i in data["daily_plan"]
        if isinstance(i, dict)
    ]
    return {"daily_plan": items, "parenting_tip": str(data.get("parenting_tip") or "")}


def generate_plan(user_id: str, parent_name: str, child: Dict[str, Any], focus_areas: str, language: str,
                  start_time: Optional[str] = None, end_time: Optional[str] = None) -> Dict[str, Any]:
    """Generate and store a timed daily plan. Raises AIServiceError."""
    prompt = build_prompt(parent_name, child, focus_areas, language, start_time, end_time)
    result = tool_history.run_tool("planner", user_id, prompt, PLAN_SCHEMA)
    plan = validate_plan(result.data)
    request = {
        "child": child, "focus_areas": focus_areas,
        "start_time": start_time, "end_time": end_time,
    }
    tool_history.save_run("planner", user_id, request, plan, label=child.get("name"), language=language)
    return plan

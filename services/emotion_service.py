from typing import Optional

from infrastructure.ai.gemini_provider import AIServiceError
from services import tool_history

MOODS = ["Happy", "Calm", "Tired", "Anxious", "Overwhelmed", "Frustrated", "Sad"]


def build_prompt(mood: str, note: Optional[str], language: str, user_name: Optional[str] = None) -> str:
    prefix = f"{user_name}, " if user_name else ""
    context = f' Context: "{note}".' if note else ""
    by_name = f' using their name "{user_name}"' if user_name else ""
    return (
        f'Write a direct, supportive message to a parent feeling "{mood}".{context} '
        f"Address them directly{by_name}, not as instructions to deliver a message. "
        f"Include: 1) personal validation of their feelings, 2) direct encouraging words (max 150 words), "
        f"3) actionable advice they can try. Write in {language}. Start with \"{prefix}\" and speak "
        f"directly to them as their supportive parenting coach."
    )


def get_emotion_support(user_id: str, mood: str, note: Optional[str], language: str,
                        user_name: Optional[str] = None) -> str:
    if not mood:
        raise ValueError("Please choose how you are feeling.")
    result = tool_history.run_tool("emotion", user_id, build_prompt(mood, note, language, user_name))
    message = (result.text or "").strip()
    if not message:
        raise AIServiceError("Failed to get emotional support. Please try again.")
    tool_history.save_run("emotion", user_id, {"mood": mood, "note": note}, message, label=mood, language=language)
    return message

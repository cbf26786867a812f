"""Shared plumbing for the AI tools: provider setup, usage/cost ledger, run history."""

import logging
from typing import Any, Dict, List, Optional

import auth
from infrastructure.ai.gemini_provider import AIServiceError, CompletionResult, DEFAULT_MODEL, GeminiProvider
from infrastructure.repositories.sqlite_audit_repository import AuditAction
from infrastructure.repositories.sqlite_tool_run_repository import SQLiteToolRunRepository

log = logging.getLogger(__name__)

TOOL_TABLES = {
    "planner": "planner_runs",
    "meal": "meal_plan_runs",
    "recipe": "single_recipe_runs",
    "emotion": "emotion_logs",
}

DEFAULT_COST_PER_1K_INPUT = 0.0001
DEFAULT_COST_PER_1K_OUTPUT = 0.0004

_run_repo = None
_provider = None


def get_run_repo() -> SQLiteToolRunRepository:
    global _run_repo
    if _run_repo is None or _run_repo.db_path != auth.NEST_DB:
        _run_repo = SQLiteToolRunRepository(auth.NEST_DB)
    return _run_repo


def get_provider() -> GeminiProvider:
    global _provider
    if _provider is None:
        _provider = GeminiProvider(
            api_key=auth.get_config("GEMINI_API_KEY"),
            model_name=auth.get_config("GEMINI_MODEL", DEFAULT_MODEL),
            proxy_url=auth.get_config("GEMINI_PROXY_URL"),
        )
    return _provider


def estimate_cost(input_tokens: int, output_tokens: int) -> float:
    per_1k_in = float(auth.get_config("GEMINI_COST_PER_1K_INPUT", DEFAULT_COST_PER_1K_INPUT))
    per_1k_out = float(auth.get_config("GEMINI_COST_PER_1K_OUTPUT", DEFAULT_COST_PER_1K_OUTPUT))
    return round(input_tokens / 1000 * per_1k_in + output_tokens / 1000 * per_1k_out, 6)


def run_tool(tool: str, user_id: Optional[str], prompt: str, output_schema: Optional[dict] = None) -> CompletionResult:
    """Call Gemini for `tool` and record usage either way. Raises AIServiceError."""
    repo = get_run_repo()
    try:
        result = get_provider().complete(prompt, output_schema=output_schema)
    except AIServiceError as e:
        repo.log_usage(user_id, tool, 0, 0, 0.0, success=False)
        auth.get_audit_repo().log_action(
            AuditAction.AI_REQUEST_FAILED, target_type="tool", actor_user_id=user_id,
            metadata={"tool": tool, "error_message": str(e)}, result="error",
        )
        raise

    cost = estimate_cost(result.input_tokens, result.output_tokens)
    repo.log_usage(user_id, tool, result.input_tokens, result.output_tokens, cost)
    log.info(f"{tool} run for {user_id}: {result.input_tokens}+{result.output_tokens} tokens, ${cost:.6f}")
    return result


def save_run(tool: str, user_id: str, request: Dict[str, Any], result: Any,
             label: Optional[str] = None, language: Optional[str] = None) -> int:
    return get_run_repo().save_run(TOOL_TABLES[tool], user_id, request, result, label=label, language=language)


def get_history(tool: str, user_id: str, limit: int = 50) -> List[dict]:
    """Past runs for one tool, newest first."""
    return get_run_repo().get_runs(TOOL_TABLES[tool], user_id, limit=limit)

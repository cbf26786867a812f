import json
import logging
from dataclasses import dataclass
from typing import Any, Optional

import requests
from google import genai
from google.genai import types

log = logging.getLogger(__name__)

DEFAULT_MODEL = "gemini-2.0-flash"


class AIServiceError(Exception):
    pass


@dataclass(frozen=True)
class CompletionResult:
    data: Any
    text: str
    input_tokens: int = 0
    output_tokens: int = 0


class GeminiProvider:
    """
    Sends prompts to Gemini either directly (google-genai client) or through a
    serverless proxy that holds the API key server-side.
    Structured calls pass a response schema and get parsed JSON back in `data`.
    """

    def __init__(self, api_key: Optional[str] = None, model_name: str = DEFAULT_MODEL,
                 proxy_url: Optional[str] = None, timeout: int = 60):
        if not api_key and not proxy_url:
            raise AIServiceError("Gemini is not configured. Set GEMINI_API_KEY or GEMINI_PROXY_URL.")
        self.model_name = model_name
        self.proxy_url = proxy_url
        self.timeout = timeout
        self._client = None
        if not proxy_url:
            self._client = genai.Client(api_key=api_key)

    def complete(self, prompt: str, output_schema: Optional[dict] = None) -> CompletionResult:
        if self.proxy_url:
            text, input_tokens, output_tokens = self._complete_via_proxy(prompt, output_schema)
        else:
            text, input_tokens, output_tokens = self._complete_direct(prompt, output_schema)

        data = None
        if output_schema is not None:
            try:
                data = json.loads(text)
            except (TypeError, ValueError) as e:
                log.error(f"Gemini returned non-JSON output for a structured prompt: {e}")
                raise AIServiceError("The AI returned an unreadable answer. Please try again.") from e
        return CompletionResult(data=data, text=text, input_tokens=input_tokens, output_tokens=output_tokens)

    def _complete_direct(self, prompt, output_schema):
        config = None
        if output_schema is not None:
            config = types.GenerateContentConfig(
                response_mime_type="application/json",
                response_schema=output_schema,
            )
        try:
            response = self._client.models.generate_content(model=self.model_name, contents=prompt, config=config)
            text = response.text
        except Exception as e:
            log.error(f"Gemini request failed: {e}")
            raise AIServiceError("The AI service is unavailable right now. Please try again.") from e

        usage = getattr(response, "usage_metadata", None)
        input_tokens = getattr(usage, "prompt_token_count", 0) or 0
        output_tokens = getattr(usage, "candidates_token_count", 0) or 0
        return text, input_tokens, output_tokens

    def _complete_via_proxy(self, prompt, output_schema):
        payload = {"prompt": prompt, "schema": output_schema, "model": self.model_name}
        try:
            response = requests.post(self.proxy_url, json=payload, timeout=self.timeout)
        except requests.RequestException as e:
            log.error(f"Gemini proxy unreachable: {e}")
            raise AIServiceError("The AI service is unavailable right now. Please try again.") from e

        if response.status_code != 200:
            log.error(f"Gemini proxy error {response.status_code}: {response.text[:200]}")
            raise AIServiceError("The AI service returned an error. Please try again.")

        try:
            body = response.json()
        except ValueError as e:
            raise AIServiceError("The AI service returned an invalid response.") from e
        if "error" in body:
            log.error(f"Gemini proxy reported: {body['error']}")
            raise AIServiceError("The AI service returned an error. Please try again.")
        return body.get("text", ""), int(body.get("input_tokens") or 0), int(body.get("output_tokens") or 0)

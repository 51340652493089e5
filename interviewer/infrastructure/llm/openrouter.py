"""
OpenRouter chat-completions client.
"""
import logging
from typing import Optional, Dict, Any, List

import httpx

from .client import extract_json
from ...config import OPENROUTER_URL, OPENROUTER_MODEL, LLM_TIMEOUT, MAX_OUTPUT_TOKENS
from ...interview.errors import LLMRequestError, MalformedResponseError

logger = logging.getLogger("llm_client")


class OpenRouterClient:
    """Async client for OpenRouter's OpenAI-compatible chat completions endpoint."""

    def __init__(self,
                 api_key: str,
                 model: str = OPENROUTER_MODEL,
                 url: str = OPENROUTER_URL,
                 timeout: int = LLM_TIMEOUT,
                 http_client: Optional[httpx.AsyncClient] = None):
        if not api_key:
            raise ValueError("api_key is required for OpenRouter")
        self.model = model
        self.url = url
        self.timeout = timeout
        self._headers = {
            "Authorization": f"Bearer {api_key}",
            "Content-Type": "application/json",
        }
        self._http = http_client or httpx.AsyncClient(timeout=timeout)

    async def generate_content(self,
                               messages: List[Dict[str, str]],
                               temperature: float = 0.0,
                               max_output_tokens: int = MAX_OUTPUT_TOKENS,
                               response_format: Optional[Dict[str, Any]] = None) -> Any:
        """Send a chat completion request and return the message content."""
        body: Dict[str, Any] = {
            "model": self.model,
            "messages": messages,
            "temperature": float(temperature),
            "max_tokens": int(max_output_tokens),
        }
        if response_format is not None:
            body["response_format"] = response_format

        try:
            resp = await self._http.post(self.url, headers=self._headers, json=body, timeout=self.timeout)
        except httpx.HTTPError as e:
            raise LLMRequestError(f"OpenRouter request failed: {e}") from e
        if resp.status_code >= 400:
            raise LLMRequestError(f"OpenRouter error {resp.status_code}: {resp.text}", resp.status_code)

        data = resp.json()
        # OpenRouter reports upstream provider failures inside a 200 body
        if isinstance(data.get("error"), dict):
            message = data["error"].get("message", "unknown error")
            raise LLMRequestError(f"OpenRouter provider error: {message}", data["error"].get("code"))

        try:
            return data["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError):
            raise MalformedResponseError("OpenRouter response has no message content",
                                         raw_text=resp.text, is_json=True)

    async def generate_json(self, messages: List[Dict[str, str]], schema_name: str,
                            schema: Dict[str, Any]) -> Any:
        """
        Generate a JSON response using a strict json_schema response format.

        Raises:
            LLMRequestError: Transport or HTTP failure
            MalformedResponseError: The model answered with something that is not JSON
        """
        response_format = {
            "type": "json_schema",
            "json_schema": {"name": schema_name, "strict": True, "schema": schema},
        }
        logger.debug("Sending %s prompt to OpenRouter (%s)...", schema_name, self.model)
        content = await self.generate_content(messages, response_format=response_format)
        logger.debug("Raw LLM output: %s", repr(content))

        # Some providers hand back already-parsed JSON
        if isinstance(content, (dict, list)):
            return content
        return extract_json(content)

    async def aclose(self) -> None:
        await self._http.aclose()

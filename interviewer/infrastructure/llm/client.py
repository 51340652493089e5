"""
Vertex AI REST client for LLM interactions.
"""
import asyncio
import json
import logging
from typing import Optional, Dict, Any, List

import httpx
import google.auth
import google.auth.transport.requests
from google.oauth2 import service_account

from ...config import VERTEX_LOCATION, VERTEX_MODEL, LLM_TIMEOUT, MAX_OUTPUT_TOKENS
from ...interview.errors import LLMRequestError, MalformedResponseError

logger = logging.getLogger("llm_client")

_SCOPES = ["https://www.googleapis.com/auth/cloud-platform"]

# JSON schema keywords Vertex's responseSchema does not accept
_UNSUPPORTED_SCHEMA_KEYS = ("additionalProperties",)


def extract_json(text: str) -> Any:
    """
    Parse model output as JSON.
    Falls back to the outermost {...} block when the model wrapped the JSON in prose
    or code fences.

    Raises:
        MalformedResponseError: If no JSON object can be recovered
    """
    try:
        return json.loads(text)
    except (TypeError, json.JSONDecodeError) as e:
        logger.warning("json.loads failed: %s", e)

    text = text or ""
    start = text.find("{")
    end = text.rfind("}")
    if start != -1 and end != -1 and end > start:
        try:
            parsed = json.loads(text[start:end + 1])
            logger.debug("Parsed JSON from substring successfully")
            return parsed
        except json.JSONDecodeError as e2:
            logger.warning("Substring parse also failed: %s", e2)

    raise MalformedResponseError("LLM did not return valid JSON", raw_text=text)


def _to_vertex_schema(schema: Dict[str, Any]) -> Dict[str, Any]:
    """Strip JSON-schema keywords that Vertex rejects."""
    cleaned: Dict[str, Any] = {}
    for key, value in schema.items():
        if key in _UNSUPPORTED_SCHEMA_KEYS:
            continue
        if isinstance(value, dict):
            cleaned[key] = _to_vertex_schema(value)
        else:
            cleaned[key] = value
    return cleaned


class VertexRestClient:
    """Async REST client for Vertex AI Gemini models."""

    def __init__(self,
                 project: str,
                 location: str = VERTEX_LOCATION,
                 model: str = VERTEX_MODEL,
                 credentials_json: Optional[str] = None,
                 timeout: int = LLM_TIMEOUT,
                 http_client: Optional[httpx.AsyncClient] = None):
        self.project = project
        self.location = location
        self.model = model
        self.credentials_json = credentials_json
        self.base_url = f"https://{self.location}-aiplatform.googleapis.com/v1"
        self.model_resource = f"projects/{self.project}/locations/{self.location}/publishers/google/models/{self.model}"
        self._credentials = None
        self.timeout = timeout
        self._http = http_client or httpx.AsyncClient(timeout=timeout)

    def _refresh_token(self) -> None:
        """Refresh the OAuth token for API calls."""
        if self._credentials is None:
            if self.credentials_json:
                self._credentials = service_account.Credentials.from_service_account_file(
                    self.credentials_json, scopes=_SCOPES,
                )
            else:
                self._credentials, _ = google.auth.default(scopes=_SCOPES)

        auth_req = google.auth.transport.requests.Request()
        self._credentials.refresh(auth_req)

    def _ensure_token(self) -> str:
        """Ensure we have a valid token, refreshing if needed."""
        if self._credentials is None or not self._credentials.valid:
            self._refresh_token()
        return self._credentials.token

    async def generate_content(
        self,
        messages: List[Dict[str, str]],
        temperature: float = 0.0,
        max_output_tokens: int = MAX_OUTPUT_TOKENS,
        response_schema: Optional[Dict[str, Any]] = None,
    ) -> str:
        """Generate content using the Vertex AI REST API.

        Chat-style messages are mapped onto Vertex contents: the system message
        becomes systemInstruction and assistant turns use the "model" role.
        """
        # google-auth refreshes over blocking HTTP
        token = await asyncio.to_thread(self._ensure_token)
        url = f"{self.base_url}/{self.model_resource}:generateContent"

        system_parts = [m["content"] for m in messages if m["role"] == "system"]
        contents = [
            {
                "role": "model" if m["role"] == "assistant" else "user",
                "parts": [{"text": m["content"]}],
            }
            for m in messages if m["role"] != "system"
        ]

        body: Dict[str, Any] = {
            "contents": contents,
            "generationConfig": {
                "temperature": float(temperature),
                "maxOutputTokens": int(max_output_tokens),
            },
        }
        if system_parts:
            body["systemInstruction"] = {"parts": [{"text": "\n\n".join(system_parts)}]}
        if response_schema is not None:
            body["generationConfig"]["responseMimeType"] = "application/json"
            body["generationConfig"]["responseSchema"] = _to_vertex_schema(response_schema)

        headers = {
            "Authorization": f"Bearer {token}",
            "Content-Type": "application/json",
        }

        try:
            resp = await self._http.post(url, headers=headers, json=body, timeout=self.timeout)
        except httpx.HTTPError as e:
            raise LLMRequestError(f"Vertex request failed: {e}") from e
        if resp.status_code >= 400:
            raise LLMRequestError(f"Vertex REST error {resp.status_code}: {resp.text}", resp.status_code)

        return self._parse_response_text(resp.json())

    def _parse_response_text(self, resp_json: Dict[str, Any]) -> str:
        """
        Parse response JSON to extract text content.
        Tries Vertex schema first, then falls back to alternatives.
        """
        cands = resp_json.get("candidates") or []
        if cands:
            content = cands[0].get("content") or {}
            parts = content.get("parts") or []
            for p in parts:
                if isinstance(p, dict) and isinstance(p.get("text"), str):
                    return p["text"]
            if isinstance(content.get("text"), str):
                return content["text"]

        if isinstance(resp_json.get("text"), str):
            return resp_json["text"]

        # Last resort: return JSON for inspection
        return json.dumps(resp_json, separators=(",", ":"))

    async def generate_json(self, messages: List[Dict[str, str]], schema_name: str,
                            schema: Dict[str, Any]) -> Any:
        """
        Generate a JSON response constrained by a response schema.

        Raises:
            LLMRequestError: Transport or HTTP failure
            MalformedResponseError: The model answered with something that is not JSON
        """
        logger.debug("Sending %s prompt to Vertex (%s)...", schema_name, self.model)
        text = await self.generate_content(messages, temperature=0.0, response_schema=schema)
        logger.debug("Raw LLM output: %s", repr(text))
        return extract_json(text)

    async def aclose(self) -> None:
        await self._http.aclose()

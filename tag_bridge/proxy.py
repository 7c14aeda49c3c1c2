"""
Gemini-style generate requests mapped onto the OpenAI-compatible endpoint.
"""

from typing import Any, Dict, Optional
import httpx
from .config import settings
from .logging import get_logger


class ProxyError(Exception):
    """Raised when a Gemini request cannot be served by the inference endpoint."""

    def __init__(self, message: str, status_code: Optional[int] = None, body: str = ""):
        super().__init__(message)
        self.status_code = status_code
        self.body = body


def gemini_to_openai(
    gemini_request: Dict[str, Any],
    temperature: Optional[float] = None,
    max_tokens: Optional[int] = None,
) -> Dict[str, Any]:
    """Convert a Gemini ``generateContent`` body into an OpenAI chat request.

    All text parts of all contents are joined with newlines into a single
    user message; non-text parts are dropped.
    """
    texts = []
    for content in gemini_request.get("contents") or []:
        if not isinstance(content, dict):
            continue
        for part in content.get("parts") or []:
            if isinstance(part, dict) and "text" in part:
                texts.append(str(part["text"]))

    return {
        "messages": [{"role": "user", "content": "\n".join(texts)}],
        "temperature": settings.proxy_temperature if temperature is None else temperature,
        "max_tokens": max_tokens or settings.proxy_max_tokens,
        "stream": False,
    }


def openai_to_gemini(openai_response: Dict[str, Any]) -> Dict[str, Any]:
    """Convert an OpenAI chat completion into a Gemini response body."""
    response_text = ""
    choices = openai_response.get("choices")
    if isinstance(choices, list) and choices and isinstance(choices[0], dict):
        message = choices[0].get("message")
        if isinstance(message, dict) and message.get("content") is not None:
            response_text = str(message["content"])

    return {
        "candidates": [
            {
                "content": {"parts": [{"text": response_text}]},
                "finishReason": "STOP",
            }
        ]
    }


class GeminiProxy:
    """Serves Gemini-format requests with the local inference endpoint."""

    def __init__(self, endpoint: Optional[str] = None, client: Optional[httpx.Client] = None):
        self.logger = get_logger("proxy")
        self.endpoint = endpoint or settings.inference_endpoint
        self._owns_client = client is None
        self.client = client or httpx.Client(
            timeout=httpx.Timeout(settings.proxy_read_timeout, connect=settings.proxy_connect_timeout),
            headers={"Content-Type": "application/json"},
        )

    def forward(self, openai_request: Dict[str, Any]) -> Dict[str, Any]:
        """Forward an OpenAI request to the endpoint and return the decoded response."""
        try:
            response = self.client.post(self.endpoint, json=openai_request)
        except httpx.HTTPError as e:
            raise ProxyError(f"Inference request failed: {e}") from e

        if response.status_code != 200:
            body = response.text.strip()
            raise ProxyError(
                f"Inference endpoint returned error code: {response.status_code}"
                + (f", body: {body}" if body else ""),
                status_code=response.status_code,
                body=body,
            )

        try:
            payload = response.json()
        except ValueError as e:
            raise ProxyError(f"Inference endpoint returned invalid JSON: {e}", body=response.text) from e

        if not isinstance(payload, dict):
            raise ProxyError(f"Unexpected inference response structure: {type(payload).__name__}")
        return payload

    def generate(self, gemini_request: Dict[str, Any]) -> Dict[str, Any]:
        """Answer a Gemini request: map, forward, and map back."""
        if not isinstance(gemini_request, dict):
            raise ProxyError("Gemini request body must be a JSON object")

        openai_request = gemini_to_openai(gemini_request)
        self.logger.debug(f"Converted to OpenAI request: {openai_request}")

        openai_response = self.forward(openai_request)
        self.logger.debug(f"Received inference response: {openai_response}")

        return openai_to_gemini(openai_response)

    def close(self):
        """Close the HTTP client if this proxy created it."""
        if self._owns_client:
            self.client.close()

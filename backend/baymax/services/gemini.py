"""
Gemini Client
=============
Thin async wrapper around the Gemini ``generateContent`` REST endpoint.

Only profile fields and aggregate statistics are ever sent: no names,
no user IDs, no caretaker contact details.
"""

from __future__ import annotations

import re
from typing import Optional

import httpx

# Gemini refuses "medical advice" prompts under the default filters.
# The prompts are framed as statistical questions and the filters are
# relaxed so a one-word classification is not blocked.
_SAFETY_SETTINGS = [
    {"category": category, "threshold": "BLOCK_NONE"}
    for category in (
        "HARM_CATEGORY_HARASSMENT",
        "HARM_CATEGORY_HATE_SPEECH",
        "HARM_CATEGORY_SEXUALLY_EXPLICIT",
        "HARM_CATEGORY_DANGEROUS_CONTENT",
    )
]

# Markers in an error body meaning the key will never work in this process
_FATAL_MARKERS = ("API_KEY_INVALID", "BLOCKED_BY_CLIENT", "PERMISSION_DENIED")

_RETRY_IN_RE = re.compile(r"retry in\s+(\d+(?:\.\d+)?)\s*s", re.IGNORECASE)
_RETRY_DELAY_RE = re.compile(r'"retryDelay"\s*:\s*"(\d+(?:\.\d+)?)s"')


# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------


class GeminiAPIError(Exception):
    """Non-2xx response from Gemini, or a transport failure (status 0)."""

    def __init__(self, status_code: int, body: str) -> None:
        self.status_code = status_code
        self.body = body
        super().__init__(f"Gemini API error {status_code}: {body}")

    @property
    def is_fatal(self) -> bool:
        """True for authentication or availability failures."""
        if self.status_code in (0, 401, 403):
            return True
        return any(marker in self.body for marker in _FATAL_MARKERS)

    @property
    def is_rate_limited(self) -> bool:
        return self.status_code == 429 or "RESOURCE_EXHAUSTED" in self.body

    @property
    def retry_after(self) -> Optional[float]:
        """Seconds to wait, parsed from the error text, if Gemini gave a hint."""
        for pattern in (_RETRY_IN_RE, _RETRY_DELAY_RE):
            match = pattern.search(self.body)
            if match:
                return float(match.group(1))
        return None


# ---------------------------------------------------------------------------
# Client
# ---------------------------------------------------------------------------


class GeminiClient:
    """Makes authenticated requests to the Gemini REST API."""

    def __init__(self, api_key: str, base_url: str) -> None:
        self._api_key = api_key
        self._base_url = base_url.rstrip("/")

    async def generate_text(
        self,
        model: str,
        prompt: str,
        temperature: float,
        max_output_tokens: int,
    ) -> str:
        """POST models/{model}:generateContent and return the reply text."""
        payload = {
            "contents": [{"role": "user", "parts": [{"text": prompt}]}],
            "safetySettings": _SAFETY_SETTINGS,
            "generationConfig": {
                "temperature": temperature,
                "maxOutputTokens": max_output_tokens,
            },
        }

        try:
            async with httpx.AsyncClient(timeout=15.0) as client:
                response = await client.post(
                    f"{self._base_url}/models/{model}:generateContent",
                    params={"key": self._api_key},
                    json=payload,
                )
        except httpx.TransportError as exc:
            raise GeminiAPIError(0, f"{type(exc).__name__}: {exc}") from exc

        if not response.is_success:
            raise GeminiAPIError(response.status_code, response.text)

        try:
            data = response.json()
            candidates = data.get("candidates") or []
            parts = candidates[0].get("content", {}).get("parts", []) if candidates else []
            text = "".join(part.get("text", "") for part in parts)
        except (ValueError, AttributeError, TypeError) as exc:
            raise GeminiAPIError(response.status_code, f"Unreadable response: {response.text[:200]}") from exc

        if not candidates:
            raise GeminiAPIError(response.status_code, "Response had no candidates")
        return text

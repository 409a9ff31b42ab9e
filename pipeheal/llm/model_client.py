from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict

import httpx

from pipeheal.models import Err, ErrorKind, Ok, Prompt, Result


@dataclass(frozen=True)
class GenerativeModelClient:
    """
    One synchronous call to a Gemini-style `generateContent` endpoint.

    Endpoint: POST {url}
    Body:     {"contents": [{"parts": [{"text": <prompt>}]}]}

    No retries: any transport problem (missing key, non-2xx, timeout,
    connection error) comes back as `Err(transport_failure)`.
    """

    url: str
    api_key: str | None
    api_key_header: str = "x-goog-api-key"
    timeout_s: float = 120.0
    transport: httpx.BaseTransport | None = None

    def _headers(self) -> Dict[str, str]:
        return {
            self.api_key_header: str(self.api_key),
            "Content-Type": "application/json",
        }

    def generate(self, prompt: Prompt) -> Result[bytes]:
        if not self.api_key:
            return Err(ErrorKind.transport_failure, "model api key is not configured")
        if not self.url:
            return Err(ErrorKind.transport_failure, "model url is not configured")

        payload: Dict[str, Any] = {"contents": [{"parts": [{"text": prompt.text}]}]}
        try:
            with httpx.Client(timeout=self.timeout_s, transport=self.transport) as c:
                r = c.post(self.url, headers=self._headers(), json=payload)
        except httpx.TimeoutException as e:
            return Err(ErrorKind.transport_failure, f"model_timeout: {e}")
        except httpx.HTTPError as e:
            return Err(ErrorKind.transport_failure, f"model_transport_error: {type(e).__name__}: {e}")

        if not (200 <= r.status_code < 300):
            return Err(
                ErrorKind.transport_failure,
                f"model_http_{r.status_code}",
                (r.text[:1500],),
            )
        return Ok(r.content)

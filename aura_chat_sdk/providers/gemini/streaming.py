"""Response parsing for the Gemini generateContent endpoints."""

import json
from typing import Any, AsyncIterator, Dict, Optional, Tuple

import httpx

from ..base import ProviderError


def extract_content(payload: Dict[str, Any]) -> Tuple[str, Optional[str]]:
    """
    Pull text and inline audio out of a generateContent payload.

    Returns:
        (text, audio) where audio is the base64 data of the first
        ``audio/*`` inline part, or None
    """
    candidates = payload.get("candidates") or []
    if not candidates:
        return "", None

    parts = (candidates[0].get("content") or {}).get("parts") or []
    text = "".join(part.get("text", "") for part in parts if isinstance(part, dict))

    audio = None
    for part in parts:
        inline = part.get("inlineData") if isinstance(part, dict) else None
        if inline and str(inline.get("mimeType", "")).startswith("audio/"):
            audio = inline.get("data")
            break

    return text, audio


async def iter_sse_payloads(response: httpx.Response) -> AsyncIterator[Dict[str, Any]]:
    """Yield the JSON payload of each ``data:`` line of a server-sent event stream."""
    async for line in response.aiter_lines():
        line = line.strip()
        if not line.startswith("data:"):
            continue
        data = line[len("data:"):].strip()
        if not data:
            continue
        if data == "[DONE]":
            break
        try:
            yield json.loads(data)
        except json.JSONDecodeError as e:
            raise ProviderError(f"gemini stream error: malformed event ({e})", provider="gemini") from e

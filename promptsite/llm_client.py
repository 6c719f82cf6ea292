from __future__ import annotations

import json
import logging
import os
from typing import Any, Dict, Optional

import requests

from promptsite.errors import EmptyResponse, UpstreamAuthError, UpstreamError, UpstreamRateLimited

log = logging.getLogger(__name__)

GEMINI_API_KEY = os.getenv("GEMINI_API_KEY", "").strip()
GEMINI_GENERATION_MODEL = os.getenv("GEMINI_GENERATION_MODEL", "gemini-2.5-flash").strip()
GEMINI_GENERATION_ENDPOINT = (
    f"https://generativelanguage.googleapis.com/v1beta/models/{GEMINI_GENERATION_MODEL}:generateContent"
)

try:
    TEMPERATURE = float(os.getenv("TEMPERATURE", "0.9"))
except ValueError:
    TEMPERATURE = 0.9
try:
    LLM_MAX_TOKENS = int(os.getenv("LLM_MAX_TOKENS", "32000"))
except ValueError:
    LLM_MAX_TOKENS = 32000
try:
    LLM_TIMEOUT_SECS = int(os.getenv("LLM_TIMEOUT_SECS", "75"))
except ValueError:
    LLM_TIMEOUT_SECS = 75

_AUTH_MARKERS = ("api key", "api_key", "permission_denied", "unauthenticated")
_RATE_MARKERS = ("rate limit", "quota", "resource_exhausted")


def status() -> Dict[str, Any]:
    return {
        "provider": "gemini" if GEMINI_API_KEY else None,
        "model": GEMINI_GENERATION_MODEL if GEMINI_API_KEY else None,
        "has_token": bool(GEMINI_API_KEY),
        "using": "gemini" if GEMINI_API_KEY else "none",
    }


def _extract_gemini_text(payload: Dict[str, Any]) -> Optional[str]:
    candidates = payload.get("candidates") or []
    for cand in candidates:
        if not isinstance(cand, dict):
            continue
        content = cand.get("content") or {}
        parts = content.get("parts") or []
        texts = [p.get("text") for p in parts if isinstance(p, dict) and isinstance(p.get("text"), str)]
        joined = "".join(texts)
        if joined.strip():
            return joined
    return None


def _error_message(resp: Any) -> str:
    try:
        body = resp.json()
    except ValueError:
        return (resp.text or "")[:400]
    err = body.get("error") if isinstance(body, dict) else None
    if isinstance(err, dict):
        return " ".join(str(err.get(k) or "") for k in ("status", "message")).strip()
    return json.dumps(body)[:400]


def _retry_after(resp: Any) -> Optional[float]:
    raw = (getattr(resp, "headers", None) or {}).get("Retry-After")
    if not raw:
        return None
    try:
        return float(raw)
    except ValueError:
        return None


def _raise_for_status(resp: Any) -> None:
    code = resp.status_code
    msg = _error_message(resp)
    lowered = msg.lower()
    log.warning("Gemini generation HTTP %s: %s", code, msg[:400])
    if code == 429 or any(m in lowered for m in _RATE_MARKERS):
        raise UpstreamRateLimited(status=code, retry_after=_retry_after(resp))
    if code in (401, 403) or any(m in lowered for m in _AUTH_MARKERS):
        raise UpstreamAuthError(status=code)
    raise UpstreamError(status=code)


def generate(prompt: str, system_instructions: str) -> str:
    """Send one generation request to Gemini and return the raw reply text.

    Raises UpstreamRateLimited / UpstreamAuthError / UpstreamError for HTTP
    failures and EmptyResponse when the model answered with no text.
    """
    if not GEMINI_API_KEY:
        raise UpstreamAuthError("GEMINI_API_KEY is missing. Check your .env file")

    body = {
        "systemInstruction": {"parts": [{"text": system_instructions}]},
        "contents": [{"role": "user", "parts": [{"text": prompt}]}],
        "generationConfig": {
            "temperature": TEMPERATURE,
            "maxOutputTokens": LLM_MAX_TOKENS,
            "responseMimeType": "application/json",
        },
    }
    try:
        resp = requests.post(
            GEMINI_GENERATION_ENDPOINT,
            params={"key": GEMINI_API_KEY},
            json=body,
            timeout=LLM_TIMEOUT_SECS,
        )
    except requests.RequestException as e:
        log.warning("Gemini generation request error: %r", e)
        raise UpstreamError() from e

    if resp.status_code != 200:
        _raise_for_status(resp)

    try:
        data = resp.json()
    except ValueError as e:
        log.warning("Gemini generation: non-JSON body")
        raise UpstreamError(status=resp.status_code) from e

    text = _extract_gemini_text(data) if isinstance(data, dict) else None
    if not text:
        log.warning("Gemini generation: empty response text")
        raise EmptyResponse()
    return text

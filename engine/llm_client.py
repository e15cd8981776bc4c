"""
engine/llm_client.py — OpenAI SDK access for the diagnostic collaborator.

Owner: WS3 (Diagnosis)

The only module that talks to the LLM provider.  Targets an
OpenAI-compatible endpoint (Azure AI Foundry deployments included) and
always asks for a single JSON object back.
"""

from __future__ import annotations

import json
import logging
import re
from functools import lru_cache
from typing import Any

from openai import OpenAI

from core.config import (
    AZURE_API_KEY,
    AZURE_DEPLOYMENT,
    AZURE_ENDPOINT,
    DIAGNOSIS_TIMEOUT_SECONDS,
)

logger = logging.getLogger(__name__)

_FENCE_RE = re.compile(r"^```(?:json)?\s*|\s*```$")


# ── Client ──────────────────────────────────────────────────────────────


def is_configured() -> bool:
    return bool(AZURE_ENDPOINT and AZURE_API_KEY)


@lru_cache(maxsize=1)
def get_client() -> OpenAI:
    """Cached client; raises when the endpoint or key is missing."""
    if not is_configured():
        raise RuntimeError(
            "AZURE_ENDPOINT and AZURE_API_KEY must be set to use the diagnostic collaborator "
            "(see .env.example)."
        )
    logger.info("Diagnostic LLM endpoint %s, deployment %s", AZURE_ENDPOINT, AZURE_DEPLOYMENT)
    # One retry only: the orchestrator's timeout bounds the whole call.
    return OpenAI(base_url=AZURE_ENDPOINT, api_key=AZURE_API_KEY, max_retries=1)


# ── Reply parsing ───────────────────────────────────────────────────────


def extract_json(text: str) -> dict[str, Any]:
    """
    Parse the JSON object in an LLM reply.

    Accepts a bare object, one wrapped in a markdown fence, or one
    surrounded by prose.  Anything that is not an object raises
    ``json.JSONDecodeError`` so the caller treats it as malformed.
    """
    cleaned = _FENCE_RE.sub("", text.strip()).strip()
    attempts = [cleaned]
    start, end = cleaned.find("{"), cleaned.rfind("}")
    if start != -1 and end > start:
        attempts.append(cleaned[start:end + 1])

    for candidate in attempts:
        try:
            value = json.loads(candidate)
        except json.JSONDecodeError:
            continue
        if isinstance(value, dict):
            return value

    logger.warning("Diagnostic reply is not a JSON object. First 300 chars: %s", text[:300])
    raise json.JSONDecodeError("No JSON object found in LLM response", text, 0)


# ── Chat completion ─────────────────────────────────────────────────────


def call_llm(
    system: str,
    user: str,
    *,
    max_tokens: int = 1500,
    temperature: float = 0.3,
    json_mode: bool = True,
    timeout: float = DIAGNOSIS_TIMEOUT_SECONDS,
) -> str:
    """
    Send one system + user exchange and return the assistant text.

    Parameters
    ----------
    system, user : str
        Prompt messages.
    max_tokens, temperature : optional
        Sampling controls.
    json_mode : bool
        Request ``response_format={"type": "json_object"}``.
    timeout : float
        Per-request HTTP timeout in seconds.
    """
    extra: dict[str, Any] = {"response_format": {"type": "json_object"}} if json_mode else {}
    response = get_client().chat.completions.create(
        model=AZURE_DEPLOYMENT,
        messages=[
            {"role": "system", "content": system},
            {"role": "user", "content": user},
        ],
        max_tokens=max_tokens,
        temperature=temperature,
        timeout=timeout,
        **extra,
    )
    choice = response.choices[0]
    usage = getattr(response, "usage", None)
    if usage is not None:
        logger.debug("LLM usage: prompt=%s completion=%s", usage.prompt_tokens, usage.completion_tokens)
    if not (choice.message.content or "").strip():
        logger.warning("LLM returned an empty reply (finish_reason=%s)", choice.finish_reason)
    return choice.message.content or ""

"""
engine/collaborator.py — LLM-backed diagnostic collaborator.

``DiagnosisOrchestrator`` accepts any callable ``(DiagnosticRequest) ->
dict | DiagnosticResult`` (sync or async).  This module provides the
production one: it renders the request into a prompt, runs the blocking
OpenAI SDK call in a worker thread and returns the parsed JSON object.
Shape validation and fallback belong to the orchestrator, not here.

Owner: WS3 (Diagnosis)
"""

from __future__ import annotations

import asyncio
import json
import logging
from pathlib import Path
from typing import Any

from core.models import DiagnosticRequest
from engine.llm_client import call_llm, extract_json

logger = logging.getLogger(__name__)

# ── Prompt cache ────────────────────────────────────────────────────────
_PROMPT_PATH = Path(__file__).resolve().parent / "prompts" / "differential_diagnosis.txt"
_PROMPT_CACHE: str | None = None


def _load_prompt() -> str:
    global _PROMPT_CACHE
    if _PROMPT_CACHE is None:
        _PROMPT_CACHE = _PROMPT_PATH.read_text(encoding="utf-8")
    return _PROMPT_CACHE


def render_user_prompt(request: DiagnosticRequest) -> str:
    """Serialise the request into the user message."""
    conditions = "\n".join(
        f"{c.id}: {c.name} ({c.body_region})" for c in request.available_conditions
    )
    return (
        "Clinical findings (JSON):\n"
        f"{json.dumps(request.assessment_data, indent=2, default=str)}\n\n"
        "Available conditions (select from these only):\n"
        f"{conditions}\n\n"
        f"max_conditions: {request.max_conditions}\n"
        f"confidence_threshold: {request.confidence_threshold}\n"
    )


class OpenAIDiagnosticCollaborator:
    """Async callable that asks the configured LLM for a differential."""

    def __init__(self, *, max_tokens: int = 1500, temperature: float = 0.3) -> None:
        self.max_tokens = max_tokens
        self.temperature = temperature

    async def __call__(self, request: DiagnosticRequest) -> Any:
        user = render_user_prompt(request)
        raw = await asyncio.to_thread(
            call_llm,
            _load_prompt(),
            user,
            max_tokens=self.max_tokens,
            temperature=self.temperature,
            json_mode=True,
        )
        logger.debug("Diagnostic collaborator returned %d chars", len(raw))
        return extract_json(raw)

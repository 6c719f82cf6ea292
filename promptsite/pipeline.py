from __future__ import annotations

import logging
import time
from typing import Callable, Optional

from promptsite import llm_client
from promptsite.errors import AdmissionDenied, InvalidFormat
from promptsite.llm_parsing import normalize
from promptsite.llm_prompts import SYSTEM_PROMPT, build_user_prompt
from promptsite.models import CanonicalProject, Generation
from promptsite.ratelimit import AdmissionController, AdmissionDecision, get_default_controller
from promptsite.render import compose_document, select_html
from promptsite.retry import call_with_retry
from promptsite.storage import MemoryStorage, storage as default_storage

log = logging.getLogger(__name__)

Upstream = Callable[[str, str], str]


def _denied(decision: AdmissionDecision) -> AdmissionDenied:
    if decision.wait_seconds is not None:
        message = f"Rate limit exceeded. Please wait {decision.wait_seconds} seconds and try again."
    else:
        message = "Daily request limit reached. Please try again tomorrow."
    return AdmissionDenied(message, wait_seconds=decision.wait_seconds, reason=decision.reason)


def build_generation_fields(project: CanonicalProject) -> dict:
    """Backward-compatible html/css/js columns derived from the canonical files."""
    page = select_html(project.files)
    if page is None:
        raise InvalidFormat()
    css = project.content_of_kind("css")
    js = project.content_of_kind("js")
    return {
        "generated_html": compose_document(page.content, css, js),
        "generated_css": css,
        "generated_js": js,
        "files": project.serialize(),
    }


def run_generation(
    prompt: str,
    *,
    controller: Optional[AdmissionController] = None,
    store: Optional[MemoryStorage] = None,
    upstream: Optional[Upstream] = None,
    now: Optional[float] = None,
    sleep: Callable[[float], None] = time.sleep,
) -> Generation:
    """admission -> upstream (with retry) -> normalize -> store, strictly in that order."""
    controller = controller or get_default_controller()
    store = store or default_storage
    call = upstream or llm_client.generate

    decision = controller.acquire(now)
    if not decision.allowed:
        raise _denied(decision)

    user_prompt = build_user_prompt(prompt)
    started = time.time()
    raw = call_with_retry(lambda: call(user_prompt, SYSTEM_PROMPT), sleep=sleep)
    log.info("pipeline: upstream replied chars=%d dur_ms=%d", len(raw), int((time.time() - started) * 1000))

    project = normalize(raw)
    fields = build_generation_fields(project)
    generation = store.create_generation(prompt=prompt, **fields)
    log.info("pipeline: stored generation id=%s files=%d", generation.id, len(project.files))
    return generation

"""Generate and refine character documents with an LLM."""

from __future__ import annotations

import json
import logging
import re
from collections.abc import Mapping
from typing import Any

import litellm

from charforge.errors import CharforgeError
from charforge.extractor import ExtractionError, extract
from charforge.models import CharacterDocument, GenerationMode, GenerationResult
from charforge.normalizer import coerce_document, normalize
from charforge.schemas import ValidationError
from charforge.template import build_template, extract_name, resolve_name
from llmkit import LLMConfig

logger = logging.getLogger(__name__)


class SynthesisError(CharforgeError):
    """Raised when the model call itself fails or returns nothing usable."""


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

_CODE_FENCE_RE = re.compile(
    r"^\s*```(?:json)?\s*\n(.*?)\n\s*```\s*$",
    re.DOTALL,
)


def _strip_code_fences(content: str) -> str:
    """Remove wrapping ```json fences if the LLM added them."""
    match = _CODE_FENCE_RE.match(content.strip())
    if match:
        return match.group(1).strip()
    return content.strip()


def _dump(data: Mapping[str, Any]) -> str:
    return json.dumps(data, indent=2, ensure_ascii=False)


# ---------------------------------------------------------------------------
# System prompts
# ---------------------------------------------------------------------------

_GENERATE_SYSTEM = """\
You are a character generation assistant that MUST ONLY output valid JSON. \
NEVER output apologies, explanations, or any other text.

CRITICAL RULES:
1. ONLY output a JSON object following the exact template structure provided
2. Start with { and end with }
3. NO text before or after the JSON
4. NO apologies or explanations
5. NO content warnings or disclaimers
6. Every sentence must end with a period
7. Adjectives must be single words
8. Knowledge entries MUST be an array of strings, each ending with a period
9. Each knowledge entry MUST be a complete sentence
10. Use the suggested name if provided, or generate an appropriate one

You will receive a character description and template. Generate a complete character profile.
"""

_REFINE_SYSTEM = """\
You are a character refinement assistant that MUST ONLY output valid JSON. \
NEVER output apologies, explanations, or any other text.

CRITICAL RULES:
1. ONLY output a JSON object following the exact template structure provided
2. Start with { and end with }
3. NO text before or after the JSON
4. NO apologies or explanations
5. NO content warnings or disclaimers
6. Maintain the character's core traits while incorporating refinements
7. Every sentence must end with a period
8. Adjectives must be single words
9. Knowledge entries MUST be an array of strings, each ending with a period
10. Each knowledge entry MUST be a complete sentence
11. Use the new name if provided in the refinement instructions

You will receive the current character data and refinement instructions. \
Enhance and modify the character while maintaining consistency.
"""


# ---------------------------------------------------------------------------
# LLM call helper
# ---------------------------------------------------------------------------


async def _llm_call(system: str, user: str, llm: LLMConfig) -> str:
    """Send a chat completion request and return the stripped content."""
    kwargs = llm.to_litellm_kwargs()
    kwargs.update({
        "messages": [
            {"role": "system", "content": system},
            {"role": "user", "content": user},
        ],
        "temperature": 0.7,
        "max_tokens": 4000,
        "top_p": 0.95,
        "presence_penalty": 0.0,
        "frequency_penalty": 0.0,
        "timeout": 120,
        "num_retries": 2,
    })
    response = await litellm.acompletion(**kwargs)
    if not response.choices:
        raise SynthesisError("LLM returned empty choices list")
    content = response.choices[0].message.content
    if content is None:
        raise SynthesisError("LLM returned None content (possibly content-filtered)")
    return _strip_code_fences(content)


def _parse(
    content: str,
    *,
    baseline: CharacterDocument | None = None,
    mode: GenerationMode,
) -> CharacterDocument:
    """Extract and normalize *content*, logging it when that fails."""
    try:
        return normalize(extract(content), baseline, mode)
    except (ExtractionError, ValidationError):
        logger.error("Could not build a character from model output:\n%s", content)
        raise


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


async def generate_character(prompt: str, *, llm: LLMConfig | None = None) -> GenerationResult:
    """Generate a new character from a free-text description."""
    if llm is None:
        llm = LLMConfig()

    template = build_template(GenerationMode.GENERATE, extract_name(prompt) or "")
    user_prompt = (
        "Template to follow:\n"
        f"{_dump(template)}\n\n"
        f"Character description: {prompt}\n\n"
        "Generate a complete character profile as a single JSON object following "
        "the exact template structure. Include relevant knowledge entries based "
        "on the description."
    )
    content = await _llm_call(_GENERATE_SYSTEM, user_prompt, llm)
    logger.debug("Raw AI response: %s", content)

    character = _parse(content, mode=GenerationMode.GENERATE)
    return GenerationResult(character=character, raw_prompt=prompt, raw_response=content)


async def refine_character(
    prompt: str,
    current: CharacterDocument | Mapping[str, Any],
    *,
    llm: LLMConfig | None = None,
) -> GenerationResult:
    """Refine *current* according to *prompt*.

    Existing knowledge is never changed by a refinement; the name changes
    only when *prompt* states a new one.
    """
    if llm is None:
        llm = LLMConfig()

    baseline = current if isinstance(current, CharacterDocument) else coerce_document(current)
    template = build_template(
        GenerationMode.REFINE, resolve_name(prompt, baseline), baseline
    )
    knowledge_rule = (
        "DO NOT modify the existing knowledge array."
        if baseline.knowledge
        else "Create new knowledge entries if appropriate."
    )
    user_prompt = (
        "Current character data:\n"
        f"{_dump(baseline.to_json())}\n\n"
        "Template to follow:\n"
        f"{_dump(template)}\n\n"
        f"Refinement instructions: {prompt}\n\n"
        "Output the refined character data as a single JSON object following "
        f"the exact template structure. {knowledge_rule}"
    )
    content = await _llm_call(_REFINE_SYSTEM, user_prompt, llm)
    logger.debug("Raw AI response: %s", content)

    character = _parse(content, baseline=baseline, mode=GenerationMode.REFINE)
    return GenerationResult(character=character, raw_prompt=prompt, raw_response=content)

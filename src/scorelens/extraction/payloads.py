"""Payload parsing, option-returning field accessors, and prompt scraping.

Model payloads are JSON objects (sometimes wrapped in prose or a
markdown code block) or bare scalars. Every accessor here returns None
or an empty value on missing or malformed data instead of raising, so
a malformed payload from one model only removes that model's
contribution to the field being read.

Prompt scraping recovers labeled sections ("Answer:", "Reference:",
"Context:", ...) from the original prompt text. It is a best-effort
fallback used only when a run carries no sample text.
"""

from __future__ import annotations

import json
import logging
import re
from collections.abc import Sequence
from typing import Any

from scorelens.explanation.interpretation import round_half_up

logger = logging.getLogger(__name__)


def parse_payload(text: str | None) -> dict | None:
    """Extract a JSON object from a model payload.

    Tries three strategies in order:
    1. Direct json.loads on the full text
    2. Brace extraction (first '{' to last '}')
    3. Markdown code block (```json...```)

    Args:
        text: Raw payload text.

    Returns:
        Parsed dict or None if all strategies fail.
    """
    if not text:
        return None

    # Strategy 1: direct parse
    try:
        result = json.loads(text)
        if isinstance(result, dict):
            return result
    except (json.JSONDecodeError, ValueError):
        pass

    # Strategy 2: brace extraction
    first_brace = text.find("{")
    last_brace = text.rfind("}")
    if first_brace != -1 and last_brace > first_brace:
        try:
            result = json.loads(text[first_brace : last_brace + 1])
            if isinstance(result, dict):
                return result
        except (json.JSONDecodeError, ValueError):
            pass

    # Strategy 3: markdown code block
    match = re.search(r"```json\s*\n(.*?)\n\s*```", text, re.DOTALL)
    if match:
        try:
            result = json.loads(match.group(1))
            if isinstance(result, dict):
                return result
        except (json.JSONDecodeError, ValueError):
            pass

    logger.debug("Could not parse JSON object from payload: %.80r", text)
    return None


def parse_scalar(text: str | None) -> float | None:
    """Parse a bare numeric payload such as '0.8731'.

    Falls back to a 'score' or 'similarity' field when the payload is a
    JSON object.
    """
    if text is None:
        return None
    try:
        return float(text.strip())
    except ValueError:
        pass
    data = parse_payload(text)
    if data is None:
        return None
    return get_float(data, "score", "similarity")


def get_float(data: dict, *keys: str) -> float | None:
    """First key whose value is numeric (or a numeric string), as float."""
    for key in keys:
        value = data.get(key)
        if isinstance(value, bool):
            continue
        if isinstance(value, (int, float)):
            return float(value)
        if isinstance(value, str):
            try:
                return float(value)
            except ValueError:
                continue
    return None


def get_int(data: dict, *keys: str) -> int | None:
    """First numeric value, rounded half-up (2.5 -> 3)."""
    value = get_float(data, *keys)
    return None if value is None else round_half_up(value)


def get_bool(data: dict, *keys: str) -> bool | None:
    """First key holding a boolean-like value (true/false, 1/0, yes/no)."""
    for key in keys:
        value = data.get(key)
        if isinstance(value, bool):
            return value
        if isinstance(value, (int, float)):
            return value == 1
        if isinstance(value, str):
            lowered = value.strip().lower()
            if lowered in ("true", "yes", "1", "pass"):
                return True
            if lowered in ("false", "no", "0", "fail"):
                return False
    return None


def get_text(data: dict, *keys: str) -> str | None:
    for key in keys:
        value = data.get(key)
        if isinstance(value, str):
            return value
    return None


def get_dicts(data: dict, key: str) -> list[dict]:
    """List-of-objects field, skipping non-object entries."""
    value = data.get(key)
    if not isinstance(value, list):
        return []
    return [item for item in value if isinstance(item, dict)]


def get_strings(data: dict, key: str, item_key: str | None = None) -> list[str]:
    """List field of strings.

    Entries may be plain strings or objects carrying the text under
    item_key (e.g. ``{"question": "..."}``).
    """
    value = data.get(key)
    if not isinstance(value, list):
        return []
    strings: list[str] = []
    for item in value:
        if isinstance(item, str):
            strings.append(item)
        elif item_key is not None and isinstance(item, dict) and isinstance(item.get(item_key), str):
            strings.append(item[item_key])
    return strings


# -- Prompt scraping --

RESPONSE_LABELS = ("AI Response:", "Answer:", "Response:")
RESPONSE_TERMINATORS = (
    "Reference:",
    "Evaluation Rubrics:",
    "Instructions:",
    "CRITICAL INSTRUCTIONS:",
    "IMPORTANT:",
    "Rubrics:",
    "Context:",
    "Criteria:",
    "Example:",
    "Output:",
    "Now generate",
    "Your task:",
    "You must:",
    "Please ",
    "\n\n1.",
    "\n1.",
)
QUESTION_LABELS = ("User Question:", "Question:")
REFERENCE_LABELS = ("Reference Answer:", "Reference:", "Ground Truth:")
USER_INPUT_LABELS = ("Question:", "User Input:")
CONTEXT_LABELS = ("Context:",)
CONTEXT_TERMINATORS = ("Reference Answer:", "Reference:", "Instructions:")
TEXT_LABELS = ("Text:",)
TEXT_TERMINATORS = ("Instructions:", "Examples:", "Respond with")
CHUNK_LABELS = ("Retrieved Context Chunk:",)
CHUNK_TERMINATORS = ("Instructions:", "Respond with")


def _find_label(prompt: str, label: str) -> int:
    """Index just past a label that starts a line, or -1."""
    match = re.search(r"(?:^|\n)[ \t]*" + re.escape(label), prompt)
    return match.end() if match else -1


def extract_section(
    prompt: str | None,
    labels: Sequence[str],
    terminators: Sequence[str] = (),
) -> str | None:
    """Text following the first matching label, up to the earliest terminator.

    Labels are tried in order and must start a line. The span ends at
    the earliest occurrence of any terminator after the label, or at the
    end of the prompt.

    Returns:
        The stripped section text, or None if no label matched or the
        section is empty.
    """
    if not prompt:
        return None
    for label in labels:
        start = _find_label(prompt, label)
        if start == -1:
            continue
        end = len(prompt)
        for terminator in terminators:
            pos = prompt.find(terminator, start)
            if pos != -1 and pos < end:
                end = pos
        section = prompt[start:end].strip()
        if section:
            return section
    return None


def extract_line(prompt: str | None, labels: Sequence[str]) -> str | None:
    """Text following the first matching label, up to the end of that line."""
    if not prompt:
        return None
    for label in labels:
        start = _find_label(prompt, label)
        if start == -1:
            continue
        end = prompt.find("\n", start)
        value = prompt[start : end if end != -1 else len(prompt)].strip()
        if value:
            return value
    return None


def response_from_prompt(prompt: str | None) -> str | None:
    return extract_section(prompt, RESPONSE_LABELS, RESPONSE_TERMINATORS)


def question_from_prompt(prompt: str | None) -> str | None:
    return extract_line(prompt, QUESTION_LABELS)


def reference_from_prompt(prompt: str | None) -> str | None:
    return extract_line(prompt, REFERENCE_LABELS)


def user_input_from_prompt(prompt: str | None) -> str | None:
    return extract_line(prompt, USER_INPUT_LABELS)


def context_from_prompt(prompt: str | None) -> str | None:
    return extract_section(prompt, CONTEXT_LABELS, CONTEXT_TERMINATORS)


def text_from_prompt(prompt: str | None) -> str | None:
    return extract_section(prompt, TEXT_LABELS, TEXT_TERMINATORS)


def chunk_from_prompt(prompt: str | None) -> str | None:
    return extract_section(prompt, CHUNK_LABELS, CHUNK_TERMINATORS)


def first_value(*values: Any) -> Any:
    """First value that is not None or empty."""
    for value in values:
        if value:
            return value
    return None

"""Response decoding for research LLM output."""

from __future__ import annotations

import json
import logging
import re
from typing import Any

logger = logging.getLogger(__name__)

_FENCE_RE = re.compile(r"```(?:json|JSON)?\s*\n?(.*?)```", re.DOTALL)


class ResponseFormatError(ValueError):
    """Raised when LLM output does not contain a decodable JSON object."""


def strip_code_fences(content: str) -> str:
    """Return the body of the first Markdown code fence, or the stripped text."""
    match = _FENCE_RE.search(content)
    if match:
        return match.group(1).strip()
    return content.strip()


def extract_json_object(content: str) -> dict[str, Any]:
    """Decode the JSON object embedded in an LLM reply.

    Tries, in order: the fenced block, the whole reply, then the outermost
    ``{...}`` span (models often wrap JSON in a sentence of prose).

    Raises:
        ResponseFormatError: If no JSON object can be decoded.
    """
    if not content or not content.strip():
        raise ResponseFormatError("Empty LLM response")

    candidates = [strip_code_fences(content)]
    start = content.find("{")
    end = content.rfind("}")
    if start != -1 and end > start:
        candidates.append(content[start:end + 1])

    for candidate in candidates:
        try:
            decoded = json.loads(candidate)
        except json.JSONDecodeError:
            continue
        if isinstance(decoded, dict):
            return decoded

    logger.debug("No JSON object found in LLM response (%d chars)", len(content))
    raise ResponseFormatError("LLM response does not contain a JSON object")

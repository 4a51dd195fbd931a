"""
Model response parsing.
"""

import json
import logging
import re
from typing import Any

logger = logging.getLogger(__name__)

_JSON_BLOCK = re.compile(r"(\{[\s\S]*\}|\[[\s\S]*\])")


def parse_json_response(text: str | None) -> Any | None:
    """
    Parse JSON out of a model response.

    Handles ```json fenced blocks and prose around the payload. Returns None
    when nothing parseable is found.
    """
    if not text:
        return None

    cleaned = text.strip()
    if cleaned.startswith("```"):
        lines = cleaned.split("\n")[1:]
        if lines and lines[-1].strip() == "```":
            lines = lines[:-1]
        cleaned = "\n".join(lines)

    match = _JSON_BLOCK.search(cleaned)
    candidate = match.group(1) if match else cleaned
    try:
        return json.loads(candidate)
    except json.JSONDecodeError as e:
        logger.warning(f"Failed to parse JSON response: {e}; raw text: {text[:200]!r}")
        return None

"""Response sanitizer — best-effort repair of generator output into JSON.

The generator is asked for strict JSON but sometimes wraps it in markdown
fences, leaves trailing commas, or is cut off by the output-token limit.
Repair is approximate: missing closers are appended as all ``]`` then all
``}``, which is right for the usual truncation (inside an array inside the
top-level object) and wrong for some deeper nestings. Callers must treat a
parse failure after repair as a failed attempt.
"""

import json
import logging
import re
from typing import Any

logger = logging.getLogger(__name__)

_FENCE_RE = re.compile(r"```(?:json|JSON)?[ \t]*\n?")
_TRAILING_COMMA_RE = re.compile(r",\s*([}\]])")


class ResponseError(ValueError):
    """Generator output could not be parsed or is missing required structure."""


def strip_fences(text: str) -> str:
    """Remove markdown code-fence markers and surrounding whitespace."""
    cleaned = text.strip()
    if "```" in cleaned:
        cleaned = _FENCE_RE.sub("", cleaned).strip()
    return cleaned


def repair_json(text: str) -> str:
    """Drop trailing commas and close unbalanced delimiters.

    Does not guarantee the result parses.
    """
    cleaned = _TRAILING_COMMA_RE.sub(r"\1", text.strip())
    if not cleaned.endswith(("}", "]")):
        missing_brackets = cleaned.count("[") - cleaned.count("]")
        missing_braces = cleaned.count("{") - cleaned.count("}")
        cleaned += "]" * max(missing_brackets, 0)
        cleaned += "}" * max(missing_braces, 0)
        # a cut right after a comma leaves one dangling before the new closers
        cleaned = _TRAILING_COMMA_RE.sub(r"\1", cleaned)
    return cleaned


def sanitize(text: str) -> str:
    """Return text that is valid JSON when possible, repaired when needed."""
    cleaned = strip_fences(text)
    try:
        json.loads(cleaned)
        return cleaned
    except json.JSONDecodeError:
        pass
    repaired = repair_json(cleaned)
    if repaired != cleaned:
        logger.warning("Repaired malformed generator output (len=%d)", len(cleaned))
    return repaired


def parse_response(text: str) -> Any:
    """Sanitize and parse generator output. Raises ResponseError on failure."""
    cleaned = sanitize(text or "")
    try:
        return json.loads(cleaned)
    except json.JSONDecodeError as e:
        logger.debug("Unparseable generator output: %r", cleaned[:500])
        raise ResponseError(f"Generator returned invalid JSON: {e}") from e

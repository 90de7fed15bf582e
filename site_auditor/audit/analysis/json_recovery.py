"""Recovery of JSON values from imperfect model output."""

import json
import logging
import re
from typing import Any

from json_repair import repair_json

from ..errors import ResponseParseError

logger = logging.getLogger(__name__)

_FENCE_OPEN = re.compile(r'^```(?:json)?\s*', re.IGNORECASE)
_FENCE_CLOSE = re.compile(r'\s*```$')


def strip_code_fence(text: str) -> str:
    """Remove a leading/trailing fenced-code wrapper, if present."""
    text = text.strip()
    if text.startswith('```'):
        text = _FENCE_OPEN.sub('', text, count=1)
        text = _FENCE_CLOSE.sub('', text, count=1)
    return text


def _repair(text: str) -> Any:
    repaired = repair_json(text, skip_json_loads=True)
    if not repaired or not repaired.strip():
        raise ValueError("repair produced no JSON")
    value = json.loads(repaired)
    # An empty string is what the repair pass yields for pure prose.
    if value == "":
        raise ValueError("repair produced no JSON")
    return value

def _leading_object(text: str, start: int) -> Any:
    value, _ = json.JSONDecoder().raw_decode(text, start)
    return value


def recover_json(raw_text: str) -> Any:
    """Parse model output as JSON, repairing it when needed.

    Stages, in order: strip a code fence, parse directly, structural repair
    (only when the text itself opens a JSON value), then the substring between
    the first ``{`` and the last ``}``: parsed, then the leading complete
    object, then repaired.

    Raises:
        ResponseParseError: If every stage fails; carries ``raw_text``
    """
    if raw_text is None:
        raise ResponseParseError("", "empty response")

    text = strip_code_fence(raw_text)
    try:
        return json.loads(text)
    except ValueError as initial_error:
        first_error = initial_error

    # Brackets in surrounding prose would otherwise be repaired into a list.
    if text.startswith(('{', '[')):
        try:
            value = _repair(text)
            logger.debug("Recovered model output with structural repair")
            return value
        except ValueError:
            pass

    first_open = text.find('{')
    last_close = text.rfind('}')
    if first_open != -1 and last_close > first_open:
        extracted = text[first_open:last_close + 1]
        try:
            return json.loads(extracted)
        except ValueError:
            pass
        try:
            return _leading_object(text, first_open)
        except ValueError:
            pass
        try:
            value = _repair(extracted)
            logger.debug("Recovered model output from extracted object")
            return value
        except ValueError:
            pass

    raise ResponseParseError(raw_text, str(first_error))

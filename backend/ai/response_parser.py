"""Parse raw LLM output into a {code, explanation} pair."""

import json
import re
from dataclasses import dataclass

from ai.errors import ResponseParseError

_JSON_BLOCK = re.compile(r"```(?:json)?\s*\n?([\s\S]*?)```", re.IGNORECASE)

_NOT_JSON = "Failed to parse AI response as JSON. Please try again."
_MISSING_FIELDS = "AI response missing required fields (code, explanation). Please try again."
_NOT_STRINGS = "AI response fields must be strings. Please try again."


@dataclass(frozen=True)
class ParsedResponse:
    code: str
    explanation: str


def _load_json(raw: str):
    try:
        return json.loads(raw)
    except json.JSONDecodeError:
        pass

    # Models often wrap the object in a markdown fence despite instructions
    match = _JSON_BLOCK.search(raw)
    if not match:
        raise ResponseParseError(_NOT_JSON)
    try:
        return json.loads(match.group(1).strip())
    except json.JSONDecodeError:
        raise ResponseParseError(_NOT_JSON) from None


def parse_response(raw: str) -> ParsedResponse:
    """Raises ResponseParseError unless ``raw`` holds both string fields."""
    parsed = _load_json(raw)

    if not isinstance(parsed, dict) or "code" not in parsed or "explanation" not in parsed:
        raise ResponseParseError(_MISSING_FIELDS)

    code, explanation = parsed["code"], parsed["explanation"]
    if not isinstance(code, str) or not isinstance(explanation, str):
        raise ResponseParseError(_NOT_STRINGS)

    return ParsedResponse(code=code, explanation=explanation)

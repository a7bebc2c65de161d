"""Prompt sanitization applied before prompt engineering."""

import re

MAX_PROMPT_LENGTH = 4000

# C0 controls and DEL, except tab and newline
_CONTROL_CHARS = re.compile(r"[\x00-\x08\x0b-\x1f\x7f]")


def sanitize_prompt(prompt: str) -> str:
    """Trim, drop control characters and cap the length of a user prompt."""
    cleaned = _CONTROL_CHARS.sub("", prompt.replace("\r\n", "\n")).strip()
    if len(cleaned) > MAX_PROMPT_LENGTH:
        cleaned = cleaned[:MAX_PROMPT_LENGTH].rstrip()
    return cleaned

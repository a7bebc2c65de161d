"""FragCoder AI package: prompt pipeline public API."""

from ai.errors import AIError, LLMError, ResponseParseError, ValidationError
from ai.llm_client import ALLOWED_MODELS, resolve_model
from ai.service import generate, process_prompt

"""Exception taxonomy for the prompt-generation pipeline.

Every error carries a message that is safe to show to the user; the HTTP
layer maps ``status_code`` onto the response.
"""


class AIError(Exception):
    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(AIError):
    """The request itself is unusable (e.g. empty prompt)."""
    status_code = 400


class LLMError(AIError):
    """The model provider could not be reached or rejected the call."""
    status_code = 502


class ResponseParseError(AIError):
    """The model answered, but not with a usable {code, explanation} object."""
    status_code = 502

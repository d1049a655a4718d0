from typing import Optional


class QuestionGenerationError(Exception):
    """Base class for failures raised by the question generation pipeline."""


class LLMBackendError(QuestionGenerationError):
    """The language-model backend reported a failed completion."""


class ResponseParseError(QuestionGenerationError):
    """Model output could not be turned into a question payload."""


class MediaGenerationError(QuestionGenerationError):
    """Audio or image synthesis failed for a media-bearing question."""


class GenerationExhaustedError(QuestionGenerationError):
    def __init__(self, attempts: int, last_error: Optional[Exception]):
        self.attempts = attempts
        self.last_error = last_error
        reason = str(last_error) if last_error else "unknown error"
        super().__init__(f"Failed to generate questions after {attempts} attempts: {reason}")


class RegenerationError(QuestionGenerationError):
    """A single regeneration attempt did not produce a valid question."""

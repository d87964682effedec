"""Exception hierarchy for the task finder."""

from typing import List, Optional


class TaskFinderError(Exception):
    """Base exception for taskfinder."""
    pass


class ConfigurationError(TaskFinderError):
    """Invalid or incomplete configuration."""
    pass


class PromptTemplateError(ConfigurationError):
    """A prompt template is missing, invalid, or has unresolved placeholders."""
    pass


class LLMUnavailableError(TaskFinderError):
    """No language model client is configured."""
    pass


class MalformedResponseError(TaskFinderError):
    """A language model reply did not match the expected shape."""

    def __init__(self, message: str, raw: Optional[str] = None):
        super().__init__(message)
        self.raw = raw


class RetryExhaustedError(TaskFinderError):
    """Every retry attempt failed with a retryable error."""

    def __init__(self, message: str, attempts: int, last_error: BaseException):
        super().__init__(message)
        self.attempts = attempts
        self.last_error = last_error


class DocumentStoreError(TaskFinderError):
    """The document store could not serve a request."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class SearchFailedError(TaskFinderError):
    """
    A search could not produce any result.

    Only raised when candidates cannot be fetched, or when the fallback
    ranking itself fails. ``trace`` holds the processing steps recorded
    up to the failure.
    """

    def __init__(self, message: str, trace: Optional[List[str]] = None):
        super().__init__(message)
        self.trace = list(trace or [])

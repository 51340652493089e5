"""
Exception hierarchy for the interview system.
"""
from typing import Optional


class InterviewError(Exception):
    """Base class for interviewer errors."""


class InvalidTransitionError(InterviewError):
    """An operation was requested in a state that does not allow it."""

    def __init__(self, operation: str, state: str):
        super().__init__(f"Cannot {operation} while session is {state}")
        self.operation = operation
        self.state = state


class ServiceCallError(InterviewError):
    """A remote service call failed and may be retried."""


class LLMRequestError(ServiceCallError):
    """The LLM endpoint could not be reached or answered with an error status."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class MalformedResponseError(InterviewError, ValueError):
    """A service answered, but the answer does not fit the expected schema.

    ``is_json`` is True when the reply parsed as JSON and only its shape was wrong.
    """

    def __init__(self, message: str, raw_text: str = "", is_json: bool = False):
        super().__init__(message)
        self.raw_text = raw_text
        self.is_json = is_json


class DeviceUnsupportedError(InterviewError):
    """Speech synthesis or recognition is not available in this environment."""

    def __init__(self, device: str, reason: str):
        super().__init__(f"{device} is not supported: {reason}")
        self.device = device
        self.reason = reason

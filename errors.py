"""
Exception hierarchy for TestFlight Manager.

    TestFlightManagerError (base)
    ├── InvalidInput          : bad flags, ownership mismatch, unwritable output
    │   └── InputExhausted    : end of input while a menu was waiting
    ├── CredentialsNotFound   : no saved login
    ├── PrivateKeyNotFound    : referenced .p8 file is missing
    ├── VerificationFailed    : the API rejected the credentials
    └── ApiFailure            : a transport error, rewrapped by a command

ApiError is raised by the API client itself and is never shown to the user
directly: each command catches it once and rewraps it as ApiFailure.
Every TestFlightManagerError is terminal for the invocation; nothing retries.
"""

from typing import List, Optional


class TestFlightManagerError(Exception):
    """Base exception for all user-facing errors."""
    __test__ = False  # keep pytest from collecting this as a test class


class InvalidInput(TestFlightManagerError):
    """Missing or invalid input, or a safety check that refused to proceed."""
    pass


class InputExhausted(InvalidInput):
    """Standard input closed while a prompt still needed an answer."""

    def __init__(self, message: str = "Input ended before a selection was made."):
        super().__init__(message)


class CredentialsNotFound(TestFlightManagerError):
    pass


class PrivateKeyNotFound(TestFlightManagerError):
    pass


class VerificationFailed(TestFlightManagerError):
    """Raised by login when the verification request is rejected."""

    def __init__(self, message: str):
        super().__init__(f"Verification failed: {message}")


class ApiError(Exception):
    """
    Non-success response (or unreadable body) from App Store Connect.

    Args:
        status: HTTP status code, or None when no response was received
        details: vendor-provided "CODE: detail" strings
    """

    def __init__(self, status: Optional[int], details: Optional[List[str]] = None):
        self.status = status
        self.details = list(details or [])
        super().__init__(self.describe())

    def describe(self) -> str:
        details = ", ".join(self.details) if self.details else "unknown error"
        if self.status is None:
            return f"Request failed. Details: {details}."
        return f"Request failed with status code {self.status}. Details: {details}."


class ApiFailure(TestFlightManagerError):
    """Transport or API error surfaced to the user."""

    def __init__(self, message: str, status: Optional[int] = None, details: Optional[List[str]] = None):
        self.status = status
        self.details = list(details or [])
        super().__init__(message)

    @classmethod
    def wrap(cls, error: Exception) -> "ApiFailure":
        if isinstance(error, ApiError):
            return cls(f"API request failed: {error.describe()}", error.status, error.details)
        return cls(f"API request failed: {str(error) or type(error).__name__}")

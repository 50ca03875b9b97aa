"""Error types raised by the estimation services."""

from typing import Optional


class EstimationError(Exception):
    """Base class for all known estimation service failures."""

    message = "Estimation request failed"

    def __init__(self, message: Optional[str] = None):
        super().__init__(message or self.message)
        self.message = message or self.message


class AuthError(EstimationError):
    """Jira rejected the supplied credentials."""

    message = "Credentials is invalid"


class FieldNotFound(EstimationError):
    message = "Field not found"


class InvalidFieldType(EstimationError):
    message = "Field must be of type num"


class QueryInvalid(EstimationError):
    """Jira could not parse or validate a JQL query.

    Carries every error message Jira reported, in Jira's order. The first
    one is used as the summary message.
    """

    def __init__(self, errors: list):
        self.errors = list(errors) or ["JQL query is invalid"]
        super().__init__(self.errors[0])


class RemoteError(EstimationError):
    """Transport failure or unexpected response from Jira."""

    message = "Jira request failed"

    def __init__(self, message: Optional[str] = None, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class InputError(EstimationError):
    """Malformed request parameters."""

    message = "Invalid request parameters"


class SamplingCancelled(EstimationError):
    message = "Estimation sampling was cancelled"

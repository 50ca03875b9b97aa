"""Operations exposed to the HTTP layer.

Each operation authenticates with the supplied credentials, runs one piece
of validation or sampling, and returns an Outcome. Failures never escape as
exceptions: callers dispatch on Outcome.kind.
"""

import logging
import threading
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Callable, Optional

from services import validators
from services.errors import (
    AuthError,
    EstimationError,
    FieldNotFound,
    InputError,
    InvalidFieldType,
    QueryInvalid,
    RemoteError,
    SamplingCancelled,
)
from services.estimation import EstimationSampler, validate_period_count
from services.jira_client import JiraCloudClient
from services.models import Credentials, SamplingFrequency
from services.tracker import IssueTrackerClient

logger = logging.getLogger(__name__)

ClientFactory = Callable[[Credentials], IssueTrackerClient]

INTERNAL_ERROR_MESSAGE = "Internal server error"


class OutcomeKind(Enum):
    OK = "ok"
    AUTH_ERROR = "auth_error"
    FIELD_NOT_FOUND = "field_not_found"
    INVALID_FIELD_TYPE = "invalid_field_type"
    QUERY_INVALID = "query_invalid"
    REMOTE_ERROR = "remote_error"
    INPUT_ERROR = "input_error"
    CANCELLED = "cancelled"
    INTERNAL_ERROR = "internal_error"


# Checked in order, so subclasses must come before their bases
_ERROR_KINDS = (
    (AuthError, OutcomeKind.AUTH_ERROR),
    (FieldNotFound, OutcomeKind.FIELD_NOT_FOUND),
    (InvalidFieldType, OutcomeKind.INVALID_FIELD_TYPE),
    (QueryInvalid, OutcomeKind.QUERY_INVALID),
    (RemoteError, OutcomeKind.REMOTE_ERROR),
    (InputError, OutcomeKind.INPUT_ERROR),
    (SamplingCancelled, OutcomeKind.CANCELLED),
)


@dataclass(frozen=True)
class Outcome:
    """Result of an operation: a success payload or one typed failure."""

    kind: OutcomeKind
    payload: Optional[dict] = None
    message: str = ""
    errors: tuple = ()

    @property
    def ok(self) -> bool:
        return self.kind is OutcomeKind.OK


def _kind_for(error: EstimationError) -> OutcomeKind:
    for error_type, kind in _ERROR_KINDS:
        if isinstance(error, error_type):
            return kind
    return OutcomeKind.INTERNAL_ERROR


def _request_context(credentials: Credentials, **fields) -> dict:
    """Non-secret request fields for log records. Never includes the token."""
    context = {"user": credentials.user, "account": credentials.account_name}
    context.update(fields)
    return context


def _run(name: str, context: dict, log: logging.Logger, action: Callable[[], dict]) -> Outcome:
    try:
        return Outcome(OutcomeKind.OK, payload=action())
    except EstimationError as e:
        kind = _kind_for(e)
        log.info(f"{name} failed ({kind.value}): {e.message}")
        return Outcome(kind, message=e.message, errors=tuple(getattr(e, "errors", ())))
    except Exception:
        log.exception(f"Unhandled error in {name} for request {context}",
                      extra={"request_context": context})
        return Outcome(OutcomeKind.INTERNAL_ERROR, message=INTERNAL_ERROR_MESSAGE)


def _open_session(credentials: Credentials, client_factory: ClientFactory):
    return validators.initialize_session(client_factory(credentials))


def check_credentials(credentials: Credentials,
                      client_factory: ClientFactory = JiraCloudClient,
                      log: Optional[logging.Logger] = None) -> Outcome:
    def action():
        _open_session(credentials, client_factory)
        return {"message": "Credentials is valid"}

    return _run("check_credentials", _request_context(credentials), log or logger, action)


def validate_query(credentials: Credentials, query: str,
                   client_factory: ClientFactory = JiraCloudClient,
                   log: Optional[logging.Logger] = None) -> Outcome:
    """Validate a JQL query; an invalid one yields QUERY_INVALID with every error."""
    def action():
        session = _open_session(credentials, client_factory)
        errors = validators.validate_query(session, query)
        if errors:
            raise QueryInvalid(errors)
        return {"message": "JQL is valid"}

    context = _request_context(credentials, jql=query)
    return _run("validate_query", context, log or logger, action)


def validate_field(credentials: Credentials, field_id: str,
                   client_factory: ClientFactory = JiraCloudClient,
                   log: Optional[logging.Logger] = None) -> Outcome:
    def action():
        session = _open_session(credentials, client_factory)
        field = validators.validate_field(session, field_id)
        return {"message": "Field is valid", "field": field.to_dict()}

    context = _request_context(credentials, field=field_id)
    return _run("validate_field", context, log or logger, action)


def compute_estimation_report(credentials: Credentials, query: str, field_id: str,
                              frequency, period_count,
                              client_factory: ClientFactory = JiraCloudClient,
                              sampler: Optional[EstimationSampler] = None,
                              log: Optional[logging.Logger] = None,
                              now: Optional[datetime] = None,
                              cancel_event: Optional[threading.Event] = None) -> Outcome:
    """Compute per-period totals of a numeric field for a JQL query.

    Request parameters are checked before any remote call, then the
    credentials and the field, and finally every period is sampled.
    """
    sampler = sampler or EstimationSampler()

    def action():
        parsed_frequency = SamplingFrequency.parse(frequency)
        count = validate_period_count(period_count, sampler.max_period_count)
        if not isinstance(query, str) or not query.strip():
            raise InputError("Missing required field: jql")

        session = _open_session(credentials, client_factory)
        field = validators.validate_field(session, field_id)
        report = sampler.sample(
            session, query, field.id, parsed_frequency, count,
            now=now, cancel_event=cancel_event
        )
        return report.to_dict()

    context = _request_context(
        credentials, jql=query, field=field_id,
        frequency=str(frequency), period_count=period_count
    )
    return _run("compute_estimation_report", context, log or logger, action)

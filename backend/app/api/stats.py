"""Credential, JQL, field and estimation stats endpoints."""

from flask import Blueprint, current_app, request, jsonify
from services import operations
from services.errors import InputError
from services.estimation import EstimationSampler
from services.jira_client import JiraCloudClient
from services.models import Credentials
from services.operations import OutcomeKind

bp = Blueprint("stats", __name__)

DEFAULT_FREQUENCY = "SamplingFrequency.eachWeek"
DEFAULT_PERIOD_COUNT = 4

STATUS_CODES = {
    OutcomeKind.OK: 200,
    OutcomeKind.AUTH_ERROR: 400,
    OutcomeKind.FIELD_NOT_FOUND: 404,
    OutcomeKind.INVALID_FIELD_TYPE: 400,
    OutcomeKind.QUERY_INVALID: 400,
    OutcomeKind.INPUT_ERROR: 400,
    OutcomeKind.REMOTE_ERROR: 502,
    OutcomeKind.CANCELLED: 504,
    OutcomeKind.INTERNAL_ERROR: 500,
}


def error_response(message, status_code, **extra):
    body = {"message": message, "error": message}
    body.update(extra)
    return jsonify(body), status_code


def outcome_response(outcome):
    """Translate an operation outcome into a JSON response."""
    status_code = STATUS_CODES[outcome.kind]

    if outcome.kind is OutcomeKind.OK:
        return jsonify(outcome.payload), status_code

    if outcome.kind is OutcomeKind.QUERY_INVALID:
        return error_response(outcome.message, status_code,
                              errors={"jql": list(outcome.errors)})

    return error_response(outcome.message, status_code)


def get_request_data():
    """Parse the JSON body and the credentials it carries.

    Raises:
        InputError: body missing or credentials incomplete
    """
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise InputError("Missing request body")
    return data, Credentials.from_request(data)


def client_factory(credentials):
    """Build the Jira client for one request."""
    return JiraCloudClient(credentials, timeout=current_app.config["JIRA_HTTP_TIMEOUT"])


@bp.route("/check-credentials", methods=["POST"])
def check_credentials():
    """Check that the Jira credentials are accepted.

    Expects JSON body with:
        - user: Jira account e-mail
        - token: Jira API token
        - account: Jira site name (e.g. "acme" for acme.atlassian.net)
    """
    try:
        _, credentials = get_request_data()
    except InputError as e:
        return error_response(e.message, 400)

    outcome = operations.check_credentials(
        credentials, client_factory=client_factory, log=current_app.logger
    )
    return outcome_response(outcome)


@bp.route("/validate-jql", methods=["POST"])
def validate_jql():
    """Validate a JQL query.

    Expects the credential fields plus:
        - jql: query to validate

    Returns 400 with every JQL error under errors.jql when invalid.
    """
    try:
        data, credentials = get_request_data()
    except InputError as e:
        return error_response(e.message, 400)

    outcome = operations.validate_query(
        credentials, data.get("jql"),
        client_factory=client_factory, log=current_app.logger
    )
    return outcome_response(outcome)


@bp.route("/check-story-points-field", methods=["POST"])
def check_story_points_field():
    """Check that a field exists and is numeric.

    Expects the credential fields plus:
        - field: field id (e.g. "customfield_10016")
    """
    try:
        data, credentials = get_request_data()
    except InputError as e:
        return error_response(e.message, 400)

    outcome = operations.validate_field(
        credentials, data.get("field"),
        client_factory=client_factory, log=current_app.logger
    )
    return outcome_response(outcome)


@bp.route("/stats", methods=["POST"])
def stats():
    """Get story point totals per period for a JQL query.

    Expects the credential fields plus:
        - jql: filter query
        - field: numeric story point field id
        - frequency: Optional, e.g. "SamplingFrequency.eachWeek" (default)
        - weeksAgoCount: Optional number of periods to sample (default 4);
          periodCount is accepted as an alias

    Returns:
        - Samples ordered oldest to newest with period bounds, total and
          issue count
    """
    try:
        data, credentials = get_request_data()
    except InputError as e:
        return error_response(e.message, 400)

    period_count = data.get("weeksAgoCount")
    if period_count is None:
        period_count = data.get("periodCount")
    if period_count is None:
        period_count = DEFAULT_PERIOD_COUNT

    sampler = EstimationSampler(
        max_workers=current_app.config["MAX_CONCURRENT_QUERIES"],
        timeout=current_app.config["SAMPLING_TIMEOUT"],
        max_period_count=current_app.config["MAX_PERIOD_COUNT"]
    )

    outcome = operations.compute_estimation_report(
        credentials,
        data.get("jql"),
        data.get("field"),
        data.get("frequency") or DEFAULT_FREQUENCY,
        period_count,
        client_factory=client_factory,
        sampler=sampler,
        log=current_app.logger
    )
    return outcome_response(outcome)

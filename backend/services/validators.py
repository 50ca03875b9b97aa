"""Credential, JQL and estimate field validation."""

import logging

from services.errors import FieldNotFound, InvalidFieldType
from services.models import FieldDescriptor
from services.tracker import AuthenticatedSession, IssueTrackerClient

logger = logging.getLogger(__name__)


def initialize_session(client: IssueTrackerClient) -> AuthenticatedSession:
    """Authenticate once and return a session for further calls.

    Raises:
        AuthError: Jira rejected the credentials
        RemoteError: any other transport or response failure
    """
    client.authenticate()
    return AuthenticatedSession(client)


def validate_query(session: AuthenticatedSession, query: str) -> list:
    """Validate a JQL query as a whole.

    Returns:
        Jira's error messages in the order reported; empty when valid.
        The first message is the summary error.
    """
    if not isinstance(query, str) or not query.strip():
        return ["JQL query must not be empty"]

    errors = session.client.validate_query_syntax(query)
    if errors:
        logger.info(f"JQL rejected with {len(errors)} error(s): {errors[0]}")
    return list(errors)


def validate_field(session: AuthenticatedSession, field_id: str) -> FieldDescriptor:
    """Check that a field exists and holds numbers.

    Raises:
        FieldNotFound: no field with this id in the site's schema
        InvalidFieldType: the field exists but is not numeric
    """
    if not isinstance(field_id, str) or not field_id.strip():
        raise FieldNotFound()

    field = session.client.resolve_field(field_id.strip())
    if field is None:
        raise FieldNotFound()

    if not field.is_numeric:
        logger.info(f"Field {field.id} has type {field.declared_type}, expected number")
        raise InvalidFieldType()

    return field

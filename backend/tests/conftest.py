"""Shared fixtures for estimation stats tests."""

import os
import sys
import threading
import time
from datetime import datetime, timezone

import pytest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from services.errors import AuthError
from services.models import Credentials, FieldDescriptor, IssueEstimate, SearchResult
from services.tracker import IssueTrackerClient


class FakeTrackerClient(IssueTrackerClient):
    """In-memory issue tracker.

    Issues are (key, created, points) tuples; a search returns those created
    on or before the as-of instant, like the JQL the Jira client builds.
    """

    def __init__(self, issues=None, fields=None, query_errors=None,
                 reject_auth=False, search_error=None, fail_on_call=None,
                 search_delay=0.0):
        self.issues = list(issues or [])
        self.fields = list(fields or [])
        self.query_errors = dict(query_errors or {})
        self.reject_auth = reject_auth
        self.search_error = search_error
        self.fail_on_call = fail_on_call
        self.search_delay = search_delay

        self.auth_calls = 0
        self.search_calls = []
        self.max_in_flight = 0
        self._in_flight = 0
        self._lock = threading.Lock()

    def authenticate(self):
        self.auth_calls += 1
        if self.reject_auth:
            raise AuthError()

    def validate_query_syntax(self, query):
        return list(self.query_errors.get(query, []))

    def resolve_field(self, field_id):
        for field in self.fields:
            if field.id == field_id:
                return field
        return None

    def search_issues_as_of(self, query, field_id, as_of):
        with self._lock:
            call_number = len(self.search_calls) + 1
            self.search_calls.append((query, field_id, as_of))
            self._in_flight += 1
            self.max_in_flight = max(self.max_in_flight, self._in_flight)
        try:
            if self.search_delay:
                time.sleep(self.search_delay)
            if self.search_error is not None and (
                    self.fail_on_call is None or self.fail_on_call == call_number):
                raise self.search_error
            return SearchResult(issues=tuple(
                IssueEstimate(id=key, field_value=points)
                for key, created, points in self.issues
                if created <= as_of
            ))
        finally:
            with self._lock:
                self._in_flight -= 1


@pytest.fixture
def mock_jira_credentials():
    """Mock Jira credentials in the request body format."""
    return {
        "user": "test@example.com",
        "token": "test-token-123",
        "account": "test"
    }


@pytest.fixture
def credentials(mock_jira_credentials):
    return Credentials.from_request(mock_jira_credentials)


@pytest.fixture
def fixed_now():
    """A Wednesday afternoon."""
    return datetime(2024, 2, 28, 15, 30, tzinfo=timezone.utc)


@pytest.fixture
def story_points_field():
    return FieldDescriptor(id="customfield_10016", name="Story point estimate",
                           declared_type="number")


@pytest.fixture
def tracker_fields(story_points_field):
    return [
        story_points_field,
        FieldDescriptor(id="summary", name="Summary", declared_type="string"),
        FieldDescriptor(id="assignee", name="Assignee", declared_type="user"),
    ]


@pytest.fixture
def sample_issues():
    """Issues created across February 2024, one without an estimate."""
    return [
        ("PROJ-1", datetime(2024, 1, 30, 9, 0, tzinfo=timezone.utc), 3.0),
        ("PROJ-2", datetime(2024, 2, 6, 10, 0, tzinfo=timezone.utc), 5.0),
        ("PROJ-3", datetime(2024, 2, 14, 11, 0, tzinfo=timezone.utc), None),
        ("PROJ-4", datetime(2024, 2, 20, 12, 0, tzinfo=timezone.utc), 8.0),
        ("PROJ-5", datetime(2024, 2, 27, 13, 0, tzinfo=timezone.utc), 2.0),
    ]


@pytest.fixture
def fake_client(sample_issues, tracker_fields):
    return FakeTrackerClient(
        issues=sample_issues,
        fields=tracker_fields,
        query_errors={
            "project = ": ["Expecting either a value, list or function but got 'EOF'."],
            "projekt = X AND status = Nope": [
                "Field 'projekt' does not exist or you do not have permission to view it.",
                "The value 'Nope' does not exist for the field 'status'.",
            ],
        }
    )


@pytest.fixture
def mock_fields_response():
    """Mock response for Jira fields endpoint."""
    return [
        {"id": "customfield_10002", "key": "customfield_10002", "name": "Story Points",
         "schema": {"type": "number"}},
        {"id": "customfield_10016", "key": "customfield_10016", "name": "Story point estimate",
         "schema": {"type": "number"}},
        {"id": "summary", "key": "summary", "name": "Summary", "schema": {"type": "string"}},
        {"id": "status", "key": "status", "name": "Status", "schema": {"type": "status"}}
    ]


@pytest.fixture
def app():
    """Create Flask test app."""
    from app import create_app
    app = create_app({"SAMPLING_TIMEOUT": 5.0})
    app.config['TESTING'] = True
    return app


@pytest.fixture
def client(app):
    """Create Flask test client."""
    return app.test_client()

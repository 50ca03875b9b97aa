"""Jira Cloud REST client implementing the issue tracker capability."""

import logging
from datetime import datetime, timezone
from typing import Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import requests

from services.errors import AuthError, QueryInvalid, RemoteError
from services.jql import bound_as_of
from services.models import Credentials, FieldDescriptor, IssueEstimate, SearchResult
from services.tracker import IssueTrackerClient

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 30
SEARCH_PAGE_SIZE = 100


def _error_messages(response) -> list:
    """Collect Jira's error messages from an error response body."""
    try:
        body = response.json()
    except ValueError:
        return []
    if not isinstance(body, dict):
        return []

    messages = [str(m) for m in body.get("errorMessages") or []]
    errors = body.get("errors")
    if isinstance(errors, dict):
        messages.extend(str(m) for m in errors.values())
    return messages


def _profile_time_zone(name):
    """Resolve a Jira profile time zone name, falling back to UTC."""
    if not name:
        return timezone.utc
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError):
        logger.warning(f"Unknown Jira time zone {name!r}, using UTC")
        return timezone.utc


class JiraCloudClient(IssueTrackerClient):
    """Issue tracker client for a Jira Cloud site (REST API v3)."""

    def __init__(self, credentials: Credentials, timeout: float = DEFAULT_TIMEOUT):
        self.server = credentials.server_url
        self.email = credentials.user
        self.token = credentials.api_token
        self.timeout = timeout
        self.time_zone = timezone.utc

    def _request(self, method: str, endpoint: str, params: Optional[dict] = None,
                 payload: Optional[dict] = None, jql: Optional[str] = None):
        """Make authenticated request to Jira API.

        Args:
            method: HTTP method
            endpoint: API path, e.g. "/rest/api/3/myself"
            params: Optional query parameters
            payload: Optional JSON body
            jql: Query carried by the request; a 400 answer is then reported
                as QueryInvalid instead of RemoteError

        Returns:
            Decoded JSON body
        """
        try:
            response = requests.request(
                method,
                f"{self.server}{endpoint}",
                auth=(self.email, self.token),
                headers={"Accept": "application/json"},
                params=params,
                json=payload,
                timeout=self.timeout
            )
        except requests.exceptions.Timeout:
            raise RemoteError("Connection to Jira timed out")
        except requests.exceptions.RequestException as e:
            raise RemoteError(f"Failed to connect to Jira: {e}")

        if response.status_code in (401, 403):
            raise AuthError()

        if response.status_code == 400 and jql is not None:
            raise QueryInvalid(_error_messages(response))

        if not 200 <= response.status_code < 300:
            messages = _error_messages(response)
            detail = f": {messages[0]}" if messages else ""
            raise RemoteError(
                f"Jira API error: {response.status_code}{detail}",
                status_code=response.status_code
            )

        try:
            return response.json()
        except ValueError:
            raise RemoteError("Unexpected response from Jira: body is not JSON",
                              status_code=response.status_code)

    def authenticate(self) -> None:
        user_info = self._request("GET", "/rest/api/3/myself")
        if not isinstance(user_info, dict):
            raise RemoteError("Unexpected response from Jira: user info is not an object")

        # JQL dates are read in the user's profile time zone
        self.time_zone = _profile_time_zone(user_info.get("timeZone"))
        logger.info(f"Authenticated {user_info.get('accountId')} on {self.server}")

    def validate_query_syntax(self, query: str) -> list:
        data = self._request(
            "POST",
            "/rest/api/3/jql/parse",
            params={"validation": "strict"},
            payload={"queries": [query]}
        )

        parsed = data.get("queries") if isinstance(data, dict) else None
        if not isinstance(parsed, list) or not parsed:
            raise RemoteError("Unexpected response from Jira: missing parsed queries")

        return [str(e) for e in parsed[0].get("errors") or []]

    def resolve_field(self, field_id: str) -> Optional[FieldDescriptor]:
        fields = self._request("GET", "/rest/api/3/field")
        if not isinstance(fields, list):
            raise RemoteError("Unexpected response from Jira: field list is not a list")

        for field in fields:
            if field.get("id") == field_id or field.get("key") == field_id:
                return FieldDescriptor(
                    id=field.get("id", field_id),
                    name=field.get("name", ""),
                    declared_type=(field.get("schema") or {}).get("type")
                )
        return None

    def search_issues_as_of(self, query: str, field_id: str, as_of: datetime) -> SearchResult:
        jql = bound_as_of(query, as_of, self.time_zone)

        # Paginate with the token-based search API
        all_issues = []
        next_page_token = None

        while True:
            params = {
                "jql": jql,
                "fields": field_id,
                "maxResults": SEARCH_PAGE_SIZE
            }
            if next_page_token:
                params["nextPageToken"] = next_page_token

            data = self._request("GET", "/rest/api/3/search/jql", params=params, jql=jql)
            if not isinstance(data, dict) or not isinstance(data.get("issues", []), list):
                raise RemoteError("Unexpected response from Jira: malformed search result")

            issues = data.get("issues", [])
            for issue in issues:
                fields = issue.get("fields") or {}
                all_issues.append(IssueEstimate(
                    id=issue.get("key") or str(issue.get("id")),
                    field_value=fields.get(field_id)
                ))

            next_page_token = data.get("nextPageToken")
            if not next_page_token or not issues:
                break

        logger.debug(f"{len(all_issues)} issues matched: {jql}")
        return SearchResult(issues=tuple(all_issues))

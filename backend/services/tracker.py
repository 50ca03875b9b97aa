"""Issue tracker capability consumed by the validators and the sampler."""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Optional

from services.models import FieldDescriptor, SearchResult


class IssueTrackerClient(ABC):
    """Remote operations the estimation services need from an issue tracker.

    Implementations own transport, pagination and authentication details.
    None of them should retry; failures are raised to the caller.
    """

    @abstractmethod
    def authenticate(self) -> None:
        """Verify the credentials. Raises AuthError or RemoteError."""

    @abstractmethod
    def validate_query_syntax(self, query: str) -> list:
        """Return the tracker's error messages for a query, in order."""

    @abstractmethod
    def resolve_field(self, field_id: str) -> Optional[FieldDescriptor]:
        """Look up a field by id, returning None if it does not exist."""

    @abstractmethod
    def search_issues_as_of(self, query: str, field_id: str, as_of: datetime) -> SearchResult:
        """Return every issue matching the query as of the given instant."""


class AuthenticatedSession:
    """Handle to a client whose credentials have been accepted."""

    def __init__(self, client: IssueTrackerClient):
        self._client = client

    @property
    def client(self) -> IssueTrackerClient:
        return self._client

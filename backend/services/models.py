"""Data model shared by the validators and the estimation sampler."""

import re
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional

from services.errors import InputError

_SITE_NAME = re.compile(r"^[a-z0-9][a-z0-9-]*$")


def site_name(account: str) -> str:
    """Reduce an account to its Atlassian Cloud site name.

    Accepts "acme", "acme.atlassian.net" and "https://acme.atlassian.net".
    Anything else raises InputError, so requests only ever go to
    *.atlassian.net.
    """
    name = (account or "").strip().lower().rstrip("/")
    if name.startswith("https://"):
        name = name[len("https://"):]
    if name.endswith(".atlassian.net"):
        name = name[:-len(".atlassian.net")]
    if not _SITE_NAME.match(name):
        raise InputError(f"Invalid account: {account!r}")
    return name


@dataclass(frozen=True)
class Credentials:
    """Jira Cloud credentials supplied with each request."""

    user: str
    api_token: str = field(repr=False)
    account_name: str

    @property
    def server_url(self) -> str:
        return f"https://{site_name(self.account_name)}.atlassian.net"

    @classmethod
    def from_request(cls, data: dict) -> "Credentials":
        """Build credentials from the original request body keys."""
        user = data.get("user")
        token = data.get("token")
        account = data.get("account")

        missing = [
            name for name, value in (("user", user), ("token", token), ("account", account))
            if not isinstance(value, str) or not value.strip()
        ]
        if missing:
            raise InputError(f"Missing required fields: {', '.join(missing)}")

        return cls(user=user.strip(), api_token=token.strip(), account_name=site_name(account))


@dataclass(frozen=True)
class FieldDescriptor:
    id: str
    name: str
    declared_type: Optional[str]

    @property
    def is_numeric(self) -> bool:
        return self.declared_type == "number"

    def to_dict(self) -> dict:
        return {"id": self.id, "name": self.name, "type": self.declared_type}


class SamplingFrequency(Enum):
    """Length of the periods the look-back window is sliced into."""

    EACH_DAY = "eachDay"
    EACH_WEEK = "eachWeek"
    EACH_MONTH = "eachMonth"

    @classmethod
    def parse(cls, value) -> "SamplingFrequency":
        """Parse a frequency from its wire form.

        Accepts "eachWeek", the enum-style "SamplingFrequency.eachWeek" and
        the aliases "daily", "weekly" and "monthly". None means weekly.
        """
        if value is None:
            return cls.EACH_WEEK
        if isinstance(value, cls):
            return value
        if not isinstance(value, str):
            raise InputError(f"Invalid frequency: {value!r}")

        name = value.strip()
        if name.startswith("SamplingFrequency."):
            name = name[len("SamplingFrequency."):]

        aliases = {"daily": cls.EACH_DAY, "weekly": cls.EACH_WEEK, "monthly": cls.EACH_MONTH}
        if name.lower() in aliases:
            return aliases[name.lower()]

        for member in cls:
            if member.value.lower() == name.lower():
                return member

        raise InputError(f"Invalid frequency: {value!r}")


@dataclass(frozen=True)
class IssueEstimate:
    """One issue returned by a search, with the raw value of the estimate field."""

    id: str
    field_value: object = None

    @property
    def points(self) -> float:
        """Numeric value of the estimate, 0 when unset or not a number."""
        value = self.field_value
        if value is None or isinstance(value, bool):
            return 0.0
        try:
            return float(value)
        except (TypeError, ValueError):
            return 0.0


@dataclass(frozen=True)
class SearchResult:
    issues: tuple = ()


@dataclass(frozen=True)
class Period:
    start: datetime
    end: datetime


@dataclass(frozen=True)
class TimeSample:
    period_start: datetime
    period_end: datetime
    total: float
    issue_count: int

    def to_dict(self) -> dict:
        return {
            "periodStart": self.period_start.isoformat(),
            "periodEnd": self.period_end.isoformat(),
            "total": self.total,
            "issueCount": self.issue_count
        }


@dataclass(frozen=True)
class EstimationReport:
    """Per-period estimate totals, ordered oldest to newest."""

    query: str
    field_id: str
    frequency: SamplingFrequency
    generated_at: datetime
    samples: tuple = ()

    def to_dict(self) -> dict:
        return {
            "jql": self.query,
            "field": self.field_id,
            "frequency": self.frequency.value,
            "generatedAt": self.generated_at.isoformat(),
            "samples": [sample.to_dict() for sample in self.samples]
        }

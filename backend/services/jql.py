"""JQL builders for point-in-time estimation queries."""

import re
from datetime import datetime, timedelta, timezone, tzinfo

JQL_DATETIME_FORMAT = "%Y-%m-%d %H:%M"

_ORDER_BY = re.compile(r"\s*\border\s+by\b", re.IGNORECASE)


def _inside_quotes(query: str, index: int) -> bool:
    """Whether position index falls inside a quoted JQL string literal."""
    quote = None
    escaped = False
    for char in query[:index]:
        if escaped:
            escaped = False
        elif char == "\\":
            escaped = True
        elif quote:
            if char == quote:
                quote = None
        elif char in ("'", '"'):
            quote = char
    return quote is not None


def split_order_by(query: str) -> tuple:
    """Split a JQL query into its filter and its ORDER BY clause.

    "order by" inside a string literal, e.g. summary ~ "order by", is part
    of the filter.

    Returns:
        Tuple of (filter, order_by); order_by is "" when the query has none.
    """
    query = (query or "").strip()
    for match in _ORDER_BY.finditer(query):
        if not _inside_quotes(query, match.start()):
            return query[:match.start()].strip(), query[match.start():].strip()
    return query, ""


def format_jql_datetime(value: datetime, tz: tzinfo = timezone.utc) -> str:
    """Format a datetime the way JQL date comparisons expect it.

    JQL reads dates in the user's profile time zone at minute precision,
    so the value is converted to tz and rounded up to the next whole minute.
    """
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    value = value.astimezone(tz)
    if value.second or value.microsecond:
        value = value.replace(second=0, microsecond=0) + timedelta(minutes=1)
    return value.strftime(JQL_DATETIME_FORMAT)


def bound_as_of(query: str, as_of: datetime, tz: tzinfo = timezone.utc) -> str:
    """Restrict a query to issues that existed at a given instant.

    Example:
        bound_as_of("project = X ORDER BY rank", as_of)
        -> '(project = X) AND created <= "2024-01-28 23:59" ORDER BY rank'
    """
    filter_part, order_by = split_order_by(query)
    clause = f'created <= "{format_jql_datetime(as_of, tz)}"'

    if filter_part:
        bounded = f"({filter_part}) AND {clause}"
    else:
        bounded = clause

    if order_by:
        bounded = f"{bounded} {order_by}"
    return bounded

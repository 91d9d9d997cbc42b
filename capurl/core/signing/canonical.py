"""
Canonical URL Codec

Builds the exact string that gets signed, and rebuilds client-usable URLs.

Canonical Form:
    {pathname}?{query}     (or just {pathname} when the query is empty)

Where:
    - query: key=value pairs joined by "&", in first-occurrence key order
    - repeated keys are emitted consecutively (a=1&a=3&b=2)
    - keys and values are percent-encoded, leaving A-Z a-z 0-9 - _ . ! ~ * ' ( )
      unescaped (spaces become %20)

Signing and verification MUST go through the same functions here, otherwise
every valid signature fails.
"""

from dataclasses import dataclass, field
from typing import Dict, List, Optional
from urllib.parse import parse_qsl, quote, urlsplit, urlunsplit

# Characters left unescaped besides the ones quote() never escapes (A-Za-z0-9_.-~)
_SAFE_CHARS = "!*'()"

QueryParams = Dict[str, List[str]]


@dataclass
class ParsedUrl:
    """
    A URL split into its components, with an ordered, editable query.

    Attributes:
        scheme: "http", "https" or "" for relative URLs
        netloc: Host (and port) or "" for relative URLs
        path: URL path
        query: Ordered mapping of key -> list of values
        fragment: Fragment without the "#"
    """
    scheme: str = ""
    netloc: str = ""
    path: str = ""
    query: QueryParams = field(default_factory=dict)
    fragment: str = ""

    def get_first(self, key: str) -> Optional[str]:
        """Return the first value for key, or None."""
        values = self.query.get(key)
        if not values:
            return None
        return values[0]

    def set(self, key: str, value) -> None:
        """Replace all values for key, keeping its position if it already exists."""
        self.query[key] = [str(value)]

    def pop(self, key: str) -> Optional[str]:
        """Remove key and return its first value (None if absent)."""
        values = self.query.pop(key, None)
        if not values:
            return None
        return values[0]


def _escape(value: str) -> str:
    return quote(value, safe=_SAFE_CHARS)


def encode_query(query: QueryParams) -> str:
    """
    Encode query parameters in canonical form.

    Args:
        query: Ordered mapping of key -> list of values

    Returns:
        Encoded query string without the leading "?"

    Example:
        >>> encode_query({"x": ["1"], "name": ["a b"]})
        'x=1&name=a%20b'
    """
    pairs = []
    for key, values in query.items():
        for value in values:
            pairs.append(f"{_escape(key)}={_escape(value)}")
    return "&".join(pairs)


def parse_query(query_string: str) -> QueryParams:
    """Decode a query string into an ordered mapping, grouping repeated keys."""
    query: QueryParams = {}
    for key, value in parse_qsl(query_string, keep_blank_values=True):
        query.setdefault(key, []).append(value)
    return query


def parse_url(url: str) -> ParsedUrl:
    """
    Split a URL (absolute or relative) into a ParsedUrl.

    Args:
        url: URL such as "/entry?x=1" or "https://example.com/entry?x=1"

    Returns:
        ParsedUrl with an editable query mapping
    """
    parts = urlsplit(url)
    path = parts.path
    if not path and parts.netloc:
        path = "/"
    return ParsedUrl(
        scheme=parts.scheme,
        netloc=parts.netloc,
        path=path,
        query=parse_query(parts.query),
        fragment=parts.fragment,
    )


def canonicalize(pathname: str, query: QueryParams) -> str:
    """
    Build the canonical string (the signed message) for a path and query.

    Args:
        pathname: URL path
        query: Ordered mapping of key -> list of values

    Returns:
        pathname, followed by "?" and the encoded query when it is non-empty

    Example:
        >>> canonicalize("/entry", {"x": ["1"], "expires": ["1703001234"]})
        '/entry?x=1&expires=1703001234'
        >>> canonicalize("/entry", {})
        '/entry'
    """
    search = encode_query(query)
    return pathname + (f"?{search}" if search else "")


def format_url(parsed: ParsedUrl) -> str:
    """
    Reassemble a full URL (scheme, host, path, query, fragment) from a ParsedUrl.

    Relative URLs stay relative.
    """
    return urlunsplit((
        parsed.scheme,
        parsed.netloc,
        parsed.path,
        encode_query(parsed.query),
        parsed.fragment,
    ))

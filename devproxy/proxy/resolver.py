"""
Resolve the remote URL a proxy request is addressed to.

Two addressing conventions are supported:

- path form: ``/proxy/example.com/data.json?foo=1``. The path after the
  proxy prefix is the target, ``http://`` is assumed when no scheme is
  given, and the outer request's query string replaces whatever query the
  target carried.
- query form: ``/proxy/?http%3A%2F%2Fexample.com%2Fdata.json%3Ffoo%3D1``.
  Only used when the path form is empty. The name of the first query
  parameter is the encoded absolute URL, including its own query.
"""

import re
from dataclasses import dataclass
from typing import Optional, Union
from urllib.parse import SplitResult, parse_qsl, urlsplit, urlunsplit

DEFAULT_SCHEME = "http"

_HTTP_SCHEME_RE = re.compile(r"^https?://", re.IGNORECASE)


@dataclass(frozen=True)
class Resolved:
    url: str


@dataclass(frozen=True)
class NoTargetSpecified:
    reason: str = "No url specified."


ResolveResult = Union[Resolved, NoTargetSpecified]


def _parse(candidate: str) -> Optional[SplitResult]:
    try:
        parts = urlsplit(candidate)
        # Accessing the port validates it, urlsplit alone does not
        parts.port
    except ValueError:
        return None
    return parts


def _with_default_scheme(parts: SplitResult) -> SplitResult:
    if not parts.scheme:
        return parts._replace(scheme=DEFAULT_SCHEME)
    return parts


def _from_path(path_target: str, query_string: str) -> Optional[SplitResult]:
    candidate = path_target
    if not _HTTP_SCHEME_RE.match(candidate):
        candidate = f"{DEFAULT_SCHEME}://{candidate}"
    parts = _parse(candidate)
    if parts is None:
        return None
    # The outer query always wins over a query embedded in the path target
    return parts._replace(query=query_string or "")


def _from_query(query_string: str) -> Optional[SplitResult]:
    params = parse_qsl(query_string, keep_blank_values=True)
    if not params:
        return None
    candidate = params[0][0]
    if not candidate:
        return None
    if "://" not in candidate:
        # "example.com/x" and "//example.com/x" both name a host
        candidate = f"{DEFAULT_SCHEME}://{candidate.lstrip('/')}"
    return _parse(candidate)


def resolve_remote_url(
    path_target: Optional[str], query_string: Optional[str]
) -> ResolveResult:
    """
    Compute the forwarding target from the path after the proxy prefix and
    the raw (still encoded) query string of the incoming request.
    """
    path_target = (path_target or "").lstrip("/")
    query_string = query_string or ""

    if path_target:
        parts = _from_path(path_target, query_string)
    else:
        parts = _from_query(query_string)

    if parts is None:
        return NoTargetSpecified()

    parts = _with_default_scheme(parts)
    if not parts.hostname:
        return NoTargetSpecified()

    return Resolved(url=urlunsplit(parts))

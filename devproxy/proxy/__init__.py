from .headers import filter_headers, BLOCKED_HEADERS
from .resolver import resolve_remote_url, Resolved, NoTargetSpecified
from .upstream import select_upstream_proxy
from .forwarder import Forwarder, ProxyResponse, TransportFailure

__all__ = [
    "filter_headers",
    "BLOCKED_HEADERS",
    "resolve_remote_url",
    "Resolved",
    "NoTargetSpecified",
    "select_upstream_proxy",
    "Forwarder",
    "ProxyResponse",
    "TransportFailure",
]

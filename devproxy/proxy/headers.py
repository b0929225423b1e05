from typing import Iterable, List, Mapping, Tuple, Union

import httpx

# Hop-by-hop and proxy management headers, never relayed in either direction
BLOCKED_HEADERS = frozenset(
    {
        "host",
        "proxy-connection",
        "connection",
        "keep-alive",
        "transfer-encoding",
        "te",
        "trailer",
        "proxy-authorization",
        "proxy-authenticate",
        "upgrade",
    }
)

HeaderPair = Tuple[Union[str, bytes], Union[str, bytes]]


def _header_pairs(headers) -> List[HeaderPair]:
    # httpx and Starlette headers both expose the raw byte pairs, which keeps
    # repeated headers (Set-Cookie) and the original values intact.
    raw = getattr(headers, "raw", None)
    if raw is not None:
        return list(raw)
    if isinstance(headers, Mapping):
        return list(headers.items())
    return list(headers)


def _header_name(name: Union[str, bytes]) -> str:
    if isinstance(name, bytes):
        return name.decode("latin-1")
    return name


def is_blocked_header(name: Union[str, bytes]) -> bool:
    return _header_name(name).lower() in BLOCKED_HEADERS


def filter_headers(
    headers: Union[httpx.Headers, Mapping[str, str], Iterable[HeaderPair]],
) -> httpx.Headers:
    """
    Return a copy of ``headers`` without hop-by-hop and proxy headers.

    The same filter is used for the client's request headers and for the
    remote's response headers.
    """
    return httpx.Headers(
        [
            (name, value)
            for name, value in _header_pairs(headers)
            if not is_blocked_header(name)
        ]
    )

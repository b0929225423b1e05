from typing import Optional
from urllib.parse import urlsplit, urlunsplit


def redact_url(url: Optional[str]) -> str:
    """Hide the password of ``user:password@host`` URLs before logging them."""
    if not url:
        return "<none>"
    try:
        parts = urlsplit(url)
    except ValueError:
        return url
    if parts.password is None:
        return url
    userinfo, _, hostinfo = parts.netloc.rpartition("@")
    username = userinfo.split(":", 1)[0]
    return urlunsplit(parts._replace(netloc=f"{username}:****@{hostinfo}"))

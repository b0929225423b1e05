from typing import Optional
from urllib.parse import urlsplit

from devproxy.config import ProxyConfig


def select_upstream_proxy(config: ProxyConfig, target_url: str) -> Optional[str]:
    """Return the upstream proxy to chain through for ``target_url``, if any."""
    if not config.upstream_proxy_url:
        return None
    hostname = (urlsplit(target_url).hostname or "").lower()
    if hostname in config.bypass_hosts:
        return None
    return config.upstream_proxy_url

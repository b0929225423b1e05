from dataclasses import dataclass, field
from typing import FrozenSet, Iterable, Optional, Union

from devproxy import vars as settings


def parse_bypass_hosts(raw: Union[str, Iterable[str], None]) -> FrozenSet[str]:
    """Build the bypass host set from a comma separated string or an iterable."""
    if not raw:
        return frozenset()
    if isinstance(raw, str):
        raw = raw.split(",")
    return frozenset(h.strip().lower() for h in raw if h and h.strip())


@dataclass(frozen=True)
class ProxyConfig:
    """Upstream proxy chaining settings shared by every proxied request."""

    upstream_proxy_url: Optional[str] = None
    bypass_hosts: FrozenSet[str] = field(default_factory=frozenset)

    @classmethod
    def build(
        cls,
        upstream_proxy_url: Optional[str] = None,
        bypass_hosts: Union[str, Iterable[str], None] = None,
    ) -> "ProxyConfig":
        return cls(
            upstream_proxy_url=upstream_proxy_url or None,
            bypass_hosts=parse_bypass_hosts(bypass_hosts),
        )


@dataclass(frozen=True)
class ServerConfig:
    static_root: str = "."
    proxy_prefix: str = "/proxy"
    host: str = "localhost"
    port: int = 8080
    public: bool = False
    proxy_timeout: Optional[float] = None
    metrics_path: Optional[str] = "/metrics"
    proxy: ProxyConfig = field(default_factory=ProxyConfig)

    @property
    def bind_host(self) -> str:
        if self.host:
            return self.host
        return "0.0.0.0" if self.public else "localhost"

    @classmethod
    def from_env(cls) -> "ServerConfig":
        return cls(
            static_root=settings.STATIC_ROOT,
            proxy_prefix=settings.PROXY_PREFIX,
            host=settings.HOST,
            port=settings.PORT,
            public=settings.PUBLIC,
            proxy_timeout=settings.PROXY_TIMEOUT,
            metrics_path=settings.METRICS_PATH or None,
            proxy=ProxyConfig.build(
                settings.UPSTREAM_PROXY, settings.BYPASS_UPSTREAM_PROXY_HOSTS
            ),
        )

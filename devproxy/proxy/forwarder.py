import logging
from dataclasses import dataclass, field
from typing import Dict, Optional, Union

import httpx

from devproxy.proxy.headers import filter_headers
from devproxy.utils import redact_url
from devproxy.utils.exception_logging import log_exception_with_details

logger = logging.getLogger("uvicorn.error")

# The remote is only followed through redirects for safe methods
REDIRECT_METHODS = {"GET", "HEAD"}


@dataclass
class ProxyResponse:
    """A complete remote response, body kept exactly as received on the wire."""

    status_code: int
    headers: httpx.Headers = field(default_factory=httpx.Headers)
    content: bytes = b""


@dataclass
class TransportFailure:
    """No response was received from the remote at all."""

    url: str
    error: Exception


ForwardResult = Union[ProxyResponse, TransportFailure]


class Forwarder:
    """
    Executes outbound fetches for the proxy route.

    One pooled ``httpx.AsyncClient`` is kept per route: a direct client, and
    a client chained through the upstream proxy when one is configured. The
    clients live as long as the application and are closed by ``aclose``.
    """

    def __init__(
        self,
        upstream_proxy_url: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        proxy_transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.timeout = timeout
        self._clients: Dict[Optional[str], httpx.AsyncClient] = {
            None: self._build_client(transport=transport)
        }
        if upstream_proxy_url:
            self._clients[upstream_proxy_url] = self._build_client(
                proxy=upstream_proxy_url, transport=proxy_transport
            )

    def _build_client(
        self,
        proxy: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> httpx.AsyncClient:
        kwargs = {
            "timeout": httpx.Timeout(self.timeout),
            # Only the configured upstream proxy may be used, never *_PROXY env vars
            "trust_env": False,
        }
        if transport is not None:
            kwargs["transport"] = transport
        elif proxy:
            kwargs["proxy"] = proxy
        client = httpx.AsyncClient(**kwargs)
        # Send exactly the filtered client headers, not httpx's defaults
        client.headers.clear()
        return client

    def client_for(self, upstream_proxy: Optional[str]) -> httpx.AsyncClient:
        try:
            return self._clients[upstream_proxy]
        except KeyError:
            raise ValueError(
                f"Upstream proxy {redact_url(upstream_proxy)} is not configured"
            )

    async def forward(
        self,
        method: str,
        url: str,
        headers: httpx.Headers,
        body: Optional[bytes] = None,
        upstream_proxy: Optional[str] = None,
    ) -> ForwardResult:
        """
        Send one request to ``url`` and wait for the complete response.

        The body is read with ``aiter_raw`` so compressed payloads are relayed
        without being decoded. Remote error statuses are returned like any
        other response; only transport failures produce ``TransportFailure``.
        """
        client = self.client_for(upstream_proxy)
        try:
            request = client.build_request(
                method, url, headers=headers, content=body or None
            )
            response = await client.send(
                request,
                stream=True,
                follow_redirects=method.upper() in REDIRECT_METHODS,
            )
            try:
                content = b"".join([chunk async for chunk in response.aiter_raw()])
            finally:
                await response.aclose()
        except (httpx.RequestError, httpx.InvalidURL) as e:
            log_exception_with_details(
                logger,
                f"[Proxy] {method} {redact_url(url)} failed:",
                e,
                level=logging.WARNING,
            )
            return TransportFailure(url=url, error=e)

        logger.debug(
            f"[Proxy] {method} {redact_url(url)} -> {response.status_code} "
            f"({len(content)} bytes)"
        )
        return ProxyResponse(
            status_code=response.status_code,
            headers=filter_headers(response.headers),
            content=content,
        )

    async def aclose(self) -> None:
        for client in self._clients.values():
            await client.aclose()

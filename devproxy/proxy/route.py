import logging

from fastapi import APIRouter, Request
from fastapi.responses import PlainTextResponse, Response
from opentelemetry import trace

from devproxy.config import ProxyConfig
from devproxy.proxy.forwarder import Forwarder, ProxyResponse, TransportFailure
from devproxy.proxy.headers import filter_headers
from devproxy.proxy.resolver import NoTargetSpecified, resolve_remote_url
from devproxy.proxy.upstream import select_upstream_proxy
from devproxy.utils import redact_url
from devproxy.utils.exception_logging import format_exception_message
from devproxy.utils.traced_requests import traced_request

router = APIRouter()
tracer = trace.get_tracer(__name__)
logger = logging.getLogger("uvicorn.error")

PROXY_METHODS = ["GET", "HEAD", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"]

# Statuses that must not carry a body length
_NO_BODY_STATUSES = {204, 304}


def relay_response(result: ProxyResponse) -> Response:
    """
    Build the client response from a fetched remote response.

    Headers are copied as raw pairs so repeated headers such as Set-Cookie
    survive, and the body is passed through untouched.
    """
    response = Response(content=result.content, status_code=result.status_code)
    raw_headers = [(name.lower(), value) for name, value in result.headers.raw]
    has_length = any(name == b"content-length" for name, _ in raw_headers)
    if (
        not has_length
        and result.status_code >= 200
        and result.status_code not in _NO_BODY_STATUSES
    ):
        raw_headers.append((b"content-length", str(len(result.content)).encode()))
    response.raw_headers = raw_headers
    return response


async def forward_to_target(
    request: Request, target: str, config: ProxyConfig, forwarder: Forwarder
) -> Response:
    """
    Resolve the remote target of a proxy request, forward it (chaining through
    the upstream proxy unless the host bypasses it) and relay the result.
    """
    resolved = resolve_remote_url(target, request.url.query)
    if isinstance(resolved, NoTargetSpecified):
        logger.info(f"[Proxy] No target in {request.method} {request.url.path}")
        return PlainTextResponse(resolved.reason, status_code=400)

    upstream_proxy = select_upstream_proxy(config, resolved.url)

    with traced_request(
        tracer,
        "proxy_request",
        resolved.url,
        f"[Proxy] {request.method} {redact_url(resolved.url)}"
        + (f" via {redact_url(upstream_proxy)}" if upstream_proxy else ""),
        extra_attrs={
            "proxy.method": request.method,
            "proxy.chained": upstream_proxy is not None,
        },
    ) as span:
        body = await request.body()
        result = await forwarder.forward(
            request.method,
            resolved.url,
            filter_headers(request.headers),
            body,
            upstream_proxy,
        )

        if isinstance(result, TransportFailure):
            span.set_attribute("proxy.error", format_exception_message(result.error))
            return Response(status_code=500)

        span.set_attribute("proxy.status_code", result.status_code)
        return relay_response(result)


@router.api_route("/{target:path}", methods=PROXY_METHODS)
async def proxy(request: Request, target: str):
    """Fetch the remote URL named by the request and relay its response."""
    return await forward_to_target(
        request,
        target,
        request.app.state.config.proxy,
        request.app.state.forwarder,
    )

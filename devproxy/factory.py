import logging
from contextlib import asynccontextmanager
from typing import Optional, Sequence

from fastapi import FastAPI
from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import ReadableSpan, TracerProvider
from opentelemetry.sdk.trace.export import (
    BatchSpanProcessor,
    SpanExporter,
    SpanExportResult,
)
from prometheus_client import Info
from prometheus_fastapi_instrumentator import Instrumentator

from devproxy.config import ServerConfig
from devproxy.middleware import CORSHeadersMiddleware
from devproxy.proxy.forwarder import Forwarder
from devproxy.proxy.route import router as proxy_router
from devproxy.static import build_static_app
from devproxy.utils import redact_url
from devproxy.vars import OTLP_ENDPOINT, OTLP_HEADERS, SERVICE_NAME

logger = logging.getLogger("uvicorn.error")


class FilteringSpanExporter(SpanExporter):
    """
    Wrapper exporter that drops the ASGI body spans emitted for every chunk of
    a streamed file, so serving a large tileset does not flood the trace.
    """

    def __init__(self, exporter: SpanExporter):
        self.exporter = exporter

    def export(self, spans: Sequence[ReadableSpan]) -> SpanExportResult:
        filtered_spans = [
            span
            for span in spans
            if not (
                span.attributes
                and span.attributes.get("asgi.event.type") == "http.response.body"
            )
        ]
        if filtered_spans:
            return self.exporter.export(filtered_spans)
        return SpanExportResult.SUCCESS

    def shutdown(self):
        return self.exporter.shutdown()

    def force_flush(self, timeout_millis: int = 30000):
        return self.exporter.force_flush(timeout_millis)


trace.set_tracer_provider(
    TracerProvider(resource=Resource.create({"service.name": SERVICE_NAME}))
)
tracer_provider = trace.get_tracer_provider()
if OTLP_ENDPOINT:
    otlp_exporter = OTLPSpanExporter(
        endpoint=OTLP_ENDPOINT,
        # "key1=value1,key2=value2", parsed by the exporter
        headers=OTLP_HEADERS or None,
    )
    tracer_provider.add_span_processor(
        BatchSpanProcessor(FilteringSpanExporter(otlp_exporter))
    )

app_info = Info("devproxy_app_info", "Application Info")
app_info.info({"app_name": SERVICE_NAME})


def create_app(
    config: ServerConfig, forwarder: Optional[Forwarder] = None
) -> FastAPI:
    """
    Assemble the development server: CORS headers on everything, the proxy
    route under ``config.proxy_prefix`` and static files for every other path.
    """
    if forwarder is None:
        forwarder = Forwarder(
            upstream_proxy_url=config.proxy.upstream_proxy_url,
            timeout=config.proxy_timeout,
        )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if config.proxy.upstream_proxy_url:
            logger.info(
                f"Using upstream proxy {redact_url(config.proxy.upstream_proxy_url)}"
                f", bypassed for: {', '.join(sorted(config.proxy.bypass_hosts)) or '<none>'}"
            )
        try:
            yield
        finally:
            await forwarder.aclose()

    # /docs, /redoc and /openapi.json belong to the served tree
    app = FastAPI(lifespan=lifespan, docs_url=None, redoc_url=None, openapi_url=None)
    app.state.config = config
    app.state.forwarder = forwarder

    app.add_middleware(CORSHeadersMiddleware)

    if config.metrics_path:
        Instrumentator().instrument(app).expose(
            app, endpoint=config.metrics_path, include_in_schema=False
        )

    FastAPIInstrumentor.instrument_app(app, excluded_urls=config.metrics_path or "")

    app.include_router(proxy_router, prefix=config.proxy_prefix)
    app.mount("/", build_static_app(config.static_root), name="static")
    return app

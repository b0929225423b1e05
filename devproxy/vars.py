import os

SERVICE_NAME = os.getenv("SERVICE_NAME", "devproxy")
LOG_LEVEL = os.getenv("LOG_LEVEL", "info").lower()

HOST = os.environ.get("HOST", "")
PORT = int(os.environ.get("PORT", "8080"))
# Listen on all interfaces instead of localhost only
PUBLIC = os.environ.get("PUBLIC", "false").lower() == "true"

STATIC_ROOT = os.environ.get("STATIC_ROOT", os.getcwd())
# An empty prefix would put the proxy route on top of the static tree
PROXY_PREFIX = "/" + (os.environ.get("PROXY_PREFIX", "").strip("/") or "proxy")

UPSTREAM_PROXY = os.environ.get("UPSTREAM_PROXY", "") or None
BYPASS_UPSTREAM_PROXY_HOSTS = os.environ.get("BYPASS_UPSTREAM_PROXY_HOSTS", "")

# Unset means the outbound fetch may take as long as the remote needs
_proxy_timeout = os.environ.get("PROXY_TIMEOUT", "")
PROXY_TIMEOUT = float(_proxy_timeout) if _proxy_timeout else None

METRICS_PATH = os.getenv("METRICS_PATH", "/metrics")

OTLP_ENDPOINT = os.getenv("OTLP_ENDPOINT")
OTLP_HEADERS = os.getenv("OTLP_HEADERS", "")

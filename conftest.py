# Make `import devproxy` resolve to this checkout when tests run without an
# editable install.
import gzip
import os
import sys

import httpx
import pytest

SERVICE_ROOT = os.path.dirname(__file__)
if SERVICE_ROOT not in sys.path:
    sys.path.insert(0, SERVICE_ROOT)

from devproxy.config import ProxyConfig, ServerConfig  # noqa: E402
from devproxy.proxy.forwarder import Forwarder  # noqa: E402


@pytest.fixture
def static_root(tmp_path):
    """A served directory with gzipped and plain tiles next to ordinary files."""
    (tmp_path / "tiles").mkdir()
    (tmp_path / "tiles" / "0.b3dm").write_bytes(gzip.compress(b"b3dm tile payload"))
    (tmp_path / "tiles" / "1.b3dm").write_bytes(b"b3dm\x01\x00\x00\x00plain")
    (tmp_path / "tileset.json").write_bytes(gzip.compress(b'{"asset": {}}'))
    (tmp_path / "model.glb").write_bytes(b"glTF\x02\x00\x00\x00")
    (tmp_path / "shader.glsl").write_text("void main() {}")
    (tmp_path / "index.html").write_text("<html>dev</html>")
    return tmp_path


@pytest.fixture
def make_server_config(static_root):
    def _make(upstream_proxy_url=None, bypass_hosts=None, **overrides):
        kwargs = dict(
            static_root=str(static_root),
            metrics_path=None,
            proxy=ProxyConfig.build(upstream_proxy_url, bypass_hosts),
        )
        kwargs.update(overrides)
        return ServerConfig(**kwargs)

    return _make


@pytest.fixture
def make_forwarder():
    """Build a Forwarder whose outbound traffic goes to in-process handlers."""

    def _make(handler, proxy_handler=None, upstream_proxy_url=None):
        return Forwarder(
            upstream_proxy_url=upstream_proxy_url,
            transport=httpx.MockTransport(handler),
            proxy_transport=(
                httpx.MockTransport(proxy_handler) if proxy_handler else None
            ),
        )

    return _make

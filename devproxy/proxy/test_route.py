"""
End-to-end tests of the proxy route through the assembled application.

Outbound traffic is served by ``httpx.MockTransport`` handlers, so these
tests cover addressing, header filtering on both legs, upstream chaining and
error mapping without touching the network.
"""

import threading
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer

import httpx
import pytest
from fastapi.testclient import TestClient

from devproxy.factory import create_app
from devproxy.proxy.forwarder import ProxyResponse
from devproxy.proxy.headers import filter_headers
from devproxy.proxy.route import relay_response

UPSTREAM_PROXY_URL = "http://upstream-proxy.local:3128"


class RecordingRemote:
    """Fake remote server: records requests and answers with a fixed response."""

    def __init__(self, status_code=200, content=b"remote body", headers=None):
        self.status_code = status_code
        self.content = content
        self.headers = headers or {"Content-Type": "application/json"}
        self.requests = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return httpx.Response(
            self.status_code, headers=self.headers, content=self.content
        )


@pytest.fixture
def remote():
    return RecordingRemote()


@pytest.fixture
def client(make_server_config, make_forwarder, remote):
    app = create_app(make_server_config(), forwarder=make_forwarder(remote))
    with TestClient(app) as test_client:
        yield test_client


class TestAddressing:
    def test_path_form(self, client, remote):
        r = client.get("/proxy/example.com/data.json?foo=1")

        assert r.status_code == 200, r.text
        assert str(remote.requests[0].url) == "http://example.com/data.json?foo=1"

    def test_path_form_with_scheme(self, client, remote):
        r = client.get("/proxy/https://example.com/tiles/0/0/0.png")

        assert r.status_code == 200, r.text
        assert str(remote.requests[0].url) == "https://example.com/tiles/0/0/0.png"

    def test_path_form_embedded_query_replaced(self, client, remote):
        r = client.get("/proxy/example.com/data.json%3Fembedded%3D1?foo=1")

        assert r.status_code == 200, r.text
        assert remote.requests[0].url.query == b"foo=1"

    def test_query_form(self, client, remote):
        r = client.get("/proxy/?http%3A%2F%2Fexample.com%2Fdata.json%3Ffoo%3D1")

        assert r.status_code == 200, r.text
        sent = remote.requests[0].url
        assert sent.scheme == "http"
        assert sent.host == "example.com"
        assert sent.path == "/data.json"
        assert sent.query == b"foo=1"

    def test_no_target(self, client, remote):
        r = client.get("/proxy/")

        assert r.status_code == 400
        assert r.text == "No url specified."
        assert remote.requests == []

    def test_no_target_carries_cors(self, client):
        r = client.get("/proxy/")

        assert r.headers["access-control-allow-origin"] == "*"


class TestRelay:
    def test_status_body_and_headers_relayed(
        self, make_server_config, make_forwarder
    ):
        remote = RecordingRemote(
            status_code=207,
            content=b"\x00\x01\x02 exact bytes",
            headers=[
                ("Content-Type", "application/octet-stream"),
                ("X-Remote", "1"),
                ("Keep-Alive", "timeout=5"),
                ("Set-Cookie", "a=1"),
                ("Set-Cookie", "b=2"),
            ],
        )
        app = create_app(make_server_config(), forwarder=make_forwarder(remote))

        with TestClient(app) as client:
            r = client.get("/proxy/example.com/bin")

        assert r.status_code == 207
        assert r.content == b"\x00\x01\x02 exact bytes"
        assert r.headers["x-remote"] == "1"
        assert r.headers["content-type"] == "application/octet-stream"
        assert "keep-alive" not in r.headers
        assert r.headers.get_list("set-cookie") == ["a=1", "b=2"]

    @pytest.mark.parametrize("status_code", [404, 500, 502])
    def test_remote_error_status_is_data(
        self, make_server_config, make_forwarder, status_code
    ):
        remote = RecordingRemote(status_code=status_code, content=b"remote error page")
        app = create_app(make_server_config(), forwarder=make_forwarder(remote))

        with TestClient(app) as client:
            r = client.get("/proxy/example.com/missing")

        assert r.status_code == status_code
        assert r.content == b"remote error page"

    def test_echoed_headers_equal_filtered_request_headers(
        self, make_server_config, make_forwarder
    ):
        def echo(request: httpx.Request) -> httpx.Response:
            return httpx.Response(418, headers=request.headers.raw, content=b"echo")

        app = create_app(make_server_config(), forwarder=make_forwarder(echo))
        sent_headers = {
            "X-Requested-With": "XMLHttpRequest",
            "Accept": "application/json",
            "Proxy-Authorization": "Basic c2VjcmV0",
            "Upgrade": "h2c",
            "TE": "trailers",
        }

        with TestClient(app) as client:
            r = client.get("/proxy/example.com/echo", headers=sent_headers)

        assert r.status_code == 418
        assert r.content == b"echo"
        expected = filter_headers(sent_headers)
        for name, value in expected.items():
            assert r.headers[name] == value
        for name in ("proxy-authorization", "upgrade", "te", "host", "connection"):
            assert name not in r.headers

    def test_request_headers_filtered(self, client, remote):
        client.get(
            "/proxy/example.com/x",
            headers={
                "Proxy-Connection": "keep-alive",
                "Proxy-Authorization": "Basic c2VjcmV0",
                "X-Keep": "me",
            },
        )

        sent = remote.requests[0].headers
        assert sent["host"] == "example.com"
        assert sent["x-keep"] == "me"
        assert "proxy-connection" not in sent
        assert "proxy-authorization" not in sent

    def test_post_body_forwarded(self, client, remote):
        r = client.post("/proxy/example.com/upload", content=b"payload")

        assert r.status_code == 200
        assert remote.requests[0].method == "POST"
        assert remote.requests[0].content == b"payload"

    def test_remote_cors_headers_win(self, make_server_config, make_forwarder):
        remote = RecordingRemote(
            headers={"Access-Control-Allow-Origin": "https://app.example"}
        )
        app = create_app(make_server_config(), forwarder=make_forwarder(remote))

        with TestClient(app) as client:
            r = client.get("/proxy/example.com/x")

        assert r.headers.get_list("access-control-allow-origin") == [
            "https://app.example"
        ]
        assert "access-control-allow-headers" in r.headers


class TestTransportFailure:
    def test_connect_error_is_500(self, make_server_config, make_forwarder):
        def refuse(request):
            raise httpx.ConnectError("Connection refused", request=request)

        app = create_app(make_server_config(), forwarder=make_forwarder(refuse))

        with TestClient(app) as client:
            r = client.get("/proxy/unreachable.example/data.json")

        assert r.status_code == 500
        assert r.headers["access-control-allow-origin"] == "*"

    def test_timeout_is_500(self, make_server_config, make_forwarder):
        def hang(request):
            raise httpx.ReadTimeout("timed out", request=request)

        app = create_app(make_server_config(), forwarder=make_forwarder(hang))

        with TestClient(app) as client:
            r = client.get("/proxy/slow.example/")

        assert r.status_code == 500

    def test_unreachable_real_port_is_500(self, make_server_config):
        app = create_app(make_server_config())

        with TestClient(app) as client:
            r = client.get("/proxy/127.0.0.1:1/anything")

        assert r.status_code == 500


class TestUpstreamProxy:
    @pytest.fixture
    def routes(self, make_server_config, make_forwarder):
        direct = RecordingRemote(content=b"direct")
        chained = RecordingRemote(content=b"chained")
        app = create_app(
            make_server_config(
                upstream_proxy_url=UPSTREAM_PROXY_URL, bypass_hosts="lan1"
            ),
            forwarder=make_forwarder(
                direct, proxy_handler=chained, upstream_proxy_url=UPSTREAM_PROXY_URL
            ),
        )
        with TestClient(app) as client:
            yield client, direct, chained

    def test_bypassed_host_direct(self, routes):
        client, direct, chained = routes

        r = client.get("/proxy/lan1/tiles/0.png")

        assert r.content == b"direct"
        assert len(direct.requests) == 1
        assert chained.requests == []

    def test_other_host_chained(self, routes):
        client, direct, chained = routes

        r = client.get("/proxy/other.example/tiles/0.png")

        assert r.content == b"chained"
        assert len(chained.requests) == 1
        assert direct.requests == []

    def test_bypass_case_insensitive(self, routes):
        client, direct, chained = routes

        client.get("/proxy/http://LAN1/x")

        assert len(direct.requests) == 1


class RecordingHandler(BaseHTTPRequestHandler):
    """Answers every GET with the server's body and records the request line."""

    def do_GET(self):
        self.server.request_lines.append(self.requestline)
        body = self.server.body
        self.send_response(200)
        self.send_header("Content-Length", str(len(body)))
        self.end_headers()
        self.wfile.write(body)

    def log_message(self, format, *args):
        pass


@pytest.fixture
def serve():
    """Start loopback HTTP servers that record what they receive."""
    servers = []

    def _serve(body):
        server = ThreadingHTTPServer(("127.0.0.1", 0), RecordingHandler)
        server.body = body
        server.request_lines = []
        threading.Thread(target=server.serve_forever, daemon=True).start()
        servers.append(server)
        return server

    yield _serve

    for server in servers:
        server.shutdown()
        server.server_close()


class TestUpstreamProxyOverNetwork:
    @pytest.fixture
    def chain(self, make_server_config, serve):
        upstream = serve(b"chained")
        origin = serve(b"direct")
        upstream_url = f"http://127.0.0.1:{upstream.server_port}"
        app = create_app(
            make_server_config(
                upstream_proxy_url=upstream_url, bypass_hosts="127.0.0.1"
            )
        )
        with TestClient(app) as client:
            yield client, upstream, origin

    def test_other_host_sent_through_upstream(self, chain):
        client, upstream, origin = chain

        r = client.get("/proxy/other.example/x?y=1")

        assert r.status_code == 200
        assert r.content == b"chained"
        assert upstream.request_lines == ["GET http://other.example/x?y=1 HTTP/1.1"]
        assert origin.request_lines == []

    def test_bypassed_host_never_reaches_upstream(self, chain):
        client, upstream, origin = chain

        r = client.get(f"/proxy/127.0.0.1:{origin.server_port}/tiles/0.png")

        assert r.status_code == 200
        assert r.content == b"direct"
        assert origin.request_lines == ["GET /tiles/0.png HTTP/1.1"]
        assert upstream.request_lines == []


class TestRelayResponse:
    def test_content_length_added_when_missing(self):
        response = relay_response(
            ProxyResponse(status_code=200, headers=httpx.Headers(), content=b"abc")
        )

        assert (b"content-length", b"3") in response.raw_headers

    def test_remote_content_length_kept(self):
        response = relay_response(
            ProxyResponse(
                status_code=200,
                headers=httpx.Headers({"Content-Length": "3"}),
                content=b"abc",
            )
        )

        lengths = [v for k, v in response.raw_headers if k == b"content-length"]
        assert lengths == [b"3"]

    def test_not_modified_has_no_length(self):
        response = relay_response(
            ProxyResponse(status_code=304, headers=httpx.Headers({"ETag": '"x"'}))
        )

        assert response.raw_headers == [(b"etag", b'"x"')]
        assert response.body == b""

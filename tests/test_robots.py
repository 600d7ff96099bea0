import threading
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer

import pytest

from sitecrawler.robots import (
    USER_AGENT,
    Response,
    RobotsDisallowed,
    check_robots,
    send_request,
)

ROBOTS = b"User-agent: *\nDisallow: /private\n"


class _Recorder:
    def __init__(self, response_for):
        self.requested = []
        self._response_for = response_for

    def __call__(self, url):
        self.requested.append(url)
        return self._response_for(url)


def _ok(body):
    return _Recorder(lambda url: Response(url=url, status=200, body=body))


def test_allowed_url_is_returned():
    fetch = _ok(ROBOTS)
    assert check_robots("https://example.com/public/page", fetch) == "https://example.com/public/page"
    assert fetch.requested == ["https://example.com/robots.txt"]


def test_disallowed_url_raises():
    with pytest.raises(RobotsDisallowed) as info:
        check_robots("https://example.com/private/page", _ok(ROBOTS))
    assert info.value.url == "https://example.com/private/page"


def test_robots_url_keeps_port_and_drops_userinfo():
    fetch = _ok(b"")
    check_robots("http://user@localhost:8080/x?q=1", fetch)
    assert fetch.requested == ["http://localhost:8080/robots.txt"]


def test_client_error_allows_all():
    fetch = _Recorder(lambda url: Response(url=url, status=404))
    assert check_robots("https://example.com/private", fetch) == "https://example.com/private"


def test_server_error_disallows_all():
    fetch = _Recorder(lambda url: Response(url=url, status=503))
    with pytest.raises(RobotsDisallowed):
        check_robots("https://example.com/anything", fetch)


def test_unexpected_status_raises_value_error():
    fetch = _Recorder(lambda url: Response(url=url, status=302))
    with pytest.raises(ValueError):
        check_robots("https://example.com/a", fetch)


@pytest.mark.parametrize("uri", ["", "example.com/no-scheme", "https:///path-only", "/relative"])
def test_invalid_uri_raises(uri):
    fetch = _ok(ROBOTS)
    with pytest.raises(ValueError):
        check_robots(uri, fetch)
    assert fetch.requested == []


def test_fetch_errors_propagate():
    def failing(url):
        raise ConnectionError("unreachable")

    with pytest.raises(ConnectionError):
        check_robots("https://example.com/a", failing)


class _Handler(BaseHTTPRequestHandler):
    def do_GET(self):
        if self.path == "/missing":
            self.send_response(404)
            self.end_headers()
            self.wfile.write(b"gone")
            return
        body = self.headers.get("User-Agent", "").encode()
        self.send_response(200)
        self.send_header("Content-Length", str(len(body)))
        self.end_headers()
        self.wfile.write(body)

    def log_message(self, format, *args):
        pass


@pytest.fixture
def server():
    httpd = ThreadingHTTPServer(("127.0.0.1", 0), _Handler)
    thread = threading.Thread(target=httpd.serve_forever, daemon=True)
    thread.start()
    try:
        yield f"http://127.0.0.1:{httpd.server_address[1]}"
    finally:
        httpd.shutdown()
        httpd.server_close()


def test_send_request_sets_user_agent(server):
    response = send_request(f"{server}/echo", timeout=5)
    assert response.status == 200
    assert response.body == USER_AGENT.encode()


def test_send_request_returns_error_status(server):
    response = send_request(f"{server}/missing", timeout=5)
    assert response.status == 404
    assert response.body == b"gone"


def test_send_request_rejects_malformed_url():
    with pytest.raises(ValueError):
        send_request("not a url")
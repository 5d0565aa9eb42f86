import threading
import time
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer

import httpx
import pytest
from bluescan.models import ErrorKind, FindingSource, ResolverError, SoftwareRecord
from bluescan.nvd import NvdResolver, build_query

EMPTY_BODY = b'{"vulnerabilities": []}'


class TrickleStream(httpx.SyncByteStream):
    def __init__(self, body, delay):
        self.body = body
        self.delay = delay

    def __iter__(self):
        for byte in self.body:
            time.sleep(self.delay)
            yield bytes([byte])


class TrickleHandler(BaseHTTPRequestHandler):
    delay = 0.1

    def do_GET(self):
        self.send_response(200)
        self.send_header("Content-Type", "application/json")
        self.send_header("Content-Length", str(len(EMPTY_BODY)))
        self.end_headers()
        for byte in EMPTY_BODY:
            try:
                self.wfile.write(bytes([byte]))
                self.wfile.flush()
            except OSError:
                return
            time.sleep(self.delay)

    def log_message(self, format, *args):
        pass


@pytest.fixture
def trickle_server(monkeypatch):
    for name in ("HTTP_PROXY", "HTTPS_PROXY", "ALL_PROXY", "http_proxy", "https_proxy", "all_proxy"):
        monkeypatch.delenv(name, raising=False)
    server = ThreadingHTTPServer(("127.0.0.1", 0), TrickleHandler)
    server.daemon_threads = True
    thread = threading.Thread(target=server.serve_forever, daemon=True)
    thread.start()
    yield f"http://127.0.0.1:{server.server_address[1]}/rest/json/cves/2.0"
    server.shutdown()
    server.server_close()


def make_resolver(mock_client, fake, timeout_seconds=15.0):
    return NvdResolver(url="https://nvd.test/cves/2.0", timeout_seconds=timeout_seconds, client=mock_client(fake))


def test_build_query():
    assert build_query(SoftwareRecord(name="Apache HTTP Server", version="2.4.49")) == "Apache HTTP Server 2.4.49"
    assert build_query(SoftwareRecord(name="Notepad++")) == "Notepad++"


def test_resolve_returns_findings(mock_client, fake_nvd_cls, make_nvd_cve):
    fake = fake_nvd_cls(payload={"vulnerabilities": [
        make_nvd_cve("CVE-2021-41773", "Path traversal", 7.5, "CVSS:3.1/AV:N/AC:L/PR:N/UI:N/S:U/C:H/I:N/A:N"),
        make_nvd_cve("CVE-2021-42013", "Path traversal fix incomplete"),
    ]})
    with make_resolver(mock_client, fake) as resolver:
        findings = resolver.resolve("Apache HTTP Server 2.4.49")
    assert fake.queries == ["Apache HTTP Server 2.4.49"]
    assert [finding.id for finding in findings] == ["CVE-2021-41773", "CVE-2021-42013"]
    assert all(finding.source is FindingSource.NVD for finding in findings)
    assert findings[1].cvss_score is None


def test_resolve_without_vulnerabilities(mock_client, fake_nvd_cls):
    fake = fake_nvd_cls(payload={"resultsPerPage": 0, "totalResults": 0})
    with make_resolver(mock_client, fake) as resolver:
        assert resolver.resolve("Nothing Here 1.0") == []


def test_invalid_json_keeps_url_and_body(mock_client, fake_nvd_cls):
    fake = fake_nvd_cls(text="<html>Service Unavailable</html>")
    with make_resolver(mock_client, fake) as resolver:
        with pytest.raises(ResolverError) as excinfo:
            resolver.resolve("curl 8.0")
    error = excinfo.value
    assert error.kind is ErrorKind.PARSE_ERROR
    assert error.body == "<html>Service Unavailable</html>"
    assert "keywordSearch=curl" in error.url


def test_schema_mismatch_is_parse_error(mock_client, fake_nvd_cls):
    fake = fake_nvd_cls(payload={"vulnerabilities": [{"cve": {"id": "CVE-1"}}]})
    with make_resolver(mock_client, fake) as resolver:
        with pytest.raises(ResolverError) as excinfo:
            resolver.resolve("curl 8.0")
    assert excinfo.value.kind is ErrorKind.PARSE_ERROR
    assert '"CVE-1"' in excinfo.value.body


def test_timeout(mock_client, fake_nvd_cls):
    fake = fake_nvd_cls(error=httpx.ReadTimeout)
    with make_resolver(mock_client, fake) as resolver:
        with pytest.raises(ResolverError) as excinfo:
            resolver.resolve("curl 8.0")
    assert excinfo.value.kind is ErrorKind.TIMEOUT
    assert str(excinfo.value) == "NVD request timed out after 15 seconds"


def test_timeout_override(mock_client, fake_nvd_cls):
    fake = fake_nvd_cls(error=httpx.ConnectTimeout)
    with make_resolver(mock_client, fake) as resolver:
        with pytest.raises(ResolverError) as excinfo:
            resolver.resolve("curl 8.0", timeout_seconds=2.5)
    assert str(excinfo.value) == "NVD request timed out after 2.5 seconds"


def test_rate_limited(mock_client, fake_nvd_cls):
    fake = fake_nvd_cls(status=403, text="Forbidden")
    with make_resolver(mock_client, fake) as resolver:
        with pytest.raises(ResolverError) as excinfo:
            resolver.resolve("curl 8.0")
    assert excinfo.value.kind is ErrorKind.RATE_LIMITED
    assert excinfo.value.body == "Forbidden"


def test_network_error(mock_client, fake_nvd_cls):
    fake = fake_nvd_cls(error=httpx.ConnectError)
    with make_resolver(mock_client, fake) as resolver:
        with pytest.raises(ResolverError) as excinfo:
            resolver.resolve("curl 8.0")
    assert excinfo.value.kind is ErrorKind.NETWORK_ERROR


def test_api_key_header():
    resolver = NvdResolver(api_key="secret")
    try:
        assert resolver._client.headers["apiKey"] == "secret"
    finally:
        resolver.close()


def test_trickling_body_hits_total_timeout(mock_client):
    def handler(request):
        return httpx.Response(200, stream=TrickleStream(EMPTY_BODY, 0.05))

    started = time.monotonic()
    with make_resolver(mock_client, handler, timeout_seconds=0.3) as resolver:
        with pytest.raises(ResolverError) as excinfo:
            resolver.resolve("curl 8.0")
    assert excinfo.value.kind is ErrorKind.TIMEOUT
    assert str(excinfo.value) == "NVD request timed out after 0.3 seconds"
    assert time.monotonic() - started < 1.0


def test_stalled_response_is_abandoned_at_timeout(mock_client):
    def handler(request):
        time.sleep(1.0)
        return httpx.Response(200, content=EMPTY_BODY)

    started = time.monotonic()
    with make_resolver(mock_client, handler, timeout_seconds=0.2) as resolver:
        with pytest.raises(ResolverError) as excinfo:
            resolver.resolve("curl 8.0")
    assert excinfo.value.kind is ErrorKind.TIMEOUT
    assert time.monotonic() - started < 0.8


def test_trickling_server_is_cut_off(trickle_server):
    # the server needs about 2.3 s for the whole body while every single read is quick
    started = time.monotonic()
    with NvdResolver(url=trickle_server, timeout_seconds=0.5) as resolver:
        with pytest.raises(ResolverError) as excinfo:
            resolver.resolve("curl 8.0")
    assert excinfo.value.kind is ErrorKind.TIMEOUT
    assert str(excinfo.value) == "NVD request timed out after 0.5 seconds"
    assert time.monotonic() - started < 1.5


def test_fast_server_answers_within_timeout(trickle_server, monkeypatch):
    monkeypatch.setattr(TrickleHandler, "delay", 0)
    with NvdResolver(url=trickle_server, timeout_seconds=5.0) as resolver:
        assert resolver.resolve("curl 8.0") == []

"""
Shared fakes for the OSV and NVD wire protocols.
"""
import json

import httpx
import pytest


class FakeOsv:
    """Answers OSV queries from a ``{(name, ecosystem): [vuln, ...]}`` table.

    ``failures`` maps the same keys (or ``"*"`` for every query) to either an
    HTTP status code or an exception class to raise.
    """

    def __init__(self, hits=None, failures=None):
        self.hits = hits or {}
        self.failures = failures or {}
        self.calls = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content)
        key = (body["package"]["name"], body["package"]["ecosystem"])
        self.calls.append({"key": key, "body": body})
        failure = self.failures.get(key, self.failures.get("*"))
        if isinstance(failure, int):
            return httpx.Response(failure, text="upstream error")
        if failure is not None:
            raise failure("simulated failure", request=request)
        vulns = self.hits.get(key)
        return httpx.Response(200, json={"vulns": vulns} if vulns else {})

    @property
    def keys(self):
        return [call["key"] for call in self.calls]


class FakeNvd:
    def __init__(self, payload=None, status=200, text=None, error=None):
        self.payload = payload if payload is not None else {"vulnerabilities": []}
        self.status = status
        self.text = text
        self.error = error
        self.requests = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.error is not None:
            raise self.error("simulated failure", request=request)
        if self.text is not None:
            return httpx.Response(self.status, text=self.text)
        return httpx.Response(self.status, json=self.payload)

    @property
    def queries(self):
        return [request.url.params.get("keywordSearch") for request in self.requests]


@pytest.fixture
def mock_client():
    clients = []

    def _factory(handler):
        client = httpx.Client(transport=httpx.MockTransport(handler))
        clients.append(client)
        return client

    yield _factory
    for client in clients:
        client.close()


@pytest.fixture
def fake_osv_cls():
    return FakeOsv


@pytest.fixture
def fake_nvd_cls():
    return FakeNvd


def nvd_cve(cve_id, description, score=None, vector=None):
    cve = {"id": cve_id, "descriptions": [{"lang": "en", "value": description}]}
    if score is not None:
        cve["metrics"] = {"cvssMetricV31": [{"cvssData": {"baseScore": score, "vectorString": vector}}]}
    return {"cve": cve}


@pytest.fixture
def make_nvd_cve():
    return nvd_cve

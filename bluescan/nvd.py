from __future__ import annotations

import logging
import time
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError

import httpx
from pydantic import ValidationError

from bluescan.client import build_client, request_json
from bluescan.models import ErrorKind, Finding, ResolverError, SoftwareRecord
from bluescan.normalizer import normalize_nvd

LOGGER = logging.getLogger(__name__)

NVD_CVE_URL = "https://services.nvd.nist.gov/rest/json/cves/2.0"
NVD_TIMEOUT_SECONDS = 15.0


def build_query(record: SoftwareRecord) -> str:
    return f"{record.name} {record.version or ''}".strip()


class NvdResolver:
    """Keyword search against the NVD CVE API.

    Unlike OSV lookups, a failed NVD call is the only answer the record gets,
    so every failure is raised to the caller and the raw body of a malformed
    response is logged together with the request URL.

    Each call runs on a worker thread and is abandoned once its timeout has
    elapsed in wall-clock time, whatever phase the request is in.
    """

    def __init__(
        self,
        url: str = NVD_CVE_URL,
        timeout_seconds: float = NVD_TIMEOUT_SECONDS,
        api_key: str | None = None,
        client: httpx.Client | None = None,
    ) -> None:
        self.url = url
        self.timeout_seconds = timeout_seconds
        headers = {"apiKey": api_key} if api_key else None
        self._client = client or build_client(timeout_seconds, headers=headers)
        # an abandoned call may still be finishing while the next one starts
        self._executor = ThreadPoolExecutor(max_workers=2, thread_name_prefix="nvd-request")

    def close(self) -> None:
        self._executor.shutdown(wait=False, cancel_futures=True)
        self._client.close()

    def __enter__(self) -> "NvdResolver":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def _timed_out(self, query: str, timeout: float, url: str | None) -> ResolverError:
        LOGGER.error("NVD request for %r timed out after %s seconds", query, timeout)
        return ResolverError(ErrorKind.TIMEOUT, f"NVD request timed out after {timeout:g} seconds", url=url)

    def resolve(self, query: str, timeout_seconds: float | None = None) -> list[Finding]:
        timeout = self.timeout_seconds if timeout_seconds is None else timeout_seconds
        future = self._executor.submit(
            request_json,
            self._client,
            "GET",
            self.url,
            params={"keywordSearch": query},
            timeout_seconds=timeout,
            deadline=time.monotonic() + timeout,
        )
        try:
            reply = future.result(timeout=timeout)
        except FutureTimeoutError as exc:
            future.cancel()
            raise self._timed_out(query, timeout, self.url) from exc
        except ResolverError as exc:
            if exc.kind is ErrorKind.TIMEOUT:
                raise self._timed_out(query, timeout, exc.url) from exc
            if exc.kind is ErrorKind.PARSE_ERROR:
                LOGGER.error("NVD API error\nURL: %s\nRaw body:\n%s\nJSON error: %s", exc.url, exc.body, exc)
            else:
                LOGGER.error("NVD request for %r failed: %s", query, exc)
            raise

        try:
            findings = normalize_nvd(reply.data)
        except ValidationError as exc:
            LOGGER.error("NVD API error\nURL: %s\nRaw body:\n%s\nSchema error: %s", reply.url, reply.body, exc)
            raise ResolverError(
                ErrorKind.PARSE_ERROR,
                f"NVD response does not match schema: {exc}",
                url=reply.url,
                body=reply.body,
            ) from exc

        LOGGER.info("NVD: %s vulnerabilities for %r", len(findings), query)
        return findings

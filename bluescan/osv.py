from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Iterable, Iterator

import httpx
from pydantic import ValidationError

from bluescan.client import build_client, request_json
from bluescan.ecosystems import ECOSYSTEM_CATALOG, guess_ecosystems, name_variations
from bluescan.models import Ecosystem, ErrorKind, Finding, FindingSource, ResolverError, ScanOutcome
from bluescan.normalizer import normalize_osv
from bluescan.schemas import OsvPackage, OsvQuery

LOGGER = logging.getLogger(__name__)

OSV_QUERY_URL = "https://api.osv.dev/v1/query"
OSV_TIMEOUT_SECONDS = 10.0


class Strategy(str, Enum):
    GUESSED = "guessed"
    SWEEP = "sweep"
    VARIATION = "variation"


@dataclass(frozen=True)
class OsvCandidate:
    strategy: Strategy
    name: str
    ecosystem: Ecosystem


def iter_candidates(
    name: str,
    guessed: list[Ecosystem],
    catalog: Iterable[Ecosystem] = ECOSYSTEM_CATALOG,
) -> Iterator[OsvCandidate]:
    """Yield every ``(name, ecosystem)`` pair in the order OSV should be asked.

    Guessed ecosystems come first, then the rest of the catalog, then the whole
    catalog again for each usable name variation. Consumers stop early, so
    later pairs are never computed once a lookup hits.
    """
    catalog = tuple(catalog)
    for ecosystem in guessed:
        yield OsvCandidate(Strategy.GUESSED, name, ecosystem)
    for ecosystem in catalog:
        if ecosystem not in guessed:
            yield OsvCandidate(Strategy.SWEEP, name, ecosystem)
    lowered = name.lower()
    for variant in name_variations(name):
        if variant in (name, lowered):
            continue
        for ecosystem in catalog:
            yield OsvCandidate(Strategy.VARIATION, variant, ecosystem)


class OsvResolver:
    def __init__(
        self,
        url: str = OSV_QUERY_URL,
        timeout_seconds: float = OSV_TIMEOUT_SECONDS,
        ecosystems: Iterable[Ecosystem] | None = None,
        client: httpx.Client | None = None,
    ) -> None:
        self.url = url
        self.ecosystems: tuple[Ecosystem, ...] = tuple(ecosystems) if ecosystems is not None else ECOSYSTEM_CATALOG
        self._client = client or build_client(timeout_seconds)

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> "OsvResolver":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def query(self, name: str, ecosystem: Ecosystem, version: str | None = None) -> list[Finding]:
        body = OsvQuery(package=OsvPackage(name=name, ecosystem=ecosystem.value), version=version or None)
        reply = request_json(self._client, "POST", self.url, payload=body.model_dump(exclude_none=True))
        try:
            return normalize_osv(reply.data)
        except ValidationError as exc:
            raise ResolverError(
                ErrorKind.PARSE_ERROR,
                f"OSV response does not match schema: {exc}",
                url=reply.url,
                body=reply.body,
            ) from exc

    def resolve(self, name: str, version: str | None = None) -> ScanOutcome:
        guessed = guess_ecosystems(name)
        guessed_answered = False
        any_answered = False
        attempted = 0
        last_error: ResolverError | None = None

        for candidate in iter_candidates(name, guessed, self.ecosystems):
            attempted += 1
            try:
                findings = self.query(candidate.name, candidate.ecosystem, version)
            except ResolverError as exc:
                LOGGER.warning(
                    "OSV lookup failed for %s in %s (%s): %s",
                    candidate.name,
                    candidate.ecosystem.value,
                    exc.kind.value,
                    exc,
                )
                last_error = exc
                continue

            any_answered = True
            if candidate.strategy is Strategy.GUESSED:
                guessed_answered = True
            if not findings:
                LOGGER.debug("OSV: no vulnerabilities for %s in %s", candidate.name, candidate.ecosystem.value)
                continue

            LOGGER.info(
                "OSV: %s vulnerabilities for %s in %s (%s pass)",
                len(findings),
                candidate.name,
                candidate.ecosystem.value,
                candidate.strategy.value,
            )
            return ScanOutcome.vulnerable(
                findings,
                source=FindingSource.OSV,
                ecosystem=candidate.ecosystem,
                matched_name=candidate.name if candidate.strategy is Strategy.VARIATION else None,
            )

        if guessed_answered:
            return ScanOutcome.safe(FindingSource.OSV)
        if any_answered:
            return ScanOutcome.unchecked(f"Program '{name}' was checked but not able to verify ecosystem")
        if last_error is not None:
            LOGGER.warning("OSV could not answer any of %s lookups for %s", attempted, name)
            return ScanOutcome.failed(last_error, FindingSource.OSV)
        return ScanOutcome.unchecked(
            f"Program '{name}' is not in any known package ecosystem (npm, PyPI, NuGet, etc.)"
        )

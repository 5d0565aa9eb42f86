from __future__ import annotations

import dataclasses
import logging
import time
from dataclasses import dataclass
from typing import Callable

from bluescan.models import (
    FindingSource,
    OutcomeStatus,
    ResolverError,
    ScanOutcome,
    SoftwareRecord,
)
from bluescan.nvd import NVD_TIMEOUT_SECONDS, NvdResolver, build_query
from bluescan.osv import OsvResolver

LOGGER = logging.getLogger(__name__)

NVD_DELAY_SECONDS = 6.0


@dataclass(frozen=True)
class ScanPolicy:
    primary: FindingSource = FindingSource.OSV
    fallback: bool = True
    pace_first_call: bool = False

    @classmethod
    def for_mode(cls, mode: str) -> "ScanPolicy":
        mode = (mode or "").lower()
        if mode == "hybrid":
            return cls(primary=FindingSource.OSV, fallback=True)
        if mode == "osv":
            return cls(primary=FindingSource.OSV, fallback=False)
        if mode == "nvd":
            return cls(primary=FindingSource.NVD, fallback=True, pace_first_call=True)
        raise ValueError(f"Unsupported scan mode: {mode}")

    @property
    def uses_osv(self) -> bool:
        return self.primary is FindingSource.OSV

    @property
    def uses_nvd(self) -> bool:
        return self.primary is FindingSource.NVD or self.fallback


class NvdPacer:
    """Keeps NVD calls at least ``delay_seconds`` apart within one run.

    Unauthenticated NVD clients get roughly five requests per 30 seconds.
    """

    def __init__(
        self,
        delay_seconds: float = NVD_DELAY_SECONDS,
        pace_first_call: bool = False,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.delay_seconds = delay_seconds
        self.pace_first_call = pace_first_call
        self.calls = 0
        self._sleep = sleep

    def wait(self) -> float:
        self.calls += 1
        if self.calls == 1 and not self.pace_first_call:
            return 0.0
        if self.delay_seconds > 0:
            LOGGER.info("Waiting %s seconds (NVD rate limit)", self.delay_seconds)
            self._sleep(self.delay_seconds)
        return self.delay_seconds


class HybridOrchestrator:
    """Resolves one record at a time: OSV first, NVD only when OSV cannot tell.

    OSV ``Vulnerable`` and ``Safe`` verdicts are final. ``Unchecked`` and
    ``Failed`` records move on to NVD when the policy allows a fallback.
    Resolver failures never escape :meth:`scan`; they become ``Failed``
    outcomes.
    """

    def __init__(
        self,
        osv: OsvResolver | None,
        nvd: NvdResolver | None,
        policy: ScanPolicy | None = None,
        pacer: NvdPacer | None = None,
        nvd_timeout_seconds: float = NVD_TIMEOUT_SECONDS,
    ) -> None:
        self.policy = policy or ScanPolicy()
        if self.policy.uses_osv and osv is None:
            raise ValueError("OSV resolver required for an OSV-first policy")
        if self.policy.uses_nvd and nvd is None:
            raise ValueError("NVD resolver required when NVD may be queried")
        self.osv = osv
        self.nvd = nvd
        self.pacer = pacer or NvdPacer(pace_first_call=self.policy.pace_first_call)
        self.nvd_timeout_seconds = nvd_timeout_seconds

    def close(self) -> None:
        for resolver in (self.osv, self.nvd):
            if resolver is not None:
                resolver.close()

    def __enter__(self) -> "HybridOrchestrator":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def scan(self, record: SoftwareRecord) -> ScanOutcome:
        if self.policy.uses_osv:
            outcome = self._try_osv(record)
            if outcome.status in (OutcomeStatus.VULNERABLE, OutcomeStatus.SAFE):
                return outcome
            if not self.policy.fallback:
                return outcome
            LOGGER.info("OSV could not classify %s (%s); falling back to NVD", record.name, outcome.status.value)
        return self._fallback_to_nvd(record)

    def _try_osv(self, record: SoftwareRecord) -> ScanOutcome:
        LOGGER.debug("Starting OSV scan for %s %s", record.name, record.display_version)
        return self.osv.resolve(record.name, record.version)

    def _fallback_to_nvd(self, record: SoftwareRecord) -> ScanOutcome:
        self.pacer.wait()
        query = build_query(record)
        try:
            findings = self.nvd.resolve(query, timeout_seconds=self.nvd_timeout_seconds)
        except ResolverError as exc:
            outcome = ScanOutcome.failed(exc, FindingSource.NVD)
        else:
            if findings:
                outcome = ScanOutcome.vulnerable(findings, source=FindingSource.NVD)
            else:
                outcome = ScanOutcome.safe(FindingSource.NVD)
        return dataclasses.replace(outcome, nvd_checked=True)

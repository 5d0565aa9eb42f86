from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Iterable

from bluescan.hybrid import HybridOrchestrator
from bluescan.models import OutcomeStatus, RecordResult, ScanOutcome, ScanSummary, SoftwareRecord
from bluescan.storage import write_text_report

LOGGER = logging.getLogger(__name__)

DEFAULT_REPORT_PATH = "vulnerable.txt"


@dataclass
class ScanSession:
    counts: dict[OutcomeStatus, int] = field(default_factory=lambda: {status: 0 for status in OutcomeStatus})
    findings: list[str] = field(default_factory=list)
    results: list[RecordResult] = field(default_factory=list)
    processed: int = 0
    nvd_checked: int = 0

    def record(self, record: SoftwareRecord, outcome: ScanOutcome) -> RecordResult:
        self.processed += 1
        self.counts[outcome.status] += 1
        if outcome.nvd_checked:
            self.nvd_checked += 1
        if outcome.status is OutcomeStatus.VULNERABLE:
            self.findings.extend(outcome.rendered_findings())
        result = RecordResult(record=record, outcome=outcome, index=self.processed)
        self.results.append(result)
        return result

    def summary(self) -> ScanSummary:
        return ScanSummary(
            processed=self.processed,
            vulnerable=self.counts[OutcomeStatus.VULNERABLE],
            safe=self.counts[OutcomeStatus.SAFE],
            unchecked=self.counts[OutcomeStatus.UNCHECKED],
            failed=self.counts[OutcomeStatus.FAILED],
            nvd_checked=self.nvd_checked,
        )

    def needs_coverage_warning(self) -> bool:
        classified = self.counts[OutcomeStatus.SAFE] + self.counts[OutcomeStatus.VULNERABLE]
        return (
            self.counts[OutcomeStatus.UNCHECKED] > classified
            or self.counts[OutcomeStatus.FAILED] > classified
        )

    def write_report(self, path: str | Path = DEFAULT_REPORT_PATH) -> Path:
        return write_text_report(path, self.findings)

    def to_dict(self) -> dict:
        return {
            "summary": self.summary().to_dict(),
            "results": [result.to_dict() for result in self.results],
        }


def scan_records(
    records: Iterable[SoftwareRecord],
    orchestrator: HybridOrchestrator,
    session: ScanSession | None = None,
    on_result: Callable[[RecordResult], None] | None = None,
) -> ScanSession:
    """Run ``orchestrator`` over ``records`` in order and fold every outcome.

    Records are resolved one after the other. An exception raised while
    consuming ``records`` (or an interrupt) leaves already folded outcomes in
    ``session``.
    """
    if session is None:
        session = ScanSession()
    for record in records:
        LOGGER.info("[%s] Scanning %s %s", session.processed + 1, record.name, record.display_version)
        outcome = orchestrator.scan(record)
        result = session.record(record, outcome)
        if on_result is not None:
            on_result(result)
    LOGGER.info("Scan finished: %s", session.summary().to_dict())
    return session

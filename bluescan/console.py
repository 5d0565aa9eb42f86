"""Terminal output for scan runs: ANSI colors, per-record lines and the run summary."""
from __future__ import annotations

import sys
from typing import TextIO

from bluescan.models import OutcomeStatus, RecordResult, ScanSummary, SoftwareRecord


class Colors:
    RESET = "\033[0m"
    BOLD = "\033[1m"
    DIM = "\033[2m"

    RED = "\033[31m"
    GREEN = "\033[32m"
    YELLOW = "\033[33m"
    BLUE = "\033[34m"
    MAGENTA = "\033[35m"
    CYAN = "\033[36m"
    WHITE = "\033[97m"


COVERAGE_WARNING = (
    "Some or most programs could not be verified because they're not found in likely package ecosystems.\n"
    "OSV primarily covers open-source packages from npm, PyPI, Maven, etc.\n"
    "For comprehensive application scanning, consider the NVD or hybrid mode."
)


class Console:
    def __init__(self, stream: TextIO | None = None, color: bool | None = None) -> None:
        self.stream = stream or sys.stdout
        if color is None:
            color = hasattr(self.stream, "isatty") and self.stream.isatty()
        self.color = color

    def _paint(self, text: str, *codes: str) -> str:
        if not self.color or not codes:
            return text
        return f"{''.join(codes)}{text}{Colors.RESET}"

    def _print(self, text: str = "") -> None:
        print(text, file=self.stream)

    def section(self, title: str) -> None:
        rule = self._paint("=" * 70, Colors.BOLD, Colors.CYAN)
        self._print()
        self._print(rule)
        self._print(self._paint(title.center(70), Colors.BOLD, Colors.CYAN))
        self._print(rule)

    def success(self, message: str) -> None:
        self._print(self._paint(f"✓ {message}", Colors.GREEN))

    def info(self, message: str) -> None:
        self._print(self._paint(f"ℹ {message}", Colors.BLUE))

    def warning(self, message: str) -> None:
        self._print(self._paint(f"⚠ {message}", Colors.YELLOW))

    def error(self, message: str) -> None:
        self._print(self._paint(f"✗ {message}", Colors.RED))

    def program(self, record: SoftwareRecord) -> None:
        name = self._paint(record.name, Colors.MAGENTA)
        self._print(f"{name} - {record.version or 'N/A'}")

    def record_result(self, result: RecordResult, total: int | None = None) -> None:
        record = result.record
        outcome = result.outcome
        position = f"[{result.index}/{total}]" if total else f"[{result.index}]"
        title = self._paint(f"{record.name} {self._paint(record.display_version, Colors.DIM)}", Colors.BOLD)
        self._print(f"\n{position} {title}")

        source = outcome.source.value if outcome.source else "-"
        if outcome.status is OutcomeStatus.VULNERABLE:
            via = f" (as '{outcome.matched_name}')" if outcome.matched_name else ""
            self._print(f"  {self._paint('⚠', Colors.RED)} {source}: Found {len(outcome.findings)} vulnerabilities{via}")
            for rendered in outcome.rendered_findings():
                self._print(f"    {self._paint(rendered, Colors.YELLOW)}")
        elif outcome.status is OutcomeStatus.SAFE:
            self._print(f"  {self._paint('✓', Colors.GREEN)} {source}: No known vulnerabilities")
        elif outcome.status is OutcomeStatus.UNCHECKED:
            self._print(f"  {self._paint('○', Colors.DIM)} {source}: {outcome.reason}")
        else:
            detail = str(outcome.error) if outcome.error else "unknown error"
            self._print(f"  {self._paint('✗', Colors.RED)} {source}: could not check ({self._paint(detail, Colors.DIM)})")
            if outcome.error is not None and outcome.error.body:
                self._print(f"    URL: {outcome.error.url}")
                self._print(f"    Raw body: {outcome.error.body}")

    def summary(self, summary: ScanSummary, findings: list[str], coverage_warning: bool) -> None:
        vulnerable_color = Colors.RED if summary.vulnerable else Colors.GREEN
        self.section("Scan Complete!")
        self._print(f"Total programs scanned: {summary.processed}")
        self._print(f"Vulnerable programs: {self._paint(str(summary.vulnerable), vulnerable_color)}")
        self._print(f"Safe programs: {self._paint(str(summary.safe), Colors.GREEN)}")
        self._print(f"Unverified programs: {self._paint(str(summary.unchecked), Colors.YELLOW)}")
        if summary.failed:
            self._print(f"Could not check: {self._paint(str(summary.failed), Colors.RED)}")
        self._print(f"Programs checked with NVD: {self._paint(str(summary.nvd_checked), Colors.CYAN)}")
        if findings:
            self._print("Vulnerable programs:")
            for rendered in findings:
                self._print(rendered)
        if coverage_warning:
            self._print()
            self._print(self._paint("⚠ WARNING:", Colors.BOLD, Colors.YELLOW))
            self._print(COVERAGE_WARNING)

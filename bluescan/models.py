from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).replace(microsecond=0).isoformat()


class Ecosystem(str, Enum):
    PYPI = "PyPI"
    NPM = "npm"
    NUGET = "NuGet"
    MAVEN = "Maven"
    CRATES_IO = "crates.io"
    GO = "Go"
    PACKAGIST = "Packagist"
    RUBYGEMS = "RubyGems"


class FindingSource(str, Enum):
    OSV = "OSV"
    NVD = "NVD"


class ErrorKind(str, Enum):
    NETWORK_ERROR = "network_error"
    TIMEOUT = "timeout"
    PARSE_ERROR = "parse_error"
    RATE_LIMITED = "rate_limited"


class OutcomeStatus(str, Enum):
    VULNERABLE = "vulnerable"
    SAFE = "safe"
    UNCHECKED = "unchecked"
    FAILED = "failed"


class ResolverError(RuntimeError):
    """Raised by a resolver when a remote lookup cannot be completed.

    ``body`` holds the raw response text for parse failures so the caller can
    show what the feed actually returned.
    """

    def __init__(self, kind: ErrorKind, message: str, url: str | None = None, body: str | None = None) -> None:
        super().__init__(message)
        self.kind = kind
        self.url = url
        self.body = body

    def to_dict(self) -> dict[str, Any]:
        return {"kind": self.kind.value, "message": str(self), "url": self.url, "body": self.body}


@dataclass(frozen=True)
class SoftwareRecord:
    name: str
    version: str | None = None
    publisher: str | None = None
    install_date: str | None = None

    @property
    def display_version(self) -> str:
        return self.version or "unknown"

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "SoftwareRecord":
        name = str(data.get("name") or "").strip()
        if not name:
            raise ValueError(f"Software record without a name: {data!r}")
        version = data.get("version")
        return cls(
            name=name,
            version=str(version) if version not in (None, "") else None,
            publisher=data.get("publisher"),
            install_date=data.get("install_date") or data.get("installDate"),
        )

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class Finding:
    id: str
    summary: str
    source: FindingSource
    cvss_score: float | None = None
    cvss_vector: str | None = None
    severity_label: str | None = None

    def score_line(self) -> str:
        if self.source is FindingSource.OSV:
            score = self.cvss_vector if self.cvss_vector is not None else self.cvss_score
            if score is None:
                return "No CVSS Score available"
            return f"CVSS Score: {score} ({self.severity_label or ''})"
        if self.cvss_score is None:
            return "No CVSS Score"
        return f"Base score: {self.cvss_score}\n\tVectorString: {self.cvss_vector or ''}"

    def render(self) -> str:
        return f"{self.id} - {self.summary}\n\t{self.score_line()}"

    def to_dict(self) -> dict[str, Any]:
        payload = asdict(self)
        payload["source"] = self.source.value
        return payload


@dataclass(frozen=True)
class ScanOutcome:
    """Classification of one software record.

    Build instances through :meth:`vulnerable`, :meth:`safe`, :meth:`unchecked`
    and :meth:`failed`; each enforces the payload its status requires.
    """

    status: OutcomeStatus
    findings: tuple[Finding, ...] = ()
    reason: str | None = None
    error: ResolverError | None = None
    source: FindingSource | None = None
    ecosystem: Ecosystem | None = None
    matched_name: str | None = None
    nvd_checked: bool = False

    @classmethod
    def vulnerable(
        cls,
        findings: list[Finding] | tuple[Finding, ...],
        source: FindingSource,
        ecosystem: Ecosystem | None = None,
        matched_name: str | None = None,
    ) -> "ScanOutcome":
        if not findings:
            raise ValueError("A vulnerable outcome needs at least one finding")
        return cls(
            status=OutcomeStatus.VULNERABLE,
            findings=tuple(findings),
            source=source,
            ecosystem=ecosystem,
            matched_name=matched_name,
        )

    @classmethod
    def safe(cls, source: FindingSource) -> "ScanOutcome":
        return cls(status=OutcomeStatus.SAFE, source=source)

    @classmethod
    def unchecked(cls, reason: str, source: FindingSource = FindingSource.OSV) -> "ScanOutcome":
        if not reason or not reason.strip():
            raise ValueError("An unchecked outcome needs a reason")
        return cls(status=OutcomeStatus.UNCHECKED, reason=reason, source=source)

    @classmethod
    def failed(cls, error: ResolverError, source: FindingSource) -> "ScanOutcome":
        if error is None:
            raise ValueError("A failed outcome needs an error")
        return cls(status=OutcomeStatus.FAILED, error=error, source=source)

    def rendered_findings(self) -> list[str]:
        return [finding.render() for finding in self.findings]

    def to_dict(self) -> dict[str, Any]:
        return {
            "status": self.status.value,
            "source": self.source.value if self.source else None,
            "ecosystem": self.ecosystem.value if self.ecosystem else None,
            "matched_name": self.matched_name,
            "nvd_checked": self.nvd_checked,
            "reason": self.reason,
            "error": self.error.to_dict() if self.error else None,
            "findings": [finding.to_dict() for finding in self.findings],
        }


@dataclass
class RecordResult:
    record: SoftwareRecord
    outcome: ScanOutcome
    index: int
    started_at: str = field(default_factory=utc_now_iso)

    def to_dict(self) -> dict[str, Any]:
        return {
            "index": self.index,
            "record": self.record.to_dict(),
            "started_at": self.started_at,
            "outcome": self.outcome.to_dict(),
        }


@dataclass(frozen=True)
class ScanSummary:
    processed: int
    vulnerable: int
    safe: int
    unchecked: int
    failed: int
    nvd_checked: int

    def to_dict(self) -> dict[str, int]:
        return asdict(self)

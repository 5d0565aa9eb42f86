from __future__ import annotations

from typing import Any

from bluescan.models import Finding, FindingSource
from bluescan.schemas import NvdCve, NvdResponse, OsvResponse, OsvVulnerability

NO_OSV_SUMMARY = "No summary available"
NO_NVD_DESCRIPTION = "No description available"


def _parse_score(value: str | None) -> float | None:
    if value is None:
        return None
    try:
        return float(value)
    except ValueError:
        return None


def _osv_cvss(vuln: OsvVulnerability) -> tuple[str | None, str | None]:
    # First CVSS-typed entry wins, whatever its version.
    for severity in vuln.severity or []:
        if "CVSS" in severity.type:
            return severity.score, severity.type
    return None, None


def normalize_osv(raw: dict[str, Any]) -> list[Finding]:
    response = OsvResponse.model_validate(raw)
    findings: list[Finding] = []
    for vuln in response.vulns:
        score, severity_type = _osv_cvss(vuln)
        findings.append(
            Finding(
                id=vuln.id,
                summary=vuln.summary or NO_OSV_SUMMARY,
                source=FindingSource.OSV,
                cvss_score=_parse_score(score),
                cvss_vector=score,
                severity_label=severity_type,
            )
        )
    return findings


def _nvd_description(cve: NvdCve) -> str:
    for description in cve.descriptions:
        if description.value.strip():
            return description.value
    return NO_NVD_DESCRIPTION


def normalize_nvd(raw: dict[str, Any]) -> list[Finding]:
    response = NvdResponse.model_validate(raw)
    findings: list[Finding] = []
    for item in response.vulnerabilities or []:
        cve = item.cve
        score = None
        vector = None
        metrics = cve.metrics.cvss_metric_v31 if cve.metrics else None
        if metrics:
            score = metrics[0].cvss_data.base_score
            vector = metrics[0].cvss_data.vector_string
        findings.append(
            Finding(
                id=cve.id,
                summary=_nvd_description(cve),
                source=FindingSource.NVD,
                cvss_score=score,
                cvss_vector=vector,
                severity_label="CVSS_V31" if score is not None else None,
            )
        )
    return findings

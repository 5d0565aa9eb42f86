from __future__ import annotations

from pydantic import BaseModel, Field


class OsvPackage(BaseModel):
    name: str
    ecosystem: str


class OsvQuery(BaseModel):
    package: OsvPackage
    version: str | None = None


class OsvSeverity(BaseModel):
    type: str
    score: str | None = None


class OsvVulnerability(BaseModel):
    id: str
    summary: str | None = None
    severity: list[OsvSeverity] | None = None


class OsvResponse(BaseModel):
    # OSV answers a clean package with an empty object.
    vulns: list[OsvVulnerability] = Field(default_factory=list)


class NvdDescription(BaseModel):
    value: str


class NvdCvssData(BaseModel):
    base_score: float = Field(alias="baseScore")
    vector_string: str = Field(alias="vectorString")


class NvdCvssMetricV31(BaseModel):
    cvss_data: NvdCvssData = Field(alias="cvssData")


class NvdMetrics(BaseModel):
    cvss_metric_v31: list[NvdCvssMetricV31] | None = Field(default=None, alias="cvssMetricV31")


class NvdCve(BaseModel):
    id: str
    descriptions: list[NvdDescription]
    metrics: NvdMetrics | None = None


class NvdVulnerability(BaseModel):
    cve: NvdCve


class NvdResponse(BaseModel):
    vulnerabilities: list[NvdVulnerability] | None = None

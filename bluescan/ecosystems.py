from __future__ import annotations

import logging
import re

from bluescan.models import Ecosystem

LOGGER = logging.getLogger(__name__)


ECOSYSTEM_CATALOG: tuple[Ecosystem, ...] = (
    Ecosystem.PYPI,
    Ecosystem.NPM,
    Ecosystem.NUGET,
    Ecosystem.MAVEN,
    Ecosystem.CRATES_IO,
    Ecosystem.GO,
    Ecosystem.PACKAGIST,
    Ecosystem.RUBYGEMS,
)

# Checked in this order; a name may hit several rows.
ECOSYSTEM_KEYWORDS: tuple[tuple[Ecosystem, tuple[str, ...]], ...] = (
    (Ecosystem.PYPI, ("python", "pip", "conda")),
    (Ecosystem.NPM, ("node", "npm", "yarn")),
    (Ecosystem.NUGET, (".net", "nuget", "dotnet")),
    (Ecosystem.MAVEN, ("java", "maven", "jdk")),
    (Ecosystem.CRATES_IO, ("rust", "cargo")),
    (Ecosystem.GO, ("golang", " go ")),
    (Ecosystem.PACKAGIST, ("php", "composer")),
    (Ecosystem.RUBYGEMS, ("ruby", "gem")),
)

STRIPPED_AFFIXES = (" runtime", " sdk", " framework", "microsoft ", " for windows")

_VERSION_SPLIT_RE = re.compile(r"[\d.]")


def parse_ecosystem(value: str) -> Ecosystem:
    for ecosystem in Ecosystem:
        if value == ecosystem.value or value.lower() == ecosystem.value.lower():
            return ecosystem
    raise ValueError(f"Unsupported ecosystem: {value}")


def guess_ecosystems(name: str) -> list[Ecosystem]:
    name_lower = name.lower()
    ecosystems: list[Ecosystem] = []
    for ecosystem, keywords in ECOSYSTEM_KEYWORDS:
        if ecosystem in ecosystems:
            continue
        if any(keyword in name_lower for keyword in keywords):
            ecosystems.append(ecosystem)
    LOGGER.debug("Likely ecosystems for %r: %s", name, [item.value for item in ecosystems])
    return ecosystems


def name_variations(name: str) -> list[str]:
    """Spellings of ``name`` worth trying as a package name.

    The original name is always part of the result. The list is sorted so the
    OSV sweep visits variants in a stable order.
    """
    lowered = name.lower()

    cleaned = lowered
    for affix in STRIPPED_AFFIXES:
        cleaned = cleaned.replace(affix, "")
    cleaned = cleaned.strip()

    without_version = _VERSION_SPLIT_RE.split(name, maxsplit=1)[0].strip().lower()

    candidates = [
        name,
        lowered,
        cleaned,
        name.replace(" ", "-").lower(),
        name.replace(" ", "").lower(),
        without_version,
    ]
    variations: list[str] = []
    for candidate in candidates:
        if candidate and candidate not in variations:
            variations.append(candidate)
    return sorted(variations)

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Iterable

LOGGER = logging.getLogger(__name__)


def write_text_report(path: str | Path, entries: Iterable[str]) -> Path:
    """Replace ``path`` with one entry per line group, UTF-8, no header."""
    output = Path(path)
    output.parent.mkdir(parents=True, exist_ok=True)
    count = 0
    with output.open("w", encoding="utf-8") as handle:
        for entry in entries:
            handle.write(entry)
            handle.write("\n")
            count += 1
    LOGGER.info("Wrote %s findings to %s", count, output)
    return output


def write_json_file(path: str | Path, payload: dict | list) -> None:
    output = Path(path)
    output.parent.mkdir(parents=True, exist_ok=True)
    with output.open("w", encoding="utf-8") as handle:
        json.dump(payload, handle, indent=2, ensure_ascii=False)

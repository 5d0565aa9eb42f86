from __future__ import annotations

import argparse
import logging
import os
import sys
from typing import Any

import yaml

from bluescan.console import Console
from bluescan.ecosystems import ECOSYSTEM_CATALOG, parse_ecosystem
from bluescan.hybrid import NVD_DELAY_SECONDS, HybridOrchestrator, NvdPacer, ScanPolicy
from bluescan.inventory import collect_installed_software, get_os_info, load_inventory_file
from bluescan.models import SoftwareRecord, utc_now_iso
from bluescan.nvd import NVD_CVE_URL, NVD_TIMEOUT_SECONDS, NvdResolver
from bluescan.osv import OSV_QUERY_URL, OSV_TIMEOUT_SECONDS, OsvResolver
from bluescan.session import DEFAULT_REPORT_PATH, ScanSession, scan_records
from bluescan.storage import write_json_file

LOGGER = logging.getLogger(__name__)

SCAN_MODES = ("hybrid", "osv", "nvd")
SETTINGS_SECTIONS = ("osv", "nvd", "scan", "paths")


def setup_logging(level: str = "WARNING", log_file: str | None = None) -> None:
    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stderr)]
    if log_file:
        handlers.append(logging.FileHandler(log_file, encoding="utf-8"))
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.WARNING),
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
        handlers=handlers,
        force=True,
    )


def load_yaml(path: str) -> dict[str, Any]:
    with open(path, "r", encoding="utf-8") as handle:
        return yaml.safe_load(handle) or {}


def resolve_settings(path: str | None = None) -> dict[str, Any]:
    settings = load_yaml(path) if path else {}
    if not isinstance(settings, dict):
        raise ValueError("Settings file must contain a mapping")
    for section in SETTINGS_SECTIONS:
        # an empty "scan:" block loads as None
        settings[section] = settings.get(section) or {}
        if not isinstance(settings[section], dict):
            raise ValueError(f"Settings section '{section}' must be a mapping")
    settings["osv"].setdefault("url", os.getenv("BLUESCAN_OSV_URL", OSV_QUERY_URL))
    settings["osv"].setdefault("timeout_seconds", float(os.getenv("BLUESCAN_OSV_TIMEOUT", str(OSV_TIMEOUT_SECONDS))))
    settings["osv"].setdefault("ecosystems", [ecosystem.value for ecosystem in ECOSYSTEM_CATALOG])
    settings["nvd"].setdefault("url", os.getenv("BLUESCAN_NVD_URL", NVD_CVE_URL))
    settings["nvd"].setdefault("timeout_seconds", float(os.getenv("BLUESCAN_NVD_TIMEOUT", str(NVD_TIMEOUT_SECONDS))))
    settings["nvd"].setdefault("delay_seconds", float(os.getenv("BLUESCAN_NVD_DELAY", str(NVD_DELAY_SECONDS))))
    settings["nvd"].setdefault("api_key", os.getenv("NVD_API_KEY") or None)
    settings["scan"].setdefault("mode", os.getenv("BLUESCAN_MODE", "hybrid"))
    settings["paths"].setdefault("report", os.getenv("BLUESCAN_REPORT", DEFAULT_REPORT_PATH))

    if settings["scan"]["mode"] not in SCAN_MODES:
        raise ValueError(f"Unsupported scan mode: {settings['scan']['mode']}")
    settings["osv"]["ecosystems"] = [parse_ecosystem(str(item)).value for item in settings["osv"]["ecosystems"] or []]
    for section in ("osv", "nvd"):
        if float(settings[section]["timeout_seconds"]) <= 0:
            raise ValueError(f"{section}.timeout_seconds must be positive")
    if float(settings["nvd"]["delay_seconds"]) < 0:
        raise ValueError("nvd.delay_seconds must not be negative")
    return settings


def build_orchestrator(settings: dict[str, Any], mode: str | None = None) -> HybridOrchestrator:
    policy = ScanPolicy.for_mode(mode or settings["scan"]["mode"])
    osv = None
    nvd = None
    if policy.uses_osv:
        osv = OsvResolver(
            url=settings["osv"]["url"],
            timeout_seconds=float(settings["osv"]["timeout_seconds"]),
            ecosystems=[parse_ecosystem(item) for item in settings["osv"]["ecosystems"]],
        )
    if policy.uses_nvd:
        nvd = NvdResolver(
            url=settings["nvd"]["url"],
            timeout_seconds=float(settings["nvd"]["timeout_seconds"]),
            api_key=settings["nvd"].get("api_key"),
        )
    pacer = NvdPacer(
        delay_seconds=float(settings["nvd"]["delay_seconds"]),
        pace_first_call=policy.pace_first_call,
    )
    return HybridOrchestrator(
        osv=osv,
        nvd=nvd,
        policy=policy,
        pacer=pacer,
        nvd_timeout_seconds=float(settings["nvd"]["timeout_seconds"]),
    )


def resolve_records(args: argparse.Namespace) -> list[SoftwareRecord]:
    if args.inventory:
        return load_inventory_file(args.inventory)
    return collect_installed_software()


def build_arg_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Match installed software against OSV and NVD vulnerability feeds")
    parser.add_argument("--mode", choices=SCAN_MODES, help="hybrid: OSV first with NVD fallback; osv or nvd: single source")
    parser.add_argument("--inventory", help="YAML or JSON file with software records instead of the local package manager")
    parser.add_argument("--settings", help="Path to settings YAML")
    parser.add_argument("--report", help=f"Findings report path (default: {DEFAULT_REPORT_PATH})")
    parser.add_argument("--json-output", help="Optional path for the per-record JSON results")
    parser.add_argument("--list", action="store_true", help="Show installed programs and exit")
    parser.add_argument("--count", action="store_true", help="Show the number of installed programs and exit")
    parser.add_argument("--os-info", action="store_true", help="Show OS information and exit")
    parser.add_argument("--log-level", default=os.getenv("LOG_LEVEL", "WARNING"), help="Logging level")
    parser.add_argument("--log-file", help="Also write log records to this file")
    parser.add_argument("--no-color", action="store_true", help="Disable colored output")
    parser.add_argument("--fail-on-vulnerable", action="store_true", help="Exit with code 3 when vulnerabilities are found")
    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_arg_parser()
    args = parser.parse_args(argv)
    setup_logging(args.log_level, args.log_file)
    console = Console(color=False if args.no_color else None)

    try:
        settings = resolve_settings(args.settings)
        if args.mode:
            settings["scan"]["mode"] = args.mode
        if args.report:
            settings["paths"]["report"] = args.report
    except (OSError, ValueError, yaml.YAMLError) as exc:
        LOGGER.error("Invalid settings: %s", exc)
        console.error(f"Invalid settings: {exc}")
        return 2

    if args.os_info:
        for key, value in get_os_info().items():
            console.info(f"{key}: {value}")
        return 0

    try:
        records = resolve_records(args)
    except (OSError, ValueError, yaml.YAMLError) as exc:
        LOGGER.error("Invalid inventory: %s", exc)
        console.error(f"Invalid inventory: {exc}")
        return 2

    if args.count:
        console.success(f"Installed Programs: {len(records)}")
        return 0
    if args.list:
        for record in records:
            console.program(record)
        return 0

    mode = settings["scan"]["mode"]
    console.section(f"{mode.upper()} vulnerability scan")
    if not records:
        console.warning("No software records to scan")

    total = len(records)
    session = ScanSession()
    interrupted = False
    with build_orchestrator(settings, mode) as orchestrator:
        try:
            scan_records(
                records,
                orchestrator,
                session=session,
                on_result=lambda result: console.record_result(result, total),
            )
        except KeyboardInterrupt:
            interrupted = True
            LOGGER.warning("Scan interrupted after %s of %s records", session.processed, total)
            console.warning(f"Scan interrupted after {session.processed} of {total} programs")

    report_path = session.write_report(settings["paths"]["report"])
    console.success(f"Wrote vulnerable programs to {report_path}")
    summary = session.summary()
    console.summary(summary, session.findings, session.needs_coverage_warning())

    if args.json_output:
        write_json_file(
            args.json_output,
            {"generated_at": utc_now_iso(), "mode": mode, **session.to_dict()},
        )

    if interrupted:
        return 130
    if summary.vulnerable and args.fail_on_vulnerable:
        return 3
    if summary.failed:
        return 4
    return 0


if __name__ == "__main__":
    sys.exit(main())

from __future__ import annotations

import json
import logging
import os
import platform
import shutil
import subprocess
import sys
from pathlib import Path
from typing import Any

import yaml

from bluescan.models import SoftwareRecord

LOGGER = logging.getLogger(__name__)

OS_RELEASE_PATH = "/etc/os-release"

# (binary, arguments) per package manager; each line is name<TAB>version<TAB>publisher.
PACKAGE_MANAGERS: tuple[tuple[str, list[str]], ...] = (
    ("dpkg-query", ["-W", "-f=${Package}\t${Version}\t${Maintainer}\n"]),
    ("rpm", ["-qa", "--queryformat", "%{NAME}\t%{VERSION}-%{RELEASE}\t%{VENDOR}\n"]),
    ("pacman", ["-Q"]),
)

# (hive, path) of the Uninstall keys, machine-wide 64-bit, 32-bit, then per user.
UNINSTALL_KEYS: tuple[tuple[str, str], ...] = (
    ("HKEY_LOCAL_MACHINE", r"SOFTWARE\Microsoft\Windows\CurrentVersion\Uninstall"),
    ("HKEY_LOCAL_MACHINE", r"SOFTWARE\WOW6432Node\Microsoft\Windows\CurrentVersion\Uninstall"),
    ("HKEY_CURRENT_USER", r"SOFTWARE\Microsoft\Windows\CurrentVersion\Uninstall"),
)


def command_exists(name: str) -> bool:
    return shutil.which(name) is not None


def run_command(command: list[str], timeout: int = 120) -> tuple[int, str, str]:
    LOGGER.info("Executing command: %s", " ".join(command))
    process = subprocess.run(
        command,
        env=os.environ.copy(),
        capture_output=True,
        text=True,
        timeout=timeout,
        check=False,
    )
    return process.returncode, process.stdout, process.stderr


def parse_package_listing(output: str, separator: str | None = "\t") -> list[SoftwareRecord]:
    records: list[SoftwareRecord] = []
    for line in output.splitlines():
        if not line.strip():
            continue
        parts = line.split(separator) if separator else line.split()
        name = parts[0].strip()
        if not name:
            continue
        version = parts[1].strip() if len(parts) > 1 and parts[1].strip() else None
        publisher = parts[2].strip() if len(parts) > 2 and parts[2].strip() not in ("", "(none)") else None
        records.append(SoftwareRecord(name=name, version=version, publisher=publisher))
    return records


def _registry_value(winreg, key, value_name: str) -> str | None:
    try:
        value, _ = winreg.QueryValueEx(key, value_name)
    except OSError:
        return None
    if value is None:
        return None
    return str(value).strip() or None


def _read_uninstall_key(winreg, hive, path: str) -> list[SoftwareRecord]:
    records: list[SoftwareRecord] = []
    try:
        key = winreg.OpenKey(hive, path)
    except OSError:
        LOGGER.debug("Registry key not readable: %s", path)
        return records

    try:
        subkey_count = winreg.QueryInfoKey(key)[0]
        for index in range(subkey_count):
            try:
                subkey = winreg.OpenKey(key, winreg.EnumKey(key, index))
            except OSError:
                continue
            try:
                name = _registry_value(winreg, subkey, "DisplayName")
                if not name:
                    continue
                records.append(
                    SoftwareRecord(
                        name=name,
                        version=_registry_value(winreg, subkey, "DisplayVersion"),
                        publisher=_registry_value(winreg, subkey, "Publisher"),
                        install_date=_registry_value(winreg, subkey, "InstallDate"),
                    )
                )
            finally:
                winreg.CloseKey(subkey)
    finally:
        winreg.CloseKey(key)
    return records


def collect_registry_software() -> list[SoftwareRecord]:
    """List programs registered under the Windows Uninstall keys.

    Entries without a ``DisplayName`` are skipped. Never raises.
    """
    try:
        import winreg
    except ImportError:
        LOGGER.warning("Windows registry is not available on this host")
        return []

    records: list[SoftwareRecord] = []
    try:
        for hive_name, path in UNINSTALL_KEYS:
            records.extend(_read_uninstall_key(winreg, getattr(winreg, hive_name), path))
    except OSError as exc:
        LOGGER.warning("Could not read installed programs from the registry: %s", exc)
        return []
    LOGGER.info("Found %s installed programs in the registry", len(records))
    return records


def collect_installed_software(system: str | None = None) -> list[SoftwareRecord]:
    """List installed software: the registry on Windows, otherwise the first
    available package manager.

    Never raises: a missing manager, a failing command or unreadable output
    all yield an empty list.
    """
    if (system or sys.platform) == "win32":
        return collect_registry_software()
    for binary, arguments in PACKAGE_MANAGERS:
        if not command_exists(binary):
            continue
        try:
            code, stdout, stderr = run_command([binary, *arguments])
        except (OSError, subprocess.SubprocessError) as exc:
            LOGGER.warning("Could not run %s: %s", binary, exc)
            return []
        if code != 0:
            LOGGER.warning("%s exited with %s: %s", binary, code, stderr.strip())
            return []
        records = parse_package_listing(stdout, separator=None if binary == "pacman" else "\t")
        LOGGER.info("Found %s installed packages via %s", len(records), binary)
        return records
    LOGGER.warning("No supported package manager found on this host")
    return []


def _records_from_payload(payload: Any) -> list[SoftwareRecord]:
    if isinstance(payload, dict):
        payload = payload.get("software") or payload.get("programs") or []
    if not isinstance(payload, list):
        raise ValueError("Inventory must be a list of software entries")
    return [SoftwareRecord.from_dict(item) for item in payload if isinstance(item, dict)]


def load_inventory_file(path: str | Path) -> list[SoftwareRecord]:
    source = Path(path)
    with source.open("r", encoding="utf-8") as handle:
        if source.suffix.lower() == ".json":
            payload = json.load(handle)
        else:
            payload = yaml.safe_load(handle) or []
    records = _records_from_payload(payload)
    LOGGER.info("Loaded %s software records from %s", len(records), source)
    return records


def parse_os_release(content: str) -> dict[str, str]:
    values: dict[str, str] = {}
    for line in content.splitlines():
        if "=" not in line or line.lstrip().startswith("#"):
            continue
        key, _, value = line.partition("=")
        values[key.strip()] = value.strip().strip('"')
    return values


def get_os_info(os_release_path: str = OS_RELEASE_PATH) -> dict[str, str]:
    release: dict[str, str] = {}
    try:
        release = parse_os_release(Path(os_release_path).read_text(encoding="utf-8"))
    except OSError as exc:
        LOGGER.debug("Could not read %s: %s", os_release_path, exc)
    return {
        "os_name": release.get("NAME") or platform.system(),
        "version": release.get("VERSION_ID") or platform.release(),
        "build": release.get("BUILD_ID") or release.get("VERSION") or platform.version(),
        "hostname": platform.node(),
        "arch": platform.machine(),
    }

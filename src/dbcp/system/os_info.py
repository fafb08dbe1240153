# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/dbcp/system/os_info.py

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

OS_RELEASE = Path("/etc/os-release")

_FAMILIES = {
    "debian": "debian",
    "ubuntu": "debian",
    "centos": "rhel",
    "rhel": "rhel",
    "rocky": "rhel",
    "almalinux": "rhel",
    "oracle": "rhel",
    "fedora": "fedora",
}


@dataclass(frozen=True)
class OSInfo:
    id: str = ""
    version_id: str = ""
    name: str = ""
    pretty: str = ""
    family: str = ""


def parse_os_release(text: str) -> OSInfo:
    fields = {}
    for line in text.splitlines():
        if "=" not in line or line.lstrip().startswith("#"):
            continue
        key, value = line.split("=", 1)
        fields[key.strip()] = value.strip().strip('"')

    os_id = fields.get("ID", "")
    return OSInfo(
        id=os_id,
        version_id=fields.get("VERSION_ID", ""),
        name=fields.get("NAME", ""),
        pretty=fields.get("PRETTY_NAME", ""),
        family=_FAMILIES.get(os_id, os_id),
    )


def detect_os(path: Path = OS_RELEASE) -> OSInfo:
    """Read /etc/os-release. Raises OSError if the file is unreadable."""
    return parse_os_release(path.read_text())


def guess_postgres_bin_path(version: str, info: OSInfo) -> str:
    if info.family == "debian":
        return f"/usr/lib/postgresql/{version}/bin"
    if info.family in ("rhel", "fedora"):
        return f"/usr/pgsql-{version}/bin"
    return "/usr/local/pgsql/bin"

#!/usr/bin/env python3
"""
report.py

Crash report loading and field extraction for QCS.

Responsibilities:
  - Read the report once (file or stdin) and normalize line endings.
  - Extract typed fields from labelled sections:
      * report version          ("Report Version")
      * bundle identifier       ("PlugIn Identifier" / "Identifier")
      * executable name         ("PlugIn Path" / "Path")
      * target architecture     ("Code Type", mapped through ARCHITECTURES)
      * OS version and build    ("OS Version")
      * image UUID and load address of the target bundle ("Binary Images")

Every missing required field raises ReportError. The caller cannot
symbolicate without them.
"""

from __future__ import annotations

import logging
import re
import sys
from dataclasses import dataclass
from pathlib import Path, PurePosixPath
from typing import Dict, Optional, Tuple

from qcs.errors import ReportError
from qcs.sections import parse_section


LOG = logging.getLogger("report")

# Report text round-trips through str without losing undecodable bytes.
REPORT_ENCODING = "utf-8"
REPORT_ERRORS = "surrogateescape"


# "Code Type" token -> architecture name understood by lipo/dwarfdump/atos.
ARCHITECTURES: Dict[str, str] = {
    "ARM": "armv6",
    "X86": "i386",
    "X86-64": "x86_64",
    "PPC": "ppc",
    "PPC-64": "ppc64",
    "ARMV4T": "armv4t",
    "ARMV5": "armv5",
    "ARMV6": "armv6",
    "ARMV7": "armv7",
    "ARM-64": "arm64",
}


# ---------------------------------------------------------------------------
# Regexes
# ---------------------------------------------------------------------------

_FIRST_INT_RE = re.compile(r"(\d+)")

_CODE_TYPE_RE = re.compile(r"([\w-]+)")

# "Mac OS X 10.6.8 (Build 10K549)", "Mac OS X 10.6.8 (10K549)", "10.6.8"
_OS_VERSION_RES = (
    re.compile(r"(?:^|\s)([0-9.]+)\s+\(Build (\w+)"),
    re.compile(r"(?:^|\s)([0-9.]+)\s+\((\w+)"),
    re.compile(r"(?:^|\s)([0-9.]+)"),
)

# Leading load address of a "Binary Images" line:
#   "       0x100000000 -        0x100005fff +com.example.App (1.0 - 1) <...>"
_LOAD_ADDRESS_RE = re.compile(r"^\s*([xX0-9a-fA-F]+)")


@dataclass
class CrashReportInfo:
    """
    Fields extracted from one crash report.

    image_uuid and load_address describe the target bundle's own entry in
    the "Binary Images" table.
    """
    report_version: int
    bundle_id: str
    executable_name: str
    arch: str
    os_version: str
    os_build: str
    image_uuid: str
    load_address: str


# ---------------------------------------------------------------------------
# Loading
# ---------------------------------------------------------------------------

def normalize_report_text(data: str) -> str:
    """
    Normalize DOS / classic Mac line endings to '\\n' and replace NO-BREAK
    SPACE (often pasted from browsers) with a plain space.
    """
    data = data.replace("\r\n", "\n")
    data = data.replace("\r", "\n")
    return data.replace("\u00a0", " ")


def read_report(path: Optional[str]) -> str:
    """
    Read a crash report from `path`, or from stdin if path is '-' or empty.

    Bytes that are not valid UTF-8 (old Mac Roman / Latin-1 reports) are
    kept as surrogate escapes, and encoding with REPORT_ERRORS restores
    them unchanged on output.

    Raises:
        ReportError if the source cannot be read.
    """
    try:
        if path and path != "-":
            raw = Path(path).read_bytes()
        else:
            raw = sys.stdin.buffer.read()
    except OSError as e:
        raise ReportError(f"while reading {path or 'stdin'}: {e}") from e

    text = normalize_report_text(raw.decode(REPORT_ENCODING, REPORT_ERRORS))
    LOG.debug("%d characters read.", len(text))
    return text


# ---------------------------------------------------------------------------
# Field extraction
# ---------------------------------------------------------------------------

def _last_component(value: str) -> str:
    return PurePosixPath(value).name or value


def _preferred_section(text: str, primary: str, fallback: str) -> Optional[str]:
    """
    Return the non-empty content of `primary`, else that of `fallback`.
    """
    value = parse_section(text, primary)
    if value:
        return value
    value = parse_section(text, fallback)
    if value:
        return value
    return None


def parse_report_version(text: str) -> Optional[int]:
    """
    First integer in the "Report Version" section, or None if absent.
    """
    section = parse_section(text, "Report Version")
    if not section:
        return None
    m = _FIRST_INT_RE.search(section)
    if not m:
        return None
    return int(m.group(1))


def parse_bundle_identifier(text: str) -> str:
    value = _preferred_section(text, "PlugIn Identifier", "Identifier")
    if value is None:
        raise ReportError("Can't find \"Identifier\" in log file")
    return _last_component(value)


def parse_executable_name(text: str) -> str:
    value = _preferred_section(text, "PlugIn Path", "Path")
    if value is None:
        raise ReportError("Can't find \"Path\" in log file")
    return _last_component(value)


def parse_arch(text: str) -> str:
    """
    Map the "Code Type" field to an architecture name, e.g.
    "X86-64 (Native)" -> "x86_64".
    """
    code_type = parse_section(text, "Code Type")
    if not code_type:
        raise ReportError("Can't find \"Code Type\" in log file")

    m = _CODE_TYPE_RE.search(code_type)
    token = m.group(1) if m else code_type
    arch = ARCHITECTURES.get(token)
    if arch is None:
        raise ReportError(f"Unknown architecture {token}")
    return arch


def parse_os_version(text: str) -> Tuple[str, str]:
    """
    Return (version, build) from "OS Version". build may be "".
    """
    section = parse_section(text, "OS Version")
    if section is None:
        raise ReportError("Can't find \"OS Version\" in log file")

    for i, pattern in enumerate(_OS_VERSION_RES):
        m = pattern.search(section)
        if not m:
            continue
        # The last pattern only carries the version.
        if i == len(_OS_VERSION_RES) - 1:
            return m.group(1), ""
        return m.group(1), m.group(2)

    raise ReportError(f"can't parse OS Version string {section}")


def parse_image_line(text: str, bundle_id: str) -> str:
    """
    First line of the "Binary Images" section mentioning bundle_id.
    """
    section = parse_section(text, "Binary Images", multiline=True)
    if section is None:
        raise ReportError("Can't find \"Binary Images\" section in log file")

    for line in section.split("\n"):
        if bundle_id in line:
            return line

    raise ReportError(f"Couldn't find binary image for '{bundle_id}'")


def parse_image_uuid(image_line: str, bundle_id: str) -> str:
    """
    UUID in angle brackets following '<bundle_id> (<version>)'.
    """
    m = re.search(
        re.escape(bundle_id) + r"\s*\(.*\)\s*<([0-9A-Fa-f-]+)>",
        image_line,
    )
    if not m:
        raise ReportError(f"Couldn't find UUID for binary image for '{bundle_id}'")
    return m.group(1)


def parse_load_address(image_line: str, bundle_id: str) -> str:
    m = _LOAD_ADDRESS_RE.match(image_line)
    if not m:
        raise ReportError(f"Couldn't find load address for binary image for '{bundle_id}'")
    return m.group(1)


def parse_crash_report(text: str) -> CrashReportInfo:
    """
    Extract every field QCS needs from the report text.

    Raises:
        ReportError on the first missing or unparsable required field.
    """
    report_version = parse_report_version(text)
    if not report_version:
        raise ReportError("No crash report version in log file")

    bundle_id = parse_bundle_identifier(text)
    executable_name = parse_executable_name(text)

    image_line = parse_image_line(text, bundle_id)
    image_uuid = parse_image_uuid(image_line, bundle_id)
    load_address = parse_load_address(image_line, bundle_id)

    arch = parse_arch(text)
    os_version, os_build = parse_os_version(text)

    info = CrashReportInfo(
        report_version=report_version,
        bundle_id=bundle_id,
        executable_name=executable_name,
        arch=arch,
        os_version=os_version,
        os_build=os_build,
        image_uuid=image_uuid,
        load_address=load_address,
    )

    LOG.debug("Report version: %d", info.report_version)
    LOG.debug("Bundle ID: %s", info.bundle_id)
    LOG.debug("Executable name: %s", info.executable_name)
    LOG.debug("Load address: %s", info.load_address)
    LOG.debug("Image UUID: %s", info.image_uuid)
    LOG.debug("Architecture: %s", info.arch)
    LOG.debug("OS Version %s Build %s", info.os_version, info.os_build)
    return info


__all__ = [
    "ARCHITECTURES",
    "REPORT_ENCODING",
    "REPORT_ERRORS",
    "CrashReportInfo",
    "normalize_report_text",
    "read_report",
    "parse_report_version",
    "parse_bundle_identifier",
    "parse_executable_name",
    "parse_arch",
    "parse_os_version",
    "parse_image_line",
    "parse_image_uuid",
    "parse_load_address",
    "parse_crash_report",
]

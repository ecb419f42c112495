#!/usr/bin/env python3
"""
dsym_tools.py

Thin wrappers around the macOS developer tools QCS depends on:

  - lipo -info                    : which architecture slices a file holds
  - dwarfdump --uuid --arch ARCH  : UUID of one slice
  - atos -arch ARCH -l LOAD -o F  : batched address -> symbol lookup

None of these raise on tool failure. A missing executable, a non-zero
exit status or a timeout is logged and reported as "absent" (None or an
empty list); the caller decides how serious that is.

atos is invoked once per symbol file with all addresses for that file,
rather than once per address, to keep process start-up overhead down.
"""

from __future__ import annotations

import logging
import re
import subprocess
from pathlib import Path
from typing import List, Optional, Union

LOG = logging.getLogger("dsym_tools")

LIPO_BIN = "lipo"
DWARFDUMP_BIN = "dwarfdump"
ATOS_BIN = "atos"

PathLike = Union[str, Path]

# "UUID: 6A1B2C3D-0000-1111-2222-333344445555 (x86_64) /path/to/App"
_UUID_RE = re.compile(r"UUID:\s*([0-9A-Fa-f-]+)")

# "Architectures in the fat file: App are: x86_64 arm64"
# "Non-fat file: App is architecture: x86_64"
_LIPO_ARCHS_RE = re.compile(r"(?:are|architecture):\s*(.*)$", re.MULTILINE)


def _run_tool(cmd: List[str], timeout: Optional[float]) -> Optional[str]:
    """
    Run one external tool and return its stdout, or None on failure.
    """
    LOG.debug("Running %s", " ".join(cmd))
    try:
        proc = subprocess.run(
            cmd,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            text=True,
            errors="replace",
            check=False,
            timeout=timeout or None,
        )
    except FileNotFoundError:
        LOG.error("%s not found when running: %s", cmd[0], cmd)
        return None
    except subprocess.TimeoutExpired:
        LOG.warning("%s timed out after %ss", cmd[0], timeout)
        return None
    except OSError as e:
        LOG.error("Failed to run %s: %s", cmd[0], e)
        return None

    if proc.returncode != 0:
        LOG.warning(
            "%s exited with code %d: %s",
            cmd[0],
            proc.returncode,
            proc.stderr.strip(),
        )
        return None

    return proc.stdout


def describe_architectures(path: PathLike, timeout: Optional[float] = None) -> Optional[str]:
    """
    Raw `lipo -info` output for path, or None if lipo failed.
    """
    return _run_tool([LIPO_BIN, "-info", str(path)], timeout)


def list_architectures(lipo_output: str) -> List[str]:
    """
    Architecture names from `lipo -info` output.

    Falls back to whitespace-splitting the whole output when the text is
    not in either known form.
    """
    m = _LIPO_ARCHS_RE.search(lipo_output)
    if m:
        return m.group(1).split()
    return lipo_output.split()


def has_architecture(path: PathLike, arch: str, timeout: Optional[float] = None) -> bool:
    """
    True if the file at path contains a slice for arch.
    """
    info = describe_architectures(path, timeout)
    if info is None:
        return False
    return arch in list_architectures(info)


def read_uuid(path: PathLike, arch: str, timeout: Optional[float] = None) -> Optional[str]:
    """
    UUID of the `arch` slice of path, via dwarfdump.

    Returns:
        UUID string as printed by dwarfdump, or None if it could not be
        determined.
    """
    out = _run_tool([DWARFDUMP_BIN, "--uuid", "--arch", arch, str(path)], timeout)
    if out is None:
        return None

    m = _UUID_RE.search(out)
    if not m:
        LOG.warning("Can't understand the output from dwarfdump: %s", out.strip())
        return None
    return m.group(1)


def run_atos(
    symbol_path: PathLike,
    arch: str,
    load_address: str,
    addresses: List[str],
    timeout: Optional[float] = None,
) -> List[str]:
    """
    Resolve many addresses of one binary with a single atos call.

    Args:
        symbol_path:
            DWARF file inside the .dSYM bundle.
        arch:
            Architecture slice to use.
        load_address:
            Base address the image was loaded at in the crashed process.
        addresses:
            Addresses to look up. Order matters.

    Returns:
        One output line per input address, in input order. atos echoes
        the address back for entries it cannot resolve. Empty list if
        atos could not be run.
    """
    if not addresses:
        return []

    cmd: List[str] = [
        ATOS_BIN,
        "-arch",
        arch,
        "-l",
        load_address,
        "-o",
        str(symbol_path),
    ]
    cmd.extend(addresses)

    out = _run_tool(cmd, timeout)
    if out is None:
        return []
    return out.splitlines()


__all__ = [
    "LIPO_BIN",
    "DWARFDUMP_BIN",
    "ATOS_BIN",
    "describe_architectures",
    "list_architectures",
    "has_architecture",
    "read_uuid",
    "run_atos",
]

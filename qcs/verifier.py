#!/usr/bin/env python3
"""
verifier.py

Checks that a debug-symbol artifact belongs to the binary that crashed.

A candidate is accepted only if:
  1) the file exists,
  2) it contains a slice for the report's architecture (lipo -info),
  3) the UUID of that slice (dwarfdump --uuid) equals the UUID recorded
     in the crash report's "Binary Images" table.

UUIDs are compared case-insensitively; there is no partial match.
Symbolicating against the wrong build would silently produce wrong
function names, so the pipeline treats a failed check as fatal.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

from qcs import dsym_tools
from qcs.errors import UUIDMismatchError


LOG = logging.getLogger("verifier")


def normalize_uuid(uuid: str) -> str:
    """Upper-case a UUID for comparison. Hyphens are kept."""
    return uuid.strip().upper()


def uuid_from_image(path: Path, arch: str, timeout: Optional[float] = None) -> Optional[str]:
    """
    UUID of the `arch` slice of path, or None if the file is missing, has
    no such slice, or its UUID cannot be read.
    """
    if not path.is_file():
        LOG.debug("## %s doesn't exist", path)
        return None

    if not dsym_tools.has_architecture(path, arch, timeout=timeout):
        LOG.debug("## %s doesn't contain %s slice", path, arch)
        return None

    return dsym_tools.read_uuid(path, arch, timeout=timeout)


def matches_uuid(path: Path, uuid: str, arch: str, timeout: Optional[float] = None) -> bool:
    image_uuid = uuid_from_image(path, arch, timeout=timeout)
    if image_uuid is None:
        return False
    return normalize_uuid(image_uuid) == normalize_uuid(uuid)


def verify_image(path: Path, uuid: str, arch: str, timeout: Optional[float] = None) -> str:
    """
    Require that the artifact at path matches the report's image UUID.

    Returns:
        The artifact's UUID.

    Raises:
        UUIDMismatchError carrying both the expected and the actual UUID.
    """
    image_uuid = uuid_from_image(path, arch, timeout=timeout)
    if image_uuid is None or normalize_uuid(image_uuid) != normalize_uuid(uuid):
        raise UUIDMismatchError(str(path), expected=uuid, actual=image_uuid)

    LOG.info("Symbol file %s matches image UUID %s", path, uuid)
    return image_uuid


__all__ = [
    "normalize_uuid",
    "uuid_from_image",
    "matches_uuid",
    "verify_image",
]

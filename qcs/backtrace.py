#!/usr/bin/env python3
"""
backtrace.py

Backtrace parser for QCS.

Responsibilities:
  - Find every thread section ("Thread 0 Crashed:", "Thread 1:", ...).
  - Parse frame lines of the form

        3   com.example.App   0x0000000100001000 0x100000000 + 4096

    into Frame objects keyed by the exact text to be replaced later
    ("0x0000000100001000 0x100000000 + 4096").
  - Keep only frames whose owning bundle has a known ImageRecord.

Notes:
  - Lines that are not frame lines are skipped without error; reports
    carry many other line shapes inside thread sections.
  - Frames from all threads are merged into one mapping. Identical
    replacement text means identical resolution, so a later duplicate
    simply overwrites an earlier one.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Dict, Mapping, Optional

from qcs.sections import iter_sections


LOG = logging.getLogger("backtrace")


# ---------------------------------------------------------------------------
# Regexes
# ---------------------------------------------------------------------------

# "Thread 0 Crashed", "Thread 12", "Thread 3 Highlighted"
THREAD_SECTION_RE = re.compile(r"Thread\s+\d+\s?(?:Highlighted|Crashed)?")

FRAME_LINE_RE = re.compile(
    r"""
    ^\d+ \s+                    # frame number
    (?P<bundle>\S.*?) \s+       # bundle id (may contain spaces)
    (?P<replace>
        (?P<addr>0x\w+) \s+     # address
        .*                      # current description, to be replaced
    )
    $
    """,
    re.VERBOSE,
)


# ---------------------------------------------------------------------------
# Data classes
# ---------------------------------------------------------------------------

@dataclass
class ImageRecord:
    """
    A binary image we hold symbols for.

    Fields:
        bundle_id:     Bundle identifier as it appears in frame lines.
        uuid:          Image UUID from the "Binary Images" table.
        arch:          Architecture slice name (e.g. "x86_64").
        symbol_path:   DWARF file inside the matching .dSYM bundle.
        load_address:  Load address from the "Binary Images" table.
    """
    bundle_id: str
    uuid: str
    arch: str
    symbol_path: str
    load_address: str


@dataclass
class Frame:
    """
    A backtrace frame we can symbolicate.

    Fields:
        key:      Exact original text spanning address + description.
        address:  Return address, e.g. '0x0000000100001000'.
        bundle:   Owning bundle identifier.
    """
    key: str
    address: str
    bundle: str


# ---------------------------------------------------------------------------
# Parsing
# ---------------------------------------------------------------------------

def parse_frame_line(line: str) -> Optional[Frame]:
    """
    Parse one backtrace line, or return None if it is not a frame line.
    """
    m = FRAME_LINE_RE.match(line)
    if not m:
        return None
    return Frame(
        key=m.group("replace"),
        address=m.group("addr"),
        bundle=m.group("bundle"),
    )


def parse_backtrace(
    backtrace: str,
    images: Mapping[str, ImageRecord],
) -> Dict[str, Frame]:
    """
    Parse one thread section body into {replacement key: Frame}.

    Frames whose bundle is not in `images` are dropped.
    """
    frames: Dict[str, Frame] = {}

    for line in backtrace.split("\n"):
        frame = parse_frame_line(line)
        if frame is None:
            continue
        if frame.bundle not in images:
            continue
        frames[frame.key] = frame

    return frames


def _merge_frames(into: Dict[str, Frame], new: Mapping[str, Frame]) -> None:
    for key, frame in new.items():
        old = into.get(key)
        if old is not None and (old.address != frame.address or old.bundle != frame.bundle):
            LOG.warning(
                "Frame text %r seen for %s and %s; keeping the later one",
                key,
                old.bundle,
                frame.bundle,
            )
        into[key] = frame


def collect_frames(
    text: str,
    images: Mapping[str, ImageRecord],
) -> Dict[str, Frame]:
    """
    Parse every thread section in the report and merge the frames.

    Returns:
        {replacement key: Frame} over all threads. Later threads win on
        key collision.
    """
    frames: Dict[str, Frame] = {}
    thread_count = 0

    for section in iter_sections(text, THREAD_SECTION_RE, multiline=True):
        thread_count += 1
        thread_frames = parse_backtrace(section.content, images)
        LOG.debug("%s: %d frames from known images", section.label, len(thread_frames))
        _merge_frames(frames, thread_frames)

    LOG.info("Found %d thread sections, %d frames to symbolicate", thread_count, len(frames))
    return frames


__all__ = [
    "THREAD_SECTION_RE",
    "FRAME_LINE_RE",
    "ImageRecord",
    "Frame",
    "parse_frame_line",
    "parse_backtrace",
    "collect_frames",
]

#!/usr/bin/env python3
"""
symbolizer.py

Batched symbolication of backtrace frames with atos.

Responsibilities:
  - Group frames by the image that owns them: one group per
    (symbol file, arch, load address).
  - Within a group, look each distinct address up once, even when many
    frames (recursion, several threads) share it.
  - Run atos once per group with all of that group's addresses, and
    pair the i-th output line with the i-th requested address.
  - Return the frames that resolved to a real symbol; everything else
    is left out and keeps its original text.

Groups are independent, so they run in a thread pool. Each job returns
its own result mapping and the results are merged by the caller thread.
"""

from __future__ import annotations

import logging
import re
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from typing import Dict, List, Mapping, Optional, Tuple

from qcs import dsym_tools
from qcs.backtrace import Frame, ImageRecord


LOG = logging.getLogger("symbolizer")


# "(in App)" annotation atos appends after the function name.
_IN_BINARY_RE = re.compile(r"\s*\(in .*?\)")

# atos echoes "0x..." back for addresses it could not map.
_ADDRESS_ECHO_RE = re.compile(r"^\d")


@dataclass
class ResolvedFrame:
    """
    A frame with its symbolicated description.

    key is the original text to be replaced with "<address> <symbol>".
    """
    key: str
    address: str
    bundle: str
    symbol: str


@dataclass
class LookupGroup:
    """
    All lookups that go to a single atos invocation.

    lookups is an ordered list of (address, frames sharing that address).
    The order of this list is the order of addresses passed to atos and
    therefore the order of the output lines.
    """
    image: ImageRecord
    lookups: List[Tuple[str, List[Frame]]] = field(default_factory=list)

    @property
    def addresses(self) -> List[str]:
        return [address for address, _ in self.lookups]


def clean_symbol_line(line: str) -> Optional[str]:
    """
    Turn one atos output line into symbol text.

    Strips the redundant "(in <binary>)" part and the line ending; other
    whitespace is kept as atos printed it. Returns None for lines that are
    only the address echoed back, or blank.
    """
    s = _IN_BINARY_RE.sub("", line.rstrip("\r\n"), count=1)
    if not s.strip() or _ADDRESS_ECHO_RE.match(s):
        return None
    return s


def build_lookup_groups(
    frames: Mapping[str, Frame],
    images: Mapping[str, ImageRecord],
) -> List[LookupGroup]:
    """
    Group frames by (symbol file, arch, load address) and by address.

    Frames whose bundle has no ImageRecord are skipped.
    """
    groups: Dict[Tuple[str, str, str], LookupGroup] = {}
    # group key -> address -> index into group.lookups
    positions: Dict[Tuple[str, str, str], Dict[str, int]] = {}

    for frame in frames.values():
        image = images.get(frame.bundle)
        if image is None:
            LOG.debug("Skipping frame from unknown image %s", frame.bundle)
            continue

        group_key = (image.symbol_path, image.arch, image.load_address)
        group = groups.get(group_key)
        if group is None:
            group = LookupGroup(image=image)
            groups[group_key] = group
            positions[group_key] = {}

        addr_pos = positions[group_key]
        if frame.address in addr_pos:
            group.lookups[addr_pos[frame.address]][1].append(frame)
        else:
            addr_pos[frame.address] = len(group.lookups)
            group.lookups.append((frame.address, [frame]))

    return list(groups.values())


def _symbolize_group(
    group_index: int,
    group: LookupGroup,
    timeout: Optional[float],
) -> Dict[str, str]:
    """
    Run atos for one group.

    Returns:
        {frame key: symbol text} for every frame that resolved.
    """
    image = group.image
    addresses = group.addresses
    LOG.info(
        "Symbolizing group %d: symbol=%s, arch=%s, load=%s, %d unique addresses",
        group_index,
        image.symbol_path,
        image.arch,
        image.load_address,
        len(addresses),
    )

    lines = dsym_tools.run_atos(
        image.symbol_path,
        image.arch,
        image.load_address,
        addresses,
        timeout=timeout,
    )

    if lines and len(lines) != len(addresses):
        # Output cannot be paired with the request positionally.
        LOG.warning(
            "atos returned %d lines for %d addresses from %s; ignoring its output",
            len(lines),
            len(addresses),
            image.symbol_path,
        )
        lines = []

    out: Dict[str, str] = {}
    references = 0

    for (address, frames), line in zip(group.lookups, lines):
        symbol = clean_symbol_line(line)
        if symbol is None:
            LOG.debug("No symbol for %s in %s", address, image.symbol_path)
            continue
        references += 1
        for frame in frames:
            out[frame.key] = symbol

    if references == 0:
        LOG.warning("Unable to symbolicate from required binary: %s", image.symbol_path)

    return out


def symbolize_frames(
    frames: Mapping[str, Frame],
    images: Mapping[str, ImageRecord],
    workers: int = 4,
    timeout: Optional[float] = None,
) -> Dict[str, ResolvedFrame]:
    """
    Symbolicate frames and keep only those that resolved.

    Args:
        frames:
            {replacement key: Frame} from collect_frames().
        images:
            {bundle id: ImageRecord} for the images we hold symbols for.
        workers:
            Thread pool size for concurrent atos calls.
        timeout:
            Seconds allowed per atos call. None waits forever.

    Returns:
        {replacement key: ResolvedFrame}. Frames with no symbol are absent.
    """
    groups = build_lookup_groups(frames, images)
    symbols: Dict[str, str] = {}

    if groups:
        max_workers = max(1, workers)
        with ThreadPoolExecutor(max_workers=max_workers) as ex:
            fut_map = {}
            for g_idx, group in enumerate(groups):
                fut = ex.submit(_symbolize_group, g_idx, group, timeout)
                fut_map[fut] = g_idx

            for fut in as_completed(fut_map):
                symbols.update(fut.result())

    resolved: Dict[str, ResolvedFrame] = {}
    for key, frame in frames.items():
        symbol = symbols.get(key)
        if symbol is None:
            continue
        resolved[key] = ResolvedFrame(
            key=key,
            address=frame.address,
            bundle=frame.bundle,
            symbol=symbol,
        )

    LOG.info("Resolved %d of %d frames", len(resolved), len(frames))
    return resolved


__all__ = [
    "ResolvedFrame",
    "LookupGroup",
    "clean_symbol_line",
    "build_lookup_groups",
    "symbolize_frames",
]

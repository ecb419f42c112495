#!/usr/bin/env python3
"""
rewriter.py

Merge symbolicated frames back into the original crash report text.

High-level behavior:

  - Build one regex that is the alternation of every replacement key
    (each escaped, so keys are matched literally).
  - Substitute in a single left-to-right pass over the original text:
    each matched key becomes "<address> <symbol>".
  - Decode the few HTML entities that older report producers escaped
    (&amp; &lt; &gt; &quot; &apos;).

Important assumptions:

  - Matching runs against the original text only. Replacement output is
    never re-scanned, so a symbol that happens to contain another key
    is left alone.
  - Keys are tried longest first, so a key that is a prefix of another
    key cannot steal its match.
  - With no resolved frames the text is returned unchanged.
"""

from __future__ import annotations

import logging
import re
from typing import Dict, Mapping

from qcs.symbolizer import ResolvedFrame


LOG = logging.getLogger("rewriter")


ENTITY2CHAR: Dict[str, str] = {
    "amp": "&",
    "gt": ">",
    "lt": "<",
    "quot": '"',
    "apos": "'",
}

_ENTITY_RE = re.compile(r"(&(\w+);?)")


def decode_entities(text: str) -> str:
    """
    Replace known entities with their characters; leave others as-is.
    """
    return _ENTITY_RE.sub(
        lambda m: ENTITY2CHAR.get(m.group(2), m.group(1)),
        text,
    )


def replace_symbolized_frames(
    text: str,
    frames: Mapping[str, ResolvedFrame],
) -> str:
    """
    Return a new report text with every resolved frame substituted.

    Parameters:
        text:
            Original report text. Not modified.
        frames:
            {replacement key: ResolvedFrame} from symbolize_frames().
    """
    if not frames:
        return text

    keys = sorted(frames.keys(), key=len, reverse=True)
    pattern = re.compile("|".join(re.escape(k) for k in keys))

    def _replace(m: re.Match) -> str:
        frame = frames[m.group(0)]
        return f"{frame.address} {frame.symbol}"

    new_text = pattern.sub(_replace, text)
    return decode_entities(new_text)


def rewrite_report(
    text: str,
    frames: Mapping[str, ResolvedFrame],
) -> str:
    """
    Rewrite the report, or pass it through untouched when nothing resolved.
    """
    if not frames:
        LOG.warning("No symbolic information found")
        return text

    LOG.info("Replacing %d frame descriptions", len(frames))
    return replace_symbolized_frames(text, frames)


__all__ = [
    "ENTITY2CHAR",
    "decode_entities",
    "replace_symbolized_frames",
    "rewrite_report",
]

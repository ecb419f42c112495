#!/usr/bin/env python3
"""
sections.py

Labelled-section scanner for crash report text.

Crash reports have no formal schema, but fields follow one convention:

    Label:   value on the same line

and some sections carry a body on the following lines, terminated by a
blank line or the end of the report:

    Binary Images:
           0x100000000 -        0x100005fff +com.example.App (1.0 - 1) <...> /path
        0x7fff5fc00000 -     0x7fff5fc3bdef  dyld (132.1 - ???) <...> /usr/lib/dyld

This module finds those sections by label. A label is either a literal
string (matched exactly, case-sensitive) or a compiled regex (used to
enumerate families of labels such as "Thread 0 Crashed", "Thread 1").

Nothing here raises for a missing label: None / empty results are a
normal outcome and callers decide whether that is fatal.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Dict, Iterator, List, Optional, Tuple, Union

Label = Union[str, re.Pattern]


@dataclass
class Section:
    """
    One labelled section found in the report.

    Fields:
        label:  Label text exactly as it appears in the report.
        value:  Rest of the label line after ':' (leading/trailing blanks
                stripped).
        body:   Lines following the label line up to the next blank line,
                joined with '\\n'. None for single-line lookups.
        start:  Offset of the label line in the report text.
        end:    Offset just past the last character consumed.
    """
    label: str
    value: str
    body: Optional[str]
    start: int
    end: int

    @property
    def content(self) -> str:
        """Body for multi-line sections, otherwise the same-line value."""
        if self.body is not None:
            return self.body
        return self.value


def _header_regex(label: Label) -> re.Pattern:
    flags = re.MULTILINE
    if isinstance(label, str):
        label_re = re.escape(label)
    else:
        label_re = label.pattern
        flags |= label.flags
    return re.compile(
        r"^(?P<label>" + label_re + r"):[ \t]*(?P<value>.*)$",
        flags,
    )


def _scan_body(text: str, pos: int) -> Tuple[str, int]:
    """
    Collect the lines that follow a label line.

    pos is the offset of the newline terminating the label line. Returns
    (body, end) where end is the offset just past the last body line.
    """
    if pos >= len(text) or text[pos] != "\n":
        return "", pos

    lines: List[str] = []
    cursor = pos + 1
    end = pos
    n = len(text)

    while cursor < n:
        nl = text.find("\n", cursor)
        line_end = nl if nl != -1 else n
        line = text[cursor:line_end]
        if not line.strip():
            break
        lines.append(line)
        end = line_end
        cursor = line_end + 1

    return "\n".join(lines), end


def find_section(
    text: str,
    label: Label,
    multiline: bool = False,
    pos: int = 0,
) -> Optional[Section]:
    """
    Find the first section called `label` at or after offset `pos`.

    Args:
        text:
            Report text.
        label:
            Literal label string, or a compiled pattern matching label text.
        multiline:
            If True, also capture the lines following the label line up to
            the next blank line (or end of text) as the section body.
        pos:
            Offset to start searching from.

    Returns:
        Section, or None if no such label exists after pos.
    """
    m = _header_regex(label).search(text, pos)
    if not m:
        return None

    value = m.group("value").strip()
    body: Optional[str] = None
    end = m.end()

    if multiline:
        body, end = _scan_body(text, m.end())
        end = max(end, m.end())

    return Section(
        label=m.group("label"),
        value=value,
        body=body,
        start=m.start(),
        end=end,
    )


def parse_section(
    text: str,
    label: Label,
    multiline: bool = False,
) -> Optional[str]:
    """
    Convenience wrapper returning only the content of the first match.
    """
    section = find_section(text, label, multiline=multiline)
    if section is None:
        return None
    return section.content


def iter_sections(
    text: str,
    label: Label,
    multiline: bool = False,
) -> Iterator[Section]:
    """
    Yield every section matching `label`, in report order.

    Each lookup resumes right after the previous section, so a body is
    never re-scanned as a label line of its own.
    """
    pos = 0
    n = len(text)
    while pos <= n:
        section = find_section(text, label, multiline=multiline, pos=pos)
        if section is None:
            return
        yield section
        pos = max(section.end, section.start + 1)


def find_sections(
    text: str,
    label: Label,
    multiline: bool = False,
) -> Dict[str, str]:
    """
    Map label text -> content for every section matching `label`.

    When the same label text appears more than once, the later section
    wins.
    """
    out: Dict[str, str] = {}
    for section in iter_sections(text, label, multiline=multiline):
        out[section.label] = section.content
    return out


__all__ = [
    "Section",
    "find_section",
    "parse_section",
    "iter_sections",
    "find_sections",
]

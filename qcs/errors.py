#!/usr/bin/env python3
"""
errors.py

Fatal error types for QCS.

Anything raised from here aborts the run before output is written.
Recoverable conditions (a backtrace line we cannot parse, a binary that
yields no symbols) are only logged and never raise.
"""

from __future__ import annotations

from typing import Optional


class SymbolicationError(Exception):
    """Base class for every condition that stops symbolication."""


class ReportError(SymbolicationError):
    """The crash report is unreadable or lacks a required field."""


class UUIDMismatchError(SymbolicationError):
    """
    The debug-symbol artifact does not belong to the crashed binary.

    Fields:
        symbol_path: Artifact that was checked.
        expected:    UUID recorded in the crash report's image table.
        actual:      UUID read from the artifact, or None if unreadable.
    """

    def __init__(self, symbol_path: str, expected: str, actual: Optional[str]) -> None:
        self.symbol_path = symbol_path
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"Symbol UUID <{actual or 'unknown'}> does not match crash log "
            f"image UUID <{expected}> ({symbol_path})"
        )


__all__ = [
    "SymbolicationError",
    "ReportError",
    "UUIDMismatchError",
]

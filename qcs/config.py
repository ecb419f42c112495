#!/usr/bin/env python3
"""
config.py

Run configuration for QCS, built once from the command line and passed
down explicitly.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional

DEFAULT_WORKERS = 4
DEFAULT_TIMEOUT = 120.0

# Location of the DWARF file inside a .dSYM bundle, minus the executable name.
DSYM_DWARF_SUBPATH = Path("Contents") / "Resources" / "DWARF"


@dataclass
class SymbolicateOptions:
    """
    Fields:
        report_path:   Crash report path; '-' or '' reads stdin.
        dsym_path:     .dSYM bundle of the crashed executable, or its DWARF
                       file directly.
        search_paths:  Additional symbol search paths given on the command
                       line.
        output:        Output file; None writes to stdout.
        verbose:       Enable debug logging.
        workers:       Thread pool size for atos calls.
        timeout:       Seconds per external tool call; None or 0 disables.
        summary:       Print the extracted report fields instead of
                       symbolicating.
    """
    report_path: str
    dsym_path: Path
    search_paths: List[Path] = field(default_factory=list)
    output: Optional[Path] = None
    verbose: bool = False
    workers: int = DEFAULT_WORKERS
    timeout: Optional[float] = DEFAULT_TIMEOUT
    summary: bool = False

    def symbol_path(self, executable_name: str) -> Path:
        """
        DWARF file to symbolicate with:
        <dsym>/Contents/Resources/DWARF/<executable>, or dsym_path itself
        when it already points at a file.
        """
        if self.dsym_path.is_file():
            return self.dsym_path
        return self.dsym_path / DSYM_DWARF_SUBPATH / executable_name


__all__ = [
    "DEFAULT_WORKERS",
    "DEFAULT_TIMEOUT",
    "DSYM_DWARF_SUBPATH",
    "SymbolicateOptions",
]

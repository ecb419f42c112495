"""Quick Crash Symbolicator (QCS)."""

__version__ = "0.3.0"

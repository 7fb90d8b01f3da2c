"""Basic-block edge coverage: a coverage bitmap, IR instrumentation, a clang wrapper and a monitor."""

__version__ = "0.1.0"
__all__ = ["coverage", "instrument", "driver", "monitor"]
"""
LFStream - Streaming line ending normalization for byte sources.

This package provides:
- LineEndingNormalizer, a reader that collapses CR, CRLF and LF to LF
  while holding at most one byte of look-ahead
- An optional guarantee that the output ends with a line feed
- A command line tool that normalizes files, directory trees or stdin
"""

__version__ = "1.0.0"
__author__ = "tboy1337"

from lfstream.stream import (  # noqa: E402
    ByteSource,
    LineEndingNormalizer,
    UnsupportedCapabilityError,
    normalize_bytes,
)

__all__ = [
    "ByteSource",
    "LineEndingNormalizer",
    "UnsupportedCapabilityError",
    "normalize_bytes",
]

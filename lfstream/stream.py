"""
Line ending normalization for byte streams.

Wraps any readable byte source and presents a view of it in which every CR,
CRLF and LF line ending is collapsed to a single LF, optionally guaranteeing
that the stream ends with LF.
"""

import io
import logging
from typing import Any, Optional, Protocol

CR: int = 0x0D
LF: int = 0x0A

logger = logging.getLogger("LFStream")


class UnsupportedCapabilityError(io.UnsupportedOperation):
    """Raised when a caller asks the normalizer to rewind or seek."""


class ByteSource(Protocol):
    """Minimal interface required from the wrapped source."""

    def read(self, size: int = -1) -> bytes:
        ...

    def close(self) -> None:
        ...


class LineEndingNormalizer:
    """
    A filtering reader that ensures the content has unix-style line endings.

    Every CR, CRLF pair and lone LF read from ``source`` comes out as a single
    LF. When ``ensure_trailing_lf`` is set, a synthetic LF is emitted at end of
    stream unless the last emitted byte already was one.

    At most one raw byte is held back between calls: the byte read after a CR
    to check for a CRLF pair, when it turns out not to be LF.
    """

    def __init__(self, source: ByteSource, ensure_trailing_lf: bool = False) -> None:
        self._source = source
        self._ensure_trailing_lf = ensure_trailing_lf
        self._last_was_lf = False
        self._eof_seen = False
        self._lookahead: Optional[int] = None

    @property
    def ensure_trailing_lf(self) -> bool:
        return self._ensure_trailing_lf

    @property
    def closed(self) -> bool:
        return bool(getattr(self._source, "closed", False))

    def _read_raw(self) -> Optional[int]:
        data: bytes = self._source.read(1)
        if not data:
            if not self._eof_seen:
                logger.debug("End of source reached")
            self._eof_seen = True
            return None
        return data[0]

    def _complete(self) -> Optional[int]:
        """Completion step run once the source is exhausted."""
        if not self._ensure_trailing_lf or self._last_was_lf:
            return None
        self._last_was_lf = True
        logger.debug("Appending trailing line feed")
        return LF

    def read_byte(self) -> Optional[int]:
        """
        Return the next normalized byte value, or None at end of stream.

        CR is never returned. Reads at most two raw bytes from the source.
        """
        byte: Optional[int]
        if self._lookahead is not None:
            byte, self._lookahead = self._lookahead, None
        elif self._eof_seen:
            return self._complete()
        else:
            byte = self._read_raw()
            if byte is None:
                return self._complete()

        if byte == CR:
            # Keep the CR pending until the byte after it has been read
            self._lookahead = CR
            following = self._read_raw()
            self._lookahead = None
            if following is not None and following != LF:
                self._lookahead = following
            byte = LF

        self._last_was_lf = byte == LF
        return byte

    def readinto(self, buffer: Any) -> int:
        """
        Fill ``buffer`` with normalized bytes.

        Returns the number of bytes stored; 0 means end of stream.
        """
        view = memoryview(buffer).cast("B")
        count = 0
        while count < len(view):
            byte = self.read_byte()
            if byte is None:
                break
            view[count] = byte
            count += 1
        return count

    def read(self, size: Optional[int] = -1) -> bytes:
        """Read up to ``size`` normalized bytes, or everything if size < 0."""
        out = bytearray()
        while size is None or size < 0 or len(out) < size:
            byte = self.read_byte()
            if byte is None:
                break
            out.append(byte)
        return bytes(out)

    def close(self) -> None:
        """Close the normalizer and the underlying source."""
        logger.debug("Closing underlying source")
        self._source.close()

    def readable(self) -> bool:
        return True

    def seekable(self) -> bool:
        return False

    def markable(self) -> bool:
        return False

    def mark(self, limit: int) -> None:  # pylint: disable=unused-argument
        raise UnsupportedCapabilityError("mark is not supported")

    def reset(self) -> None:
        raise UnsupportedCapabilityError("reset is not supported")

    def seek(  # pylint: disable=unused-argument
        self, offset: int, whence: int = io.SEEK_SET
    ) -> int:
        raise UnsupportedCapabilityError("seek is not supported")

    def __enter__(self) -> "LineEndingNormalizer":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()


def normalize_bytes(data: bytes, ensure_trailing_lf: bool = False) -> bytes:
    """Return ``data`` with all line endings normalized to LF."""
    with LineEndingNormalizer(io.BytesIO(data), ensure_trailing_lf) as stream:
        return stream.read()

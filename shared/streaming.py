"""
Byte-range helpers for audio streaming.

Parses `Range: bytes=start-end` headers and reads the requested slice of a
file in fixed-size chunks.
"""

import os
from dataclasses import dataclass
from typing import Callable, Iterator, Optional

from werkzeug.http import parse_range_header as parse_http_range

from shared.constants import AUDIO_MIME_TYPES, DEFAULT_AUDIO_MIME_TYPE, DEFAULT_DOWNLOAD_CHUNK_SIZE


class RangeNotSatisfiable(Exception):
    """The Range header cannot be served for a file of this size."""

    def __init__(self, total: int):
        super().__init__(f"Requested range not satisfiable for {total} bytes")
        self.total = total


@dataclass(frozen=True)
class ByteRange:
    """An inclusive byte range within a file of `total` bytes."""
    start: int
    end: int
    total: int

    @property
    def length(self) -> int:
        return self.end - self.start + 1

    def content_range(self) -> str:
        return f"bytes {self.start}-{self.end}/{self.total}"


def content_type_for(path: str) -> str:
    """Audio MIME type from the file extension, defaulting to audio/mpeg."""
    ext = os.path.splitext(path)[1].lower()
    return AUDIO_MIME_TYPES.get(ext, DEFAULT_AUDIO_MIME_TYPE)


def parse_range_header(header: Optional[str], total: int) -> Optional[ByteRange]:
    """
    Parse a single-range `Range` header.

    A missing start means 0 and a missing end means the last byte. An end past
    the file is clamped to the last byte.

    Args:
        header: Raw header value, or None
        total: File size in bytes

    Returns:
        ByteRange, or None when no header was sent

    Raises:
        RangeNotSatisfiable: malformed header, multiple ranges, start past
            the end of the file, or start greater than end
    """
    if header is None or header.strip() == "":
        return None

    parsed = parse_http_range(header)
    if parsed is None or parsed.units != "bytes" or len(parsed.ranges) != 1:
        raise RangeNotSatisfiable(total)

    # werkzeug returns exclusive ends and reads "-N" as a suffix; "-N" here means 0-N
    begin, stop = parsed.ranges[0]
    if begin < 0:
        start, end = 0, -begin
    else:
        start = begin
        end = stop - 1 if stop is not None else total - 1
    end = min(end, total - 1)

    if start >= total or start > end:
        raise RangeNotSatisfiable(total)
    return ByteRange(start=start, end=end, total=total)


def iter_file_range(path: str, start: int, length: int,
                    chunk_size: int = DEFAULT_DOWNLOAD_CHUNK_SIZE,
                    on_complete: Optional[Callable[[], None]] = None) -> Iterator[bytes]:
    """
    Yield `length` bytes of a file starting at `start`.

    `on_complete` runs once the whole slice has been yielded, not when the
    consumer stops early.
    """
    remaining = length
    with open(path, 'rb') as f:
        f.seek(start)
        while remaining > 0:
            chunk = f.read(min(chunk_size, remaining))
            if not chunk:
                break
            remaining -= len(chunk)
            yield chunk
    if remaining == 0 and on_complete:
        on_complete()

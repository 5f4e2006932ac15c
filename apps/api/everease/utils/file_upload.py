"""Helpers for bounded upload reads."""

from __future__ import annotations

from os import SEEK_END

from fastapi import UploadFile
from starlette.concurrency import run_in_threadpool


MULTIPART_OVERHEAD_BYTES = 64 * 1024


def content_length_exceeds_limit(
    content_length_header: str | None,
    *,
    max_size_bytes: int,
    overhead_bytes: int = MULTIPART_OVERHEAD_BYTES,
) -> bool:
    """True when the request body is too large to hold an acceptable file."""
    if not content_length_header:
        return False
    try:
        content_length = int(content_length_header)
    except (TypeError, ValueError):
        return False
    return content_length > (max_size_bytes + overhead_bytes)


async def read_upload_bounded(file: UploadFile, *, max_size_bytes: int) -> tuple[bytes | None, int]:
    """
    Measure the spooled upload, then read it only if it fits.

    Returns (content, size). content is None when size exceeds max_size_bytes,
    so oversized files are never pulled into memory.
    """

    def _measure_and_read() -> tuple[bytes | None, int]:
        stream = file.file
        stream.seek(0, SEEK_END)
        size = stream.tell()
        stream.seek(0)
        if size > max_size_bytes:
            return None, size
        return stream.read(), size

    return await run_in_threadpool(_measure_and_read)

"""Attachment responses with single-range support."""

from __future__ import annotations

import re
from urllib.parse import quote

from fastapi import HTTPException, Request, Response, status

OCTET_STREAM = "application/octet-stream"

_RANGE_RE = re.compile(r"^bytes=(\d*)-(\d*)$")


class RangeNotSatisfiableError(Exception):
    """Raised when a Range header cannot be served for the given size."""


def parse_range_header(header: str | None, total: int) -> tuple[int, int] | None:
    """Parse an HTTP Range header into inclusive (start, end) byte offsets.

    Supports ``bytes=start-end``, ``bytes=start-`` and ``bytes=-suffix``.
    Unparseable or multi-range headers return None and the full body is
    served instead.

    Raises:
        RangeNotSatisfiableError: If the range lies outside the content.
    """
    if not header or not header.startswith("bytes="):
        return None
    if "," in header:
        return None

    match = _RANGE_RE.match(header.strip())
    if not match:
        return None

    start_str, end_str = match.group(1), match.group(2)
    if not start_str and not end_str:
        raise RangeNotSatisfiableError(header)

    if not start_str:
        suffix_length = int(end_str)
        if suffix_length == 0 or total == 0:
            raise RangeNotSatisfiableError(header)
        suffix_length = min(suffix_length, total)
        return total - suffix_length, total - 1

    start = int(start_str)
    if start >= total:
        raise RangeNotSatisfiableError(header)
    if not end_str:
        return start, total - 1

    end = int(end_str)
    if start > end:
        raise RangeNotSatisfiableError(header)
    return start, min(end, total - 1)


def content_disposition(filename: str) -> str:
    quoted = quote(filename, safe="")
    if quoted == filename:
        return f'attachment; filename="{filename}"'
    return f"attachment; filename*=utf-8''{quoted}"


def attachment_response(request: Request, content: bytes, filename: str) -> Response:
    """Return ``content`` as a downloadable octet-stream, honouring Range."""
    total = len(content)
    headers = {
        "Content-Disposition": content_disposition(filename),
        "Accept-Ranges": "bytes",
    }
    try:
        byte_range = parse_range_header(request.headers.get("range"), total)
    except RangeNotSatisfiableError as exc:
        raise HTTPException(
            status_code=status.HTTP_416_REQUESTED_RANGE_NOT_SATISFIABLE,
            detail=f"Range not satisfiable: {exc}",
            headers={"Content-Range": f"bytes */{total}"},
        ) from exc

    if byte_range is None:
        return Response(content=content, media_type=OCTET_STREAM, headers=headers)

    start, end = byte_range
    headers["Content-Range"] = f"bytes {start}-{end}/{total}"
    return Response(
        content=content[start : end + 1],
        status_code=status.HTTP_206_PARTIAL_CONTENT,
        media_type=OCTET_STREAM,
        headers=headers,
    )

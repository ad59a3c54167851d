"""Incremental multipart/form-data reader.

Feeds request body chunks into the ``python-multipart`` push parser and yields
each part as soon as its closing boundary has been seen, so callers can stop
reading the body once they have what they need.
"""

from __future__ import annotations

import logging
from collections import deque
from dataclasses import dataclass, field
from typing import AsyncIterator, Deque, Dict, List, Optional, Tuple

from python_multipart.exceptions import MultipartParseError
from python_multipart.multipart import MultipartParser, parse_options_header

from docchat.errors import MalformedRequestError

logger = logging.getLogger(__name__)


def _safe_decode(src: bytes, codec: str = "utf-8") -> str:
    try:
        return src.decode(codec)
    except (UnicodeDecodeError, LookupError):
        return src.decode("latin-1")


@dataclass
class FormPart:
    """One field or file unit of a multipart submission."""

    name: Optional[str]
    filename: Optional[str] = None
    content_type: Optional[str] = None
    data: bytes = b""

    @property
    def is_file(self) -> bool:
        return self.filename is not None

    def text(self) -> str:
        """Decode the value as UTF-8; raises UnicodeDecodeError on bad bytes."""
        return self.data.decode("utf-8")


@dataclass
class _PartBuilder:
    """Collects parser callbacks into finished FormParts."""

    completed: Deque[FormPart] = field(default_factory=deque)
    _headers: List[Tuple[bytes, bytes]] = field(default_factory=list)
    _header_field: bytearray = field(default_factory=bytearray)
    _header_value: bytearray = field(default_factory=bytearray)
    _data: bytearray = field(default_factory=bytearray)
    _current: Optional[FormPart] = None

    def callbacks(self) -> Dict[str, object]:
        return {
            "on_part_begin": self.on_part_begin,
            "on_part_data": self.on_part_data,
            "on_part_end": self.on_part_end,
            "on_header_field": self.on_header_field,
            "on_header_value": self.on_header_value,
            "on_header_end": self.on_header_end,
            "on_headers_finished": self.on_headers_finished,
        }

    def on_part_begin(self) -> None:
        self._headers = []
        self._data = bytearray()
        self._current = None

    def on_part_data(self, data: bytes, start: int, end: int) -> None:
        self._data.extend(data[start:end])

    def on_header_field(self, data: bytes, start: int, end: int) -> None:
        self._header_field.extend(data[start:end])

    def on_header_value(self, data: bytes, start: int, end: int) -> None:
        self._header_value.extend(data[start:end])

    def on_header_end(self) -> None:
        self._headers.append((bytes(self._header_field).lower(), bytes(self._header_value)))
        self._header_field = bytearray()
        self._header_value = bytearray()

    def on_headers_finished(self) -> None:
        headers = dict(self._headers)
        _, options = parse_options_header(headers.get(b"content-disposition", b""))
        name = options.get(b"name")
        filename = options.get(b"filename")
        content_type = headers.get(b"content-type")
        self._current = FormPart(
            name=_safe_decode(name) if name is not None else None,
            filename=_safe_decode(filename) if filename is not None else None,
            content_type=_safe_decode(content_type) if content_type is not None else None,
        )

    def on_part_end(self) -> None:
        part = self._current or FormPart(name=None)
        part.data = bytes(self._data)
        self.completed.append(part)
        self._current = None
        self._data = bytearray()


def boundary_from_content_type(content_type: Optional[str]) -> bytes:
    ctype, params = parse_options_header(content_type or "")
    boundary = params.get(b"boundary")
    if ctype != b"multipart/form-data" or not boundary:
        raise MalformedRequestError(f"not a multipart/form-data body: {content_type!r}")
    return boundary


async def iter_form_parts(
    boundary: bytes,
    chunks: AsyncIterator[bytes],
) -> AsyncIterator[FormPart]:
    """Yield the parts of a multipart body while it is still being received.

    Parser errors in the middle of the body raise MalformedRequestError, after
    every part that was complete before the error has been yielded.
    """
    builder = _PartBuilder()
    parser = MultipartParser(boundary, builder.callbacks())

    async for chunk in chunks:
        if not chunk:
            continue
        try:
            parser.write(chunk)
        except MultipartParseError as exc:
            while builder.completed:
                yield builder.completed.popleft()
            raise MalformedRequestError(f"multipart parse error: {exc}") from exc
        while builder.completed:
            yield builder.completed.popleft()

    parser.finalize()
    while builder.completed:
        yield builder.completed.popleft()
    logger.debug("Multipart body fully consumed")

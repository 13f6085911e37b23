"""Source document reader built on pymupdf's low-level xref interface."""

from __future__ import annotations

import logging
import os
from typing import BinaryIO

import pymupdf

from pdftpl.errors import SourceReadError
from pdftpl.models import BOX_NAMES, PageBox, SourceObject
from pdftpl.pdf.syntax import parse_numbers, parse_reference

logger = logging.getLogger(__name__)

_INHERITABLE_BOXES = {"/MediaBox", "/CropBox"}


class PdfReader:
    """Read page geometry, content and raw objects from one PDF."""

    def __init__(self, document: pymupdf.Document, source: str) -> None:
        self._doc = document
        self._source = source

    @classmethod
    def open(cls, source: str | os.PathLike[str] | bytes | BinaryIO, *, label: str | None = None) -> "PdfReader":
        """Open a PDF from a path, raw bytes or a binary stream."""

        if isinstance(source, (bytes, bytearray)):
            name = label or "<bytes>"
        elif hasattr(source, "read"):
            name = label or "<stream>"
        else:
            name = label or os.fspath(source)

        try:
            if isinstance(source, (bytes, bytearray)):
                document = pymupdf.open(stream=bytes(source), filetype="pdf")
            elif hasattr(source, "read"):
                document = pymupdf.open(stream=source.read(), filetype="pdf")
            else:
                document = pymupdf.open(os.fspath(source), filetype="pdf")
        except Exception as exc:
            raise SourceReadError(message=f"Failed to open PDF: {exc}", source=name) from exc

        if not document.is_pdf:
            document.close()
            raise SourceReadError(message="Source is not a PDF document", source=name)
        if document.needs_pass:
            document.close()
            raise SourceReadError(message="Encrypted PDF requires a password", source=name)

        logger.debug("Opened %s (%d pages)", name, document.page_count)
        return cls(document, name)

    @property
    def source(self) -> str:
        return self._source

    def close(self) -> None:
        self._doc.close()

    def __enter__(self) -> "PdfReader":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def page_count(self) -> int:
        return self._doc.page_count

    def page_boxes(self, page: int, scale: float = 1.0) -> dict[str, PageBox]:
        page_xref = self._page_xref(page)
        boxes: dict[str, PageBox] = {}
        for box_name in BOX_NAMES:
            if box_name in _INHERITABLE_BOXES:
                found = self._inherited_key(page_xref, box_name[1:])
            else:
                found = self._direct_key(page_xref, box_name[1:])
            if found is None:
                continue
            numbers = self._resolve_numbers(*found)
            if len(numbers) != 4:
                logger.warning("Ignoring malformed %s on page %d of %s", box_name, page, self._source)
                continue
            boxes[box_name] = PageBox.from_corners(numbers, scale)
        return boxes

    def all_page_boxes(self, scale: float = 1.0) -> dict[int, dict[str, PageBox]]:
        return {page: self.page_boxes(page, scale) for page in range(1, self.page_count() + 1)}

    def page_rotation(self, page: int) -> int:
        found = self._inherited_key(self._page_xref(page), "Rotate")
        if found is None:
            return 0
        numbers = self._resolve_numbers(*found)
        return int(numbers[0]) if numbers else 0

    def page_resources(self, page: int) -> str | None:
        found = self._inherited_key(self._page_xref(page), "Resources")
        if found is None:
            return None
        kind, value = found
        if kind == "xref":
            xref = parse_reference(value)
            return None if xref is None else f"{xref} 0 R"
        return value

    def page_content(self, page: int) -> bytes:
        self._page_xref(page)
        return self._doc.load_page(page - 1).read_contents()

    def read_object(self, xref: int) -> SourceObject:
        if not 0 < xref < self._doc.xref_length():
            raise ValueError(f"Object {xref} does not exist in {self._source}")
        source = self._doc.xref_object(xref, compressed=True, ascii=True)
        stream = self._doc.xref_stream_raw(xref) if self._doc.xref_is_stream(xref) else None
        return SourceObject(xref=xref, source=source, stream=stream)

    def object_type(self, xref: int) -> str | None:
        if not 0 < xref < self._doc.xref_length():
            return None
        kind, value = self._doc.xref_get_key(xref, "Type")
        return value if kind == "name" else None

    def _page_xref(self, page: int) -> int:
        count = self._doc.page_count
        if not 1 <= page <= count:
            raise ValueError(f"Page {page} is out of range 1..{count}")
        return self._doc.page_xref(page - 1)

    def _direct_key(self, xref: int, key: str) -> tuple[str, str] | None:
        kind, value = self._doc.xref_get_key(xref, key)
        if kind == "null":
            return None
        return kind, value

    def _inherited_key(self, xref: int, key: str) -> tuple[str, str] | None:
        """Look ``key`` up on the node and then along its /Parent chain."""
        seen: set[int] = set()
        current: int | None = xref
        while current is not None and current not in seen:
            seen.add(current)
            found = self._direct_key(current, key)
            if found is not None:
                return found
            kind, value = self._doc.xref_get_key(current, "Parent")
            current = parse_reference(value) if kind == "xref" else None
        return None

    def _resolve_numbers(self, kind: str, value: str) -> list[float]:
        if kind == "xref":
            xref = parse_reference(value)
            if xref is None:
                return []
            value = self._doc.xref_object(xref, compressed=True)
        return parse_numbers(value)

"""Form XObject writer: captures pages and re-serializes their object graph.

Imported pages are kept as templates until ``put_form_objects`` is called.
At that point every template becomes a form XObject and every object its
resources reach is copied from the source document into an in-memory object
graph. Each graph object remembers both a sequential number (assigned in
discovery order) and a content hash of its identity, so the same snapshot can
be rendered with either kind of id:

* sequential: references are written as ``12 0 R``;
* hashed: references are written as ``<40 hex chars> 0 R`` and the offset of
  every such digest is recorded, so the host can merge objects from many
  writers and patch in its own numbers afterwards.
"""

from __future__ import annotations

from collections import deque
from dataclasses import dataclass, field
import hashlib
import logging
import re
import zlib

from pdftpl.config import DEFAULT_TEMPLATE_PREFIX
from pdftpl.errors import PageImportError, TemplateImportError
from pdftpl.models import BOX_NAMES, ContentHashId, ObjectId, PageBox, SequentialId, TemplatePlacement
from pdftpl.pdf.base import SourceReader
from pdftpl.pdf.syntax import Reference, split_references

logger = logging.getLogger(__name__)

_BOX_FALLBACKS = {
    "/BleedBox": "/CropBox",
    "/TrimBox": "/CropBox",
    "/ArtBox": "/CropBox",
    "/CropBox": "/MediaBox",
}

# (cos, sin) of the form matrix for each normalised template rotation
_ROTATIONS = {0: (1, 0), -90: (0, -1), -180: (-1, 0), -270: (0, 1)}

# Page tree nodes are never copied into a template.
_SKIPPED_TYPES = {"/Page", "/Pages"}

_LENGTH_RE = re.compile(r"/Length\s+(?:\d+\s+\d+\s+R|\d+)(?!\w)")
_DICT_OPEN_RE = re.compile(r"^\s*<<")


@dataclass(slots=True)
class PdfTemplate:
    """One captured page waiting to be written as a form XObject."""

    page: int
    box_name: str
    box: PageBox
    boxes: dict[str, PageBox]
    resources: str | None
    content: bytes
    rotation: int
    width: float
    height: float
    x: float = 0.0
    y: float = 0.0


@dataclass(frozen=True, slots=True)
class _Link:
    identity: str


@dataclass(slots=True)
class _GraphObject:
    identity: str
    number: int
    digest: str
    parts: list[bytes | _Link] | None = field(default=None)


class PdfWriter:
    """Accumulate templates from one source document and export them."""

    def __init__(
        self,
        document: str = "",
        *,
        template_prefix: str = DEFAULT_TEMPLATE_PREFIX,
        compress: bool = True,
    ) -> None:
        self._document = document
        self._prefix = template_prefix
        self._compress = compress
        self._templates: list[PdfTemplate] = []
        self._tpl_id_offset = 0
        self._use_hash = False
        self._n = 0
        self._graph: dict[str, _GraphObject] = {}
        self._template_objects: dict[int, str] = {}
        self._imported: dict[int, str | None] = {}
        self._pending: deque[int] = deque()

    @property
    def document(self) -> str:
        return self._document

    @property
    def template_count(self) -> int:
        return len(self._templates)

    def template(self, local_id: int) -> PdfTemplate:
        if not 0 <= local_id < len(self._templates):
            raise KeyError(f"Unknown template {local_id}")
        return self._templates[local_id]

    def set_template_id_offset(self, offset: int) -> None:
        self._tpl_id_offset = offset

    def set_use_hash_ids(self, enabled: bool) -> None:
        self._use_hash = enabled

    def set_next_object_id(self, object_id: int) -> None:
        if object_id < 1:
            raise ValueError("PDF object numbers start at 1")
        if self._graph and object_id <= self._n:
            # Numbers handed to written objects are never reused.
            raise ValueError(f"Object numbers up to {self._n} are already assigned")
        self._n = object_id - 1

    def template_name(self, local_id: int) -> str:
        return f"{self._prefix}{local_id + self._tpl_id_offset}"

    def import_page(self, reader: SourceReader, page: int, box: str) -> int:
        """Capture ``page`` clipped to ``box`` and return its writer-local id."""

        try:
            template = self._capture_page(reader, page, box)
        except TemplateImportError:
            raise
        except Exception as exc:
            raise PageImportError(
                message=f"Failed to import page: {exc}",
                document=self._document,
                page=page,
                box=box,
            ) from exc

        self._templates.append(template)
        local_id = len(self._templates) - 1
        logger.debug(
            "Captured page %d of %s as local template %d (%s, %.2fx%.2f)",
            page,
            self._document,
            local_id,
            template.box_name,
            template.width,
            template.height,
        )
        return local_id

    def _capture_page(self, reader: SourceReader, page: int, box: str) -> PdfTemplate:
        if box not in BOX_NAMES:
            raise ValueError(f"Unknown page box {box!r}")

        boxes = reader.page_boxes(page)
        box_name = box
        while box_name not in boxes and box_name in _BOX_FALLBACKS:
            box_name = _BOX_FALLBACKS[box_name]
        if box_name not in boxes:
            raise ValueError(f"Box not found: {box}")

        selected = boxes[box_name]
        if selected.width == 0 or selected.height == 0:
            raise ValueError(f"{box_name} has zero area")

        rotation = reader.page_rotation(page)
        if rotation % 90:
            raise ValueError(f"Page rotation must be a multiple of 90, got {rotation}")
        angle = rotation % 360

        width, height = selected.width, selected.height
        if angle in (90, 270):
            width, height = height, width

        return PdfTemplate(
            page=page,
            box_name=box_name,
            box=selected,
            boxes=boxes,
            resources=reader.page_resources(page),
            content=reader.page_content(page),
            rotation=-angle,
            width=width,
            height=height,
        )

    def put_form_objects(self, reader: SourceReader, *, hashed: bool | None = None) -> dict[str, ObjectId]:
        """Write every pending template and return names mapped to object ids.

        Templates already written by an earlier call keep their objects, so
        calling this repeatedly only adds what was imported in between.
        """

        use_hash = self._use_hash if hashed is None else hashed
        result: dict[str, ObjectId] = {}
        for local_id, template in enumerate(self._templates):
            identity = self._template_objects.get(local_id)
            if identity is None:
                identity = self._put_template(reader, local_id, template)
                self._put_imported_objects(reader)
            result[self.template_name(local_id)] = self._object_id(self._graph[identity], use_hash)
        return result

    def exported_objects(self, *, hashed: bool | None = None) -> dict[ObjectId, bytes]:
        use_hash = self._use_hash if hashed is None else hashed
        exported: dict[ObjectId, bytes] = {}
        for graph_object in self._graph.values():
            content, _ = self._render(graph_object, use_hash)
            exported[self._object_id(graph_object, use_hash)] = content
        return exported

    def hash_reference_positions(self) -> dict[ObjectId, dict[int, ObjectId]]:
        positions: dict[ObjectId, dict[int, ObjectId]] = {}
        for graph_object in self._graph.values():
            _, offsets = self._render(graph_object, True)
            positions[ContentHashId(graph_object.digest)] = {
                offset: ContentHashId(digest) for offset, digest in offsets.items()
            }
        return positions

    def use_template(
        self,
        local_id: int,
        x: float = 0.0,
        y: float = 0.0,
        width: float = 0.0,
        height: float = 0.0,
    ) -> TemplatePlacement:
        """Return the transform that draws a template with its lower-left corner at (x, y).

        A zero ``width`` or ``height`` is derived from the other one so the
        template keeps its aspect ratio; both zero means natural size.
        """

        template = self.template(local_id)
        width, height = self._template_size(template, width, height)
        return TemplatePlacement(
            name=self.template_name(local_id),
            scale_x=width / template.width,
            scale_y=height / template.height,
            x=x + template.x,
            y=y + template.y,
            width=width,
            height=height,
        )

    def _template_size(self, template: PdfTemplate, width: float, height: float) -> tuple[float, float]:
        if width == 0 and height == 0:
            return template.width, template.height
        if width == 0:
            width = height * template.width / template.height
        if height == 0:
            height = width * template.height / template.width
        return width, height

    def _put_template(self, reader: SourceReader, local_id: int, template: PdfTemplate) -> str:
        graph_object = self._new_object(f"{self._document}-tpl-{local_id}")
        self._template_objects[local_id] = graph_object.identity

        content = zlib.compress(template.content) if self._compress else template.content
        box = template.box

        header = ["<<"]
        if self._compress:
            header.append("/Filter /FlateDecode ")
        header.append("/Type /XObject\n/Subtype /Form\n/FormType 1\n")
        header.append(
            f"/BBox [{box.llx:.2f} {box.lly:.2f} {box.urx + template.x:.2f} {box.ury - template.y:.2f}]\n"
        )

        cos, sin = _ROTATIONS[template.rotation]
        tx, ty = -box.llx, -box.lly
        if template.rotation == -90:
            tx, ty = -box.lly, box.urx
        elif template.rotation == -180:
            tx, ty = box.urx, box.ury
        elif template.rotation == -270:
            tx, ty = box.ury, -box.llx
        tx, ty = tx + 0.0, ty + 0.0  # no "-0.00000" in the matrix
        if cos != 1 or sin != 0 or tx != 0 or ty != 0:
            header.append(f"/Matrix [{cos:.5f} {sin:.5f} {-sin:.5f} {cos:.5f} {tx:.5f} {ty:.5f}]\n")

        header.append("/Resources ")
        parts: list[bytes | _Link] = ["".join(header).encode("latin-1")]
        parts.extend(self._convert(reader, template.resources or "<< >>"))
        parts.append(f"\n/Length {len(content)} >>\nstream\n".encode("latin-1") + content + b"\nendstream")
        graph_object.parts = parts

        logger.debug("Put template %s as object %d", self.template_name(local_id), graph_object.number)
        return graph_object.identity

    def _put_imported_objects(self, reader: SourceReader) -> None:
        """Copy every queued source object, queueing what they reference in turn."""
        while self._pending:
            xref = self._pending.popleft()
            identity = self._imported[xref]
            graph_object = self._graph[identity]
            try:
                source_object = reader.read_object(xref)
            except ValueError:
                logger.warning("Dangling reference to object %d in %s, writing null", xref, self._document)
                graph_object.parts = [b"null"]
                continue

            source = source_object.source
            stream = source_object.stream
            if stream is not None:
                source, replaced = _LENGTH_RE.subn(f"/Length {len(stream)}", source, count=1)
                if not replaced:
                    source = _DICT_OPEN_RE.sub(f"<</Length {len(stream)}", source, count=1)

            parts = self._convert(reader, source)
            if stream is not None:
                parts.append(b"\nstream\n" + stream + b"\nendstream")
            graph_object.parts = parts

    def _convert(self, reader: SourceReader, source: str) -> list[bytes | _Link]:
        parts: list[bytes | _Link] = []
        for chunk in split_references(source):
            if isinstance(chunk, Reference):
                link = self._link(reader, chunk.xref)
                parts.append(b"null" if link is None else link)
            else:
                parts.append(chunk.encode("latin-1"))
        return parts

    def _link(self, reader: SourceReader, xref: int) -> _Link | None:
        if xref in self._imported:
            identity = self._imported[xref]
            return None if identity is None else _Link(identity)

        if reader.object_type(xref) in _SKIPPED_TYPES:
            self._imported[xref] = None
            return None

        graph_object = self._new_object(f"{self._document}-obj-{xref}")
        self._imported[xref] = graph_object.identity
        self._pending.append(xref)
        return _Link(graph_object.identity)

    def _new_object(self, identity: str) -> _GraphObject:
        self._n += 1
        graph_object = _GraphObject(
            identity=identity,
            number=self._n,
            digest=hashlib.sha1(identity.encode("utf-8")).hexdigest(),
        )
        self._graph[identity] = graph_object
        return graph_object

    def _render(self, graph_object: _GraphObject, hashed: bool) -> tuple[bytes, dict[int, str]]:
        buffer = bytearray()
        offsets: dict[int, str] = {}
        for part in graph_object.parts or ():
            if isinstance(part, _Link):
                target = self._graph[part.identity]
                if hashed:
                    offsets[len(buffer)] = target.digest
                    buffer += f"{target.digest} 0 R".encode("ascii")
                else:
                    buffer += f"{target.number} 0 R".encode("ascii")
            else:
                buffer += part
        return bytes(buffer), offsets

    @staticmethod
    def _object_id(graph_object: _GraphObject, hashed: bool) -> ObjectId:
        if hashed:
            return ContentHashId(graph_object.digest)
        return SequentialId(graph_object.number)

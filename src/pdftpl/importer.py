"""Coordinator that imports pages of many source PDFs as reusable templates."""

from __future__ import annotations

import dataclasses
import hashlib
import logging
import os
from typing import BinaryIO, Callable

from pdftpl.allocator import TemplateIdAllocator
from pdftpl.config import ImporterSettings
from pdftpl.errors import (
    DocumentNotBoundError,
    PageImportError,
    SourceReadError,
    TemplateImportError,
    UnknownTemplateError,
)
from pdftpl.models import ContentHashId, HashedExport, ObjectId, PageBox, SequentialId, TemplatePlacement, TplInfo
from pdftpl.pdf.base import SourceReader, TemplateWriter
from pdftpl.pdf.reader import PdfReader
from pdftpl.pdf.writer import PdfWriter

logger = logging.getLogger(__name__)

ReaderFactory = Callable[[object, str], SourceReader]
WriterFactory = Callable[[str], TemplateWriter]


def _open_reader(source: object, label: str) -> SourceReader:
    return PdfReader.open(source, label=label)  # type: ignore[arg-type]


def _plain_id(object_id: ObjectId) -> int | str:
    if isinstance(object_id, SequentialId):
        return object_id.value
    return object_id.digest


class TemplateImporter:
    """Bind source documents, import their pages and export form XObjects.

    Every bound document gets its own reader and writer. Template ids are
    global to the importer: they increase across all documents and the same
    page is extracted at most once.
    """

    def __init__(
        self,
        settings: ImporterSettings | None = None,
        *,
        reader_factory: ReaderFactory | None = None,
        writer_factory: WriterFactory | None = None,
        allocator: TemplateIdAllocator | None = None,
    ) -> None:
        self._settings = settings or ImporterSettings()
        self._reader_factory = reader_factory or _open_reader
        self._writer_factory = writer_factory or self._new_writer
        self._allocator = allocator or TemplateIdAllocator()
        self._readers: dict[str, SourceReader] = {}
        self._writers: dict[str, TemplateWriter] = {}
        self._templates: dict[int, TplInfo] = {}
        self._imported_pages: dict[tuple[str, int] | tuple[str, int, str], int] = {}
        self._active: str | None = None

    @property
    def settings(self) -> ImporterSettings:
        return self._settings

    @property
    def active_document(self) -> str | None:
        return self._active

    @property
    def documents(self) -> list[str]:
        """Bound document keys in bind order."""

        return list(self._readers)

    def close(self) -> None:
        """Close every reader and unbind all documents.

        Template ids handed out before closing are not reused.
        """

        for reader in self._readers.values():
            self._close_reader(reader)
        self._readers.clear()
        self._writers.clear()
        self._templates.clear()
        self._imported_pages.clear()
        self._active = None

    @staticmethod
    def _close_reader(reader: SourceReader) -> None:
        close = getattr(reader, "close", None)
        if close is not None:
            close()

    def __enter__(self) -> "TemplateImporter":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def bind_source(self, document: str | os.PathLike[str]) -> str:
        """Bind a PDF file, make it the active document and return its key."""

        key = os.fspath(document)
        self._bind(key, key)
        return key

    def bind_stream(self, stream: bytes | BinaryIO) -> str:
        """Bind an in-memory PDF; the key is derived from its content."""

        data = bytes(stream) if isinstance(stream, (bytes, bytearray)) else stream.read()
        key = f"stream:{hashlib.sha1(data).hexdigest()}"
        self._bind(key, data)
        return key

    def _bind(self, key: str, source: object) -> None:
        reader = self._readers.get(key)
        opened = reader is None
        if reader is None:
            try:
                reader = self._reader_factory(source, key)
            except SourceReadError:
                raise
            except Exception as exc:
                raise SourceReadError(message=f"Failed to open source: {exc}", source=key) from exc

        writer = self._writers.get(key)
        if writer is None:
            try:
                writer = self._writer_factory(key)
                # Writer-local template numbers continue from the global counter.
                writer.set_template_id_offset(self._allocator.peek())
            except Exception as exc:
                if opened:
                    self._close_reader(reader)
                raise TemplateImportError(message=f"Failed to create writer: {exc}") from exc

        if opened:
            logger.info("Bound source %s", key)

        self._readers[key] = reader
        self._writers[key] = writer
        self._active = key

    def _new_writer(self, key: str) -> TemplateWriter:
        return PdfWriter(
            key,
            template_prefix=self._settings.template_prefix,
            compress=self._settings.compress,
        )

    def reader(self, document: str | os.PathLike[str] | None = None) -> SourceReader | None:
        key = self._active if document is None else os.fspath(document)
        return None if key is None else self._readers.get(key)

    def writer(self, document: str | os.PathLike[str] | None = None) -> TemplateWriter | None:
        key = self._active if document is None else os.fspath(document)
        return None if key is None else self._writers.get(key)

    def _resolve(self, document: str | os.PathLike[str] | None) -> str:
        key = self._active if document is None else os.fspath(document)
        if key is None or key not in self._readers:
            raise DocumentNotBoundError(message="Document is not bound", document=key)
        return key

    def page_count(self, document: str | os.PathLike[str] | None = None) -> int:
        key = self._resolve(document)
        return self._readers[key].page_count()

    def page_geometry(self, document: str | os.PathLike[str] | None = None) -> dict[int, dict[str, PageBox]]:
        """Return every page's boxes at scale 1.0, keyed by 1-based page number."""

        key = self._resolve(document)
        return self._readers[key].all_page_boxes(1.0)

    def import_page(
        self,
        page: int,
        box: str | None = None,
        *,
        document: str | os.PathLike[str] | None = None,
    ) -> int:
        """Import one page as a template and return its global template id.

        Repeated imports of the same page return the id of the first import
        without extracting again. Nothing is allocated when the import fails.
        """

        key = self._resolve(document)
        box = box or self._settings.default_box
        cache_key: tuple[str, int] | tuple[str, int, str]
        cache_key = (key, page, box) if self._settings.cache_by_box else (key, page)

        cached = self._imported_pages.get(cache_key)
        if cached is not None:
            logger.debug("Page %d of %s already imported as template %d", page, key, cached)
            return cached

        writer = self._writers[key]
        try:
            local_id = writer.import_page(self._readers[key], page, box)
        except PageImportError:
            raise
        except Exception as exc:
            raise PageImportError(
                message=f"Failed to import page: {exc}",
                document=key,
                page=page,
                box=box,
            ) from exc

        template_id = self._allocator.allocate()
        self._templates[template_id] = TplInfo(
            template_id=template_id,
            document=key,
            writer=writer,
            local_id=local_id,
            page=page,
            box=box,
        )
        self._imported_pages[cache_key] = template_id

        logger.info("Imported page %d (%s) of %s as template %d", page, box, key, template_id)
        return template_id

    def template_info(self, template_id: int) -> TplInfo | None:
        return self._templates.get(template_id)

    def template_name(self, template_id: int) -> str:
        return f"{self._settings.template_prefix}{template_id}"

    def set_starting_object_id(self, object_id: int, document: str | os.PathLike[str] | None = None) -> None:
        """Make the next sequential object number of a document's writer ``object_id``."""

        key = self._resolve(document)
        self._writers[key].set_next_object_id(object_id)

    def template_name_table(
        self,
        document: str | os.PathLike[str] | None = None,
        *,
        hashed: bool = False,
    ) -> dict[str, int | str]:
        """Write pending form XObjects and map template names to their object ids."""

        key = self._resolve(document)
        writer = self._writers[key]
        names = writer.put_form_objects(self._readers[key], hashed=hashed)

        # Writer names are local to the writer; hosts only ever see global names.
        translated = {
            writer.template_name(info.local_id): self.template_name(info.template_id)
            for info in self._templates.values()
            if info.document == key
        }
        return {translated.get(name, name): _plain_id(object_id) for name, object_id in names.items()}

    def export_objects_sequential(self, document: str | os.PathLike[str] | None = None) -> dict[int, bytes]:
        key = self._resolve(document)
        writer = self._writers[key]
        writer.put_form_objects(self._readers[key])
        return {
            object_id.value: content
            for object_id, content in writer.exported_objects(hashed=False).items()
            if isinstance(object_id, SequentialId)
        }

    def export_objects_hashed(self, document: str | os.PathLike[str] | None = None) -> dict[str, bytes]:
        """Export objects keyed by content hash.

        References inside the returned bytes are written as ``<digest> 0 R``;
        ``hash_positions`` tells where each digest sits.
        """

        key = self._resolve(document)
        writer = self._writers[key]
        writer.put_form_objects(self._readers[key])
        return {
            object_id.digest: content
            for object_id, content in writer.exported_objects(hashed=True).items()
            if isinstance(object_id, ContentHashId)
        }

    def hash_positions(self, document: str | os.PathLike[str] | None = None) -> dict[str, dict[int, str]]:
        key = self._resolve(document)
        writer = self._writers[key]
        writer.put_form_objects(self._readers[key])
        return {
            str(object_id): {offset: str(target) for offset, target in offsets.items()}
            for object_id, offsets in writer.hash_reference_positions().items()
        }

    def export_all_hashed(self) -> HashedExport:
        """Merge the hash-mode export of every bound document."""

        merged = HashedExport()
        for key in self._writers:
            merged.names.update(self.template_name_table(key, hashed=True))
            merged.objects.update(self.export_objects_hashed(key))
            merged.positions.update(self.hash_positions(key))
        return merged

    def use_template(
        self,
        template_id: int,
        x: float = 0.0,
        y: float = 0.0,
        width: float = 0.0,
        height: float = 0.0,
    ) -> TemplatePlacement:
        """Return the draw parameters of a template imported by ``import_page``."""

        info = self._templates.get(template_id)
        if info is None:
            raise UnknownTemplateError(message="Template id was never allocated", template_id=template_id)
        placement = info.writer.use_template(info.local_id, x, y, width, height)
        return dataclasses.replace(placement, name=self.template_name(template_id))

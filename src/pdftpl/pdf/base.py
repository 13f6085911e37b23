"""Capability contracts for the reader and writer bound to each source document."""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from pdftpl.models import ObjectId, PageBox, SourceObject, TemplatePlacement


@runtime_checkable
class SourceReader(Protocol):
    """Answers page and object queries about exactly one source document."""

    def page_count(self) -> int:
        """Return the number of pages in the document."""

    def page_boxes(self, page: int, scale: float = 1.0) -> dict[str, PageBox]:
        """Return the boxes defined for a 1-based page number."""

    def all_page_boxes(self, scale: float = 1.0) -> dict[int, dict[str, PageBox]]:
        """Return the boxes of every page keyed by 1-based page number."""

    def page_rotation(self, page: int) -> int:
        """Return the page's /Rotate value (inherited when absent)."""

    def page_resources(self, page: int) -> str | None:
        """Return the /Resources value source, inline dict or ``N 0 R``."""

    def page_content(self, page: int) -> bytes:
        """Return the decoded, concatenated page content stream."""

    def read_object(self, xref: int) -> SourceObject:
        """Return the source of one indirect object."""

    def object_type(self, xref: int) -> str | None:
        """Return the /Type name of an object, or None."""


@runtime_checkable
class TemplateWriter(Protocol):
    """Turns imported pages of one source document into form XObjects."""

    def set_template_id_offset(self, offset: int) -> None:
        """Shift the numbers used in this writer's template names."""

    def import_page(self, reader: SourceReader, page: int, box: str) -> int:
        """Capture one page as a template and return its writer-local id."""

    def template_name(self, local_id: int) -> str:
        """Return the resource name of a writer-local template."""

    def set_use_hash_ids(self, enabled: bool) -> None:
        """Select the id representation used by ``exported_objects``."""

    def set_next_object_id(self, object_id: int) -> None:
        """Make the next sequential object number ``object_id``."""

    def put_form_objects(self, reader: SourceReader, *, hashed: bool | None = None) -> dict[str, ObjectId]:
        """Serialize pending templates and return template names and object ids."""

    def exported_objects(self, *, hashed: bool | None = None) -> dict[ObjectId, bytes]:
        """Return every serialized object keyed by object id."""

    def hash_reference_positions(self) -> dict[ObjectId, dict[int, ObjectId]]:
        """Return the byte offsets of embedded hash references per object."""

    def use_template(
        self,
        local_id: int,
        x: float = 0.0,
        y: float = 0.0,
        width: float = 0.0,
        height: float = 0.0,
    ) -> TemplatePlacement:
        """Compute draw parameters for one template."""

"""Domain errors raised by the template import coordinator and its collaborators."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(slots=True, eq=False)
class TemplateImportError(Exception):
    """Base class for every error raised by pdftpl."""

    message: str

    def __str__(self) -> str:
        return self.message


@dataclass(slots=True, eq=False)
class SourceReadError(TemplateImportError):
    """A source document could not be opened or parsed."""

    source: str

    def __str__(self) -> str:
        return f"{self.message} (source={self.source})"


@dataclass(slots=True, eq=False)
class DocumentNotBoundError(TemplateImportError):
    """A query named a document that was never bound."""

    document: str | None

    def __str__(self) -> str:
        return f"{self.message} (document={self.document})"


@dataclass(slots=True, eq=False)
class PageImportError(TemplateImportError):
    """Extracting one page as a template failed."""

    document: str
    page: int
    box: str

    def __str__(self) -> str:
        return f"{self.message} (document={self.document}, page={self.page}, box={self.box})"


@dataclass(slots=True, eq=False)
class UnknownTemplateError(TemplateImportError):
    """Placement was requested for a template id that was never allocated."""

    template_id: int

    def __str__(self) -> str:
        return f"{self.message} (template_id={self.template_id})"

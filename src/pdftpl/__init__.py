"""Import pages of existing PDFs as reusable form XObject templates."""

from .allocator import TemplateIdAllocator
from .config import ImporterSettings
from .errors import (
    DocumentNotBoundError,
    PageImportError,
    SourceReadError,
    TemplateImportError,
    UnknownTemplateError,
)
from .importer import TemplateImporter
from .models import ContentHashId, HashedExport, ObjectId, PageBox, SequentialId, TemplatePlacement, TplInfo

__all__ = [
    "ContentHashId",
    "DocumentNotBoundError",
    "HashedExport",
    "ImporterSettings",
    "ObjectId",
    "PageBox",
    "PageImportError",
    "SequentialId",
    "SourceReadError",
    "TemplateIdAllocator",
    "TemplateImportError",
    "TemplateImporter",
    "TemplatePlacement",
    "TplInfo",
    "UnknownTemplateError",
]

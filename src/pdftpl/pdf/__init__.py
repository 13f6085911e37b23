"""PDF reader and writer collaborators used by the template importer."""

from .base import SourceReader, TemplateWriter
from .reader import PdfReader
from .writer import PdfTemplate, PdfWriter

__all__ = ["PdfReader", "PdfTemplate", "PdfWriter", "SourceReader", "TemplateWriter"]

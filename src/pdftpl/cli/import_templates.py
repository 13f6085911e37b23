"""CLI command that imports PDF pages as templates and reports the exported objects."""

from __future__ import annotations

import argparse
import json
import logging

from dotenv import load_dotenv

from pdftpl.config import ImporterSettings
from pdftpl.errors import PageImportError, SourceReadError
from pdftpl.importer import TemplateImporter


load_dotenv()

LOGGER = logging.getLogger(__name__)


def _parse_pages(raw: str, page_count: int) -> list[int]:
    """Parse ``all`` or a list such as ``1,3-5`` into page numbers."""
    if raw.strip().lower() == "all":
        return list(range(1, page_count + 1))

    pages: list[int] = []
    for token in raw.split(","):
        token = token.strip()
        if not token:
            continue
        if "-" in token:
            start_text, end_text = token.split("-", 1)
            start, end = int(start_text), int(end_text)
            if start > end:
                raise ValueError(f"Invalid page range: {token}")
            pages.extend(range(start, end + 1))
        else:
            pages.append(int(token))
    return pages


def _object_number(raw: str) -> int:
    try:
        value = int(raw)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(f"invalid object number: {raw!r}") from exc
    if value < 1:
        raise argparse.ArgumentTypeError(f"object numbers start at 1, got {value}")
    return value


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Import PDF pages as form XObject templates")
    parser.add_argument("--source", action="append", required=True, help="Source PDF (repeatable)")
    parser.add_argument("--pages", default="all", help="Pages to import, e.g. 'all' or '1,3-4'")
    parser.add_argument("--box", default=None, help="Page box to import, e.g. /MediaBox or /CropBox")
    parser.add_argument("--hash-ids", action="store_true", help="Export objects keyed by content hash")
    parser.add_argument("--start-object-id", type=_object_number, default=None, help="First sequential object number")
    parser.add_argument("--log-level", default="WARNING", help="Logging level")
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    args = _parse_args(argv)
    logging.basicConfig(level=args.log_level.upper(), format="%(asctime)s %(levelname)s %(message)s")

    try:
        settings = ImporterSettings.from_env()
    except ValueError as exc:
        LOGGER.error("Invalid configuration: %s", exc)
        return 2

    documents: list[dict[str, object]] = []
    templates: list[dict[str, object]] = []
    errors: list[dict[str, object]] = []
    bind_failed = False

    with TemplateImporter(settings) as importer:
        for source in args.source:
            try:
                key = importer.bind_source(source)
                pages = _parse_pages(args.pages, importer.page_count(key))
            except (SourceReadError, ValueError) as exc:
                bind_failed = True
                errors.append({"source": source, "error": str(exc)})
                continue

            for page in pages:
                try:
                    template_id = importer.import_page(page, args.box, document=key)
                except PageImportError as exc:
                    errors.append({"source": source, "page": page, "error": str(exc)})
                    continue

                placement = importer.use_template(template_id)
                templates.append(
                    {
                        "template_id": template_id,
                        "name": placement.name,
                        "source": key,
                        "page": page,
                        "width": placement.width,
                        "height": placement.height,
                    }
                )

            if args.start_object_id is not None:
                importer.set_starting_object_id(args.start_object_id, key)

            names = importer.template_name_table(key, hashed=args.hash_ids)
            if args.hash_ids:
                objects: dict[int, bytes] | dict[str, bytes] = importer.export_objects_hashed(key)
            else:
                objects = importer.export_objects_sequential(key)

            documents.append(
                {
                    "source": key,
                    "page_count": importer.page_count(key),
                    "object_count": len(objects),
                    "byte_count": sum(len(content) for content in objects.values()),
                    "templates": names,
                }
            )

    payload = {
        "hash_ids": args.hash_ids,
        "documents": documents,
        "templates": templates,
        "errors": errors,
    }
    print(json.dumps(payload, ensure_ascii=True, indent=2))

    if bind_failed:
        return 2
    return 0 if not errors else 1


if __name__ == "__main__":
    raise SystemExit(main())

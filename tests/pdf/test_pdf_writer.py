from __future__ import annotations

import re
import zlib

import pymupdf
import pytest

from pdftpl.errors import PageImportError
from pdftpl.models import ContentHashId, SequentialId
from pdftpl.pdf.reader import PdfReader
from pdftpl.pdf.syntax import iter_references
from pdftpl.pdf.writer import PdfWriter

_LENGTH_RE = re.compile(rb"/Length (\d+)")


def _build_pdf(*, rotate_second: bool = False, with_image: bool = False) -> bytes:
    doc = pymupdf.open()
    first = doc.new_page(width=612, height=792)
    first.insert_text((72, 72), "First page")
    doc.xref_set_key(first.xref, "CropBox", "[36 36 576 756]")
    if with_image:
        pixmap = pymupdf.Pixmap(pymupdf.csRGB, pymupdf.IRect(0, 0, 4, 4), False)
        pixmap.clear_with(200)
        first.insert_image(pymupdf.Rect(100, 100, 200, 200), pixmap=pixmap)

    second = doc.new_page(width=400, height=200)
    second.insert_text((20, 40), "Second page")
    if rotate_second:
        second.set_rotation(90)

    data = doc.tobytes()
    doc.close()
    return data


def _stream_of(content: bytes) -> bytes:
    return content.split(b"\nstream\n", 1)[1].rsplit(b"\nendstream", 1)[0]


def test_import_page_returns_dense_local_ids_and_offset_names() -> None:
    with PdfReader.open(_build_pdf()) as reader:
        writer = PdfWriter("doc.pdf")
        writer.set_template_id_offset(5)

        assert writer.import_page(reader, 1, "/MediaBox") == 0
        assert writer.import_page(reader, 2, "/MediaBox") == 1

    assert writer.template_count == 2
    assert writer.template_name(0) == "/PDFTPL5"
    assert writer.template_name(1) == "/PDFTPL6"
    assert writer.template(1).width == 400
    assert writer.template(1).height == 200


def test_import_page_falls_back_to_crop_box_then_media_box() -> None:
    with PdfReader.open(_build_pdf()) as reader:
        writer = PdfWriter("doc.pdf")
        art = writer.import_page(reader, 1, "/ArtBox")
        crop = writer.import_page(reader, 1, "/CropBox")

    assert writer.template(art).box_name == "/CropBox"
    assert writer.template(art).width == 540
    assert writer.template(crop).box_name == "/CropBox"


def test_import_page_failures_raise_page_import_error() -> None:
    with PdfReader.open(_build_pdf()) as reader:
        writer = PdfWriter("doc.pdf")

        with pytest.raises(PageImportError, match="Unknown page box") as unknown_box:
            writer.import_page(reader, 1, "/FooBox")
        with pytest.raises(PageImportError, match="out of range") as bad_page:
            writer.import_page(reader, 7, "/MediaBox")

    assert unknown_box.value.box == "/FooBox"
    assert bad_page.value.page == 7
    assert bad_page.value.document == "doc.pdf"
    assert isinstance(bad_page.value.__cause__, ValueError)
    assert writer.template_count == 0


def test_rotated_page_swaps_size_and_writes_matrix() -> None:
    with PdfReader.open(_build_pdf(rotate_second=True)) as reader:
        writer = PdfWriter("rotated.pdf")
        local_id = writer.import_page(reader, 2, "/MediaBox")
        names = writer.put_form_objects(reader)

    template = writer.template(local_id)
    assert (template.width, template.height) == (200, 400)
    assert template.rotation == -90

    content = writer.exported_objects()[names["/PDFTPL0"]]
    assert b"/Matrix [0.00000 -1.00000 1.00000 0.00000 0.00000 400.00000]" in content


def test_put_form_objects_writes_form_xobject_with_page_content() -> None:
    with PdfReader.open(_build_pdf()) as reader:
        writer = PdfWriter("doc.pdf")
        writer.import_page(reader, 1, "/CropBox")
        names = writer.put_form_objects(reader)
        page_content = reader.page_content(1)

    assert names == {"/PDFTPL0": SequentialId(1)}

    objects = writer.exported_objects()
    assert list(objects) == [SequentialId(number) for number in range(1, len(objects) + 1)]

    form = objects[SequentialId(1)]
    assert form.startswith(b"<</Filter /FlateDecode /Type /XObject\n/Subtype /Form\n/FormType 1\n")
    assert b"/BBox [36.00 36.00 576.00 756.00]" in form
    assert b"/Matrix [1.00000 0.00000 0.00000 1.00000 -36.00000 -36.00000]" in form
    assert zlib.decompress(_stream_of(form)) == page_content


def test_put_form_objects_without_compression_keeps_raw_content() -> None:
    with PdfReader.open(_build_pdf()) as reader:
        writer = PdfWriter("doc.pdf", compress=False)
        writer.import_page(reader, 2, "/MediaBox")
        writer.put_form_objects(reader)
        page_content = reader.page_content(2)

    form = writer.exported_objects()[SequentialId(1)]
    assert b"/FlateDecode /Type /XObject" not in form
    assert b"/Matrix" not in form
    assert _stream_of(form) == page_content


def test_put_form_objects_is_incremental() -> None:
    with PdfReader.open(_build_pdf()) as reader:
        writer = PdfWriter("doc.pdf")
        writer.import_page(reader, 1, "/MediaBox")
        first = writer.put_form_objects(reader)
        count_after_first = len(writer.exported_objects())

        assert writer.put_form_objects(reader) == first
        assert len(writer.exported_objects()) == count_after_first

        writer.import_page(reader, 2, "/MediaBox")
        second = writer.put_form_objects(reader)

    assert second["/PDFTPL0"] == first["/PDFTPL0"]
    assert set(second) == {"/PDFTPL0", "/PDFTPL1"}
    assert len(writer.exported_objects()) > count_after_first


def test_set_next_object_id_shifts_sequential_numbers() -> None:
    with PdfReader.open(_build_pdf()) as reader:
        writer = PdfWriter("doc.pdf")
        writer.set_next_object_id(100)
        writer.import_page(reader, 1, "/MediaBox")
        names = writer.put_form_objects(reader)

    assert names["/PDFTPL0"] == SequentialId(100)
    assert min(object_id.value for object_id in writer.exported_objects()) == 100

    with pytest.raises(ValueError):
        writer.set_next_object_id(0)


def test_set_next_object_id_never_reuses_written_numbers() -> None:
    with PdfReader.open(_build_pdf()) as reader:
        writer = PdfWriter("doc.pdf")
        writer.import_page(reader, 1, "/MediaBox")
        writer.put_form_objects(reader)
        highest = max(object_id.value for object_id in writer.exported_objects(hashed=False))

        with pytest.raises(ValueError, match="already assigned"):
            writer.set_next_object_id(1)
        with pytest.raises(ValueError):
            writer.set_next_object_id(highest)

        writer.set_next_object_id(highest + 10)
        writer.import_page(reader, 2, "/MediaBox")
        names = writer.put_form_objects(reader)

    assert names["/PDFTPL1"] == SequentialId(highest + 10)
    assert len(writer.exported_objects(hashed=False)) == len(writer.exported_objects(hashed=True))


def test_imported_streams_carry_their_real_length() -> None:
    with PdfReader.open(_build_pdf(with_image=True)) as reader:
        writer = PdfWriter("image.pdf")
        writer.import_page(reader, 1, "/MediaBox")
        writer.put_form_objects(reader)

    streams = [content for content in writer.exported_objects().values() if b"\nstream\n" in content]
    assert len(streams) >= 2
    for content in streams:
        declared = int(_LENGTH_RE.search(content).group(1))
        assert declared == len(_stream_of(content))


def test_page_tree_references_are_written_as_null() -> None:
    doc = pymupdf.open()
    page = doc.new_page()
    page.insert_text((72, 72), "Back reference")
    _, resources = doc.xref_get_key(page.xref, "Resources")
    font_xref = next(ref.xref for ref in iter_references(resources))
    if doc.xref_get_key(font_xref, "Type")[1] != "/Font":
        font_xref = next(ref.xref for ref in iter_references(doc.xref_object(font_xref)))
    doc.xref_set_key(font_xref, "BackRef", f"{page.xref} 0 R")
    data = doc.tobytes()
    doc.close()

    with PdfReader.open(data) as reader:
        writer = PdfWriter("loop.pdf")
        writer.import_page(reader, 1, "/MediaBox")
        writer.put_form_objects(reader)

    objects = writer.exported_objects()
    assert any(b"/BackRef null" in content for content in objects.values())
    assert not any(b"/Type/Page" in content or b"/Type /Page" in content for content in objects.values())


def test_hash_mode_renders_the_same_snapshot_with_digests() -> None:
    with PdfReader.open(_build_pdf(with_image=True)) as reader:
        writer = PdfWriter("doc.pdf")
        writer.import_page(reader, 1, "/MediaBox")
        writer.import_page(reader, 2, "/MediaBox")
        sequential_names = writer.put_form_objects(reader)
        hashed_names = writer.put_form_objects(reader, hashed=True)

    sequential = writer.exported_objects(hashed=False)
    writer.set_use_hash_ids(True)
    hashed = writer.exported_objects()
    positions = writer.hash_reference_positions()

    assert len(hashed) == len(sequential)
    assert all(isinstance(object_id, ContentHashId) for object_id in hashed)
    assert all(re.fullmatch(r"[0-9a-f]{40}", str(object_id)) for object_id in hashed)
    assert set(positions) == set(hashed)

    digest_to_number = {
        hashed_id.digest: sequential_id.value for hashed_id, sequential_id in zip(hashed, sequential)
    }
    assert digest_to_number[hashed_names["/PDFTPL0"].digest] == sequential_names["/PDFTPL0"].value

    for (hashed_id, content), expected in zip(hashed.items(), sequential.values()):
        patched = bytearray(content)
        for offset, target in sorted(positions[hashed_id].items(), reverse=True):
            assert patched[offset : offset + 40] == target.digest.encode("ascii")
            patched[offset : offset + 40] = str(digest_to_number[target.digest]).encode("ascii")
        assert bytes(patched) == expected


def test_use_template_keeps_aspect_ratio() -> None:
    with PdfReader.open(_build_pdf()) as reader:
        writer = PdfWriter("doc.pdf")
        local_id = writer.import_page(reader, 2, "/MediaBox")

    natural = writer.use_template(local_id, 10, 20)
    assert (natural.width, natural.height) == (400, 200)
    assert (natural.scale_x, natural.scale_y) == (1, 1)
    assert (natural.x, natural.y) == (10, 20)
    assert natural.name == "/PDFTPL0"

    by_width = writer.use_template(local_id, width=200)
    assert (by_width.width, by_width.height) == (200, 100)
    assert by_width.scale_x == by_width.scale_y == 0.5

    by_height = writer.use_template(local_id, height=50)
    assert by_height.width == 100

    stretched = writer.use_template(local_id, width=800, height=100)
    assert (stretched.scale_x, stretched.scale_y) == (2, 0.5)

    with pytest.raises(KeyError):
        writer.use_template(3)

"""
Tests for document text extraction and cleanup.
"""

import pytest

from cvparse.errors import ErrorKind, UnreadableDocumentError, UnsupportedFormatError
from cvparse.pipeline.text import TextExtractor, clean_text, format_for

from .conftest import build_broken_filter_pdf, build_docx, build_pdf


class TestCleanText:
    def test_collapses_horizontal_whitespace(self):
        assert clean_text("Jane   \t Doe") == "Jane Doe"

    def test_limits_blank_lines(self):
        assert clean_text("Skills\n\n\n\n\nPython") == "Skills\n\nPython"

    def test_strips_cid_artifacts(self):
        assert clean_text("Python(cid:3)(cid:12) SQL") == "Python SQL"

    def test_removes_control_characters(self):
        assert clean_text("Jane\x00 Doe\x07\x1b") == "Jane Doe"

    def test_normalises_line_separators(self):
        assert clean_text("a\r\nb\rc\u2028d") == "a\nb\nc\nd"

    def test_strips_each_line(self):
        assert clean_text("  first  \n   second ") == "first\nsecond"

    def test_whitespace_only_is_empty(self):
        assert clean_text(" \n\t\n ") == ""


class TestFormatFor:
    @pytest.mark.parametrize("name,suffix", [
        ("cv.pdf", ".pdf"),
        ("CV.PDF", ".pdf"),
        ("resume.docx", ".docx"),
        ("old.doc", ".doc"),
    ])
    def test_supported(self, name, suffix):
        assert format_for(name) == suffix

    @pytest.mark.parametrize("name", ["cv.txt", "photo.png", "README", ""])
    def test_unsupported(self, name):
        with pytest.raises(UnsupportedFormatError) as exc:
            format_for(name)
        assert exc.value.kind is ErrorKind.UNSUPPORTED_FORMAT


class TestTextExtractor:
    @pytest.fixture
    def extractor(self):
        return TextExtractor()

    def test_pdf_lines_follow_vertical_position(self, extractor):
        data = build_pdf([
            (72, 720, "Jane Doe"),
            (72, 700, "Software Engineer"),
        ])

        text = extractor.extract(data, "cv.pdf")

        assert text.splitlines() == ["Jane Doe", "Software Engineer"]

    def test_pdf_fragments_on_same_line_are_joined(self, extractor):
        data = build_pdf([
            (72, 720, "Python"),
            (200, 720, "SQL"),
        ])

        assert extractor.extract(data, "cv.pdf") == "Python SQL"

    def test_pdf_pages_separated_by_blank_line(self, extractor):
        data = build_pdf([(72, 720, "Page text")], pages=2)

        assert extractor.extract(data, "cv.pdf") == "Page text\n\nPage text"

    def test_pdf_without_text_is_unreadable(self, extractor):
        data = build_pdf([])

        with pytest.raises(UnreadableDocumentError) as exc:
            extractor.extract(data, "scan.pdf")
        assert exc.value.kind is ErrorKind.UNREADABLE_DOCUMENT

    def test_corrupt_pdf_is_unreadable(self, extractor):
        with pytest.raises(UnreadableDocumentError):
            extractor.extract(b"this is not a pdf", "cv.pdf")

    def test_unknown_stream_filter_is_unreadable(self, extractor):
        with pytest.raises(UnreadableDocumentError) as exc:
            extractor.extract(build_broken_filter_pdf(), "cv.pdf")
        assert exc.value.kind is ErrorKind.UNREADABLE_DOCUMENT

    @pytest.mark.parametrize("error", [
        NotImplementedError("Unsupported filter /ASCII85Decodx"),
        AttributeError("'NameObject' object has no attribute 'items'"),
    ])
    def test_any_pdf_library_failure_is_unreadable(self, extractor, monkeypatch, error):
        def broken_reader(stream):
            raise error

        monkeypatch.setattr("cvparse.pipeline.text.PdfReader", broken_reader)

        with pytest.raises(UnreadableDocumentError, match=type(error).__name__):
            extractor.extract(build_pdf([(72, 720, "Jane Doe")]), "cv.pdf")

    def test_any_word_library_failure_is_unreadable(self, extractor, monkeypatch):
        def broken_loader(stream):
            raise AttributeError("'NoneType' object has no attribute 'body'")

        monkeypatch.setattr("cvparse.pipeline.text.load_docx", broken_loader)

        with pytest.raises(UnreadableDocumentError):
            extractor.extract(build_docx(["Jane Doe"]), "cv.docx")

    def test_docx_paragraphs_and_tables(self, extractor):
        data = build_docx(
            ["Jane Doe", "", "Experience"],
            table=[["Acme", "Engineer"]],
        )

        text = extractor.extract(data, "cv.docx")

        assert text == "Jane Doe\n\nExperience\nAcme Engineer"

    def test_doc_suffix_uses_word_reader(self, extractor):
        data = build_docx(["Jane Doe"])

        assert extractor.extract(data, "legacy.doc") == "Jane Doe"

    def test_corrupt_docx_is_unreadable(self, extractor):
        with pytest.raises(UnreadableDocumentError):
            extractor.extract(b"PK\x03\x04 broken", "cv.docx")

    def test_unsupported_suffix(self, extractor):
        with pytest.raises(UnsupportedFormatError):
            extractor.extract(b"plain text", "cv.txt")

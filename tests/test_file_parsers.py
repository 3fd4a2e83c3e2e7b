"""Tests for document type detection and text extraction."""

from unittest.mock import MagicMock, patch

import pytest

from estimator.tools import file_parsers
from estimator.tools.file_parsers import (
    extract_text_from_bytes,
    extract_text_from_documents,
    guess_mime_type,
    is_allowed_file,
)


class TestMimeTypes:

    def test_declared_type_wins_when_allowed(self):
        assert guess_mime_type("notes.bin", "text/plain") == "text/plain"

    def test_extension_fallback(self):
        assert guess_mime_type("Brief.PDF") == "application/pdf"
        assert guess_mime_type("brief.docx", "application/octet-stream").endswith("wordprocessingml.document")
        assert guess_mime_type("photo.jpeg") == "image/jpeg"

    def test_unknown_type(self):
        assert guess_mime_type("archive.zip") == "application/octet-stream"
        assert guess_mime_type("archive.zip", "application/zip") == "application/zip"

    @pytest.mark.parametrize("name", ["a.pdf", "b.docx", "c.doc", "d.xlsx", "e.xls", "f.txt", "g.png"])
    def test_allowed(self, name):
        assert is_allowed_file(name)

    @pytest.mark.parametrize("name", ["a.exe", "b.zip", "c"])
    def test_not_allowed(self, name):
        assert not is_allowed_file(name)


class TestExtractTextFromBytes:

    def test_plain_text(self):
        assert extract_text_from_bytes("notes.txt", b"  Build a booking app \n") == "Build a booking app"

    def test_invalid_utf8_is_ignored(self):
        assert extract_text_from_bytes("notes.txt", b"caf\xff ok") == "caf ok"

    def test_office_documents_are_skipped(self, caplog):
        assert extract_text_from_bytes("brief.docx", b"PK\x03\x04") == ""
        assert "No text extractor" in caplog.text

    def test_broken_pdf_returns_empty(self):
        assert extract_text_from_bytes("brief.pdf", b"definitely not a pdf") == ""

    def test_pdf_pages_are_joined(self):
        pages = [MagicMock(), MagicMock(), MagicMock()]
        pages[0].extract_text.return_value = "Page one"
        pages[1].extract_text.return_value = "   "
        pages[2].extract_text.return_value = "Page three"
        reader = MagicMock(pages=pages)

        with patch.object(file_parsers, "PdfReader", return_value=reader):
            assert extract_text_from_bytes("brief.pdf", b"%PDF-1.4") == "Page one\nPage three"

    def test_image_without_api_key(self, monkeypatch):
        monkeypatch.delenv("GOOGLE_API_KEY", raising=False)
        monkeypatch.delenv("GENAI_API_KEY", raising=False)
        assert extract_text_from_bytes("board.png", b"\x89PNG") == ""

    def test_image_uses_gemini(self, monkeypatch):
        monkeypatch.setenv("GOOGLE_API_KEY", "test-key")
        client = MagicMock()
        client.models.generate_content.return_value = MagicMock(text="RAW_TEXT:\nLogin page\n")

        with patch("google.genai.Client", return_value=client):
            assert extract_text_from_bytes("board.png", b"\x89PNG", "image/png") == "RAW_TEXT:\nLogin page"
        client.models.generate_content.assert_called_once()

    def test_image_api_error(self, monkeypatch):
        monkeypatch.setenv("GOOGLE_API_KEY", "test-key")
        client = MagicMock()
        client.models.generate_content.side_effect = RuntimeError("quota exceeded")

        with patch("google.genai.Client", return_value=client):
            assert extract_text_from_bytes("board.png", b"\x89PNG", "image/png") == ""

    def test_image_with_explicit_key_and_model(self, monkeypatch):
        monkeypatch.delenv("GOOGLE_API_KEY", raising=False)
        monkeypatch.delenv("GENAI_API_KEY", raising=False)
        monkeypatch.delenv("ESTIMATOR_MODEL", raising=False)
        client = MagicMock()
        client.models.generate_content.return_value = MagicMock(text="RAW_TEXT:\nCalendar")

        with patch("google.genai.Client", return_value=client) as make_client:
            text = extract_text_from_documents(
                [("board.png", b"\x89PNG", "image/png")],
                api_key="settings-key",
                model="gemini-settings",
            )

        assert text == "# Extracted from board.png\nRAW_TEXT:\nCalendar"
        make_client.assert_called_once_with(api_key="settings-key")
        assert client.models.generate_content.call_args.kwargs["model"] == "gemini-settings"


class TestMergedExtraction:

    def test_documents_get_headers(self):
        text = extract_text_from_documents([
            ("a.txt", b"First", "text/plain"),
            ("empty.txt", b"", "text/plain"),
            ("b.md", b"Second", None),
        ])
        assert text == "# Extracted from a.txt\nFirst\n\n# Extracted from b.md\nSecond"

"""
Unit tests for processing.py: text cleanup, extraction dispatch and chunking.
No OCR engine or network required.
"""

import io

import pymupdf
import pytest
from PIL import Image

import processing
from error_handling import ExtractionFailed
from processing import chunk_text, clean_text, extract_text, extract_text_from_bytes


# ────────────────────────────────────────────────────────────────────────────
# Chunking
# ────────────────────────────────────────────────────────────────────────────

class TestChunkText:

    def test_blank_text_gives_no_chunks(self):
        assert chunk_text("") == []
        assert chunk_text("   \n\n  ") == []

    def test_short_text_is_one_trimmed_chunk(self):
        assert chunk_text("  Short text. Really.  ", 1000) == ["Short text. Really."]

    def test_text_exactly_max_size_is_one_chunk(self):
        text = "x" * 50
        assert chunk_text(text, 50) == [text]

    def test_sentences_are_packed_greedily(self):
        text = "Aaaa aaaa. Bbbb bbbb. Cccc cccc. Dddd dddd."
        chunks = chunk_text(text, 21)
        assert chunks == ["Aaaa aaaa. Bbbb bbbb.", "Cccc cccc. Dddd dddd."]

    def test_chunks_respect_max_size(self):
        sentences = [f"Sentence number {i} talks about topic {i}." for i in range(40)]
        chunks = chunk_text(" ".join(sentences), 120)
        assert len(chunks) > 1
        assert all(len(c) <= 120 for c in chunks)

    def test_sentences_stay_in_order_and_intact(self):
        sentences = [f"Fact {i} is true." for i in range(30)]
        chunks = chunk_text(" ".join(sentences), 60)
        assert " ".join(chunks) == " ".join(sentences)

    def test_paragraph_breaks_split_sentences(self):
        text = "First paragraph without period\n\nSecond paragraph here" + " filler" * 20
        chunks = chunk_text(text, 60)
        assert chunks[0] == "First paragraph without period"

    def test_overlong_sentence_is_emitted_whole(self):
        long_sentence = "word " * 40 + "end."
        text = f"Intro. {long_sentence} Outro."
        chunks = chunk_text(text, 30)
        assert long_sentence.strip() in chunks
        assert chunks[0] == "Intro."
        assert chunks[-1] == "Outro."

    def test_non_positive_max_size_rejected(self):
        with pytest.raises(ValueError):
            chunk_text("anything", 0)


# ────────────────────────────────────────────────────────────────────────────
# Cleanup and extraction
# ────────────────────────────────────────────────────────────────────────────

class TestCleanText:

    def test_collapses_blank_runs_and_strips_lines(self):
        assert clean_text("  a  \r\n\r\n\r\n\r\n  b ") == "a\n\nb"

    def test_removes_zero_width_characters(self):
        assert clean_text("ze\u200bro\ufeff") == "zero"


class TestExtraction:

    def test_plain_text(self):
        assert extract_text_from_bytes(b"Hello world.\n", "notes.txt") == "Hello world."

    def test_pdf_text(self):
        doc = pymupdf.open()
        page = doc.new_page()
        page.insert_text((72, 72), "Photosynthesis converts light into energy.")
        data = doc.tobytes()
        doc.close()
        text = extract_text_from_bytes(data, "lecture.PDF")
        assert "Photosynthesis converts light into energy." in text

    def test_corrupt_pdf(self):
        with pytest.raises(ExtractionFailed, match="Invalid PDF format"):
            extract_text_from_bytes(b"not a pdf at all", "broken.pdf")

    def test_image_goes_through_ocr(self, monkeypatch):
        buffer = io.BytesIO()
        Image.new("RGB", (20, 20), "white").save(buffer, format="PNG")
        monkeypatch.setattr(processing.pytesseract, "image_to_string", lambda image: "Scanned words")
        assert extract_text_from_bytes(buffer.getvalue(), "scan.png") == "Scanned words"

    def test_missing_ocr_engine(self, monkeypatch):
        buffer = io.BytesIO()
        Image.new("RGB", (20, 20), "white").save(buffer, format="PNG")

        def _missing(image):
            raise processing.pytesseract.TesseractNotFoundError()

        monkeypatch.setattr(processing.pytesseract, "image_to_string", _missing)
        with pytest.raises(ExtractionFailed, match="OCR engine is not available"):
            extract_text_from_bytes(buffer.getvalue(), "scan.png")

    def test_unsupported_type(self):
        with pytest.raises(ExtractionFailed, match="Unsupported file type: .exe"):
            extract_text_from_bytes(b"MZ", "virus.exe")

    def test_empty_text_is_a_failure(self):
        with pytest.raises(ExtractionFailed, match="No readable text found"):
            extract_text_from_bytes(b"   \n ", "empty.txt")

    def test_extract_from_disk(self, tmp_path):
        path = tmp_path / "source.txt"
        path.write_text("Mitochondria are organelles.", encoding="utf-8")
        assert extract_text(str(path)) == "Mitochondria are organelles."

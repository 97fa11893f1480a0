import io
import logging
import os
import re
from typing import List

import docx
import pymupdf
import pytesseract
from PIL import Image
from pptx import Presentation

from error_handling import ExtractionFailed

logger = logging.getLogger("quizgen.processing")

IMAGE_EXTENSIONS = {".png", ".jpg", ".jpeg", ".webp", ".bmp", ".tiff"}

_ZERO_WIDTH_RE = re.compile("[\u200b-\u200d\ufeff\x00]")
_BLANK_RUN_RE = re.compile(r"\n{3,}")
# A sentence ends at a period followed by whitespace; a paragraph at a blank line.
_SENTENCE_BREAK_RE = re.compile(r"(?<=\.)\s+|\n[ \t]*\n\s*")


def clean_text(text: str) -> str:
    """Normalise line endings and whitespace while keeping paragraph breaks."""
    text = text.replace("\r\n", "\n").replace("\r", "\n")
    text = _ZERO_WIDTH_RE.sub("", text)
    text = "\n".join(line.strip() for line in text.split("\n"))
    return _BLANK_RUN_RE.sub("\n\n", text).strip()


def _extract_pdf(data: bytes) -> str:
    try:
        doc = pymupdf.open(stream=data, filetype="pdf")
    except Exception as e:
        raise ExtractionFailed(
            "Invalid PDF format",
            "The PDF file appears to be corrupted or in an unsupported format"
        ) from e
    try:
        if doc.needs_pass:
            raise ExtractionFailed("Protected PDF", "Cannot read password-protected PDF files")
        return "\n".join(page.get_text() for page in doc)
    finally:
        doc.close()


def _extract_image(data: bytes) -> str:
    try:
        image = Image.open(io.BytesIO(data))
        return pytesseract.image_to_string(image)
    except pytesseract.TesseractNotFoundError as e:
        raise ExtractionFailed("OCR engine is not available", str(e)) from e
    except Exception as e:
        raise ExtractionFailed("Could not read text from the image", str(e)) from e


def _extract_pptx(data: bytes) -> str:
    prs = Presentation(io.BytesIO(data))
    text = ""
    for slide in prs.slides:
        slide_texts = []
        if slide.shapes.title:
            slide_texts.append(slide.shapes.title.text)
        # body, content and subtitle placeholders
        for shape in slide.shapes:
            if shape.has_text_frame and shape.is_placeholder:
                if shape.placeholder_format.idx in [1, 13, 14, 15, 16]:
                    slide_texts.append(shape.text)
        text += "\n".join(slide_texts) + "\n\n"
    return text


def extract_text_from_bytes(data: bytes, filename: str) -> str:
    """
    Extracts text from an uploaded file based on its extension.

    PDFs go through PyMuPDF, images through Tesseract OCR; Word, PowerPoint
    and plain-text files are also accepted.

    Raises:
        ExtractionFailed: if the type is unsupported, the library fails, or no
            readable text was found.
    """
    ext = os.path.splitext(filename)[1].lower()

    if ext == ".pdf":
        text = _extract_pdf(data)
    elif ext in IMAGE_EXTENSIONS:
        text = _extract_image(data)
    elif ext == ".docx":
        try:
            text = "\n".join(para.text for para in docx.Document(io.BytesIO(data)).paragraphs)
        except Exception as e:
            raise ExtractionFailed("Could not read the Word document", str(e)) from e
    elif ext == ".pptx":
        try:
            text = _extract_pptx(data)
        except Exception as e:
            raise ExtractionFailed("Could not read the presentation", str(e)) from e
    elif ext == ".txt":
        try:
            text = data.decode("utf-8")
        except UnicodeDecodeError as e:
            raise ExtractionFailed("Text file is not valid UTF-8", str(e)) from e
    else:
        raise ExtractionFailed(f"Unsupported file type: {ext or 'unknown'}")

    cleaned = clean_text(text)
    if not cleaned:
        raise ExtractionFailed("No readable text found", f"Nothing could be extracted from {filename}")

    logger.info("Extracted %d characters from %s", len(cleaned), filename)
    return cleaned


def extract_text(file_path: str) -> str:
    """Extracts text from a file on disk."""
    with open(file_path, "rb") as f:
        data = f.read()
    return extract_text_from_bytes(data, os.path.basename(file_path))


def chunk_text(text: str, max_size: int = 1000) -> List[str]:
    """
    Splits text into segments of at most ``max_size`` characters.

    Sentences (a period followed by whitespace) and paragraphs (blank lines)
    are packed greedily into segments joined by single spaces. A sentence
    longer than ``max_size`` is emitted whole rather than truncated.

    Args:
        text (str): The input text.
        max_size (int): The maximum size of each segment (in characters).

    Returns:
        list[str]: Segments in source order.
    """
    if max_size <= 0:
        raise ValueError("max_size must be positive")

    text = text.strip()
    if not text:
        return []
    if len(text) <= max_size:
        return [text]

    chunks = []
    current = ""
    for sentence in _SENTENCE_BREAK_RE.split(text):
        sentence = sentence.strip()
        if not sentence:
            continue
        if current and len(current) + 1 + len(sentence) > max_size:
            chunks.append(current)
            current = sentence
        else:
            current = f"{current} {sentence}" if current else sentence

    if current:
        chunks.append(current)
    return chunks

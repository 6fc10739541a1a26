import asyncio
import base64
import binascii
import logging
import os
import re
import time

import fitz  # PyMuPDF

from config import Settings
from errors import UpstreamError, ValidationError

logger = logging.getLogger(__name__)

_UNSAFE_NAME_RE = re.compile(r"[^A-Za-z0-9._-]+")


def extract_pdf_text(file_bytes: bytes) -> str:
    with fitz.open(stream=file_bytes, filetype="pdf") as doc:
        return "".join(page.get_text() for page in doc)


def extract_resume_text(file_bytes: bytes, filename: str | None = None, content_type: str | None = None) -> str:
    is_pdf = content_type == "application/pdf" or (filename or "").lower().endswith(".pdf")
    if is_pdf:
        try:
            text = extract_pdf_text(file_bytes)
        except Exception as e:
            raise ValidationError(f"Could not read PDF: {e}") from e
    else:
        text = file_bytes.decode("utf-8", errors="replace")
    if not text.strip():
        raise ValidationError("Could not extract text from resume")
    return text


def decode_resume_content(file_content: str, file_type: str | None) -> str:
    """Turn the /resume/process payload into plain text. PDFs arrive base64 encoded."""
    if file_type != "pdf":
        if not file_content.strip():
            raise ValidationError("Could not extract text from resume")
        return file_content
    try:
        file_bytes = base64.b64decode(file_content, validate=True)
    except (binascii.Error, ValueError) as e:
        raise ValidationError("PDF content must be base64 encoded") from e
    return extract_resume_text(file_bytes, content_type="application/pdf")


class ResumeStorage:
    """Stores uploaded resumes on disk and hands out their public URL."""

    def __init__(self, root_dir: str, public_base_url: str):
        self.root_dir = root_dir
        self.public_base_url = public_base_url.rstrip("/")

    @classmethod
    def from_settings(cls, settings: Settings) -> "ResumeStorage":
        return cls(settings.resume_storage_dir, settings.resume_public_base_url)

    def object_name(self, user_id: str, filename: str | None) -> str:
        safe_user = _UNSAFE_NAME_RE.sub("_", user_id)
        safe_name = _UNSAFE_NAME_RE.sub("_", os.path.basename(filename or "resume"))
        return f"{safe_user}-{int(time.time() * 1000)}-{safe_name}"

    @staticmethod
    def _write(path: str, data: bytes) -> None:
        with open(path, "wb") as f:
            f.write(data)

    async def save(self, user_id: str, filename: str | None, file_bytes: bytes) -> str:
        name = self.object_name(user_id, filename)
        try:
            os.makedirs(self.root_dir, exist_ok=True)
            await asyncio.to_thread(self._write, os.path.join(self.root_dir, name), file_bytes)
        except OSError as e:
            logger.error(f"[RESUME] Failed to store {name}: {e}")
            raise UpstreamError("Failed to upload file") from e
        logger.info(f"[RESUME] Stored {name} ({len(file_bytes)} bytes)")
        return f"{self.public_base_url}/{name}"

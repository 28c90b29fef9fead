"""
Pytest configuration and shared fixtures.
"""
import base64
import os
import sys
from typing import Dict, List, Optional, Sequence, Tuple

import pytest

# Add project root to path for imports
project_root = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if project_root not in sys.path:
    sys.path.insert(0, project_root)

from email2epub.config import Settings
from email2epub.errors import SniffError

PNG_BYTES = base64.b64decode(
    "iVBORw0KGgoAAAANSUhEUgAAAAEAAAABCAYAAAAfFcSJAAAADUlEQVR42mNkYPhfDwAChwGA60e6kgAAAABJRU5ErkJggg=="
)
GIF_BYTES = b"GIF89a\x01\x00\x01\x00\x80\x00\x00\x00\x00\x00\xff\xff\xff!\xf9\x04\x01\x00\x00\x00\x00,\x00\x00\x00\x00\x01\x00\x01\x00\x00\x02\x02D\x01\x00;"
HTML_ERROR_PAGE = b"<!DOCTYPE html><html><body><h1>404 Not Found</h1></body></html>"


class FakeSniffer:
    """Signature-based stand-in for libmagic."""

    SIGNATURES = [
        (b"\x89PNG\r\n\x1a\n", "image/png", ".png"),
        (b"GIF87a", "image/gif", ".gif"),
        (b"GIF89a", "image/gif", ".gif"),
        (b"\xff\xd8\xff", "image/jpeg", ".jpg"),
    ]

    def __init__(self):
        self.calls: List[str] = []

    def sniff(self, path: str) -> Tuple[str, str]:
        self.calls.append(path)
        try:
            with open(path, "rb") as f:
                head = f.read(64)
        except OSError as e:
            raise SniffError(str(e))
        for signature, mime_type, extension in self.SIGNATURES:
            if head.startswith(signature):
                return mime_type, extension
        if head.lstrip().startswith(b"<"):
            return "text/html", ".html"
        return "text/plain", ".txt"


class FakeBook:
    """Records images the way BookBuilder does, without ebooklib."""

    def __init__(self):
        self.images: Dict[str, str] = {}
        self.calls: List[Tuple[str, str, Optional[str]]] = []

    def add_image(self, path: str, internal_name: str, media_type: Optional[str] = None) -> str:
        self.calls.append((path, internal_name, media_type))
        if internal_name not in self.images:
            self.images[internal_name] = path
        return f"images/{internal_name}"


def build_eml(
    subject: str = "=?UTF-8?B?SGVsbG8=?=",
    html: Optional[str] = None,
    text: Optional[str] = None,
    attachments: Sequence[dict] = (),
    extra_headers: Sequence[str] = (),
) -> bytes:
    """
    Assemble raw .eml bytes by hand so header values stay exactly as given.

    Each attachment dict takes ``content``, ``content_type`` and optional
    ``content_id`` / ``filename`` / ``disposition``.
    """
    lines = [
        "From: Sender <sender@example.com>",
        "To: reader@example.com",
        f"Subject: {subject}",
        "Date: Mon, 01 Jan 2024 10:00:00 +0000",
        *extra_headers,
        "MIME-Version: 1.0",
        'Content-Type: multipart/mixed; boundary="BOUNDARY"',
        "",
    ]
    if html is not None:
        lines += ["--BOUNDARY", "Content-Type: text/html; charset=utf-8", "", html]
    if text is not None:
        lines += ["--BOUNDARY", "Content-Type: text/plain; charset=utf-8", "", text]
    for attachment in attachments:
        lines += ["--BOUNDARY", f"Content-Type: {attachment['content_type']}", "Content-Transfer-Encoding: base64"]
        if attachment.get("content_id"):
            lines.append(f"Content-ID: <{attachment['content_id']}>")
        if attachment.get("filename"):
            disposition = attachment.get("disposition", "attachment")
            lines.append(f'Content-Disposition: {disposition}; filename="{attachment["filename"]}"')
        lines += ["", base64.b64encode(attachment["content"]).decode("ascii")]
    lines += ["--BOUNDARY--", ""]
    return "\r\n".join(lines).encode("utf-8")


@pytest.fixture
def png_bytes():
    return PNG_BYTES


@pytest.fixture
def gif_bytes():
    return GIF_BYTES


@pytest.fixture
def fake_sniffer():
    return FakeSniffer()


@pytest.fixture
def fake_book():
    return FakeBook()


@pytest.fixture
def settings(tmp_path):
    return Settings(
        IMAGES_DIR=str(tmp_path / "images"),
        ATTACHMENTS_DIR=str(tmp_path / "attachments"),
    )


@pytest.fixture
def html_error_page():
    return HTML_ERROR_PAGE


@pytest.fixture
def eml_factory():
    return build_eml

"""
Data models
===========

Plain value objects passed between the pipeline stages: the parsed email,
its attachments, download outcomes and assembled chapters.
"""

from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict


class Attachment(BaseModel):
    """
    One MIME attachment as delivered by the parser.

    Attributes:
        filename: name from Content-Disposition / Content-Type, may be empty
        content_type: declared type, not trusted for embedding decisions
        content_id: Content-ID without angle brackets, empty when absent
        content: decoded payload bytes
    """

    model_config = ConfigDict(frozen=True)

    filename: str = ""
    content_type: str = "application/octet-stream"
    content_id: str = ""
    content: bytes = b""


class EmailMessage(BaseModel):
    """
    A parsed ``.eml`` file.

    Header values are kept raw (RFC 2047 encoded words are *not* decoded
    here); rendering code decodes them through ``HeaderDecoder``.
    """

    model_config = ConfigDict(frozen=True)

    source: str
    sender: str = ""
    to: List[str] = []
    cc: List[str] = []
    bcc: List[str] = []
    reply_to: List[str] = []
    subject: str = ""
    date: str = ""
    headers: Dict[str, str] = {}
    html: bytes = b""
    text: str = ""
    attachments: List[Attachment] = []


class DownloadResult(BaseModel):
    """Outcome of fetching one remote URL."""

    url: str
    path: str
    error: Optional[str] = None
    skipped: bool = False

    @property
    def ok(self) -> bool:
        return self.error is None


class Chapter(BaseModel):
    """A page ready for the book builder."""

    title: str
    filename: str
    html: str


class BookOptions(BaseModel):
    """Per-run book metadata and output location."""

    title: str = "Emails"
    author: str = "Email to Epub"
    cover: Optional[str] = None
    output: str = "output.epub"

"""
Capabilities the resolver and pipeline depend on.

Concrete implementations live in ``fetcher``, ``sniffer``, ``book`` and
``email.attachment_handler``; tests substitute small fakes.
"""

from typing import Dict, Iterable, Optional, Protocol, Sequence, Tuple

from email2epub.models import Attachment, DownloadResult


class ContentSniffer(Protocol):
    def sniff(self, path: str) -> Tuple[str, str]:
        """Return ``(mime_type, extension)``; raise ``SniffError`` on failure."""
        ...


class ImageSink(Protocol):
    def add_image(self, path: str, internal_name: str, media_type: Optional[str] = None) -> str:
        """Embed a file and return its internal reference; raise ``BookError`` on failure."""
        ...


class ImageFetcher(Protocol):
    def fetch(self, urls: Iterable[str]) -> Dict[str, DownloadResult]:
        ...


class AttachmentStore(Protocol):
    def extract(self, source: str, subject: str, attachments: Sequence[Attachment]) -> Dict[str, str]:
        ...

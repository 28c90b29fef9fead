"""
Content-type sniffing
=====================

Determines what a cached file really is by looking at its bytes with
python-magic (libmagic), the same engine the ``file`` command uses. Declared
content types from emails and HTTP responses are never trusted for the
embed decision.
"""

import mimetypes
from typing import Tuple

import magic

from email2epub.email.config import CONTENT_TYPE_EXTENSION_MAP
from email2epub.errors import SniffError
from email2epub.logger import get_logger

logger = get_logger(__name__)

# libmagic only needs the head of the file to decide
SNIFF_BYTES = 8192


def extension_for(mime_type: str) -> str:
    """Canonical extension (with dot) for *mime_type*, or ``""``."""
    mime_type = (mime_type or "").lower()
    if mime_type in CONTENT_TYPE_EXTENSION_MAP:
        return CONTENT_TYPE_EXTENSION_MAP[mime_type]
    return mimetypes.guess_extension(mime_type) or ""


class MagicSniffer:
    """Sniffer backed by libmagic."""

    def __init__(self) -> None:
        self._detector = magic.Magic(mime=True)

    def sniff(self, path: str) -> Tuple[str, str]:
        """
        Return ``(mime_type, extension)`` for the file at *path*.

        Raises:
            SniffError: the file cannot be read or libmagic fails on it
        """
        try:
            with open(path, "rb") as f:
                head = f.read(SNIFF_BYTES)
        except OSError as e:
            raise SniffError(f"cannot read {path}: {e}") from e

        if not head:
            return "application/x-empty", ""

        try:
            mime_type = self._detector.from_buffer(head)
        except magic.MagicException as e:
            raise SniffError(f"cannot detect mime of {path}: {e}") from e

        extension = extension_for(mime_type)
        logger.debug("Sniffed %s: %s (%s)", path, mime_type, extension or "no extension")
        return mime_type, extension

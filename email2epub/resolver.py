"""
Image reference resolver
========================

Rewrites every ``<img>`` of an email body so that it points at a copy
embedded in the book.

``src`` values fall into three classes:

- REMOTE (``http://`` / ``https://``): resolved through the fetch results.
  The downloaded bytes must sniff as ``image/*``; anything else (typically an
  HTML error page served with status 200) gets the element removed.
- CONTENT-ID (``cid:``): resolved through the attachment lookup. Attachments
  are embedded whatever they sniff as; only remote content is gated.
- anything else: logged and left as-is.

Elements whose source cannot be resolved are removed so the reader does not
show a broken image. Elements are processed in document order, so image
registration order is deterministic regardless of download order.
"""

from __future__ import annotations

import hashlib
import html
import os
from enum import Enum
from typing import Dict, List, Mapping, Optional, Tuple

from email2epub.errors import BookError, SniffError
from email2epub.html_document import HtmlDocument, ImageElement
from email2epub.interfaces import ContentSniffer, ImageSink
from email2epub.logger import get_logger
from email2epub.models import DownloadResult

logger = get_logger(__name__)

# meaningless in a static offline book
STRIPPED_ATTRIBUTES = ("loading", "srcset", "sizes", "data-src", "data-srcset")

REMOTE_PREFIXES = ("http://", "https://")
CID_PREFIX = "cid:"


class ReferenceKind(str, Enum):
    REMOTE = "remote"
    CONTENT_ID = "content_id"
    UNSUPPORTED = "unsupported"


def classify(src: Optional[str]) -> ReferenceKind:
    lowered = (src or "").strip().lower()
    if lowered.startswith(REMOTE_PREFIXES):
        return ReferenceKind.REMOTE
    if lowered.startswith(CID_PREFIX):
        return ReferenceKind.CONTENT_ID
    return ReferenceKind.UNSUPPORTED


def is_image_mime(mime_type: str) -> bool:
    return (mime_type or "").lower().startswith("image/")


class ReferenceResolver:
    """
    Resolves image references for every email of one run.

    The resolver remembers which local file each internal name was given to,
    so two different files never end up sharing a name in the book.
    """

    def __init__(self, book: ImageSink, sniffer: ContentSniffer, verbose: bool = False) -> None:
        self.book = book
        self.sniffer = sniffer
        self.verbose = verbose
        self._names: Dict[str, str] = {}

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @staticmethod
    def collect_remote_urls(document: HtmlDocument) -> List[str]:
        """Distinct remote ``src`` values, in document order."""
        urls: List[str] = []
        for image in document.images():
            src = image.get("src")
            if classify(src) is ReferenceKind.REMOTE and src not in urls:
                urls.append(src)
        return urls

    @staticmethod
    def internal_name(base: str, extension: str) -> str:
        """Base name of *base*, with *extension* appended unless already there."""
        name = os.path.basename(base)
        if extension and not name.endswith(extension):
            name += extension
        return name

    def _claim_name(self, name: str, path: str) -> str:
        owner = self._names.get(name)
        if owner is None or owner == path:
            self._names[name] = path
            return name
        stem, ext = os.path.splitext(name)
        unique = f"{stem}_{hashlib.md5(path.encode('utf-8')).hexdigest()[:8]}{ext}"
        logger.debug("Internal name %s already taken by %s, using %s", name, owner, unique)
        self._names[unique] = path
        return unique

    def _sniff(self, path: str, src: str) -> Optional[Tuple[str, str]]:
        try:
            return self.sniffer.sniff(path)
        except SniffError as e:
            logger.warning("Cannot detect image mime of %s: %s", src, e)
            return None

    def _embed(self, image: ImageElement, src: str, path: str, name: str, mime_type: str) -> Optional[str]:
        name = self._claim_name(name, path)
        try:
            reference = self.book.add_image(path, name, mime_type)
        except BookError as e:
            logger.warning("Cannot add image %s: %s", src, e)
            image.remove()
            return None
        if self.verbose:
            logger.info("Replace %s as %s", src, reference)
        image.set("src", reference)
        return reference

    # ------------------------------------------------------------------
    # Rewriting
    # ------------------------------------------------------------------

    def resolve(
        self,
        document: HtmlDocument,
        downloads: Mapping[str, DownloadResult],
        attachments: Mapping[str, str],
    ) -> None:
        """Rewrite every ``<img>`` of *document* in place."""
        for image in document.images():
            for attribute in STRIPPED_ATTRIBUTES:
                image.remove_attr(attribute)

            src = image.get("src")
            kind = classify(src)
            if kind is ReferenceKind.REMOTE:
                self._resolve_remote(image, src, downloads)
            elif kind is ReferenceKind.CONTENT_ID:
                self._resolve_content_id(image, src, attachments)
            else:
                logger.warning("Unsupported image reference[src=%s]", src)

    def _resolve_remote(self, image: ImageElement, src: str, downloads: Mapping[str, DownloadResult]) -> None:
        result = downloads.get(src)
        if result is None or not result.ok:
            reason = result.error if result is not None else "not fetched"
            logger.warning("No local copy of %s (%s), image dropped", src, reason)
            image.remove()
            return

        sniffed = self._sniff(result.path, src)
        if sniffed is None:
            image.remove()
            return
        mime_type, extension = sniffed
        if not is_image_mime(mime_type):
            image.remove()
            logger.warning("Mime of %s is %s instead of images", src, mime_type)
            return

        self._embed(image, src, result.path, self.internal_name(result.path, extension), mime_type)

    def _resolve_content_id(self, image: ImageElement, src: str, attachments: Mapping[str, str]) -> None:
        content_id = src.strip()[len(CID_PREFIX):]
        path = attachments.get(content_id)
        if path is None:
            logger.warning("Content id %s not found, image dropped", content_id)
            image.remove()
            return

        sniffed = self._sniff(path, src)
        if sniffed is None:
            image.remove()
            return
        mime_type, extension = sniffed

        self._embed(image, src, path, self.internal_name(f"attachment_{content_id}", extension), mime_type)

    # ------------------------------------------------------------------
    # Bodies without HTML
    # ------------------------------------------------------------------

    def insert_attachments(self, document: HtmlDocument, source: str, attachments: Mapping[str, str]) -> int:
        """
        Append every image attachment to *document*'s body.

        Used when an email has no HTML body. Attachments reachable under both
        their Content-ID and filename are embedded once. Returns the number
        of images inserted.
        """
        prefix = hashlib.md5(source.encode("utf-8")).hexdigest()
        seen = set()
        index = 0
        inserted = 0
        for path in attachments.values():
            if path in seen:
                continue
            seen.add(path)
            index += 1

            sniffed = self._sniff(path, path)
            if sniffed is None:
                continue
            mime_type, extension = sniffed
            if not is_image_mime(mime_type):
                logger.debug("Attachment %s is %s, not inserted", path, mime_type)
                continue

            name = self._claim_name(self.internal_name(f"{prefix}_attachment_{index}", extension), path)
            try:
                reference = self.book.add_image(path, name, mime_type)
            except BookError as e:
                logger.warning("Cannot add image %s: %s", path, e)
                continue
            document.append_to_body(f'<img src="{html.escape(reference, quote=True)}" />')
            inserted += 1
        return inserted

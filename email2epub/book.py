"""
EPUB book builder
=================

Thin wrapper over ebooklib exposing what the pipeline needs: add images and
sections, set metadata and cover, write the file once. Images are
deduplicated by the internal name the caller chooses, so the same source
registered twice yields the same reference.
"""

from __future__ import annotations

import hashlib
import mimetypes
import os
import tempfile
import uuid
from typing import Dict, List, Optional

from ebooklib import epub

from email2epub.errors import BookError
from email2epub.logger import get_logger

logger = get_logger(__name__)

IMAGES_FOLDER = "images"
STYLES_FOLDER = "style"
COVER_NAME = "epub-cover"


class BookBuilder:
    """Accumulates chapters, images and metadata for one EPUB."""

    def __init__(
        self,
        title: str,
        author: Optional[str] = None,
        language: str = "en",
        identifier: Optional[str] = None,
    ) -> None:
        self.title = title
        self.language = language
        self._book = epub.EpubBook()
        self._book.set_identifier(identifier or str(uuid.uuid4()))
        self._book.set_title(title)
        self._book.set_language(language)
        self._images: Dict[str, str] = {}
        self._styles: Dict[str, epub.EpubItem] = {}
        self._chapters: List[epub.EpubHtml] = []
        self._has_cover = False
        self._written = False
        if author:
            self.set_author(author)

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    @property
    def images(self) -> Dict[str, str]:
        """``{internal name: reference}`` of every embedded image."""
        return dict(self._images)

    @property
    def chapter_titles(self) -> List[str]:
        return [chapter.title for chapter in self._chapters]

    # ------------------------------------------------------------------
    # Metadata
    # ------------------------------------------------------------------

    def set_author(self, author: str) -> None:
        self._book.add_author(author)

    def set_description(self, description: str) -> None:
        self._book.add_metadata("DC", "description", description)

    def set_cover(self, path: str, extension: str) -> None:
        """Use the image at *path* as cover, stored as ``epub-cover<extension>``."""
        content = self._read(path)
        self._book.set_cover(COVER_NAME + extension, content)
        self._has_cover = True

    # ------------------------------------------------------------------
    # Content
    # ------------------------------------------------------------------

    @staticmethod
    def _read(path: str) -> bytes:
        try:
            with open(path, "rb") as f:
                return f.read()
        except OSError as e:
            raise BookError(f"cannot read {path}: {e}") from e

    def add_image(self, path: str, internal_name: str, media_type: Optional[str] = None) -> str:
        """
        Embed the file at *path* as *internal_name* and return its reference.

        Registering an internal name twice returns the first reference and
        leaves the manifest unchanged.
        """
        if internal_name in self._images:
            return self._images[internal_name]

        content = self._read(path)
        media_type = media_type or mimetypes.guess_type(internal_name)[0] or "application/octet-stream"
        reference = f"{IMAGES_FOLDER}/{internal_name}"
        item = epub.EpubImage(
            uid=f"image_{len(self._images) + 1}",
            file_name=reference,
            media_type=media_type,
            content=content,
        )
        self._book.add_item(item)
        self._images[internal_name] = reference
        logger.debug("Image added: %s (%s, %d bytes)", reference, media_type, len(content))
        return reference

    def _stylesheet(self, css: str) -> epub.EpubItem:
        key = hashlib.md5(css.encode("utf-8")).hexdigest()
        if key not in self._styles:
            item = epub.EpubItem(
                uid=f"style_{key[:8]}",
                file_name=f"{STYLES_FOLDER}/{key}.css",
                media_type="text/css",
                content=css.encode("utf-8"),
            )
            self._book.add_item(item)
            self._styles[key] = item
        return self._styles[key]

    def add_section(self, html: str, title: str, filename: str, css: Optional[str] = None) -> str:
        """Append a chapter; returns its file name inside the book."""
        if not html or not html.strip():
            raise BookError(f"section {filename} has no content")
        if any(chapter.file_name == filename for chapter in self._chapters):
            raise BookError(f"section {filename} already exists")

        chapter = epub.EpubHtml(title=title, file_name=filename, lang=self.language)
        chapter.content = html
        if css:
            chapter.add_item(self._stylesheet(css))
        self._book.add_item(chapter)
        self._chapters.append(chapter)
        return filename

    # ------------------------------------------------------------------
    # Output
    # ------------------------------------------------------------------

    @staticmethod
    def _publish(temp_path: str, output: str) -> None:
        """Move *temp_path* to *output*, failing if *output* appears meanwhile."""
        try:
            os.link(temp_path, output)
        except FileExistsError as e:
            raise BookError(f"output file {output} already exist") from e
        except OSError:
            # no hard links on this filesystem
            if os.path.exists(output):
                raise BookError(f"output file {output} already exist")
            os.replace(temp_path, output)
            return
        os.remove(temp_path)

    def write(self, output: str) -> None:
        """
        Serialize the book to *output*.

        The file is written next to *output* under a temporary name and
        linked into place, so *output* either holds a complete book or
        does not exist. An existing *output* is never overwritten.
        """
        if self._written:
            raise BookError("book already written")
        if os.path.exists(output):
            raise BookError(f"output file {output} already exist")

        self._book.toc = list(self._chapters)
        self._book.add_item(epub.EpubNcx())
        self._book.add_item(epub.EpubNav())
        self._book.spine = (["cover"] if self._has_cover else []) + ["nav"] + list(self._chapters)
        self._written = True

        directory = os.path.dirname(os.path.abspath(output))
        try:
            fd, temp_path = tempfile.mkstemp(prefix=".email2epub-", suffix=".epub", dir=directory)
        except OSError as e:
            raise BookError(f"cannot write output epub: {e}") from e
        os.close(fd)
        try:
            epub.write_epub(temp_path, self._book, {})
            self._publish(temp_path, output)
        except BookError:
            if os.path.exists(temp_path):
                os.remove(temp_path)
            raise
        except Exception as e:
            if os.path.exists(temp_path):
                os.remove(temp_path)
            raise BookError(f"cannot write output epub: {e}") from e

        logger.info("Book written: %s (%d chapters, %d images)", output, len(self._chapters), len(self._images))

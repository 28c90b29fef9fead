"""
转换流水线 (Conversion pipeline)
================================

``EmailToEpub.run()`` 把一组 ``.eml`` 文件转换成一本 EPUB:

1. 没有输入或输出文件已存在时立即失败
2. 创建图片/附件缓存目录和书籍（作者、描述、封面）
3. 按顺序处理每封邮件：解析 -> 导出附件 -> 解析 HTML -> 下载远程图片 ->
   改写 ``<img>`` 引用 -> 组装章节 -> 加入书籍
4. 写出书籍

致命问题抛出 :class:`ConversionError`；单张图片或附件的问题只记录日志，继续处理。
"""

from __future__ import annotations

import html
import os
import tempfile
from datetime import date
from email.errors import MessageError
from importlib import resources
from typing import Dict, List, Optional, Sequence

from email2epub.book import BookBuilder
from email2epub.chapter import ChapterAssembler
from email2epub.config import Settings
from email2epub.email.attachment_handler import AttachmentHandler
from email2epub.email.email_parser import EmailParser
from email2epub.errors import BookError, ConversionError, SniffError
from email2epub.fetcher import Fetcher
from email2epub.html_document import HtmlDocument
from email2epub.interfaces import AttachmentStore, ContentSniffer, ImageFetcher
from email2epub.logger import get_logger
from email2epub.models import BookOptions, Chapter, DownloadResult, EmailMessage
from email2epub.resolver import ReferenceResolver, is_image_mime

logger = get_logger(__name__)

DEFAULT_COVER = "cover.png"
DESCRIPTION_TEMPLATE = "Email archive generated at {date} with email2epub"
TEXT_BODY_TEMPLATE = '<pre style="white-space: pre-wrap;">{text}</pre>'


def default_cover_bytes() -> bytes:
    return resources.files("email2epub").joinpath("assets", DEFAULT_COVER).read_bytes()


class ConversionContext:
    """State shared by all emails of one run; discarded with it."""

    def __init__(self) -> None:
        self.downloads: Dict[str, DownloadResult] = {}

    def pending(self, urls: Sequence[str]) -> List[str]:
        """URLs not attempted yet in this run. Failed ones are not retried."""
        return [url for url in urls if url not in self.downloads]


class EmailToEpub:
    """
    One conversion run.

    Args:
        settings: cache locations, download limits, language
        options: book title/author/cover and output path
        verbose: per-item progress logging
        fetcher / sniffer / attachment_handler: optional replacements for
            the default httpx, libmagic and filesystem implementations
    """

    def __init__(
        self,
        settings: Settings,
        options: BookOptions,
        verbose: bool = False,
        fetcher: Optional[ImageFetcher] = None,
        sniffer: Optional[ContentSniffer] = None,
        attachment_handler: Optional[AttachmentStore] = None,
    ) -> None:
        self.settings = settings
        self.options = options
        self.verbose = verbose
        self._fetcher = fetcher
        self._sniffer = sniffer
        self._attachment_handler = attachment_handler
        self.context = ConversionContext()
        self.assembler = ChapterAssembler()
        self.book: Optional[BookBuilder] = None

    # ------------------------------------------------------------------
    # Setup
    # ------------------------------------------------------------------

    def _make_dirs(self) -> None:
        for label, directory in (("images", self.settings.IMAGES_DIR), ("attachments", self.settings.ATTACHMENTS_DIR)):
            try:
                os.makedirs(directory, exist_ok=True)
            except OSError as e:
                raise ConversionError(f"cannot make {label} dir {directory}: {e}") from e

    def _make_book(self, sniffer: ContentSniffer) -> BookBuilder:
        book = BookBuilder(self.options.title, self.options.author, language=self.settings.BOOK_LANGUAGE)
        book.set_description(DESCRIPTION_TEMPLATE.format(date=date.today().strftime("%Y-%m-%d")))
        self._set_cover(book, sniffer)
        return book

    def _set_cover(self, book: BookBuilder, sniffer: ContentSniffer) -> None:
        cover = self.options.cover
        temp_path = None
        if not cover:
            fd, temp_path = tempfile.mkstemp(prefix="email2epub-", suffix=".png")
            with os.fdopen(fd, "wb") as f:
                f.write(default_cover_bytes())
            cover = temp_path

        try:
            try:
                mime_type, extension = sniffer.sniff(cover)
            except SniffError as e:
                raise ConversionError(f"cannot detect cover mime type {e}") from e
            if not is_image_mime(mime_type):
                raise ConversionError(f"cover {cover} is {mime_type}, not an image")
            try:
                book.set_cover(cover, extension)
            except BookError as e:
                raise ConversionError(f"cannot add cover {e}") from e
        finally:
            if temp_path:
                os.remove(temp_path)

    # ------------------------------------------------------------------
    # Run
    # ------------------------------------------------------------------

    def run(self, eml_paths: Sequence[str]) -> str:
        """Convert *eml_paths* and return the output path."""
        output = self.options.output
        if not eml_paths:
            raise ConversionError("no eml given")
        if os.path.exists(output):
            raise ConversionError(f"output file {output} already exist")

        self._make_dirs()

        sniffer = self._sniffer or self._default_sniffer()
        self.book = self._make_book(sniffer)
        resolver = ReferenceResolver(self.book, sniffer, verbose=self.verbose)
        attachment_handler = self._attachment_handler or AttachmentHandler(
            self.settings.ATTACHMENTS_DIR, verbose=self.verbose
        )

        fetcher = self._fetcher
        owned_fetcher = None
        if fetcher is None:
            owned_fetcher = fetcher = Fetcher(
                self.settings.IMAGES_DIR,
                concurrency=self.settings.DOWNLOAD_CONCURRENCY,
                timeout=self.settings.DOWNLOAD_TIMEOUT,
                user_agent=self.settings.USER_AGENT,
                verbose=self.verbose,
            )

        try:
            for index, eml in enumerate(eml_paths, start=1):
                logger.info("Adding %s", eml)
                chapter = self.convert_email(eml, index, fetcher, resolver, attachment_handler)
                try:
                    self.book.add_section(chapter.html, chapter.title, chapter.filename)
                except BookError as e:
                    raise ConversionError(f"cannot add section {e}") from e
        finally:
            if owned_fetcher is not None:
                owned_fetcher.close()

        try:
            self.book.write(output)
        except BookError as e:
            raise ConversionError(str(e)) from e
        return output

    @staticmethod
    def _default_sniffer() -> ContentSniffer:
        from email2epub.sniffer import MagicSniffer

        return MagicSniffer()

    @staticmethod
    def open_email(eml: str) -> EmailMessage:
        try:
            return EmailParser.parse(eml)
        except OSError as e:
            raise ConversionError(f"cannot open file: {e}") from e
        except (MessageError, ValueError) as e:
            raise ConversionError(f"cannot parse email {eml}: {e}") from e

    def convert_email(
        self,
        eml: str,
        index: int,
        fetcher: ImageFetcher,
        resolver: ReferenceResolver,
        attachment_handler: AttachmentStore,
    ) -> Chapter:
        """Run one email through the pipeline and return its chapter."""
        message = self.open_email(eml)
        attachments = attachment_handler.extract(eml, message.subject, message.attachments)
        document = HtmlDocument.parse(message.html)

        if message.html.strip():
            document.clean()
            pending = self.context.pending(resolver.collect_remote_urls(document))
            if pending:
                self.context.downloads.update(fetcher.fetch(pending))
            resolver.resolve(document, self.context.downloads, attachments)
        else:
            if message.text.strip():
                document.append_to_body(TEXT_BODY_TEMPLATE.format(text=html.escape(message.text)))
            inserted = resolver.insert_attachments(document, eml, attachments)
            logger.debug("%s has no HTML body, %d attachments inserted", eml, inserted)

        return self.assembler.assemble(message, document, index)

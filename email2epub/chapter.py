"""
Chapter assembly: the header info block, chapter title and page name.
"""

from __future__ import annotations

import html
from typing import List, Tuple

from email2epub.email.config import INFO_BOX_TEMPLATE, INFO_ROW_TEMPLATE, OPTIONAL_RECIPIENT_ROWS
from email2epub.email.header_decoder import HeaderDecoder
from email2epub.html_document import HtmlDocument
from email2epub.models import Chapter, EmailMessage


class ChapterAssembler:
    """Turns a parsed message and its resolved body into a :class:`Chapter`."""

    @staticmethod
    def decode_list(values: List[str]) -> str:
        return ", ".join(HeaderDecoder.decode(value) for value in values)

    @staticmethod
    def render_row(label: str, value: str) -> str:
        return INFO_ROW_TEMPLATE.format(label=html.escape(label), value=html.escape(value))

    def info_rows(self, message: EmailMessage) -> List[Tuple[str, str]]:
        """Decoded ``(label, value)`` rows in display order."""
        rows = [
            ("From", HeaderDecoder.decode(message.sender)),
            ("To", self.decode_list(message.to)),
        ]
        for label, attribute in OPTIONAL_RECIPIENT_ROWS:
            values = getattr(message, attribute)
            if values:
                rows.append((label, self.decode_list(values)))
        rows.append(("Subject", HeaderDecoder.decode(message.subject)))
        if message.date:
            rows.append(("Date", HeaderDecoder.decode(message.date)))
        return rows

    def render_info(self, message: EmailMessage) -> str:
        rows = "".join(self.render_row(label, value) for label, value in self.info_rows(message))
        return INFO_BOX_TEMPLATE.format(rows=rows)

    @staticmethod
    def title(message: EmailMessage, index: int) -> str:
        return f"{index}. {HeaderDecoder.decode(message.subject)}"

    @staticmethod
    def filename(index: int) -> str:
        return f"page{index}.xhtml"

    def assemble(self, message: EmailMessage, document: HtmlDocument, index: int) -> Chapter:
        """Build chapter *index* (1-based); *document* is not modified."""
        return Chapter(
            title=self.title(message, index),
            filename=self.filename(index),
            html=self.render_info(message) + document.body_html(),
        )

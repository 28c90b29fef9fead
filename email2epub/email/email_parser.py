"""
Low-level .eml parsing: RFC 5322 byte parsing and MIME part traversal.

Header values are returned raw; decoding encoded words is left to
``HeaderDecoder`` so that every rendered value goes through one code path.
"""

from __future__ import annotations

import re
from email import policy
from email.message import Message
from email.parser import BytesParser
from email.utils import getaddresses
from typing import Dict, List, Optional

from email2epub.models import Attachment, EmailMessage
from email2epub.logger import get_logger

logger = get_logger(__name__)

_FOLDING_RE = re.compile(r"\r?\n(?=[ \t])")


class EmailParser:
    """Parse ``.eml`` files into :class:`EmailMessage` models."""

    # ------------------------------------------------------------------
    # Header helpers
    # ------------------------------------------------------------------

    @staticmethod
    def clean_header_value(value: str) -> str:
        """Unfold a raw header value and repair undecodable bytes."""
        value = _FOLDING_RE.sub("", str(value)).strip()
        try:
            value.encode("utf-8")
        except UnicodeEncodeError:
            # 8-bit bytes smuggled through as surrogates by the parser
            value = value.encode("utf-8", "surrogateescape").decode("utf-8", errors="replace")
        return value

    @classmethod
    def raw_headers(cls, msg: Message) -> Dict[str, str]:
        """First raw value of every header, keyed by canonical name."""
        headers: Dict[str, str] = {}
        for name, value in msg.raw_items():
            headers.setdefault(name.title(), cls.clean_header_value(value))
        return headers

    @classmethod
    def address_list(cls, msg: Message, name: str) -> List[str]:
        values = [cls.clean_header_value(v) for n, v in msg.raw_items() if n.lower() == name.lower()]
        if not values:
            return []
        addresses = []
        for display_name, addr in getaddresses(values):
            if not display_name and not addr:
                continue
            addresses.append(f"{display_name} <{addr}>" if display_name else addr)
        return addresses

    # ------------------------------------------------------------------
    # Body helpers
    # ------------------------------------------------------------------

    @staticmethod
    def part_text(part: Message) -> str:
        """Decoded text of a ``text/*`` part, tolerant of bogus charsets."""
        try:
            return part.get_content()
        except (LookupError, UnicodeDecodeError):
            payload = part.get_payload(decode=True) or b""
            return payload.decode("utf-8", errors="replace")

    @staticmethod
    def is_attachment(part: Message, payload: bytes) -> bool:
        """Whether a non-body leaf part should be kept as an attachment."""
        if not payload:
            return False
        if part.get_content_disposition() == "attachment":
            return True
        if part.get_filename() or part.get("Content-ID"):
            return True
        return not part.get_content_type().startswith("text/")

    # ------------------------------------------------------------------
    # Full parse
    # ------------------------------------------------------------------

    @classmethod
    def parse_bytes(cls, data: bytes, source: str) -> EmailMessage:
        msg = BytesParser(policy=policy.default).parsebytes(data)
        return cls.from_message(msg, source)

    @classmethod
    def parse(cls, path: str) -> EmailMessage:
        """Read and parse the ``.eml`` at *path*. ``OSError`` propagates."""
        logger.debug("Email parse: start %s", path)
        with open(path, "rb") as f:
            msg = BytesParser(policy=policy.default).parse(f)
        message = cls.from_message(msg, path)
        logger.debug(
            "Email parse: done %s (html=%d bytes, attachments=%d)",
            path,
            len(message.html),
            len(message.attachments),
        )
        return message

    @classmethod
    def from_message(cls, msg: Message, source: str) -> EmailMessage:
        headers = cls.raw_headers(msg)

        html: Optional[str] = None
        text: Optional[str] = None
        attachments: List[Attachment] = []

        for part in msg.walk():
            if part.is_multipart():
                continue

            content_type = part.get_content_type()
            disposition = part.get_content_disposition()
            filename = part.get_filename()
            is_body_candidate = disposition != "attachment" and not filename

            if content_type == "text/html" and html is None and is_body_candidate:
                html = cls.part_text(part)
                continue
            if content_type == "text/plain" and text is None and is_body_candidate:
                text = cls.part_text(part)
                continue

            payload = part.get_payload(decode=True) or b""
            if not cls.is_attachment(part, payload):
                continue

            content_id = cls.clean_header_value(part.get("Content-ID", "") or "").strip("<>")
            attachments.append(
                Attachment(
                    filename=filename or "",
                    content_type=content_type,
                    content_id=content_id,
                    content=payload,
                )
            )

        return EmailMessage(
            source=source,
            sender=", ".join(cls.address_list(msg, "From")) or headers.get("From", ""),
            to=cls.address_list(msg, "To"),
            cc=cls.address_list(msg, "Cc"),
            bcc=cls.address_list(msg, "Bcc"),
            reply_to=cls.address_list(msg, "Reply-To"),
            subject=headers.get("Subject", ""),
            date=headers.get("Date", ""),
            headers=headers,
            html=(html or "").encode("utf-8"),
            text=text or "",
            attachments=attachments,
        )
